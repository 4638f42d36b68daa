r"""
Dendron argument parsers and the type-keyed parser registry.

Overview
- Parsed(value, consumed)
  • Successful parse result: the typed value plus how many tokens were eaten, so the
    dispatcher can advance its window.
- ArgumentParser[_T]
  • Turns a window of raw tokens into a typed value. Expected failures are returned
    as a ParseError (never raised) carrying reason + consumed count.
  • format(value) renders a value back to its token form; complete(prefix) lists
    completion candidates.
- Built-in parsers
  • StringParser      str        one token, verbatim
  • RemainderParser   Remainder  every remaining token joined by single spaces
  • IntegerParser     int        base-10, sign allowed, bounded by a bit width
  • FloatParser       float      decimal/scientific, finite only
  • BooleanParser     bool       true/false, yes/no, on/off, 1/0
  • EnumParser        Enum type  member names, case-insensitive
- parser(type) decorator
  • Adapts a plain function (tokens -> Parsed | ParseError) into a parser.
- ParserRegistry
  • Maps a target type to exactly one parser; duplicates are rejected, lookups of
    unknown types return None; freeze() turns it read-only before factories run.

Numeric policy
- Out-of-range integers and floats overflowing to infinity are reported with
  reason="overflow"; nothing is clamped.

Quick example
    >>> registry = ParserRegistry.defaults()
    >>> registry.lookup(int).parse(["123"])
    Parsed(value=123, consumed=1)
    >>> registry.lookup(int).parse(["99999999999"]).reason
    'overflow'
"""
import builtins
import enum
import math
import re
import threading
from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType
from typing import NamedTuple, Any

from .faults import *
from .internals import IntrospectableType
from .utils import *


class Parsed(NamedTuple):
    value: Any
    consumed: int


class Remainder(str):
    """
    Marker type for "rest of the line" arguments.

    Annotate a parameter with Remainder to receive every remaining token joined
    with single spaces (e.g. a chat message or a free-form description).
    """
    __slots__ = ()


class ArgumentParser[_T](metaclass=IntrospectableType):
    """
    Base parser: subclasses implement parse() and usually format()/complete().

    Contract
    - parse(tokens) -> Parsed | ParseError; never raises for malformed user input.
    - Parsing is pure: the same window always yields an equal result.
    - consumed is >= 1 on success; on failure it reports how far the parser read.
    """
    __introspectable__ = ("target",)
    _target = object

    def parse(self, tokens, /):
        raise NotImplementedError(f"{type(self).__typename__} must implement parse()")

    def format(self, value, /):
        return str(value)

    def complete(self, prefix, /):
        return []

    def _failure(self, reason, message, tokens, /, *, consumed=1, hint=Unset):
        """
        build the ParseError returned for an expected failure.
        """
        return ParseError(
            message,
            title="unparsable argument",
            code=FaultCode.UNPARSABLE_ARGUMENT,
            reason=reason,
            consumed=consumed,
            tokens=tuple(tokens),
            target=self.target,
            hint=coalesce(hint, "expected a value of type %r" % getattr(self.target, "__name__", self.target)),
            docs=getdoc(FaultCode.UNPARSABLE_ARGUMENT),
        )

    def _empty(self, tokens, /):
        return self._failure(
            "empty",
            "expected a %s but no token was given" % getattr(self.target, "__name__", self.target),
            tokens,
            consumed=0,
        )


class StringParser(ArgumentParser[str]):
    _target = str

    def parse(self, tokens, /):
        if not tokens:
            return self._empty(tokens)
        return Parsed(tokens[0], 1)


class RemainderParser(ArgumentParser[Remainder]):
    _target = Remainder

    def parse(self, tokens, /):
        if not tokens:
            return self._empty(tokens)
        return Parsed(Remainder(" ".join(tokens)), len(tokens))


class IntegerParser(ArgumentParser[int]):
    """
    Signed base-10 integers limited to `bits` (two's complement range).

    Failures
    - "format":   the token is not an optionally signed run of ASCII digits.
    - "overflow": the value does not fit in the configured width.
    """
    __introspectable__ = ("bits", "minimum", "maximum")
    _target = int

    def __init__(self, bits=32, /):
        if not isinstance(bits, int) or isinstance(bits, bool):
            raise TypeError(f"{type(self).__typename__} 'bits' must be an integer")
        if bits not in (8, 16, 32, 64, 128):
            raise ValueError(f"{type(self).__typename__} 'bits' must be one of 8, 16, 32, 64 or 128")
        self._bits = bits
        self._minimum = -(1 << (bits - 1))
        self._maximum = (1 << (bits - 1)) - 1

    def parse(self, tokens, /):
        if not tokens:
            return self._empty(tokens)
        if not re.fullmatch(r"[+-]?[0-9]+", token := tokens[0]):
            return self._failure("format", "%r is not an integer" % token, tokens)
        if not self.minimum <= (value := int(token)) <= self.maximum:
            return self._failure(
                "overflow",
                "%r is out of range for a %d-bit integer" % (token, self.bits),
                tokens,
                hint="use a value between %d and %d" % (self.minimum, self.maximum),
            )
        return Parsed(value, 1)


class LongParser(IntegerParser):
    def __init__(self):
        super().__init__(64)


class FloatParser(ArgumentParser[float]):
    """
    Decimal or scientific notation; nan/inf spellings and overflowing input are rejected.
    """
    _target = float

    def parse(self, tokens, /):
        if not tokens:
            return self._empty(tokens)
        if not re.fullmatch(r"[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?", token := tokens[0]):
            return self._failure("format", "%r is not a number" % token, tokens)
        if math.isinf(value := float(token)):
            return self._failure("overflow", "%r is too large for a float" % token, tokens)
        return Parsed(value, 1)

    def format(self, value, /):
        return repr(float(value))


class BooleanParser(ArgumentParser[bool]):
    _target = bool

    truthy = frozenset({"true", "yes", "on", "1"})
    falsy = frozenset({"false", "no", "off", "0"})

    def parse(self, tokens, /):
        if not tokens:
            return self._empty(tokens)
        if (token := tokens[0].lower()) in self.truthy:
            return Parsed(True, 1)
        if token in self.falsy:
            return Parsed(False, 1)
        return self._failure("format", "%r is not a boolean" % tokens[0], tokens, hint="use true or false")

    def format(self, value, /):
        return "true" if value else "false"

    def complete(self, prefix, /):
        return [choice for choice in ("true", "false") if choice.startswith(prefix.lower())]


class EnumParser[_E: enum.Enum](ArgumentParser[_E]):
    """
    Enum members by name (case-insensitive); formats back to the lowercased name.
    """

    def __init__(self, target, /):
        if not isinstance(target, type) or not issubclass(target, enum.Enum):
            raise TypeError(f"{type(self).__typename__} 'target' must be an enum type")
        self._target = target
        self._members = {name.lower(): member for name, member in target.__members__.items()}

    def parse(self, tokens, /):
        if not tokens:
            return self._empty(tokens)
        try:
            return Parsed(self._members[tokens[0].lower()], 1)
        except KeyError:
            return self._failure(
                "choice",
                "%r is not a valid %s" % (tokens[0], self.target.__name__),
                tokens,
                hint="choose one of: %s" % ", ".join(self._members),
            )

    def format(self, value, /):
        return value.name.lower()

    def complete(self, prefix, /):
        return [name for name in self._members if name.startswith(prefix.lower())]


class FunctionParser(ArgumentParser):
    """
    Adapter over a plain callable `tokens -> Parsed | ParseError`.
    """
    __introspectable__ = ("function",)

    def __init__(self, function, target, /):
        if not callable(function):
            raise TypeError(f"{type(self).__typename__} 'function' must be callable")
        if not isinstance(target, type):
            raise TypeError(f"{type(self).__typename__} 'target' must be a type")
        self._function = function
        self._target = target

    def parse(self, tokens, /):
        if not isinstance(result := self._function(tuple(tokens)), Parsed | ParseError):
            raise TypeError(f"{type(self).__typename__} function must return Parsed or ParseError")
        return result


def parser(target, /):
    """
    Decorator turning a function into a FunctionParser for `target`.

        @parser(Path)
        def path(tokens):
            return Parsed(Path(tokens[0]), 1)
    """
    @rename("parser")
    def wrapper(function, /):
        return FunctionParser(function, target)
    return wrapper


class ParserRegistry(metaclass=IntrospectableType):
    """
    Type-keyed parser registry.

    Rules
    - Keys are types; each type maps to exactly one parser.
    - register() never overwrites: a second parser for the same type raises
      DuplicateParserError and the first one stays in place.
    - lookup() of an unknown type returns None; callers decide what absence means
      (factories decline objects whose argument types have no parser).
    - freeze() is the barrier between the write phase (host setup) and the read
      phase (factory resolution, dispatch). Once frozen, register() raises
      FrozenRegistryError and readers need no synchronization.
    """
    __introspectable__ = ("frozen",)
    __displayable__ = ("types", "frozen")

    def __init__(self, parsers=(), /):
        self._parsers = {}
        self._lock = threading.Lock()
        self._frozen = False
        for type, parser in (parsers.items() if isinstance(parsers, Mapping) else parsers):
            self.register(type, parser)

    @classmethod
    def defaults(cls):
        """
        a fresh registry holding the built-in parsers for str, Remainder, int, float and bool.
        """
        return cls({
            str: StringParser(),
            Remainder: RemainderParser(),
            int: IntegerParser(),
            float: FloatParser(),
            bool: BooleanParser(),
        })

    @property
    def types(self):
        return tuple(self._parsers)

    def register(self, type, parser, /):
        """
        register `parser` for `type` and return the parser (decorator friendly).
        """
        if not isinstance(type, builtins.type):
            raise TypeError(f"{builtins.type(self).__typename__} key must be a type")
        if not callable(getattr(parser, "parse", None)):
            raise TypeError(f"{builtins.type(self).__typename__} parser must provide a parse() method")

        with self._lock:
            if self._frozen:
                raise FrozenRegistryError(
                    "cannot register a parser for %r, the registry is frozen" % type.__name__,
                    title="frozen registry",
                    code=FaultCode.FROZEN_REGISTRY,
                    type=type,
                    hint="register every parser before commands are resolved",
                    docs=getdoc(FaultCode.FROZEN_REGISTRY),
                )
            if type in self._parsers:
                raise DuplicateParserError(
                    "a parser for %r is already registered" % type.__name__,
                    title="duplicate parser",
                    code=FaultCode.DUPLICATE_PARSER,
                    type=type,
                    parser=self._parsers[type],
                    hint="register one parser per type, or wrap the existing one",
                    docs=getdoc(FaultCode.DUPLICATE_PARSER),
                )
            self._parsers[type] = parser
        return parser

    def lookup(self, type, /):
        return self._parsers.get(type)

    def freeze(self):
        """
        make the registry read-only (idempotent); returns self.
        """
        with self._lock:
            if not self._frozen:
                self._parsers = MappingProxyType(dict(self._parsers))
                self._frozen = True
        return self

    def __contains__(self, type, /):
        return type in self._parsers

    def __iter__(self):
        return iter(self._parsers)

    def __len__(self):
        return len(self._parsers)


__all__ = (
    "Parsed",
    "Remainder",
    "ArgumentParser",
    "StringParser",
    "RemainderParser",
    "IntegerParser",
    "LongParser",
    "FloatParser",
    "BooleanParser",
    "EnumParser",
    "FunctionParser",
    "parser",
    "ParserRegistry",
)
