"""
Dendron command trees: the structured, navigable result of resolving a host object.

What this module provides
- Argument: one positional argument spec (name, target type, bound parser, optional,
  default, descr). The parser is resolved from the registry when the tree is built,
  so dispatch never discovers a missing parser.
- CommandTree: one command or subcommand node
  • name + aliases (its invocation tokens),
  • ordered arguments (positional resolution follows this order),
  • children keyed by every token of every child,
  • an optional executable binding (a node may be both executable and a folder).

Lifecycle
- Built by a factory, children appended with add() during construction only.
- seal() freezes the whole subtree; the registrar only stores sealed trees, which
  makes concurrent dispatch lock-free.
- The structure is rooted and acyclic: add() rejects attaching an ancestor (or the
  node itself) and nodes that already have a parent.

Dispatch (state machine over the tokens that follow this node's own token)
1. Descend while the next token names a child (subcommands win over arguments).
2. Resolve arguments in declared order on the remaining window, advancing by the
   parser's consumed count; an empty window yields the default of an optional
   argument or a MissingArgumentError for a required one.
3. Leftovers: UnknownSubcommandError when the node is a folder and nothing was
   consumed, otherwise UnparsedTokensError.
4. No binding: NotExecutableError. Otherwise the binding is called once with the
   values in declared order; anything it raises becomes ExecutionError (cause kept).
There is no backtracking: once a child is chosen, siblings are never reconsidered.

Rendering
- usage() for a one-line synopsis; render()/__rich__ for a rich help block
  (usage, description, arguments table, subcommands table).
"""
import builtins
import difflib
import re
from collections import defaultdict
from types import MappingProxyType

from rich.box import ROUNDED
from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .faults import *
from .internals import IntrospectableType, ordinal
from .parsers import Parsed, Remainder
from .utils import *


class Argument(metaclass=IntrospectableType):
    """
    Positional argument specification.

    Rules
    - name: non-empty identifier-like string (letters, digits, '_' and '-').
    - type: the registry key the parser was looked up with.
    - parser: object exposing parse(); bound at construction.
    - optional: implied when a default is given.
    """
    __introspectable__ = (
        "name",
        "type",
        "parser",
        "optional",
        "default",
        "descr",
    )
    __displayable__ = (
        "name",
        "type",
        "optional",
        "default",
    )

    def __init__(self, name, type, parser, /, optional=False, default=Unset, descr=Unset):
        cls = builtins.type(self)
        if not isinstance(name, str):
            raise TypeError(f"{cls.__typename__} 'name' must be a string")
        elif not re.fullmatch(r"[^\W\d][\w-]*", name := name.strip()):
            raise ValueError(f"{cls.__typename__} 'name' must be an identifier-like string")
        if not isinstance(type, builtins.type):
            raise TypeError(f"{cls.__typename__} 'type' must be a type")
        if not callable(getattr(parser, "parse", None)):
            raise TypeError(f"{cls.__typename__} 'parser' must provide a parse() method")
        if not isinstance(descr, str | Text | Unset):
            raise TypeError(f"{cls.__typename__} 'descr' must be a string")
        elif isinstance(descr, str) and not (descr := descr.strip()):
            raise ValueError(f"{cls.__typename__} 'descr' cannot be empty")

        self._name = name
        self._type = type
        self._parser = parser
        self._optional = bool(optional) or default is not Unset
        self._default = coalesce(default)
        self._descr = coalesce(descr)

    @property
    def greedy(self):
        return issubclass(self.type, Remainder)

    @property
    def metavar(self):
        label = self.name + ("..." if self.greedy else "")
        return f"[{label}]" if self.optional else f"<{label}>"


class CommandTree(metaclass=IntrospectableType):
    """
    A command node (and, through its children, a whole command tree).

    Construction
        tree = CommandTree("config", "cfg", descr="manage settings")
        tree.add(CommandTree("set", arguments=(key, value), callback=on_set))
        tree.seal()

    Introspection
    - name, aliases, tokens, arguments, children, subcommands, callback, descr,
      parent, root, path, sealed, executable.
    """
    __introspectable__ = (
        "name",
        "aliases",
        "arguments",
        "children",
        "callback",
        "descr",
        "parent",
        "sealed",
    )
    __displayable__ = (
        "name",
        "aliases",
        "arguments",
        "subcommands",
        "callback",
    )

    def __init__(self, name, /, *aliases, arguments=(), callback=None, descr=Unset):
        cls = type(self)
        tokens = []
        for token in (name, *aliases):
            if not isinstance(token, str):
                raise TypeError(f"{cls.__typename__} names and aliases must be strings")
            elif not re.fullmatch(r"\S+", token := token.strip()):
                raise ValueError(f"{cls.__typename__} names and aliases must be non-empty and without spaces")
            elif token in tokens:
                raise ValueError(f"{cls.__typename__} names and aliases cannot contain duplicates")
            tokens.append(token)

        arguments = tuple(arguments)
        seen = set()
        optional = False
        for index, argument in enumerate(arguments):
            if not isinstance(argument, Argument):
                raise TypeError(f"{cls.__typename__} 'arguments' must contain arguments")
            if argument.name in seen:
                raise ValueError(f"{cls.__typename__} argument name {argument.name!r} is already in use")
            seen.add(argument.name)
            if optional and not argument.optional:
                raise ValueError(f"{cls.__typename__} required argument {argument.name!r} cannot follow an optional one")
            optional |= argument.optional
            if argument.greedy and index != len(arguments) - 1:
                raise ValueError(f"{cls.__typename__} greedy argument {argument.name!r} must be the last argument")

        if callback is not None and not callable(callback):
            raise TypeError(f"{cls.__typename__} 'callback' must be callable")
        if not isinstance(descr, str | Text | Unset):
            raise TypeError(f"{cls.__typename__} 'descr' must be a string")
        elif isinstance(descr, str) and not (descr := descr.strip()):
            raise ValueError(f"{cls.__typename__} 'descr' cannot be empty")

        self._name = tokens[0]
        self._aliases = frozenset(tokens[1:])
        self._arguments = arguments
        self._children = {}
        self._callback = callback
        self._descr = coalesce(descr)
        self._parent = None
        self._sealed = False

    @property
    def tokens(self):
        return (self.name, *sorted(self.aliases))

    @property
    def executable(self):
        return self._callback is not None

    @property
    def subcommands(self):
        """
        distinct children in insertion order (aliases collapsed).
        """
        return tuple({id(child): child for child in self._children.values()}.values())

    @property
    def root(self):
        node = self
        while node._parent is not None:
            node = node._parent
        return node

    @property
    def path(self):
        path = [node := self]
        while node._parent is not None:
            path.append(node := node._parent)
        return tuple(reversed(path))

    def add(self, child, /):
        """
        Attach `child` under this node (construction time only) and return it.

        Raises
        - TypeError: the node is sealed or `child` is not a command tree.
        - ValueError: `child` already has a parent, or attaching it would create a cycle.
        - DuplicateCommandError: one of its tokens is already used by a sibling.
        """
        cls = type(self)
        if self._sealed:
            raise TypeError(f"{cls.__typename__} {self.name!r} is sealed, children can only be added during construction")
        if not isinstance(child, CommandTree):
            raise TypeError(f"{cls.__typename__} child must be a command tree")
        if child._parent is not None:
            raise ValueError(f"{cls.__typename__} {child.name!r} is already attached to {child._parent.name!r}")
        if any(node is child for node in self.path):
            raise ValueError(f"{cls.__typename__} {child.name!r} cannot be attached to itself or to one of its descendants")

        for token in child.tokens:
            if token in self._children:
                raise DuplicateCommandError(
                    "subcommand name %r is already in use under %r" % (token, " ".join(node.name for node in self.path)),
                    title="duplicate subcommand",
                    code=FaultCode.DUPLICATE_COMMAND,
                    input=token,
                    hint="give every subcommand of %r a distinct name and aliases" % self.name,
                    docs=getdoc(FaultCode.DUPLICATE_COMMAND),
                )

        for token in child.tokens:
            self._children[token] = child
        child._parent = self
        return child

    def seal(self):
        """
        Freeze this subtree (idempotent) and return self.
        """
        for node in self.walk():
            if not node._sealed:
                node._children = MappingProxyType(dict(node._children))
                node._sealed = True
        return self

    def walk(self):
        """
        Yield every node of the subtree once, depth-first, parents before children.
        """
        yield self
        for child in self.subcommands:
            yield from child.walk()

    def outline(self):
        """
        Plain nested-tuple structure of the subtree (tokens, argument shapes, children).

        Two trees built from the same source have equal outlines.
        """
        return (
            self.tokens,
            tuple((argument.name, argument.type, argument.optional, argument.default) for argument in self._arguments),
            self.executable,
            tuple(child.outline() for child in self.subcommands),
        )

    def resolve(self, tokens, /):
        """
        Descend through children by name/alias; return (node, remaining tokens).
        """
        tokens = tuple(tokens)
        node, index = self, 0
        while index < len(tokens) and (child := node._children.get(tokens[index])) is not None:
            node, index = child, index + 1
        return node, tokens[index:]

    def dispatch(self, tokens=(), /, *, offset=1):
        """
        Run the dispatch state machine over the tokens following this node's token.

        Parameters
        - tokens: Iterable[str] arguments and/or subcommand tokens.
        - offset: 1-based position of tokens[0] in the user's whole input (used for
          position-first messages).

        Returns
        - whatever the reached binding returns.

        Raises
        - UnknownSubcommandError, UnparsedTokensError, MissingArgumentError,
          ParseError, NotExecutableError, ExecutionError.
        """
        tokens = tuple(tokens)
        node, window = self.resolve(tokens)
        values = node._bind(window, offset=offset + len(tokens) - len(window))

        if node._callback is None:
            route = " ".join(step.name for step in node.path)
            raise NotExecutableError(
                "%r is not executable on its own" % route,
                title="not executable",
                code=FaultCode.NOT_EXECUTABLE,
                command=node,
                hint="pick one of its subcommands: %s" % ", ".join(child.name for child in node.subcommands)
                    if node.subcommands else "this command has nothing to run",
                docs=getdoc(FaultCode.NOT_EXECUTABLE),
            )

        try:
            return node._callback(*values)
        except Exception as exception:
            route = " ".join(step.name for step in node.path)
            raise ExecutionError(
                "%r failed: %s" % (route, exception),
                title="execution failed",
                code=FaultCode.EXECUTION_FAILURE,
                command=node,
                values=tuple(values),
                hint="the command itself raised %s" % type(exception).__name__,
                docs=getdoc(FaultCode.EXECUTION_FAILURE),
            ) from exception

    def _bind(self, window, /, *, offset):
        """
        Resolve this node's arguments against `window`; return the values in declared order.
        """
        route = " ".join(step.name for step in self.path)
        values = []
        index = 0

        for argument in self._arguments:
            if index >= len(window):
                if argument.optional:
                    values.append(argument.default)
                    continue
                raise MissingArgumentError(
                    "missing required argument %r for %r at %s position" % (argument.name, route, ordinal(offset + index)),
                    title="missing argument",
                    code=FaultCode.MISSING_ARGUMENT,
                    argument=argument.name,
                    tokens=window,
                    index=offset + index,
                    hint="usage: %s" % self.usage(),
                    docs=getdoc(FaultCode.MISSING_ARGUMENT),
                )

            try:
                result = argument.parser.parse(remaining := window[index:])
            except ParseError as fault:
                result = fault
            except Exception as exception:
                raise ParseError(
                    "%s failed for argument %r at %s position: %s" % (
                        type(argument.parser).__name__, argument.name, ordinal(offset + index), exception
                    ),
                    title="unparsable argument",
                    code=FaultCode.UNPARSABLE_ARGUMENT,
                    reason="error",
                    consumed=0,
                    argument=argument.name,
                    tokens=remaining,
                    index=offset + index,
                    hint="the parser itself raised %s" % type(exception).__name__,
                    docs=getdoc(FaultCode.UNPARSABLE_ARGUMENT),
                ) from exception
            if isinstance(result, ParseError):
                raise ParseError(
                    "%s for argument %r at %s position" % (result.message, argument.name, ordinal(offset + index)),
                    **(result.options | {
                        "argument": argument.name,
                        "tokens": remaining,
                        "index": offset + index,
                    })
                )
            if not isinstance(result, Parsed):
                raise TypeError(f"{type(argument.parser).__name__}.parse() must return Parsed or ParseError")
            if not 1 <= result.consumed <= len(remaining):
                raise ValueError(f"{type(argument.parser).__name__}.parse() consumed {result.consumed} of {len(remaining)} tokens")

            values.append(result.value)
            index += result.consumed

        if index < len(window):
            if self._children and index == 0:
                suggestions = difflib.get_close_matches(window[0], self._children.keys(), 5)
                try:
                    hint = "did you mean %r? run '%s --help' to see the subcommands" % (suggestions[0], route)
                except IndexError:
                    hint = "available subcommands: %s" % ", ".join(child.name for child in self.subcommands)
                raise UnknownSubcommandError(
                    "unknown subcommand %r of %r at %s position" % (window[0], route, ordinal(offset)),
                    title="unknown subcommand",
                    code=FaultCode.UNKNOWN_SUBCOMMAND,
                    input=window[0],
                    index=offset,
                    suggestions=suggestions,
                    hint=hint,
                    docs=getdoc(FaultCode.UNKNOWN_SUBCOMMAND),
                )
            raise UnparsedTokensError(
                "unexpected input %r from %s position" % (" ".join(window[index:]), ordinal(offset + index)),
                title="unparsed input",
                code=FaultCode.UNPARSED_TOKENS,
                tokens=window[index:],
                index=offset + index,
                hint="usage: %s" % self.usage(),
                docs=getdoc(FaultCode.UNPARSED_TOKENS),
            )

        return values

    def complete(self, tokens=(), /):
        """
        Completion candidates for the last token (the one being typed).

        - subcommand tokens when the cursor is right after a folder node,
        - otherwise the candidates of the parser for the argument at that position.
        """
        *head, prefix = tuple(tokens) or ("",)
        node, window = self.resolve(head)
        candidates = []

        if not window:
            candidates.extend(sorted(token for token in node._children if token.startswith(prefix)))

        index = 0
        for argument in node._arguments:
            if index >= len(window):
                if callable(complete := getattr(argument.parser, "complete", None)):
                    candidates.extend(complete(prefix))
                break
            if not isinstance(result := argument.parser.parse(window[index:]), Parsed):
                break
            index += result.consumed

        return list(dict.fromkeys(candidates))

    def usage(self):
        """
        One-line synopsis, e.g. "config set <key> <value>" or "config {set|get}".
        """
        parts = [" ".join(step.name for step in self.path)]
        parts.extend(argument.metavar for argument in self._arguments)
        if self._children:
            choices = "|".join(child.name for child in self.subcommands)
            parts.append(f"[{{{choices}}}]" if self.executable else f"{{{choices}}}")
        return " ".join(parts)

    def render(self, *, colorful=True, fancy=False):
        """
        Rich help block for this node.

        Palette keys (override through __styles__ in __main__)
        - usage-label, usage, description, heading, argument, type, default,
          subcommand, alias, subcommand-description, panel-title.
        """
        styles = defaultdict(str, {
            "usage-label": "bold #00E6FF",
            "usage": "bold #36C5F0",
            "description": "italic #A3A3A3",
            "heading": "bold #FFFFFF",
            "argument": "bold #FFD600",
            "type": "#22C55E",
            "default": "#9CA3AF",
            "subcommand": "bold #36C5F0",
            "alias": "#36C5F0 dim",
            "subcommand-description": "#9CA3AF",
            "panel-title": "bold #FF4D94",
        } | getattr(__import__("__main__"), "__styles__", {}))

        def text(fragment, style=""):
            if fragment is None:
                return Text("")
            if not colorful:
                return Text(str(fragment))
            if isinstance(fragment, Text):
                return fragment
            return Text(str(fragment), styles[style])

        renders = [Text.assemble(text("usage", "usage-label"), ": ", text(self.usage(), "usage"))]

        if self.descr:
            renders.append(text(self.descr, "description"))

        if self._arguments:
            table = Table(box=ROUNDED if fancy else None, show_header=False, pad_edge=False)
            for argument in self._arguments:
                table.add_row(
                    text(argument.metavar, "argument"),
                    text(getattr(argument.type, "__name__", argument.type), "type"),
                    text(argument.descr, "default"),
                    text("default: %r" % (argument.default,) if argument.optional else None, "default"),
                )
            renders.append(Group(text(pluralize("argument").title() + ":", "heading"), table))

        if self._children:
            table = Table(box=ROUNDED if fancy else None, show_header=False, pad_edge=False)
            for child in self.subcommands:
                table.add_row(
                    text(child.name, "subcommand"),
                    text(", ".join(sorted(child.aliases)) or None, "alias"),
                    text(child.descr, "subcommand-description"),
                )
            renders.append(Group(text(pluralize("subcommand").title() + ":", "heading"), table))

        if fancy:
            return Panel(Group(*renders), title=text(" ".join(step.name for step in self.path).upper(), "panel-title"), title_align="left")
        return Group(*renders)

    def __rich__(self):
        return self.render()

    def __iter__(self):
        return iter(self.subcommands)

    def __contains__(self, token, /):
        return token in self._children

    def __getitem__(self, token, /):
        return self._children[token]


__all__ = (
    "Argument",
    "CommandTree",
)
