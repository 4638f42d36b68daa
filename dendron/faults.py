"""
Dendron faults (errors and warnings) and their rendering.

Scope
- FaultCode: stable numeric identifiers for every fault, grouped by phase so logs
  and host documentation can key on them.
- CommandException / CommandWarning: base types carrying a message plus keyword
  options (title, code, hint, and context such as argument/tokens/suggestions).
  Both render themselves with rich (plain or boxed, colored or not) and support
  copy.replace() so callers can enrich a fault with context before surfacing it.
- RegistrationExit: an ExceptionGroup bundling the per-object failures of a batch
  registration.
- trigger(): single entry point to surface a fault (print in shell mode, raise or
  warn otherwise).
- getdoc(): optional host documentation for a code.

Phases
- registration (21xxx): parser registry and factory chain failures; fatal to the one
  object being registered, never to the batch.
- routing (22xxx) / arguments (23xxx) / execution (24xxx): dispatch-time failures;
  per invocation, handed back to the caller as a structured outcome.
- warnings (25xxx): soft notices.

Host hooks (looked up in __main__)
- __styles__: palette overrides for rendering.
- __codes__: mapping FaultCode -> label used instead of the numeric value.
- __docs__: mapping FaultCode -> documentation string (see getdoc()).
- __prog__: program name shown in fault headers.
"""
import copy
import sys
import warnings
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes (stable identifiers).

    grouping
    - registration (21xxx): DUPLICATE_PARSER, FROZEN_REGISTRY, UNRECOGNIZED_SOURCE,
      DUPLICATE_COMMAND, REGISTRATION_EXIT
    - routing (22xxx): UNKNOWN_COMMAND, UNKNOWN_SUBCOMMAND, NOT_EXECUTABLE
    - arguments (23xxx): MISSING_ARGUMENT, UNPARSABLE_ARGUMENT, UNPARSED_TOKENS
    - execution (24xxx): EXECUTION_FAILURE
    - warnings (25xxx): REDUNDANT_INITIALIZATION

    spacing leaves room for later additions without renumbering.
    """
    # --- registration (21xxx) ---
    DUPLICATE_PARSER            = 21101
    FROZEN_REGISTRY             = 21102
    UNRECOGNIZED_SOURCE         = 21111
    DUPLICATE_COMMAND           = 21112
    REGISTRATION_EXIT           = 21121

    # --- routing (22xxx) ---
    UNKNOWN_COMMAND             = 22101
    UNKNOWN_SUBCOMMAND          = 22102
    NOT_EXECUTABLE              = 22111

    # --- arguments (23xxx) ---
    MISSING_ARGUMENT            = 23101
    UNPARSABLE_ARGUMENT         = 23111
    UNPARSED_TOKENS             = 23121

    # --- execution (24xxx) ---
    EXECUTION_FAILURE           = 24101

    # --- warnings (25xxx) ---
    REDUNDANT_INITIALIZATION    = 25101

    def normalize(self):
        """
        return the host label for this code (from __main__.__codes__) or its numeric value.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


def _render(fault, palette, /):
    """
    build the rich renderable shared by errors and warnings.

    layout
    - header: "[ prog — code | Title ]"
    - body: the message, then an arrow and the hint (when present)
    - fancy: header becomes the title of a Panel around the body
    """
    main = __import__("__main__")
    styles = defaultdict(str, palette | getattr(main, "__styles__", {}))
    colorful = fault.options.get("colorful", False)

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if not colorful:
            return Text(str(fragment))
        if isinstance(fragment, Text):
            return fragment
        return Text(str(fragment), styles[style])

    header = Text.assemble(
        "[ ",
        text(getattr(main, "__prog__", fault.options.get("prog", "dendron")), "prog-name"),
        " — ",
        text(fault.code.normalize(), "code"),
        " | ",
        text(str(fault.options.get("title", type(fault).__name__)).title(), "title"),
        " ]"
    )
    body = [text(fault.message, "message")]
    if hint := fault.options.get("hint"):
        body.append(Text.assemble(text(" → ", "hint-arrow"), text(hint, "hint")))

    if fault.options.get("fancy", False):
        return Panel(Group(*body), title=header, title_align="left")
    return Group(header, *body)


class CommandException(Exception):
    """
    base of every dendron error.

    contract
    - message: human readable, lowercased sentence.
    - options: read-only mapping of context (title, code, hint, argument, tokens, ...)
      plus the rendering flags (shell, fancy, colorful).
    - __replace__ returns a copy with merged options (copy.replace support), keeping
      the explicit cause of the original.
    """
    __fault__ = Unset

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(*((message,) if message is not Unset else ()))
        self.message = message
        self.options = MappingProxyType(options)

    @property
    def code(self):
        return self.options.get("code", type(self).__fault__)

    @property
    def hint(self):
        return self.options.get("hint")

    def __rich__(self):
        return _render(self, {
            "prog-name": "bold #E6E6F0",
            "code": "bold #00E5FF",
            "title": "bold #FF4DA6",
            "message": "#C8C8D0",
            "hint-arrow": "#9CE19C dim",
            "hint": "italic #9CE19C",
        })

    def __trigger__(self):
        if not self.options.get("shell", False):
            raise self
        console.print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        replaced = type(self)(self.message, **{**self.options, **overrides})
        replaced.__cause__ = self.__cause__
        return replaced


class DuplicateParserError(CommandException):
    __fault__ = FaultCode.DUPLICATE_PARSER


class FrozenRegistryError(CommandException):
    __fault__ = FaultCode.FROZEN_REGISTRY


class UnrecognizedCommandSourceError(CommandException):
    __fault__ = FaultCode.UNRECOGNIZED_SOURCE

    @property
    def source(self):
        return self.options.get("source")


class DuplicateCommandError(CommandException):
    __fault__ = FaultCode.DUPLICATE_COMMAND


class UnknownCommandError(CommandException):
    __fault__ = FaultCode.UNKNOWN_COMMAND

    @property
    def suggestions(self):
        return self.options.get("suggestions", ())


class UnknownSubcommandError(UnknownCommandError):
    __fault__ = FaultCode.UNKNOWN_SUBCOMMAND


class NotExecutableError(CommandException):
    __fault__ = FaultCode.NOT_EXECUTABLE

    @property
    def command(self):
        return self.options.get("command")


class MissingArgumentError(CommandException):
    __fault__ = FaultCode.MISSING_ARGUMENT

    @property
    def argument(self):
        return self.options.get("argument")

    @property
    def tokens(self):
        return self.options.get("tokens", ())


class ParseError(CommandException):
    """
    per-argument conversion failure.

    parsers return (not raise) a ParseError for expected failures; the dispatcher
    completes it with the argument name and the received tokens before surfacing it.

    fields
    - reason: short machine-friendly cause ("format", "overflow", "choice", "empty",
      "error" when the parser raised instead of returning, ...)
    - consumed: how many tokens the parser looked at before failing
    - tokens: the token window that was offered to the parser
    - argument: the argument name (filled in by the dispatcher)
    """
    __fault__ = FaultCode.UNPARSABLE_ARGUMENT

    @property
    def reason(self):
        return self.options.get("reason", "format")

    @property
    def consumed(self):
        return self.options.get("consumed", 0)

    @property
    def tokens(self):
        return self.options.get("tokens", ())

    @property
    def argument(self):
        return self.options.get("argument")


class UnparsedTokensError(CommandException):
    __fault__ = FaultCode.UNPARSED_TOKENS

    @property
    def tokens(self):
        return self.options.get("tokens", ())


class ExecutionError(CommandException):
    """
    failure raised by a host binding; the original exception is the __cause__.
    """
    __fault__ = FaultCode.EXECUTION_FAILURE

    @property
    def command(self):
        return self.options.get("command")


class CommandWarning(Warning):
    """
    base of every dendron warning (same option/render contract as CommandException).
    """
    __fault__ = Unset

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(*((message,) if message is not Unset else ()))
        self.message = message
        self.options = MappingProxyType(options)

    @property
    def code(self):
        return self.options.get("code", type(self).__fault__)

    def __rich__(self):
        return _render(self, {
            "prog-name": "bold #E6E6F0",
            "code": "bold #FFB400",
            "title": "bold #FFC2E0",
            "message": "#D6D6DE",
            "hint-arrow": "#B8EFAF dim",
            "hint": "italic #B8EFAF",
        })

    def __trigger__(self):
        if not self.options.get("shell", False):
            return warnings.warn(self, stacklevel=4)
        console.print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class RedundantInitializationWarning(CommandWarning):
    __fault__ = FaultCode.REDUNDANT_INITIALIZATION


class RegistrationExit(ExceptionGroup):
    """
    group of registration faults collected over a batch (one per rejected object).
    """

    def __new__(cls, exceptions, **options):
        return super().__new__(cls, "registration failed", tuple(exceptions))

    def __init__(self, exceptions, **options):
        super().__init__("registration failed", tuple(exceptions))
        self.options = MappingProxyType(options)

    @property
    def code(self):
        return FaultCode.REGISTRATION_EXIT

    def __rich__(self):
        main = __import__("__main__")
        colorful = self.options.get("colorful", False)
        style = {"title": "bold #FF4DA6"} | getattr(main, "__styles__", {})

        header = Text.assemble(
            "[ ",
            getattr(main, "__prog__", self.options.get("prog", "dendron")),
            " — ",
            Text(self.message.title(), style["title"] if colorful else ""),
            " ]"
        )
        renders = [
            copy.replace(exception, colorful=colorful) if hasattr(exception, "__replace__") else
            Text("%s: %s" % (type(exception).__name__, exception))
            for exception in self.exceptions
        ]

        if self.options.get("fancy", False):
            return Panel(Group(*renders), title=header, title_align="left")
        return Group(header, *renders)

    def __trigger__(self):
        if not self.options.get("shell", False):
            raise self
        console.print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.exceptions, **{**self.options, **overrides})


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ (see the base classes).
    - options are merged into a copy of the fault before triggering.
    - shell=True prints through the rich console; otherwise errors are raised and
      warnings are emitted with warnings.warn().
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    copy.replace(fault, **options).__trigger__()


def getdoc(code, /):
    """
    host documentation for a fault code (from __main__.__docs__), or None.
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be a fault-code")
    try:
        return getattr(__import__("__main__"), "__docs__", {})[code]
    except KeyError:
        return None


__all__ = (
    "FaultCode",
    "CommandException",
    "DuplicateParserError",
    "FrozenRegistryError",
    "UnrecognizedCommandSourceError",
    "DuplicateCommandError",
    "UnknownCommandError",
    "UnknownSubcommandError",
    "NotExecutableError",
    "MissingArgumentError",
    "ParseError",
    "UnparsedTokensError",
    "ExecutionError",
    "CommandWarning",
    "RedundantInitializationWarning",
    "RegistrationExit",
    "trigger",
    "getdoc",
)
