"""
Dendron registrar: the factory chain, the live tree set and the dispatch front-end.

Scope
- resolve(): host object -> CommandTree through the factory chain (first match wins).
- register() / register_all() / include(): insert sealed trees into the tree set,
  one object at a time or in batches that report failures per object.
- initialize(): one-shot lifecycle entry point (freeze parsers, register sources).
- dispatch() / invoke(): run a token line against the tree set.
- complete() / help(): completion candidates and rendered help.

Phases and synchronization
- Write phase: the host composes the ParserRegistry (its own lock).
- Barrier: the registry is frozen before the first factory runs; from then on it is
  read without locking.
- Tree set: insertions take the registrar lock and publish a new read-only
  snapshot; dispatch reads whichever snapshot is current, lock-free. Trees are
  sealed before publication, so a dispatch never observes a half-built tree.

Runtime flags
- shell: print faults with rich instead of raising them (see faults.trigger()).
- fancy: boxed rendering for faults and help.
- colorful: styled rendering for faults and help.

Example
    >>> registrar = Registrar()
    >>> @command
    ... def add(a: int, b: int = 1):
    ...     return a + b
    >>> registrar.initialize(add).ok
    True
    >>> registrar.dispatch(["add", "2", "40"]).unwrap()
    42
"""
import difflib
import importlib
import inspect
import shlex
import sys
import threading
from collections.abc import Iterable
from types import MappingProxyType
from typing import NamedTuple, Any

from rich.console import Group
from rich.table import Table
from rich.text import Text

from .factories import *
from .faults import *
from .faults import console
from .internals import IntrospectableType
from .parsers import ParserRegistry
from .trees import CommandTree
from .utils import *


class Outcome(NamedTuple):
    """
    Result of one dispatch: either a value or a fault, never both.
    """
    tokens: tuple
    value: Any = None
    fault: CommandException | None = None

    @property
    def ok(self):
        return self.fault is None

    def unwrap(self):
        """
        the binding's return value, or raise the fault.
        """
        if self.fault is not None:
            raise self.fault
        return self.value


class Batch(metaclass=IntrospectableType):
    """
    Per-object results of a batch registration.

    - trees: the trees registered, in submission order.
    - faults: (object, fault) pairs for every object that was rejected, in
      submission order; sources need not be hashable.
    - ok: True when nothing was rejected.
    - check(): surface every fault at once as a RegistrationExit.
    """
    __introspectable__ = (
        "trees",
        "faults",
    )
    __displayable__ = (
        "trees",
        "faults",
        "ok",
    )

    def __init__(self, trees=(), faults=(), /, **options):
        self._trees = tuple(trees)
        self._faults = tuple((object, fault) for object, fault in faults)
        self._options = options

    @property
    def ok(self):
        return not self._faults

    def check(self):
        """
        return self when every object was registered, otherwise trigger a RegistrationExit.
        """
        if self._faults:
            trigger(RegistrationExit([fault for _, fault in self._faults]), **self._options)
        return self


class Registrar(metaclass=IntrospectableType):
    """
    Factory chain plus the registered tree set.

    Parameters
    - parsers: ParserRegistry | Unset (defaults to ParserRegistry.defaults()).
    - factories: ordered factories; the order is the only tie-break between factories
      that could both handle an object.
    - shell, fancy, colorful: runtime flags applied when faults are surfaced.
    """
    __introspectable__ = (
        "parsers",
        "factories",
        "shell",
        "fancy",
        "colorful",
    )
    __displayable__ = (
        "factories",
        "trees",
        "initialized",
    )

    def __init__(self, parsers=Unset, factories=DEFAULT_FACTORIES, *, shell=False, fancy=False, colorful=False):
        cls = type(self)
        if parsers is Unset:
            parsers = ParserRegistry.defaults()
        if not isinstance(parsers, ParserRegistry):
            raise TypeError(f"{cls.__typename__} 'parsers' must be a parser registry")
        if isinstance(factories, str) or not isinstance(factories, Iterable):
            raise TypeError(f"{cls.__typename__} 'factories' must be an iterable of factories")
        if not (factories := tuple(factories)):
            raise ValueError(f"{cls.__typename__} 'factories' cannot be empty")
        for factory in factories:
            if not callable(getattr(factory, "create", None)):
                raise TypeError(f"{cls.__typename__} factories must provide a create() method")

        self._parsers = parsers
        self._factories = factories
        self._shell = bool(shell)
        self._fancy = bool(fancy)
        self._colorful = bool(colorful)
        self._trees = MappingProxyType({})
        self._lock = threading.Lock()
        self._once = threading.Lock()
        self._batch = None

    @property
    def trees(self):
        """
        read-only snapshot mapping every root token to its tree.
        """
        return self._trees

    @property
    def initialized(self):
        return self._batch is not None

    @property
    def flags(self):
        return {"shell": self._shell, "fancy": self._fancy, "colorful": self._colorful}

    def resolve(self, object, /):
        """
        Run the factory chain on `object` and return the first tree produced.

        Raises
        - UnrecognizedCommandSourceError: every factory declined.
        - TypeError: a factory returned something that is not a command tree.
        """
        self._parsers.freeze()
        for factory in self._factories:
            if (tree := factory.create(self._parsers, object)) is None:
                continue
            if not isinstance(tree, CommandTree):
                raise TypeError(f"{type(factory).__name__}.create() must return a command tree or None")
            return tree

        raise UnrecognizedCommandSourceError(
            "no factory recognizes %r as a command source" % (object,),
            title="unrecognized command source",
            code=FaultCode.UNRECOGNIZED_SOURCE,
            source=object,
            hint="decorate it with @command, describe it with a CommandBuilder, or check that "
                 "every argument type has a registered parser",
            docs=getdoc(FaultCode.UNRECOGNIZED_SOURCE),
        )

    def register(self, object, /):
        """
        Resolve, seal and insert `object` as a top-level command; return its tree.

        Raises
        - UnrecognizedCommandSourceError: see resolve().
        - DuplicateCommandError: one of the root tokens is already taken (nothing is
          inserted, and the tree is left unsealed, in that case).
        """
        tree = self.resolve(object)
        with self._lock:
            for token in tree.tokens:
                if (taken := self._trees.get(token)) is not None:
                    raise DuplicateCommandError(
                        "command name %r is already in use" % token,
                        title="duplicate command",
                        code=FaultCode.DUPLICATE_COMMAND,
                        input=token,
                        command=taken,
                        hint="rename the command or drop the conflicting alias",
                        docs=getdoc(FaultCode.DUPLICATE_COMMAND),
                    )
            # seal only once the tokens are known to be free
            tree.seal()
            self._trees = MappingProxyType(self._trees | dict.fromkeys(tree.tokens, tree))
        return tree

    def register_all(self, objects, /):
        """
        Register every object independently; one rejection never stops the others.
        """
        if isinstance(objects, str) or not isinstance(objects, Iterable):
            raise TypeError("register_all() argument must be an iterable of command sources")

        trees = []
        faults = []
        for object in objects:
            try:
                trees.append(self.register(object))
            except (CommandException, TypeError, ValueError) as fault:
                faults.append((object, fault))
        return Batch(trees, faults, **self.flags)

    def discover(self, source, /):
        """
        Command sources defined in the modules matched by the glob `source`.

        Picked up
        - functions and classes carrying their own @command declaration and defined
          in that module (re-exports are skipped),
        - CommandBuilder instances not used as a child of another builder there,
        - unattached CommandTree instances.
        """
        if not isinstance(source, str):
            raise TypeError("discover() argument must be a string")

        def imp(module):
            try:
                return importlib.import_module(module)
            except ImportError:
                raise TypeError(f"unable to import module {module!r}") from None

        objects = []
        for module in map(imp, mglob(source)):
            members = [object for _, object in inspect.getmembers(module)]
            nested = {
                id(child)
                for object in members if isinstance(object, CommandBuilder)
                for child in object.children
            }
            for object in members:
                if inspect.isfunction(object) or inspect.isclass(object):
                    if "__command__" in vars(object) and object.__module__ == module.__name__:
                        objects.append(object)
                elif isinstance(object, CommandBuilder) and id(object) not in nested:
                    objects.append(object)
                elif isinstance(object, CommandTree) and object.parent is None:
                    objects.append(object)
        return objects

    def include(self, source, /):
        """
        Discover and register the command sources of every module matching `source`.
        """
        return self.register_all(self.discover(source))

    def initialize(self, *sources):
        """
        One-shot lifecycle entry point.

        Behavior
        - First call: freeze the parser registry, then register every source (strings
          are module globs, anything else is a command source) and return the Batch.
        - Later calls: no-op; the first Batch is returned and a
          RedundantInitializationWarning is emitted.
        """
        with self._once:
            if self._batch is not None:
                trigger(RedundantInitializationWarning(
                    "the registrar is already initialized",
                    title="redundant initialization",
                    code=FaultCode.REDUNDANT_INITIALIZATION,
                    hint="call initialize() once, register later commands with register()",
                    docs=getdoc(FaultCode.REDUNDANT_INITIALIZATION),
                ), **self.flags)
                return self._batch

            self._parsers.freeze()
            objects = []
            for source in sources:
                if isinstance(source, str):
                    objects.extend(self.discover(source))
                else:
                    objects.append(source)
            self._batch = self.register_all(objects)
            return self._batch

    def dispatch(self, tokens, /):
        """
        Run one token line; dispatch-time faults are returned, not raised.

        Returns
        - Outcome(tokens, value, fault)
        """
        if isinstance(tokens, str) or not isinstance(tokens, Iterable):
            raise TypeError("dispatch() argument must be an iterable of strings")
        tokens = tuple(tokens)
        if not all(isinstance(token, str) for token in tokens):
            raise TypeError("dispatch() argument must be an iterable of strings")

        trees = self._trees
        try:
            if not tokens:
                raise UnknownCommandError(
                    "no command given",
                    title="unknown command",
                    code=FaultCode.UNKNOWN_COMMAND,
                    input=None,
                    index=1,
                    suggestions=(),
                    hint="available commands: %s" % ", ".join(tree.name for tree in self) if trees else None,
                    docs=getdoc(FaultCode.UNKNOWN_COMMAND),
                )
            if (tree := trees.get(tokens[0])) is None:
                suggestions = difflib.get_close_matches(tokens[0], trees.keys(), 5)
                raise UnknownCommandError(
                    "unknown command %r" % tokens[0],
                    title="unknown command",
                    code=FaultCode.UNKNOWN_COMMAND,
                    input=tokens[0],
                    index=1,
                    suggestions=suggestions,
                    hint="did you mean %r?" % suggestions[0] if suggestions else None,
                    docs=getdoc(FaultCode.UNKNOWN_COMMAND),
                )
            value = tree.dispatch(tokens[1:], offset=2)
        except CommandException as fault:
            return Outcome(tokens, None, fault)
        return Outcome(tokens, value, None)

    def invoke(self, prompt=Unset, /):
        """
        Front-end runner.

        Parameters
        - prompt:
          • Unset: read tokens from sys.argv[1:].
          • str: shell-like string; split with shlex.split.
          • Iterable[str]: pre-tokenized sequence; each element is trimmed.

        Returns
        - the binding's return value; None when a fault was printed in shell mode.
        """
        if prompt is Unset:
            tokens = sys.argv[1:]
        elif isinstance(prompt, str):
            tokens = shlex.split(prompt)
        elif isinstance(prompt, Iterable):
            tokens = []
            for item in prompt:
                if not isinstance(item, str):
                    raise TypeError("invoke() argument must be a string or an iterable of strings")
                if item := item.strip():
                    tokens.append(item)
        else:
            raise TypeError("invoke() argument must be a string or an iterable of strings")

        if (outcome := self.dispatch(tokens)).fault is not None:
            self.trigger(outcome.fault)
        return outcome.value

    def trigger(self, fault, /, **options):
        """
        surface a fault with this registrar's runtime flags.
        """
        trigger(fault, **self.flags | options)

    def complete(self, tokens=(), /):
        """
        Completion candidates for the last token of `tokens`.
        """
        *head, prefix = tuple(tokens) or ("",)
        if not head:
            return sorted(token for token in self._trees if token.startswith(prefix))
        if (tree := self._trees.get(head[0])) is None:
            return []
        return tree.complete((*head[1:], prefix))

    def help(self, tokens=(), /):
        """
        Print the help of the node reached by `tokens` (or the command overview).
        """
        if not (tokens := tuple(tokens)):
            return console.print(self._overview())
        if (tree := self._trees.get(tokens[0])) is None:
            return self.trigger(self.dispatch(tokens).fault)
        node, _ = tree.resolve(tokens[1:])
        console.print(node.render(colorful=self._colorful, fancy=self._fancy))

    def _overview(self):
        main = __import__("__main__")
        styles = {"heading": "bold #FFFFFF", "command": "bold #36C5F0", "alias": "#36C5F0 dim",
                  "description": "#9CA3AF"} | getattr(main, "__styles__", {})

        def text(fragment, style=""):
            if fragment is None:
                return Text("")
            return Text(str(fragment), styles.get(style, "") if self._colorful else "")

        table = Table(show_header=False, box=None, pad_edge=False)
        for tree in self:
            table.add_row(
                text(tree.name, "command"),
                text(", ".join(sorted(tree.aliases)) or None, "alias"),
                text(tree.descr, "description"),
            )
        return Group(text(pluralize("command").title() + ":", "heading"), table)

    def __contains__(self, token, /):
        return token in self._trees

    def __getitem__(self, token, /):
        return self._trees[token]

    def __iter__(self):
        return iter({id(tree): tree for tree in self._trees.values()}.values())


__all__ = (
    "Outcome",
    "Batch",
    "Registrar",
)
