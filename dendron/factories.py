"""
Dendron command factories: turn arbitrary host objects into command trees.

Contract
- A factory exposes create(parsers, object) -> CommandTree | None.
- None means “not mine”: the factory recognized that the object does not have the
  shape it handles, or that one of its argument types has no parser. It is decided
  by inspection only; nothing is built before the whole object has been checked.
- Factories are tried in a fixed priority order by the registrar; the first tree
  wins and nothing else is consulted.

Host object sources handled here
- CommandTree (TreeFactory)
  • A tree built by hand is adopted when it is a root and every argument type is
    known to the registry.
- CommandBuilder (BuilderFactory)
  • Fluent definition:
        CommandBuilder("greet", "hi").argument("name", str).executes(say_hello)
- @command on a class (ClassFactory)
  • The class (or an instance of it) becomes a node; its @handler method is the
    executable binding; methods and nested classes decorated with @command become
    subcommands, recursively.
- @command on a function (FunctionFactory)
  • The function becomes a single executable node; its positional parameters are
    the arguments.

Signature rules (class and function sources)
- Only positional parameters are accepted; *args, **kwargs and keyword-only
  parameters make the object unrecognizable.
- The annotation is the registry key. `X | None` means an optional X (default None).
  Unannotated parameters use the type of their default, or str.
- A parameter default makes the argument optional.
- A Remainder parameter must come last.

DEFAULT_FACTORIES
- (TreeFactory(), BuilderFactory(), ClassFactory(), FunctionFactory())
"""
import builtins
import inspect
import re
import types
import typing
from inspect import Parameter

from rich.text import Text

from .faults import *
from .internals import IntrospectableType
from .parsers import Remainder
from .trees import Argument, CommandTree
from .utils import *


def _normalize(name, /):
    """
    "list_users" -> "list-users", "Config" -> "config".
    """
    return re.sub(r"_+", "-", name.strip("_")).lower()


class Declaration(metaclass=IntrospectableType):
    """
    Command metadata attached by @command as the `__command__` attribute.
    """
    __introspectable__ = (
        "name",
        "aliases",
        "descr",
    )

    def __init__(self, name, aliases, descr, /):
        self._name = name
        self._aliases = tuple(aliases)
        self._descr = descr


def command(source=Unset, /, *aliases, name=Unset, descr=Unset):
    """
    Declare a function or a class as a command (the object itself is returned unchanged).

    Invocation modes
    - Bare decorator:   @command                 name derived from __name__
    - Named decorator:  @command("config", "cfg") first string is the name, the rest aliases
    - Keyword form:     @command(name="config", descr="manage settings")
    - Direct call:      command(func) / command(func, "alias")

    Defaults
    - name: the object's __name__, lowercased with underscores turned into hyphens.
    - descr: the first paragraph of the object's docstring.

    Raises
    - TypeError: when applied to something that is not a function or a class, or
      to an object that is already declared.
    """
    if isinstance(source, str):
        aliases = (source, *aliases)
        source = Unset
    if name is Unset and aliases:
        name, *aliases = aliases

    for token in (coalesce(name, "command"), *aliases):
        if not isinstance(token, str):
            raise TypeError("@command() names and aliases must be strings")
    if not isinstance(descr, str | Text | Unset):
        raise TypeError("@command() 'descr' must be a string")

    @rename("command")
    def wrapper(source, /):
        # static methods are declared on the function they wrap
        target = source.__func__ if isinstance(source, staticmethod) else source
        if not inspect.isfunction(target) and not inspect.isclass(target):
            raise TypeError("@command() must be applied to a function or a class")
        if "__command__" in vars(target):
            raise TypeError(f"{target.__qualname__!r} is already declared as a command")

        tokens = [coalesce(name, _normalize(target.__name__)), *aliases]
        if not all(re.fullmatch(r"\S+", token) for token in tokens):
            raise ValueError("@command() names and aliases must be non-empty and without spaces")
        if len(set(tokens)) != len(tokens):
            raise ValueError("@command() names and aliases cannot contain duplicates")

        doc = inspect.cleandoc(target.__doc__ or "").split("\n\n")[0].strip()
        target.__command__ = Declaration(tokens[0], tokens[1:], coalesce(descr, doc or Unset))
        return source

    return wrapper(source) if source is not Unset else wrapper


def handler(function, /):
    """
    Mark a method of a @command class as the class command's executable binding.
    """
    if not inspect.isfunction(function) and not isinstance(function, staticmethod):
        raise TypeError("@handler must be applied to a function")
    target = function.__func__ if isinstance(function, staticmethod) else function
    target.__handler__ = True
    return function


def _declaration(object, /):
    """
    the Declaration attached directly to `object` (never inherited), or None.
    """
    try:
        declaration = vars(object).get("__command__")
    except TypeError:
        return None
    return declaration if isinstance(declaration, Declaration) else None


def _unwrap(annotation, /):
    """
    (type, nullable) for an annotation; `X | None` / Optional[X] unwrap to (X, True).
    """
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        members = [member for member in typing.get_args(annotation) if member is not type(None)]
        if len(members) == 1 and len(members) != len(typing.get_args(annotation)):
            return members[0], True
    return annotation, False


def _specify(parsers, function, /, *, skip=0):
    """
    Inspect a callable's positional parameters into argument specs.

    Returns
    - list of (name, type, parser, optional, default) in declared order, or None
      when the signature cannot be expressed as positional command arguments.
    """
    try:
        signature = inspect.signature(function, eval_str=True)
    except (TypeError, ValueError, NameError):
        return None

    specs = []
    for parameter in list(signature.parameters.values())[skip:]:
        if parameter.kind not in (Parameter.POSITIONAL_ONLY, Parameter.POSITIONAL_OR_KEYWORD):
            return None

        annotation, nullable = _unwrap(parameter.annotation)
        if annotation is Parameter.empty:
            if parameter.default is Parameter.empty or parameter.default is None:
                annotation = str
            else:
                annotation = type(parameter.default)

        if not isinstance(annotation, type) or (parser := parsers.lookup(annotation)) is None:
            return None
        if specs and issubclass(specs[-1][1], Remainder):
            return None

        if parameter.default is not Parameter.empty:
            specs.append((parameter.name, annotation, parser, True, parameter.default))
        elif nullable:
            specs.append((parameter.name, annotation, parser, True, None))
        elif specs and specs[-1][3]:
            # required after optional
            return None
        else:
            specs.append((parameter.name, annotation, parser, False, Unset))

    return specs


def _arguments(specs, /):
    return tuple(
        Argument(name, type, parser, optional, default)
        for name, type, parser, optional, default in specs
    )


def _check_tokens(parent, children, /):
    """
    Reject sibling token collisions before anything is built.
    """
    seen = set()
    for tokens in children:
        for token in tokens:
            if token in seen:
                raise DuplicateCommandError(
                    "subcommand name %r is already in use under %r" % (token, parent),
                    title="duplicate subcommand",
                    code=FaultCode.DUPLICATE_COMMAND,
                    input=token,
                    hint="give every subcommand of %r a distinct name and aliases" % parent,
                    docs=getdoc(FaultCode.DUPLICATE_COMMAND),
                )
            seen.add(token)


class CommandFactory:
    """
    Base for factories; any object with a compatible create() works as well.
    """

    def create(self, parsers, object, /):
        raise NotImplementedError(f"{type(self).__name__} must implement create()")

    def __repr__(self):
        return f"{type(self).__name__}()"


class TreeFactory(CommandFactory):
    """
    Adopt a hand-built root CommandTree whose arguments are bound to the registry's
    own parser for their type.
    """

    def create(self, parsers, object, /):
        if not isinstance(object, CommandTree) or object.parent is not None:
            return None
        for node in object.walk():
            if any(argument.parser is not parsers.lookup(argument.type) for argument in node.arguments):
                return None
        return object


class CommandBuilder(metaclass=IntrospectableType):
    """
    Fluent command definition (consumed by BuilderFactory).

        build = (
            CommandBuilder("config", "cfg", descr="manage settings")
            .then(CommandBuilder("set").argument("key", str).argument("value", str).executes(on_set))
            .then(CommandBuilder("get").argument("key", str).executes(on_get))
        )

    Nothing is validated against a parser registry here; the factory declines builders
    whose argument types have no parser.
    """
    __introspectable__ = (
        "name",
        "aliases",
        "descr",
        "arguments",
        "children",
        "callback",
    )
    __displayable__ = (
        "name",
        "aliases",
        "arguments",
        "children",
    )

    def __init__(self, name, /, *aliases, descr=Unset):
        for token in (name, *aliases):
            if not isinstance(token, str):
                raise TypeError(f"{type(self).__typename__} names and aliases must be strings")
            elif not re.fullmatch(r"\S+", token):
                raise ValueError(f"{type(self).__typename__} names and aliases must be non-empty and without spaces")
        if len({name, *aliases}) != len(aliases) + 1:
            raise ValueError(f"{type(self).__typename__} names and aliases cannot contain duplicates")
        self._name = name
        self._aliases = tuple(aliases)
        self._descr = descr
        self._arguments = []
        self._children = []
        self._callback = None

    def argument(self, name, type=str, /, optional=False, default=Unset, descr=Unset):
        """
        Append a positional argument; returns self.
        """
        cls = builtins.type(self)
        if not isinstance(name, str) or not re.fullmatch(r"[^\W\d][\w-]*", name):
            raise ValueError(f"{cls.__typename__} argument name must be an identifier-like string")
        if any(name == argument[0] for argument in self._arguments):
            raise ValueError(f"{cls.__typename__} argument name {name!r} is already in use")
        if not isinstance(type, builtins.type):
            raise TypeError(f"{cls.__typename__} argument type must be a type")

        optional = bool(optional) or default is not Unset
        if self._arguments and issubclass(self._arguments[-1][1], Remainder):
            raise ValueError(f"{cls.__typename__} no argument can follow the greedy argument {self._arguments[-1][0]!r}")
        if self._arguments and self._arguments[-1][2] and not optional:
            raise ValueError(f"{cls.__typename__} required argument {name!r} cannot follow an optional one")
        self._arguments.append((name, type, optional, default, descr))
        return self

    def executes(self, callback, /):
        """
        Set the executable binding; returns self.
        """
        if not callable(callback):
            raise TypeError(f"{type(self).__typename__} callback must be callable")
        self._callback = callback
        return self

    def then(self, *children):
        """
        Append subcommand builders; returns self.
        """
        for child in children:
            if not isinstance(child, CommandBuilder):
                raise TypeError(f"{type(self).__typename__} children must be command builders")
        self._children.extend(children)
        return self


class BuilderFactory(CommandFactory):
    """
    CommandBuilder -> CommandTree.
    """

    def create(self, parsers, object, /):
        if not isinstance(object, CommandBuilder):
            return None
        if not self._inspect(parsers, object, ()):
            return None
        return self._build(parsers, object)

    def _inspect(self, parsers, builder, ancestry, /):
        if any(builder is ancestor for ancestor in ancestry):
            return False
        if any(parsers.lookup(type) is None for _, type, *_ in builder._arguments):
            return False
        _check_tokens(builder._name, ((child._name, *child._aliases) for child in builder._children))
        return all(self._inspect(parsers, child, (*ancestry, builder)) for child in builder._children)

    def _build(self, parsers, builder, /):
        node = CommandTree(
            builder._name,
            *builder._aliases,
            arguments=(
                Argument(name, type, parsers.lookup(type), optional, default, descr)
                for name, type, optional, default, descr in builder._arguments
            ),
            callback=builder._callback,
            descr=builder._descr,
        )
        for child in builder._children:
            node.add(self._build(parsers, child))
        return node


class FunctionFactory(CommandFactory):
    """
    @command function -> single executable node.
    """

    def create(self, parsers, object, /):
        if not inspect.isfunction(object) or (declaration := _declaration(object)) is None:
            return None
        if (specs := _specify(parsers, object)) is None:
            return None
        return CommandTree(
            declaration.name,
            *declaration.aliases,
            arguments=_arguments(specs),
            callback=object,
            descr=declaration.descr,
        )


class ClassFactory(CommandFactory):
    """
    @command class (or an instance of one) -> node with handler and subcommands.

    Inspection walks the whole class structure first (handlers, method and nested
    class subcommands, parameter types, sibling names, self-nesting); classes are
    instantiated with no arguments only once the structure is known to be valid.
    An instance given as the object is used as-is for the root bindings.
    """

    def create(self, parsers, object, /):
        if inspect.isclass(object):
            cls, instance = object, Unset
        else:
            cls, instance = type(object), object
        if _declaration(cls) is None:
            return None
        if (plan := self._inspect(parsers, cls, (), constructible=instance is Unset)) is None:
            return None
        return self._build(plan, instance)

    def _inspect(self, parsers, cls, ancestry, /, *, constructible=True):
        """
        Plan for `cls`: (class, declaration, handler, children) or None.

        - handler: (attribute name, argument specs) or None
        - children: ("method", attribute name, declaration, argument specs)
                    or ("class", attribute name, declaration, nested plan)
        """
        if cls in ancestry:
            return None
        if constructible:
            try:
                parameters = inspect.signature(cls).parameters.values()
            except (TypeError, ValueError):
                return None
            if any(
                parameter.default is Parameter.empty and
                parameter.kind not in (Parameter.VAR_POSITIONAL, Parameter.VAR_KEYWORD)
                for parameter in parameters
            ):
                return None

        declaration = _declaration(cls)
        handlers = []
        children = []

        for name, member in vars(cls).items():
            if inspect.isclass(member):
                if (child := _declaration(member)) is None:
                    continue
                if (plan := self._inspect(parsers, member, (*ancestry, cls))) is None:
                    return None
                children.append(("class", name, child, plan))
                continue

            function = member.__func__ if isinstance(member, staticmethod) else member
            if not inspect.isfunction(function):
                continue
            skip = 0 if isinstance(member, staticmethod) else 1

            if getattr(function, "__handler__", False):
                if (specs := _specify(parsers, function, skip=skip)) is None:
                    return None
                handlers.append((name, specs))
            elif (child := _declaration(function)) is not None:
                if (specs := _specify(parsers, function, skip=skip)) is None:
                    return None
                children.append(("method", name, child, specs))

        if len(handlers) > 1:
            return None

        _check_tokens(declaration.name, ((child.name, *child.aliases) for _, _, child, _ in children))
        return cls, declaration, handlers[0] if handlers else None, children

    def _build(self, plan, instance, /):
        cls, declaration, handler, children = plan
        if instance is Unset:
            instance = cls()

        node = CommandTree(
            declaration.name,
            *declaration.aliases,
            arguments=_arguments(handler[1]) if handler else (),
            callback=getattr(instance, handler[0]) if handler else None,
            descr=declaration.descr,
        )

        for kind, name, child, detail in children:
            if kind == "class":
                node.add(self._build(detail, Unset))
                continue
            node.add(CommandTree(
                child.name,
                *child.aliases,
                arguments=_arguments(detail),
                callback=getattr(instance, name),
                descr=child.descr,
            ))
        return node


DEFAULT_FACTORIES = (
    TreeFactory(),
    BuilderFactory(),
    ClassFactory(),
    FunctionFactory(),
)


__all__ = (
    "Declaration",
    "command",
    "handler",
    "CommandFactory",
    "TreeFactory",
    "CommandBuilder",
    "BuilderFactory",
    "FunctionFactory",
    "ClassFactory",
    "DEFAULT_FACTORIES",
)
