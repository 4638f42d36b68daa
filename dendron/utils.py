"""
Dendron utilities (small building blocks shared by every layer).

Overview
- UnsetType / Unset
  • Sentinel for “not provided” when None is a legitimate value (argument defaults,
    descriptions, optional registries).
- coalesce(object, default=None)
  • Materialize Unset into a default while keeping None/0/""/[] untouched.
- rename(callable, name) / @rename("name")
  • Stable __name__/__qualname__ for generated callables (help and tracebacks).
- mirror("attr")
  • Read-only property over a private backing field (self._attr); containers are
    handed out as fresh copies so callers cannot mutate node state.
- pluralize(text)
  • English pluralizer for help headings (“argument” → “arguments”).
- mglob(pattern)
  • Module globbing ("pkg.**.commands") used by the registrar to discover host
    objects in plugin-like layouts.

Names not in __all__ are internal.
"""
import builtins
import fnmatch
import functools
import importlib
import pkgutil
import re
from collections.abc import Sequence, Mapping, Set
from typing import final


@final
class UnsetType:
    """
    Sentinel type for values that were not provided.

    Characteristics
    - Falsy, distinct from None.
    - Singleton per process: UnsetType() always returns the same object.
    - Sealed: cannot be subclassed.
    """

    def __or__(self, other, /):
        # Lets `str | Unset` be used with isinstance().
        try:
            return type(self) | other
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo, /):
        return self

    def __reduce__(self):
        return "Unset"

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


def coalesce(object, default=None, /):
    """
    Return `object` unless it is the Unset sentinel, in which case return `default`.

    Examples
    - coalesce("name", "fallback") -> "name"
    - coalesce(Unset, "fallback")  -> "fallback"
    - coalesce(None, "fallback")   -> None
    """
    return object if object is not Unset else default


def rename(*parameters):
    """
    Assign a stable __name__/__qualname__ to a callable.

    Forms
    - rename(callable, name) -> callable (renamed in place)
    - rename(name)           -> decorator
    """
    match len(parameters):
        case 2:
            callable, name = parameters
            if not builtins.callable(callable):
                raise TypeError("rename() first argument must be callable")
            if not isinstance(name, str):
                raise TypeError("rename() second argument must be a string")
            try:
                callable.__qualname__ = name
                callable.__name__ = name
            except (AttributeError, TypeError):
                raise TypeError("rename() first argument must be a updatable callable") from None
            return callable
        case 1:
            name, = parameters
            if not isinstance(name, str):
                raise TypeError("@rename() argument must be a string")

            def wrapper(callable):
                if not builtins.callable(callable):
                    raise TypeError("@rename() must be applied to a callable")
                return rename(callable, name)

            return rename(wrapper, "rename")
        case _:
            raise TypeError("rename takes 1 to 2 arguments but %d were given" % len(parameters))


def _detach(object):
    """
    Hand out containers as fresh, shallow copies (tuples stay tuples, mappings become dicts).
    """
    if isinstance(object, tuple):
        return object
    if isinstance(object, Sequence) and not isinstance(object, str):
        return list(object)
    if isinstance(object, Mapping):
        return dict(object)
    if isinstance(object, Set) and not isinstance(object, frozenset):
        return set(object)
    return object


def mirror(name, /):
    """
    Read-only property exposing self._{name}.

    Mutable containers are copied on access so the backing state of a node or a
    registry cannot be changed through its public attributes.
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _detach(getattr(self, "_" + name))

    return property(getter)


@functools.cache
def pluralize(text, /):
    """
    Best-effort English plural of the last word of `text` (used for help headings).

    Examples
    - pluralize("argument")     -> "arguments"
    - pluralize("subcommand")   -> "subcommands"
    - pluralize("alias")        -> "aliases"
    - pluralize("command entry") -> "command entries"
    """
    if not isinstance(text, str):
        raise TypeError("pluralize() argument must be a string")

    if not (match := re.search(r"(\S+)(\s*)$", text)):
        return text

    head, word, trail = text[:match.start(1)], match.group(1), match.group(2)
    lower = word.lower()

    if lower in {"information", "metadata", "series", "data"}:
        plural = lower
    elif lower.endswith(("s", "sh", "ch", "x", "z")):
        plural = lower + "es"
    elif lower.endswith("y") and len(lower) > 1 and lower[-2] not in "aeiou":
        plural = lower[:-1] + "ies"
    else:
        plural = lower + "s"

    if word.isupper():
        plural = plural.upper()
    elif word[:1].isupper():
        plural = plural[:1].upper() + plural[1:]

    return head + plural + trail


def _matches(name, pattern):
    """
    Match a dotted module name against a dotted glob, segment by segment.

    '**' spans zero or more whole segments; other segments use fnmatch rules
    (which never cross a dot because matching happens per segment).
    """
    names, patterns = name.split("."), pattern.split(".")

    @functools.cache
    def step(i, j):
        if j == len(patterns):
            return i == len(names)
        if patterns[j] == "**":
            return step(i, j + 1) or (i < len(names) and step(i + 1, j))
        return i < len(names) and fnmatch.fnmatchcase(names[i], patterns[j]) and step(i + 1, j + 1)

    return step(0, 0)


def mglob(source, /):
    """
    Expand a dotted module glob into importable module names (sorted).

    Patterns
    - "pkg.commands"     → ["pkg.commands"] (no wildcard, returned as-is)
    - "pkg.*"            → direct children of pkg
    - "pkg.**.commands"  → any `commands` module below pkg
    - "pkg.tool_[ab]"    → fnmatch character classes inside a segment

    Rules
    - The pattern must start with a concrete package segment.
    - Packages that cannot be imported yield no matches.
    """
    if not isinstance(source, str):
        raise TypeError("mglob() argument must be a string")
    elif not (source := source.strip()):
        raise ValueError("mglob() argument must be a non-empty string")

    if re.fullmatch(r"(?!\d)\w+(\.(?!\d)\w+)*", source):
        return [source]

    prefixes = []
    for segment in source.split("."):
        if not re.fullmatch(r"(?!\d)\w+", segment):
            break
        prefixes.append(segment)

    if not prefixes:
        raise ValueError("mglob() pattern must start with a concrete package segment")

    try:
        package = importlib.import_module(prefix := ".".join(prefixes))
    except ImportError:
        return []

    matches = {prefix} if _matches(prefix, source) else set()

    if hasattr(package, "__path__"):
        for metadata in pkgutil.walk_packages(package.__path__, prefix + "."):
            if _matches(metadata.name, source):
                matches.add(metadata.name)

    return sorted(matches)


Unset = UnsetType()
"""
Singleton for “not provided”; pair with coalesce() to materialize defaults.
"""


__all__ = (
    # Functions
    "coalesce",
    "rename",
    "mirror",
    "pluralize",
    "mglob",

    # Types
    "UnsetType",

    # Constants
    "Unset",
)
