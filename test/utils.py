"""
Tests for the Unset sentinel and the small helpers shared across dendron.

This module verifies:
- Unset identity, falsiness, copy/pickle stability and finality.
- coalesce(), rename(), pluralize() and ordinal() behavior.
- mglob() module pattern expansion against the dendron package itself.
- IntrospectableType naming and repr.
"""
import copy
import pickle
import unittest
from threading import Thread, Lock
from unittest import TestCase

from dendron.internals import IntrospectableType, ordinal
from dendron.parsers import IntegerParser
from dendron.utils import *


class UnsetTest(TestCase):
    """
    Test suite for the `Unset` singleton.
    """

    def testSingleton(self) -> None:
        """
        The constructor returns the same object reference on every call.
        """
        self.assertIs(UnsetType(), Unset)
        self.assertIs(UnsetType(), UnsetType())

    def testFalsely(self) -> None:
        self.assertFalse(bool(Unset))

    def testNotEqualToNoneOrFalse(self) -> None:
        self.assertNotEqual(Unset, None)
        self.assertNotEqual(Unset, False)  # noqa: E712

    def testRepr(self) -> None:
        self.assertEqual(repr(Unset), "Unset")

    def testUnionWithTypes(self) -> None:
        """
        `str | Unset` can be used with isinstance().
        """
        self.assertTrue(isinstance(Unset, str | Unset))
        self.assertTrue(isinstance("x", str | Unset))
        self.assertFalse(isinstance(1, str | Unset))

    def testCopyDeepcopyPreserveSingleton(self) -> None:
        self.assertIs(copy.copy(Unset), Unset)
        self.assertIs(copy.deepcopy(Unset), Unset)

    def testPickleRoundTrip(self) -> None:
        """
        Pickle round-trips preserve the identity of the singleton.
        """
        self.assertIs(pickle.loads(pickle.dumps(Unset)), Unset)

    def testThreadSafeConstruction(self) -> None:
        """
        Concurrent construction always yields the module singleton.
        """
        seen = []
        lock = Lock()

        def worker():
            instance = UnsetType()
            with lock:
                seen.append(instance)

        threads = [Thread(target=worker) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(seen), 16)
        self.assertTrue(all(instance is Unset for instance in seen))

    def testCannotSubclass(self) -> None:
        with self.assertRaises(TypeError):
            type("Derived", (UnsetType,), {})


class HelpersTest(TestCase):
    """
    coalesce, rename, pluralize, ordinal.
    """

    def testCoalesce(self) -> None:
        self.assertEqual(coalesce("name", "fallback"), "name")
        self.assertEqual(coalesce(Unset, "fallback"), "fallback")
        self.assertIsNone(coalesce(None, "fallback"))
        self.assertIsNone(coalesce(Unset))

    def testRenameDirectAndDecorator(self) -> None:
        def function():
            pass

        self.assertIs(rename(function, "renamed"), function)
        self.assertEqual(function.__name__, "renamed")
        self.assertEqual(function.__qualname__, "renamed")

        @rename("decorated")
        def other():
            pass

        self.assertEqual(other.__name__, "decorated")

    def testRenameRejectsBadArguments(self) -> None:
        with self.assertRaises(TypeError):
            rename(42, "name")
        with self.assertRaises(TypeError):
            rename(lambda: None, 42)
        with self.assertRaises(TypeError):
            rename()

    def testPluralize(self) -> None:
        self.assertEqual(pluralize("argument"), "arguments")
        self.assertEqual(pluralize("alias"), "aliases")
        self.assertEqual(pluralize("command entry"), "command entries")
        self.assertEqual(pluralize("Subcommand"), "Subcommands")
        self.assertEqual(pluralize("metadata"), "metadata")

    def testOrdinal(self) -> None:
        self.assertEqual(ordinal(1), "first")
        self.assertEqual(ordinal(10), "tenth")
        self.assertEqual(ordinal(11), "11th")
        self.assertEqual(ordinal(22), "22nd")
        self.assertEqual(ordinal(103), "103rd")
        self.assertEqual(ordinal(112), "112th")


class MglobTest(TestCase):
    """
    mglob() against the installed dendron package.
    """

    def testConcreteNameIsReturnedAsIs(self):
        self.assertEqual(mglob("dendron.parsers"), ["dendron.parsers"])

    def testDirectChildren(self):
        modules = mglob("dendron.*")
        self.assertIn("dendron.parsers", modules)
        self.assertIn("dendron.registrar", modules)
        self.assertNotIn("dendron", modules)
        self.assertEqual(modules, sorted(modules))

    def testRecursiveWildcardIncludesPackage(self):
        modules = mglob("dendron.**")
        self.assertIn("dendron", modules)
        self.assertIn("dendron.trees", modules)

    def testCharacterClass(self):
        self.assertEqual(mglob("dendron.[tf]rees"), ["dendron.trees"])

    def testMissingPackageYieldsNothing(self):
        self.assertEqual(mglob("dendron_missing_package.*"), [])

    def testInvalidPatterns(self):
        with self.assertRaises(TypeError):
            mglob(42)
        with self.assertRaises(ValueError):
            mglob("   ")
        with self.assertRaises(ValueError):
            mglob("*.commands")


class IntrospectableTest(TestCase):

    def testTypename(self):
        self.assertEqual(IntegerParser.__typename__, "integer-parser")

    def testMirroredPropertiesAreReadOnly(self):
        parser = IntegerParser(16)
        self.assertEqual(parser.bits, 16)
        with self.assertRaises(AttributeError):
            parser.bits = 8

    def testReprListsIntrospectableFields(self):
        class Sample(metaclass=IntrospectableType):
            __introspectable__ = ("value",)

            def __init__(self, value):
                self._value = value

        self.assertEqual(repr(Sample(3)), "sample(value=3)")

    def testMirrorCopiesContainers(self):
        class Holder(metaclass=IntrospectableType):
            __introspectable__ = ("items",)

            def __init__(self):
                self._items = [1, 2]

        holder = Holder()
        holder.items.append(3)
        self.assertEqual(holder.items, [1, 2])


if __name__ == '__main__':
    unittest.main()
