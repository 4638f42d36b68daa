"""
Factory behavioral tests (decorated functions, decorated classes, builders, trees).

Scope
- Validate that each factory builds the expected tree for the sources it handles.
- Validate that factories decline (None) on foreign or unsupported shapes without
  side effects, and that resolution is deterministic.

Conventions
- Test method names follow CamelCase per project convention.
- Sources are declared at module level so their annotations resolve normally.
"""
import unittest
from unittest import TestCase

from dendron import *


@command("add", "plus")
def add(a: int, b: int = 1):
    """Add two integers.

    The second operand defaults to one.
    """
    return a + b


@command
def greet_user(name, times=2):
    return " ".join([f"hello {name}"] * times)


@command
def maybe(value: int | None):
    return value


@command
def variadic(*values: int):
    return values


@command
def keyword(*, value: int):
    return value


@command
def unsupported(value: complex):
    return value


def plain(value: int):
    return value


@command("config", "cfg")
class Config:
    """Manage settings."""

    def __init__(self):
        self.store = {}

    @handler
    def show(self):
        return dict(self.store)

    @command("set")
    def put(self, key: str, value: str):
        self.store[key] = value
        return value

    @command("get")
    def fetch(self, key: str):
        return self.store.get(key)

    @command
    @staticmethod
    def version():
        return "1.0"

    @command
    class Remote:
        """Talk to the remote."""

        @handler
        def run(self, url: str):
            return url


@command
class Needs:
    def __init__(self, value):
        self.value = value

    @handler
    def run(self):
        return self.value


@command
class Twice:
    @handler
    def first(self):
        pass

    @handler
    def second(self):
        pass


@command
class Counted:
    instances = 0

    def __init__(self):
        type(self).instances += 1

    @command
    def bad(self, value: complex):
        return value


@command
class Clash:
    @command("x")
    def one(self):
        pass

    @command("x")
    def two(self):
        pass


@command
class Loop:
    pass


Loop.again = Loop


class TestDecorators(TestCase):
    """@command and @handler."""

    def testCommandReturnsObjectUnchanged(self):
        self.assertEqual(add(1, 2), 3)
        self.assertEqual(add.__command__.name, "add")
        self.assertEqual(add.__command__.aliases, ("plus",))
        self.assertEqual(add.__command__.descr, "Add two integers.")

    def testNameIsDerivedFromObject(self):
        self.assertEqual(greet_user.__command__.name, "greet-user")
        self.assertEqual(Config.Remote.__command__.name, "remote")

    def testKeywordForm(self):
        @command(name="echo", descr="repeat the input")
        def function(text):
            return text

        self.assertEqual(function.__command__.name, "echo")
        self.assertEqual(function.__command__.descr, "repeat the input")

    def testRejectsInvalidTargets(self):
        with self.assertRaises(TypeError):
            command(42)
        with self.assertRaises(TypeError):
            command(add)
        with self.assertRaises(ValueError):
            command("two words")(lambda: None)
        with self.assertRaises(TypeError):
            handler(42)


class TestFunctionFactory(TestCase):

    def setUp(self):
        self.parsers = ParserRegistry.defaults()
        self.factory = FunctionFactory()

    def testBuildsSingleExecutableNode(self):
        tree = self.factory.create(self.parsers, add)
        self.assertEqual(tree.name, "add")
        self.assertEqual(tree.aliases, frozenset({"plus"}))
        self.assertEqual([argument.name for argument in tree.arguments], ["a", "b"])
        self.assertFalse(tree.arguments[0].optional)
        self.assertTrue(tree.arguments[1].optional)
        self.assertEqual(tree.arguments[1].default, 1)
        self.assertEqual(tree.descr, "Add two integers.")
        self.assertEqual(tree.dispatch(["2", "40"]), 42)
        self.assertEqual(tree.dispatch(["2"]), 3)

    def testUnannotatedParameters(self):
        tree = self.factory.create(self.parsers, greet_user)
        self.assertEqual([argument.type for argument in tree.arguments], [str, int])
        self.assertEqual(tree.dispatch(["bob", "1"]), "hello bob")

    def testOptionalAnnotation(self):
        tree = self.factory.create(self.parsers, maybe)
        self.assertTrue(tree.arguments[0].optional)
        self.assertIsNone(tree.dispatch([]))
        self.assertEqual(tree.dispatch(["5"]), 5)

    def testDeclinesUnsupportedShapes(self):
        self.assertIsNone(self.factory.create(self.parsers, variadic))
        self.assertIsNone(self.factory.create(self.parsers, keyword))
        self.assertIsNone(self.factory.create(self.parsers, unsupported))
        self.assertIsNone(self.factory.create(self.parsers, plain))
        self.assertIsNone(self.factory.create(self.parsers, Config))


class TestClassFactory(TestCase):

    def setUp(self):
        self.parsers = ParserRegistry.defaults()
        self.factory = ClassFactory()

    def testBuildsNodeWithSubcommands(self):
        tree = self.factory.create(self.parsers, Config)
        self.assertEqual(tree.name, "config")
        self.assertEqual(tree.descr, "Manage settings.")
        self.assertEqual([child.name for child in tree.subcommands], ["set", "get", "version", "remote"])
        self.assertEqual(tree.dispatch([]), {})
        self.assertEqual(tree.dispatch(["set", "color", "blue"]), "blue")
        self.assertEqual(tree.dispatch(["get", "color"]), "blue")
        self.assertEqual(tree.dispatch(["version"]), "1.0")
        self.assertEqual(tree.dispatch(["remote", "https://example.org"]), "https://example.org")

    def testUsesGivenInstance(self):
        config = Config()
        config.store["color"] = "red"
        tree = self.factory.create(self.parsers, config)
        self.assertEqual(tree.dispatch(["get", "color"]), "red")

    def testInstanceOfClassWithConstructorArguments(self):
        self.assertIsNone(self.factory.create(self.parsers, Needs))
        self.assertEqual(self.factory.create(self.parsers, Needs(5)).dispatch([]), 5)

    def testDeclinesAmbiguousHandlers(self):
        self.assertIsNone(self.factory.create(self.parsers, Twice))

    def testDeclinesWithoutInstantiating(self):
        self.assertIsNone(self.factory.create(self.parsers, Counted))
        self.assertEqual(Counted.instances, 0)

    def testDeclinesSelfNesting(self):
        self.assertIsNone(self.factory.create(self.parsers, Loop))

    def testDuplicateSubcommandNames(self):
        with self.assertRaises(DuplicateCommandError):
            self.factory.create(self.parsers, Clash)

    def testDeclinesForeignObjects(self):
        self.assertIsNone(self.factory.create(self.parsers, add))
        self.assertIsNone(self.factory.create(self.parsers, 42))
        self.assertIsNone(self.factory.create(self.parsers, object))


class TestBuilderFactory(TestCase):

    def setUp(self):
        self.parsers = ParserRegistry.defaults()
        self.factory = BuilderFactory()

    def testBuildsTree(self):
        builder = (
            CommandBuilder("greet", "hi", descr="say hello")
            .argument("name", str)
            .argument("times", int, default=1)
            .executes(lambda name, times: " ".join([f"hello {name}"] * times))
            .then(CommandBuilder("world").executes(lambda: "hello world"))
        )
        tree = self.factory.create(self.parsers, builder)
        self.assertEqual(tree.tokens, ("greet", "hi"))
        self.assertEqual(tree.dispatch(["bob", "2"]), "hello bob hello bob")
        self.assertEqual(tree.dispatch(["world"]), "hello world")

    def testDeclinesUnknownType(self):
        builder = CommandBuilder("z").argument("value", complex)
        self.assertIsNone(self.factory.create(self.parsers, builder))

    def testDeclinesCycles(self):
        a, b = CommandBuilder("a"), CommandBuilder("b")
        a.then(b)
        b.then(a)
        self.assertIsNone(self.factory.create(self.parsers, a))

    def testArgumentOrderingIsCheckedEagerly(self):
        with self.assertRaises(ValueError):
            CommandBuilder("x").argument("rest", Remainder).argument("other", str)
        with self.assertRaises(ValueError):
            CommandBuilder("x").argument("a", int, optional=True).argument("b", int)
        with self.assertRaises(TypeError):
            CommandBuilder("x").argument("a", "int")
        with self.assertRaises(TypeError):
            CommandBuilder("x").executes(42)
        with self.assertRaises(TypeError):
            CommandBuilder("x").then("y")


class TestTreeFactory(TestCase):

    def setUp(self):
        self.parsers = ParserRegistry.defaults()
        self.factory = TreeFactory()

    def testAdoptsRootTree(self):
        tree = CommandTree("ping", callback=lambda: "pong")
        self.assertIs(self.factory.create(self.parsers, tree), tree)

    def testDeclinesAttachedTree(self):
        root = CommandTree("root")
        child = root.add(CommandTree("child"))
        self.assertIsNone(self.factory.create(self.parsers, child))

    def testDeclinesParserNotFromRegistry(self):
        foreign = CommandTree("echo", arguments=(Argument("value", int, IntegerParser()),), callback=lambda value: value)
        self.assertIsNone(self.factory.create(self.parsers, foreign))
        bound = CommandTree("echo", arguments=(Argument("value", int, self.parsers.lookup(int)),), callback=lambda value: value)
        self.assertIs(self.factory.create(self.parsers, bound), bound)

    def testDeclinesUnknownParserType(self):
        cplx = FunctionParser(lambda tokens: Parsed(complex(tokens[0]), 1), complex)
        tree = CommandTree("z", arguments=(Argument("value", complex, cplx),))
        self.assertIsNone(self.factory.create(self.parsers, tree))


class TestDeterminism(TestCase):

    def testDefaultOrder(self):
        self.assertEqual(
            [type(factory) for factory in DEFAULT_FACTORIES],
            [TreeFactory, BuilderFactory, ClassFactory, FunctionFactory],
        )

    def testRepeatedResolutionIsIdentical(self):
        parsers = ParserRegistry.defaults()
        for factory, source in ((ClassFactory(), Config), (FunctionFactory(), add)):
            self.assertEqual(
                factory.create(parsers, source).outline(),
                factory.create(parsers, source).outline(),
            )


if __name__ == '__main__':
    unittest.main()
