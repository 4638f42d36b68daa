"""
Parser behavioral tests (built-in parsers and the type-keyed registry).

Scope
- Validate successful parses, consumed counts and format() round-trips.
- Validate typed failures (format, overflow, choice, empty) returned, not raised.
- Validate registry rules: exact instance lookup, duplicates, freezing.

Conventions
- Test method names follow CamelCase per project convention.
- Tests use the public API exported by dendron.
"""
import enum
import unittest
from unittest import TestCase

from dendron import *


class Color(enum.Enum):
    RED = 1
    GREEN = 2


class TestBuiltinParsers(TestCase):
    """Built-in parsers: values, consumed counts and typed failures."""

    def testIntegerRoundTrip(self):
        parser = IntegerParser()
        result = parser.parse(["123"])
        self.assertEqual(result, Parsed(123, 1))
        self.assertEqual(parser.format(result.value), "123")

    def testIntegerConsumesOneToken(self):
        self.assertEqual(IntegerParser().parse(["-7", "8"]), Parsed(-7, 1))

    def testIntegerFormatFailure(self):
        result = IntegerParser().parse(["12a"])
        self.assertIsInstance(result, ParseError)
        self.assertEqual(result.reason, "format")
        self.assertEqual(result.tokens, ("12a",))
        self.assertEqual(result.code, FaultCode.UNPARSABLE_ARGUMENT)

    def testIntegerRejectsSeparators(self):
        self.assertEqual(IntegerParser().parse(["1_000"]).reason, "format")

    def testIntegerOverflow(self):
        parser = IntegerParser(8)
        self.assertEqual(parser.parse(["127"]).value, 127)
        self.assertEqual(parser.parse(["-128"]).value, -128)
        self.assertEqual(parser.parse(["128"]).reason, "overflow")
        self.assertEqual(IntegerParser().parse(["99999999999"]).reason, "overflow")

    def testLongParserWidth(self):
        self.assertEqual(LongParser().parse(["9223372036854775807"]).value, 9223372036854775807)
        self.assertEqual(LongParser().parse(["9223372036854775808"]).reason, "overflow")

    def testIntegerInvalidWidth(self):
        with self.assertRaises(ValueError):
            IntegerParser(12)
        with self.assertRaises(TypeError):
            IntegerParser(True)

    def testEmptyWindow(self):
        result = IntegerParser().parse([])
        self.assertEqual(result.reason, "empty")
        self.assertEqual(result.consumed, 0)

    def testFloat(self):
        parser = FloatParser()
        self.assertEqual(parser.parse(["1.5e3"]).value, 1500.0)
        self.assertEqual(parser.parse([".5"]).value, 0.5)
        self.assertEqual(parser.parse(["nan"]).reason, "format")
        self.assertEqual(parser.parse(["inf"]).reason, "format")
        self.assertEqual(parser.parse(["1e999"]).reason, "overflow")
        self.assertEqual(parser.format(0.1), "0.1")

    def testBoolean(self):
        parser = BooleanParser()
        self.assertIs(parser.parse(["YES"]).value, True)
        self.assertIs(parser.parse(["off"]).value, False)
        self.assertEqual(parser.parse(["maybe"]).reason, "format")
        self.assertEqual(parser.complete("t"), ["true"])
        self.assertEqual(parser.format(False), "false")

    def testString(self):
        self.assertEqual(StringParser().parse(["hello", "world"]), Parsed("hello", 1))

    def testRemainderConsumesEverything(self):
        result = RemainderParser().parse(["hello", "big", "world"])
        self.assertEqual(result, Parsed("hello big world", 3))
        self.assertIsInstance(result.value, Remainder)

    def testEnum(self):
        parser = EnumParser(Color)
        self.assertIs(parser.target, Color)
        self.assertIs(parser.parse(["red"]).value, Color.RED)
        self.assertEqual(parser.parse(["blue"]).reason, "choice")
        self.assertEqual(parser.format(Color.GREEN), "green")
        self.assertEqual(parser.complete("g"), ["green"])

    def testEnumRejectsNonEnum(self):
        with self.assertRaises(TypeError):
            EnumParser(int)

    def testParsingIsPure(self):
        parser = IntegerParser()
        self.assertEqual(parser.parse(["42"]), parser.parse(["42"]))
        self.assertEqual(parser.parse(["x"]).reason, parser.parse(["x"]).reason)

    def testParserDecorator(self):
        @parser(complex)
        def cplx(tokens):
            return Parsed(complex(tokens[0]), 1)

        self.assertIsInstance(cplx, FunctionParser)
        self.assertIs(cplx.target, complex)
        self.assertEqual(cplx.parse(["1+2j"]).value, 1 + 2j)

    def testParserDecoratorRejectsBadResult(self):
        @parser(complex)
        def broken(tokens):
            return complex(tokens[0])

        with self.assertRaises(TypeError):
            broken.parse(["1"])


class TestParserRegistry(TestCase):
    """Registry rules: exact lookups, duplicates, freezing."""

    def testLookupReturnsRegisteredInstance(self):
        registry = ParserRegistry()
        parser = StringParser()
        self.assertIs(registry.register(str, parser), parser)
        self.assertIs(registry.lookup(str), parser)
        self.assertIn(str, registry)

    def testDuplicateKeepsFirstParser(self):
        registry = ParserRegistry()
        first = IntegerParser()
        registry.register(int, first)
        with self.assertRaises(DuplicateParserError):
            registry.register(int, LongParser())
        self.assertIs(registry.lookup(int), first)

    def testUnknownTypeLooksUpNone(self):
        self.assertIsNone(ParserRegistry().lookup(complex))

    def testFrozenRegistryRejectsRegistration(self):
        registry = ParserRegistry.defaults()
        self.assertIs(registry.freeze(), registry)
        self.assertTrue(registry.frozen)
        with self.assertRaises(FrozenRegistryError):
            registry.register(Color, EnumParser(Color))
        self.assertIs(registry.freeze(), registry)
        self.assertIsNotNone(registry.lookup(int))

    def testRegisterValidatesArguments(self):
        registry = ParserRegistry()
        with self.assertRaises(TypeError):
            registry.register("int", IntegerParser())
        with self.assertRaises(TypeError):
            registry.register(int, object())

    def testDefaults(self):
        registry = ParserRegistry.defaults()
        self.assertEqual(set(registry.types), {str, Remainder, int, float, bool})
        self.assertEqual(len(registry), 5)
        self.assertEqual(set(registry), {str, Remainder, int, float, bool})

    def testConstructFromMappingOrPairs(self):
        parser = EnumParser(Color)
        self.assertIs(ParserRegistry({Color: parser}).lookup(Color), parser)
        self.assertIs(ParserRegistry([(Color, parser)]).lookup(Color), parser)


if __name__ == '__main__':
    unittest.main()
