import unittest

from invoice_pipeline.parsers import (
    LineItem,
    MatchResult,
    ParseAttemptResult,
    ParserPlugin,
    ParserRegistry,
    ParserSelector,
    default_plugins,
    normalize_score,
)
from invoice_pipeline.parsers.selector import build_and_validate
from invoice_pipeline.text import NormalizedInput


class StubPlugin(ParserPlugin):
    """Plugin with a fixed score and a fixed number of valid items."""

    def __init__(self, plugin_id, score=50.0, items=0, score_scale=100.0,
                 match_error=None, parse_error=None):
        self.plugin_id = plugin_id
        self.score = score
        self.items = items
        self.score_scale = score_scale
        self.match_error = match_error
        self.parse_error = parse_error
        self.parse_calls = 0

    def match(self, document):
        if self.match_error:
            raise self.match_error
        return MatchResult(score=self.score, reasons=[f"stub:{self.plugin_id}"])

    def parse(self, document):
        self.parse_calls += 1
        if self.parse_error:
            raise self.parse_error
        return ParseAttemptResult(
            line_items=[LineItem(f"Item {i}", 1.0, 2.0, 2.0) for i in range(self.items)],
            confidence=70.0,
        )


DOCUMENT = NormalizedInput.from_raw("anything")


class TestNormalizeScore(unittest.TestCase):
    def test_scales_and_clamps(self) -> None:
        self.assertEqual(normalize_score(0.8, 1.0), 80.0)
        self.assertEqual(normalize_score(55, 100.0), 55.0)
        self.assertEqual(normalize_score(250, 100.0), 100.0)
        self.assertEqual(normalize_score(-3, 100.0), 0.0)

    def test_non_numeric(self) -> None:
        self.assertEqual(normalize_score(None, 100.0), 0.0)
        self.assertEqual(normalize_score("high", 100.0), 0.0)
        self.assertEqual(normalize_score(float("inf"), 100.0), 0.0)


class TestParserRegistry(unittest.TestCase):
    def test_register_rejects_duplicates_and_non_plugins(self) -> None:
        registry = ParserRegistry([StubPlugin("a")])
        with self.assertRaises(ValueError):
            registry.register(StubPlugin("a"))
        with self.assertRaises(TypeError):
            registry.register(object())
        self.assertEqual(len(registry), 1)

    def test_ties_keep_registration_order(self) -> None:
        registry = ParserRegistry([
            StubPlugin("first", 40),
            StubPlugin("second", 60),
            StubPlugin("third", 40),
            StubPlugin("fourth", 60),
        ])

        ranked = registry.rank(DOCUMENT)

        self.assertEqual([c.plugin_id for c in ranked], ["second", "fourth", "first", "third"])

    def test_fractional_scale_is_normalized(self) -> None:
        registry = ParserRegistry([StubPlugin("frac", 0.9, score_scale=1.0), StubPlugin("whole", 80)])

        ranked = registry.rank(DOCUMENT)

        self.assertEqual(ranked[0].plugin_id, "frac")
        self.assertAlmostEqual(ranked[0].match_score, 90.0)

    def test_match_error_scores_zero(self) -> None:
        registry = ParserRegistry([
            StubPlugin("broken", match_error=RuntimeError("boom")),
            StubPlugin("fine", 10),
        ])

        ranked = registry.rank(DOCUMENT)

        self.assertEqual(ranked[-1].plugin_id, "broken")
        self.assertEqual(ranked[-1].match_score, 0.0)
        self.assertEqual(ranked[-1].reasons, ["match_error:boom"])

    def test_unregister(self) -> None:
        registry = ParserRegistry(default_plugins())
        registry.unregister("receipt-v1")
        self.assertNotIn("receipt-v1", [p.plugin_id for p in registry])


class TestParserSelector(unittest.TestCase):
    def test_empty_text_selects_nothing(self) -> None:
        selector = ParserSelector(ParserRegistry(default_plugins()))

        result = selector.select(NormalizedInput.from_raw(""))

        self.assertFalse(result.ok)
        self.assertEqual(result.items, [])
        self.assertEqual(result.parser_used, "none")
        self.assertTrue(result.attempts)
        self.assertTrue(all(a['note'] == "too_few_items" for a in result.attempts))
        self.assertEqual(result.summary['lines_preview'], [])

    def test_parse_error_then_next_plugin(self) -> None:
        selector = ParserSelector(ParserRegistry([
            StubPlugin("raises", 90, parse_error=ValueError("bad layout")),
            StubPlugin("works", 50, items=2),
        ]))

        result = selector.select(DOCUMENT)

        self.assertTrue(result.ok)
        self.assertEqual(result.parser_used, "works")
        first, second = result.attempts
        self.assertEqual(first['note'], "parse_error")
        self.assertEqual(first['error'], "bad layout")
        self.assertIn("ValueError", first['stack'])
        self.assertEqual(second['note'], "accepted")
        self.assertEqual(len(result.items), 2)
        self.assertIsNone(result.lines_preview)

    def test_only_top_n_attempted(self) -> None:
        fourth = StubPlugin("fourth", 10, items=5)
        selector = ParserSelector(ParserRegistry([
            StubPlugin("a", 90), StubPlugin("b", 80), StubPlugin("c", 70), fourth,
        ]), top_n=3)

        result = selector.select(DOCUMENT)

        self.assertFalse(result.ok)
        self.assertEqual(len(result.attempts), 3)
        self.assertEqual(fourth.parse_calls, 0)
        self.assertEqual(result.selected['id'], "a")

    def test_min_items(self) -> None:
        selector = ParserSelector(ParserRegistry([StubPlugin("two", items=2)]), min_items=3)
        result = selector.select(DOCUMENT)
        self.assertFalse(result.ok)
        self.assertEqual(result.attempts[0]['count'], 2)

    def test_validated_ok(self) -> None:
        built = []
        selector = ParserSelector(
            ParserRegistry([StubPlugin("works", items=1)]),
            build_canonical=lambda draft: built.append(draft) or {"canonical": True},
            validate=lambda canonical: {"ok": True, "errors": []},
        )

        result = selector.select(DOCUMENT)

        self.assertTrue(result.ok)
        self.assertEqual(result.attempts[0]['note'], "validated_ok")
        self.assertEqual(result.validation.canonical, {"canonical": True})
        self.assertEqual(len(built[0]['line_items']), 1)

    def test_validate_failed_falls_back_to_first(self) -> None:
        selector = ParserSelector(
            ParserRegistry([StubPlugin("first", 90, items=1), StubPlugin("second", 50, items=3)]),
            build_canonical=lambda draft: draft,
            validate=lambda canonical: {"ok": False, "errors": ["total mismatch"]},
        )

        result = selector.select(DOCUMENT)

        self.assertFalse(result.ok)
        self.assertEqual(result.parser_used, "first")
        self.assertEqual(len(result.items), 1)
        self.assertEqual([a['note'] for a in result.attempts], ["validate_failed", "validate_failed"])
        self.assertEqual(result.validation.errors, ["total mismatch"])
        self.assertIsNotNone(result.lines_preview)


class TestBuildAndValidate(unittest.TestCase):
    def test_collaborator_exception_is_invalid(self) -> None:
        def explode(draft):
            raise KeyError("invoice_number")

        outcome = build_and_validate(ParseAttemptResult(), explode, lambda c: {"ok": True})

        self.assertFalse(outcome.valid)
        self.assertEqual(len(outcome.errors), 1)

    def test_object_report(self) -> None:
        class Report:
            ok = False
            errors = ["missing date"]

        outcome = build_and_validate(ParseAttemptResult(), lambda d: d, lambda c: Report())

        self.assertFalse(outcome.valid)
        self.assertEqual(outcome.errors, ["missing date"])


if __name__ == "__main__":
    unittest.main()
