import unittest

from invoice_pipeline.text import (
    DateNormalizer,
    NormalizedInput,
    find_invoice_date,
    find_invoice_number,
    find_label_lines,
    find_line_end_money,
    find_po_number,
    find_totals,
    normalize_text,
    parse_money_token,
)


class TestNormalizeText(unittest.TestCase):
    def test_empty_input(self) -> None:
        self.assertEqual(normalize_text(None), ("", []))
        self.assertEqual(normalize_text(""), ("", []))
        self.assertEqual(normalize_text("   \n\n  "), ("", []))

    def test_line_endings_and_blank_runs(self) -> None:
        text, lines = normalize_text("Header\r\n\r\n\r\n\r\nWidget   2\t\t5.00   \r\nEnd")
        self.assertNotIn("\r", text)
        self.assertEqual(lines, ["Header", "", "Widget 2 5.00", "End"])

    def test_blank_lines_kept_for_indexing(self) -> None:
        _, lines = normalize_text("A\n\nB")
        self.assertEqual(lines, ["A", "", "B"])

    def test_normalized_input_is_frozen(self) -> None:
        document = NormalizedInput.from_raw("a\nb", source_type="text", meta={"k": 1})
        self.assertEqual(document.lines, ("a", "b"))
        self.assertEqual(document.line_count, 2)
        with self.assertRaises(Exception):
            document.text = "changed"


class TestMoneyTokens(unittest.TestCase):
    def test_examples(self) -> None:
        self.assertEqual(parse_money_token("$1,234.56"), 1234.56)
        self.assertEqual(parse_money_token("(12.34)"), -12.34)
        self.assertIsNone(parse_money_token("abc"))
        self.assertIsNone(parse_money_token("12.345.67"))

    def test_signs_and_credit_suffix(self) -> None:
        self.assertEqual(parse_money_token("-5"), -5.0)
        self.assertEqual(parse_money_token("45.00CR"), -45.0)
        self.assertEqual(parse_money_token("45.00 cr"), -45.0)

    def test_not_an_amount_is_none_not_zero(self) -> None:
        for token in ["", None, "$", "()", "1.23456", "12a"]:
            self.assertIsNone(parse_money_token(token), token)

    def test_line_end_money(self) -> None:
        found = find_line_end_money("Widget 2 5.00 10.00")
        self.assertEqual(found.value, 10.0)
        self.assertEqual(found.token, "10.00")
        self.assertEqual(found.idx_from_end, 0)

        found = find_line_end_money("Total 99.50 USD")
        self.assertEqual(found.value, 99.5)
        self.assertEqual(found.idx_from_end, 1)

    def test_line_end_money_none(self) -> None:
        self.assertIsNone(find_line_end_money("Thank you for your business"))
        self.assertIsNone(find_line_end_money(""))


class TestAnchors(unittest.TestCase):
    LINES = [
        "ACME SUPPLY CO",
        "Invoice Notes: deliver to dock",
        "Invoice No: INV-2024-001",
        "PO Number: 45-1234",
        "Date: 01/15/2024",
        "Widget 2 5.00 10.00",
        "Subtotal $10.00",
        "Sales Tax $0.80",
        "Total $10.80",
    ]

    def test_header_fields(self) -> None:
        self.assertEqual(find_invoice_number(self.LINES), "INV-2024-001")
        self.assertEqual(find_po_number(self.LINES), "45-1234")
        self.assertEqual(find_invoice_date(self.LINES), "01/15/2024")

    def test_header_window(self) -> None:
        self.assertIsNone(find_invoice_number(self.LINES, max_lines=2))

    def test_totals_block(self) -> None:
        block = find_totals(self.LINES)
        self.assertEqual(block.subtotal, 10.0)
        self.assertEqual(block.tax, 0.8)
        self.assertEqual(block.total, 10.8)
        self.assertEqual(block.total_line, 8)
        self.assertTrue(block.has_total)

    def test_total_excludes_subtotal(self) -> None:
        block = find_totals(["Subtotal 20.00"])
        self.assertEqual(block.subtotal, 20.0)
        self.assertIsNone(block.total)

    def test_label_lines(self) -> None:
        labels = find_label_lines(self.LINES)
        self.assertEqual(labels.subtotals, [6])
        self.assertEqual(labels.totals, [8])


class TestDateNormalizer(unittest.TestCase):
    def test_formats(self) -> None:
        normalizer = DateNormalizer()
        self.assertEqual(normalizer.normalize("01/15/2024"), "2024-01-15")
        self.assertEqual(normalizer.normalize("January 5, 2024"), "2024-01-05")
        self.assertEqual(normalizer.normalize("Jan 5th, 2024"), "2024-01-05")

    def test_unparseable(self) -> None:
        normalizer = DateNormalizer()
        self.assertIsNone(normalizer.normalize(None))
        self.assertIsNone(normalizer.normalize("pending"))


if __name__ == "__main__":
    unittest.main()
