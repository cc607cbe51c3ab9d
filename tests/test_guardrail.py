import unittest

from invoice_pipeline.parsers import InvoiceDraft, LineItem, ParseAttemptResult, ReceiptParser, ScanInfo
from invoice_pipeline.postprocessor import DocumentScanGuardrail, LineItemValidator, TotalsValidator
from invoice_pipeline.text import NormalizedInput

MULTI_SECTION_LINES = [
    "Item Price Qty Line Total",
    "Burger $10.00 1 $10.00",
    "Fries $20.00 1 $20.00",
    "SUBTOTAL $30",
    "Salad $8.00 1 $8.00",
    "Dessert $12.00 1 $12.00",
    "INVOICE TOTAL $50",
]


class TestScanCompleteness(unittest.TestCase):
    def setUp(self) -> None:
        self.guardrail = DocumentScanGuardrail()

    def test_partial_scan(self) -> None:
        attempt = ParseAttemptResult(scan=ScanInfo(last_parsed_line=3))
        coverage = self.guardrail.check_scan_completeness(attempt, MULTI_SECTION_LINES)

        self.assertEqual(coverage.scan_completeness, 43)
        self.assertFalse(coverage.fully_scanned)
        self.assertTrue(any("43%" in w for w in coverage.warnings))

    def test_full_scan(self) -> None:
        attempt = ParseAttemptResult(scan=ScanInfo(last_parsed_line=len(MULTI_SECTION_LINES)))
        coverage = self.guardrail.check_scan_completeness(attempt, MULTI_SECTION_LINES)

        self.assertEqual(coverage.scan_completeness, 100)
        self.assertTrue(coverage.fully_scanned)

    def test_no_tracking_counts_as_complete(self) -> None:
        coverage = self.guardrail.check_scan_completeness(ParseAttemptResult(), MULTI_SECTION_LINES)
        self.assertEqual(coverage.scan_completeness, 100)

    def test_empty_document(self) -> None:
        attempt = ParseAttemptResult(scan=ScanInfo(last_parsed_line=0))
        self.assertEqual(self.guardrail.check_scan_completeness(attempt, []).scan_completeness, 100)


class TestGuardrailApply(unittest.TestCase):
    def setUp(self) -> None:
        self.guardrail = DocumentScanGuardrail()

    def test_multi_section_receipt(self) -> None:
        document = NormalizedInput.from_raw("\n".join(MULTI_SECTION_LINES))
        attempt = ReceiptParser().parse(document)

        report = self.guardrail.apply(attempt, document.lines)

        self.assertTrue(report.applied)
        self.assertEqual(report.scan_completeness, 43)
        self.assertIn(3, report.found_subtotals)
        self.assertEqual([i.description for i in report.extended_items], ["Salad", "Dessert"])
        self.assertTrue(all(i.source == "extended_scan" for i in report.extended_items))
        self.assertEqual(len(report.items), 4)
        self.assertEqual(report.total, 50.0)
        self.assertTrue(report.changed)
        self.assertTrue(report.review.needs_review)
        self.assertEqual(report.to_dict()['additional_items_found'], 2)

    def test_items_only_grow(self) -> None:
        attempt = ParseAttemptResult(
            line_items=[LineItem("Burger", 1.0, 10.0, 10.0), LineItem("Fries", 1.0, 20.0, 20.0)],
            scan=ScanInfo(last_parsed_line=1),
        )

        report = self.guardrail.apply(attempt, MULTI_SECTION_LINES)

        self.assertGreaterEqual(len(report.items), len(attempt.valid_items))
        self.assertEqual(report.items[:2], attempt.valid_items)

    def test_full_scan_not_applied(self) -> None:
        attempt = ParseAttemptResult(
            draft=InvoiceDraft(total=50.0),
            line_items=[LineItem("Burger", 1.0, 10.0, 10.0)],
            confidence=90.0,
            scan=ScanInfo(last_parsed_line=len(MULTI_SECTION_LINES)),
        )

        report = self.guardrail.apply(attempt, MULTI_SECTION_LINES)

        self.assertFalse(report.applied)
        self.assertEqual(report.scan_completeness, 100)
        self.assertEqual(report.extended_items, [])
        self.assertFalse(report.changed)

    def test_internal_failure_never_raises(self) -> None:
        attempt = ParseAttemptResult(
            draft=InvoiceDraft(total=12.0),
            line_items=[LineItem("Burger", 1.0, 10.0, 10.0)],
        )
        attempt.scan = "not scan info"

        report = self.guardrail.apply(attempt, MULTI_SECTION_LINES)

        self.assertFalse(report.applied)
        self.assertEqual(len(report.items), 1)
        self.assertEqual(report.total, 12.0)
        self.assertEqual(len(report.warnings), 1)


class TestExtendScan(unittest.TestCase):
    def test_totals_and_tax_are_not_items(self) -> None:
        lines = [
            "Hex bolt 3 2.00 6.00",
            "Sales Tax 0.48",
            "Balance Due 6.48",
            "ab 1.00",
        ]

        extended = DocumentScanGuardrail().extend_scan(lines, 0)

        self.assertEqual(len(extended.items), 1)
        self.assertEqual(extended.items[0].quantity, 3.0)
        self.assertEqual(extended.items[0].description, "Hex bolt")
        self.assertEqual([t['value'] for t in extended.totals], [6.48])


class TestValidateInvoiceTotal(unittest.TestCase):
    LINES = ["Subtotal 30.00", "Total 45.00", "Amount Due 50.00"]

    def test_adopts_larger_by_label_priority(self) -> None:
        validation = DocumentScanGuardrail().validate_invoice_total(40.0, self.LINES)

        self.assertTrue(validation.adopted)
        self.assertEqual(validation.total, 50.0)
        self.assertEqual(validation.source, 'TOTAL_USD_LABEL')
        self.assertEqual(validation.candidates_found, 2)

    def test_keeps_larger_current_total(self) -> None:
        validation = DocumentScanGuardrail().validate_invoice_total(60.0, self.LINES)

        self.assertFalse(validation.adopted)
        self.assertEqual(validation.total, 60.0)

    def test_section_totals_ignored(self) -> None:
        validation = DocumentScanGuardrail().validate_invoice_total(None, ["Total Dept 4 99.00"])
        self.assertEqual(validation.candidates_found, 0)
        self.assertIsNone(validation.total)


class TestValidators(unittest.TestCase):
    def test_math_ratio(self) -> None:
        validator = LineItemValidator()
        self.assertIsNone(validator.math_ratio([]))
        ratio = validator.math_ratio([LineItem("a b", 2.0, 5.0, 10.0), LineItem("c d", 2.0, 5.0, 11.0)])
        self.assertEqual(ratio, 0.5)

    def test_validate_item_message(self) -> None:
        ok, message = LineItemValidator().validate_item(LineItem("Widget", 2.0, 5.0, 12.0))
        self.assertFalse(ok)
        self.assertIn("10.00", message)

    def test_totals_reconciliation(self) -> None:
        items = [LineItem("Widget", 2.0, 5.0, 10.0)]

        matching = TotalsValidator().validate(items, InvoiceDraft(subtotal=10.0, total=10.8))
        self.assertEqual(matching.warnings, [])
        self.assertEqual(matching.metrics['items_sum'], 10.0)

        mismatched = TotalsValidator().validate(items, InvoiceDraft(total=25.0, tax=1.0))
        self.assertEqual(len(mismatched.warnings), 1)
        self.assertTrue(mismatched.is_valid)


if __name__ == "__main__":
    unittest.main()
