import json
import os
import tempfile
import unittest

from invoice_pipeline.output_handler import (
    OutputHandler,
    UnifiedResult,
    build_unified_result,
    derive_status,
    error_payload,
)
from invoice_pipeline.utils.exceptions import OutputError

ITEM = {'sku': '', 'description': 'Widget', 'quantity': 1.0, 'unit_price': 2.0,
        'line_total': 2.0, 'uom': None, 'source': 'parser'}


class TestDeriveStatus(unittest.TestCase):
    def test_priority(self) -> None:
        error = {'message': 'boom', 'stack': ''}
        self.assertEqual(derive_status(error, {"id": 1}, True, 3), 'parse_error')
        self.assertEqual(derive_status(None, {"id": 1}, True, 0), 'canonical_valid')
        self.assertEqual(derive_status(None, {"id": 1}, False, 3), 'extracted_only')
        self.assertEqual(derive_status(None, None, True, 3), 'extracted_only')
        self.assertEqual(derive_status(None, None, False, 0), 'no_items')

    def test_pure(self) -> None:
        self.assertEqual(
            [derive_status(None, None, False, 2) for _ in range(3)],
            ['extracted_only'] * 3,
        )


class TestUnifiedResult(unittest.TestCase):
    def test_canonical_dropped_when_not_validated(self) -> None:
        result = build_unified_result(
            'text', canonical={'id': 1}, items=[ITEM],
            validation={'attempted': True, 'valid': False, 'errors': ['bad total']},
        )

        payload = result.to_dict()
        self.assertEqual(payload['status'], 'extracted_only')
        self.assertIsNone(payload['canonical'])
        self.assertEqual(payload['validation'], {'attempted': True, 'valid': False, 'errors': ['bad total']})

    def test_canonical_valid(self) -> None:
        result = build_unified_result(
            'pdf', canonical={'id': 1}, validation={'attempted': True, 'valid': True, 'errors': []},
        )
        self.assertEqual(result.status, 'canonical_valid')
        self.assertEqual(result.to_dict()['canonical'], {'id': 1})
        self.assertTrue(result.ok)

    def test_preview_truncated(self) -> None:
        result = build_unified_result('text', raw_text="x" * 50, preview_chars=10)

        extracted = result.to_dict()['extracted']
        self.assertEqual(extracted['raw_text_preview'], "x" * 10 + "…")
        self.assertEqual(extracted['raw_text_length'], 50)

    def test_run_ids(self) -> None:
        self.assertNotEqual(UnifiedResult('text').run_id, UnifiedResult('text').run_id)
        self.assertEqual(build_unified_result('text', run_id='abc').run_id, 'abc')

    def test_error_payload(self) -> None:
        result = build_unified_result('image', error=error_payload(KeyError(), "Traceback..."))

        self.assertEqual(result.status, 'parse_error')
        self.assertFalse(result.ok)
        self.assertEqual(result.error['message'], "KeyError")
        self.assertEqual(json.loads(result.to_json())['error']['stack'], "Traceback...")


class TestOutputHandler(unittest.TestCase):
    def test_save_single_and_list(self) -> None:
        result = build_unified_result('text', items=[ITEM], raw_text="Widget 1 2.00 2.00")

        with tempfile.TemporaryDirectory() as tmp:
            handler = OutputHandler(output_dir=tmp)
            single = handler.save_json(result, "nested/one.json")
            many = handler.save_json([result, result], "many.json")

            with open(single, encoding='utf-8') as f:
                loaded = json.load(f)
            with open(many, encoding='utf-8') as f:
                loaded_many = json.load(f)

        self.assertEqual(loaded['run_id'], result.run_id)
        self.assertEqual(loaded['extracted']['items'], [ITEM])
        self.assertEqual(len(loaded_many), 2)

    def test_unwritable_target(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            blocker = os.path.join(tmp, "file")
            with open(blocker, 'w') as f:
                f.write("x")

            with self.assertRaises(OutputError):
                OutputHandler().save_json(build_unified_result('text'), os.path.join(blocker, "out.json"))


if __name__ == "__main__":
    unittest.main()
