import io
import json
import os
import tempfile
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch

import main
from invoice_pipeline.utils.exceptions import BinaryMissingError
from invoice_pipeline.utils.logger import setup_logger

INVOICE_TEXT = "\n".join([
    "Invoice No: INV-7",
    "Qty Description Unit Price Amount",
    "Widget A 2 $5.00 $10.00",
    "Total $10.00",
])


@patch("invoice_pipeline.pipeline.OCREngine.from_config")
class TestMain(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.addCleanup(setup_logger)

    def _write(self, name: str, content: str) -> str:
        path = os.path.join(self.tmp.name, name)
        with open(path, 'w') as f:
            f.write(content)
        return path

    def _run(self, *argv: str) -> int:
        with redirect_stdout(io.StringIO()):
            return main.main(list(argv))

    def test_extracted_invoice(self, mock_from_config) -> None:
        path = self._write("invoice.txt", INVOICE_TEXT)
        output = os.path.join(self.tmp.name, "out", "result.json")

        code = self._run("--input", path, "--output", output)

        self.assertEqual(code, main.EXIT_OK)
        with open(output, encoding='utf-8') as f:
            payload = json.load(f)
        self.assertEqual(payload['status'], 'extracted_only')
        self.assertEqual(payload['extracted']['meta']['draft']['invoice_number'], 'INV-7')

    def test_no_items(self, mock_from_config) -> None:
        path = self._write("note.txt", "hello world")
        self.assertEqual(self._run("--input", path), main.EXIT_NO_ITEMS)

    def test_missing_file(self, mock_from_config) -> None:
        missing = os.path.join(self.tmp.name, "missing.pdf")
        self.assertEqual(self._run("--input", missing), main.EXIT_ERROR)

    def test_min_items_flag(self, mock_from_config) -> None:
        path = self._write("invoice.txt", INVOICE_TEXT)
        self.assertEqual(self._run("--input", path, "--min-items", "2"), main.EXIT_NO_ITEMS)

    def test_missing_toolchain(self, mock_from_config) -> None:
        mock_from_config.side_effect = BinaryMissingError("tesseract")
        path = self._write("invoice.txt", INVOICE_TEXT)

        self.assertEqual(self._run("--input", path), main.EXIT_ERROR)


class TestBuildOptions(unittest.TestCase):
    def test_only_given_options(self) -> None:
        args = main.parse_arguments(["--input", "x.pdf", "--dpi", "300", "--keep-temp"])
        self.assertEqual(main.build_options(args), {'dpi': 300, 'keep_temp': True})

    def test_render_mode_choices(self) -> None:
        with redirect_stdout(io.StringIO()), patch("sys.stderr", io.StringIO()):
            with self.assertRaises(SystemExit):
                main.parse_arguments(["--input", "x.pdf", "--render-mode", "tiff"])


if __name__ == "__main__":
    unittest.main()
