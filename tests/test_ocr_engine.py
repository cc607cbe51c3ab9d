import os
import tempfile
import threading
import time
import unittest
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import pytesseract
from pdf2image.exceptions import PDFPageCountError, PDFPopplerTimeoutError
from PIL import Image

from invoice_pipeline.input_handler import ImageVariant, PipelineOptions
from invoice_pipeline.ocr_engine import OCREngine, ResolvedBinaries, TesseractBackend, resolve_binaries, score_ocr_text
from invoice_pipeline.utils.exceptions import BinaryMissingError, PageOCRError, RenderFailureError

BINARIES = ResolvedBinaries('/usr/bin/tesseract', '/usr/bin/pdftoppm', '/usr/bin/pdfinfo')

GOOD_TEXT = "Invoice 1001 Date 01/02/2024 Total $12.00 Subtotal $10.00\n" * 10


def fake_render(page_count):
    """convert_from_path stand-in writing `page_count` PNGs into output_folder."""
    def render(pdf_path, **kwargs):
        paths = []
        for page in range(1, min(page_count, kwargs['last_page']) + 1):
            path = os.path.join(kwargs['output_folder'], f"page-{page}.png")
            Image.new('L', (20, 20), color=255).save(path)
            paths.append(path)
        return paths
    return render


def page_text(image, lang="eng", timeout=0, label="image"):
    return f"text of {label}"


class TestScoreOcrText(unittest.TestCase):
    def test_short_text_scores_zero(self) -> None:
        self.assertEqual(score_ocr_text(""), 0.0)
        self.assertEqual(score_ocr_text("Total 1", 1.0), 0.0)

    def test_invoice_text_scores_high(self) -> None:
        self.assertAlmostEqual(score_ocr_text(GOOD_TEXT, 0.95), 0.885, places=3)

    def test_garbage_scores_low(self) -> None:
        self.assertLess(score_ocr_text("~~~~~~~~~~ ##### |||||", 0.9), 0.1)


class TestPdfOcr(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = OCREngine(binaries=BINARIES)
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    @patch("invoice_pipeline.ocr_engine.engine.convert_from_path")
    def test_pages_in_order_and_temp_removed(self, mock_convert) -> None:
        mock_convert.side_effect = fake_render(5)

        def slow_first_page(image, lang="eng", timeout=0, label="image"):
            if label == "page 1":
                time.sleep(0.05)
            return page_text(image, lang, timeout, label)

        options = PipelineOptions(max_pages=3, concurrency=3, tmp_dir=self.tmp.name)
        with patch.object(self.engine.backend, 'get_raw_text', side_effect=slow_first_page):
            result = self.engine.ocr_pdf(b"%PDF-1.7", options)

        self.assertEqual(result.text, "text of page 1\ntext of page 2\ntext of page 3")
        self.assertEqual([p.page for p in result.pages], [1, 2, 3])
        self.assertEqual(os.listdir(self.tmp.name), [])

        kwargs = mock_convert.call_args.kwargs
        self.assertEqual(kwargs['last_page'], 3)
        self.assertEqual(kwargs['fmt'], 'png')
        self.assertEqual(kwargs['poppler_path'], '/usr/bin')

    @patch("invoice_pipeline.ocr_engine.engine.convert_from_path")
    def test_keep_temp(self, mock_convert) -> None:
        mock_convert.side_effect = fake_render(1)
        options = PipelineOptions(keep_temp=True, render_mode='gray', tmp_dir=self.tmp.name)

        with patch.object(self.engine.backend, 'get_raw_text', side_effect=page_text):
            result = self.engine.ocr_pdf(b"%PDF-1.7", options)

        self.assertTrue(os.path.isdir(result.temp_dir))
        self.assertTrue(os.path.isfile(os.path.join(result.temp_dir, "input.pdf")))
        self.assertEqual(result.to_dict()['temp_dir'], result.temp_dir)
        self.assertTrue(mock_convert.call_args.kwargs['grayscale'])

    @patch("invoice_pipeline.ocr_engine.engine.convert_from_path")
    def test_failed_page_is_recorded(self, mock_convert) -> None:
        mock_convert.side_effect = fake_render(2)

        def fail_second(image, lang="eng", timeout=0, label="image"):
            if label == "page 2":
                raise PageOCRError(label, "tesseract timed out")
            return page_text(image, lang, timeout, label)

        with patch.object(self.engine.backend, 'get_raw_text', side_effect=fail_second):
            result = self.engine.ocr_pdf(b"%PDF-1.7", PipelineOptions(tmp_dir=self.tmp.name))

        self.assertEqual(result.text, "text of page 1")
        self.assertEqual(result.errors, ["page 2: tesseract timed out"])
        self.assertEqual(result.page_count, 2)

    @patch("invoice_pipeline.ocr_engine.engine.convert_from_path")
    def test_unexpected_page_error_is_recorded(self, mock_convert) -> None:
        mock_convert.side_effect = fake_render(3)

        def explode_second(image, lang="eng", timeout=0, label="image"):
            if label == "page 2":
                raise Image.DecompressionBombError("too many pixels")
            return page_text(image, lang, timeout, label)

        options = PipelineOptions(max_pages=3, tmp_dir=self.tmp.name)
        with patch.object(self.engine.backend, 'get_raw_text', side_effect=explode_second):
            result = self.engine.ocr_pdf(b"%PDF-1.7", options)

        self.assertEqual([p.page for p in result.pages], [1, 2, 3])
        self.assertEqual(result.pages[1].error, "too many pixels")
        self.assertEqual(result.text, "text of page 1\n\ntext of page 3")
        self.assertEqual(result.errors, ["page 2: too many pixels"])

    @patch("invoice_pipeline.ocr_engine.engine.convert_from_path")
    def test_concurrency_bound(self, mock_convert) -> None:
        mock_convert.side_effect = fake_render(4)
        lock = threading.Lock()
        state = {'running': 0, 'peak': 0}

        def tracked(image, lang="eng", timeout=0, label="image"):
            with lock:
                state['running'] += 1
                state['peak'] = max(state['peak'], state['running'])
            time.sleep(0.01)
            with lock:
                state['running'] -= 1
            return page_text(image, lang, timeout, label)

        options = PipelineOptions(max_pages=4, concurrency=2, tmp_dir=self.tmp.name)
        with patch("invoice_pipeline.ocr_engine.engine.ThreadPoolExecutor", wraps=ThreadPoolExecutor) as pool, \
                patch.object(self.engine.backend, 'get_raw_text', side_effect=tracked):
            self.engine.ocr_pdf(b"%PDF-1.7", options)

        pool.assert_called_once_with(max_workers=2)
        self.assertLessEqual(state['peak'], 2)

    @patch("invoice_pipeline.ocr_engine.engine.convert_from_path")
    def test_render_failure_cleans_up(self, mock_convert) -> None:
        mock_convert.side_effect = PDFPageCountError("Unable to get page count")

        with self.assertRaises(RenderFailureError) as ctx:
            self.engine.ocr_pdf(b"not a pdf", PipelineOptions(tmp_dir=self.tmp.name))

        self.assertFalse(ctx.exception.details['timed_out'])
        self.assertEqual(os.listdir(self.tmp.name), [])

    @patch("invoice_pipeline.ocr_engine.engine.convert_from_path")
    def test_render_timeout(self, mock_convert) -> None:
        mock_convert.side_effect = PDFPopplerTimeoutError("Run poppler timeout.")

        with self.assertRaises(RenderFailureError) as ctx:
            self.engine.ocr_pdf(b"%PDF-1.7", PipelineOptions(tmp_dir=self.tmp.name))

        self.assertTrue(ctx.exception.details['timed_out'])

    @patch("invoice_pipeline.ocr_engine.engine.convert_from_path", return_value=[])
    def test_no_pages_rendered(self, mock_convert) -> None:
        with self.assertRaises(RenderFailureError):
            self.engine.ocr_pdf(b"%PDF-1.7", PipelineOptions(tmp_dir=self.tmp.name))


class TestVariantOcr(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = OCREngine(binaries=BINARIES)
        image = Image.new('L', (10, 10))
        self.variants = [
            ImageVariant("standard", image),
            ImageVariant("high_contrast", image),
            ImageVariant("receipt_mode", image),
        ]

    def test_early_exit(self) -> None:
        mock_extract = MagicMock(side_effect=[("garbled ~~~~~", 30.0), (GOOD_TEXT, 95.0), ("unused", 99.0)])

        with patch.object(self.engine.backend, 'extract_with_confidence', mock_extract):
            run = self.engine.ocr_variants(self.variants)

        self.assertEqual(mock_extract.call_count, 2)
        self.assertTrue(run.early_exit)
        self.assertEqual(run.best_variant, "high_contrast")
        self.assertEqual(run.text, GOOD_TEXT)
        self.assertEqual(run.confidence, 95.0)

    def test_best_of_all_without_early_exit(self) -> None:
        mock_extract = MagicMock(side_effect=[
            PageOCRError("variant standard", "timeout"),
            ("Total 12.00 for the order", 60.0),
            ("Tot 1", 80.0),
        ])

        with patch.object(self.engine.backend, 'extract_with_confidence', mock_extract):
            run = self.engine.ocr_variants(self.variants)

        self.assertFalse(run.early_exit)
        self.assertEqual(run.best_variant, "high_contrast")
        self.assertEqual(len(run.attempts), 3)
        self.assertEqual(run.attempts[0].error, "timeout")

    def test_all_failed(self) -> None:
        mock_extract = MagicMock(side_effect=PageOCRError("variant", "boom"))

        with patch.object(self.engine.backend, 'extract_with_confidence', mock_extract):
            run = self.engine.ocr_variants(self.variants)

        self.assertIsNone(run.best_variant)
        self.assertEqual(run.text, "")


class TestTesseractBackend(unittest.TestCase):
    def test_parse_output_groups_lines(self) -> None:
        data = {
            'text': ['Invoice', '1001', '', 'Total', '12.00'],
            'conf': ['90', '80', '-1', '70', 'x'],
            'block_num': [1, 1, 1, 1, 1],
            'par_num': [1, 1, 1, 1, 1],
            'line_num': [1, 1, 1, 2, 2],
        }

        text, confidences = TesseractBackend._parse_tesseract_output(data)

        self.assertEqual(text, "Invoice 1001\nTotal 12.00")
        self.assertEqual(confidences, [90.0, 80.0, 70.0])

    @patch("invoice_pipeline.ocr_engine.tesseract_backend.pytesseract.image_to_string")
    def test_failure_becomes_page_error(self, mock_image_to_string) -> None:
        mock_image_to_string.side_effect = RuntimeError("Tesseract process timeout")

        with self.assertRaises(PageOCRError) as ctx:
            TesseractBackend().get_raw_text(Image.new('L', (5, 5)), label="page 3")

        self.assertEqual(ctx.exception.details['page'], "page 3")

    @patch("invoice_pipeline.ocr_engine.tesseract_backend.pytesseract.image_to_string")
    def test_config_string(self, mock_image_to_string) -> None:
        mock_image_to_string.return_value = "  hello \n"

        text = TesseractBackend(psm=4, oem=1).get_raw_text(Image.new('L', (5, 5)), lang="deu", timeout=9)

        self.assertEqual(text, "hello")
        kwargs = mock_image_to_string.call_args.kwargs
        self.assertEqual(kwargs['config'], "--psm 4 --oem 1")
        self.assertEqual((kwargs['lang'], kwargs['timeout']), ("deu", 9))

    def test_sets_tesseract_cmd(self) -> None:
        TesseractBackend("/opt/tesseract/bin/tesseract")
        self.addCleanup(setattr, pytesseract.pytesseract, 'tesseract_cmd', 'tesseract')
        self.assertEqual(pytesseract.pytesseract.tesseract_cmd, "/opt/tesseract/bin/tesseract")

    @patch.object(pytesseract.pytesseract, 'tesseract_cmd', "/usr/bin/tesseract")
    def test_replacing_binary_warns(self) -> None:
        with self.assertLogs("invoice_pipeline.ocr_engine.tesseract_backend", level="WARNING") as captured:
            TesseractBackend("/opt/tesseract/bin/tesseract")

        self.assertIn("process-wide", captured.output[0])
        self.assertEqual(pytesseract.pytesseract.tesseract_cmd, "/opt/tesseract/bin/tesseract")


class TestResolveBinaries(unittest.TestCase):
    @patch("invoice_pipeline.ocr_engine.binaries.os.access", return_value=True)
    @patch("invoice_pipeline.ocr_engine.binaries.os.path.isfile", return_value=True)
    @patch("invoice_pipeline.ocr_engine.binaries.shutil.which", side_effect=lambda name: f"/usr/local/bin/{name}")
    def test_resolved(self, mock_which, mock_isfile, mock_access) -> None:
        binaries = resolve_binaries()

        self.assertEqual(binaries.tesseract, "/usr/local/bin/tesseract")
        self.assertEqual(binaries.pdfinfo, "/usr/local/bin/pdfinfo")
        self.assertEqual(binaries.poppler_path, "/usr/local/bin")

    @patch("invoice_pipeline.ocr_engine.binaries.os.path.isfile", return_value=False)
    @patch("invoice_pipeline.ocr_engine.binaries.shutil.which", return_value=None)
    def test_missing(self, mock_which, mock_isfile) -> None:
        with self.assertRaises(BinaryMissingError) as ctx:
            resolve_binaries(fallback_dirs=['/opt/homebrew/bin'])

        self.assertEqual(ctx.exception.details['binary'], 'tesseract')
        self.assertIn('/opt/homebrew/bin/tesseract', ctx.exception.details['searched'])

    @patch("invoice_pipeline.ocr_engine.binaries.os.path.isfile", return_value=False)
    @patch("invoice_pipeline.ocr_engine.binaries.shutil.which", side_effect=lambda name: f"/usr/bin/{name}")
    def test_missing_pdfinfo(self, mock_which, mock_isfile) -> None:
        with self.assertRaises(BinaryMissingError) as ctx:
            resolve_binaries()
        self.assertEqual(ctx.exception.details['binary'], 'pdfinfo')

    def test_engine_construction_reports_missing_toolchain(self) -> None:
        with patch("invoice_pipeline.ocr_engine.engine.resolve_binaries",
                   side_effect=BinaryMissingError("tesseract")):
            with self.assertRaises(BinaryMissingError):
                OCREngine()


if __name__ == "__main__":
    unittest.main()
