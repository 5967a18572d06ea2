import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from PyPDF2 import PdfWriter

from file_compressor.engine import ghostscript
from file_compressor.engine import pdf as pdf_engine
from file_compressor.engine.pdf import compress_pdf


def _make_pdf(path: Path, pages: int) -> None:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=72, height=72)
    with open(path, "wb") as handle:
        writer.write(handle)


class _FakeGhostscript:
    """Stands in for run_ghostscript; writes a file of a preset-specific size."""

    def __init__(self, sizes, failures=()):
        self.sizes = sizes
        self.failures = set(failures)
        self.calls = []

    def __call__(self, gs_cmd, preset, input_path, output_path, timeout):
        self.calls.append(preset.name)
        if preset.name in self.failures:
            return False, "PDF is damaged or corrupted."
        output_path.write_bytes(b"%PDF-" + b"0" * (self.sizes[preset.name] - 5))
        return True, "ok"


class TestCompressPdf(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.input_path = Path(self._td.name) / "input.pdf"
        _make_pdf(self.input_path, pages=3)
        self.original = self.input_path.read_bytes()

    def tearDown(self):
        self._td.cleanup()

    def _run(self, fake, target_bytes=None, gs_cmd="/usr/bin/gs"):
        with patch.object(ghostscript, "get_ghostscript_command", return_value=gs_cmd), \
             patch.object(ghostscript, "run_ghostscript", side_effect=fake):
            return compress_pdf(self.input_path, target_bytes, timeout_seconds=30)

    def test_first_preset_that_fits_stops_the_ladder(self):
        fake = _FakeGhostscript({"ebook": 400, "screen": 300, "low-res": 200})

        outcome = self._run(fake, target_bytes=1000)

        self.assertEqual(fake.calls, ["ebook"])
        self.assertEqual(outcome.strategy, "ebook")
        self.assertEqual(outcome.attempts, 1)
        self.assertTrue(outcome.met_target)
        self.assertEqual(len(outcome.data), 400)

    def test_ladder_escalates_until_target_met(self):
        fake = _FakeGhostscript({"ebook": 5000, "screen": 3000, "low-res": 800})

        outcome = self._run(fake, target_bytes=1000)

        self.assertEqual(fake.calls, ["ebook", "screen", "low-res"])
        self.assertEqual(outcome.strategy, "low-res")
        self.assertTrue(outcome.met_target)

    def test_unreachable_target_returns_last_successful_output(self):
        fake = _FakeGhostscript({"ebook": 5000, "screen": 3000, "low-res": 2000})

        outcome = self._run(fake, target_bytes=1000)

        self.assertEqual(outcome.attempts, 3)
        self.assertEqual(outcome.strategy, "low-res")
        self.assertEqual(len(outcome.data), 2000)
        self.assertFalse(outcome.met_target)

    def test_failed_strategy_moves_to_next(self):
        fake = _FakeGhostscript({"ebook": 5000, "screen": 900, "low-res": 800}, failures={"ebook"})

        outcome = self._run(fake, target_bytes=1000)

        self.assertEqual(fake.calls, ["ebook", "screen"])
        self.assertEqual(outcome.strategy, "screen")

    def test_last_strategy_failing_keeps_previous_output(self):
        fake = _FakeGhostscript({"ebook": 5000, "screen": 3000, "low-res": 0}, failures={"low-res"})

        outcome = self._run(fake, target_bytes=1000)

        self.assertEqual(outcome.strategy, "screen")
        self.assertEqual(len(outcome.data), 3000)

    def test_every_strategy_failing_returns_original(self):
        fake = _FakeGhostscript({}, failures={"ebook", "screen", "low-res"})

        outcome = self._run(fake, target_bytes=1000)

        self.assertEqual(outcome.data, self.original)
        self.assertEqual(outcome.strategy, pdf_engine.PASSTHROUGH)
        self.assertEqual(outcome.attempts, 3)
        self.assertFalse(outcome.degraded)

    def test_missing_renderer_passes_input_through(self):
        fake = _FakeGhostscript({"ebook": 10})

        outcome = self._run(fake, target_bytes=1000, gs_cmd=None)

        self.assertEqual(fake.calls, [])
        self.assertEqual(outcome.data, self.original)
        self.assertTrue(outcome.degraded)
        self.assertEqual(outcome.attempts, 0)

    def test_no_target_renders_once_with_default_preset(self):
        fake = _FakeGhostscript({"screen": 700})

        outcome = self._run(fake)

        self.assertEqual(fake.calls, [ghostscript.DEFAULT_PRESET.name])
        self.assertEqual(len(outcome.data), 700)
        self.assertIsNone(outcome.met_target)

    def test_no_target_failure_returns_original(self):
        fake = _FakeGhostscript({}, failures={"screen"})

        outcome = self._run(fake)

        self.assertEqual(outcome.data, self.original)
        self.assertEqual(outcome.strategy, pdf_engine.PASSTHROUGH)

    def test_page_count_is_reported(self):
        fake = _FakeGhostscript({"screen": 700})
        self.assertEqual(self._run(fake).page_count, 3)

    def test_unreadable_pdf_still_goes_to_renderer(self):
        self.input_path.write_bytes(b"%PDF-1.4 garbage")
        fake = _FakeGhostscript({"screen": 10})

        outcome = self._run(fake)

        self.assertIsNone(outcome.page_count)
        self.assertEqual(fake.calls, ["screen"])


class TestRunGhostscript(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.base = Path(self._td.name)
        self.input_path = self.base / "in.pdf"
        _make_pdf(self.input_path, pages=1)
        self.output_path = self.base / "out.pdf"

    def tearDown(self):
        self._td.cleanup()

    def test_timeout_is_a_strategy_failure(self):
        with patch("file_compressor.engine.ghostscript.subprocess.run",
                   side_effect=subprocess.TimeoutExpired(cmd="gs", timeout=1)):
            success, message = ghostscript.run_ghostscript(
                "gs", ghostscript.SCREEN, self.input_path, self.output_path, timeout=1
            )
        self.assertFalse(success)
        self.assertEqual(message, "Timeout exceeded")

    def test_spawn_failure_is_a_strategy_failure(self):
        with patch("file_compressor.engine.ghostscript.subprocess.run",
                   side_effect=FileNotFoundError("gs")):
            success, _ = ghostscript.run_ghostscript(
                "gs", ghostscript.SCREEN, self.input_path, self.output_path, timeout=1
            )
        self.assertFalse(success)

    def test_nonzero_exit_is_translated(self):
        completed = subprocess.CompletedProcess(args=[], returncode=1, stdout="", stderr="Error: /invalidfileaccess")
        with patch("file_compressor.engine.ghostscript.subprocess.run", return_value=completed):
            success, message = ghostscript.run_ghostscript(
                "gs", ghostscript.EBOOK, self.input_path, self.output_path, timeout=1
            )
        self.assertFalse(success)
        self.assertIn("password-protected", message)

    def test_command_includes_preset_and_base_flags(self):
        cmd = ghostscript.build_command("gs", ghostscript.LOW_RES, self.input_path, self.output_path)

        self.assertEqual(cmd[0], "gs")
        self.assertIn("-sDEVICE=pdfwrite", cmd)
        self.assertIn("-dColorImageResolution=50", cmd)
        self.assertIn("-dBATCH", cmd)
        self.assertEqual(cmd[-2], f"-sOutputFile={self.output_path}")
        self.assertEqual(cmd[-1], str(self.input_path))

    def test_ladder_goes_from_gentle_to_aggressive(self):
        self.assertEqual([p.name for p in ghostscript.PRESET_LADDER], ["ebook", "screen", "low-res"])

    def test_renderer_lookup_is_cached_and_reports_missing_binary(self):
        ghostscript.reset_ghostscript_probe()
        try:
            with patch("file_compressor.engine.ghostscript.shutil.which", return_value=None) as which:
                self.assertIsNone(ghostscript.get_ghostscript_command())
                self.assertIsNone(ghostscript.get_ghostscript_command())
            self.assertEqual(which.call_count, len(ghostscript.GHOSTSCRIPT_CANDIDATES))
        finally:
            ghostscript.reset_ghostscript_probe()

    def test_resolve_timeout_has_a_floor(self):
        self.assertEqual(pdf_engine.resolve_timeout(self.input_path, min_timeout=120, per_mb=10), 120.0)
