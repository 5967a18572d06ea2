"""Size-targeted PDF compression using a Ghostscript preset ladder."""

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PyPDF2 import PdfReader

from file_compressor.core.utils import get_file_size_mb
from file_compressor.engine import ghostscript

logger = logging.getLogger(__name__)

PASSTHROUGH = "passthrough"
DEFAULT_MIN_TIMEOUT_SECONDS = 120
DEFAULT_TIMEOUT_PER_MB = 10.0


@dataclass(frozen=True)
class PdfCompressionOutcome:
    data: bytes
    strategy: str
    attempts: int
    met_target: Optional[bool]
    degraded: bool = False
    page_count: Optional[int] = None

    @property
    def size_bytes(self) -> int:
        return len(self.data)


def read_page_count(input_path: Path) -> Optional[int]:
    """Best-effort page count; Ghostscript may still cope with files PyPDF2 rejects."""
    try:
        with open(input_path, 'rb') as f:
            reader = PdfReader(f, strict=False)
            if reader.is_encrypted:
                try:
                    reader.decrypt("")
                    logger.info(f"{input_path.name} flagged encrypted; attempted empty password and continuing.")
                except Exception as de:
                    logger.warning(f"{input_path.name} flagged encrypted; decrypt attempt failed ({de}), continuing anyway.")
            return len(reader.pages)
    except Exception as e:
        logger.warning(f"PDF pre-validation warning (will continue): {e}")
        return None


def resolve_timeout(
    input_path: Path,
    min_timeout: float = DEFAULT_MIN_TIMEOUT_SECONDS,
    per_mb: float = DEFAULT_TIMEOUT_PER_MB,
) -> float:
    return max(float(min_timeout), get_file_size_mb(input_path) * per_mb)


def _met(size: int, target_bytes: Optional[int]) -> Optional[bool]:
    if not target_bytes:
        return None
    return size <= target_bytes


def compress_pdf(
    input_path: Path,
    target_bytes: Optional[int] = None,
    timeout_seconds: Optional[float] = None,
) -> PdfCompressionOutcome:
    """Re-render a PDF, optionally walking the preset ladder to hit ``target_bytes``.

    Never raises for renderer problems: a missing renderer, a failed preset
    or a timeout all fall back to the next option, ending with the original
    bytes unchanged.
    """
    input_path = Path(input_path)
    original = input_path.read_bytes()
    page_count = read_page_count(input_path)

    gs_cmd = ghostscript.get_ghostscript_command()
    if not gs_cmd:
        logger.warning(f"[pdf] Ghostscript unavailable; passing {input_path.name} through unchanged (degraded)")
        return PdfCompressionOutcome(
            data=original,
            strategy=PASSTHROUGH,
            attempts=0,
            met_target=_met(len(original), target_bytes),
            degraded=True,
            page_count=page_count,
        )

    timeout = timeout_seconds if timeout_seconds is not None else resolve_timeout(input_path)

    with tempfile.TemporaryDirectory(prefix="pdf-render-") as scratch:
        scratch_dir = Path(scratch)

        if not target_bytes:
            output_path = scratch_dir / f"{ghostscript.DEFAULT_PRESET.name}.pdf"
            success, message = ghostscript.run_ghostscript(
                gs_cmd, ghostscript.DEFAULT_PRESET, input_path, output_path, timeout
            )
            if success:
                data = output_path.read_bytes()
                logger.info(f"[pdf] {input_path.name}: {len(original)} -> {len(data)} bytes ({ghostscript.DEFAULT_PRESET.name})")
                return PdfCompressionOutcome(
                    data=data,
                    strategy=ghostscript.DEFAULT_PRESET.name,
                    attempts=1,
                    met_target=None,
                    page_count=page_count,
                )
            logger.error(f"[pdf] GS error on {input_path.name}: {message}; returning original")
            return PdfCompressionOutcome(
                data=original,
                strategy=PASSTHROUGH,
                attempts=1,
                met_target=None,
                page_count=page_count,
            )

        logger.info(f"[pdf] Target: {target_bytes / 1024:.1f}KB ({target_bytes} bytes) for {input_path.name}")
        attempts = 0
        best: Optional[bytes] = None
        best_strategy = PASSTHROUGH

        for preset in ghostscript.PRESET_LADDER:
            attempts += 1
            output_path = scratch_dir / f"{preset.name}.pdf"
            logger.info(f"[pdf] Attempting strategy: {preset.name}")
            success, message = ghostscript.run_ghostscript(gs_cmd, preset, input_path, output_path, timeout)
            if not success:
                logger.error(f"[pdf] Strategy {preset.name} failed: {message}")
                continue

            data = output_path.read_bytes()
            logger.info(f"[pdf] Size after {preset.name}: {len(data)} bytes")
            best, best_strategy = data, preset.name
            if len(data) <= target_bytes:
                return PdfCompressionOutcome(
                    data=data,
                    strategy=preset.name,
                    attempts=attempts,
                    met_target=True,
                    page_count=page_count,
                )

    if best is None:
        logger.warning(f"[pdf] No strategy produced output for {input_path.name}; returning original")
        best = original

    logger.info(f"[pdf] Target not met for {input_path.name}; best effort {len(best)} bytes ({best_strategy})")
    return PdfCompressionOutcome(
        data=best,
        strategy=best_strategy,
        attempts=attempts,
        met_target=_met(len(best), target_bytes),
        page_count=page_count,
    )
