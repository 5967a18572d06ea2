"""Ghostscript rendering presets and a timed, failure-tolerant runner."""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

GHOSTSCRIPT_CANDIDATES = ("gs", "gswin64c", "gswin32c")
PROBE_TIMEOUT_SECONDS = 10

BASE_ARGS = (
    "-sDEVICE=pdfwrite",
    "-dCompatibilityLevel=1.4",
)
RUN_FLAGS = (
    "-dNOPAUSE",
    "-dQUIET",
    "-dBATCH",
)


@dataclass(frozen=True)
class GhostscriptPreset:
    name: str
    args: Tuple[str, ...]


EBOOK = GhostscriptPreset("ebook", ("-dPDFSETTINGS=/ebook",))
SCREEN = GhostscriptPreset("screen", ("-dPDFSETTINGS=/screen",))
LOW_RES = GhostscriptPreset(
    "low-res",
    (
        "-dPDFSETTINGS=/screen",
        "-dColorImageResolution=50",
        "-dGrayImageResolution=50",
        "-dMonoImageResolution=50",
        "-dDownsampleColorImages=true",
        "-dDownsampleGrayImages=true",
        "-dDownsampleMonoImages=true",
    ),
)

DEFAULT_PRESET = SCREEN
# Ordered from gentlest to most aggressive.
PRESET_LADDER = (EBOOK, SCREEN, LOW_RES)


@lru_cache(maxsize=1)
def get_ghostscript_command() -> Optional[str]:
    """Resolve the Ghostscript binary once per process.

    Returns the full path of the first candidate that answers ``--version``,
    or None when no renderer is installed.
    """
    for name in GHOSTSCRIPT_CANDIDATES:
        path = shutil.which(name)
        if not path:
            continue
        try:
            result = subprocess.run(
                [path, "--version"],
                capture_output=True,
                text=True,
                timeout=PROBE_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"[gs] Probe of {path} failed: {e}")
            continue
        if result.returncode == 0:
            logger.info(f"[gs] Using Ghostscript {result.stdout.strip()} at {path}")
            return path
    logger.warning("[gs] Ghostscript not found; PDFs will be passed through unchanged")
    return None


def reset_ghostscript_probe() -> None:
    get_ghostscript_command.cache_clear()


def build_command(gs_cmd: str, preset: GhostscriptPreset, input_path: Path, output_path: Path) -> list:
    return [
        gs_cmd,
        *BASE_ARGS,
        *preset.args,
        *RUN_FLAGS,
        f"-sOutputFile={output_path}",
        str(input_path),
    ]


def translate_ghostscript_error(stderr: str, return_code: int) -> str:
    """Translate Ghostscript stderr to a clear, user-friendly error message.

    Also logs the full stderr for debugging purposes.
    """
    logger.error(f"Ghostscript failed (exit code {return_code}). Full error:\n{stderr}")

    stderr_lower = (stderr or "").lower()

    if 'invalidfileaccess' in stderr_lower or 'password' in stderr_lower:
        return "PDF is password-protected or locked. Please remove the password and try again."

    if 'typecheck' in stderr_lower or 'rangecheck' in stderr_lower:
        return "PDF has corrupted internal data. Try re-saving it from Adobe Acrobat."

    if any(x in stderr_lower for x in ['undefined', 'ioerror', 'syntaxerror', 'eofread']):
        return "PDF is damaged or corrupted. Please use a different copy of the file."

    return f"PDF processing failed (Ghostscript exit code {return_code}). The file may be corrupted."


def run_ghostscript(
    gs_cmd: str,
    preset: GhostscriptPreset,
    input_path: Path,
    output_path: Path,
    timeout: float,
) -> Tuple[bool, str]:
    """Render ``input_path`` with ``preset`` into ``output_path``.

    Returns (success, message). A non-zero exit, a spawn error or a timeout
    is reported as failure; the child is killed on timeout.
    """
    if not input_path.exists():
        return False, f"File not found: {input_path}"

    output_path.parent.mkdir(parents=True, exist_ok=True)
    cmd = build_command(gs_cmd, preset, input_path, output_path)

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.warning(f"[gs] Preset {preset.name} timed out after {timeout:.0f}s")
        return False, "Timeout exceeded"
    except OSError as e:
        logger.warning(f"[gs] Could not start Ghostscript: {e}")
        return False, str(e)

    if result.returncode != 0:
        return False, translate_ghostscript_error(result.stderr, result.returncode)

    if not output_path.exists():
        return False, "Output file not created"

    return True, f"{output_path.stat().st_size} bytes"
