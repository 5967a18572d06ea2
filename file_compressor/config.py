"""Runtime configuration loaded from the environment with validation."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from file_compressor.core.utils import env_bool

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_ROOT = Path(__file__).resolve().parent.parent / "temp"
DEFAULT_MAX_UPLOAD_MB = 10
DEFAULT_ARTIFACT_TTL_SECONDS = 120.0
DEFAULT_REAPER_INTERVAL_SECONDS = 60.0
DEFAULT_GS_MIN_TIMEOUT_SECONDS = 120.0
DEFAULT_GS_TIMEOUT_PER_MB = 10.0


@dataclass(frozen=True)
class RuntimeConfig:
    """Runtime configuration values consumed by the Flask app and workers."""

    upload_dir: Path
    output_dir: Path
    max_content_length: int = DEFAULT_MAX_UPLOAD_MB * 1024 * 1024
    artifact_ttl_seconds: float = DEFAULT_ARTIFACT_TTL_SECONDS
    reaper_interval_seconds: float = DEFAULT_REAPER_INTERVAL_SECONDS
    reaper_enabled: bool = True
    gs_min_timeout_seconds: float = DEFAULT_GS_MIN_TIMEOUT_SECONDS
    gs_timeout_per_mb: float = DEFAULT_GS_TIMEOUT_PER_MB


def _parse_positive_float(raw: Optional[str], *, name: str, default: float) -> float:
    if raw is None:
        return default
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        logger.warning("[settings] Invalid %s=%s; using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("[settings] Non-positive %s=%s; using %s", name, raw, default)
        return default
    return value


def _resolve_dir(env_name: str, root: Path, default_name: str) -> Path:
    override = os.environ.get(env_name)
    if override:
        return Path(override)
    return root / default_name


def build_runtime_config() -> RuntimeConfig:
    """Read the environment into a fresh RuntimeConfig."""
    root = Path(os.environ.get("STORAGE_ROOT") or DEFAULT_STORAGE_ROOT)
    max_upload_mb = _parse_positive_float(
        os.environ.get("MAX_UPLOAD_MB"), name="MAX_UPLOAD_MB", default=float(DEFAULT_MAX_UPLOAD_MB)
    )

    return RuntimeConfig(
        upload_dir=_resolve_dir("UPLOAD_FOLDER", root, "uploads"),
        output_dir=_resolve_dir("OUTPUT_FOLDER", root, "processed"),
        max_content_length=int(max_upload_mb * 1024 * 1024),
        artifact_ttl_seconds=_parse_positive_float(
            os.environ.get("ARTIFACT_TTL_SECONDS"),
            name="ARTIFACT_TTL_SECONDS",
            default=DEFAULT_ARTIFACT_TTL_SECONDS,
        ),
        reaper_interval_seconds=_parse_positive_float(
            os.environ.get("REAPER_INTERVAL_SECONDS"),
            name="REAPER_INTERVAL_SECONDS",
            default=DEFAULT_REAPER_INTERVAL_SECONDS,
        ),
        reaper_enabled=env_bool("REAPER_ENABLED", True),
        gs_min_timeout_seconds=_parse_positive_float(
            os.environ.get("GS_MIN_TIMEOUT_SECONDS"),
            name="GS_MIN_TIMEOUT_SECONDS",
            default=DEFAULT_GS_MIN_TIMEOUT_SECONDS,
        ),
        gs_timeout_per_mb=_parse_positive_float(
            os.environ.get("GS_TIMEOUT_PER_MB"),
            name="GS_TIMEOUT_PER_MB",
            default=DEFAULT_GS_TIMEOUT_PER_MB,
        ),
    )


@lru_cache(maxsize=1)
def load_runtime_config() -> RuntimeConfig:
    """Load runtime configuration once per process."""
    config = build_runtime_config()
    logger.info(
        "Staging folders: uploads=%s outputs=%s (ttl=%ss, sweep every %ss)",
        config.upload_dir,
        config.output_dir,
        config.artifact_ttl_seconds,
        config.reaper_interval_seconds,
    )
    return config
