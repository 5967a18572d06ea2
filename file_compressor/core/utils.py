"""Shared utility functions for the compression service.

Contains:
- env_bool: tolerant boolean environment flags
- get_file_size_mb: file size for timeout scaling
- new_artifact_id: collision-resistant artifact identifiers
- safe_extension: normalize a client filename extension
- format_size: human-readable sizes for log lines
"""

import os
import re
import uuid
from pathlib import Path
from typing import Optional

_EXTENSION_PATTERN = re.compile(r"^\.[a-z0-9]{1,10}$")


def env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


def new_artifact_id(extension: str = "") -> str:
    """Return a fresh artifact id: 32 hex chars plus an optional extension."""
    return f"{uuid.uuid4().hex}{safe_extension(extension)}"


def safe_extension(value: Optional[str]) -> str:
    """Normalize an extension or filename to a short lowercase suffix.

    Accepts either ".png" or a whole filename like "scan.PNG". Anything that
    does not look like a plain extension comes back as "".
    """
    if not value:
        return ""
    suffix = value if value.startswith(".") and "/" not in value else Path(value).suffix
    suffix = suffix.lower()
    return suffix if _EXTENSION_PATTERN.match(suffix) else ""


def get_file_size_mb(path: Path) -> float:
    """Get file size in megabytes."""
    return path.stat().st_size / (1024 * 1024)


def format_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes}B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f}KB"
    return f"{num_bytes / (1024 * 1024):.2f}MB"
