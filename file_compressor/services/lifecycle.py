"""Artifact lifecycle: register upload, compress, register output, deliver once.

Every artifact moves absent -> present -> deleted exactly once. Deletion goes
through ArtifactStore.delete, which is idempotent, so request-driven cleanup
and the reaper can race on the same id without either one failing.
"""

import logging
import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional

from file_compressor.core.artifacts import Artifact, ArtifactKind, ArtifactStore, DeleteOutcome
from file_compressor.core.exceptions import (
    ArtifactNotFoundError,
    CompressionFailedError,
    FileCompressionError,
    InvalidTargetSizeError,
    UnsupportedInputError,
)
from file_compressor.core.utils import format_size, safe_extension
from file_compressor.engine import image as image_engine
from file_compressor.engine import pdf as pdf_engine

logger = logging.getLogger(__name__)


class MimeClass(str, Enum):
    IMAGE = "image"
    PDF = "pdf"

    @classmethod
    def from_mimetype(cls, mimetype: Optional[str]) -> Optional["MimeClass"]:
        value = (mimetype or "").split(";", 1)[0].strip().lower()
        if value == "application/pdf":
            return cls.PDF
        if value.startswith("image/"):
            return cls.IMAGE
        return None


@dataclass(frozen=True)
class CompressionRequest:
    source_bytes: bytes
    mime_class: Optional[MimeClass]
    target_size_kb: Optional[float] = None
    filename: str = ""
    mimetype: Optional[str] = None

    def __post_init__(self) -> None:
        if self.target_size_kb is None:
            return
        try:
            value = float(self.target_size_kb)
        except (TypeError, ValueError):
            raise InvalidTargetSizeError.for_value(self.target_size_kb) from None
        if not math.isfinite(value) or value <= 0:
            raise InvalidTargetSizeError.for_value(self.target_size_kb)

    @property
    def target_bytes(self) -> Optional[int]:
        if self.target_size_kb is None:
            return None
        return max(1, int(float(self.target_size_kb) * 1024))


@dataclass(frozen=True)
class CompressionResult:
    output_artifact_id: str
    original_size_bytes: int
    compressed_size_bytes: int
    met_target: Optional[bool]
    method: str
    degraded: bool = False
    original_name: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class _Compressed:
    data: bytes
    extension: str
    method: str
    met_target: Optional[bool]
    degraded: bool


class LifecycleManager:
    """Owns create -> deliver -> delete for uploads and outputs."""

    def __init__(
        self,
        store: ArtifactStore,
        image_compressor: Callable[..., image_engine.ImageCompressionOutcome] = image_engine.compress_image,
        document_compressor: Callable[..., pdf_engine.PdfCompressionOutcome] = pdf_engine.compress_pdf,
        gs_min_timeout_seconds: float = pdf_engine.DEFAULT_MIN_TIMEOUT_SECONDS,
        gs_timeout_per_mb: float = pdf_engine.DEFAULT_TIMEOUT_PER_MB,
    ) -> None:
        self.store = store
        self._compress_image = image_compressor
        self._compress_document = document_compressor
        self._gs_min_timeout_seconds = gs_min_timeout_seconds
        self._gs_timeout_per_mb = gs_timeout_per_mb

    def compress(self, request: CompressionRequest) -> CompressionResult:
        """Compress one upload. The upload never outlives this call."""
        upload = self.store.create(
            ArtifactKind.UPLOAD, request.source_bytes, extension=safe_extension(request.filename)
        )
        name = request.filename or upload.id
        logger.info(f"[lifecycle] Upload {upload.id} registered ({format_size(len(request.source_bytes))})")

        try:
            compressed = self._run_compressor(request, upload, name)
            output = self.store.create(ArtifactKind.OUTPUT, compressed.data, extension=compressed.extension)
        except FileCompressionError:
            raise
        except Exception as e:
            logger.exception(f"[lifecycle] Compression of {name} failed: {e}")
            raise CompressionFailedError.for_file(name, original_error=e) from e
        finally:
            self.discard(ArtifactKind.UPLOAD, upload.id)

        result = CompressionResult(
            output_artifact_id=output.id,
            original_size_bytes=len(request.source_bytes),
            compressed_size_bytes=len(compressed.data),
            met_target=compressed.met_target,
            method=compressed.method,
            degraded=compressed.degraded,
            original_name=request.filename,
        )
        logger.info(
            f"[lifecycle] {upload.id} -> {output.id}: "
            f"{format_size(result.original_size_bytes)} -> {format_size(result.compressed_size_bytes)} "
            f"({result.method}, met_target={result.met_target})"
        )
        return result

    def _run_compressor(self, request: CompressionRequest, upload: Artifact, name: str) -> _Compressed:
        if request.mime_class is MimeClass.IMAGE:
            outcome = self._compress_image(request.source_bytes, request.target_bytes, name=name)
            return _Compressed(
                data=outcome.data,
                extension=outcome.extension,
                method=f"{outcome.format.lower()}-q{outcome.quality}",
                met_target=outcome.met_target,
                degraded=False,
            )

        if request.mime_class is MimeClass.PDF:
            timeout = pdf_engine.resolve_timeout(
                upload.path, self._gs_min_timeout_seconds, self._gs_timeout_per_mb
            )
            outcome = self._compress_document(upload.path, request.target_bytes, timeout_seconds=timeout)
            return _Compressed(
                data=outcome.data,
                extension=".pdf",
                method=f"ghostscript-{outcome.strategy}" if outcome.strategy != pdf_engine.PASSTHROUGH else outcome.strategy,
                met_target=outcome.met_target,
                degraded=outcome.degraded,
            )

        logger.warning(f"[lifecycle] Rejected {name}: unsupported type {request.mimetype or 'unknown'}")
        raise UnsupportedInputError.for_file(request.filename, request.mimetype)

    def deliver(self, output_id: str) -> bytes:
        """Read an output once. Any other call for the same id, concurrent or later, is not-found.

        The output is gone from disk before the caller sends the bytes on.
        """
        data = self.store.take(ArtifactKind.OUTPUT, output_id)
        logger.info(f"[lifecycle] Delivered {output_id} ({format_size(len(data))})")
        return data

    def collect(self, output_ids: Iterable[str]) -> List[Artifact]:
        """Return the outputs from ``output_ids`` that still exist, skipping the rest."""
        found: List[Artifact] = []
        seen = set()
        for output_id in output_ids:
            if not isinstance(output_id, str) or output_id in seen:
                continue
            seen.add(output_id)
            try:
                found.append(self.store.stat(ArtifactKind.OUTPUT, output_id))
            except ArtifactNotFoundError:
                logger.info(f"[lifecycle] Skipping missing output {output_id}")
        return found

    def release(self, output_ids: Iterable[str]) -> int:
        """Delete a batch of outputs after bulk delivery. Returns how many were removed."""
        removed = 0
        for output_id in output_ids:
            if self.discard(ArtifactKind.OUTPUT, output_id) is DeleteOutcome.DELETED:
                removed += 1
        return removed

    def discard(self, kind: ArtifactKind, artifact_id: str) -> DeleteOutcome:
        outcome = self.store.delete(kind, artifact_id)
        if outcome is DeleteOutcome.FAILED:
            logger.error(f"[lifecycle] Could not delete {kind.value} {artifact_id}; reaper will retry")
        return outcome
