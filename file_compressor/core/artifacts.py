"""Filesystem-backed artifact store for uploads and compressed outputs.

Artifacts live in two flat directories (upload staging and output staging),
one file per artifact, named by its id. The store never caches sizes and
never locks: every id is written exactly once and deleted idempotently.
"""

import logging
import os
import tempfile
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional

from file_compressor.core.exceptions import ArtifactNotFoundError
from file_compressor.core.utils import new_artifact_id

logger = logging.getLogger(__name__)

_PARTIAL_PREFIX = ".partial-"
_CLAIM_PREFIX = ".delivering-"


class ArtifactKind(str, Enum):
    UPLOAD = "upload"
    OUTPUT = "output"


class DeleteOutcome(str, Enum):
    DELETED = "deleted"
    ALREADY_ABSENT = "already_absent"
    FAILED = "failed"


@dataclass(frozen=True)
class Artifact:
    """A persisted byte blob identified by an opaque id."""

    id: str
    kind: ArtifactKind
    path: Path
    created_at: float

    @property
    def size_bytes(self) -> int:
        # Read lazily; the file may have been replaced or removed since.
        return self.path.stat().st_size


class ArtifactStore:
    """Artifacts in the upload and output staging areas."""

    def __init__(
        self,
        upload_dir: Path,
        output_dir: Path,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._dirs: Dict[ArtifactKind, Path] = {
            ArtifactKind.UPLOAD: Path(upload_dir),
            ArtifactKind.OUTPUT: Path(output_dir),
        }
        self._clock = clock
        for directory in self._dirs.values():
            directory.mkdir(parents=True, exist_ok=True)

    def directory(self, kind: ArtifactKind) -> Path:
        return self._dirs[kind]

    def create(self, kind: ArtifactKind, data: bytes, extension: str = "") -> Artifact:
        """Persist ``data`` under a fresh id and return the new artifact.

        Bytes go to a hidden temp file first and are renamed into place, so
        the id never points at a partially written file.
        """
        directory = self._dirs[kind]
        artifact_id = new_artifact_id(extension)
        final_path = directory / artifact_id

        fd, tmp_name = tempfile.mkstemp(prefix=_PARTIAL_PREFIX, dir=directory)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            created_at = self._clock()
            os.utime(tmp_name, (created_at, created_at))
            os.replace(tmp_name, final_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug(f"[store] Created {kind.value} {artifact_id} ({len(data)} bytes)")
        return Artifact(id=artifact_id, kind=kind, path=final_path, created_at=created_at)

    def exists(self, kind: ArtifactKind, artifact_id: str) -> bool:
        path = self._resolve(kind, artifact_id)
        return path is not None and path.is_file()

    def stat(self, kind: ArtifactKind, artifact_id: str) -> Artifact:
        path = self._resolve(kind, artifact_id)
        if path is None:
            raise ArtifactNotFoundError.for_id(artifact_id)
        try:
            st = path.stat()
        except FileNotFoundError:
            raise ArtifactNotFoundError.for_id(artifact_id) from None
        return Artifact(id=artifact_id, kind=kind, path=path, created_at=st.st_mtime)

    def read(self, kind: ArtifactKind, artifact_id: str) -> bytes:
        path = self._resolve(kind, artifact_id)
        if path is None:
            raise ArtifactNotFoundError.for_id(artifact_id)
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError):
            raise ArtifactNotFoundError.for_id(artifact_id) from None

    def take(self, kind: ArtifactKind, artifact_id: str) -> bytes:
        """Read an artifact and remove it, at most once per id.

        The file is first renamed to a private claim name in the same
        directory. Only one caller can win that rename; every other caller,
        concurrent or later, gets ArtifactNotFoundError. A claim orphaned by
        a crash keeps the original mtime and is expired by the reaper.
        """
        path = self._resolve(kind, artifact_id)
        if path is None:
            raise ArtifactNotFoundError.for_id(artifact_id)

        claimed = path.with_name(f"{_CLAIM_PREFIX}{new_artifact_id()}")
        try:
            os.replace(path, claimed)
        except FileNotFoundError:
            raise ArtifactNotFoundError.for_id(artifact_id) from None

        try:
            data = claimed.read_bytes()
        except FileNotFoundError:
            raise ArtifactNotFoundError.for_id(artifact_id) from None
        finally:
            claimed.unlink(missing_ok=True)

        logger.debug(f"[store] Took {kind.value} {artifact_id} ({len(data)} bytes)")
        return data

    def delete(self, kind: ArtifactKind, artifact_id: str) -> DeleteOutcome:
        """Remove an artifact. Never raises.

        A missing file is the normal outcome of a lost race with another
        deleter and is reported as ALREADY_ABSENT.
        """
        path = self._resolve(kind, artifact_id)
        if path is None:
            return DeleteOutcome.ALREADY_ABSENT
        try:
            path.unlink()
        except FileNotFoundError:
            return DeleteOutcome.ALREADY_ABSENT
        except OSError as e:
            logger.error(f"[store] Error deleting {kind.value} {artifact_id}: {e}")
            return DeleteOutcome.FAILED
        logger.debug(f"[store] Deleted {kind.value} {artifact_id}")
        return DeleteOutcome.DELETED

    def iter_artifacts(self, kind: Optional[ArtifactKind] = None) -> Iterator[Artifact]:
        """Yield every file in one or both staging areas.

        Leftover temp files from interrupted writes are included so the
        reaper can expire them too.
        """
        kinds = [kind] if kind is not None else list(self._dirs)
        for current in kinds:
            directory = self._dirs[current]
            try:
                entries = list(os.scandir(directory))
            except FileNotFoundError:
                continue
            for entry in entries:
                try:
                    if not entry.is_file(follow_symlinks=False):
                        continue
                    mtime = entry.stat(follow_symlinks=False).st_mtime
                except FileNotFoundError:
                    continue
                yield Artifact(id=entry.name, kind=current, path=Path(entry.path), created_at=mtime)

    def count(self, kind: ArtifactKind) -> int:
        return sum(1 for _ in self.iter_artifacts(kind))

    def _resolve(self, kind: ArtifactKind, artifact_id: str) -> Optional[Path]:
        """Map an id to its path, rejecting anything outside the staging dir."""
        if not artifact_id or artifact_id in (".", ".."):
            return None
        directory = self._dirs[kind]
        candidate = directory / artifact_id
        if candidate.name != artifact_id or candidate.parent.resolve() != directory.resolve():
            logger.warning(f"[store] Rejected artifact id: {artifact_id[:80]}")
            return None
        return candidate
