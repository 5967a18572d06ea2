"""Background sweep that expires abandoned uploads and outputs past a TTL."""

import logging
import threading
import time
from typing import Callable, Optional

from file_compressor.core.artifacts import ArtifactStore, DeleteOutcome

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 120.0
DEFAULT_INTERVAL_SECONDS = 60.0


class Reaper:
    """Deletes every artifact older than ``ttl_seconds``, delivered or not.

    The clock and the store are injected so expiry can be tested without
    sleeping.
    """

    def __init__(
        self,
        store: ArtifactStore,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def run_once(self) -> int:
        """Run one sweep over both staging areas. Returns the number deleted."""
        cutoff = self._clock() - self.ttl_seconds
        deleted = 0
        try:
            expired = [a for a in self.store.iter_artifacts() if a.created_at < cutoff]
        except OSError as e:
            logger.error(f"[reaper] Cleanup scan error: {e}")
            return 0

        for artifact in expired:
            outcome = self.store.delete(artifact.kind, artifact.id)
            if outcome is DeleteOutcome.DELETED:
                deleted += 1
                logger.info(f"[reaper] Auto-deleted old {artifact.kind.value}: {artifact.id}")

        if deleted:
            logger.info(f"[reaper] Cleaned up {deleted} expired artifact(s)")
        return deleted

    def start(self) -> None:
        """Start the sweep thread. Calling it again while running is a no-op."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self._run, daemon=True, name="artifact-reaper")
            self._thread.start()
        logger.info(
            f"[reaper] Started (ttl={self.ttl_seconds:.0f}s, interval={self.interval_seconds:.0f}s)"
        )

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is not None:
            thread.join(timeout)

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception as e:
                logger.exception(f"[reaper] Sweep failed: {e}")
