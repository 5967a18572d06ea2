"""Runtime wiring and once-per-process start of the background reaper."""

from __future__ import annotations

import threading
from dataclasses import dataclass

from file_compressor.config import RuntimeConfig
from file_compressor.core.artifacts import ArtifactStore
from file_compressor.services.lifecycle import LifecycleManager
from file_compressor.workers.reaper import Reaper

_bootstrap_lock = threading.Lock()
_bootstrap_started = False


@dataclass
class Runtime:
    """Objects shared by all requests of one app."""

    config: RuntimeConfig
    store: ArtifactStore
    manager: LifecycleManager
    reaper: Reaper


def build_runtime(config: RuntimeConfig) -> Runtime:
    store = ArtifactStore(config.upload_dir, config.output_dir)
    manager = LifecycleManager(
        store,
        gs_min_timeout_seconds=config.gs_min_timeout_seconds,
        gs_timeout_per_mb=config.gs_timeout_per_mb,
    )
    reaper = Reaper(
        store,
        ttl_seconds=config.artifact_ttl_seconds,
        interval_seconds=config.reaper_interval_seconds,
    )
    return Runtime(config=config, store=store, manager=manager, reaper=reaper)


def bootstrap_runtime(runtime: Runtime) -> None:
    """Start background services once per process."""
    global _bootstrap_started
    with _bootstrap_lock:
        if _bootstrap_started:
            return
        if runtime.config.reaper_enabled:
            runtime.reaper.start()
        _bootstrap_started = True


def is_bootstrapped() -> bool:
    """Expose runtime bootstrap state for diagnostics/tests."""
    return _bootstrap_started
