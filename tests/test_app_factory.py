import importlib

from flask import Flask

from file_compressor import bootstrap
from file_compressor.config import RuntimeConfig, load_runtime_config
from file_compressor.factory import create_app
from file_compressor.services import compression_service


def _config(tmp_path, **overrides):
    params = {
        "upload_dir": tmp_path / "uploads",
        "output_dir": tmp_path / "processed",
        "reaper_enabled": False,
    }
    params.update(overrides)
    return RuntimeConfig(**params)


def test_create_app_registers_expected_routes(monkeypatch, tmp_path):
    monkeypatch.setattr("file_compressor.factory.bootstrap.bootstrap_runtime", lambda runtime: None)
    app = create_app(_config(tmp_path))

    rules = {rule.rule for rule in app.url_map.iter_rules()}
    expected = {
        "/health",
        "/upload",
        "/download/<artifact_id>",
        "/stream-zip",
    }
    assert expected.issubset(rules)


def test_create_app_wires_runtime_and_upload_limit(monkeypatch, tmp_path):
    monkeypatch.setattr("file_compressor.factory.bootstrap.bootstrap_runtime", lambda runtime: None)
    app = create_app(_config(tmp_path, max_content_length=1234))

    runtime = app.extensions[compression_service.RUNTIME_EXTENSION]
    assert app.config["MAX_CONTENT_LENGTH"] == 1234
    assert (tmp_path / "uploads").is_dir()
    assert (tmp_path / "processed").is_dir()
    assert runtime.reaper.store is runtime.store
    assert runtime.manager.store is runtime.store


def test_bootstrap_runtime_is_idempotent(monkeypatch, tmp_path):
    calls = {"reaper_start": 0}

    def _start(self):
        calls["reaper_start"] += 1

    monkeypatch.setattr(bootstrap, "_bootstrap_started", False)
    monkeypatch.setattr(bootstrap.Reaper, "start", _start)

    runtime = bootstrap.build_runtime(_config(tmp_path, reaper_enabled=True))
    bootstrap.bootstrap_runtime(runtime)
    bootstrap.bootstrap_runtime(runtime)

    assert calls["reaper_start"] == 1
    assert bootstrap.is_bootstrapped()


def test_bootstrap_skips_reaper_when_disabled(monkeypatch, tmp_path):
    calls = {"reaper_start": 0}

    def _start(self):
        calls["reaper_start"] += 1

    monkeypatch.setattr(bootstrap, "_bootstrap_started", False)
    monkeypatch.setattr(bootstrap.Reaper, "start", _start)

    bootstrap.bootstrap_runtime(bootstrap.build_runtime(_config(tmp_path)))

    assert calls["reaper_start"] == 0


def test_root_app_shim_exposes_gunicorn_app(monkeypatch, tmp_path):
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path))
    monkeypatch.setenv("REAPER_ENABLED", "false")
    monkeypatch.setattr("file_compressor.factory.bootstrap.bootstrap_runtime", lambda runtime: None)
    load_runtime_config.cache_clear()
    try:
        app_module = importlib.import_module("app")
    finally:
        load_runtime_config.cache_clear()
    assert hasattr(app_module, "app")
    assert isinstance(app_module.app, Flask)
