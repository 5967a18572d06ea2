import unittest
from pathlib import Path
from unittest.mock import patch

from file_compressor.config import (
    DEFAULT_ARTIFACT_TTL_SECONDS,
    DEFAULT_REAPER_INTERVAL_SECONDS,
    build_runtime_config,
    load_runtime_config,
)
from file_compressor.core.utils import env_bool, new_artifact_id, safe_extension


class TestRuntimeConfig(unittest.TestCase):
    def test_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            config = build_runtime_config()

        self.assertEqual(config.artifact_ttl_seconds, DEFAULT_ARTIFACT_TTL_SECONDS)
        self.assertEqual(config.reaper_interval_seconds, DEFAULT_REAPER_INTERVAL_SECONDS)
        self.assertEqual(config.max_content_length, 10 * 1024 * 1024)
        self.assertTrue(config.reaper_enabled)
        self.assertEqual(config.upload_dir.name, "uploads")
        self.assertEqual(config.output_dir.name, "processed")

    def test_environment_overrides(self):
        env = {
            "STORAGE_ROOT": "/srv/compress",
            "OUTPUT_FOLDER": "/mnt/out",
            "ARTIFACT_TTL_SECONDS": "300",
            "REAPER_INTERVAL_SECONDS": "15",
            "MAX_UPLOAD_MB": "25",
            "REAPER_ENABLED": "false",
            "GS_MIN_TIMEOUT_SECONDS": "45",
        }
        with patch.dict("os.environ", env, clear=True):
            config = build_runtime_config()

        self.assertEqual(config.upload_dir, Path("/srv/compress/uploads"))
        self.assertEqual(config.output_dir, Path("/mnt/out"))
        self.assertEqual(config.artifact_ttl_seconds, 300.0)
        self.assertEqual(config.reaper_interval_seconds, 15.0)
        self.assertEqual(config.max_content_length, 25 * 1024 * 1024)
        self.assertFalse(config.reaper_enabled)
        self.assertEqual(config.gs_min_timeout_seconds, 45.0)

    def test_invalid_values_fall_back_to_defaults(self):
        env = {"ARTIFACT_TTL_SECONDS": "soon", "REAPER_INTERVAL_SECONDS": "-1", "MAX_UPLOAD_MB": "0"}
        with patch.dict("os.environ", env, clear=True):
            with self.assertLogs("file_compressor.config", level="WARNING") as logs:
                config = build_runtime_config()

        self.assertEqual(config.artifact_ttl_seconds, DEFAULT_ARTIFACT_TTL_SECONDS)
        self.assertEqual(config.reaper_interval_seconds, DEFAULT_REAPER_INTERVAL_SECONDS)
        self.assertEqual(config.max_content_length, 10 * 1024 * 1024)
        self.assertEqual(len(logs.records), 3)

    def test_load_is_cached_per_process(self):
        load_runtime_config.cache_clear()
        try:
            with patch.dict("os.environ", {"ARTIFACT_TTL_SECONDS": "30"}):
                first = load_runtime_config()
            with patch.dict("os.environ", {"ARTIFACT_TTL_SECONDS": "90"}):
                second = load_runtime_config()
        finally:
            load_runtime_config.cache_clear()

        self.assertIs(first, second)
        self.assertEqual(second.artifact_ttl_seconds, 30.0)


class TestUtils(unittest.TestCase):
    def test_env_bool(self):
        with patch.dict("os.environ", {"FLAG": "yes"}):
            self.assertTrue(env_bool("FLAG", False))
        with patch.dict("os.environ", {"FLAG": "0"}):
            self.assertFalse(env_bool("FLAG", True))
        with patch.dict("os.environ", {}, clear=True):
            self.assertTrue(env_bool("FLAG", True))

    def test_safe_extension(self):
        self.assertEqual(safe_extension("Report.PDF"), ".pdf")
        self.assertEqual(safe_extension(".webp"), ".webp")
        self.assertEqual(safe_extension("../../etc/passwd"), "")
        self.assertEqual(safe_extension("archive.tar.gz"), ".gz")
        self.assertEqual(safe_extension("evil.p/hp"), "")
        self.assertEqual(safe_extension(""), "")

    def test_new_artifact_id(self):
        artifact_id = new_artifact_id(".jpg")
        self.assertTrue(artifact_id.endswith(".jpg"))
        self.assertEqual(len(artifact_id), 32 + 4)
        self.assertNotEqual(new_artifact_id(), new_artifact_id())


if __name__ == "__main__":
    unittest.main()
