"""Tests for cjsync.config — YAML-backed engine settings."""

from __future__ import annotations

from pathlib import Path

import yaml

from cjsync.config import SyncSettings, load_settings, save_settings


class TestLoadSettings:
    """Loading config.yaml."""

    def test_defaults_when_missing(self, tmp_path: Path):
        settings = load_settings(tmp_path)
        assert settings.max_snapshots == 10
        assert settings.auto_save_delay_seconds == 300
        assert settings.max_transport_chars == 2000
        assert settings.safety_limit_kb == 4500
        assert settings.broker_timeout_seconds == 10
        assert settings.pbkdf2_iterations == 1_000_000
        assert settings.storage_quota_bytes is None
        assert settings.evict_retry_limit == 3

    def test_partial_file(self, tmp_path: Path):
        (tmp_path / "config.yaml").write_text(yaml.dump({"max_snapshots": 5}))
        settings = load_settings(tmp_path)
        assert settings.max_snapshots == 5
        assert settings.safety_limit_kb == 4500

    def test_invalid_yaml_falls_back(self, tmp_path: Path):
        (tmp_path / "config.yaml").write_text("max_snapshots: [unclosed")
        assert load_settings(tmp_path) == SyncSettings()

    def test_invalid_value_falls_back(self, tmp_path: Path):
        (tmp_path / "config.yaml").write_text(yaml.dump({"max_snapshots": 0}))
        assert load_settings(tmp_path).max_snapshots == 10

    def test_empty_file(self, tmp_path: Path):
        (tmp_path / "config.yaml").write_text("")
        assert load_settings(tmp_path) == SyncSettings()


class TestSaveSettings:
    """Writing config.yaml."""

    def test_save_then_load(self, tmp_path: Path):
        path = save_settings(SyncSettings(max_snapshots=7, storage_quota_bytes=1024), tmp_path / "home")
        assert path.exists()
        loaded = load_settings(tmp_path / "home")
        assert loaded.max_snapshots == 7
        assert loaded.storage_quota_bytes == 1024
