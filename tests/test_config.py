"""Tests for configuration loading and validation."""

import os

import pytest

from frontmap.config import IndexerConfig, load_config
from frontmap.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """No global, project or environment settings leak into these tests."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("FRONTMAP_"):
            monkeypatch.delenv(key)
    return tmp_path


class TestDefaults:
    def test_default_values(self):
        config = load_config()
        assert config.concurrency == 5
        assert config.max_retries == 3
        assert config.retry_delay == 1.0
        assert config.labeler_timeout == 120.0
        assert config.annotation_insert_mode == "before"
        assert config.cache_enabled is False

    def test_derived_values(self):
        config = IndexerConfig(content_cache_mb=1, cache_ttl_hours=2)
        assert config.content_cache_bytes == 1024 * 1024
        assert config.cache_ttl_seconds == 7200


class TestValidation:
    @pytest.mark.parametrize(
        "field, value",
        [
            ("concurrency", 0),
            ("max_retries", -1),
            ("labeler_timeout", 0),
            ("memory_budget_entries", 0),
            ("annotation_insert_mode", "inline"),
            ("verbosity", "loud"),
        ],
    )
    def test_invalid_values_rejected(self, field, value):
        with pytest.raises(ValueError):
            IndexerConfig(**{field: value})

    def test_load_wraps_validation_errors(self):
        with pytest.raises(ConfigurationError):
            load_config(concurrency=0)

    def test_unknown_field_rejected(self, isolated):
        path = isolated / "custom.toml"
        path.write_text("bogus = 1\n")
        with pytest.raises(ConfigurationError):
            load_config(path)


class TestSources:
    def test_project_file(self, isolated):
        (isolated / "frontmap.toml").write_text("concurrency = 3\n")
        assert load_config().concurrency == 3

    def test_frontmap_table_in_shared_file(self, isolated):
        path = isolated / "tools.toml"
        path.write_text("[frontmap]\nmax_retries = 0\n\n[other]\nx = 1\n")
        assert load_config(path).max_retries == 0

    def test_missing_explicit_file(self, isolated):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(isolated / "nope.toml")

    def test_environment_overrides_file(self, isolated, monkeypatch):
        (isolated / "frontmap.toml").write_text("concurrency = 3\n")
        monkeypatch.setenv("FRONTMAP_CONCURRENCY", "7")
        monkeypatch.setenv("FRONTMAP_CACHE_ENABLED", "yes")
        monkeypatch.setenv("FRONTMAP_DI_MODULES", "tsyringe, inversify")
        config = load_config()
        assert config.concurrency == 7
        assert config.cache_enabled is True
        assert config.di_modules == ["tsyringe", "inversify"]

    def test_bad_environment_value(self, monkeypatch):
        monkeypatch.setenv("FRONTMAP_CACHE_ENABLED", "maybe")
        with pytest.raises(ConfigurationError):
            load_config()

    def test_cli_overrides_win_and_none_is_ignored(self, monkeypatch):
        monkeypatch.setenv("FRONTMAP_CONCURRENCY", "7")
        config = load_config(concurrency=2, max_retries=None)
        assert config.concurrency == 2
        assert config.max_retries == 3

    def test_verbose_and_quiet_flags(self):
        assert load_config(verbose=True).verbosity == "verbose"
        assert load_config(quiet=True).verbosity == "quiet"
        assert load_config(verbose=False, quiet=False).verbosity == "normal"
