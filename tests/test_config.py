"""Tests for TOML workspace configuration."""

import pytest

from tagtree.config import (
    CONFIG_FILENAME,
    ProviderConfig,
    WorkspaceConfig,
    detect_default_providers,
    get_store_path,
    load_config,
    load_or_create_config,
    save_config,
)

_PROVIDER_ENV = (
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "GOOGLE_CLOUD_PROJECT",
    "ANTHROPIC_API_KEY",
    "TAGTREE_OPENAI_API_KEY",
    "OPENAI_API_KEY",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in _PROVIDER_ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestDetection:

    def test_offline_fallback(self, clean_env):
        providers = detect_default_providers()
        assert providers["analyzer"].name == "passthrough"
        assert providers["comparator"].name == "never"

    def test_gemini_preferred(self, clean_env):
        clean_env.setenv("ANTHROPIC_API_KEY", "a")
        clean_env.setenv("GEMINI_API_KEY", "g")
        providers = detect_default_providers()
        assert providers["analyzer"].name == "gemini"
        assert providers["comparator"].name == "gemini"

    def test_anthropic_then_openai(self, clean_env):
        clean_env.setenv("OPENAI_API_KEY", "o")
        assert detect_default_providers()["analyzer"].name == "openai"
        clean_env.setenv("ANTHROPIC_API_KEY", "a")
        assert detect_default_providers()["analyzer"].name == "anthropic"


class TestLoadSave:

    def test_create_writes_file(self, tmp_path, clean_env):
        config = load_or_create_config(tmp_path)
        assert (tmp_path / CONFIG_FILENAME).exists()
        assert config.exists()
        assert config.analyzer.name == "passthrough"
        assert config.storage_path == tmp_path / "workspace.db"

    def test_roundtrip(self, tmp_path):
        config = WorkspaceConfig(
            path=tmp_path,
            analyzer=ProviderConfig("gemini", {"model": "gemini-2.5-pro"}),
            comparator=ProviderConfig("anthropic"),
            save_delay=1.5,
            storage_file="other.db",
        )
        save_config(config)
        loaded = load_config(tmp_path)
        assert loaded.analyzer == config.analyzer
        assert loaded.comparator == config.comparator
        assert loaded.save_delay == 1.5
        assert loaded.storage_path == tmp_path / "other.db"
        assert loaded.created == config.created

    def test_existing_config_is_not_overwritten(self, tmp_path, clean_env):
        save_config(WorkspaceConfig(path=tmp_path, analyzer=ProviderConfig("openai")))
        assert load_or_create_config(tmp_path).analyzer.name == "openai"

    def test_missing_config(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)

    def test_newer_version_rejected(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("[workspace]\nversion = 99\n")
        with pytest.raises(ValueError, match="newer"):
            load_config(tmp_path)

    def test_negative_delay_rejected(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("[persistence]\nsave_delay = -1\n")
        with pytest.raises(ValueError, match="save_delay"):
            load_config(tmp_path)

    def test_missing_sections_use_defaults(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("[workspace]\nversion = 1\n")
        config = load_config(tmp_path)
        assert config.analyzer.name == "passthrough"
        assert config.comparator.name == "never"
        assert config.save_delay == 0.5


def test_store_path_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("TAGTREE_STORE_PATH", str(tmp_path))
    assert get_store_path() == tmp_path
    monkeypatch.delenv("TAGTREE_STORE_PATH")
    assert get_store_path().name == ".tagtree"
