"""Tests for settings storage and the settings gate."""

from __future__ import annotations

import json
import stat
import sys

import pytest

from duet.errors import ConfigIncomplete
from duet.schemas.settings import ChatSettings, ProviderKind
from duet.settings import (
    SettingsStore,
    check_settings,
    default_settings_path,
    duet_home,
    mask_secret,
    require_config,
)

# ── Location ─────────────────────────────────────────────────────


class TestLocation:
    def test_duet_home_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DUET_HOME", str(tmp_path))
        assert duet_home() == tmp_path
        assert default_settings_path() == tmp_path / "settings.json"

    def test_duet_home_default(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DUET_HOME", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))
        assert duet_home().name == ".duet"

    def test_store_uses_home_when_no_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DUET_HOME", str(tmp_path))
        assert SettingsStore().path == tmp_path / "settings.json"


# ── Store ────────────────────────────────────────────────────────


class TestSettingsStore:
    def test_missing_file_loads_defaults(self, tmp_path):
        settings = SettingsStore(tmp_path / "settings.json").load()
        assert settings.api_type is ProviderKind.OPENAI
        assert settings.model == ""
        assert settings.timeout == 120.0

    def test_save_writes_wire_keys(self, tmp_path):
        path = tmp_path / "settings.json"
        SettingsStore(path).save(openai_api_url="https://api.example.com", model="m")
        raw = json.loads(path.read_text())
        assert raw["openaiApiUrl"] == "https://api.example.com"
        assert raw["model"] == "m"
        assert raw["apiType"] == "openai"

    def test_save_merges_with_existing(self, tmp_path):
        store = SettingsStore(tmp_path / "settings.json")
        store.save(openai_api_key="sk-openai")
        store.save(apiType="gemini", geminiApiKey="g-key")
        settings = store.load()
        assert settings.api_type is ProviderKind.GEMINI
        assert settings.gemini_api_key == "g-key"
        assert settings.openai_api_key == "sk-openai"

    def test_unknown_keys_are_ignored(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"model": "x", "theme": "dark"}))
        assert SettingsStore(path).load().model == "x"

    def test_load_reads_fresh_each_time(self, tmp_path):
        path = tmp_path / "settings.json"
        store = SettingsStore(path)
        path.write_text(json.dumps({"model": "one"}))
        assert store.load().model == "one"
        path.write_text(json.dumps({"model": "two"}))
        assert store.load().model == "two"

    def test_invalid_json_raises_value_error(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{oops")
        with pytest.raises(ValueError, match="not valid JSON"):
            SettingsStore(path).load()

    def test_non_object_raises_value_error(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError, match="JSON object"):
            SettingsStore(path).load()

    def test_invalid_value_raises_value_error(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"apiType": "claude"}))
        with pytest.raises(ValueError, match="Invalid settings"):
            SettingsStore(path).load()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_saved_file_is_private(self, tmp_path):
        path = tmp_path / "settings.json"
        SettingsStore(path).save(openai_api_key="sk")
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_clear(self, tmp_path):
        store = SettingsStore(tmp_path / "settings.json")
        assert store.clear() is False
        store.save(model="m")
        assert store.clear() is True
        assert not store.path.exists()


class TestMaskSecret:
    def test_empty(self):
        assert mask_secret("") == ""

    def test_short_secret_fully_masked(self):
        assert mask_secret("abc") == "***"

    def test_long_secret_keeps_prefix(self):
        masked = mask_secret("sk-abcdefghijkl")
        assert masked.startswith("sk-a")
        assert "efgh" not in masked


# ── Gate ─────────────────────────────────────────────────────────


class TestSettingsGate:
    def test_openai_missing_url(self):
        settings = ChatSettings.model_validate(
            {"apiType": "openai", "model": "gpt-4", "openaiApiKey": "sk-x"}
        )
        result = check_settings(settings)
        assert result.ok is False
        assert result.missing == ["openaiApiUrl"]

    def test_openai_missing_url_and_model(self):
        """OpenAI with a key but no URL or model reports both."""
        settings = ChatSettings(api_type=ProviderKind.OPENAI, openai_api_key="k")
        result = check_settings(settings)
        assert not result.ok
        assert result.missing == ["model", "openaiApiUrl"]

    def test_openai_complete(self):
        settings = ChatSettings(
            api_type="openai", model="gpt-4o",
            openai_api_key="k", openai_api_url="https://api.example.com",
        )
        assert check_settings(settings).ok

    def test_gemini_needs_only_key_and_model(self):
        settings = ChatSettings(api_type="gemini", model="gemini-pro")
        assert check_settings(settings).missing == ["geminiApiKey"]

    def test_gemini_ignores_openai_fields(self):
        settings = ChatSettings(api_type="gemini", model="gemini-pro", gemini_api_key="g")
        assert check_settings(settings).ok

    def test_blank_values_count_as_missing(self):
        settings = ChatSettings(
            api_type="openai", model="  ", openai_api_key=" ", openai_api_url="",
        )
        assert check_settings(settings).missing == ["model", "openaiApiKey", "openaiApiUrl"]

    def test_model_optional_for_discovery(self):
        settings = ChatSettings(api_type="gemini", gemini_api_key="g")
        assert check_settings(settings, require_model=False).ok

    def test_require_config_raises(self):
        with pytest.raises(ConfigIncomplete) as exc:
            require_config(ChatSettings(api_type="gemini"))
        assert exc.value.missing == ["model", "geminiApiKey"]

    def test_require_config_builds_openai_config(self):
        settings = ChatSettings(
            model=" gpt-4o ", openai_api_key="k", openai_api_url=" https://x.test/ ",
        )
        config = require_config(settings)
        assert config.provider is ProviderKind.OPENAI
        assert config.model_id == "gpt-4o"
        assert config.endpoint_url == "https://x.test/"
        assert config.api_key == "k"

    def test_require_config_builds_gemini_config(self):
        config = require_config(
            ChatSettings(api_type="gemini", model="gemini-pro", gemini_api_key="g")
        )
        assert config.provider is ProviderKind.GEMINI
        assert config.endpoint_url == ""
