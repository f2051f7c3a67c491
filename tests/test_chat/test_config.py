"""Tests for the chat configuration helpers."""
from __future__ import annotations

import logging
from configparser import ConfigParser
from datetime import datetime

import pytest

from cao.chat.config import (
    PROVIDER_ANTHROPIC,
    PROVIDER_OPENAI,
    ChatConfig,
    ChatRequestSettings,
    frontmatter_defaults,
)
from cao.chat.errors import CaoConfigError
from cao.chat.models import SurfaceFormat
from cao.chat.templates import DEFAULT_TEMPLATES, PromptTemplate


@pytest.fixture(autouse=True)
def _clear_key_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


def test_chat_config_defaults() -> None:
    cfg = ChatConfig()

    assert cfg.provider == PROVIDER_ANTHROPIC
    assert cfg.anthropic_model == "claude-sonnet-4-5"
    assert cfg.openai_model == "gpt-4o"
    assert cfg.max_tokens == 1024
    assert cfg.temperature == 1.0
    assert cfg.chat_folder_path == "CAO/history"
    assert cfg.streaming_response is True
    assert cfg.show_stats is True
    assert cfg.use_callouts is False
    assert cfg.surface_format is SurfaceFormat.HEADERS
    assert cfg.active_model == "claude-sonnet-4-5"
    assert cfg.api_key_from_env() is False


def test_chat_config_load_and_save_roundtrip() -> None:
    parser = ConfigParser()
    parser[ChatConfig.SECTION] = {
        "provider": "openai",
        "base_url": " https://openrouter.ai/api/v1 ",
        "openai_model": "gpt-4o-mini",
        "max_tokens": "2048",
        "temperature": "0.2",
        "system_prompt": "Answer in French",
        "chat_folder_path": "Chats",
        "streaming_response": "no",
        "show_stats": "no",
        "use_callouts": "yes",
        "openai_api_key": "stored-key",
    }

    cfg = ChatConfig()
    cfg.load(parser)

    assert cfg.provider == PROVIDER_OPENAI
    assert cfg.base_url == "https://openrouter.ai/api/v1"
    assert cfg.active_model == "gpt-4o-mini"
    assert cfg.active_api_key == "stored-key"
    assert cfg.max_tokens == 2048
    assert cfg.temperature == 0.2
    assert cfg.system_prompt == "Answer in French"
    assert cfg.chat_folder_path == "Chats"
    assert cfg.streaming_response is False
    assert cfg.show_stats is False
    assert cfg.surface_format is SurfaceFormat.CALLOUTS

    cfg.openai_api_key = "updated-key"
    out = ConfigParser()
    cfg.save(out)

    assert out.has_section("CAO")
    assert out.get("CAO", "provider") == PROVIDER_OPENAI
    assert out.get("CAO", "openai_api_key") == "updated-key"
    assert out.get("CAO", "use_callouts") == "True"
    assert out.get("CAO", "max_tokens") == "2048"


def test_invalid_values_fall_back_to_defaults(caplog: pytest.LogCaptureFixture) -> None:
    parser = ConfigParser()
    parser[ChatConfig.SECTION] = {"max_tokens": "lots", "temperature": "warm", "use_callouts": "maybe"}

    cfg = ChatConfig()
    with caplog.at_level(logging.WARNING, logger="cao.chat.config"):
        cfg.load(parser)

    assert cfg.max_tokens == 1024
    assert cfg.temperature == 1.0
    assert cfg.use_callouts is False
    assert "Invalid integer for 'CAO:max_tokens'" in caplog.text


def test_environment_key_overrides_and_is_not_saved(monkeypatch: pytest.MonkeyPatch) -> None:
    parser = ConfigParser()
    parser[ChatConfig.SECTION] = {"anthropic_api_key": "stored-key"}
    monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")

    cfg = ChatConfig()
    cfg.load(parser)

    assert cfg.anthropic_api_key == "env-key"
    assert cfg.api_key_from_env() is True
    assert cfg.api_key_from_env("openai") is False

    out = ConfigParser()
    out["CAO"] = {"anthropic_api_key": "old"}
    cfg.save(out)

    assert not out.has_option("CAO", "anthropic_api_key")
    assert out.get("CAO", "openai_api_key") == ""


def test_build_provider_settings() -> None:
    cfg = ChatConfig()
    cfg.anthropic_api_key = " key "
    client = object()

    settings = cfg.build_provider_settings(http_client=client)

    assert settings.api_key == "key"
    assert settings.model == "claude-sonnet-4-5"
    assert settings.base_url is None
    assert settings.http_client is client

    cfg.provider = PROVIDER_OPENAI
    cfg.openai_api_key = "sk"
    assert cfg.build_provider_settings().base_url == "https://api.openai.com/v1"

    cfg.base_url = "http://localhost:11434/v1"
    assert cfg.build_provider_settings().base_url == "http://localhost:11434/v1"


def test_build_provider_settings_requires_key_and_model() -> None:
    cfg = ChatConfig()
    with pytest.raises(CaoConfigError, match="Please set your API key first."):
        cfg.build_provider_settings()

    cfg.anthropic_api_key = "key"
    cfg.anthropic_model = " "
    with pytest.raises(CaoConfigError, match="Model name"):
        cfg.build_provider_settings()


def test_request_settings_use_config_defaults() -> None:
    cfg = ChatConfig()

    settings = ChatRequestSettings.from_config(cfg)

    assert settings.model == "claude-sonnet-4-5"
    assert settings.max_tokens == 1024
    assert settings.temperature == 1.0
    assert settings.system_prompt == cfg.system_prompt


def test_request_settings_apply_frontmatter_overrides() -> None:
    cfg = ChatConfig()
    frontmatter = {"model": "claude-opus", "max_tokens": 300, "temperature": 0, "system_prompt": ""}

    settings = ChatRequestSettings.from_config(cfg, frontmatter)

    assert settings.model == "claude-opus"
    assert settings.max_tokens == 300
    assert settings.temperature == 0.0
    assert settings.system_prompt == ""


def test_request_settings_ignore_invalid_frontmatter(caplog: pytest.LogCaptureFixture) -> None:
    cfg = ChatConfig()
    frontmatter = {"model": "  ", "max_tokens": -5, "temperature": "hot", "system_prompt": 12}

    with caplog.at_level(logging.WARNING, logger="cao.chat.config"):
        settings = ChatRequestSettings.from_config(cfg, frontmatter)

    assert settings.model == "claude-sonnet-4-5"
    assert settings.max_tokens == 1024
    assert settings.temperature == 1.0
    assert settings.system_prompt == cfg.system_prompt
    assert "max_tokens" in caplog.text
    assert "temperature" in caplog.text


def test_request_settings_reject_invalid_config() -> None:
    cfg = ChatConfig()
    cfg.max_tokens = 0

    with pytest.raises(CaoConfigError, match="Invalid chat request settings"):
        ChatRequestSettings.from_config(cfg)


def test_frontmatter_defaults() -> None:
    cfg = ChatConfig()
    cfg.provider = PROVIDER_OPENAI

    assert frontmatter_defaults(cfg) == {
        "model": "gpt-4o",
        "max_tokens": 1024,
        "temperature": 1.0,
        "system_prompt": "You are a helpful AI assistant",
    }


def test_custom_prompts_default_and_roundtrip() -> None:
    cfg = ChatConfig()
    assert cfg.custom_prompts == list(DEFAULT_TEMPLATES)

    cfg.custom_prompts = [PromptTemplate("Translate", "Translate to 100% French:\n{cursor}")]
    out = ConfigParser()
    cfg.save(out)

    loaded = ChatConfig()
    loaded.load(out)

    assert loaded.custom_prompts == [PromptTemplate("Translate", "Translate to 100% French:\n{cursor}")]
    assert loaded.find_prompt("Translate") is not None
    assert loaded.find_prompt("Summarize") is None


def test_invalid_custom_prompts_are_ignored(caplog: pytest.LogCaptureFixture) -> None:
    parser = ConfigParser(interpolation=None)
    parser[ChatConfig.SECTION] = {
        "custom_prompts": '[{"name": "Ok", "template": "x"}, {"name": "", "template": "y"}, 3]'
    }

    cfg = ChatConfig()
    with caplog.at_level(logging.WARNING, logger="cao.chat.config"):
        cfg.load(parser)

    assert cfg.custom_prompts == [PromptTemplate("Ok", "x")]
    assert "Ignoring invalid custom prompt entry" in caplog.text

    broken = ConfigParser(interpolation=None)
    broken[ChatConfig.SECTION] = {"custom_prompts": "{not json"}
    fallback = ChatConfig()
    fallback.load(broken)

    assert fallback.custom_prompts == list(DEFAULT_TEMPLATES)


def test_chat_folder_paths() -> None:
    cfg = ChatConfig()
    cfg.chat_folder_path = "Chats"

    assert cfg.new_chat_path(datetime(2024, 5, 6, 7, 8, 9)) == "Chats/Chat 2024-05-06 07-08-09.md"
    assert cfg.is_chat_path("Chats/Chat 2024-05-06 07-08-09.md") is True
    assert cfg.is_chat_path("Chats/sub/notes.md") is True
    assert cfg.is_chat_path("ChatsArchive/Chat 1.md") is False
    assert cfg.is_chat_path("Chats/image.png") is False
