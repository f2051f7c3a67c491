"""Configuration helpers for chat transcripts and completion providers."""

from __future__ import annotations

import json
import logging
import os
from configparser import ConfigParser
from datetime import datetime
from typing import TYPE_CHECKING, Any, Mapping, Protocol

from pydantic import BaseModel, Field, ValidationError

from cao.chat.errors import CaoConfigError
from cao.chat.models import SurfaceFormat
from cao.chat.templates import DEFAULT_TEMPLATES, PromptTemplate

if TYPE_CHECKING:  # pragma: no cover - typing only
    import httpx
    from cao.chat.providers.base import ProviderSettings

logger = logging.getLogger(__name__)


class _ConfigReader(Protocol):
    """Protocol describing the subset of config readers we rely on."""

    def get(self, section: str, option: str, *args: Any, **kwargs: Any) -> str:  # pragma: no cover
        ...

    def getboolean(self, section: str, option: str, *args: Any, **kwargs: Any) -> bool:  # pragma: no cover
        ...

    def getint(self, section: str, option: str, *args: Any, **kwargs: Any) -> int:  # pragma: no cover
        ...

    def getfloat(self, section: str, option: str, *args: Any, **kwargs: Any) -> float:  # pragma: no cover
        ...


PROVIDER_ANTHROPIC = "anthropic"
PROVIDER_OPENAI = "openai-compatible"

_DEF_OPENAI_BASE_URL = "https://api.openai.com/v1"
_ENV_ANTHROPIC_KEY = "ANTHROPIC_API_KEY"
_ENV_OPENAI_KEY = "OPENAI_API_KEY"
_CHAT_FILE_PREFIX = "Chat "
_CHAT_FILE_SUFFIX = ".md"

_PROVIDER_SYNONYMS: dict[str, str] = {
    "anthropic": PROVIDER_ANTHROPIC,
    "claude": PROVIDER_ANTHROPIC,
    "openai": PROVIDER_OPENAI,
    "openai-compatible": PROVIDER_OPENAI,
    "openai_compatible": PROVIDER_OPENAI,
}

FRONTMATTER_MODEL = "model"
FRONTMATTER_MAX_TOKENS = "max_tokens"
FRONTMATTER_TEMPERATURE = "temperature"
FRONTMATTER_SYSTEM_PROMPT = "system_prompt"


class ChatConfig:
    """Encapsulates persistent configuration for chat providers and formatting."""

    __slots__ = (
        "provider",
        "anthropic_api_key",
        "openai_api_key",
        "base_url",
        "anthropic_model",
        "openai_model",
        "max_tokens",
        "temperature",
        "system_prompt",
        "chat_folder_path",
        "streaming_response",
        "show_stats",
        "use_callouts",
        "custom_prompts",
        "timeout",
        "_env_keys",
    )

    SECTION = "CAO"

    def __init__(self) -> None:
        self.provider: str = PROVIDER_ANTHROPIC
        self.anthropic_api_key: str = ""
        self.openai_api_key: str = ""
        self.base_url: str = ""
        self.anthropic_model: str = "claude-sonnet-4-5"
        self.openai_model: str = "gpt-4o"
        self.max_tokens: int = 1024
        self.temperature: float = 1.0
        self.system_prompt: str = "You are a helpful AI assistant"
        self.chat_folder_path: str = "CAO/history"
        self.streaming_response: bool = True
        self.show_stats: bool = True
        self.use_callouts: bool = False
        self.custom_prompts: list[PromptTemplate] = list(DEFAULT_TEMPLATES)
        self.timeout: float = 60.0
        self._env_keys: set[str] = set()

    @property
    def surface_format(self) -> SurfaceFormat:
        """Return the transcript syntax this configuration expects."""

        return SurfaceFormat.CALLOUTS if self.use_callouts else SurfaceFormat.HEADERS

    @property
    def active_model(self) -> str:
        if self.provider == PROVIDER_OPENAI:
            return self.openai_model
        return self.anthropic_model

    @property
    def active_api_key(self) -> str:
        if self.provider == PROVIDER_OPENAI:
            return self.openai_api_key
        return self.anthropic_api_key

    def api_key_from_env(self, provider: str | None = None) -> bool:
        """Return ``True`` when the provider's API key originates from an env var."""

        return self._normalise_provider_id(provider or self.provider) in self._env_keys

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def load(self, conf: _ConfigReader) -> None:
        """Populate the settings from a config parser section."""

        reader = _ReaderFacade(conf)
        section = self.SECTION

        self.provider = self._normalise_provider_id(reader.get_str(section, "provider", self.provider))
        self.base_url = reader.get_str(section, "base_url", self.base_url).strip()
        self.anthropic_model = reader.get_str(section, "anthropic_model", self.anthropic_model)
        self.openai_model = reader.get_str(section, "openai_model", self.openai_model)
        self.max_tokens = reader.get_int(section, "max_tokens", self.max_tokens)
        self.temperature = reader.get_float(section, "temperature", self.temperature)
        self.system_prompt = reader.get_str(section, "system_prompt", self.system_prompt)
        self.chat_folder_path = (
            reader.get_str(section, "chat_folder_path", self.chat_folder_path).strip()
            or self.chat_folder_path
        )
        self.streaming_response = reader.get_bool(section, "streaming_response", self.streaming_response)
        self.show_stats = reader.get_bool(section, "show_stats", self.show_stats)
        self.use_callouts = reader.get_bool(section, "use_callouts", self.use_callouts)
        self.timeout = reader.get_float(section, "timeout", self.timeout)
        prompts = self._parse_custom_prompts(reader.get_str(section, "custom_prompts", ""))
        if prompts is not None:
            self.custom_prompts = prompts

        self._env_keys = set()
        self.anthropic_api_key = self._load_key(
            reader.get_str(section, "anthropic_api_key", ""), _ENV_ANTHROPIC_KEY, PROVIDER_ANTHROPIC
        )
        self.openai_api_key = self._load_key(
            reader.get_str(section, "openai_api_key", ""), _ENV_OPENAI_KEY, PROVIDER_OPENAI
        )

    def save(self, conf: ConfigParser) -> None:
        """Persist the current settings into ``conf``."""

        section = self.SECTION
        if not conf.has_section(section):
            conf[section] = {}

        conf[section]["provider"] = self._normalise_provider_id(self.provider)
        conf[section]["base_url"] = str(self.base_url)
        conf[section]["anthropic_model"] = str(self.anthropic_model)
        conf[section]["openai_model"] = str(self.openai_model)
        conf[section]["max_tokens"] = str(self.max_tokens)
        conf[section]["temperature"] = str(self.temperature)
        conf[section]["system_prompt"] = str(self.system_prompt)
        conf[section]["chat_folder_path"] = str(self.chat_folder_path)
        conf[section]["streaming_response"] = str(self.streaming_response)
        conf[section]["show_stats"] = str(self.show_stats)
        conf[section]["use_callouts"] = str(self.use_callouts)
        conf[section]["timeout"] = str(self.timeout)
        conf[section]["custom_prompts"] = self._serialise_custom_prompts(self.custom_prompts)

        for provider, option, value in (
            (PROVIDER_ANTHROPIC, "anthropic_api_key", self.anthropic_api_key),
            (PROVIDER_OPENAI, "openai_api_key", self.openai_api_key),
        ):
            if provider in self._env_keys:
                if conf.has_option(section, option):
                    conf.remove_option(section, option)
            else:
                conf[section][option] = str(value)

    def build_provider_settings(
        self,
        *,
        http_client: "httpx.AsyncClient" | None = None,
    ) -> "ProviderSettings":
        """Translate configuration values into :class:`ProviderSettings`."""

        from cao.chat.providers.base import ProviderSettings  # Local import to avoid cycles

        api_key = (self.active_api_key or "").strip()
        if not api_key:
            raise CaoConfigError("Please set your API key first.")

        model = (self.active_model or "").strip()
        if not model:
            raise CaoConfigError("Model name must be configured for the chat provider.")

        base_url: str | None = None
        if self.provider == PROVIDER_OPENAI:
            base_url = (self.base_url or "").strip() or _DEF_OPENAI_BASE_URL

        return ProviderSettings(
            api_key=api_key,
            model=model,
            base_url=base_url,
            timeout=float(self.timeout),
            http_client=http_client,
        )

    # ------------------------------------------------------------------
    # Chat files and prompts
    # ------------------------------------------------------------------
    def new_chat_path(self, now: datetime | None = None) -> str:
        """Return the vault path of a new chat note inside the chat folder."""

        stamp = (now or datetime.now()).strftime("%Y-%m-%d %H-%M-%S")
        return f"{self.chat_folder_path}/{_CHAT_FILE_PREFIX}{stamp}{_CHAT_FILE_SUFFIX}"

    def is_chat_path(self, path: str) -> bool:
        """Return ``True`` for Markdown notes stored under the chat folder."""

        return path.startswith(self.chat_folder_path + "/") and path.endswith(_CHAT_FILE_SUFFIX)

    def find_prompt(self, name: str) -> PromptTemplate | None:
        return next((prompt for prompt in self.custom_prompts if prompt.name == name), None)

    @staticmethod
    def _parse_custom_prompts(raw: str) -> list[PromptTemplate] | None:
        if not raw.strip():
            return None
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON in custom prompts configuration")
            return None
        if not isinstance(entries, list):
            logger.warning("Custom prompts configuration must be a list")
            return None

        prompts: list[PromptTemplate] = []
        for entry in entries:
            name = entry.get("name") if isinstance(entry, dict) else None
            template = entry.get("template") if isinstance(entry, dict) else None
            if isinstance(name, str) and name.strip() and isinstance(template, str):
                prompts.append(PromptTemplate(name=name, template=template))
            else:
                logger.warning("Ignoring invalid custom prompt entry: %r", entry)
        return prompts

    @staticmethod
    def _serialise_custom_prompts(prompts: list[PromptTemplate]) -> str:
        raw = json.dumps(
            [{"name": prompt.name, "template": prompt.template} for prompt in prompts],
            separators=(",", ":"),
        )
        # Interpolating config parsers reject a bare "%".
        return raw.replace("%", "\\u0025")

    def _load_key(self, stored: str, env_name: str, provider: str) -> str:
        env_key = os.environ.get(env_name, "").strip()
        if env_key:
            if stored:
                logger.debug("Ignoring stored %s API key due to %s override", provider, env_name)
            self._env_keys.add(provider)
            return env_key
        return stored

    @staticmethod
    def _normalise_provider_id(provider: str) -> str:
        key = (provider or PROVIDER_ANTHROPIC).strip().lower()
        return _PROVIDER_SYNONYMS.get(key, key)


class ChatRequestSettings(BaseModel):
    """Request parameters for one chat, after front matter overrides."""

    model: str
    max_tokens: int = Field(..., gt=0)
    temperature: float
    system_prompt: str = ""

    @classmethod
    def from_config(
        cls,
        config: ChatConfig,
        frontmatter: Mapping[str, Any] | None = None,
    ) -> "ChatRequestSettings":
        """Start from the configured defaults and apply valid front matter overrides."""

        values: dict[str, Any] = {
            "model": config.active_model,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "system_prompt": config.system_prompt,
        }
        if frontmatter:
            values.update(_frontmatter_overrides(frontmatter))
        try:
            return cls(**values)
        except ValidationError as exc:
            raise CaoConfigError(f"Invalid chat request settings: {exc}") from exc


def _frontmatter_overrides(frontmatter: Mapping[str, Any]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}

    model = frontmatter.get(FRONTMATTER_MODEL)
    if isinstance(model, str) and model.strip():
        overrides["model"] = model

    max_tokens = frontmatter.get(FRONTMATTER_MAX_TOKENS)
    if isinstance(max_tokens, int) and not isinstance(max_tokens, bool) and max_tokens > 0:
        overrides["max_tokens"] = max_tokens
    elif max_tokens is not None:
        logger.warning("Ignoring invalid '%s' in front matter: %r", FRONTMATTER_MAX_TOKENS, max_tokens)

    temperature = frontmatter.get(FRONTMATTER_TEMPERATURE)
    if isinstance(temperature, (int, float)) and not isinstance(temperature, bool) and temperature == temperature:
        overrides["temperature"] = float(temperature)
    elif temperature is not None:
        logger.warning("Ignoring invalid '%s' in front matter: %r", FRONTMATTER_TEMPERATURE, temperature)

    system_prompt = frontmatter.get(FRONTMATTER_SYSTEM_PROMPT)
    if isinstance(system_prompt, str):
        overrides["system_prompt"] = system_prompt

    return overrides


def frontmatter_defaults(config: ChatConfig) -> dict[str, Any]:
    """Return the front matter written when a chat's options are reset."""

    settings = ChatRequestSettings.from_config(config)
    return {
        FRONTMATTER_MODEL: settings.model,
        FRONTMATTER_MAX_TOKENS: settings.max_tokens,
        FRONTMATTER_TEMPERATURE: settings.temperature,
        FRONTMATTER_SYSTEM_PROMPT: settings.system_prompt,
    }


class _ReaderFacade:
    """Compatibility wrapper around :class:`ConfigParser` variants."""

    __slots__ = ("_conf",)

    def __init__(self, conf: _ConfigReader) -> None:
        self._conf = conf

    def get_str(self, section: str, option: str, default: str) -> str:
        return self._conf.get(section, option, fallback=default)

    def get_bool(self, section: str, option: str, default: bool) -> bool:
        try:
            return self._conf.getboolean(section, option, fallback=default)
        except ValueError:
            logger.warning("Invalid boolean for '%s:%s' in chat config", section, option)
            return default

    def get_int(self, section: str, option: str, default: int) -> int:
        try:
            return self._conf.getint(section, option, fallback=default)
        except ValueError:
            logger.warning("Invalid integer for '%s:%s' in chat config", section, option)
            return default

    def get_float(self, section: str, option: str, default: float) -> float:
        try:
            return self._conf.getfloat(section, option, fallback=default)
        except ValueError:
            logger.warning("Invalid float for '%s:%s' in chat config", section, option)
            return default
