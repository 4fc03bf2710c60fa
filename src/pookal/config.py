"""Runtime settings for Pookal.

Resolution order (highest first): explicit keyword arguments, environment
variables (``POOKAL_*`` plus the usual provider variables such as
``ORS_API_KEY`` and ``TWILIO_AUTH_TOKEN``), ``~/.pookal/config.json``, and the
encrypted credential store for secret fields.
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from pookal.credentials import SECRET_FIELDS, CredentialStore

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"


def get_config_dir() -> Path:
    """Return the Pookal config directory (``POOKAL_CONFIG_DIR`` or ~/.pookal)."""
    override = os.environ.get("POOKAL_CONFIG_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".pookal"


def get_config_path() -> Path:
    return get_config_dir() / CONFIG_FILENAME


def _env(name: str, *extra: str) -> AliasChoices:
    return AliasChoices(name, f"POOKAL_{name.upper()}", *extra)


class _CredentialStoreSource(PydanticBaseSettingsSource):
    """Feeds secret fields from the encrypted credential store."""

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        store = CredentialStore(get_config_dir())
        return {
            name: value
            for name, value in store.get_all().items()
            if name in SECRET_FIELDS and name in self.settings_cls.model_fields and value
        }


class Settings(BaseSettings):
    """All tunables for the assistant, its capabilities and the voice pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="POOKAL_",
        populate_by_name=True,
        extra="ignore",
    )

    # LLM
    llm_provider: str = "ollama"  # ollama | openai | openai_compatible | anthropic
    ollama_host: str = Field(
        default="http://127.0.0.1:11434", validation_alias=_env("ollama_host", "OLLAMA_BASE_URL")
    )
    ollama_model: str = "llama2"
    openai_api_key: str | None = Field(default=None, validation_alias=_env("openai_api_key", "OPENAI_API_KEY"))
    openai_model: str = "gpt-4o-mini"
    openai_compatible_base_url: str = ""
    openai_compatible_api_key: str | None = None
    openai_compatible_model: str = ""
    anthropic_api_key: str | None = Field(
        default=None, validation_alias=_env("anthropic_api_key", "ANTHROPIC_API_KEY")
    )
    anthropic_model: str = "claude-3-5-haiku-latest"
    llm_timeout: float = 30.0
    agent_temperature: float = 0.0

    # Conversation
    persona: str = "lily"
    auto_consent_enabled: bool = True

    # Routing
    ors_api_key: str | None = Field(default=None, validation_alias=_env("ors_api_key", "ORS_API_KEY"))
    ors_base_url: str = "https://api.openrouteservice.org"
    nominatim_url: str = "https://nominatim.openstreetmap.org"
    geocoder_user_agent: str = "PinjiPookal/1.0"
    provider_timeout: float = 15.0

    # Telephony
    twilio_account_sid: str | None = Field(
        default=None, validation_alias=_env("twilio_account_sid", "TWILIO_ACCOUNT_SID")
    )
    twilio_auth_token: str | None = Field(
        default=None, validation_alias=_env("twilio_auth_token", "TWILIO_AUTH_TOKEN")
    )
    twilio_from_number: str | None = Field(
        default=None, validation_alias=_env("twilio_from_number", "TWILIO_FROM_NUMBER")
    )
    twilio_voice_language: str = "en-IN"

    # Voice
    voice_auto_stop_seconds: float = 4.0
    voice_sample_rate: int = 16000
    voice_channels: int = 1
    whisper_model: str = "tiny.en"
    whisper_device: str = "cpu"
    piper_model_path: str = "~/.local/share/piper/en_US-amy-low.onnx"

    # Web
    web_host: str = "127.0.0.1"
    web_port: int = 8888
    log_level: str = "INFO"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            JsonConfigSettingsSource(settings_cls, json_file=get_config_path()),
            _CredentialStoreSource(settings_cls),
        )

    @classmethod
    def load(cls) -> Settings:
        """Build a fresh Settings from env, config.json and the credential store."""
        return cls()

    def save(self) -> None:
        """Persist settings: secrets to the credential store, the rest to config.json."""
        config_dir = get_config_dir()
        config_dir.mkdir(parents=True, exist_ok=True)
        data = self.model_dump()

        store = CredentialStore(config_dir)
        for name in SECRET_FIELDS:
            value = data.pop(name, None)
            if value:
                store.set(name, value)

        get_config_path().write_text(json.dumps(data, indent=2))
        logger.debug("Saved settings to %s", get_config_path())

    def missing_twilio_credentials(self) -> bool:
        return not (self.twilio_account_sid and self.twilio_auth_token and self.twilio_from_number)


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide Settings instance."""
    return Settings.load()
