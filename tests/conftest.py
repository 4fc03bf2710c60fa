"""Shared fixtures: isolated config dir, settings and fake collaborators."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from pookal.config import Settings, get_settings

_PROVIDER_ENV = (
    "OLLAMA_BASE_URL",
    "ORS_API_KEY",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_FROM_NUMBER",
)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("POOKAL_CONFIG_DIR", str(tmp_path / "pookal"))
    for name in _PROVIDER_ENV:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield tmp_path / "pookal"
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        ors_api_key="ors-test-key",
        twilio_account_sid="AC123",
        twilio_auth_token="secret",
        twilio_from_number="+15550001111",
    )


class FakeLLM:
    """Stands in for ``LLMClient``; replies are popped in order."""

    provider = "fake"
    model = "fake-model"

    def __init__(self, *replies: str | Exception):
        self.replies = list(replies)
        self.calls: list[list[dict[str, str]]] = []

    async def chat(self, messages, *, temperature: float = 0.0, max_tokens: int = 512, transport=None) -> str:
        self.calls.append(list(messages))
        reply = self.replies.pop(0) if self.replies else '{"type":"final","message":"ok"}'
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def fake_llm_factory() -> Callable[..., FakeLLM]:
    return FakeLLM


class FakeTwilioResource:
    def __init__(self, sid_prefix: str):
        self.sid_prefix = sid_prefix
        self.created: list[dict] = []

    def create(self, **kwargs):
        self.created.append(kwargs)

        class _Record:
            sid = f"{self.sid_prefix}{len(self.created)}"
            status = "queued"
            to = kwargs.get("to")

        return _Record()


class FakeTwilioClient:
    def __init__(self, account_sid: str, auth_token: str):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.messages = FakeTwilioResource("SM")
        self.calls = FakeTwilioResource("CA")


@pytest.fixture
def twilio_clients() -> list[FakeTwilioClient]:
    return []


@pytest.fixture
def twilio_factory(twilio_clients):
    def factory(account_sid: str, auth_token: str) -> FakeTwilioClient:
        client = FakeTwilioClient(account_sid, auth_token)
        twilio_clients.append(client)
        return client

    return factory
