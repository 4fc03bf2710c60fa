"""Provider-agnostic chat completion client.

Ollama is spoken to directly over httpx (``/api/chat``); OpenAI and
OpenAI-compatible endpoints go through ``openai.AsyncOpenAI``; Anthropic goes
through ``anthropic.AsyncAnthropic``. Every provider failure is raised as
``LLMTransportError`` so callers have a single thing to catch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from pookal.config import Settings
from pookal.errors import LLMTransportError

logger = logging.getLogger(__name__)

_PROVIDERS = frozenset({"ollama", "openai", "openai_compatible", "anthropic"})


@dataclass(frozen=True)
class LLMClient:
    """Resolved provider, model and credentials for one completion call."""

    provider: str
    model: str
    api_key: str | None = None
    ollama_host: str = "http://127.0.0.1:11434"
    openai_compatible_base_url: str = ""
    timeout: float = 30.0

    @property
    def is_ollama(self) -> bool:
        return self.provider == "ollama"

    @property
    def is_openai_compatible(self) -> bool:
        return self.provider == "openai_compatible"

    @property
    def is_anthropic(self) -> bool:
        return self.provider == "anthropic"

    async def chat(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.0,
        max_tokens: int = 512,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> str:
        """Run a single non-streaming completion and return the reply text."""
        temperature = max(0.0, min(1.0, float(temperature)))
        try:
            if self.is_ollama:
                return await self._chat_ollama(messages, temperature, transport)
            if self.is_anthropic:
                return await self._chat_anthropic(messages, temperature, max_tokens)
            return await self._chat_openai(messages, temperature, max_tokens)
        except LLMTransportError:
            raise
        except Exception as exc:
            logger.warning("%s completion failed: %s", self.provider, exc)
            raise LLMTransportError(self.provider, str(exc) or type(exc).__name__) from exc

    async def _chat_ollama(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        transport: httpx.AsyncBaseTransport | None,
    ) -> str:
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": temperature},
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=transport) as client:
            resp = await client.post(f"{self.ollama_host.rstrip('/')}/api/chat", json=payload)
            if resp.status_code >= 400:
                raise LLMTransportError("ollama", f"HTTP {resp.status_code}")
            data = resp.json()
        content = (data.get("message") or {}).get("content", "") if isinstance(data, dict) else ""
        return str(content or "")

    async def _chat_openai(
        self, messages: list[dict[str, str]], temperature: float, max_tokens: int
    ) -> str:
        from openai import AsyncOpenAI

        kwargs: dict[str, Any] = {"api_key": self.api_key or "none", "timeout": self.timeout, "max_retries": 1}
        if self.is_openai_compatible and self.openai_compatible_base_url:
            kwargs["base_url"] = self.openai_compatible_base_url
        client = AsyncOpenAI(**kwargs)
        response = await client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        message = response.choices[0].message if response and response.choices else None
        return str(getattr(message, "content", "") or "")

    async def _chat_anthropic(
        self, messages: list[dict[str, str]], temperature: float, max_tokens: int
    ) -> str:
        from anthropic import AsyncAnthropic

        # Anthropic takes system text separately from the turn list.
        system_parts = [m["content"] for m in messages if m.get("role") == "system"]
        turns = [m for m in messages if m.get("role") != "system"]
        client = AsyncAnthropic(api_key=self.api_key, timeout=self.timeout, max_retries=1)
        response = await client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system="\n\n".join(system_parts),
            messages=turns,
        )
        parts: list[str] = []
        for block in getattr(response, "content", []) or []:
            if getattr(block, "type", "") == "text":
                parts.append(str(getattr(block, "text", "") or ""))
        return "".join(parts)


def resolve_llm_client(settings: Settings, force_provider: str | None = None) -> LLMClient:
    """Pick provider, model and key from settings."""
    provider = (force_provider or settings.llm_provider or "ollama").strip().lower()
    if provider not in _PROVIDERS:
        logger.warning("Unknown llm_provider '%s', falling back to ollama", provider)
        provider = "ollama"

    if provider == "openai":
        return LLMClient(
            provider=provider,
            model=settings.openai_model,
            api_key=settings.openai_api_key,
            timeout=settings.llm_timeout,
        )
    if provider == "openai_compatible":
        return LLMClient(
            provider=provider,
            model=settings.openai_compatible_model or settings.openai_model,
            api_key=settings.openai_compatible_api_key,
            openai_compatible_base_url=settings.openai_compatible_base_url,
            timeout=settings.llm_timeout,
        )
    if provider == "anthropic":
        return LLMClient(
            provider=provider,
            model=settings.anthropic_model,
            api_key=settings.anthropic_api_key,
            timeout=settings.llm_timeout,
        )
    return LLMClient(
        provider="ollama",
        model=settings.ollama_model,
        ollama_host=settings.ollama_host,
        timeout=settings.llm_timeout,
    )
