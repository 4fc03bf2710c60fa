"""Agent turn and direct persona replies.

``SafetyAgent.run_turn`` is the proposal path: the model sees the tool list
and may answer or propose. ``PersonaResponder`` is the plain companion path
used by voice; it never proposes tools.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from pookal.agents.interpreter import FinalIntent, Intent, UnparsedIntent, interpret
from pookal.agents.personas import GENERIC_REASSURANCE, Persona, get_persona
from pookal.agents.prompts import build_prompt_messages
from pookal.errors import LLMTransportError

if TYPE_CHECKING:
    from pookal.llm.client import LLMClient
    from pookal.tools.capabilities.registry import CapabilityRegistry

logger = logging.getLogger(__name__)

TRANSPORT_FALLBACK = (
    "I'm having trouble reaching my assistant right now, but I'm still here with you. "
    "If you feel unsafe, call local emergency services or someone you trust."
)


class SafetyAgent:
    """One model call per turn, interpreted into a typed intent."""

    def __init__(self, llm: LLMClient, registry: CapabilityRegistry, *, temperature: float = 0.0):
        self.llm = llm
        self.registry = registry
        self.temperature = temperature

    async def run_turn(
        self,
        messages: Iterable[Mapping[str, Any]],
        persona: Persona | str | None = None,
    ) -> Intent:
        """Return a ``FinalIntent`` or ``ProposeIntent``; unparsed replies degrade to final."""
        if isinstance(persona, str):
            persona = get_persona(persona)

        prompt = build_prompt_messages(self.registry.list_capabilities(), messages, persona)
        try:
            raw = await self.llm.chat(prompt, temperature=self.temperature)
        except LLMTransportError as exc:
            logger.warning("Agent turn could not reach the model: %s", exc)
            return FinalIntent(message=TRANSPORT_FALLBACK)

        intent = interpret(raw)
        if isinstance(intent, UnparsedIntent):
            if not intent.raw_text.strip():
                return FinalIntent(message=GENERIC_REASSURANCE)
            return intent.as_final()
        return intent


class PersonaResponder:
    """Companion reply for a single utterance, with offline fallback."""

    def __init__(self, llm: LLMClient, persona: Persona | str | None = None, *, temperature: float = 0.7):
        self.llm = llm
        self.persona = persona if isinstance(persona, Persona) else get_persona(persona)
        self.temperature = temperature

    async def respond(self, text: str, history: list[dict[str, str]] | None = None) -> str:
        messages = [{"role": "system", "content": self.persona.system_prompt}]
        messages.extend(history or [])
        messages.append({"role": "user", "content": text})
        try:
            reply = await self.llm.chat(messages, temperature=self.temperature)
        except LLMTransportError as exc:
            logger.warning("Falling back to canned reply for %s: %s", self.persona.name, exc)
            return self.persona.fallback_reply()
        return reply.strip() or self.persona.fallback_reply()

    async def __call__(self, text: str) -> str:
        return await self.respond(text)
