"""A single companion conversation: transcript, proposals and turn handling.

Created: 2026-10-02
Changes:
  - 2026-10-14: Check auto-consent before calling the model.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pookal.agents.assistant import SafetyAgent
from pookal.agents.consent import try_auto_consent
from pookal.agents.interpreter import FinalIntent, ProposeIntent
from pookal.agents.personas import Persona, get_persona
from pookal.agents.proposals import ConfirmOutcome, Proposal, ProposalStatus, ProposalStore

if TYPE_CHECKING:
    from pookal.llm.client import LLMClient
    from pookal.tools.capabilities.registry import CapabilityRegistry

logger = logging.getLogger(__name__)


@dataclass
class Message:
    role: str
    content: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    proposal_id: str | None = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "proposal_id": self.proposal_id,
            "timestamp": self.timestamp,
        }


@dataclass
class TurnResult:
    user_message: Message
    reply: Message
    proposal: Proposal | None = None
    consent: ConfirmOutcome | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_message": self.user_message.to_dict(),
            "reply": self.reply.to_dict(),
            "proposal": self.proposal.to_dict() if self.proposal else None,
            "auto_consented": self.consent is not None,
        }


def describe_proposal(proposal: Proposal) -> str:
    args = ", ".join(f"{k}={v}" for k, v in proposal.args.items())
    line = f"I can run {proposal.capability}({args})."
    if proposal.rationale:
        line += f" {proposal.rationale}"
    return line + " Shall I go ahead?"


def describe_outcome(outcome: ConfirmOutcome) -> str:
    """Human-readable line for a confirmation result."""
    proposal = outcome.proposal
    if not outcome.executed:
        return f"That request was already {proposal.status.value}."

    result = proposal.result
    if result is None or not result.ok:
        error = result.error if result is not None else "unknown error"
        return f"I couldn't complete {proposal.capability}: {error}"

    data = result.data if isinstance(result.data, dict) else {}
    if proposal.capability == "maps.safe_route":
        summary = data.get("summary", "")
        url = data.get("gmaps_url", "")
        notes = " ".join(data.get("safety_notes") or [])
        return " ".join(part for part in (f"Safer route: {summary}.", url, notes) if part)
    if proposal.capability == "twilio.sms":
        return f"Message queued to {data.get('to', 'your contact')}."
    if proposal.capability == "twilio.call":
        return f"Calling {data.get('to', 'your contact')} now."
    return f"Done: {proposal.capability}."


class Conversation:
    """Serializes turns so only one model call or execution runs at a time."""

    def __init__(
        self,
        llm: LLMClient,
        registry: CapabilityRegistry,
        *,
        persona: Persona | str | None = None,
        auto_consent: bool = True,
        temperature: float = 0.0,
        conversation_id: str | None = None,
    ):
        self.id = conversation_id or uuid.uuid4().hex
        self.registry = registry
        self.agent = SafetyAgent(llm, registry, temperature=temperature)
        self.proposals = ProposalStore(registry)
        self.persona = persona if isinstance(persona, Persona) else get_persona(persona)
        self.auto_consent = auto_consent
        self.transcript: list[Message] = []
        self._lock = asyncio.Lock()

    def set_persona(self, persona_id: str) -> Persona:
        self.persona = get_persona(persona_id)
        return self.persona

    def _append(self, role: str, content: str, proposal_id: str | None = None) -> Message:
        message = Message(role=role, content=content, proposal_id=proposal_id)
        self.transcript.append(message)
        return message

    def model_messages(self) -> list[dict[str, str]]:
        """Running message list for the model; proposal turns replay as JSON."""
        out: list[dict[str, str]] = []
        for message in self.transcript:
            content = message.content
            if message.role == "assistant" and message.proposal_id:
                proposal = self.proposals.get(message.proposal_id)
                if proposal.message_id == message.id:
                    content = json.dumps(
                        ProposeIntent(proposal.capability, proposal.args, proposal.rationale).to_dict(),
                        ensure_ascii=False,
                    )
            out.append({"role": message.role, "content": content})
        return out

    async def handle_user_text(self, text: str) -> TurnResult:
        async with self._lock:
            user_message = self._append("user", text)

            outcome = await try_auto_consent(
                text, self.proposals, self.registry, enabled=self.auto_consent
            )
            if outcome is not None:
                reply = self._append("assistant", describe_outcome(outcome), outcome.proposal.id)
                return TurnResult(user_message, reply, outcome.proposal, consent=outcome)

            intent = await self.agent.run_turn(self.model_messages(), self.persona)
            if isinstance(intent, ProposeIntent):
                reply = Message(role="assistant", content="")
                proposal = self.proposals.create_from_interpretation(intent, reply.id)
                reply.content = describe_proposal(proposal)
                reply.proposal_id = proposal.id
                self.transcript.append(reply)
                return TurnResult(user_message, reply, proposal)

            message = intent.message if isinstance(intent, FinalIntent) else str(intent)
            reply = self._append("assistant", message)
            return TurnResult(user_message, reply)

    def set_override(self, proposal_id: str, field_name: str, value: Any) -> bool:
        return self.proposals.set_override(proposal_id, field_name, value)

    async def confirm(self, proposal_id: str, overrides: dict[str, Any] | None = None) -> ConfirmOutcome:
        async with self._lock:
            outcome = await self.proposals.confirm(proposal_id, overrides)
            if outcome.executed:
                self._append("assistant", describe_outcome(outcome), proposal_id)
            return outcome

    async def decline(self, proposal_id: str) -> bool:
        async with self._lock:
            declined = await self.proposals.decline(proposal_id)
            if declined:
                self._append("assistant", "Okay, I won't do that.", proposal_id)
            return declined

    def latest_pending(self) -> Proposal | None:
        return self.proposals.latest_pending()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "persona": self.persona.id,
            "messages": [m.to_dict() for m in self.transcript],
            "proposals": [p.to_dict() for p in self.proposals.all()],
            "pending": [p.id for p in self.proposals.all() if p.status is ProposalStatus.PENDING],
        }
