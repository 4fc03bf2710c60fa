"""Conversation turns: final answers, proposals, auto-consent and fallbacks."""

from __future__ import annotations

import json

import pytest

from pookal.agents.assistant import TRANSPORT_FALLBACK, PersonaResponder, SafetyAgent
from pookal.agents.conversation import Conversation
from pookal.agents.personas import PERSONAS, get_persona
from pookal.agents.prompts import SYSTEM_CONTRACT
from pookal.agents.proposals import ProposalStatus
from pookal.errors import LLMTransportError
from pookal.tools.capabilities.registry import build_default_registry

CALL_PROPOSAL = json.dumps(
    {
        "type": "propose",
        "tool": "twilio.call",
        "args": {"to": "+917305025707", "message": "I have arrived safely."},
        "why": "Reassurance call.",
    }
)


@pytest.mark.asyncio
async def test_prompt_carries_contract_tools_and_few_shot(settings, fake_llm_factory) -> None:
    llm = fake_llm_factory('{"type":"final","message":"Stay on the lit side of the road."}')
    agent = SafetyAgent(llm, build_default_registry(settings))

    intent = await agent.run_turn([{"role": "user", "content": "Is it safe to walk now?"}], "sage")
    assert intent.message == "Stay on the lit side of the road."

    prompt = llm.calls[0]
    assert prompt[0] == {"role": "system", "content": SYSTEM_CONTRACT}
    assert prompt[1]["content"].startswith("Tools: ")
    tools = json.loads(prompt[1]["content"][len("Tools: "):])
    assert [t["name"] for t in tools] == ["maps.safe_route", "twilio.sms", "twilio.call"]
    assert "Sage" in prompt[2]["content"]
    assert prompt[-1] == {"role": "user", "content": "Is it safe to walk now?"}
    assert any("MG Road" in m["content"] for m in prompt if m["role"] == "user")


@pytest.mark.asyncio
async def test_unparsed_reply_is_shown_as_text(settings, fake_llm_factory) -> None:
    agent = SafetyAgent(fake_llm_factory("You are not alone."), build_default_registry(settings))
    intent = await agent.run_turn([{"role": "user", "content": "hi"}])
    assert intent.to_dict() == {"type": "final", "message": "You are not alone."}


@pytest.mark.asyncio
async def test_transport_failure_gives_reassurance(settings, fake_llm_factory) -> None:
    agent = SafetyAgent(
        fake_llm_factory(LLMTransportError("ollama", "connection refused")), build_default_registry(settings)
    )
    intent = await agent.run_turn([{"role": "user", "content": "hi"}])
    assert intent.message == TRANSPORT_FALLBACK


@pytest.mark.asyncio
async def test_proposal_then_yes_executes_once(settings, fake_llm_factory, twilio_factory, twilio_clients) -> None:
    llm = fake_llm_factory(CALL_PROPOSAL)
    registry = build_default_registry(settings, twilio_client_factory=twilio_factory)
    conversation = Conversation(llm, registry)

    turn = await conversation.handle_user_text("Call +91 7305025707 and say I have arrived safely.")
    assert turn.proposal is not None
    assert turn.proposal.status is ProposalStatus.PENDING
    assert turn.reply.proposal_id == turn.proposal.id
    assert turn.proposal.message_id == turn.reply.id
    assert twilio_clients == []

    consent = await conversation.handle_user_text("yes, place the call")
    assert consent.consent is not None
    assert consent.proposal is turn.proposal
    assert turn.proposal.status is ProposalStatus.ACCEPTED
    assert "Calling +917305025707" in consent.reply.content
    assert len(llm.calls) == 1
    assert len(twilio_clients[0].calls.created) == 1

    again = await conversation.handle_user_text("yes")
    assert again.consent is None
    assert len(twilio_clients[0].calls.created) == 1


@pytest.mark.asyncio
async def test_explicit_confirm_with_override(settings, fake_llm_factory, twilio_factory, twilio_clients) -> None:
    registry = build_default_registry(settings, twilio_client_factory=twilio_factory)
    conversation = Conversation(fake_llm_factory(CALL_PROPOSAL), registry, auto_consent=False)

    turn = await conversation.handle_user_text("Call my sister")
    conversation.set_override(turn.proposal.id, "to", "+919812345678")
    outcome = await conversation.confirm(turn.proposal.id)

    assert outcome.ok is True
    assert twilio_clients[0].calls.created[0]["to"] == "+919812345678"
    assert conversation.transcript[-1].proposal_id == turn.proposal.id


@pytest.mark.asyncio
async def test_decline_records_and_replays_proposal_as_json(settings, fake_llm_factory) -> None:
    llm = fake_llm_factory(CALL_PROPOSAL, '{"type":"final","message":"Alright."}')
    conversation = Conversation(llm, build_default_registry(settings))

    turn = await conversation.handle_user_text("Call my mom")
    assert await conversation.decline(turn.proposal.id) is True
    assert turn.proposal.declined_by == "user"

    await conversation.handle_user_text("Never mind, thanks")
    replayed = llm.calls[1]
    assert {"role": "assistant", "content": json.dumps(json.loads(CALL_PROPOSAL))} in replayed
    assert conversation.to_dict()["pending"] == []


@pytest.mark.asyncio
async def test_persona_responder_falls_back_offline(fake_llm_factory) -> None:
    responder = PersonaResponder(fake_llm_factory(LLMTransportError("ollama", "down")), "marigold")
    reply = await responder("I'm nervous")
    assert reply in get_persona("marigold").fallback_replies

    online = fake_llm_factory("  You've got this!  ")
    assert await PersonaResponder(online, "orchid")("hello") == "You've got this!"
    assert online.calls[0][0]["content"] == get_persona("orchid").system_prompt
    assert online.calls[0][-1] == {"role": "user", "content": "hello"}


def test_unknown_persona_defaults_to_lily() -> None:
    assert get_persona("nobody") is PERSONAS[0]
    assert get_persona("SAGE").name == "Sage"
