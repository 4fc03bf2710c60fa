"""Auto-consent: affirmative phrases confirm only the latest pending proposal."""

from __future__ import annotations

import pytest
from pydantic import BaseModel

from pookal.agents.consent import CONSENT_PHRASES, matches_consent, try_auto_consent
from pookal.agents.interpreter import ProposeIntent
from pookal.agents.proposals import ProposalStatus, ProposalStore
from pookal.tools.capabilities.registry import CapabilityRegistry, build_default_registry
from pookal.tools.capabilities.schema import CapabilitySpec, ExecutionResult


class TextArgs(BaseModel):
    text: str


def _registry(calls: list, *, allow_auto_consent: bool = True) -> CapabilityRegistry:
    async def executor(args: TextArgs) -> ExecutionResult:
        calls.append(args.text)
        return ExecutionResult.success()

    return CapabilityRegistry(
        (
            CapabilitySpec(
                name="notes.write",
                description="Write a note",
                args_model=TextArgs,
                executor=executor,
                allow_auto_consent=allow_auto_consent,
            ),
        )
    ).freeze()


@pytest.mark.parametrize("text", ["yes", "Yes please", "OK", "okay!", "go ahead", "Sure, send it", "I agree."])
def test_affirmations_match(text: str) -> None:
    assert matches_consent(text)


@pytest.mark.parametrize(
    "text",
    [
        "",
        "no",
        "yes, wait",
        "don't do it",
        "do not proceed",
        "cancel",
        "not now, okay?",
        "yesterday was fine",
        "okaying nothing",
        "tell me about Indiranagar",
        "I'm not sure",
        "I’m not okay, please help",
        "is that ok?",
        "make sure they are safe",
        "yeah I guess I'm unsure",
        "go ahead?",
        "ok so what happens next",
    ],
)
def test_non_affirmations_do_not_match(text: str) -> None:
    assert not matches_consent(text)


@pytest.mark.parametrize("text", ["ok please", "Please, yes!", "yeah yeah", "Sure."])
def test_short_replies_count_only_on_their_own(text: str) -> None:
    assert matches_consent(text)
    assert not matches_consent(f"{text} but tell me the route first")


def test_phrase_set_is_fixed() -> None:
    assert "yes" in CONSENT_PHRASES
    assert "call them" in CONSENT_PHRASES
    assert "whatever" not in CONSENT_PHRASES


@pytest.mark.asyncio
async def test_selects_most_recent_pending_proposal() -> None:
    calls: list[str] = []
    registry = _registry(calls)
    store = ProposalStore(registry)
    older = store.create_from_interpretation(ProposeIntent("notes.write", {"text": "older"}), "m1")
    newer = store.create_from_interpretation(ProposeIntent("notes.write", {"text": "newer"}), "m2")

    outcome = await try_auto_consent("yes, go ahead", store, registry)
    assert outcome is not None
    assert outcome.proposal is newer
    assert newer.status is ProposalStatus.ACCEPTED
    assert older.status is ProposalStatus.PENDING
    assert calls == ["newer"]


@pytest.mark.asyncio
async def test_no_pending_proposal_means_no_action() -> None:
    calls: list[str] = []
    registry = _registry(calls)
    store = ProposalStore(registry)
    assert await try_auto_consent("yes", store, registry) is None
    assert calls == []


@pytest.mark.asyncio
async def test_uses_stored_overrides() -> None:
    calls: list[str] = []
    registry = _registry(calls)
    store = ProposalStore(registry)
    proposal = store.create_from_interpretation(ProposeIntent("notes.write", {"text": "draft"}), "m1")
    store.set_override(proposal.id, "text", "final")

    await try_auto_consent("ok", store, registry)
    assert calls == ["final"]


@pytest.mark.asyncio
async def test_capability_can_opt_out_and_switch_disables() -> None:
    calls: list[str] = []
    registry = _registry(calls, allow_auto_consent=False)
    store = ProposalStore(registry)
    proposal = store.create_from_interpretation(ProposeIntent("notes.write", {"text": "x"}), "m1")

    assert await try_auto_consent("yes", store, registry) is None
    assert proposal.is_pending

    registry_on = _registry(calls)
    store_on = ProposalStore(registry_on)
    store_on.create_from_interpretation(ProposeIntent("notes.write", {"text": "y"}), "m1")
    assert await try_auto_consent("yes", store_on, registry_on, enabled=False) is None
    assert calls == []


@pytest.mark.asyncio
async def test_transport_exception_is_swallowed(monkeypatch: pytest.MonkeyPatch) -> None:
    registry = _registry([])
    store = ProposalStore(registry)
    store.create_from_interpretation(ProposeIntent("notes.write", {"text": "x"}), "m1")

    async def boom(proposal_id, overrides=None):
        raise ConnectionError("network down")

    monkeypatch.setattr(store, "confirm", boom)
    assert await try_auto_consent("yes", store, registry) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["I'm not sure", "I'm not okay, please help", "is that ok?", "make sure they are safe"])
async def test_hesitant_reply_leaves_pending_call_alone(text: str, settings, twilio_factory, twilio_clients) -> None:
    registry = build_default_registry(settings, twilio_client_factory=twilio_factory)
    store = ProposalStore(registry)
    proposal = store.create_from_interpretation(
        ProposeIntent("twilio.call", {"to": "+917305025707", "message": "hi"}), "m1"
    )

    assert await try_auto_consent(text, store, registry) is None
    assert proposal.is_pending
    assert twilio_clients == []
