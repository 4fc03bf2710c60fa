"""Proposal lifecycle: overrides, single execution and idempotent resolution."""

from __future__ import annotations

import asyncio

import pytest
from pydantic import BaseModel

from pookal.agents.interpreter import ProposeIntent
from pookal.agents.proposals import ProposalStatus, ProposalStore
from pookal.errors import ProposalNotFoundError
from pookal.tools.capabilities.registry import CapabilityRegistry, build_default_registry
from pookal.tools.capabilities.schema import CapabilitySpec, ExecutionResult


class NoteArgs(BaseModel):
    text: str


def _counting_registry(calls: list, *, fail: bool = False, delay: float = 0.0) -> CapabilityRegistry:
    async def executor(args: NoteArgs) -> ExecutionResult:
        calls.append(args.text)
        if delay:
            await asyncio.sleep(delay)
        if fail:
            return ExecutionResult.failure("provider down")
        return ExecutionResult.success({"text": args.text})

    return CapabilityRegistry(
        (CapabilitySpec(name="notes.write", description="Write a note", args_model=NoteArgs, executor=executor),)
    ).freeze()


def _propose(store: ProposalStore, text: str = "hello", capability: str = "notes.write"):
    return store.create_from_interpretation(ProposeIntent(capability, {"text": text}, "why not"), "m1")


@pytest.mark.asyncio
async def test_confirm_executes_once_and_is_idempotent() -> None:
    calls: list[str] = []
    store = ProposalStore(_counting_registry(calls))
    proposal = _propose(store)
    assert proposal.status is ProposalStatus.PENDING
    assert proposal.message_id == "m1"

    first = await store.confirm(proposal.id)
    assert first.executed is True
    assert first.ok is True
    assert proposal.status is ProposalStatus.ACCEPTED
    assert proposal.result is not None and proposal.result.data == {"text": "hello"}

    second = await store.confirm(proposal.id)
    assert second.executed is False
    assert proposal.status is ProposalStatus.ACCEPTED
    assert await store.decline(proposal.id) is False
    assert proposal.status is ProposalStatus.ACCEPTED
    assert calls == ["hello"]


@pytest.mark.asyncio
async def test_declined_proposal_never_executes() -> None:
    calls: list[str] = []
    store = ProposalStore(_counting_registry(calls))
    proposal = _propose(store)
    store.set_override(proposal.id, "text", "edited")

    assert await store.decline(proposal.id) is True
    assert proposal.status is ProposalStatus.DECLINED
    assert proposal.declined_by == "user"
    assert proposal.result is None
    assert store.overrides(proposal.id) == {}

    assert await store.decline(proposal.id) is False
    outcome = await store.confirm(proposal.id)
    assert outcome.executed is False
    assert proposal.status is ProposalStatus.DECLINED
    assert calls == []


@pytest.mark.asyncio
async def test_overrides_merge_stored_then_explicit() -> None:
    calls: list[str] = []
    store = ProposalStore(_counting_registry(calls))
    proposal = _propose(store, "original")
    assert store.set_override(proposal.id, "text", "stored") is True

    outcome = await store.confirm(proposal.id, overrides={"text": "explicit"})
    assert outcome.final_args == {"text": "explicit"}
    assert calls == ["explicit"]
    assert proposal.args == {"text": "original"}
    assert store.overrides(proposal.id) == {}
    assert store.set_override(proposal.id, "text", "late") is False


@pytest.mark.asyncio
async def test_failed_execution_declines_with_result_attached() -> None:
    calls: list[str] = []
    store = ProposalStore(_counting_registry(calls, fail=True))
    proposal = _propose(store)

    outcome = await store.confirm(proposal.id)
    assert outcome.executed is True
    assert outcome.ok is False
    assert proposal.status is ProposalStatus.DECLINED
    assert proposal.declined_by == "system"
    assert proposal.result is not None and proposal.result.error == "provider down"


@pytest.mark.asyncio
async def test_unregistered_capability_is_recorded_and_fails_on_confirm() -> None:
    calls: list[str] = []
    store = ProposalStore(_counting_registry(calls))
    proposal = _propose(store, capability="shell.exec")
    assert proposal.is_pending

    outcome = await store.confirm(proposal.id)
    assert outcome.result is not None
    assert outcome.result.error_code == "unknown_capability"
    assert proposal.status is ProposalStatus.DECLINED
    assert calls == []


@pytest.mark.asyncio
async def test_concurrent_confirms_execute_once() -> None:
    calls: list[str] = []
    store = ProposalStore(_counting_registry(calls, delay=0.01))
    proposal = _propose(store)

    outcomes = await asyncio.gather(store.confirm(proposal.id), store.confirm(proposal.id))
    assert sorted(o.executed for o in outcomes) == [False, True]
    assert calls == ["hello"]


@pytest.mark.asyncio
async def test_latest_pending_follows_creation_order() -> None:
    store = ProposalStore(_counting_registry([]))
    assert store.latest_pending() is None
    first = _propose(store, "one")
    second = _propose(store, "two")
    assert store.latest_pending() is second

    await store.decline(second.id)
    assert store.latest_pending() is first
    assert [p.id for p in store.all()] == [first.id, second.id]
    assert [p.id for p in store.pending()] == [first.id]


@pytest.mark.asyncio
async def test_unknown_proposal_id_raises() -> None:
    store = ProposalStore(_counting_registry([]))
    with pytest.raises(ProposalNotFoundError):
        await store.confirm("missing")
    with pytest.raises(KeyError):
        store.set_override("missing", "text", "x")


@pytest.mark.asyncio
async def test_telephony_override_number_is_used(settings, twilio_factory, twilio_clients) -> None:
    registry = build_default_registry(settings, twilio_client_factory=twilio_factory)
    store = ProposalStore(registry)
    proposal = store.create_from_interpretation(
        ProposeIntent("twilio.call", {"to": "+917305025707", "message": "I have arrived safely."}),
        "m1",
    )
    store.set_override(proposal.id, "to", "+919876543210")

    outcome = await store.confirm(proposal.id)
    assert outcome.ok is True
    assert len(twilio_clients) == 1
    (created,) = twilio_clients[0].calls.created
    assert created["to"] == "+919876543210"
    assert created["from_"] == "+15550001111"
    assert outcome.proposal.result.data["to"] == "+919876543210"


@pytest.mark.asyncio
async def test_resolved_proposals_release_their_locks() -> None:
    calls: list[str] = []
    store = ProposalStore(_counting_registry(calls, delay=0.01))
    accepted = _propose(store, "a")
    declined = _propose(store, "b")

    await asyncio.gather(store.confirm(accepted.id), store.confirm(accepted.id))
    await store.decline(declined.id)
    await store.decline(declined.id)
    await store.confirm(declined.id)

    assert calls == ["a"]
    assert store._locks == {}
