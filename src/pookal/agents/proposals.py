"""Proposal lifecycle: pending -> accepted | declined.

A proposal records that the model *suggested* running a capability. Nothing
runs until the proposal is confirmed, and it runs at most once. Resolved
proposals stay in the store as an audit trail for the conversation.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from pookal.errors import ProposalNotFoundError

if TYPE_CHECKING:
    from pookal.agents.interpreter import ProposeIntent
    from pookal.tools.capabilities.registry import CapabilityRegistry
    from pookal.tools.capabilities.schema import ExecutionResult

logger = logging.getLogger(__name__)


class ProposalStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


@dataclass
class Proposal:
    id: str
    capability: str
    args: dict[str, Any]
    rationale: str = ""
    status: ProposalStatus = ProposalStatus.PENDING
    message_id: str | None = None
    created_seq: int = 0
    result: ExecutionResult | None = None
    declined_by: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status is ProposalStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tool": self.capability,
            "args": dict(self.args),
            "why": self.rationale,
            "status": self.status.value,
            "message_id": self.message_id,
            "result": self.result.to_dict() if self.result is not None else None,
            "declined_by": self.declined_by,
        }


@dataclass
class ConfirmOutcome:
    proposal: Proposal
    executed: bool
    final_args: dict[str, Any] = field(default_factory=dict)

    @property
    def result(self) -> ExecutionResult | None:
        return self.proposal.result

    @property
    def ok(self) -> bool:
        return bool(self.executed and self.proposal.result is not None and self.proposal.result.ok)


class ProposalStore:
    """Proposals and field overrides for a single conversation."""

    def __init__(self, registry: CapabilityRegistry):
        self.registry = registry
        self._proposals: dict[str, Proposal] = {}
        self._overrides: dict[str, dict[str, Any]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._seq = itertools.count(1)

    def _require(self, proposal_id: str) -> Proposal:
        proposal = self._proposals.get(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(proposal_id)
        return proposal

    def _lock_for(self, proposal_id: str) -> asyncio.Lock:
        # Dropped again once the proposal resolves; waiters keep their reference.
        lock = self._locks.get(proposal_id)
        if lock is None:
            lock = self._locks[proposal_id] = asyncio.Lock()
        return lock

    def create_from_interpretation(self, intent: ProposeIntent, message_id: str | None = None) -> Proposal:
        proposal = Proposal(
            id=uuid.uuid4().hex,
            capability=intent.capability,
            args=dict(intent.args),
            rationale=intent.rationale,
            message_id=message_id,
            created_seq=next(self._seq),
        )
        self._proposals[proposal.id] = proposal
        if self.registry.get(proposal.capability) is None:
            logger.warning("Model proposed unregistered capability %r", proposal.capability)
        else:
            logger.info("Proposal %s created for %s", proposal.id, proposal.capability)
        return proposal

    def get(self, proposal_id: str) -> Proposal:
        return self._require(proposal_id)

    def all(self) -> list[Proposal]:
        return sorted(self._proposals.values(), key=lambda p: p.created_seq)

    def pending(self) -> list[Proposal]:
        return [p for p in self.all() if p.is_pending]

    def latest_pending(self) -> Proposal | None:
        pending = self.pending()
        return pending[-1] if pending else None

    def set_override(self, proposal_id: str, field_name: str, value: Any) -> bool:
        """Record a user edit for one argument. Returns False once resolved."""
        proposal = self._require(proposal_id)
        if not proposal.is_pending:
            return False
        self._overrides.setdefault(proposal_id, {})[field_name] = value
        return True

    def overrides(self, proposal_id: str) -> dict[str, Any]:
        self._require(proposal_id)
        return dict(self._overrides.get(proposal_id, {}))

    def final_args(self, proposal_id: str, overrides: dict[str, Any] | None = None) -> dict[str, Any]:
        proposal = self._require(proposal_id)
        merged = dict(proposal.args)
        merged.update(self._overrides.get(proposal_id, {}))
        if overrides:
            merged.update(overrides)
        return merged

    async def confirm(self, proposal_id: str, overrides: dict[str, Any] | None = None) -> ConfirmOutcome:
        proposal = self._require(proposal_id)
        async with self._lock_for(proposal_id):
            if not proposal.is_pending:
                logger.info("Proposal %s already %s; not executing", proposal_id, proposal.status.value)
                self._locks.pop(proposal_id, None)
                return ConfirmOutcome(proposal=proposal, executed=False)

            args = self.final_args(proposal_id, overrides)
            result = await self.registry.invoke(proposal.capability, args)
            proposal.result = result
            if result.ok:
                proposal.status = ProposalStatus.ACCEPTED
            else:
                proposal.status = ProposalStatus.DECLINED
                proposal.declined_by = "system"
                logger.info("Proposal %s failed: %s", proposal_id, result.error)
            self._overrides.pop(proposal_id, None)
            self._locks.pop(proposal_id, None)
            return ConfirmOutcome(proposal=proposal, executed=True, final_args=args)

    async def decline(self, proposal_id: str) -> bool:
        proposal = self._require(proposal_id)
        async with self._lock_for(proposal_id):
            if not proposal.is_pending:
                self._locks.pop(proposal_id, None)
                return False
            proposal.status = ProposalStatus.DECLINED
            proposal.declined_by = "user"
            self._overrides.pop(proposal_id, None)
            self._locks.pop(proposal_id, None)
            logger.info("Proposal %s declined by user", proposal_id)
            return True
