"""Exception types shared across Pookal.

Most failures in Pookal are reported as values (``ExecutionResult``,
``UnparsedIntent``, an idle ``VoiceSession`` with ``failed_stage`` set).
Exceptions are reserved for the few seams where a caller has to decide
how to recover.
"""

from __future__ import annotations


class PookalError(Exception):
    """Base class for Pookal errors."""


class LLMTransportError(PookalError):
    """Raised when the inference endpoint cannot be reached or answers badly."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class VoiceStageError(PookalError):
    """Raised by voice backends with the pipeline stage that failed."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(f"{stage} failed: {message}")


class ProposalNotFoundError(KeyError):
    """Raised when an operation names a proposal id the store does not know."""

    def __init__(self, proposal_id: str):
        self.proposal_id = proposal_id
        super().__init__(proposal_id)

    def __str__(self) -> str:
        return f"Unknown proposal: {self.proposal_id}"


class RegistryFrozenError(RuntimeError):
    """Raised when registering a capability after start-up."""
