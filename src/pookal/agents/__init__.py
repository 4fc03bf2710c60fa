"""Agent layer: interpretation, proposals, consent and conversations."""

from pookal.agents.assistant import PersonaResponder, SafetyAgent
from pookal.agents.consent import CONSENT_PHRASES, matches_consent, try_auto_consent
from pookal.agents.conversation import Conversation, Message, TurnResult
from pookal.agents.interpreter import FinalIntent, ProposeIntent, UnparsedIntent, interpret
from pookal.agents.personas import PERSONAS, Persona, get_persona
from pookal.agents.proposals import ConfirmOutcome, Proposal, ProposalStatus, ProposalStore

__all__ = [
    "CONSENT_PHRASES",
    "PERSONAS",
    "ConfirmOutcome",
    "Conversation",
    "FinalIntent",
    "Message",
    "Persona",
    "PersonaResponder",
    "Proposal",
    "ProposalStatus",
    "ProposalStore",
    "ProposeIntent",
    "SafetyAgent",
    "TurnResult",
    "UnparsedIntent",
    "get_persona",
    "interpret",
    "matches_consent",
    "try_auto_consent",
]
