"""Treat a short affirmative reply as confirmation of the latest proposal.

Users tend to answer "yes, send it" in the chat instead of pressing a
confirm button. The phrase list below is deliberately small and reviewed;
widening it lowers the bar for triggering SMS and calls.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pookal.agents.proposals import ConfirmOutcome, ProposalStore
    from pookal.tools.capabilities.registry import CapabilityRegistry

logger = logging.getLogger(__name__)

# Only count when they make up the whole reply ("yes", "ok please").
SHORT_AFFIRMATIONS: tuple[str, ...] = (
    "yes",
    "yeah",
    "yep",
    "sure",
    "ok",
    "okay",
)

ACTION_PHRASES: tuple[str, ...] = (
    "i agree",
    "agreed",
    "confirm",
    "confirmed",
    "go ahead",
    "do it",
    "please do",
    "proceed",
    "send it",
    "send the message",
    "place the call",
    "make the call",
    "call them",
)

CONSENT_PHRASES: tuple[str, ...] = SHORT_AFFIRMATIONS + ACTION_PHRASES

NEGATION_MARKERS: tuple[str, ...] = (
    "no",
    "not",
    "not sure",
    "unsure",
    "don't",
    "dont",
    "do not",
    "cancel",
    "stop",
    "wait",
    "not now",
)


def _alternatives(phrases: tuple[str, ...]) -> str:
    escaped = sorted((re.escape(p).replace(r"\ ", r"\s+") for p in phrases), key=len, reverse=True)
    return "|".join(escaped)


def _phrase_pattern(phrases: tuple[str, ...]) -> re.Pattern[str]:
    return re.compile(r"(?<![\w'])(?:" + _alternatives(phrases) + r")(?![\w'])", re.IGNORECASE)


def _whole_reply_pattern(phrases: tuple[str, ...]) -> re.Pattern[str]:
    word = _alternatives(phrases)
    return re.compile(
        rf"^(?:please[\s,]+)?(?:{word})(?:[\s,.!]+(?:{word}|please))*[\s.!]*$",
        re.IGNORECASE,
    )


_ACTION_RE = _phrase_pattern(ACTION_PHRASES)
_SHORT_REPLY_RE = _whole_reply_pattern(SHORT_AFFIRMATIONS)
_NEGATION_RE = _phrase_pattern(NEGATION_MARKERS)


def _normalize(text: str) -> str:
    return str(text or "").replace("’", "'").strip()


def matches_consent(text: str) -> bool:
    """True when ``text`` affirms and carries no negation.

    Questions never count, and a bare "ok" or "sure" only counts as the
    whole reply: "make sure they are safe" is not consent.
    """
    normalized = _normalize(text)
    if not normalized or normalized.endswith("?"):
        return False
    if _NEGATION_RE.search(normalized):
        return False
    if _SHORT_REPLY_RE.match(normalized):
        return True
    return _ACTION_RE.search(normalized) is not None


async def try_auto_consent(
    text: str,
    store: ProposalStore,
    registry: CapabilityRegistry,
    *,
    enabled: bool = True,
) -> ConfirmOutcome | None:
    """Confirm the most recent pending proposal if ``text`` is an affirmation.

    Returns ``None`` when nothing was confirmed, so the caller can carry on
    with a normal model turn.
    """
    if not enabled or not matches_consent(text):
        return None

    proposal = store.latest_pending()
    if proposal is None:
        return None

    capability = registry.get(proposal.capability)
    if capability is not None and not capability.allow_auto_consent:
        logger.info("Auto-consent not allowed for %s", proposal.capability)
        return None

    try:
        outcome = await store.confirm(proposal.id)
    except Exception as exc:
        logger.warning("Auto-consent for proposal %s failed: %s", proposal.id, exc)
        return None

    logger.info("Auto-consented proposal %s (%s)", proposal.id, proposal.capability)
    return outcome
