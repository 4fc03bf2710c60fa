"""Interpret raw model output as a typed intent.

The model is asked to reply with exactly one JSON object, either
``{"type": "final", "message": ...}`` or
``{"type": "propose", "tool": ..., "args": {...}, "why": ...}``. Replies are
untrusted: they may carry prose around the object, be truncated, or not be
JSON at all. ``interpret`` never raises; anything it cannot classify comes
back as ``UnparsedIntent`` holding the original text.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FinalIntent:
    message: str
    kind: ClassVar[str] = "final"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "message": self.message}


@dataclass(frozen=True)
class ProposeIntent:
    capability: str
    args: dict[str, Any] = field(default_factory=dict)
    rationale: str = ""
    kind: ClassVar[str] = "propose"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "tool": self.capability, "args": dict(self.args), "why": self.rationale}


@dataclass(frozen=True)
class UnparsedIntent:
    raw_text: str
    kind: ClassVar[str] = "unparsed"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind, "raw": self.raw_text}

    def as_final(self) -> FinalIntent:
        """Degrade to a direct answer so the user still sees the reply."""
        return FinalIntent(message=self.raw_text)


Intent = Union[FinalIntent, ProposeIntent, UnparsedIntent]


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, TypeError, RecursionError):
        return None


def _extract_braced(text: str) -> Any:
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return None
    return _loads(text[start : end + 1])


def _classify(obj: Any, raw_text: str) -> Intent:
    if not isinstance(obj, dict):
        return UnparsedIntent(raw_text)

    kind = obj.get("type")
    if kind == "final":
        message = obj.get("message")
        if isinstance(message, str) and message.strip():
            return FinalIntent(message=message)
        return UnparsedIntent(raw_text)

    if kind == "propose":
        capability = obj.get("tool", obj.get("capability"))
        args = obj.get("args")
        if not isinstance(capability, str) or not capability.strip() or not isinstance(args, dict):
            return UnparsedIntent(raw_text)
        why = obj.get("why", obj.get("rationale", ""))
        return ProposeIntent(
            capability=capability.strip(),
            args=dict(args),
            rationale=why if isinstance(why, str) else "",
        )

    return UnparsedIntent(raw_text)


def interpret(raw_text: Any) -> Intent:
    """Classify a model reply as final, propose or unparsed."""
    text = raw_text if isinstance(raw_text, str) else ("" if raw_text is None else str(raw_text))

    obj = _loads(text)
    if obj is None:
        obj = _extract_braced(text)
    if obj is None:
        logger.debug("Model output is not JSON (%d chars)", len(text))
        return UnparsedIntent(text)

    intent = _classify(obj, text)
    if isinstance(intent, UnparsedIntent):
        logger.debug("Model output parsed but has no recognised intent")
    return intent
