"""Prompt contract for the safety-companion agent."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pookal.agents.personas import Persona

SYSTEM_CONTRACT = """You are a helpful safety companion for women. You may propose using a tool, but you NEVER execute it yourself.
Your response MUST be valid JSON with no extra text, no markdown, no explanations.
You have two output modes:
1) {"type":"final","message":"<concise helpful text>"}
2) {"type":"propose","tool":"<tool_name>","args":{...},"why":"<short reason>"}
Rules:
- Only propose tools from the provided list.
- For sensitive tools (SMS/calls), always propose first; never assume consent.
- Keep JSON strictly valid. No trailing commas. No additional keys."""


def _assistant(payload: dict[str, Any]) -> dict[str, str]:
    return {"role": "assistant", "content": json.dumps(payload, ensure_ascii=False)}


FEW_SHOT: tuple[dict[str, str], ...] = (
    {"role": "user", "content": "Find me a safer way from MG Road to Indiranagar."},
    _assistant(
        {
            "type": "propose",
            "tool": "maps.safe_route",
            "args": {"from": "MG Road", "to": "Indiranagar"},
            "why": "Safer route proposal using main roads and open venues.",
        }
    ),
    {"role": "user", "content": "Thanks, just reassure me without any tools."},
    _assistant(
        {
            "type": "final",
            "message": (
                "I'm here with you. Take a deep breath; you're doing great. "
                "I can also propose a safer route if you want."
            ),
        }
    ),
    {"role": "user", "content": "Call +91 7305025707 and say I have arrived safely."},
    _assistant(
        {
            "type": "propose",
            "tool": "twilio.call",
            "args": {"to": "+917305025707", "message": "I have arrived safely."},
            "why": "Place a reassurance phone call with a short message.",
        }
    ),
)

_ROLES = {"user", "assistant", "system"}


def tools_context(capabilities: Iterable[Mapping[str, str]]) -> str:
    listed = [{"name": c["name"], "description": c["description"]} for c in capabilities]
    return "Tools: " + json.dumps(listed, ensure_ascii=False)


def build_prompt_messages(
    capabilities: Iterable[Mapping[str, str]],
    messages: Iterable[Mapping[str, Any]],
    persona: Persona | None = None,
) -> list[dict[str, str]]:
    """System contract, tool list, few-shot turns, then the running messages."""
    prompt: list[dict[str, str]] = [
        {"role": "system", "content": SYSTEM_CONTRACT},
        {"role": "system", "content": tools_context(capabilities)},
    ]
    if persona is not None:
        prompt.append({"role": "system", "content": f"Persona: {persona.system_prompt}"})
    prompt.extend(dict(m) for m in FEW_SHOT)

    for message in messages:
        role = str(message.get("role", "")).strip().lower()
        content = message.get("content")
        if role not in _ROLES or not isinstance(content, str):
            continue
        prompt.append({"role": role, "content": content})
    return prompt
