"""Model output interpretation: strict JSON, embedded objects and garbage."""

from __future__ import annotations

import json

import pytest

from pookal.agents.interpreter import FinalIntent, ProposeIntent, UnparsedIntent, interpret


def test_final_message_is_returned_verbatim() -> None:
    intent = interpret('{"type":"final","message":"  You are safe here.  "}')
    assert isinstance(intent, FinalIntent)
    assert intent.message == "  You are safe here.  "


def test_propose_with_rationale() -> None:
    raw = json.dumps(
        {"type": "propose", "tool": "maps.safe_route", "args": {"from": "MG Road", "to": "Indiranagar"}, "why": "safer"}
    )
    intent = interpret(raw)
    assert isinstance(intent, ProposeIntent)
    assert intent.capability == "maps.safe_route"
    assert intent.args == {"from": "MG Road", "to": "Indiranagar"}
    assert intent.rationale == "safer"


def test_propose_without_rationale_defaults_to_empty() -> None:
    intent = interpret('{"type":"propose","tool":"twilio.sms","args":{"to":"+911234567","body":"hi"}}')
    assert isinstance(intent, ProposeIntent)
    assert intent.rationale == ""


def test_one_leading_character_is_recovered() -> None:
    intent = interpret('x{"type":"final","message":"hello"}')
    assert isinstance(intent, FinalIntent)
    assert intent.message == "hello"


def test_object_wrapped_in_prose_is_recovered() -> None:
    raw = 'Sure! Here you go:\n```json\n{"type":"final","message":"Breathe slowly."}\n```\nHope that helps.'
    intent = interpret(raw)
    assert isinstance(intent, FinalIntent)
    assert intent.message == "Breathe slowly."


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "I am just plain text",
        "} backwards {",
        '{"type":"final","message":"cut off',
        '{"type":"final","message":""}',
        '{"type":"final"}',
        '{"type":"propose","tool":"twilio.sms"}',
        '{"type":"propose","tool":"","args":{}}',
        '{"type":"propose","tool":"twilio.sms","args":["+91"]}',
        '{"type":"shout","message":"hi"}',
        "[1, 2, 3]",
    ],
)
def test_unclassifiable_output_is_unparsed(raw: str) -> None:
    intent = interpret(raw)
    assert isinstance(intent, UnparsedIntent)
    assert intent.raw_text == raw


def test_non_string_input_never_raises() -> None:
    assert isinstance(interpret(None), UnparsedIntent)
    assert isinstance(interpret(42), UnparsedIntent)


def test_unparsed_degrades_to_final_with_raw_text() -> None:
    intent = interpret("just words")
    assert isinstance(intent, UnparsedIntent)
    assert intent.as_final().message == "just words"


def test_to_dict_uses_wire_keys() -> None:
    propose = ProposeIntent("twilio.call", {"to": "+917305025707", "message": "hi"}, "reassure")
    assert propose.to_dict() == {
        "type": "propose",
        "tool": "twilio.call",
        "args": {"to": "+917305025707", "message": "hi"},
        "why": "reassure",
    }
    assert FinalIntent("hi").to_dict() == {"type": "final", "message": "hi"}
