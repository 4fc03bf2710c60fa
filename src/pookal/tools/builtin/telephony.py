"""Twilio-backed reassurance SMS and phone calls.

Both capabilities are sensitive: they are only ever reached through a
confirmed proposal or the execution endpoint, never from model output alone.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from xml.sax.saxutils import escape, quoteattr

from pydantic import BaseModel, ConfigDict, Field

from pookal.tools.capabilities.schema import CapabilitySpec, ExecutionResult

if TYPE_CHECKING:
    from pookal.config import Settings

logger = logging.getLogger(__name__)

SMS_CAPABILITY = "twilio.sms"
CALL_CAPABILITY = "twilio.call"
MISSING_CREDENTIALS = "Missing TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, or TWILIO_FROM_NUMBER"

ClientFactory = Callable[[str, str], Any]


class SmsArgs(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    to: str = Field(min_length=6)
    body: str = Field(min_length=1)


class CallArgs(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    to: str = Field(min_length=6)
    message: str = Field(min_length=1)
    voice: str = Field(default="alice", pattern=r"^[A-Za-z0-9._-]+$")


def _twilio_client(account_sid: str, auth_token: str) -> Any:
    from twilio.rest import Client

    return Client(account_sid, auth_token)


def build_twiml(message: str, voice: str = "alice", language: str = "en-IN") -> str:
    """TwiML that reads ``message`` aloud once."""
    safe = escape(message)
    return f"<Response><Say language={quoteattr(language)} voice={quoteattr(voice)}>{safe}</Say></Response>"


def _provider_error(exc: Exception) -> str:
    detail = getattr(exc, "msg", "") or str(exc) or type(exc).__name__
    return f"Twilio error: {detail}"


class _TwilioCapability:
    def __init__(self, settings: Settings, client_factory: ClientFactory | None = None):
        self.settings = settings
        self._client_factory = client_factory or _twilio_client

    def _client(self) -> Any:
        return self._client_factory(self.settings.twilio_account_sid, self.settings.twilio_auth_token)

    async def _run(self, fn: Callable[[], Any]) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)


class SendSms(_TwilioCapability):
    async def __call__(self, args: SmsArgs) -> ExecutionResult:
        if self.settings.missing_twilio_credentials():
            return ExecutionResult.failure(MISSING_CREDENTIALS)
        try:
            client = self._client()
            message = await self._run(
                lambda: client.messages.create(
                    to=args.to, from_=self.settings.twilio_from_number, body=args.body
                )
            )
        except Exception as exc:
            logger.error("Twilio SMS to %s failed: %s", args.to, exc)
            return ExecutionResult.failure(_provider_error(exc))

        return ExecutionResult.success(
            {
                "queued": True,
                "sid": getattr(message, "sid", None),
                "to": args.to,
                "status": getattr(message, "status", None),
                "bodyPreview": args.body[:80],
            }
        )


class PlaceCall(_TwilioCapability):
    async def __call__(self, args: CallArgs) -> ExecutionResult:
        if self.settings.missing_twilio_credentials():
            return ExecutionResult.failure(MISSING_CREDENTIALS)
        twiml = build_twiml(args.message, args.voice, self.settings.twilio_voice_language)
        try:
            client = self._client()
            call = await self._run(
                lambda: client.calls.create(
                    to=args.to, from_=self.settings.twilio_from_number, twiml=twiml
                )
            )
        except Exception as exc:
            logger.error("Twilio call to %s failed: %s", args.to, exc)
            return ExecutionResult.failure(_provider_error(exc))

        return ExecutionResult.success(
            {
                "sid": getattr(call, "sid", None),
                "to": getattr(call, "to", None) or args.to,
                "status": getattr(call, "status", None),
            }
        )


def sms_capability(settings: Settings, client_factory: ClientFactory | None = None) -> CapabilitySpec:
    return CapabilitySpec(
        name=SMS_CAPABILITY,
        description="Send a reassurance SMS to a contact (requires confirmation).",
        args_model=SmsArgs,
        executor=SendSms(settings, client_factory),
        sensitive=True,
    )


def call_capability(settings: Settings, client_factory: ClientFactory | None = None) -> CapabilitySpec:
    return CapabilitySpec(
        name=CALL_CAPABILITY,
        description="Place a reassurance phone call and play a short message (requires confirmation).",
        args_model=CallArgs,
        executor=PlaceCall(settings, client_factory),
        sensitive=True,
    )
