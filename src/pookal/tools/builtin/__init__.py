"""Built-in capabilities: safe routing, SMS and phone calls."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from pookal.tools.builtin.routing import safe_route_capability
from pookal.tools.builtin.telephony import ClientFactory, call_capability, sms_capability
from pookal.tools.capabilities.schema import CapabilitySpec

if TYPE_CHECKING:
    from pookal.config import Settings


def builtin_capabilities(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
    twilio_client_factory: ClientFactory | None = None,
) -> tuple[CapabilitySpec, ...]:
    return (
        safe_route_capability(settings, transport=transport),
        sms_capability(settings, twilio_client_factory),
        call_capability(settings, twilio_client_factory),
    )


__all__ = ["builtin_capabilities"]
