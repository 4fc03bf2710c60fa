"""maps.safe_route: walking-first directions via Nominatim + OpenRouteService."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Literal
from urllib.parse import quote, urlencode

import httpx
from pydantic import BaseModel, ConfigDict, Field

from pookal.tools.capabilities.schema import CapabilitySpec, ExecutionResult

if TYPE_CHECKING:
    from pookal.config import Settings

logger = logging.getLogger(__name__)

CAPABILITY_NAME = "maps.safe_route"

_ORS_PROFILES = {
    "walking": "foot-walking",
    "bicycling": "cycling-regular",
    "driving": "driving-car",
    # ORS has no transit profile; walking keeps the route on foot-friendly roads.
    "transit": "foot-walking",
}

SAFETY_NOTES = (
    "Prefers main roads where possible.",
    "Consider staying near open venues at night (pharmacies, 24/7 stores).",
)


class SafeRouteArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    origin: str = Field(alias="from", min_length=2)
    destination: str = Field(alias="to", min_length=2)
    mode: Literal["walking", "driving", "transit", "bicycling"] = "walking"
    time: str | None = None


def ors_profile(mode: str | None) -> str:
    return _ORS_PROFILES.get(mode or "walking", "foot-walking")


def google_maps_link(origin: str, destination: str, mode: str) -> str:
    """Deep link that opens the same trip in Google Maps."""
    query = urlencode(
        {"origin": origin, "destination": destination, "travelmode": mode},
        quote_via=quote,
    )
    return f"https://www.google.com/maps/dir/?api=1&{query}"


def _format_distance(meters: Any) -> str | None:
    if isinstance(meters, (int, float)):
        return f"{meters / 1000:.1f} km"
    return None


def _format_duration(seconds: Any) -> str | None:
    if isinstance(seconds, (int, float)):
        return f"{round(seconds / 60)} min"
    return None


class SafeRouteProvider:
    """Geocodes both endpoints and asks OpenRouteService for directions."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.provider_timeout, transport=self._transport)

    async def geocode(self, client: httpx.AsyncClient, query: str) -> tuple[float, float] | None:
        """Return (lat, lon) for a free-text address, or None on a miss."""
        resp = await client.get(
            f"{self.settings.nominatim_url.rstrip('/')}/search",
            params={"q": query, "format": "json", "limit": "1", "addressdetails": "0"},
            headers={"User-Agent": self.settings.geocoder_user_agent},
        )
        if resp.status_code != 200:
            logger.debug("Nominatim returned %s for %r", resp.status_code, query)
            return None
        data = resp.json()
        if not isinstance(data, list) or not data:
            return None
        try:
            return float(data[0]["lat"]), float(data[0]["lon"])
        except (KeyError, TypeError, ValueError):
            return None

    async def __call__(self, args: SafeRouteArgs) -> ExecutionResult:
        key = self.settings.ors_api_key
        if not key:
            return ExecutionResult.failure("Missing ORS_API_KEY in environment")

        try:
            async with self._client() as client:
                start = await self.geocode(client, args.origin)
                end = await self.geocode(client, args.destination)
                if not start or not end:
                    return ExecutionResult.failure("Failed to geocode origin or destination")

                profile = ors_profile(args.mode)
                resp = await client.get(
                    f"{self.settings.ors_base_url.rstrip('/')}/v2/directions/{profile}",
                    params={
                        "start": f"{start[1]},{start[0]}",
                        "end": f"{end[1]},{end[0]}",
                    },
                    headers={"Authorization": key},
                )
                if resp.status_code != 200:
                    return ExecutionResult.failure(f"ORS error {resp.status_code}")
                data = resp.json()
        except httpx.HTTPError as exc:
            logger.warning("Routing request failed: %s", exc)
            return ExecutionResult.failure(f"Routing request failed: {exc}")

        features = data.get("features") if isinstance(data, dict) else None
        route = features[0] if isinstance(features, list) and features else None
        if not route:
            return ExecutionResult.failure("No routes found (ORS)")

        segments = (route.get("properties") or {}).get("segments") or [{}]
        segment = segments[0] if isinstance(segments[0], dict) else {}
        distance_text = _format_distance(segment.get("distance"))
        duration_text = _format_duration(segment.get("duration"))
        summary = " • ".join(part for part in (distance_text, duration_text) if part)
        if not summary:
            summary = f"Route from {args.origin} to {args.destination}"

        return ExecutionResult.success(
            {
                "summary": summary,
                "distance_text": distance_text,
                "duration_text": duration_text,
                "start_address": args.origin,
                "end_address": args.destination,
                "mode": args.mode,
                "gmaps_url": google_maps_link(args.origin, args.destination, args.mode),
                "safety_notes": list(SAFETY_NOTES),
            }
        )


def safe_route_capability(
    settings: Settings, transport: httpx.AsyncBaseTransport | None = None
) -> CapabilitySpec:
    return CapabilitySpec(
        name=CAPABILITY_NAME,
        description=(
            "Use OpenRouteService to compute a route (walking by default). "
            "Returns distance/duration and a Google Maps link."
        ),
        args_model=SafeRouteArgs,
        executor=SafeRouteProvider(settings, transport=transport),
    )
