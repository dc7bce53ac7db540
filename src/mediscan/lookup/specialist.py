"""
Specialist lookup - nearby providers for a recommended specialty.

Backed by the OpenStreetMap Nominatim search API. Best-effort: any request or
parse failure raises LookupFailedError, which the conversation engine logs and
swallows.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from mediscan import __version__
from mediscan.config import NOMINATIM_SEARCH_URL, AssistantConfig
from mediscan.errors import LookupFailedError
from mediscan.records.types import DoctorListing, GeoPoint, LookupLocation

logger = logging.getLogger(__name__)

# Half-width of the search box around coordinates, in degrees (~20 km)
VIEWBOX_DEGREES = 0.2


def build_query(specialty: str, location: LookupLocation) -> str:
    """Free-text query: "<specialty> near <location>" (location text only; coords go in the viewbox)."""
    specialty = specialty.strip()
    if location.text.strip():
        return f"{specialty} near {location.text.strip()}"
    return specialty


def viewbox(point: GeoPoint, degrees: float = VIEWBOX_DEGREES) -> str:
    """Nominatim viewbox ``left,top,right,bottom`` (lon/lat) centred on ``point``."""
    return ",".join(
        f"{v:.5f}"
        for v in (point.lng - degrees, point.lat + degrees, point.lng + degrees, point.lat - degrees)
    )


def _to_float(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def parse_listing(item: dict[str, Any]) -> DoctorListing | None:
    """One Nominatim result -> DoctorListing; None when it has no usable name."""
    display = str(item.get("display_name") or "").strip()
    name = str(item.get("name") or "").strip() or display.split(",")[0].strip()
    if not name:
        return None
    extratags = item.get("extratags")
    if not isinstance(extratags, dict):
        extratags = {}
    phone = extratags.get("phone") or extratags.get("contact:phone")
    address = display[len(name):].lstrip(", ").strip() if display.startswith(name) else display
    return DoctorListing(
        name=name,
        address=address or display,
        rating=None,
        phone=phone or None,
        lat=_to_float(item.get("lat")),
        lng=_to_float(item.get("lon")),
    )


class SpecialistLookup:
    """Nominatim-backed provider search."""

    def __init__(
        self,
        base_url: str = NOMINATIM_SEARCH_URL,
        limit: int = 5,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url
        self._limit = max(1, limit)
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", f"mediscan/{__version__}")

    @classmethod
    def from_config(cls, config: AssistantConfig) -> SpecialistLookup:
        return cls(base_url=config.lookup_url, limit=config.lookup_limit)

    def find_nearby(self, specialty: str, location: LookupLocation, language: str) -> list[DoctorListing]:
        """Ordered listings for ``specialty`` near ``location``. Raises LookupFailedError."""
        if not specialty or not specialty.strip():
            raise LookupFailedError("specialty is required")
        params: dict[str, Any] = {
            "q": build_query(specialty, location),
            "format": "jsonv2",
            "limit": self._limit,
            "extratags": 1,
            "accept-language": language,
        }
        if location.coords is not None:
            params["viewbox"] = viewbox(location.coords)
            params["bounded"] = 1

        try:
            resp = self._session.get(self._base_url, params=params, timeout=self._timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as e:
            raise LookupFailedError(f"provider search failed: {e}") from e
        except ValueError as e:
            raise LookupFailedError("provider search returned invalid JSON") from e
        if not isinstance(data, list):
            raise LookupFailedError(f"unexpected provider search response: {type(data).__name__}")

        listings: list[DoctorListing] = []
        for item in data:
            listing = parse_listing(item) if isinstance(item, dict) else None
            if listing is not None:
                listings.append(listing)
        logger.debug(
            "Lookup %r near %s -> %d listing(s)", specialty, location.describe() or "anywhere", len(listings)
        )
        return listings[: self._limit]
