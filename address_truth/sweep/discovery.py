from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..config import ProviderSettings
from ..core.address import parse_address_key
from ..models import ProviderError
from ..providers.places import STATUS_ERROR, STATUS_OK, STATUS_ZERO_RESULTS, Geocode, PlaceCandidate, PlacesClient

logger = logging.getLogger(__name__)

MODE_STUB = "stub"
MODE_LIVE = "live"


@dataclass(slots=True)
class ProviderDiagnostics:
    """Run-level provider health attached to the sweep document."""

    mode: str = MODE_STUB
    has_api_key: bool = False
    api_key_hint: str = "missing"
    queries: int = 0
    results: int = 0
    last_error: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "hasApiKey": self.has_api_key,
            "apiKeyHint": self.api_key_hint,
            "requestCounts": {"queries": self.queries, "results": self.results},
            "lastError": self.last_error,
        }


@dataclass(slots=True)
class DiscoveryResult:
    geocode: Optional[Geocode] = None
    candidates: List[PlaceCandidate] = field(default_factory=list)
    queries: List[str] = field(default_factory=list)


def format_address(address_key: str) -> str:
    """Render "STREET | CITY | ST | ZIP" as "STREET, CITY, ST ZIP" for geocoding."""
    parts = parse_address_key(address_key)
    if parts is None:
        return " ".join(address_key.replace("|", " ").split())
    return f"{parts.street}, {parts.city}, {parts.state} {parts.zip}".strip()


def dedupe_candidates(candidates: Sequence[PlaceCandidate]) -> list[PlaceCandidate]:
    seen: set[str] = set()
    out: list[PlaceCandidate] = []
    for candidate in candidates:
        key = candidate.dedupe_key()
        if key in seen:
            continue
        seen.add(key)
        out.append(candidate)
    return out


class CandidateDiscovery:
    """
    Geocode an address and collect nearby place candidates for each keyword.

    Without a configured client the discovery runs in stub mode and returns
    empty results. Provider failures are recorded on the diagnostics and
    turned into an ERROR geocode; they never propagate to the caller.
    """

    def __init__(self, client: Optional[PlacesClient], keywords: Sequence[str]) -> None:
        self.client = client
        self.keywords = list(keywords)
        self.diagnostics = ProviderDiagnostics()
        if client is not None:
            self.diagnostics.mode = MODE_LIVE
            self.diagnostics.has_api_key = True
            self.diagnostics.api_key_hint = client.key_hint

    @classmethod
    def from_settings(cls, settings: ProviderSettings) -> "CandidateDiscovery":
        client = PlacesClient(settings) if settings.google_maps_api_key else None
        if client is None:
            logger.warning("No Google Maps API key configured; candidate discovery runs in stub mode")
        return cls(client, settings.keywords)

    @property
    def mode(self) -> str:
        return self.diagnostics.mode

    def reset(self) -> None:
        self.diagnostics.queries = 0
        self.diagnostics.results = 0
        self.diagnostics.last_error = None

    def discover(self, address_key: str) -> DiscoveryResult:
        if self.client is None:
            return DiscoveryResult()

        address = format_address(address_key)
        diag = self.diagnostics
        try:
            diag.queries += 1
            geocode = self.client.geocode(address)
            if not geocode.ok:
                logger.debug("Geocode %s for %s", geocode.status, address)
                return DiscoveryResult(geocode=geocode, queries=[address])

            found: list[PlaceCandidate] = []
            for keyword in self.keywords:
                diag.queries += 1
                nearby = self.client.nearby_search(geocode.location or {}, keyword)
                if nearby.status not in (STATUS_OK, STATUS_ZERO_RESULTS):
                    diag.last_error = f"nearby:{keyword}:{nearby.status}"
                    if nearby.error:
                        diag.last_error = f"{diag.last_error}: {nearby.error}"
                    logger.warning("Nearby search '%s' returned %s", keyword, nearby.status)
                    continue
                diag.results += len(nearby.candidates)
                found.extend(nearby.candidates)
        except ProviderError as exc:
            return self._failed(address, str(exc))
        except Exception as exc:
            return self._failed(address, f"{type(exc).__name__}: {exc}")

        return DiscoveryResult(
            geocode=geocode,
            candidates=dedupe_candidates(found),
            queries=[address, *(f"nearby:{keyword}" for keyword in self.keywords)],
        )

    def _failed(self, address: str, message: str) -> DiscoveryResult:
        self.diagnostics.last_error = message
        logger.warning("Candidate discovery failed for %s: %s", address, message)
        return DiscoveryResult(
            geocode=Geocode(status=STATUS_ERROR, address=address, error=message),
            queries=[address],
        )
