from __future__ import annotations

import http.client
import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TypeVar

from ..config import ProviderSettings
from ..models import ProviderError

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
NEARBY_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"

STATUS_OK = "OK"
STATUS_ZERO_RESULTS = "ZERO_RESULTS"
STATUS_NO_LOCATION = "NO_LOCATION"
STATUS_ERROR = "ERROR"
STATUS_UNKNOWN = "UNKNOWN"

T = TypeVar("T")


@dataclass(slots=True)
class PlaceCandidate:
    """One place-search hit, independent of the provider response version."""

    name: str
    query: str
    types: List[str] = field(default_factory=list)
    place_id: Optional[str] = None
    vicinity: Optional[str] = None
    formatted_address: Optional[str] = None
    location: Optional[Dict[str, float]] = None
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    google_url: Optional[str] = None
    source: Optional[str] = None

    def dedupe_key(self) -> str:
        if self.place_id:
            return f"pid:{self.place_id}"
        return f"nv:{self.name}::{self.vicinity or ''}"


@dataclass(slots=True)
class Geocode:
    status: str
    address: str
    location: Optional[Dict[str, float]] = None
    formatted_address: Optional[str] = None
    place_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK and self.location is not None

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {"status": self.status, "address": self.address}
        if self.location is not None:
            record["location"] = dict(self.location)
        if self.formatted_address:
            record["formattedAddress"] = self.formatted_address
        if self.place_id:
            record["placeId"] = self.place_id
        if self.error:
            record["error"] = self.error
        return record


@dataclass(slots=True)
class NearbyResult:
    status: str
    candidates: List[PlaceCandidate] = field(default_factory=list)
    error: Optional[str] = None


def _text(value: Any) -> str:
    return str(value if value is not None else "").strip()


def _location(raw: Any) -> Optional[Dict[str, float]]:
    if not isinstance(raw, dict):
        return None
    geometry = raw.get("geometry")
    if not isinstance(geometry, dict):
        return None
    loc = geometry.get("location")
    if not isinstance(loc, dict):
        return None
    try:
        lat = float(loc.get("lat"))
        lng = float(loc.get("lng"))
    except (TypeError, ValueError):
        return None
    return {"lat": lat, "lng": lng}


def candidate_from_nearby_v1(result: Dict[str, Any], keyword: str) -> PlaceCandidate:
    """Adapter for legacy Nearby Search (place/nearbysearch/json) results."""
    rating = result.get("rating")
    total = result.get("user_ratings_total")
    vicinity = _text(result.get("vicinity")) or None
    types = result.get("types")
    return PlaceCandidate(
        name=_text(result.get("name")),
        query=keyword,
        types=[str(t) for t in types] if isinstance(types, list) else [],
        place_id=_text(result.get("place_id")) or None,
        vicinity=vicinity,
        # Nearby v1 has no formatted_address; vicinity is the closest field.
        formatted_address=_text(result.get("formatted_address")) or vicinity,
        location=_location(result),
        rating=float(rating) if isinstance(rating, (int, float)) else None,
        user_ratings_total=int(total) if isinstance(total, (int, float)) else None,
        website=_text(result.get("website")) or None,
        phone=_text(result.get("formatted_phone_number")) or None,
        google_url=_text(result.get("url")) or None,
        source=f"nearby:{keyword}",
    )


class PlacesClient:
    def __init__(self, settings: ProviderSettings) -> None:
        if not settings.google_maps_api_key:
            raise ValueError("Google Maps API key required")
        self.api_key = settings.google_maps_api_key
        self.useragent = settings.useragent
        self.timeout = settings.timeout_seconds
        self.delay = max(0.0, settings.request_delay_seconds)
        self.retries = max(0, settings.network_retries)
        self.backoff = max(0.0, settings.network_retry_backoff_seconds)
        self.radius = settings.radius_meters
        self._last_request: Optional[float] = None

    @property
    def key_hint(self) -> str:
        return f"set:{self.api_key[-4:]}"

    def geocode(self, address: str) -> Geocode:
        data = self._request(GEOCODE_URL, {"address": address, "key": self.api_key})
        status = _text(data.get("status")) or STATUS_UNKNOWN
        results = data.get("results")
        if status != STATUS_OK or not isinstance(results, list) or not results:
            return Geocode(status=status, address=address, error=_text(data.get("error_message")) or None)
        first = results[0] if isinstance(results[0], dict) else {}
        location = _location(first)
        if location is None:
            return Geocode(status=STATUS_NO_LOCATION, address=address)
        return Geocode(
            status=STATUS_OK,
            address=address,
            location=location,
            formatted_address=_text(first.get("formatted_address")) or None,
            place_id=_text(first.get("place_id")) or None,
        )

    def nearby_search(self, location: Dict[str, float], keyword: str) -> NearbyResult:
        params = {
            "location": f"{location['lat']},{location['lng']}",
            "radius": str(self.radius),
            "keyword": keyword,
            "key": self.api_key,
        }
        data = self._request(NEARBY_URL, params)
        status = _text(data.get("status")) or STATUS_UNKNOWN
        results = data.get("results") if isinstance(data.get("results"), list) else []
        if status not in (STATUS_OK, STATUS_ZERO_RESULTS):
            return NearbyResult(status=status, error=_text(data.get("error_message")) or None)
        candidates = [candidate_from_nearby_v1(item, keyword) for item in results if isinstance(item, dict)]
        return NearbyResult(status=status, candidates=candidates)

    def _request(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        full_url = f"{url}?{urllib.parse.urlencode(params)}"
        req = urllib.request.Request(full_url, headers={"User-Agent": self.useragent})

        def fetch() -> Dict[str, Any]:
            self._throttle()
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                payload = json.load(resp)
            if not isinstance(payload, dict):
                raise ProviderError(f"unexpected response shape from {url}")
            return payload

        return self._run_with_retries(fetch, label=url)

    def _throttle(self) -> None:
        now = time.monotonic()
        if self._last_request is not None and self.delay:
            wait = self.delay - (now - self._last_request)
            if wait > 0:
                time.sleep(wait)
        self._last_request = time.monotonic()

    def _run_with_retries(self, fn: Callable[[], T], *, label: str) -> T:
        attempts = 1 + self.retries
        last_exc: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                return fn()
            except urllib.error.HTTPError as exc:
                if not self._is_transient_status(exc.code):
                    raise ProviderError(f"HTTP_{exc.code} from {label}") from exc
                last_exc = exc
            except (urllib.error.URLError, TimeoutError, ConnectionError, http.client.HTTPException) as exc:
                last_exc = exc
            except ValueError as exc:
                # JSONDecodeError and UnicodeDecodeError from a garbled body.
                raise ProviderError(f"invalid response from {label}: {exc}") from exc
            if attempt < attempts:
                sleep_for = self.backoff * (2 ** (attempt - 1))
                logger.debug("Retrying %s in %.1fs after %s", label, sleep_for, last_exc)
                if sleep_for:
                    time.sleep(sleep_for)
        raise ProviderError(f"request to {label} failed: {last_exc}") from last_exc

    @staticmethod
    def _is_transient_status(code: int) -> bool:
        return code == 429 or code >= 500
