from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request

from ..config import ProviderSettings
from .places import GEOCODE_URL

logger = logging.getLogger(__name__)

CHECK_ADDRESS = "1600 Amphitheatre Parkway, Mountain View, CA 94043"
REJECTED_STATUSES = {"REQUEST_DENIED", "INVALID_REQUEST"}


def validate_places_provider(settings: ProviderSettings) -> None:
    """Issue one geocode request; raise RuntimeError when the key or network is unusable."""
    api_key = settings.google_maps_api_key
    if not api_key:
        raise RuntimeError("google_maps_api_key is not set")
    params = urllib.parse.urlencode({"address": CHECK_ADDRESS, "key": api_key})
    req = urllib.request.Request(f"{GEOCODE_URL}?{params}", headers={"User-Agent": settings.useragent})
    try:
        with urllib.request.urlopen(req, timeout=5) as resp:
            payload = json.load(resp)
    except urllib.error.HTTPError as exc:
        raise RuntimeError(f"Geocoding HTTP error {exc.code}") from exc
    except urllib.error.URLError as exc:
        raise RuntimeError(f"unable to reach Geocoding API: {exc}") from exc
    status = str(payload.get("status") or "")
    if status in REJECTED_STATUSES:
        message = payload.get("error_message") or status
        raise RuntimeError(f"Google Maps API key rejected: {message}")
    logger.debug("Geocoding preflight returned %s", status)
