"""
Candidate scoring and address classification.

Both functions are pure: the same candidate and address always produce the
same score, and the same signals always produce the same class. Every
branch records machine-readable reason tokens so a decision can be audited.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Protocol

from ..models import AddressClass, SweepCandidate
from .address.normalizer import parse_address_key, strip_unit_tail

if TYPE_CHECKING:
    from ..config import ClassificationSettings

BEAUTY_TYPES = frozenset(
    {
        "beauty_salon",
        "hair_salon",
        "nail_salon",
        "spa",
        "barber_shop",
        "hair_care",
        "eyelash_salon",
        "waxing_hair_removal_service",
    }
)
RESIDENTIAL_TYPES = frozenset({"apartment_complex", "apartment_building", "real_estate_agency"})
SUITE_BRANDS = (
    "SALON LOFTS",
    "SOLA",
    "PHENIX",
    "MY SALON SUITE",
    "SUMMIT SALON STUDIOS",
    "IMAGE STUDIOS",
)
PO_BOX_PREFIXES = ("PO BOX ", "P O BOX ", "POB ", "POST OFFICE BOX ")

SCORE_MIN = -100
SCORE_MAX = 100
EARTH_RADIUS_M = 6371000.0
DISTANCE_BANDS = ((75.0, 3, "distance_lt_75m"), (150.0, 2, "distance_lt_150m"), (300.0, 1, "distance_lt_300m"))

REASON_NEEDS_SWEEP = "needs_external_sweep"
REASON_NO_HITS = "no_external_hits"
REASON_FACILITY = "facility_overlay_accepted"


class CandidateSignals(Protocol):
    name: str
    query: str
    types: List[str]
    place_id: Optional[str]
    vicinity: Optional[str]
    formatted_address: Optional[str]
    location: Optional[Dict[str, float]]
    rating: Optional[float]
    user_ratings_total: Optional[int]
    website: Optional[str]
    phone: Optional[str]
    google_url: Optional[str]
    source: Optional[str]


def _street_bits(street: str) -> tuple[str, str]:
    cleaned = re.sub(r"[.,#]", " ", street.upper())
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    match = re.match(r"^(\d+)\s+(.+)$", cleaned)
    if not match:
        return "", cleaned
    return match.group(1), match.group(2)


def haversine_m(a: Dict[str, float], b: Dict[str, float]) -> float:
    lat1, lat2 = math.radians(a["lat"]), math.radians(b["lat"])
    d_lat = lat2 - lat1
    d_lng = math.radians(b["lng"] - a["lng"])
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def _finite_location(loc: Optional[Dict[str, float]]) -> bool:
    if not loc:
        return False
    try:
        return math.isfinite(float(loc["lat"])) and math.isfinite(float(loc["lng"]))
    except (KeyError, TypeError, ValueError):
        return False


def score_candidate(
    candidate: CandidateSignals,
    address_key: str,
    geocode_location: Optional[Dict[str, float]] = None,
) -> SweepCandidate:
    reasons: list[str] = []
    score = 0
    types = [str(t).strip() for t in candidate.types or [] if str(t).strip()]
    lowered = [t.lower() for t in types]

    beauty_hits = sum(1 for t in lowered if t in BEAUTY_TYPES)
    if beauty_hits:
        score += 3 + min(beauty_hits, 2)
        reasons.append(f"beauty_types:{beauty_hits}")

    residential_hits = sum(1 for t in lowered if t in RESIDENTIAL_TYPES)
    if residential_hits:
        score -= 3 + min(residential_hits, 2)
        reasons.append(f"residential_types:{residential_hits}")

    name = (candidate.name or "").upper()
    if any(brand in name for brand in SUITE_BRANDS):
        score += 3
        reasons.append("suite_brand_name")

    if candidate.website:
        score += 2
        reasons.append("has_website")
    if candidate.phone:
        score += 2
        reasons.append("has_phone")

    parts = parse_address_key(address_key)
    street = strip_unit_tail(parts.street) if parts else ""
    number, street_name = _street_bits(street)
    zip_code = parts.zip if parts else ""
    haystack = (candidate.formatted_address or "").upper()
    street_match = bool(street_name) and street_name in haystack
    number_match = bool(number) and number in haystack
    zip_match = bool(zip_code) and zip_code in haystack
    at_address = street_match and number_match and zip_match
    if at_address:
        score += 4
        reasons.append("strict_address_match")
    elif street_match and zip_match:
        score += 2
        reasons.append("street_zip_match")

    if _finite_location(geocode_location) and _finite_location(candidate.location):
        meters = haversine_m(geocode_location, candidate.location)  # type: ignore[arg-type]
        for limit, bonus, reason in DISTANCE_BANDS:
            if meters < limit:
                score += bonus
                reasons.append(reason)
                break

    return SweepCandidate(
        name=candidate.name,
        query=candidate.query,
        types=types,
        place_id=candidate.place_id,
        website=candidate.website or None,
        phone=candidate.phone or None,
        google_url=candidate.google_url or None,
        formatted_address=candidate.formatted_address or None,
        vicinity=candidate.vicinity or None,
        location=dict(candidate.location) if candidate.location else None,
        rating=candidate.rating,
        user_ratings_total=candidate.user_ratings_total,
        source=candidate.source,
        at_address=at_address,
        score=max(SCORE_MIN, min(SCORE_MAX, score)),
        reasons=reasons,
    )


def candidate_key(candidate: SweepCandidate) -> str:
    return "|".join(
        (value or "").strip().upper()
        for value in (candidate.place_id, candidate.name, candidate.formatted_address)
    )


def rank_candidates(scored: Iterable[SweepCandidate]) -> list[SweepCandidate]:
    """Collapse duplicates keeping the best score, then order by score descending."""
    best: dict[str, SweepCandidate] = {}
    for candidate in scored:
        key = candidate_key(candidate)
        previous = best.get(key)
        if previous is None or candidate.score > previous.score:
            best[key] = candidate
    return sorted(best.values(), key=lambda c: -c.score)


@dataclass(slots=True)
class ClassificationInput:
    address_key: str
    has_accepted_facility: bool = False
    top_candidate: Optional[SweepCandidate] = None
    candidate_count: int = 0
    licenses: int = 0
    unique_techs: int = 0
    active_count: Optional[int] = None
    geocode_status: Optional[str] = None


@dataclass(slots=True)
class Classification:
    address_class: AddressClass
    confidence: float
    reasons: list[str] = field(default_factory=list)
    needs_external_sweep: bool = False


def _has_reason(candidate: Optional[SweepCandidate], prefix: str) -> bool:
    if candidate is None:
        return False
    return any(reason.startswith(prefix) for reason in candidate.reasons)


def classify_address(signals: ClassificationInput, settings: "ClassificationSettings") -> Classification:
    """Assign a place class to one address; the first matching rule wins."""
    key = (signals.address_key or "").upper()
    top = signals.top_candidate
    needs_sweep = signals.candidate_count == 0
    beauty_top = _has_reason(top, "beauty_types")
    residential_top = _has_reason(top, "residential_types")
    high_density = (
        signals.licenses >= settings.suite_center_min_licenses
        or signals.unique_techs >= settings.suite_center_min_unique_techs
    )
    strong_top = top is not None and top.score >= settings.storefront_min_score

    if key.startswith(PO_BOX_PREFIXES):
        return Classification(AddressClass.MAILDROP, settings.po_box_confidence, ["po_box_maildrop"], needs_sweep)

    parts = parse_address_key(signals.address_key)
    state = parts.state.upper() if parts else ""
    if state and state != settings.jurisdiction:
        return Classification(
            AddressClass.UNKNOWN,
            settings.out_of_scope_confidence,
            ["out_of_scope_state", f"state_{state}"],
            needs_sweep,
        )

    if signals.has_accepted_facility:
        return Classification(AddressClass.STOREFRONT, 1.0, [REASON_FACILITY], False)

    if (
        signals.geocode_status == "OK"
        and signals.candidate_count == 0
        and signals.unique_techs <= settings.residential_max_unique_techs
        and signals.licenses <= settings.residential_max_licenses
    ):
        return Classification(
            AddressClass.RESIDENTIAL,
            settings.residential_no_hits_confidence,
            ["geocode_ok_no_nearby_hits", "low_license_density"],
            needs_sweep,
        )

    if top is not None and strong_top and beauty_top and not residential_top:
        return Classification(
            AddressClass.STOREFRONT,
            settings.storefront_confidence,
            [f"top_candidate_score:{top.score}"],
            needs_sweep,
        )

    if high_density and not strong_top:
        return Classification(
            AddressClass.SUITE_CENTER,
            settings.suite_center_confidence,
            ["high_density_multi_license"],
            needs_sweep,
        )

    if top is not None and residential_top and not beauty_top:
        reasons = ["residential_poi_dominant"]
        confidence = settings.residential_poi_confidence
        if high_density:
            reasons.append("high_density_may_indicate_center")
            confidence = settings.residential_poi_dense_confidence
        return Classification(AddressClass.RESIDENTIAL, confidence, reasons, needs_sweep)

    if (
        signals.licenses >= settings.maildrop_min_licenses
        and signals.active_count is not None
        and signals.active_count <= settings.maildrop_max_active
        and (top is None or top.score <= 0)
    ):
        return Classification(
            AddressClass.MAILDROP, settings.maildrop_confidence, ["low_active_vs_total"], needs_sweep
        )

    reasons = ["insufficient_signals"]
    if needs_sweep:
        reasons.append(REASON_NEEDS_SWEEP)
    return Classification(AddressClass.UNKNOWN, settings.unknown_confidence, reasons, needs_sweep)
