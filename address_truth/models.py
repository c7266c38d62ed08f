from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class Segment(str, Enum):
    CORP_OWNED = "CORP_OWNED"
    CORP_FRANCHISE = "CORP_FRANCHISE"
    INDIE = "INDIE"
    SOLO_AT_SALON = "SOLO_AT_SALON"
    SOLO_AT_SOLO = "SOLO_AT_SOLO"
    UNKNOWN = "UNKNOWN"


class AddressClass(str, Enum):
    STOREFRONT = "storefront"
    SUITE_CENTER = "suite_center"
    MAILDROP = "maildrop"
    RESIDENTIAL = "residential"
    UNKNOWN = "unknown"


class Decision(str, Enum):
    CONFIRM_CANDIDATE = "confirm_candidate"
    SUITE_CENTER = "suite_center"
    RESIDENTIAL = "residential"
    UNKNOWN = "unknown"
    NO_STOREFRONT = "no_storefront"
    REJECTED = "rejected"


UNREVIEWED = "unreviewed"


@dataclass(slots=True)
class AddressTruthRow:
    address_id: str
    address_key: str
    city_key: str
    city_label: str
    zip5: str
    reg_count: int
    facility_ids: List[str]
    tech_count: int
    tech_ids: List[str]
    seg: Segment
    cand: int
    reasons: List[str]
    brand_key: Optional[str] = None
    base_key: Optional[str] = None
    active_count: Optional[int] = None
    holder_count: Optional[int] = None

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "addressId": self.address_id,
            "addressKey": self.address_key,
            "baseKey": self.base_key,
            "cityKey": self.city_key,
            "cityLabel": self.city_label,
            "zip5": self.zip5,
            "regCount": self.reg_count,
            "facilityIds": list(self.facility_ids),
            "techCount": self.tech_count,
            "techIds": list(self.tech_ids),
            "seg": self.seg.value,
            "cand": self.cand,
            "reasons": list(self.reasons),
            "activeCount": self.active_count,
            "holderCount": self.holder_count,
        }
        if self.brand_key:
            record["brandKey"] = self.brand_key
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "AddressTruthRow":
        return cls(
            address_id=str(record.get("addressId") or ""),
            address_key=str(record.get("addressKey") or ""),
            base_key=record.get("baseKey"),
            city_key=str(record.get("cityKey") or ""),
            city_label=str(record.get("cityLabel") or ""),
            zip5=str(record.get("zip5") or ""),
            reg_count=_as_int(record.get("regCount")),
            facility_ids=[str(x) for x in record.get("facilityIds") or []],
            tech_count=_as_int(record.get("techCount")),
            tech_ids=[str(x) for x in record.get("techIds") or []],
            seg=_as_segment(record.get("seg")),
            brand_key=record.get("brandKey") or None,
            cand=1 if record.get("cand") else 0,
            reasons=[str(x) for x in record.get("reasons") or []],
            active_count=_as_optional_int(record.get("activeCount")),
            holder_count=_as_optional_int(record.get("holderCount")),
        )


@dataclass(slots=True)
class CityTruthRow:
    city_key: str
    city_label: str
    reg_count: int = 0
    tech_count: int = 0
    tech_per_reg: float = 0.0
    addr_count: int = 0
    cand_count: int = 0
    seg_summary: Dict[str, int] = field(default_factory=dict)
    brand_summary: Optional[Dict[str, int]] = None
    reasons: List[str] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "cityKey": self.city_key,
            "cityLabel": self.city_label,
            "regCount": self.reg_count,
            "techCount": self.tech_count,
            "techPerReg": self.tech_per_reg,
            "addrCount": self.addr_count,
            "candCount": self.cand_count,
            "segSummary": dict(self.seg_summary),
            "reasons": list(self.reasons),
        }
        if self.brand_summary:
            record["brandSummary"] = dict(self.brand_summary)
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "CityTruthRow":
        return cls(
            city_key=str(record.get("cityKey") or ""),
            city_label=str(record.get("cityLabel") or ""),
            reg_count=_as_int(record.get("regCount")),
            tech_count=_as_int(record.get("techCount")),
            tech_per_reg=float(record.get("techPerReg") or 0),
            addr_count=_as_int(record.get("addrCount")),
            cand_count=_as_int(record.get("candCount")),
            seg_summary={str(k): _as_int(v) for k, v in (record.get("segSummary") or {}).items()},
            brand_summary=record.get("brandSummary") or None,
            reasons=[str(x) for x in record.get("reasons") or []],
        )


@dataclass(slots=True)
class Facility:
    facility_id: str
    address_key: str
    brand: str
    display_name: str
    category: str
    location_label: Optional[str] = None
    source: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    types: Optional[List[str]] = None

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "facilityId": self.facility_id,
            "addressKey": self.address_key,
            "brand": self.brand,
            "displayName": self.display_name,
            "category": self.category,
        }
        optional = {
            "locationLabel": self.location_label,
            "source": self.source,
            "phone": self.phone,
            "website": self.website,
            "types": self.types,
        }
        record.update({key: value for key, value in optional.items() if value})
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Facility":
        return cls(
            facility_id=str(record.get("facilityId") or ""),
            address_key=str(record.get("addressKey") or ""),
            brand=str(record.get("brand") or ""),
            display_name=str(record.get("displayName") or record.get("brand") or ""),
            category=str(record.get("category") or "FACILITY"),
            location_label=record.get("locationLabel"),
            source=record.get("source"),
            phone=record.get("phone"),
            website=record.get("website"),
            types=record.get("types"),
        )


@dataclass(slots=True)
class SweepCandidate:
    name: str
    query: str
    types: List[str] = field(default_factory=list)
    place_id: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    google_url: Optional[str] = None
    formatted_address: Optional[str] = None
    vicinity: Optional[str] = None
    location: Optional[Dict[str, float]] = None
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    source: Optional[str] = None
    at_address: bool = False
    score: int = 0
    reasons: List[str] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "placeId": self.place_id,
            "types": list(self.types),
            "website": self.website,
            "phone": self.phone,
            "googleUrl": self.google_url,
            "formattedAddress": self.formatted_address,
            "vicinity": self.vicinity,
            "location": dict(self.location) if self.location else None,
            "rating": self.rating,
            "userRatingsTotal": self.user_ratings_total,
            "source": self.source,
            "query": self.query,
            "atAddress": self.at_address,
            "score": self.score,
            "reasons": list(self.reasons),
        }


@dataclass(slots=True)
class Adjudication:
    address_key: str
    decision: Decision
    decided_at: str
    note: Optional[str] = None
    selected_place_id: Optional[str] = None
    selected_name: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "addressKey": self.address_key,
            "decision": self.decision.value,
            "decidedAt": self.decided_at,
        }
        if self.note:
            record["note"] = self.note
        if self.selected_place_id:
            record["selectedCandidatePlaceId"] = self.selected_place_id
        if self.selected_name:
            record["selectedCandidateName"] = self.selected_name
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Adjudication":
        return cls(
            address_key=str(record.get("addressKey") or "").strip(),
            decision=Decision(str(record.get("decision"))),
            decided_at=str(record.get("decidedAt") or ""),
            note=record.get("note") or None,
            selected_place_id=record.get("selectedCandidatePlaceId") or None,
            selected_name=record.get("selectedCandidateName") or None,
        )

    def same_decision(self, other: "Adjudication") -> bool:
        return (
            self.decision == other.decision
            and (self.note or "") == (other.note or "")
            and (self.selected_place_id or "") == (other.selected_place_id or "")
            and (self.selected_name or "") == (other.selected_name or "")
        )


class MissingInputError(FileNotFoundError):
    """Raised when a required source document is absent; the build step cannot continue."""

    def __init__(self, path: Path, what: str = "document") -> None:
        super().__init__(f"Missing required {what}: {path}")
        self.path = path


class ProviderError(Exception):
    """Raised by a provider client when a request cannot be completed."""


class InvalidDecisionError(ValueError):
    """Raised when an adjudication decision is not accepted."""


def _as_int(value: object) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0


def _as_optional_int(value: object) -> Optional[int]:
    if value is None:
        return None
    return _as_int(value)


def _as_segment(value: object) -> Segment:
    try:
        return Segment(str(value))
    except ValueError:
        return Segment.UNKNOWN
