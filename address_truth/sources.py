"""
Schema mapping for heterogeneous source rows.

Each source type has an explicit synonym table mapping a canonical field
name to the ordered list of raw column names it may arrive under. A single
adapter resolves a row against its table; the first non-blank value wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .core.address import split_one_line

SOURCE_FACILITY = "facility"
SOURCE_LICENSE = "license"
SOURCE_PLACE = "place"

Synonyms = Mapping[str, tuple[str, ...]]

FACILITY_FIELDS: Synonyms = {
    "source_id": ("facilityId", "facility_id", "id", "Registration Number", "registrationNumber"),
    "street1": ("street1", "address1", "address", "street", "Street Address"),
    "street2": ("street2", "address2", "Street Address 2", "unit", "suite"),
    "city": ("city", "City"),
    "state": ("state", "State"),
    "zip": ("zip", "zipCode", "zip5", "Zip Code", "postalCode"),
    "name": ("name", "facilityName", "Facility Name", "dba", "Doing Business As", "businessName"),
    "status": ("status", "Status", "License Status"),
}

LICENSE_FIELDS: Synonyms = {
    "source_id": (
        "licenseId",
        "license_id",
        "license_number",
        "License Number",
        "License",
        "id",
    ),
    "street1": (
        "street1",
        "address1",
        "address",
        "street",
        "Street Address",
        "Mail Street Address",
    ),
    "street2": ("street2", "address2", "Street Address 2", "Mail Street Address 2"),
    "city": ("city", "City", "Mail City"),
    "state": ("state", "State", "Mail State"),
    "zip": ("zip", "zipCode", "Zip Code", "Mail Zip Code"),
    "holder": ("holderName", "fullName", "Full Name", "name", "Formatted Name"),
    "status": ("status", "licenseStatus", "License Status", "Status"),
}

PLACE_FIELDS: Synonyms = {
    "source_id": ("placeId", "place_id", "id"),
    "street1": ("street1", "address1", "street"),
    "street2": ("street2", "address2"),
    "city": ("city",),
    "state": ("state",),
    "zip": ("zip", "postalCode"),
    "name": ("name", "placeName", "displayName"),
    "formatted": ("formattedAddress", "formatted_address", "vicinity", "address"),
    "status": ("businessStatus", "business_status"),
}

ACTIVE_STATUSES = {"ACTIVE", "OPERATIONAL", "CURRENT"}


@dataclass(frozen=True, slots=True)
class SourceRecord:
    source: str
    source_id: str
    street1: str
    street2: str
    city: str
    state: str
    zip: str
    name: str = ""
    holder: str = ""
    status: str = ""

    @property
    def is_active(self) -> Optional[bool]:
        if not self.status:
            return None
        return self.status.strip().upper() in ACTIVE_STATUSES


def pick(row: Mapping[str, Any], names: tuple[str, ...]) -> str:
    for name in names:
        value = row.get(name)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def adapt_row(
    row: Mapping[str, Any],
    synonyms: Synonyms,
    source: str,
    default_state: str = "",
) -> SourceRecord:
    def field(name: str) -> str:
        return pick(row, synonyms.get(name, ()))

    return SourceRecord(
        source=source,
        source_id=field("source_id"),
        street1=field("street1"),
        street2=field("street2"),
        city=field("city"),
        state=field("state") or default_state,
        zip=field("zip"),
        name=field("name"),
        holder=field("holder"),
        status=field("status"),
    )


def facility_record(row: Mapping[str, Any], default_state: str = "") -> SourceRecord:
    return adapt_row(row, FACILITY_FIELDS, SOURCE_FACILITY, default_state)


def license_record(row: Mapping[str, Any], default_state: str = "") -> SourceRecord:
    return adapt_row(row, LICENSE_FIELDS, SOURCE_LICENSE, default_state)


def place_record(row: Mapping[str, Any], default_state: str = "") -> SourceRecord:
    record = adapt_row(row, PLACE_FIELDS, SOURCE_PLACE, default_state)
    if record.street1 and record.city:
        return record
    # Place-search rows often carry only a one-line formatted address.
    parts = split_one_line(pick(row, PLACE_FIELDS["formatted"]))
    if parts is None:
        return record
    return SourceRecord(
        source=SOURCE_PLACE,
        source_id=record.source_id,
        street1=parts.street,
        street2="",
        city=parts.city,
        state=parts.state or default_state,
        zip=parts.zip,
        name=record.name,
        status=record.status,
    )
