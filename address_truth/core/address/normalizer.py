"""
Address canonicalization.

Turns raw address fields into tiered identity keys:

    exact       uppercased, punctuation stripped, whitespace collapsed
    normalized  exact + directional, street-suffix and unit-marker canonicalization
    base        normalized + trailing unit/suite token removed

All functions are pure and deterministic: the same logical address always
produces the same keys and identity hashes.
"""

from __future__ import annotations

import hashlib
import re
import unicodedata
from typing import Optional

from .models import AddressKeys, AddressParts, CityKey

ADDRESS_ID_PREFIX = "addr_"
CITY_ID_PREFIX = "city_"
ADDRESS_ID_LENGTH = 16
CITY_ID_LENGTH = 10
KEY_SEPARATOR = " | "

CHAR_REPLACEMENTS = (
    ("‘", "'"),
    ("’", "'"),
    ("“", '"'),
    ("”", '"'),
    ("&", " AND "),
)

DIRECTIONALS = {
    "NORTH": "N",
    "SOUTH": "S",
    "EAST": "E",
    "WEST": "W",
    "NORTHEAST": "NE",
    "NORTHWEST": "NW",
    "SOUTHEAST": "SE",
    "SOUTHWEST": "SW",
}

STREET_SUFFIXES = {
    "STREET": "ST",
    "STR": "ST",
    "AVENUE": "AVE",
    "AV": "AVE",
    "ROAD": "RD",
    "BOULEVARD": "BLVD",
    "DRIVE": "DR",
    "LANE": "LN",
    "COURT": "CT",
    "PARKWAY": "PKWY",
    "CIRCLE": "CIR",
    "PLACE": "PL",
    "TERRACE": "TER",
    "HIGHWAY": "HWY",
    "TRAIL": "TRL",
    "PLAZA": "PLZ",
    "SQUARE": "SQ",
    "EXPRESSWAY": "EXPY",
    "FREEWAY": "FWY",
    "ALLEY": "ALY",
    "CROSSING": "XING",
}

UNIT_MARKERS = {
    "SUITE": "STE",
    "STE": "STE",
    "APARTMENT": "APT",
    "APT": "APT",
    "UNIT": "UNIT",
    "FLOOR": "FL",
    "FL": "FL",
    "ROOM": "RM",
    "RM": "RM",
    "BUILDING": "BLDG",
    "BLDG": "BLDG",
}

UNIT_TAIL_PATTERNS = (
    re.compile(r"\s+(?:STE|APT|UNIT|FL|RM|BLDG)\s+[A-Z0-9\-]+$"),
    re.compile(r"\s+#\s*[A-Z0-9\-]+$"),
    # C-108, F8, AB12
    re.compile(r"\s+[A-Z]{1,2}-?\d{1,4}[A-Z0-9\-]*$"),
    # 1E, 204B
    re.compile(r"\s+\d{1,4}[A-Z]$"),
)

_STATE_ZIP = re.compile(r"^([A-Z]{2})(?:\s+(\d{5})(?:-?\d{4})?)?$")
_ZIP_ONLY = re.compile(r"^(\d{5})(?:-?\d{4})?$")
_COUNTRY_SUFFIXES = {"USA", "US", "UNITED STATES", "UNITED STATES OF AMERICA"}


def _digest(text: str, length: int) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()[:length]


def clean_text(value: Optional[object]) -> str:
    """
    Uppercase a raw field and strip punctuation noise.

    Periods and apostrophes are dropped ("P.O." -> "PO"), hyphens survive only
    between alphanumerics ("C-108"), "#" is kept as a separate token, every
    other punctuation character becomes whitespace.
    """
    if value is None:
        return ""
    text = str(value)
    for src, dst in CHAR_REPLACEMENTS:
        text = text.replace(src, dst)
    text = unicodedata.normalize("NFKD", text)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.upper()
    text = re.sub(r"[.']", "", text)
    text = re.sub(r"(?<![A-Z0-9])-|-(?![A-Z0-9])", " ", text)
    text = re.sub(r"[^A-Z0-9#\-\s]", " ", text)
    text = re.sub(r"#\s*", " # ", text)
    return re.sub(r"\s+", " ", text).strip()


def zip5(value: Optional[object]) -> str:
    digits = re.sub(r"[^0-9]", "", str(value or ""))
    return digits[:5]


def canonicalize_street(street: str) -> str:
    """Apply whole-token directional, suffix and unit-marker canonicalization."""
    tokens = street.split()
    out: list[str] = []
    for token in tokens:
        if token in DIRECTIONALS:
            out.append(DIRECTIONALS[token])
        elif token in STREET_SUFFIXES:
            out.append(STREET_SUFFIXES[token])
        elif token in UNIT_MARKERS:
            out.append(UNIT_MARKERS[token])
        elif token == "#" and out and out[-1] in UNIT_MARKERS.values():
            # "STE # 200" -> "STE 200"
            continue
        else:
            out.append(token)
    return " ".join(out)


def strip_unit_tail(street: str) -> str:
    """Remove trailing unit/suite tokens, keeping at least two street tokens."""
    current = street
    while True:
        stripped = current
        for pattern in UNIT_TAIL_PATTERNS:
            candidate = pattern.sub("", stripped).strip()
            if candidate != stripped and len(candidate.split()) >= 2:
                stripped = candidate
                break
        if stripped == current:
            return current
        current = stripped


def format_address_key(street: str, city: str, state: str, zip_code: str) -> str:
    return KEY_SEPARATOR.join([street, city, state, zip_code])


def address_id_for(key: str) -> str:
    return f"{ADDRESS_ID_PREFIX}{_digest(key, ADDRESS_ID_LENGTH)}"


def normalize_address(
    street1: Optional[object],
    street2: Optional[object],
    city: Optional[object],
    state: Optional[object],
    zip_code: Optional[object],
) -> Optional[AddressKeys]:
    """
    Compute the tiered keys for an address.

    Returns None when street1, city or state is missing; callers must skip
    the record rather than fabricate a key.
    """
    line1 = clean_text(street1)
    line2 = clean_text(street2)
    city_text = clean_text(city)
    state_text = clean_text(state)
    if not line1 or not city_text or not state_text:
        return None
    zip_text = zip5(zip_code)

    exact_street = f"{line1} {line2}".strip()
    normalized_street = canonicalize_street(exact_street)
    base_street = strip_unit_tail(normalized_street)

    exact = format_address_key(exact_street, city_text, state_text, zip_text)
    normalized = format_address_key(normalized_street, city_text, state_text, zip_text)
    base = format_address_key(base_street, city_text, state_text, zip_text)
    return AddressKeys(
        exact=exact,
        normalized=normalized,
        base=base,
        address_id=address_id_for(normalized),
        base_id=address_id_for(base),
        street=normalized_street,
        city=city_text,
        state=state_text,
        zip5=zip_text,
    )


def parse_address_key(key: Optional[str]) -> Optional[AddressParts]:
    """Split a "<STREET> | <CITY> | <STATE> | <ZIP>" key back into its parts."""
    parts = [part.strip() for part in str(key or "").split("|")]
    if len(parts) != 4 or not parts[0]:
        return None
    return AddressParts(street=parts[0], city=parts[1], state=parts[2], zip=parts[3])


def rekey(key: Optional[str]) -> Optional[AddressKeys]:
    """Re-derive all key tiers from an existing key string."""
    parts = parse_address_key(key)
    if parts is None:
        return None
    return normalize_address(parts.street, None, parts.city, parts.state, parts.zip)


def split_one_line(text: Optional[str]) -> Optional[AddressParts]:
    """
    Split a one-line address into parts.

    Examples:
        "123 Main St Suite 200, Denver, CO 80202"
        "123 Main St, Denver, CO, 80202, USA"
    """
    segments = [seg.strip() for seg in str(text or "").split(",") if seg.strip()]
    while segments and segments[-1].upper() in _COUNTRY_SUFFIXES:
        segments.pop()
    if len(segments) < 3:
        return None
    zip_code = ""
    last = segments[-1].upper()
    zip_match = _ZIP_ONLY.match(last)
    if zip_match:
        zip_code = zip_match.group(1)
        segments.pop()
        last = segments[-1].upper() if segments else ""
    state_match = _STATE_ZIP.match(last)
    if not state_match or len(segments) < 3:
        return None
    state = state_match.group(1)
    if state_match.group(2):
        zip_code = state_match.group(2)
    city = segments[-2]
    street = " ".join(segments[:-2])
    return AddressParts(street=street, city=city, state=state, zip=zip_code)


def compute_city_key(city: Optional[object], state: Optional[object]) -> CityKey:
    city_text = clean_text(city)
    state_text = clean_text(state)
    raw = f"{city_text}|{state_text}"
    return CityKey(
        city_key=f"{CITY_ID_PREFIX}{_digest(raw, CITY_ID_LENGTH)}",
        city_label=f"{city_text} {state_text}".strip(),
    )


def slugify(value: Optional[object]) -> str:
    text = re.sub(r"\s+", " ", str(value or "")).strip().lower()
    text = re.sub(r"[^a-z0-9]+", "-", text)
    return text.strip("-")
