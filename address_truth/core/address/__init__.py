"""
Address identity domain logic.

This module handles:
- Canonicalization of free-text address parts into tiered identity keys
- Stable address and city identity hashes
- Splitting one-line addresses and key strings back into parts
- Tiered (exact, normalized, base) lookup of keyed records

All logic is pure business logic with no I/O dependencies.
"""

from __future__ import annotations

from .matching import MatchTier, TieredIndex
from .models import AddressKeys, AddressParts, CityKey
from .normalizer import (
    compute_city_key,
    format_address_key,
    normalize_address,
    parse_address_key,
    rekey,
    slugify,
    split_one_line,
)

__all__ = [
    "AddressKeys",
    "AddressParts",
    "CityKey",
    "MatchTier",
    "TieredIndex",
    "compute_city_key",
    "format_address_key",
    "normalize_address",
    "parse_address_key",
    "rekey",
    "slugify",
    "split_one_line",
]
