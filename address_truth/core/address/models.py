"""
Domain models for address identity.

These are pure data models with no dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class AddressParts:
    """The four canonical components of an address key."""

    street: str
    city: str
    state: str
    zip: str


@dataclass(frozen=True, slots=True)
class AddressKeys:
    """
    Canonical identity of one physical address at three strictness tiers.

    Example:
        "123 Main Street Suite 200", "Denver", "co", "80202-1234"
        - exact:      "123 MAIN STREET SUITE 200 | DENVER | CO | 80202"
        - normalized: "123 MAIN ST STE 200 | DENVER | CO | 80202"
        - base:       "123 MAIN ST | DENVER | CO | 80202"
    """

    exact: str
    """Verbatim key: uppercased, punctuation stripped, whitespace collapsed"""

    normalized: str
    """Key with directional, suffix and unit-marker canonicalization applied"""

    base: str
    """Normalized key with the trailing unit/suite token removed"""

    address_id: str
    """Stable identity hash of the normalized key"""

    base_id: str
    """Stable identity hash of the base key"""

    street: str
    city: str
    state: str
    zip5: str

    def tiers(self) -> tuple[str, str, str]:
        return (self.exact, self.normalized, self.base)


@dataclass(frozen=True, slots=True)
class CityKey:
    city_key: str
    city_label: str
