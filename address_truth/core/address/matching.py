"""
Tiered address matching.

Records are indexed under all three key tiers and looked up strictest
first, so a suite-level record is preferred over a building-level one:

    exact -> normalized -> base

All functions are pure and have no I/O dependencies.
"""

from __future__ import annotations

from enum import Enum
from typing import Generic, Iterable, Optional, TypeVar

from .models import AddressKeys
from .normalizer import rekey

T = TypeVar("T")


class MatchTier(str, Enum):
    EXACT = "exact"
    NORMALIZED = "normalized"
    BASE = "base"


class TieredIndex(Generic[T]):
    """
    Lookup table keyed by an address at every strictness tier.

    Later additions replace earlier ones on the same key, which gives
    last-write-wins semantics when records are added in file order.
    """

    def __init__(self) -> None:
        self._by_tier: dict[MatchTier, dict[str, T]] = {tier: {} for tier in MatchTier}

    def __len__(self) -> int:
        return len(self._by_tier[MatchTier.EXACT])

    def add(self, keys: AddressKeys, value: T) -> None:
        self._by_tier[MatchTier.EXACT][keys.exact] = value
        self._by_tier[MatchTier.NORMALIZED][keys.normalized] = value
        self._by_tier[MatchTier.BASE][keys.base] = value

    def add_key(self, key: str, value: T) -> bool:
        keys = rekey(key)
        if keys is None:
            return False
        self.add(keys, value)
        # Stored keys may already be canonical; keep the literal too.
        self._by_tier[MatchTier.EXACT].setdefault(key, value)
        return True

    def lookup(self, keys: AddressKeys) -> Optional[tuple[T, MatchTier]]:
        for tier, key in zip(MatchTier, keys.tiers()):
            found = self._by_tier[tier].get(key)
            if found is not None:
                return found, tier
        return None

    def lookup_key(self, key: str) -> Optional[tuple[T, MatchTier]]:
        literal = self._by_tier[MatchTier.EXACT].get(key)
        if literal is not None:
            return literal, MatchTier.EXACT
        keys = rekey(key)
        if keys is None:
            return None
        return self.lookup(keys)

    def contains_base(self, keys: AddressKeys) -> bool:
        return keys.base in self._by_tier[MatchTier.BASE]

    @classmethod
    def build(cls, entries: Iterable[tuple[AddressKeys, T]]) -> "TieredIndex[T]":
        index: TieredIndex[T] = cls()
        for keys, value in entries:
            index.add(keys, value)
        return index
