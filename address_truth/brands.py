"""
Franchise brand registry.

Rules are evaluated in declaration order and the first match wins. New
brands are added as data (a registry file) rather than code.

Registry file shape (YAML or JSON):

    brands:
      - brandId: great-clips
        aliases: ["great clips"]
      - brandId: sport-clips
        pattern: "\\bsport\\s*clips\\b"
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_BRANDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("great-clips", ("great clips",)),
    ("supercuts", ("supercuts", "super cuts")),
    ("sport-clips", ("sport clips", "sports clips")),
    ("fantastic-sams", ("fantastic sams",)),
    ("cost-cutters", ("cost cutters",)),
    ("smartstyle", ("smartstyle", "smart style")),
    ("hair-cuttery", ("hair cuttery",)),
    ("floyds-barbershop", ("floyds 99", "floyd s 99")),
    ("european-wax-center", ("european wax center",)),
    ("drybar", ("drybar",)),
)


def _haystack(name: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"[^a-z0-9 ]", " ", name.lower())).strip()


def alias_pattern(alias: str) -> str:
    words = _haystack(alias).split()
    return r"\b" + r"\s+".join(re.escape(word) for word in words) + r"\b"


@dataclass(frozen=True, slots=True)
class BrandRule:
    pattern: str
    brand_id: str

    def matches(self, haystack: str) -> bool:
        return re.search(self.pattern, haystack) is not None


class BrandRegistry:
    """Ordered rule list mapping a business name to a franchise brand id."""

    def __init__(self, rules: Iterable[BrandRule], source: Optional[Path] = None) -> None:
        self.rules: list[BrandRule] = list(rules)
        self.source = source

    def __len__(self) -> int:
        return len(self.rules)

    def brand_for(self, name: Optional[str]) -> Optional[str]:
        if not name:
            return None
        haystack = _haystack(name)
        if not haystack:
            return None
        for rule in self.rules:
            if rule.matches(haystack):
                return rule.brand_id
        return None

    def brand_ids(self) -> list[str]:
        seen: dict[str, None] = {}
        for rule in self.rules:
            seen.setdefault(rule.brand_id, None)
        return list(seen)

    def reload(self) -> None:
        if self.source is None:
            self.rules = rules_from_entries(_default_entries())
            return
        self.rules = load_rules(self.source)
        logger.info("Reloaded brand registry: %d rules from %s", len(self.rules), self.source)

    @classmethod
    def defaults(cls) -> "BrandRegistry":
        return cls(rules_from_entries(_default_entries()))

    @classmethod
    def load(cls, path: Optional[Path]) -> "BrandRegistry":
        if path is None:
            return cls.defaults()
        return cls(load_rules(path), source=path)


def _default_entries() -> list[dict[str, Any]]:
    return [{"brandId": brand_id, "aliases": list(aliases)} for brand_id, aliases in DEFAULT_BRANDS]


def rules_from_entries(entries: Iterable[dict[str, Any]]) -> list[BrandRule]:
    rules: list[BrandRule] = []
    for entry in entries:
        brand_id = str(entry.get("brandId") or entry.get("brand_id") or "").strip()
        if not brand_id:
            logger.debug("Skipping brand entry without id: %s", entry)
            continue
        pattern = entry.get("pattern")
        if pattern:
            rules.append(BrandRule(pattern=str(pattern), brand_id=brand_id))
        for alias in entry.get("aliases") or []:
            if _haystack(str(alias)):
                rules.append(BrandRule(pattern=alias_pattern(str(alias)), brand_id=brand_id))
    return rules


def load_rules(path: Path) -> list[BrandRule]:
    with path.open("r", encoding="utf-8") as fh:
        if path.suffix.lower() == ".json":
            raw = json.load(fh)
        else:
            raw = yaml.safe_load(fh)
    if isinstance(raw, dict):
        entries = raw.get("brands") or []
    elif isinstance(raw, list):
        entries = raw
    else:
        entries = []
    return rules_from_entries(entry for entry in entries if isinstance(entry, dict))
