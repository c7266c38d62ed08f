"""
Address and city truth rollups.

Facility registrations and license holders are accumulated per canonical
address in one pass, then finalized into deduplicated AddressTruthRows in a
second pass. City rows are a pure reduction over the address rows.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional

from .brands import BrandRegistry
from .config import Settings, TruthSettings
from .core.address import AddressKeys, compute_city_key, normalize_address
from .models import AddressTruthRow, CityTruthRow, Segment
from .sources import SourceRecord, facility_record, license_record
from .store import DataLayout, DocumentStore, now_iso, rows_from_document

logger = logging.getLogger(__name__)

BrandLookup = Callable[[Mapping[str, Any], SourceRecord], Optional[str]]

RATIO_REASON = "REG==0 but TECH>0 (solo/unmatched in this city rollup)"


def _unique(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(value for value in values if value))


@dataclass(slots=True)
class RowStats:
    """Tally of rows consumed from one source during a build."""

    source: str
    processed: int = 0
    accepted: int = 0
    missing_id: int = 0
    unnormalized: int = 0

    @property
    def skipped(self) -> int:
        return self.missing_id + self.unnormalized

    def to_record(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "accepted": self.accepted,
            "skipped": self.skipped,
            "missingId": self.missing_id,
            "unnormalized": self.unnormalized,
        }


@dataclass(slots=True)
class AddressAccumulator:
    address_id: str
    address_key: str
    base_key: str
    city_key: str
    city_label: str
    zip5: str
    facility_ids: list[str] = field(default_factory=list)
    tech_ids: list[str] = field(default_factory=list)
    brand_keys: list[str] = field(default_factory=list)
    active_ids: list[str] = field(default_factory=list)
    holders: list[str] = field(default_factory=list)
    saw_status: bool = False
    saw_holder: bool = False


class AddressAccumulators:
    """Accumulators keyed by addressId, created on first touch."""

    def __init__(self) -> None:
        self._by_id: dict[str, AddressAccumulator] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self):
        return iter(self._by_id.values())

    def upsert(self, keys: AddressKeys) -> AddressAccumulator:
        acc = self._by_id.get(keys.address_id)
        if acc is None:
            city = compute_city_key(keys.city, keys.state)
            acc = AddressAccumulator(
                address_id=keys.address_id,
                address_key=keys.normalized,
                base_key=keys.base,
                city_key=city.city_key,
                city_label=city.city_label,
                zip5=keys.zip5,
            )
            self._by_id[keys.address_id] = acc
        return acc


def segment_for(reg_count: int, tech_count: int, brand_key: Optional[str]) -> tuple[Segment, list[str]]:
    reasons: list[str] = []
    if reg_count > 0 and tech_count > 0:
        reasons.append("REG>0 & TECH>0")
    if reg_count == 0 and tech_count > 0:
        reasons.append("REG==0 & TECH>0 (SOLO/UNMATCHED?)")
    if brand_key:
        reasons.append(f"brand={brand_key}")

    # Franchise match overrides the registration default.
    if brand_key:
        return Segment.CORP_FRANCHISE, reasons + ["seg=CORP_FRANCHISE"]
    if reg_count > 0:
        return Segment.INDIE, reasons + ["seg=INDIE(default)"]
    if tech_count > 0:
        return Segment.SOLO_AT_SOLO, reasons + ["seg=SOLO_AT_SOLO"]
    return Segment.UNKNOWN, reasons + ["seg=UNKNOWN"]


def finalize_address(acc: AddressAccumulator, settings: Optional[TruthSettings] = None) -> AddressTruthRow:
    settings = settings or TruthSettings()
    facility_ids = _unique(acc.facility_ids)
    tech_ids = _unique(acc.tech_ids)
    brand_keys = _unique(acc.brand_keys)
    reg_count = len(facility_ids)
    tech_count = len(tech_ids)
    # Multiple brands at one address: first match wins.
    brand_key = brand_keys[0] if brand_keys else None

    seg, reasons = segment_for(reg_count, tech_count, brand_key)
    threshold = settings.candidate_min_tech
    cand = 1 if seg is Segment.INDIE and tech_count >= threshold else 0
    reasons.append(f"cand=1 (INDIE & tech>={threshold})" if cand else "cand=0")

    return AddressTruthRow(
        address_id=acc.address_id,
        address_key=acc.address_key,
        base_key=acc.base_key,
        city_key=acc.city_key,
        city_label=acc.city_label,
        zip5=acc.zip5,
        reg_count=reg_count,
        facility_ids=facility_ids,
        tech_count=tech_count,
        tech_ids=tech_ids,
        seg=seg,
        brand_key=brand_key,
        cand=cand,
        reasons=reasons,
        active_count=len(_unique(acc.active_ids)) if acc.saw_status else None,
        holder_count=len(_unique(acc.holders)) if acc.saw_holder else None,
    )


@dataclass(slots=True)
class AddressTruthBuild:
    rows: list[AddressTruthRow]
    stats: dict[str, RowStats]


def _keys_for(record: SourceRecord) -> Optional[AddressKeys]:
    return normalize_address(record.street1, record.street2, record.city, record.state, record.zip)


def build_address_truth(
    facility_rows: Iterable[Mapping[str, Any]],
    license_rows: Iterable[Mapping[str, Any]],
    brand_lookup: Optional[BrandLookup] = None,
    settings: Optional[TruthSettings] = None,
    default_state: str = "",
) -> AddressTruthBuild:
    accumulators = AddressAccumulators()
    facility_stats = RowStats("facilities")
    license_stats = RowStats("licenses")

    for raw in facility_rows:
        facility_stats.processed += 1
        record = facility_record(raw, default_state)
        if not record.source_id:
            facility_stats.missing_id += 1
            logger.debug("Skipping facility row without id: %s", record)
            continue
        keys = _keys_for(record)
        if keys is None:
            facility_stats.unnormalized += 1
            logger.debug("Skipping facility %s: address did not normalize", record.source_id)
            continue
        facility_stats.accepted += 1
        acc = accumulators.upsert(keys)
        acc.facility_ids.append(record.source_id)
        if brand_lookup is not None:
            brand = brand_lookup(raw, record)
            if brand:
                acc.brand_keys.append(brand)

    for raw in license_rows:
        license_stats.processed += 1
        record = license_record(raw, default_state)
        if not record.source_id:
            license_stats.missing_id += 1
            logger.debug("Skipping license row without id: %s", record)
            continue
        keys = _keys_for(record)
        if keys is None:
            license_stats.unnormalized += 1
            logger.debug("Skipping license %s: address did not normalize", record.source_id)
            continue
        license_stats.accepted += 1
        acc = accumulators.upsert(keys)
        acc.tech_ids.append(record.source_id)
        active = record.is_active
        if active is not None:
            acc.saw_status = True
            if active:
                acc.active_ids.append(record.source_id)
        if record.holder:
            acc.saw_holder = True
            acc.holders.append(record.holder.upper())

    rows = [finalize_address(acc, settings) for acc in accumulators]
    rows.sort(key=lambda row: (row.city_label, row.address_id))
    for stats in (facility_stats, license_stats):
        if stats.skipped:
            logger.info(
                "Skipped %d of %d %s rows (%d missing id, %d unnormalized)",
                stats.skipped,
                stats.processed,
                stats.source,
                stats.missing_id,
                stats.unnormalized,
            )
    return AddressTruthBuild(
        rows=rows,
        stats={facility_stats.source: facility_stats, license_stats.source: license_stats},
    )


def tech_per_reg(reg_count: int, tech_count: int) -> float:
    if reg_count > 0:
        return round(tech_count / reg_count, 2)
    return float(tech_count) if tech_count > 0 else 0.0


def build_city_truth(address_rows: Iterable[AddressTruthRow]) -> list[CityTruthRow]:
    by_city: dict[str, CityTruthRow] = {}
    brands: dict[str, Counter[str]] = {}
    for address in address_rows:
        row = by_city.get(address.city_key)
        if row is None:
            row = CityTruthRow(city_key=address.city_key, city_label=address.city_label)
            by_city[address.city_key] = row
            brands[address.city_key] = Counter()
        row.addr_count += 1
        row.reg_count += address.reg_count
        row.tech_count += address.tech_count
        row.cand_count += 1 if address.cand else 0
        row.seg_summary[address.seg.value] = row.seg_summary.get(address.seg.value, 0) + 1
        if address.brand_key:
            brands[address.city_key][address.brand_key] += 1

    out: list[CityTruthRow] = []
    for city_key, row in by_city.items():
        row.tech_per_reg = tech_per_reg(row.reg_count, row.tech_count)
        reasons: list[str] = []
        if row.reg_count == 0 and row.tech_count > 0:
            reasons.append(RATIO_REASON)
        if row.seg_summary.get(Segment.CORP_FRANCHISE.value, 0) > 0:
            reasons.append("has franchise addresses")
        if row.seg_summary.get(Segment.CORP_OWNED.value, 0) > 0:
            reasons.append("has corp-owned addresses")
        if row.cand_count > 0:
            reasons.append("has candidate indie addresses")
        row.reasons = reasons
        row.brand_summary = dict(sorted(brands[city_key].items())) or None
        out.append(row)

    out.sort(key=lambda row: (row.city_label, row.city_key))
    return out


def address_counts(rows: list[AddressTruthRow]) -> dict[str, Any]:
    return {
        "rows": len(rows),
        "cand": sum(row.cand for row in rows),
        "regCount": sum(row.reg_count for row in rows),
        "techCount": sum(row.tech_count for row in rows),
        "bySeg": dict(sorted(Counter(row.seg.value for row in rows).items())),
    }


def city_counts(rows: list[CityTruthRow]) -> dict[str, Any]:
    return {
        "rows": len(rows),
        "candCount": sum(row.cand_count for row in rows),
        "regCount": sum(row.reg_count for row in rows),
        "techCount": sum(row.tech_count for row in rows),
    }


def truth_envelope(rows: Iterable[Any], counts: dict[str, Any], updated_at: Optional[str] = None) -> dict[str, Any]:
    return {
        "ok": True,
        "updatedAt": updated_at or now_iso(),
        "counts": counts,
        "rows": [row.to_record() for row in rows],
    }


@dataclass(slots=True)
class TruthBuildReport:
    address_rows: list[AddressTruthRow]
    city_rows: list[CityTruthRow]
    stats: dict[str, RowStats]
    address_path: Path
    city_path: Path
    receipt_path: Path

    def summary(self) -> dict[str, Any]:
        return {
            "addresses": len(self.address_rows),
            "cities": len(self.city_rows),
            "sources": {name: stats.to_record() for name, stats in self.stats.items()},
        }


def registry_lookup(registry: BrandRegistry) -> BrandLookup:
    def lookup(raw: Mapping[str, Any], record: SourceRecord) -> Optional[str]:
        explicit = str(raw.get("brandKey") or raw.get("franchiseBrandId") or "").strip()
        if explicit:
            return explicit
        return registry.brand_for(record.name)

    return lookup


def run_truth_build(
    store: DocumentStore,
    layout: DataLayout,
    settings: Settings,
    brands: BrandRegistry,
) -> TruthBuildReport:
    facilities = rows_from_document(store.require(layout.facility_source, "facility source"))
    licenses = rows_from_document(store.require(layout.license_source, "license source"))
    logger.info("Building truth from %d facility rows and %d license rows", len(facilities), len(licenses))

    build = build_address_truth(
        facilities,
        licenses,
        brand_lookup=registry_lookup(brands),
        settings=settings.truth,
        default_state=settings.data.default_state,
    )
    city_rows = build_city_truth(build.rows)
    updated_at = now_iso()

    address_path = store.replace(
        layout.address_truth, truth_envelope(build.rows, address_counts(build.rows), updated_at)
    )
    city_path = store.replace(layout.city_truth, truth_envelope(city_rows, city_counts(city_rows), updated_at))
    receipt_path = store.write_receipt(
        layout.receipts_dir,
        "truth_build",
        {
            "ok": True,
            "updatedAt": updated_at,
            "addresses": len(build.rows),
            "cities": len(city_rows),
            "sources": {name: stats.to_record() for name, stats in build.stats.items()},
        },
    )
    logger.info("Wrote %d address rows and %d city rows", len(build.rows), len(city_rows))
    return TruthBuildReport(
        address_rows=build.rows,
        city_rows=city_rows,
        stats=build.stats,
        address_path=address_path,
        city_path=city_path,
        receipt_path=receipt_path,
    )
