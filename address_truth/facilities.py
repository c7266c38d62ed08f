"""
Operator facility seeds and the facility directory.

Seeds are appended to JSON-lines logs under the seeds directory. The
directory document is always rebuilt from every log in sorted file order,
last write winning per addressKey, so it can be regenerated at any time.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional

from .core.address import AddressKeys, MatchTier, TieredIndex, normalize_address, slugify
from .models import Facility
from .store import DataLayout, DocumentStore, now_iso

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("brand", "address1", "city", "state", "zip")
DEFAULT_CATEGORY = "FACILITY"
CHAIN_CATEGORY = "SALON_CORP_CHAIN"
CHAIN_BRANDS = ("great clips",)
DEFAULT_SOURCE = "operator_import"
SEED_SUFFIX = ".jsonl"

FORMAT_JSONL = "jsonl"
FORMAT_CSV = "csv"
FORMAT_LOCATOR = "locator"
FORMATS = (FORMAT_JSONL, FORMAT_CSV, FORMAT_LOCATOR)

CSV_COLUMNS = {
    "brand": ("brand",),
    "locationLabel": ("locationlabel", "location_label", "label"),
    "address1": ("address1", "street", "address"),
    "address2": ("address2", "unit", "suite"),
    "city": ("city",),
    "state": ("state",),
    "zip": ("zip", "zipcode", "zip_code", "zip code"),
    "category": ("category",),
    "source": ("source",),
    "phone": ("phone",),
    "website": ("website",),
}

_LOCATOR_ADDRESS = re.compile(
    r"^(?P<street>.+?),\s*(?P<city>.+?),\s*(?P<state>[A-Za-z]{2})\s*(?P<zip>\d{5})(?:-\d{4})?$"
)
_LOCATOR_UNIT = re.compile(r"\b(ste|suite|unit)\b\.?\s+(.+)$", re.IGNORECASE)
_LOCATOR_BARE_UNIT = re.compile(r"^(.*)\s([A-Z]-?\d+[A-Z0-9\-]*)$", re.IGNORECASE)


def norm_space(value: Any) -> str:
    return re.sub(r"\s+", " ", str(value if value is not None else "")).strip()


@dataclass(slots=True)
class FacilitySeedRow:
    brand: str = ""
    address1: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    address2: str = ""
    location_label: str = ""
    category: str = ""
    source: str = ""
    phone: str = ""
    website: str = ""
    types: Optional[list[str]] = None
    invalid_reason: Optional[str] = None
    raw: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "FacilitySeedRow":
        types = record.get("types")
        return cls(
            brand=norm_space(record.get("brand")),
            address1=norm_space(record.get("address1")),
            address2=norm_space(record.get("address2")),
            city=norm_space(record.get("city")),
            state=norm_space(record.get("state")),
            zip=norm_space(record.get("zip")),
            location_label=norm_space(record.get("locationLabel")),
            category=norm_space(record.get("category")),
            source=norm_space(record.get("source")),
            phone=norm_space(record.get("phone")),
            website=norm_space(record.get("website")),
            types=[str(t) for t in types] if isinstance(types, list) else None,
        )

    @classmethod
    def invalid(cls, raw: str, reason: str) -> "FacilitySeedRow":
        return cls(invalid_reason=reason, raw=raw)

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "brand": self.brand,
            "locationLabel": self.location_label,
            "address1": self.address1,
            "address2": self.address2,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "category": self.category,
            "source": self.source,
            "phone": self.phone,
            "website": self.website,
            "types": self.types,
        }
        return {key: value for key, value in record.items() if value}

    def with_defaults(self, defaults: Mapping[str, str]) -> "FacilitySeedRow":
        if self.invalid_reason:
            return self
        self.brand = self.brand or norm_space(defaults.get("brand"))
        self.category = self.category or norm_space(defaults.get("category"))
        self.source = self.source or norm_space(defaults.get("source")) or DEFAULT_SOURCE
        return self

    def missing_fields(self) -> list[str]:
        return [name for name in REQUIRED_FIELDS if not getattr(self, name)]

    def problem(self) -> Optional[str]:
        if self.invalid_reason:
            return self.invalid_reason
        missing = self.missing_fields()
        if missing:
            return "missing_required_fields:" + ",".join(missing)
        if self.keys() is None:
            return "address_not_normalized"
        return None

    def keys(self) -> Optional[AddressKeys]:
        return normalize_address(self.address1, self.address2, self.city, self.state, self.zip)


def _parse_jsonl(text: str) -> list[FacilitySeedRow]:
    rows: list[FacilitySeedRow] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError:
            rows.append(FacilitySeedRow.invalid(line, "invalid_json"))
            continue
        if not isinstance(obj, dict):
            rows.append(FacilitySeedRow.invalid(line, "invalid_json"))
            continue
        rows.append(FacilitySeedRow.from_record(obj))
    return rows


def _parse_csv(text: str) -> list[FacilitySeedRow]:
    reader = csv.DictReader(io.StringIO(text.strip()))
    if not reader.fieldnames:
        return []
    rows: list[FacilitySeedRow] = []
    for raw in reader:
        lowered = {norm_space(k).lower(): v for k, v in raw.items() if k is not None}
        if not any(norm_space(v) for v in lowered.values()):
            continue
        record = {}
        for canonical, names in CSV_COLUMNS.items():
            record[canonical] = next((lowered[n] for n in names if norm_space(lowered.get(n))), "")
        rows.append(FacilitySeedRow.from_record(record))
    return rows


def _is_locator_noise(line: str) -> bool:
    lowered = line.lower()
    return (
        "opens" in lowered
        or lowered.endswith(" mi")
        or " mi " in lowered
        or lowered in {"map", "-", "•"}
    )


def split_unit(street: str) -> tuple[str, str]:
    """Split "7280 Lagae Rd Ste D" into ("7280 Lagae Rd", "STE D")."""
    match = _LOCATOR_UNIT.search(street)
    if match:
        marker = match.group(1).upper()
        marker = "STE" if marker == "SUITE" else marker
        return street[: match.start()].strip(), f"{marker} {match.group(2).strip()}"
    bare = _LOCATOR_BARE_UNIT.match(street)
    if bare:
        return bare.group(1).strip(), bare.group(2).strip()
    return street.strip(), ""


def _parse_locator(text: str, defaults: Mapping[str, str]) -> list[FacilitySeedRow]:
    """Parse location-finder text: label lines followed by "street, city, ST zip" lines."""
    rows: list[FacilitySeedRow] = []
    pending_label = ""
    for line in (norm_space(raw) for raw in text.splitlines()):
        if not line or _is_locator_noise(line):
            continue
        match = _LOCATOR_ADDRESS.match(line)
        if match:
            address1, address2 = split_unit(norm_space(match.group("street")))
            rows.append(
                FacilitySeedRow(
                    brand=norm_space(defaults.get("brand")),
                    location_label=pending_label or norm_space(defaults.get("locationLabel")),
                    address1=address1,
                    address2=address2,
                    city=match.group("city").upper(),
                    state=match.group("state").upper(),
                    zip=match.group("zip"),
                )
            )
            pending_label = ""
        elif "," not in line:
            pending_label = line
    return rows


def parse_seed_text(
    text: str,
    fmt: str = FORMAT_JSONL,
    defaults: Optional[Mapping[str, str]] = None,
) -> list[FacilitySeedRow]:
    """
    Parse operator input into seed rows.

    JSON-lines input that is mostly unparseable is retried as locator text,
    which is what an operator gets when pasting a brand's store finder page.
    """
    defaults = defaults or {}
    fmt = (fmt or FORMAT_JSONL).lower()
    if fmt not in FORMATS:
        raise ValueError(f"Unsupported seed format {fmt!r}; expected one of: {', '.join(FORMATS)}")
    if fmt == FORMAT_CSV:
        rows = _parse_csv(text)
    elif fmt == FORMAT_LOCATOR:
        rows = _parse_locator(text, defaults)
    else:
        rows = _parse_jsonl(text)
        invalid = sum(1 for row in rows if row.invalid_reason)
        if rows and invalid / len(rows) >= 0.5:
            logger.info("Input does not look like JSON lines; parsing as locator text")
            rows = _parse_locator(text, defaults)
    return [row.with_defaults(defaults) for row in rows]


def default_seed_log(brand: Optional[str]) -> str:
    return f"{slugify(brand or 'facilities') or 'facilities'}.locations.v1{SEED_SUFFIX}"


def facility_category(seed: FacilitySeedRow) -> str:
    if seed.category:
        return seed.category
    lowered = seed.brand.lower()
    if any(brand in lowered for brand in CHAIN_BRANDS):
        return CHAIN_CATEGORY
    return DEFAULT_CATEGORY


def build_facility(seed: FacilitySeedRow) -> Optional[Facility]:
    if seed.problem() is not None:
        return None
    keys = seed.keys()
    if keys is None:
        return None
    address_key = keys.exact
    label = seed.location_label
    return Facility(
        facility_id=f"{slugify(seed.brand)}__{slugify(address_key)}",
        address_key=address_key,
        brand=seed.brand,
        display_name=f"{seed.brand} - {label}" if label else seed.brand,
        category=facility_category(seed),
        location_label=label or None,
        source=seed.source or None,
        phone=seed.phone or None,
        website=seed.website or None,
        types=seed.types or None,
    )


@dataclass(slots=True)
class PreviewRow:
    seed: FacilitySeedRow
    address_key: Optional[str] = None
    problem: Optional[str] = None
    matched: Optional[Facility] = None
    tier: Optional[MatchTier] = None

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {"input": self.seed.to_record()}
        if self.seed.raw is not None:
            record["raw"] = self.seed.raw
        if self.address_key:
            record["addressKey"] = self.address_key
        if self.problem:
            record["reason"] = self.problem
        if self.matched is not None:
            record["matched"] = self.matched.to_record()
            record["matchTier"] = self.tier.value if self.tier else None
        return record


@dataclass(slots=True)
class ImportPreview:
    matched: list[PreviewRow] = field(default_factory=list)
    not_found: list[PreviewRow] = field(default_factory=list)
    invalid: list[PreviewRow] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.matched) + len(self.not_found) + len(self.invalid)

    def counts(self) -> dict[str, int]:
        return {
            "input": self.total,
            "matched": len(self.matched),
            "notFound": len(self.not_found),
            "invalid": len(self.invalid),
        }

    def to_record(self) -> dict[str, Any]:
        return {
            "ok": True,
            "counts": self.counts(),
            "matched": [row.to_record() for row in self.matched],
            "notFound": [row.to_record() for row in self.not_found],
            "invalid": [row.to_record() for row in self.invalid],
        }


@dataclass(slots=True)
class FacilityDirectory:
    facilities: list[Facility]
    seed_files: int = 0
    updated_at: Optional[str] = None

    def __len__(self) -> int:
        return len(self.facilities)

    def index(self) -> TieredIndex[Facility]:
        index: TieredIndex[Facility] = TieredIndex()
        for facility in self.facilities:
            if not index.add_key(facility.address_key, facility):
                logger.debug("Facility %s has an unparseable address key", facility.facility_id)
        return index

    def to_record(self) -> dict[str, Any]:
        return {
            "ok": True,
            "kind": "facility_index",
            "version": "v1",
            "counts": {"facilities": len(self.facilities), "seedFiles": self.seed_files},
            "facilities": [facility.to_record() for facility in self.facilities],
            "updatedAt": self.updated_at or now_iso(),
        }


@dataclass(slots=True)
class ImportReceipt:
    seed_log: str
    preview: ImportPreview
    appended: int
    skipped_existing: int
    directory_size: int
    note: Optional[str] = None
    fmt: Optional[str] = None
    receipt_path: Optional[Path] = None

    def counts(self) -> dict[str, int]:
        return {
            **self.preview.counts(),
            "appended": self.appended,
            "skippedExisting": self.skipped_existing,
            "facilityIndexFacilities": self.directory_size,
        }

    def to_record(self) -> dict[str, Any]:
        return {
            "kind": "facilities_import_receipt",
            "version": "v1",
            "operatorNote": self.note or "",
            "format": self.fmt,
            "seedFileName": self.seed_log,
            "counts": self.counts(),
            "updatedAt": now_iso(),
        }


class FacilityResolver:
    """Preview, commit and rebuild operations over the seed logs and directory."""

    def __init__(self, store: DocumentStore, layout: DataLayout) -> None:
        self.store = store
        self.layout = layout

    def seed_logs(self) -> list[str]:
        return self.store.list_names(self.layout.seeds_dir, SEED_SUFFIX)

    def iter_seeds(self) -> Iterator[FacilitySeedRow]:
        for name in self.seed_logs():
            for line in self.store.read_lines(name):
                try:
                    obj = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Ignoring unreadable line in seed log %s", name)
                    continue
                if isinstance(obj, dict):
                    yield FacilitySeedRow.from_record(obj)

    def load_directory(self) -> FacilityDirectory:
        doc = self.store.read(self.layout.facility_index)
        if not isinstance(doc, dict):
            return FacilityDirectory(facilities=[])
        facilities = [
            Facility.from_record(item) for item in doc.get("facilities") or [] if isinstance(item, dict)
        ]
        seed_files = int((doc.get("counts") or {}).get("seedFiles") or 0)
        return FacilityDirectory(facilities=facilities, seed_files=seed_files, updated_at=doc.get("updatedAt"))

    def load_index(self) -> TieredIndex[Facility]:
        return self.load_directory().index()

    def known_index(self) -> TieredIndex[Facility]:
        """Directory plus raw seeds, so preview works before the first rebuild."""
        index = self.load_index()
        for seed in self.iter_seeds():
            facility = build_facility(seed)
            if facility is not None:
                index.add_key(facility.address_key, facility)
        return index

    def preview(self, rows: Iterable[FacilitySeedRow]) -> ImportPreview:
        known = self.known_index()
        preview = ImportPreview()
        for seed in rows:
            problem = seed.problem()
            if problem is not None:
                preview.invalid.append(PreviewRow(seed=seed, problem=problem))
                continue
            keys = seed.keys()
            if keys is None:
                preview.invalid.append(PreviewRow(seed=seed, problem="address_not_normalized"))
                continue
            found = known.lookup(keys)
            if found is None:
                preview.not_found.append(PreviewRow(seed=seed, address_key=keys.exact))
            else:
                facility, tier = found
                preview.matched.append(
                    PreviewRow(seed=seed, address_key=keys.exact, matched=facility, tier=tier)
                )
        logger.info(
            "Preview: %d matched, %d not found, %d invalid",
            len(preview.matched),
            len(preview.not_found),
            len(preview.invalid),
        )
        return preview

    def commit(
        self,
        rows: Iterable[FacilitySeedRow],
        seed_log: Optional[str] = None,
        note: Optional[str] = None,
        fmt: Optional[str] = None,
    ) -> ImportReceipt:
        rows = list(rows)
        preview = self.preview(rows)
        if seed_log is None:
            first_brand = next((row.brand for row in rows if row.brand), None)
            seed_log = default_seed_log(first_brand)
        if not seed_log.endswith(SEED_SUFFIX):
            seed_log = f"{seed_log}{SEED_SUFFIX}"

        existing_bases = set()
        for seed in self.iter_seeds():
            keys = seed.keys()
            if keys is not None:
                existing_bases.add(keys.base)

        appended: list[str] = []
        skipped = len(preview.matched)
        for row in preview.not_found:
            keys = row.seed.keys()
            if keys is None:
                continue
            if keys.base in existing_bases:
                skipped += 1
                continue
            existing_bases.add(keys.base)
            appended.append(json.dumps(row.seed.to_record(), sort_keys=True, ensure_ascii=False))

        name = self.layout.seed_log(seed_log)
        if appended:
            self.store.replace_lines(name, self.store.read_lines(name) + appended)
            logger.info("Appended %d seeds to %s", len(appended), name)

        directory = self.rebuild()
        receipt = ImportReceipt(
            seed_log=seed_log,
            preview=preview,
            appended=len(appended),
            skipped_existing=skipped,
            directory_size=len(directory),
            note=note,
            fmt=fmt,
        )
        receipt.receipt_path = self.store.write_receipt(
            self.layout.receipts_dir, "facilities_import", receipt.to_record()
        )
        return receipt

    def rebuild(self) -> FacilityDirectory:
        logs = self.seed_logs()
        by_key: dict[str, Facility] = {}
        skipped = 0
        for seed in self.iter_seeds():
            facility = build_facility(seed)
            if facility is None:
                skipped += 1
                continue
            by_key[facility.address_key] = facility
        if skipped:
            logger.info("Skipped %d invalid seed rows during rebuild", skipped)
        directory = FacilityDirectory(
            facilities=[by_key[key] for key in sorted(by_key)],
            seed_files=len(logs),
            updated_at=now_iso(),
        )
        self.store.replace(self.layout.facility_index, directory.to_record())
        logger.info("Facility directory rebuilt: %d facilities from %d seed logs", len(directory), len(logs))
        return directory
