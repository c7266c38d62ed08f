from __future__ import annotations

import hashlib
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..config import Settings
from ..core.address import MatchTier
from ..core.scoring import (
    REASON_FACILITY,
    REASON_NEEDS_SWEEP,
    REASON_NO_HITS,
    Classification,
    ClassificationInput,
    classify_address,
    rank_candidates,
    score_candidate,
)
from ..facilities import FacilityResolver
from ..models import AddressClass, AddressTruthRow, Facility, SweepCandidate
from ..providers.places import STATUS_OK, Geocode
from ..store import DataLayout, DocumentStore, now_iso, rows_from_document
from .discovery import MODE_STUB, CandidateDiscovery

logger = logging.getLogger(__name__)

FACILITY_QUERY = "facility_overlay"


@dataclass(slots=True)
class DensitySignals:
    licenses: int = 0
    unique_techs: int = 0
    active_count: Optional[int] = None

    @classmethod
    def from_truth(cls, row: AddressTruthRow) -> "DensitySignals":
        return cls(
            licenses=row.tech_count,
            unique_techs=row.holder_count if row.holder_count else row.tech_count,
            active_count=row.active_count,
        )


@dataclass(slots=True)
class SweepRow:
    address_key: str
    address_class: AddressClass
    confidence: float
    reasons: List[str]
    candidates: List[SweepCandidate]
    signals: DensitySignals
    mode: str
    fetched_at: str
    queries: List[str] = field(default_factory=list)
    geocode: Optional[Geocode] = None
    address_id: Optional[str] = None
    facility: Optional[Facility] = None
    placeholder: bool = False

    @property
    def top_candidate(self) -> Optional[SweepCandidate]:
        return self.candidates[0] if self.candidates else None

    @property
    def has_accepted_facility(self) -> bool:
        return self.facility is not None

    def to_record(self) -> Dict[str, Any]:
        top = self.top_candidate
        return {
            "addressKey": self.address_key,
            "addressId": self.address_id,
            "addressClass": self.address_class.value,
            "confidence": self.confidence,
            "reasons": list(self.reasons),
            "sweepCandidates": [candidate.to_record() for candidate in self.candidates],
            "topCandidate": top.to_record() if top else None,
            "geocode": self.geocode.to_record() if self.geocode else None,
            "source": {"mode": self.mode, "queries": list(self.queries), "fetchedAt": self.fetched_at},
            "context": {
                "hasAcceptedFacility": self.has_accepted_facility,
                "facilityId": self.facility.facility_id if self.facility else None,
                "facilityBrand": self.facility.brand if self.facility else None,
                "licenses": self.signals.licenses,
                "uniqueTechs": self.signals.unique_techs,
                "activeCount": self.signals.active_count,
                "placeholder": self.placeholder,
            },
        }


@dataclass(slots=True)
class SweepReport:
    counts: Dict[str, int]
    processed: int
    requested: int
    missing_synthesized: int
    provider: Dict[str, Any]
    sha256: str
    path: Path
    receipt_path: Path
    errors: List[str] = field(default_factory=list)


def facility_candidate(facility: Facility) -> SweepCandidate:
    return SweepCandidate(
        name=facility.display_name or facility.brand,
        query=FACILITY_QUERY,
        types=list(facility.types or []),
        website=facility.website,
        phone=facility.phone,
        formatted_address=facility.address_key,
        source=facility.source,
        at_address=True,
        score=100,
        reasons=[REASON_FACILITY],
    )


def apply_reason_hygiene(reasons: List[str], mode: str, geocode: Optional[Geocode], candidate_count: int) -> List[str]:
    """Recompute the sweep-state reasons from what was actually fetched."""
    cleaned = [reason for reason in reasons if reason not in (REASON_NEEDS_SWEEP, REASON_NO_HITS)]
    status = geocode.status if geocode else ""
    if mode == MODE_STUB or status != STATUS_OK:
        cleaned.append(REASON_NEEDS_SWEEP)
    elif candidate_count == 0:
        cleaned.append(REASON_NO_HITS)
    return cleaned


def count_rows(rows: Iterable[SweepRow]) -> Dict[str, int]:
    rows = list(rows)
    by_class = Counter(row.address_class for row in rows)
    counts: Dict[str, int] = {"rows": len(rows)}
    for address_class in AddressClass:
        counts[address_class.value] = by_class.get(address_class, 0)
    counts["needsExternalSweep"] = 0
    counts["noExternalHits"] = 0
    for row in rows:
        if row.has_accepted_facility:
            continue
        status = row.geocode.status if row.geocode else ""
        if row.mode == MODE_STUB or status != STATUS_OK:
            counts["needsExternalSweep"] += 1
        elif not row.candidates:
            counts["noExternalHits"] += 1
    return counts


def placeholder_row(address_key: str) -> AddressTruthRow:
    return AddressTruthRow.from_record({"addressKey": address_key})


def select_rows(
    truth_rows: List[AddressTruthRow],
    address_keys: Optional[List[str]],
    limit: Optional[int],
) -> tuple[List[AddressTruthRow], List[str]]:
    """Pick the rows to sweep; requested keys absent from the snapshot come back separately."""
    requested = [key.strip() for key in address_keys or [] if key and key.strip()]
    if requested:
        wanted = set(requested)
        selected = [row for row in truth_rows if row.address_key in wanted]
        have = {row.address_key for row in selected}
        missing = list(dict.fromkeys(key for key in requested if key not in have))
        return selected, missing
    if limit is not None:
        return truth_rows[: max(0, limit)], []
    return list(truth_rows), []


class SweepRunner:
    def __init__(
        self,
        store: DocumentStore,
        layout: DataLayout,
        settings: Settings,
        discovery: CandidateDiscovery,
    ) -> None:
        self.store = store
        self.layout = layout
        self.settings = settings
        self.discovery = discovery

    def sweep_row(
        self,
        truth: AddressTruthRow,
        facility: Optional[Facility],
        fetched_at: str,
        placeholder: bool = False,
    ) -> SweepRow:
        address_key = truth.address_key
        signals = DensitySignals() if placeholder else DensitySignals.from_truth(truth)
        mode = self.discovery.mode

        if facility is not None:
            # Accepted overlay: no outbound fetch.
            return SweepRow(
                address_key=address_key,
                address_id=truth.address_id or None,
                address_class=AddressClass.STOREFRONT,
                confidence=1.0,
                reasons=[REASON_FACILITY],
                candidates=[facility_candidate(facility)],
                signals=signals,
                mode=mode,
                fetched_at=fetched_at,
                facility=facility,
                placeholder=placeholder,
            )

        fetched = self.discovery.discover(address_key)
        location = fetched.geocode.location if fetched.geocode else None
        candidates = rank_candidates(score_candidate(c, address_key, location) for c in fetched.candidates)
        classification: Classification = classify_address(
            ClassificationInput(
                address_key=address_key,
                top_candidate=candidates[0] if candidates else None,
                candidate_count=len(candidates),
                licenses=signals.licenses,
                unique_techs=signals.unique_techs,
                active_count=signals.active_count,
                geocode_status=fetched.geocode.status if fetched.geocode else None,
            ),
            self.settings.classification,
        )
        return SweepRow(
            address_key=address_key,
            address_id=truth.address_id or None,
            address_class=classification.address_class,
            confidence=classification.confidence,
            reasons=apply_reason_hygiene(classification.reasons, mode, fetched.geocode, len(candidates)),
            candidates=candidates,
            signals=signals,
            mode=mode,
            fetched_at=fetched_at,
            queries=fetched.queries,
            geocode=fetched.geocode,
            placeholder=placeholder,
        )

    def run(self, address_keys: Optional[List[str]] = None, limit: Optional[int] = None) -> SweepReport:
        truth_doc = self.store.require(self.layout.address_truth, "address truth document")
        truth_rows = [AddressTruthRow.from_record(r) for r in rows_from_document(truth_doc)]
        truth_rows = [row for row in truth_rows if row.address_key]

        errors: List[str] = []
        if not self.store.exists(self.layout.facility_index):
            errors.append(f"missing_optional:{self.layout.facility_index}")
        facilities = FacilityResolver(self.store, self.layout).load_index()

        selected, missing = select_rows(truth_rows, address_keys, limit)
        fetched_at = now_iso()
        self.discovery.reset()

        rows: List[SweepRow] = []
        work = [(row, False) for row in selected] + [(placeholder_row(key), True) for key in missing]
        for truth, is_placeholder in work:
            found = facilities.lookup_key(truth.address_key)
            # A building-level (base tier) hit does not make every suite a storefront.
            facility = found[0] if found and found[1] is not MatchTier.BASE else None
            rows.append(self.sweep_row(truth, facility, fetched_at, placeholder=is_placeholder))
        if missing:
            logger.info("Synthesized %d placeholder rows for unknown address keys", len(missing))

        counts = count_rows(rows)
        provider = self.discovery.diagnostics.to_record()
        doc = {
            "ok": True,
            "kind": "address_sweep_candidates",
            "version": "v1",
            "source": {"addressTruth": self.layout.address_truth, "facilityIndex": self.layout.facility_index},
            "counts": counts,
            "provider": provider,
            "rows": [row.to_record() for row in rows],
            "updatedAt": fetched_at,
        }
        path = self.store.replace(self.layout.sweep_candidates, doc)
        digest = hashlib.sha256(path.read_bytes()).hexdigest()
        requested = len([key for key in address_keys or [] if key and key.strip()])
        receipt_path = self.store.write_receipt(
            self.layout.receipts_dir,
            "address_sweep",
            {
                "ok": True,
                "kind": "address_sweep_receipt",
                "version": "v1",
                "inputs": {
                    "addressTruthRows": len(truth_rows),
                    "facilities": len(facilities),
                    "requestedAddressKeys": requested,
                    "missingSynthesized": len(missing),
                },
                "processed": len(rows),
                "errors": errors,
                "provider": provider,
                "output": self.layout.sweep_candidates,
                "sha256": digest,
                "updatedAt": fetched_at,
            },
        )
        logger.info(
            "Swept %d addresses (%s mode): %s",
            len(rows),
            provider["mode"],
            ", ".join(f"{c.value}={counts[c.value]}" for c in AddressClass),
        )
        return SweepReport(
            counts=counts,
            processed=len(rows),
            requested=requested,
            missing_synthesized=len(missing),
            provider=provider,
            sha256=digest,
            path=path,
            receipt_path=receipt_path,
            errors=errors,
        )


def run_sweep(
    store: DocumentStore,
    layout: DataLayout,
    settings: Settings,
    discovery: CandidateDiscovery,
    address_keys: Optional[List[str]] = None,
    limit: Optional[int] = None,
) -> SweepReport:
    return SweepRunner(store, layout, settings, discovery).run(address_keys=address_keys, limit=limit)
