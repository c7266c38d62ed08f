"""
Effective sweep view: computed classification merged with human decisions.

The merge is a pure function of the sweep document and the adjudication
index; only ``updatedAt`` differs between two runs over the same inputs.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ..models import UNREVIEWED, Adjudication, AddressClass, Decision
from ..store import DataLayout, DocumentStore, now_iso, rows_from_document
from .adjudications import AdjudicationStore

logger = logging.getLogger(__name__)

DECISION_CLASSES: Dict[Decision, AddressClass] = {
    Decision.SUITE_CENTER: AddressClass.SUITE_CENTER,
    Decision.RESIDENTIAL: AddressClass.RESIDENTIAL,
    Decision.REJECTED: AddressClass.UNKNOWN,
    Decision.UNKNOWN: AddressClass.UNKNOWN,
    Decision.NO_STOREFRONT: AddressClass.UNKNOWN,
}


def _selected_candidate(row: Mapping[str, Any], adjudication: Adjudication) -> Optional[Dict[str, Any]]:
    top = row.get("topCandidate")
    wanted = adjudication.selected_place_id or ""
    for candidate in row.get("sweepCandidates") or []:
        if wanted and str(candidate.get("placeId") or "") == wanted:
            return candidate
    if adjudication.selected_name:
        # Selected candidate no longer in the list: keep the pick as a stub.
        stub = dict(top or {})
        stub["name"] = adjudication.selected_name
        stub["placeId"] = adjudication.selected_place_id
        return stub
    return top


def merge_row(row: Mapping[str, Any], adjudication: Optional[Adjudication]) -> Dict[str, Any]:
    key = str(row.get("addressKey") or "").strip()
    effective_class = str(row.get("addressClass") or AddressClass.UNKNOWN.value)
    effective_top = row.get("topCandidate")

    if adjudication is not None:
        if adjudication.decision is Decision.CONFIRM_CANDIDATE:
            effective_class = AddressClass.STOREFRONT.value
            effective_top = _selected_candidate(row, adjudication)
        elif adjudication.decision in DECISION_CLASSES:
            effective_class = DECISION_CLASSES[adjudication.decision].value

    merged = dict(row)
    merged["adjudication"] = (
        adjudication.to_record() if adjudication else {"addressKey": key, "decision": UNREVIEWED}
    )
    merged["effectiveAddressClass"] = effective_class
    merged["effectiveTopCandidate"] = effective_top
    return merged


def materialize_effective(
    sweep_doc: Any,
    adjudications: Mapping[str, Adjudication],
    updated_at: Optional[str] = None,
) -> Dict[str, Any]:
    tally: Counter[str] = Counter()
    rows = []
    for row in rows_from_document(sweep_doc):
        key = str(row.get("addressKey") or "").strip()
        adjudication = adjudications.get(key) if key else None
        rows.append(merge_row(row, adjudication))
        decision = adjudication.decision if adjudication else None
        if decision is Decision.CONFIRM_CANDIDATE:
            tally["confirmedCandidate"] += 1
        elif decision is Decision.SUITE_CENTER:
            tally["manualSuiteCenter"] += 1
        elif decision is Decision.RESIDENTIAL:
            tally["manualResidential"] += 1
        elif decision is None:
            tally["unreviewed"] += 1
        else:
            tally["manualUnknown"] += 1

    by_class = Counter(row["effectiveAddressClass"] for row in rows)
    counts: Dict[str, Any] = {
        "rows": len(rows),
        "confirmedCandidate": tally["confirmedCandidate"],
        "manualSuiteCenter": tally["manualSuiteCenter"],
        "manualResidential": tally["manualResidential"],
        "manualUnknown": tally["manualUnknown"],
        "unreviewed": tally["unreviewed"],
        "effective": {c.value: by_class.get(c.value, 0) for c in AddressClass},
    }
    return {
        "ok": True,
        "kind": "address_sweep_effective",
        "version": "v1",
        "counts": counts,
        "rows": rows,
        "updatedAt": updated_at or now_iso(),
    }


@dataclass(slots=True)
class EffectiveReport:
    counts: Dict[str, Any]
    path: Path
    updated_at: str


class EffectiveMaterializer:
    def __init__(self, store: DocumentStore, layout: DataLayout) -> None:
        self.store = store
        self.layout = layout

    def run(self) -> EffectiveReport:
        sweep_doc = self.store.require(self.layout.sweep_candidates, "sweep candidates document")
        adjudications = AdjudicationStore(self.store, self.layout).index()
        doc = materialize_effective(sweep_doc, adjudications)
        doc["source"] = {
            "candidates": self.layout.sweep_candidates,
            "adjudications": self.layout.adjudications,
        }
        path = self.store.replace(self.layout.sweep_effective, doc)
        logger.info(
            "Materialized %d rows (%d unreviewed)", doc["counts"]["rows"], doc["counts"]["unreviewed"]
        )
        return EffectiveReport(counts=doc["counts"], path=path, updated_at=doc["updatedAt"])
