from __future__ import annotations

from typing import Optional

from ..app import AddressTruthApp
from ..sweep.adjudications import BulkAction
from .output import count_lines

BULK_ACTIONS = {
    "out-of-scope": BulkAction.REJECT_OUT_OF_SCOPE,
    "maildrop": BulkAction.REJECT_MAILDROP,
}


def decide(
    app: AddressTruthApp,
    address_key: str,
    decision: str,
    *,
    place_id: Optional[str] = None,
    name: Optional[str] = None,
    note: Optional[str] = None,
) -> None:
    item = app.adjudications().upsert(
        address_key, decision, note=note, selected_place_id=place_id, selected_name=name
    )
    print(f"{item.address_key}: {item.decision.value} ({item.decided_at})")


def bulk_reject(app: AddressTruthApp, action: str) -> None:
    sweep_doc = app.store.require(app.layout.sweep_candidates, "sweep candidates document")
    changed = app.adjudications().bulk_reject(sweep_doc, BULK_ACTIONS[action])
    print(f"Bulk reject ({action}): {changed} adjudication(s) created or changed")


def materialize(app: AddressTruthApp) -> None:
    report = app.effective().run()
    print(f"Effective view -> {report.path}")
    for line in count_lines(report.counts):
        print(line)
