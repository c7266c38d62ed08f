from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from ..models import UNREVIEWED, Adjudication, AddressClass, Decision, InvalidDecisionError
from ..store import DataLayout, DocumentStore, now_iso, rows_from_document

logger = logging.getLogger(__name__)


class BulkAction(str, Enum):
    REJECT_OUT_OF_SCOPE = "reject_out_of_scope"
    REJECT_MAILDROP = "reject_maildrop"


def parse_decision(value: Union[str, Decision]) -> Decision:
    if isinstance(value, Decision):
        return value
    text = str(value or "").strip().lower().replace("-", "_")
    try:
        return Decision(text)
    except ValueError:
        choices = ", ".join(d.value for d in Decision)
        raise InvalidDecisionError(f"Unknown decision {value!r}; expected one of: {choices}") from None


def make_adjudication(
    address_key: str,
    decision: Union[str, Decision],
    note: Optional[str] = None,
    selected_place_id: Optional[str] = None,
    selected_name: Optional[str] = None,
    decided_at: Optional[str] = None,
) -> Adjudication:
    key = (address_key or "").strip()
    if not key:
        raise InvalidDecisionError("addressKey is required")
    parsed = parse_decision(decision)
    if parsed is Decision.CONFIRM_CANDIDATE and not (selected_place_id or selected_name):
        raise InvalidDecisionError("confirm_candidate requires a selected candidate place id or name")
    return Adjudication(
        address_key=key,
        decision=parsed,
        decided_at=decided_at or now_iso(),
        note=(note or "").strip() or None,
        selected_place_id=(selected_place_id or "").strip() or None,
        selected_name=(selected_name or "").strip() or None,
    )


def bulk_reject_items(sweep_rows: Iterable[Dict[str, Any]], action: BulkAction) -> List[Adjudication]:
    """Build rejection decisions for every sweep row the bulk action selects."""
    decided_at = now_iso()
    out: List[Adjudication] = []
    for row in sweep_rows:
        key = str(row.get("addressKey") or "").strip()
        if not key:
            continue
        reasons = row.get("reasons") or []
        if action is BulkAction.REJECT_OUT_OF_SCOPE:
            selected = "out_of_scope_state" in reasons
            note = "out_of_scope_state"
        else:
            selected = row.get("addressClass") == AddressClass.MAILDROP.value or "po_box_maildrop" in reasons
            note = "maildrop"
        if selected:
            out.append(make_adjudication(key, Decision.REJECTED, note=note, decided_at=decided_at))
    return out


class AdjudicationStore:
    """
    At most one live adjudication per addressKey.

    Every write replaces the whole document; an upsert on an existing key
    replaces the entry in place so item order stays stable.
    """

    def __init__(self, store: DocumentStore, layout: DataLayout) -> None:
        self.store = store
        self.layout = layout

    def items(self) -> List[Adjudication]:
        doc = self.store.read(self.layout.adjudications)
        out: List[Adjudication] = []
        for record in rows_from_document(doc):
            try:
                out.append(Adjudication.from_record(record))
            except ValueError:
                logger.warning("Ignoring adjudication with unknown decision: %s", record)
        return [item for item in out if item.address_key]

    def index(self) -> Dict[str, Adjudication]:
        return {item.address_key: item for item in self.items()}

    def get(self, address_key: str) -> Optional[Adjudication]:
        return self.index().get(address_key.strip())

    def decision_for(self, address_key: str) -> str:
        item = self.get(address_key)
        return item.decision.value if item else UNREVIEWED

    def upsert(
        self,
        address_key: str,
        decision: Union[str, Decision],
        note: Optional[str] = None,
        selected_place_id: Optional[str] = None,
        selected_name: Optional[str] = None,
    ) -> Adjudication:
        item = make_adjudication(address_key, decision, note, selected_place_id, selected_name)
        self.upsert_many([item])
        logger.info("Recorded %s for %s", item.decision.value, item.address_key)
        return item

    def upsert_many(self, items: Iterable[Adjudication]) -> int:
        """Apply decisions in order; return how many entries were created or changed."""
        rows = self.items()
        positions = {item.address_key: idx for idx, item in enumerate(rows)}
        changed = 0
        for item in items:
            idx = positions.get(item.address_key)
            if idx is None:
                positions[item.address_key] = len(rows)
                rows.append(item)
                changed += 1
            elif not rows[idx].same_decision(item):
                rows[idx] = item
                changed += 1
        if changed:
            self._save(rows)
        return changed

    def bulk_reject(self, sweep_doc: Any, action: Union[str, BulkAction]) -> int:
        action = BulkAction(action)
        items = bulk_reject_items(rows_from_document(sweep_doc), action)
        changed = self.upsert_many(items)
        logger.info("Bulk %s: %d selected, %d changed", action.value, len(items), changed)
        return changed

    def _save(self, rows: List[Adjudication]) -> None:
        self.store.replace(
            self.layout.adjudications,
            {
                "ok": True,
                "kind": "address_sweep_adjudications",
                "version": "v1",
                "updatedAt": now_iso(),
                "items": [item.to_record() for item in rows],
            },
        )
