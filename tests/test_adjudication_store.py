import tempfile
import unittest
from pathlib import Path

from address_truth.models import Decision, InvalidDecisionError
from address_truth.store import DataLayout, DocumentStore
from address_truth.sweep.adjudications import AdjudicationStore, BulkAction, parse_decision

KEY = "100 MAIN ST | DENVER | CO | 80202"

SWEEP_DOC = {
    "rows": [
        {"addressKey": KEY, "addressClass": "storefront", "reasons": []},
        {"addressKey": "PO BOX 1 | DENVER | CO | 80202", "addressClass": "maildrop", "reasons": ["po_box_maildrop"]},
        {"addressKey": "1 A ST | CHEYENNE | WY | 82001", "addressClass": "unknown", "reasons": ["out_of_scope_state", "state_WY"]},
    ]
}


class TestAdjudicationStore(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = DocumentStore(Path(self._tmp.name))
        self.layout = DataLayout()
        self.adjudications = AdjudicationStore(self.store, self.layout)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_unreviewed_by_default(self) -> None:
        self.assertEqual(self.adjudications.decision_for(KEY), "unreviewed")
        self.assertEqual(self.adjudications.items(), [])

    def test_upsert_keeps_one_entry_per_key(self) -> None:
        self.adjudications.upsert(KEY, "suite_center", note="lots of suites")
        self.adjudications.upsert(KEY, Decision.RESIDENTIAL)
        items = self.adjudications.items()
        self.assertEqual(len(items), 1)
        self.assertIs(items[0].decision, Decision.RESIDENTIAL)
        self.assertIsNone(items[0].note)
        doc = self.store.read(self.layout.adjudications)
        self.assertEqual(doc["kind"], "address_sweep_adjudications")

    def test_unknown_address_key_is_a_normal_create(self) -> None:
        item = self.adjudications.upsert("9 NOWHERE | X | CO | 80000", "unknown")
        self.assertEqual(self.adjudications.get("9 NOWHERE | X | CO | 80000"), item)

    def test_confirm_requires_selected_candidate(self) -> None:
        with self.assertRaises(InvalidDecisionError):
            self.adjudications.upsert(KEY, "confirm_candidate")
        item = self.adjudications.upsert(KEY, "confirm_candidate", selected_place_id="p1")
        self.assertEqual(item.selected_place_id, "p1")

    def test_invalid_decision(self) -> None:
        with self.assertRaises(InvalidDecisionError):
            parse_decision("maybe")
        self.assertIs(parse_decision("No-Storefront"), Decision.NO_STOREFRONT)
        with self.assertRaises(InvalidDecisionError):
            self.adjudications.upsert("  ", "unknown")

    def test_upsert_many_reports_changes_only(self) -> None:
        first = self.adjudications.bulk_reject(SWEEP_DOC, BulkAction.REJECT_MAILDROP)
        self.assertEqual(first, 1)
        path = self.store.path(self.layout.adjudications)
        before = path.read_text(encoding="utf-8")
        again = self.adjudications.bulk_reject(SWEEP_DOC, "reject_maildrop")
        self.assertEqual(again, 0)
        self.assertEqual(path.read_text(encoding="utf-8"), before)

    def test_bulk_reject_out_of_scope(self) -> None:
        changed = self.adjudications.bulk_reject(SWEEP_DOC, BulkAction.REJECT_OUT_OF_SCOPE)
        self.assertEqual(changed, 1)
        item = self.adjudications.get("1 A ST | CHEYENNE | WY | 82001")
        assert item is not None
        self.assertIs(item.decision, Decision.REJECTED)
        self.assertEqual(item.note, "out_of_scope_state")

    def test_existing_entry_keeps_its_position(self) -> None:
        self.adjudications.upsert("A | X | CO | 1", "unknown")
        self.adjudications.upsert("B | X | CO | 1", "unknown")
        self.adjudications.upsert("A | X | CO | 1", "residential")
        self.assertEqual([item.address_key for item in self.adjudications.items()], ["A | X | CO | 1", "B | X | CO | 1"])


if __name__ == "__main__":
    unittest.main()
