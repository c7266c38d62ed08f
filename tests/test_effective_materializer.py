import tempfile
import unittest
from pathlib import Path

from address_truth.models import MissingInputError
from address_truth.store import DataLayout, DocumentStore
from address_truth.sweep.adjudications import AdjudicationStore, make_adjudication
from address_truth.sweep.effective import EffectiveMaterializer, materialize_effective

KEY_A = "100 MAIN ST | DENVER | CO | 80202"
KEY_B = "7 ELM ST | BOULDER | CO | 80302"
KEY_C = "9 OAK AVE | AURORA | CO | 80010"

CANDIDATES = [
    {"name": "Luxe Nails", "placeId": "p1", "score": 11},
    {"name": "Other", "placeId": "p2", "score": 3},
]

SWEEP_DOC = {
    "ok": True,
    "rows": [
        {"addressKey": KEY_A, "addressClass": "unknown", "sweepCandidates": CANDIDATES, "topCandidate": CANDIDATES[0]},
        {"addressKey": KEY_B, "addressClass": "suite_center", "sweepCandidates": [], "topCandidate": None},
        {"addressKey": KEY_C, "addressClass": "residential", "sweepCandidates": [], "topCandidate": None},
    ],
}


class TestEffectiveMerge(unittest.TestCase):
    def test_decisions_override_computed_class(self) -> None:
        adjudications = {
            KEY_A: make_adjudication(KEY_A, "confirm_candidate", selected_place_id="p2"),
            KEY_B: make_adjudication(KEY_B, "rejected"),
        }
        doc = materialize_effective(SWEEP_DOC, adjudications, updated_at="t0")
        rows = {row["addressKey"]: row for row in doc["rows"]}
        self.assertEqual(rows[KEY_A]["effectiveAddressClass"], "storefront")
        self.assertEqual(rows[KEY_A]["effectiveTopCandidate"]["placeId"], "p2")
        self.assertEqual(rows[KEY_A]["addressClass"], "unknown")
        self.assertEqual(rows[KEY_B]["effectiveAddressClass"], "unknown")
        self.assertEqual(rows[KEY_C]["effectiveAddressClass"], "residential")
        self.assertEqual(rows[KEY_C]["adjudication"], {"addressKey": KEY_C, "decision": "unreviewed"})
        counts = doc["counts"]
        self.assertEqual(counts["rows"], 3)
        self.assertEqual(counts["confirmedCandidate"], 1)
        self.assertEqual(counts["manualUnknown"], 1)
        self.assertEqual(counts["unreviewed"], 1)
        self.assertEqual(counts["effective"]["storefront"], 1)
        self.assertEqual(counts["effective"]["unknown"], 1)
        self.assertEqual(counts["effective"]["maildrop"], 0)

    def test_confirm_by_name_when_candidate_is_gone(self) -> None:
        adjudications = {KEY_B: make_adjudication(KEY_B, "confirm_candidate", selected_name="Walk-in Studio")}
        doc = materialize_effective(SWEEP_DOC, adjudications, updated_at="t0")
        row = [r for r in doc["rows"] if r["addressKey"] == KEY_B][0]
        self.assertEqual(row["effectiveTopCandidate"]["name"], "Walk-in Studio")

    def test_manual_classes(self) -> None:
        adjudications = {
            KEY_A: make_adjudication(KEY_A, "suite_center"),
            KEY_B: make_adjudication(KEY_B, "residential"),
        }
        counts = materialize_effective(SWEEP_DOC, adjudications, updated_at="t0")["counts"]
        self.assertEqual(counts["manualSuiteCenter"], 1)
        self.assertEqual(counts["manualResidential"], 1)
        self.assertEqual(counts["effective"]["suite_center"], 1)
        self.assertEqual(counts["effective"]["residential"], 2)


class TestEffectiveMaterializer(unittest.TestCase):
    def test_run_is_idempotent_except_timestamp(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DocumentStore(Path(tmpdir))
            layout = DataLayout()
            store.replace(layout.sweep_candidates, SWEEP_DOC)
            AdjudicationStore(store, layout).upsert(KEY_A, "confirm_candidate", selected_place_id="p1")

            materializer = EffectiveMaterializer(store, layout)
            materializer.run()
            first = store.read(layout.sweep_effective)
            report = materializer.run()
            second = store.read(layout.sweep_effective)

            first.pop("updatedAt")
            second.pop("updatedAt")
            self.assertEqual(first, second)
            self.assertEqual(report.counts["confirmedCandidate"], 1)
            self.assertEqual(second["kind"], "address_sweep_effective")

    def test_requires_sweep_document(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(MissingInputError):
                EffectiveMaterializer(DocumentStore(Path(tmpdir)), DataLayout()).run()


if __name__ == "__main__":
    unittest.main()
