import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from address_truth.models import MissingInputError
from address_truth.store import DocumentStore, rows_from_document


class TestDocumentStore(unittest.TestCase):
    def test_replace_and_read(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DocumentStore(Path(tmpdir))
            path = store.replace("truth/doc.json", {"b": 1, "a": [1, 2]})
            self.assertEqual(store.read("truth/doc.json"), {"a": [1, 2], "b": 1})
            text = path.read_text(encoding="utf-8")
            self.assertTrue(text.startswith('{\n  "a"'))
            self.assertTrue(text.endswith("\n"))

    def test_missing_document(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DocumentStore(Path(tmpdir))
            self.assertIsNone(store.read("nope.json"))
            with self.assertRaises(MissingInputError) as ctx:
                store.require("nope.json", "facility source")
            self.assertEqual(ctx.exception.path, Path(tmpdir) / "nope.json")
            self.assertIn("facility source", str(ctx.exception))

    def test_failed_write_leaves_previous_document(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DocumentStore(Path(tmpdir))
            store.replace("doc.json", {"v": 1})
            with patch("address_truth.store.os.replace", side_effect=OSError("disk full")):
                with self.assertRaises(OSError):
                    store.replace("doc.json", {"v": 2})
            self.assertEqual(store.read("doc.json"), {"v": 1})
            self.assertEqual(sorted(p.name for p in Path(tmpdir).iterdir()), ["doc.json"])

    def test_lines_and_listing(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DocumentStore(Path(tmpdir))
            self.assertEqual(store.read_lines("seeds/a.jsonl"), [])
            self.assertEqual(store.list_names("seeds", ".jsonl"), [])
            store.replace_lines("seeds/b.jsonl", ['{"x": 1}', ""])
            store.replace_lines("seeds/a.jsonl", ['{"x": 2}'])
            store.replace("seeds/notes.json", {})
            self.assertEqual(store.read_lines("seeds/b.jsonl"), ['{"x": 1}'])
            self.assertEqual(store.list_names("seeds", ".jsonl"), ["seeds/a.jsonl", "seeds/b.jsonl"])

    def test_receipts_are_separate_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DocumentStore(Path(tmpdir))
            with patch("address_truth.store.now_iso", side_effect=["2026-01-01T00:00:00.000Z", "2026-01-01T00:00:01.000Z"]):
                first = store.write_receipt("receipts", "truth_build", {"ok": True})
                second = store.write_receipt("receipts", "truth_build", {"ok": True})
            self.assertNotEqual(first, second)
            self.assertEqual(first.name, "truth_build_2026-01-01T00-00-00-000Z.json")
            self.assertEqual(json.loads(first.read_text(encoding="utf-8")), {"ok": True})


class TestRowsFromDocument(unittest.TestCase):
    def test_envelopes(self) -> None:
        self.assertEqual(rows_from_document([{"a": 1}, "x"]), [{"a": 1}])
        self.assertEqual(rows_from_document({"rows": [{"a": 1}]}), [{"a": 1}])
        self.assertEqual(rows_from_document({"data": [{"b": 2}]}), [{"b": 2}])
        self.assertEqual(rows_from_document({"items": [{"c": 3}]}), [{"c": 3}])
        self.assertEqual(rows_from_document(None), [])
        self.assertEqual(rows_from_document({"other": 1}), [])


if __name__ == "__main__":
    unittest.main()
