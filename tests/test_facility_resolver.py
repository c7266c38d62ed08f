import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from address_truth.core.address import MatchTier
from address_truth.facilities import (
    CHAIN_CATEGORY,
    FORMAT_CSV,
    FORMAT_LOCATOR,
    FacilityResolver,
    FacilitySeedRow,
    build_facility,
    default_seed_log,
    parse_seed_text,
    split_unit,
)
from address_truth.store import DataLayout, DocumentStore

JSONL = "\n".join(
    json.dumps(row)
    for row in (
        {"brand": "Great Clips", "locationLabel": "Highlands", "address1": "3000 Zuni St", "address2": "Ste 100", "city": "Denver", "state": "CO", "zip": "80211"},
        {"brand": "Great Clips", "address1": "1 Colfax Ave", "city": "Denver", "state": "CO", "zip": "80203"},
        {"brand": "Great Clips", "address1": "9 Pearl St", "city": "Boulder", "state": "CO", "zip": "80302"},
    )
)

LOCATOR = """Great Clips Highlands
1.2 mi
3000 Zuni St Ste 100, Denver, CO 80211
Opens at 9:00 AM
Map
Great Clips Colfax
1 Colfax Ave, Denver, CO 80203-1111
"""


class TestSeedParsing(unittest.TestCase):
    def test_jsonl_rows(self) -> None:
        rows = parse_seed_text(JSONL)
        self.assertEqual(len(rows), 3)
        self.assertEqual(rows[0].address2, "Ste 100")
        self.assertEqual(rows[0].source, "operator_import")

    def test_invalid_json_line_is_reported(self) -> None:
        rows = parse_seed_text(JSONL + "\n{not json")
        self.assertEqual(rows[-1].problem(), "invalid_json")

    def test_missing_required_fields(self) -> None:
        rows = parse_seed_text(json.dumps({"address1": "1 Main St", "city": "Denver"}))
        self.assertEqual(rows[0].problem(), "missing_required_fields:brand,state,zip")

    def test_locator_text(self) -> None:
        rows = parse_seed_text(LOCATOR, FORMAT_LOCATOR, {"brand": "Great Clips"})
        self.assertEqual(len(rows), 2)
        first = rows[0]
        self.assertEqual(first.location_label, "Great Clips Highlands")
        self.assertEqual((first.address1, first.address2), ("3000 Zuni St", "STE 100"))
        self.assertEqual(first.city, "DENVER")
        self.assertEqual(rows[1].zip, "80203")

    def test_jsonl_input_that_is_not_json_falls_back_to_locator(self) -> None:
        rows = parse_seed_text(LOCATOR, defaults={"brand": "Great Clips"})
        self.assertEqual(len(rows), 2)
        self.assertIsNone(rows[0].problem())

    def test_csv_with_header_synonyms(self) -> None:
        text = "Brand,Street,Suite,City,State,Zip Code\nSupercuts,5 Main St,#2,Aurora,CO,80010\n"
        rows = parse_seed_text(text, FORMAT_CSV)
        self.assertEqual(rows[0].brand, "Supercuts")
        self.assertEqual(rows[0].address2, "#2")
        self.assertEqual(rows[0].zip, "80010")

    def test_unsupported_format(self) -> None:
        with self.assertRaises(ValueError):
            parse_seed_text("", "xml")

    def test_split_unit(self) -> None:
        self.assertEqual(split_unit("7280 Lagae Rd Ste D"), ("7280 Lagae Rd", "STE D"))
        self.assertEqual(split_unit("12 Main St C-108"), ("12 Main St", "C-108"))
        self.assertEqual(split_unit("12 Main St"), ("12 Main St", ""))


class TestFacilityBuild(unittest.TestCase):
    def test_facility_id_and_chain_category(self) -> None:
        seed = FacilitySeedRow(
            brand="Great Clips", location_label="Highlands", address1="3000 Zuni St", city="Denver", state="CO", zip="80211"
        )
        facility = build_facility(seed)
        assert facility is not None
        self.assertEqual(facility.address_key, "3000 ZUNI ST | DENVER | CO | 80211")
        self.assertEqual(facility.facility_id, "great-clips__3000-zuni-st-denver-co-80211")
        self.assertEqual(facility.display_name, "Great Clips - Highlands")
        self.assertEqual(facility.category, CHAIN_CATEGORY)

    def test_invalid_seed_builds_nothing(self) -> None:
        self.assertIsNone(build_facility(FacilitySeedRow(brand="X")))

    def test_default_seed_log_name(self) -> None:
        self.assertEqual(default_seed_log("Great Clips"), "great-clips.locations.v1.jsonl")
        self.assertEqual(default_seed_log(None), "facilities.locations.v1.jsonl")


class TestFacilityResolver(unittest.TestCase):
    def test_commit_is_idempotent(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DocumentStore(Path(tmpdir))
            layout = DataLayout()
            resolver = FacilityResolver(store, layout)

            first = resolver.commit(parse_seed_text(JSONL), note="initial")
            self.assertEqual(first.appended, 3)
            self.assertEqual(first.skipped_existing, 0)
            self.assertEqual(first.directory_size, 3)
            self.assertEqual(first.seed_log, "great-clips.locations.v1.jsonl")
            self.assertTrue(first.receipt_path.exists())

            second = resolver.commit(parse_seed_text(JSONL))
            self.assertEqual(second.appended, 0)
            self.assertEqual(second.skipped_existing, 3)
            self.assertEqual(second.counts()["input"], 3)
            self.assertEqual(len(store.read_lines(layout.seed_log(first.seed_log))), 3)
            self.assertEqual(store.read(layout.facility_index)["counts"]["facilities"], 3)

    def test_preview_matches_across_tiers(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DocumentStore(Path(tmpdir))
            resolver = FacilityResolver(store, DataLayout())
            resolver.commit(parse_seed_text(JSONL))

            incoming = parse_seed_text(
                "\n".join(
                    json.dumps(row)
                    for row in (
                        {"brand": "Great Clips", "address1": "3000 Zuni Street", "address2": "Suite 100", "city": "Denver", "state": "CO", "zip": "80211"},
                        {"brand": "Great Clips", "address1": "9 Pearl St", "address2": "Unit 7", "city": "Boulder", "state": "CO", "zip": "80302"},
                        {"brand": "Great Clips", "address1": "77 New Rd", "city": "Golden", "state": "CO", "zip": "80401"},
                        {"brand": "Great Clips", "city": "Golden"},
                    )
                )
            )
            preview = resolver.preview(incoming)
            self.assertEqual(preview.counts(), {"input": 4, "matched": 2, "notFound": 1, "invalid": 1})
            self.assertEqual(preview.matched[0].tier, MatchTier.NORMALIZED)
            self.assertEqual(preview.matched[1].tier, MatchTier.BASE)
            self.assertEqual(len(store.read_lines(DataLayout().seed_log("great-clips.locations.v1.jsonl"))), 3)

    def test_preview_sees_seeds_before_rebuild(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DocumentStore(Path(tmpdir))
            layout = DataLayout()
            store.replace_lines(layout.seed_log("manual.jsonl"), JSONL.splitlines())
            resolver = FacilityResolver(store, layout)
            self.assertEqual(resolver.preview(parse_seed_text(JSONL)).counts()["matched"], 3)

    def test_row_without_keys_is_invalid_even_when_problem_check_passes(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DocumentStore(Path(tmpdir))
            resolver = FacilityResolver(store, DataLayout())
            seed = FacilitySeedRow(brand="Great Clips", address1="", city="Denver", state="CO", zip="80202")
            with patch.object(FacilitySeedRow, "problem", return_value=None):
                preview = resolver.preview([seed])
                receipt = resolver.commit([seed])
            self.assertEqual(preview.counts()["invalid"], 1)
            self.assertEqual(preview.invalid[0].problem, "address_not_normalized")
            self.assertEqual(receipt.appended, 0)

    def test_rebuild_last_write_wins(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DocumentStore(Path(tmpdir))
            layout = DataLayout()
            row = {"brand": "Supercuts", "address1": "5 Main St", "city": "Aurora", "state": "CO", "zip": "80010"}
            store.replace_lines(layout.seed_log("a.jsonl"), [json.dumps({**row, "phone": "111"})])
            store.replace_lines(layout.seed_log("b.jsonl"), [json.dumps({**row, "phone": "222"}), "garbage"])
            directory = FacilityResolver(store, layout).rebuild()
            self.assertEqual(len(directory), 1)
            self.assertEqual(directory.facilities[0].phone, "222")
            self.assertEqual(directory.seed_files, 2)


if __name__ == "__main__":
    unittest.main()
