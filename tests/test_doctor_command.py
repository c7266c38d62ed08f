import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from address_truth.commands.doctor import run
from address_truth.commands.output import SKIPPED, count_lines, status_line
from address_truth.config import DataSettings, ProviderSettings, Settings
from address_truth.store import DataLayout, DocumentStore


def _settings(root: Path, api_key=None) -> Settings:
    return Settings(data=DataSettings(root=root), providers=ProviderSettings(google_maps_api_key=api_key))


class TestDoctorCommand(unittest.TestCase):
    def setUp(self) -> None:
        env = patch.dict(os.environ, {}, clear=True)
        env.start()
        self.addCleanup(env.stop)

    def test_missing_sources_fail_the_report(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            report = run(_settings(Path(tmpdir)))
            joined = "\n".join(report.checks)
            self.assertFalse(report.ok)
            self.assertIn("Data root: OK", joined)
            self.assertIn("Facility source: ERROR", joined)
            self.assertIn("Address truth: WARNING", joined)
            self.assertIn("Facility directory: SKIPPED", joined)

    def test_healthy_data_root(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            store = DocumentStore(root)
            layout = DataLayout()
            store.replace(layout.facility_source, [{"facilityId": "F1"}])
            store.replace(layout.license_source, {"rows": []})

            report = run(_settings(root))
            joined = "\n".join(report.checks)
            self.assertTrue(report.ok)
            self.assertIn("Facility source: OK (1 row(s))", joined)
            self.assertIn("Places provider: DISABLED", joined)
            self.assertIn("Brand registry: OK (", joined)
            self.assertIn("from built-in", joined)
            self.assertIn("Adjudications: OK (0 recorded)", joined)
            self.assertIn("Places provider (network): SKIPPED", joined)

    def test_missing_data_root(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            report = run(_settings(Path(tmpdir) / "absent"))
            self.assertFalse(report.ok)
            self.assertIn("Data root: ERROR", "\n".join(report.checks))

    def test_provider_key_and_network_validation(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch(
                "address_truth.commands.doctor.validate_places_provider",
                side_effect=RuntimeError("Google Maps API key rejected: denied"),
            ):
                report = run(_settings(Path(tmpdir), api_key="secret-9876"), validate_providers_online=True)
            joined = "\n".join(report.checks)
            self.assertIn("Places provider: ENABLED (key set:9876)", joined)
            self.assertIn("Places provider (network): ERROR (Google Maps API key rejected: denied)", joined)
            self.assertFalse(report.ok)


class TestOutputHelpers(unittest.TestCase):
    def test_status_line_with_and_without_detail(self) -> None:
        self.assertEqual(status_line(SKIPPED, "Adjudications"), "Adjudications: SKIPPED")
        self.assertEqual(status_line(SKIPPED, "Network", "pass --providers"), "Network: SKIPPED (pass --providers)")

    def test_count_lines_nests_mappings(self) -> None:
        lines = count_lines({"rows": 2, "byClass": {"storefront": 1}})
        self.assertEqual(lines, ["  rows: 2", "  byClass:", "    storefront: 1"])


if __name__ == "__main__":
    unittest.main()
