import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from address_truth.config import ProviderSettings, Settings, find_config, load_settings


class TestConfig(unittest.TestCase):
    def test_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings()
        self.assertEqual(settings.data.default_state, "CO")
        self.assertIsNone(settings.providers.google_maps_api_key)
        self.assertEqual(settings.truth.candidate_min_tech, 2)
        self.assertEqual(settings.tabs.mid_market_max_tech, 600)
        self.assertEqual(settings.classification.storefront_min_score, 34)
        self.assertIsNone(settings.brands.registry_path)

    def test_api_key_from_environment(self) -> None:
        with patch.dict(os.environ, {"GOOGLE_MAPS_API_KEY": "env-key"}):
            self.assertEqual(ProviderSettings().google_maps_api_key, "env-key")
        self.assertIsNone(ProviderSettings(google_maps_api_key="  ").google_maps_api_key)

    def test_load_yaml(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yaml"
            path.write_text(
                "data:\n"
                f"  root: {tmpdir}/data\n"
                "  default_state: ' wy '\n"
                "classification:\n"
                "  jurisdiction: wy\n"
                "  storefront_min_score: 12\n"
                "tabs:\n"
                "  mega_city_min_reg: 500\n",
                encoding="utf-8",
            )
            settings = load_settings(path)
        self.assertEqual(settings.data.root, (Path(tmpdir) / "data").resolve())
        self.assertEqual(settings.data.default_state, "WY")
        self.assertEqual(settings.classification.jurisdiction, "WY")
        self.assertEqual(settings.classification.storefront_min_score, 12)
        self.assertEqual(settings.tabs.mega_city_min_reg, 500)

    def test_empty_file_yields_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yaml"
            path.write_text("", encoding="utf-8")
            self.assertEqual(load_settings(path).truth.candidate_min_tech, 2)

    def test_explicit_missing_path_raises(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_settings(Path("/nonexistent/address-truth.yaml"))

    def test_find_config_in_working_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch("address_truth.config.Path.cwd", return_value=Path(tmpdir)):
                self.assertIsNone(find_config(None))
                (Path(tmpdir) / "config.yml").write_text("{}", encoding="utf-8")
                self.assertEqual(find_config(None), Path(tmpdir) / "config.yml")


if __name__ == "__main__":
    unittest.main()
