import json
import tempfile
import unittest
from pathlib import Path

from address_truth.brands import BrandRegistry, BrandRule, rules_from_entries


class TestBrandRegistry(unittest.TestCase):
    def test_default_rules_match_known_brands(self) -> None:
        registry = BrandRegistry.defaults()
        self.assertEqual(registry.brand_for("GREAT CLIPS #1234"), "great-clips")
        self.assertEqual(registry.brand_for("Sport Clips - Highlands"), "sport-clips")
        self.assertEqual(registry.brand_for("Floyd's 99 Barbershop"), "floyds-barbershop")
        self.assertIsNone(registry.brand_for("Main Street Nails"))
        self.assertIsNone(registry.brand_for(None))

    def test_aliases_match_whole_words_only(self) -> None:
        registry = BrandRegistry(rules_from_entries([{"brandId": "drybar", "aliases": ["drybar"]}]))
        self.assertIsNone(registry.brand_for("drybarn salon"))
        self.assertEqual(registry.brand_for("The Drybar"), "drybar")

    def test_first_matching_rule_wins(self) -> None:
        registry = BrandRegistry(
            [
                BrandRule(pattern=r"\bclips\b", brand_id="first"),
                BrandRule(pattern=r"\bgreat clips\b", brand_id="second"),
            ]
        )
        self.assertEqual(registry.brand_for("Great Clips"), "first")

    def test_load_yaml_registry_and_reload(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "brands.yaml"
            path.write_text(
                "brands:\n"
                "  - brandId: acme\n"
                "    aliases: [acme salon]\n"
                "  - brandId: bolt\n"
                "    pattern: '\\bbolt\\b'\n",
                encoding="utf-8",
            )
            registry = BrandRegistry.load(path)
            self.assertEqual(registry.brand_ids(), ["acme", "bolt"])
            self.assertEqual(registry.brand_for("ACME Salon Denver"), "acme")
            self.assertEqual(registry.brand_for("Bolt Barbers"), "bolt")

            path.write_text("brands:\n  - brandId: zed\n    aliases: [zed]\n", encoding="utf-8")
            registry.reload()
            self.assertEqual(registry.brand_ids(), ["zed"])

    def test_load_json_registry_skips_entries_without_id(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "brands.json"
            path.write_text(
                json.dumps({"brands": [{"aliases": ["nameless"]}, {"brandId": "x", "aliases": ["x co"]}]}),
                encoding="utf-8",
            )
            registry = BrandRegistry.load(path)
            self.assertEqual(len(registry), 1)

    def test_load_without_path_uses_defaults(self) -> None:
        self.assertIn("supercuts", BrandRegistry.load(None).brand_ids())


if __name__ == "__main__":
    unittest.main()
