import unittest

from address_truth.core.scoring import candidate_key, haversine_m, rank_candidates, score_candidate
from address_truth.providers.places import PlaceCandidate

KEY = "100 MAIN ST STE 4 | DENVER | CO | 80202"
HERE = {"lat": 39.7400, "lng": -104.9900}


def place(**overrides) -> PlaceCandidate:
    values = {
        "name": "Luxe Nails",
        "query": "nail salon",
        "types": ["nail_salon", "beauty_salon", "point_of_interest"],
        "place_id": "p1",
        "formatted_address": "100 Main St Ste 4, Denver, CO 80202, USA",
        "location": dict(HERE),
        "website": "https://luxe.example",
        "phone": "303-555-0100",
    }
    values.update(overrides)
    return PlaceCandidate(**values)


class TestCandidateScoring(unittest.TestCase):
    def test_strong_storefront_candidate(self) -> None:
        scored = score_candidate(place(), KEY, HERE)
        self.assertTrue(scored.at_address)
        self.assertEqual(scored.score, 5 + 2 + 2 + 4 + 3)
        self.assertEqual(
            scored.reasons,
            ["beauty_types:2", "has_website", "has_phone", "strict_address_match", "distance_lt_75m"],
        )

    def test_residential_types_penalised(self) -> None:
        scored = score_candidate(
            place(types=["apartment_complex"], website=None, phone=None, formatted_address=None, location=None),
            KEY,
        )
        self.assertEqual(scored.score, -4)
        self.assertEqual(scored.reasons, ["residential_types:1"])

    def test_suite_brand_name(self) -> None:
        scored = score_candidate(
            place(name="Sola Salon Studios", types=[], website=None, phone=None, location=None), KEY
        )
        self.assertIn("suite_brand_name", scored.reasons)

    def test_street_and_zip_without_number(self) -> None:
        scored = score_candidate(
            place(types=[], website=None, phone=None, location=None, formatted_address="Main St, Denver, CO 80202"),
            KEY,
        )
        self.assertFalse(scored.at_address)
        self.assertEqual(scored.reasons, ["street_zip_match"])
        self.assertEqual(scored.score, 2)

    def test_distance_bands(self) -> None:
        far = {"lat": HERE["lat"] + 0.002, "lng": HERE["lng"]}  # about 222m
        scored = score_candidate(place(types=[], website=None, phone=None, formatted_address=None, location=far), KEY, HERE)
        self.assertEqual(scored.reasons, ["distance_lt_300m"])
        self.assertAlmostEqual(haversine_m(HERE, far), 222.4, delta=1.0)

    def test_non_finite_location_is_ignored(self) -> None:
        scored = score_candidate(
            place(types=[], website=None, phone=None, formatted_address=None, location={"lat": float("nan"), "lng": 0.0}),
            KEY,
            HERE,
        )
        self.assertEqual(scored.score, 0)

    def test_scoring_is_deterministic(self) -> None:
        a = score_candidate(place(), KEY, HERE)
        b = score_candidate(place(), KEY, HERE)
        self.assertEqual(a.to_record(), b.to_record())

    def test_rank_collapses_duplicates(self) -> None:
        best = score_candidate(place(), KEY, HERE)
        weaker = score_candidate(place(website=None), KEY, HERE)
        other = score_candidate(place(place_id="p2", name="Other", types=[]), KEY, HERE)
        ranked = rank_candidates([weaker, other, best])
        self.assertEqual(len(ranked), 2)
        self.assertEqual(ranked[0].score, best.score)
        self.assertEqual(candidate_key(ranked[0]), candidate_key(best))


if __name__ == "__main__":
    unittest.main()
