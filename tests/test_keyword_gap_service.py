import unittest

from services.keyword_gap_service import DEFAULT_DENTAL_SEEDS, find_keyword_gaps, generate_seed_keywords
from state.state_schema import CompetitorKeywordSet, KeywordData, SearchQuery


def kw(keyword, volume=500, difficulty=30):
    return KeywordData(keyword=keyword, search_volume=volume, difficulty=difficulty)


class TestSeedKeywords(unittest.TestCase):

    def test_services_and_city(self):
        seeds = generate_seed_keywords({"services": ["dental implants"], "city": "Austin"})
        self.assertEqual(seeds, [
            "dental implants near me",
            "dental implants Austin",
            "best dental implants Austin",
            "dental implants cost Austin",
        ])

    def test_city_only_uses_default_terms(self):
        seeds = generate_seed_keywords({"city": "Austin"})
        self.assertEqual(len(seeds), len(DEFAULT_DENTAL_SEEDS) * 2)
        self.assertIn("dentist Austin", seeds)

    def test_duplicates_removed_case_insensitively(self):
        seeds = generate_seed_keywords({"services": ["Veneers", "veneers"]})
        self.assertEqual(seeds, ["Veneers near me"])

    def test_empty_profile(self):
        self.assertEqual(generate_seed_keywords({}), [])
        self.assertEqual(generate_seed_keywords(None), [])


class TestKeywordGaps(unittest.TestCase):

    def test_excludes_keywords_the_client_already_has(self):
        gaps = find_keyword_gaps(
            [SearchQuery(query="Dentist Austin")],
            [kw("dental implants austin")],
            [CompetitorKeywordSet(competitor="rival", keywords=[
                kw("dentist austin"), kw("Dental Implants Austin"), kw("invisalign austin"),
            ])],
        )
        self.assertEqual([g.keyword for g in gaps], ["invisalign austin"])

    def test_volume_and_difficulty_thresholds_are_strict(self):
        gaps = find_keyword_gaps([], [], [CompetitorKeywordSet(competitor="rival", keywords=[
            kw("at min volume", volume=50),
            kw("above min volume", volume=51),
            kw("at max difficulty", difficulty=60),
            kw("below max difficulty", difficulty=59),
        ])])
        self.assertEqual({g.keyword for g in gaps}, {"above min volume", "below max difficulty"})

    def test_duplicates_across_competitors_keep_highest_volume(self):
        gaps = find_keyword_gaps([], [], [
            CompetitorKeywordSet(competitor="a", keywords=[kw("root canal", volume=300)]),
            CompetitorKeywordSet(competitor="b", keywords=[kw("Root Canal", volume=700)]),
        ])
        self.assertEqual(len(gaps), 1)
        self.assertEqual(gaps[0].search_volume, 700)

    def test_sorted_by_volume_and_limited(self):
        keywords = [kw(f"keyword {i}", volume=100 + i) for i in range(10)]
        gaps = find_keyword_gaps([], [], [CompetitorKeywordSet(competitor="a", keywords=keywords)], limit=3)

        self.assertEqual([g.search_volume for g in gaps], [109, 108, 107])

    def test_no_competitors(self):
        self.assertEqual(find_keyword_gaps([SearchQuery(query="x")], [kw("y")], []), [])


if __name__ == "__main__":
    unittest.main()
