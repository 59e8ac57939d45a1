import unittest

from reelrank.services.ranking.audit import audit_list, find_violations
from reelrank.services.ranking.maintainer import RankingMaintainer
from reelrank.services.ranking_store import RankingStore

from support import build_list, make_item, make_session_factory


class TestFindViolations(unittest.TestCase):
    def test_consistent_list(self):
        items = [make_item(1, 5, 1, 9.8), make_item(2, 4, 2, 9.0), make_item(3, 4, 3, 9.0)]
        self.assertEqual(find_violations(items), [])

    def test_each_invariant_reported(self):
        items = [
            make_item(1, 3, 1, 7.0),
            make_item(2, 5, 2, 9.9),  # tier above a lower tier, score rises
            make_item(3, 2, 4, 7.5),  # gap in positions, score outside band
            make_item(4, None, 5, 3.0),
        ]
        violations = find_violations(items)
        text = "\n".join(violations)
        self.assertIn("positions are not 1..4", text)
        self.assertIn("ranked below", text)
        self.assertIn("above #1", text)
        self.assertIn("outside 2-star band", text)
        self.assertIn("no valid star rating", text)

    def test_empty_list(self):
        self.assertEqual(find_violations([]), [])


class TestAuditList(unittest.TestCase):
    def test_audit_repairs_then_reports(self):
        factory = make_session_factory()
        store = RankingStore(factory)
        maintainer = RankingMaintainer(store)
        a, b, c = build_list(maintainer, factory, 1, [4, 4, 4])
        with store.transaction() as uow:
            uow.update_score(store.find(1, c).id, 9.4)

        report = audit_list(maintainer, 1, "movie")

        self.assertEqual(report["items"], 3)
        self.assertEqual(report["corrections"], 1)
        self.assertEqual(report["violations"], [])


if __name__ == "__main__":
    unittest.main()
