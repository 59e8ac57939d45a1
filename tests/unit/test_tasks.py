import unittest
from unittest.mock import MagicMock, patch

from reelrank.services import tasks
from reelrank.services.ranking.maintainer import RankingMaintainer
from reelrank.services.ranking_store import RankingStore

from support import build_list, make_session_factory


class TestRankingTasks(unittest.TestCase):
    def setUp(self):
        self.factory = make_session_factory()
        self.store = RankingStore(self.factory)
        maintainer = RankingMaintainer(self.store)
        build_list(maintainer, self.factory, 1, [5, 4, 4])
        build_list(maintainer, self.factory, 2, [3, 3], start_tmdb_id=2000)
        ordered = self.store.fetch_ordered(2, "movie")
        with self.store.transaction() as uow:
            uow.update_score(ordered[1].id, 7.9)

        self.redis = MagicMock()
        self.redis.set.return_value = True
        patches = [
            patch.object(tasks, "RankingStore", lambda: RankingStore(self.factory)),
            patch.object(tasks, "get_redis_sync", lambda: self.redis),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)

    def test_audit_all_rankings(self):
        summary = tasks.audit_all_rankings()
        self.assertEqual(summary["lists"], 2)
        self.assertEqual(summary["corrections"], 1)
        self.assertEqual(summary["violations"], 0)
        self.redis.delete.assert_called_once_with(tasks.AUDIT_LOCK_KEY)

    def test_audit_skipped_while_locked(self):
        self.redis.set.return_value = None
        self.assertEqual(tasks.audit_all_rankings(), {"status": "skipped"})
        self.redis.delete.assert_not_called()

    def test_repair_user_rankings(self):
        report = tasks.repair_user_rankings(2, "movie")
        self.assertEqual(report["corrections"], 1)
        self.assertEqual(report["violations"], [])


if __name__ == "__main__":
    unittest.main()
