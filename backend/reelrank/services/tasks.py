"""
tasks.py

Celery tasks for ranked-list maintenance: per-list repair (on demand, for a list whose
inline repair was skipped) and the nightly audit of every list.
A Redis lock keeps two audits from overlapping.
"""
import logging
from typing import Dict, Any

from celery import shared_task

from reelrank.core.metrics import increment_sync
from reelrank.core.redis_client import get_redis_sync
from reelrank.services.ranking.audit import audit_list
from reelrank.services.ranking.errors import PersistenceFailure
from reelrank.services.ranking.maintainer import RankingMaintainer
from reelrank.services.ranking_store import RankingStore

logger = logging.getLogger(__name__)

AUDIT_LOCK_KEY = "lock:ranking_audit"
AUDIT_LOCK_SECONDS = 60 * 60


def _acquire_audit_lock() -> bool:
    try:
        return bool(get_redis_sync().set(AUDIT_LOCK_KEY, "locked", ex=AUDIT_LOCK_SECONDS, nx=True))
    except Exception as e:
        # Redis down: run unlocked rather than skip the audit
        logger.warning(f"Audit lock unavailable: {e}")
        return True


def _release_audit_lock() -> None:
    try:
        get_redis_sync().delete(AUDIT_LOCK_KEY)
    except Exception as e:
        logger.warning(f"Failed to release audit lock: {e}")


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def repair_user_rankings(self, user_id: int, content_type: str) -> Dict[str, Any]:
    """Repair one list and report remaining violations."""
    try:
        report = audit_list(RankingMaintainer(RankingStore()), user_id, content_type)
    except PersistenceFailure as e:
        logger.warning(f"Repair of user {user_id}/{content_type} failed, retrying: {e}")
        raise self.retry(exc=e)
    increment_sync("ranking.repairs")
    return report


@shared_task(bind=True)
def audit_all_rankings(self) -> Dict[str, Any]:
    """Repair and audit every ranked list; lists that fail are counted and skipped."""
    if not _acquire_audit_lock():
        logger.info("Ranking audit already running; skipping")
        return {"status": "skipped"}

    summary = {"status": "ok", "lists": 0, "corrections": 0, "violations": 0, "failed": 0}
    try:
        maintainer = RankingMaintainer(RankingStore())
        for user_id, content_type in maintainer.store.list_keys():
            try:
                report = audit_list(maintainer, user_id, content_type)
            except PersistenceFailure as e:
                logger.warning(f"Audit of user {user_id}/{content_type} failed: {e}")
                summary["failed"] += 1
                continue
            summary["lists"] += 1
            summary["corrections"] += report["corrections"]
            summary["violations"] += len(report["violations"])
    finally:
        _release_audit_lock()

    logger.info(
        f"Ranking audit: {summary['lists']} lists, {summary['corrections']} corrections, "
        f"{summary['violations']} violations, {summary['failed']} failed"
    )
    increment_sync("ranking.audits")
    return summary
