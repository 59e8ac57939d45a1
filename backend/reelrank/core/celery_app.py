from celery import Celery
from celery.schedules import crontab
from reelrank.core.config import settings

celery_app = Celery(
    "reelrank",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["reelrank.services.tasks"]
)

celery_app.conf.update(
    result_expires=3600,
    task_acks_late=True,
    worker_prefetch_multiplier=1,    # Process one task at a time

    # Connection settings
    broker_connection_retry_on_startup=True,
    broker_pool_limit=10,

    task_routes={
        'reelrank.services.tasks.repair_user_rankings': {'queue': 'maintenance'},
        'reelrank.services.tasks.audit_all_rankings': {'queue': 'maintenance'},
    },

    # Scheduled tasks
    beat_schedule={
        # Nightly consistency audit of every ranked list
        "audit-rankings-nightly": {
            "task": "reelrank.services.tasks.audit_all_rankings",
            "schedule": crontab(hour=settings.ranking_audit_hour, minute=0),
        },
    },
    timezone="UTC",
)
