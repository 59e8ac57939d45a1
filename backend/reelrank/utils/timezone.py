"""
UTC helpers for row timestamps.
"""
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Timezone-aware now in UTC (column default for created_at/updated_at)."""
    return datetime.now(timezone.utc)
