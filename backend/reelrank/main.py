from fastapi import FastAPI, HTTPException
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
import logging

from reelrank.core.database import init_db
from reelrank.utils.logger import configure_logging
from reelrank.api import rankings, ratings

logger = logging.getLogger(__name__)

app = FastAPI(title="ReelRank API", version="1.0.0")

app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ratings.router, prefix="/api/ratings", tags=["Ratings"])
app.include_router(rankings.router, prefix="/api/rankings", tags=["Rankings"])


@app.on_event("startup")
async def startup_event():
    configure_logging()
    init_db()
    logger.info("ReelRank API started")


@app.get("/")
def root():
    return {"status": "ReelRank API Running"}


@app.get("/health")
async def health_check():
    """Simple health check endpoint for load balancers/monitoring"""
    try:
        from reelrank.core.redis_client import get_redis
        from reelrank.core.database import SessionLocal
        from reelrank.core.config import settings

        # Redis only backs metrics and the task broker
        if settings.metrics_enabled:
            await get_redis().ping()

        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()

        from reelrank.utils.timezone import utc_now
        return {"status": "healthy", "timestamp": utc_now().isoformat()}
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Service unhealthy: {str(e)}")


@app.get("/api/metrics/snapshot")
async def metrics_snapshot():
    """Ranking counters and latency aggregates (empty when metrics are disabled)."""
    from reelrank.core.metrics import counters_snapshot, latency_snapshot

    return {"counters": await counters_snapshot(), "latency": await latency_snapshot()}
