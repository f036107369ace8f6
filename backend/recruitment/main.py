import logging
import sqlite3
from contextlib import asynccontextmanager
from fastapi import FastAPI

from recruitment.config import settings
from recruitment.routers import jobs, job_workflow
from recruitment.services.scheduled_publisher import ScheduledPublisher

logger = logging.getLogger("recruitment")

scheduled_publisher = ScheduledPublisher()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.setLevel(settings.log_level.upper())
    # Startup: migrate and integrity-check the database
    try:
        from recruitment.database import init_db
        init_db()
        conn = sqlite3.connect(str(settings.db_path))
        result = conn.execute("PRAGMA integrity_check").fetchone()
        conn.close()
        if result and result[0] == "ok":
            logger.info("Database integrity check passed.")
        else:
            logger.error("DATABASE INTEGRITY CHECK FAILED: %s", result)
    except Exception as exc:
        logger.error("Could not run startup migration/integrity check: %s", exc)

    if settings.scheduled_publisher_enabled:
        scheduled_publisher.start()
    yield
    # Shutdown: let an in-flight publish tick finish
    scheduled_publisher.stop()


app = FastAPI(
    title="Recruitment Workflow",
    description="Job posting status workflow with audit trail and scheduled publishing",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(jobs.router, prefix=settings.api_prefix)
app.include_router(job_workflow.router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}


def run():
    import uvicorn

    uvicorn.run("recruitment.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
