"""Background publisher for drafts whose ``scheduled_publish_at`` has passed.

Automatic publishes go through the same workflow service as interactive ones,
so validation and the audit trail are identical.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from sqlalchemy.orm import Session

from recruitment.config import settings
from recruitment.database import SessionLocal
from recruitment.repositories import job_repository
from recruitment.services.transition_table import JobStatus
from recruitment.services.workflow_service import JobStatusWorkflowService, workflow_service
from recruitment.utils.timestamps import utc_now

logger = logging.getLogger("recruitment.scheduler")


@dataclass
class PublishTickReport:
    scanned: int = 0
    published: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)


class ScheduledPublisher:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        service: JobStatusWorkflowService = workflow_service,
        interval_seconds: float | None = None,
        system_actor_id: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_factory = session_factory
        self.service = service
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.scheduled_publish_interval_seconds
        )
        self.system_actor_id = system_actor_id if system_actor_id is not None else settings.scheduled_publish_actor_id
        self.clock = clock
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="scheduled-publisher", daemon=True)
        self._thread.start()
        logger.info("Scheduled publisher started (every %ss)", self.interval_seconds)

    def stop(self, timeout: float | None = 5.0):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Scheduled publisher still finishing a tick after %ss.", timeout)
                return
            self._thread = None
        logger.info("Scheduled publisher stopped.")

    def _loop(self):
        while not self._stop_event.wait(self.interval_seconds):
            self.run_once()

    def run_once(self) -> PublishTickReport | None:
        """Publish every due draft. Never raises.

        Returns None when a previous tick is still running.
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("Previous publish tick still running; skipping.")
            return None
        try:
            return self._tick()
        except Exception:
            logger.exception("Scheduled publish tick failed.")
            return None
        finally:
            self._tick_lock.release()

    def _tick(self) -> PublishTickReport:
        report = PublishTickReport()
        db = self.session_factory()
        try:
            now = self.clock()
            due = [
                (job.id, job.uuid, job.created_by, job.scheduled_publish_at)
                for job in job_repository.find_due_scheduled_jobs(db, now)
            ]
            report.scanned = len(due)
            if not due:
                return report
            logger.info("Found %d scheduled jobs to publish.", len(due))

            for job_id, job_uuid, created_by, scheduled_at in due:
                actor_id = self.system_actor_id if self.system_actor_id is not None else created_by
                try:
                    result = self.service.transition_status(
                        db,
                        job_id,
                        JobStatus.DRAFT,
                        JobStatus.PUBLISHED,
                        {
                            "scheduled_publish_at": scheduled_at,
                            "publish_immediately": False,
                            "validation_override": False,
                        },
                        actor_id,
                    )
                except Exception as exc:
                    db.rollback()
                    logger.exception("Failed to publish scheduled job %s.", job_id)
                    report.failed[job_id] = str(exc)
                    continue
                if result.success:
                    report.published.append(job_id)
                    logger.info("Published scheduled job %s (%s).", job_id, job_uuid)
                else:
                    report.failed[job_id] = result.error or "unknown error"
                    logger.error("Could not publish scheduled job %s: %s", job_id, result.error)
        finally:
            db.close()

        logger.info(
            "Publish tick done: %d scanned, %d published, %d failed.",
            report.scanned, len(report.published), len(report.failed),
        )
        return report
