"""Housekeeping worker.

Runs on a long interval (daily by default):
1. Purges sent or cancelled notification rows past the retention window
2. Abandons sessions left running or paused with no activity for too long,
   cancelling their pending notification
"""

import logging
from datetime import datetime, timedelta

from sqlmodel import Session, select

from pomodoro.clock import Clock, SystemClock, utcnow
from pomodoro.config import get_settings
from pomodoro.models.session import ACTIVE_STATUSES, PomodoroSession
from pomodoro.services.notifications import NotificationScheduler
from pomodoro.services.sessions import claim_version
from pomodoro.workers.base import WorkerResult, summarize


class CleanupWorker:
    """Worker purging old notifications and abandoning stale sessions."""

    worker_name = "CleanupWorker"

    def __init__(
        self,
        scheduler: NotificationScheduler | None = None,
        retention_days: int | None = None,
        stale_session_hours: int | None = None,
        batch_size: int = 50,
        clock: Clock | None = None,
    ) -> None:
        settings = get_settings()
        self.scheduler = scheduler or NotificationScheduler()
        self.retention = timedelta(days=retention_days or settings.NOTIFICATION_RETENTION_DAYS)
        self.stale_after = timedelta(hours=stale_session_hours or settings.STALE_SESSION_HOURS)
        self.batch_size = batch_size
        self.clock = clock or SystemClock()
        self._logger = logging.getLogger(self.__class__.__name__)

    def run(self, session: Session) -> WorkerResult:
        """Execute one housekeeping cycle."""
        start_time = utcnow()
        now = self.clock.now()
        errors = []

        purged = 0
        try:
            purged = self.scheduler.purge_older_than(session, now - self.retention)
            session.commit()
        except Exception as e:
            session.rollback()
            errors.append({"step": "purge", "error": str(e)[:500]})
            self._logger.error(
                f"[{self.worker_name}] Notification purge failed",
                exc_info=True,
            )

        abandoned, failed = self.abandon_stale_sessions(session, now, errors)

        processed = purged + abandoned
        failed += len([e for e in errors if e.get("step") == "purge"])

        result = WorkerResult(
            status=summarize(processed, failed),
            processed_count=processed,
            failed_count=failed,
            duration_ms=(utcnow() - start_time).total_seconds() * 1000,
            errors=errors,
            metadata={"purged": purged, "abandoned": abandoned},
        )
        self._logger.info(f"[{self.worker_name}] Cycle complete", extra=result.to_dict())
        return result

    def abandon_stale_sessions(
        self, session: Session, now: datetime, errors: list | None = None
    ) -> tuple[int, int]:
        """Abandon active sessions not updated since ``now - stale_after``.

        Returns:
            tuple[int, int]: (sessions abandoned, sessions that failed)
        """
        cutoff = now - self.stale_after
        stale = session.exec(
            select(PomodoroSession)
            .where(PomodoroSession.status.in_(ACTIVE_STATUSES))
            .where(PomodoroSession.updated_at < cutoff)
            .order_by(PomodoroSession.updated_at)
            .limit(self.batch_size)
        ).all()
        stale_ids = [pomodoro.id for pomodoro in stale]
        session.commit()

        abandoned = 0
        failed = 0
        for session_id in stale_ids:
            try:
                pomodoro = session.get(PomodoroSession, session_id)
                if pomodoro is None or pomodoro.status not in ACTIVE_STATUSES:
                    continue
                if pomodoro.updated_at >= cutoff:
                    continue
                claim_version(session, pomodoro)
                pomodoro.cancel(now)
                self.scheduler.cancel_for_session(session, pomodoro.id)
                session.add(pomodoro)
                session.commit()
                abandoned += 1
                self._logger.info(
                    f"[{self.worker_name}] Abandoned stale session {session_id}",
                    extra={"session_id": str(session_id)},
                )
            except Exception as e:
                session.rollback()
                failed += 1
                if errors is not None:
                    errors.append({"item_id": str(session_id), "error": str(e)[:500]})
                self._logger.error(
                    f"[{self.worker_name}] Failed to abandon session {session_id}",
                    extra={"session_id": str(session_id)},
                    exc_info=True,
                )

        return abandoned, failed
