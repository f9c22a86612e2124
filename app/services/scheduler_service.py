"""
Worktrack Platform
Scheduler Service.

Registry and runner for the periodic sweeps (grant expiry, EOD submission,
finalization and reminders).

Architecture:
    - Job functions are registered by name via the ``register_job`` decorator
    - Every registered job has a ScheduledJob row: cron config, enable flag,
      run history
    - ``run_job`` executes one job inside the app context and records the run;
      it never raises, so any trigger (timer, CLI, API) can call it
    - When SCHEDULER_ENABLED is set, an APScheduler BackgroundScheduler fires
      the jobs on their cron config. Otherwise an external cron drives them
      through ``flask run-job <name>``.

Only one process may run the in-process scheduler.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from flask import Flask

from app.models import db
from app.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}

# CronTrigger keyword arguments per job; "description" is display-only
DEFAULT_SCHEDULES: dict[str, dict] = {
    "grant_expiry": {"minute": "0", "description": "Hourly"},
    "grant_expiry_warning": {"hour": "9", "minute": "0", "description": "Daily at 09:00"},
    "eod_scheduled_submission": {"minute": "*", "description": "Every minute"},
    "eod_force_submit": {"hour": "23", "minute": "59", "description": "Daily at 23:59"},
    "eod_finalize": {"hour": "0", "minute": "0", "second": "1",
                     "description": "Daily at 00:00:01"},
    "eod_reminder": {"day_of_week": "mon-fri", "hour": "18", "minute": "30",
                     "description": "Weekdays at 18:30"},
}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("grant_expiry")
        def expire_grants_job(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


class SchedulerService:
    """
    Job registry, run history and optional in-process timer.

    Jobs are executed within Flask app context.
    """

    _app: Flask | None = None
    _scheduler: BackgroundScheduler | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Initialize scheduler with Flask app context."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """
        Ensure all registered jobs have a corresponding DB record.
        Creates missing records with default config.
        """
        if not cls._app:
            return []

        created = []
        with cls._app.app_context():
            for name, fn in _job_registry.items():
                existing = ScheduledJob.query.filter_by(job_name=name).first()
                if not existing:
                    job = ScheduledJob(
                        job_name=name,
                        description=(fn.__doc__ or f"Scheduled job: {name}").strip(),
                        schedule_type="cron",
                        schedule_config=_get_default_schedule(name),
                        status="active",
                        is_enabled=True,
                    )
                    db.session.add(job)
                    created.append(job)
            if created:
                db.session.commit()
                logger.info("Created %d scheduled job records", len(created))
        return created

    # ── Execution ─────────────────────────────────────────────────────────

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with status, duration_ms, result or error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            with cls._app.app_context():
                result = fn(cls._app)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed: %s", job_name, exc)

        duration_ms = int((time.monotonic() - start) * 1000)

        try:
            with cls._app.app_context():
                job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
                if job_record:
                    job_record.record_run(
                        status=status,
                        duration_ms=duration_ms,
                        result=result if isinstance(result, dict) else {"output": str(result)},
                        error=error,
                    )
                    db.session.commit()
        except Exception:
            logger.exception("Failed to update job record for %s", job_name)

        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def run_if_enabled(cls, job_name: str) -> dict | None:
        """Timer entry point: skip jobs disabled through ``toggle_job``."""
        if not cls._app:
            return None
        with cls._app.app_context():
            job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
            enabled = job_record is None or job_record.is_enabled
        if not enabled:
            logger.debug("Job %s is disabled, skipping", job_name)
            return None
        return cls.run_job(job_name)

    # ── In-process timer ──────────────────────────────────────────────────

    @classmethod
    def start(cls) -> BackgroundScheduler | None:
        """Start the APScheduler timer with one cron job per registered job."""
        if not cls._app:
            return None
        if cls._scheduler is not None and cls._scheduler.running:
            logger.info("Scheduler already running")
            return cls._scheduler

        tz = cls._app.config.get("APP_TIMEZONE") or None
        scheduler = BackgroundScheduler(timezone=tz) if tz else BackgroundScheduler()
        with cls._app.app_context():
            for name in _job_registry:
                job_record = ScheduledJob.query.filter_by(job_name=name).first()
                config = job_record.schedule_config if job_record else _get_default_schedule(name)
                trigger_args = {k: v for k, v in (config or {}).items() if k != "description"}
                if tz:
                    trigger_args["timezone"] = tz
                scheduler.add_job(
                    cls.run_if_enabled,
                    CronTrigger(**trigger_args),
                    args=[name],
                    id=name,
                    replace_existing=True,
                    coalesce=True,
                    max_instances=1,
                )
        scheduler.start()
        cls._scheduler = scheduler
        for job in scheduler.get_jobs():
            logger.info("Scheduled %s next run at %s", job.id, job.next_run_time)
        return scheduler

    @classmethod
    def shutdown(cls) -> None:
        if cls._scheduler is not None and cls._scheduler.running:
            cls._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        cls._scheduler = None

    # ── Admin ─────────────────────────────────────────────────────────────

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "job_name": name,
                "registered": True,
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs

    @classmethod
    def get_job_status(cls, job_name: str) -> dict | None:
        """Get status of a specific job."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if job_record:
            return job_record.to_dict()
        return None

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        """Enable or disable a scheduled job."""
        job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
        if not job_record:
            return None
        job_record.is_enabled = enabled
        job_record.status = "active" if enabled else "paused"
        db.session.commit()
        return job_record.to_dict()


def _get_default_schedule(job_name: str) -> dict:
    """Return default schedule config for known job types."""
    return dict(DEFAULT_SCHEDULES.get(job_name, {"hour": "0", "minute": "0",
                                                 "description": "Daily at midnight"}))
