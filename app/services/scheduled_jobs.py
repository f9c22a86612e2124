"""
Worktrack Platform
Scheduled Jobs.

Thin job wrappers binding the sweeps to the scheduler registry.

Jobs:
    - grant_expiry: deactivates expired temporary permissions (hourly)
    - grant_expiry_warning: warns about grants expiring within 3 days (09:00)
    - eod_scheduled_submission: submits scheduled EOD drafts (every minute)
    - eod_force_submit: submits all remaining EOD drafts of the day (23:59)
    - eod_finalize: seals yesterday's submitted EOD reports (00:00:01)
    - eod_reminder: reminds developers who have not submitted today (18:30 Mon-Fri)
"""

from __future__ import annotations

import logging
from typing import Any

from app.services import eod_sweeps, grant_expiry
from app.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Grant Expiry
# ═══════════════════════════════════════════════════════════════════════════

@register_job("grant_expiry")
def expire_grants_job(app) -> dict[str, Any]:
    """Deactivate temporary permissions whose expiry has passed."""
    results = grant_expiry.expire_grants()
    logger.info("Grant expiry: %s", results)
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Grant Expiry Warning
# ═══════════════════════════════════════════════════════════════════════════

@register_job("grant_expiry_warning")
def warn_expiring_grants_job(app) -> dict[str, Any]:
    """Notify holders of temporary permissions expiring within 3 days."""
    results = grant_expiry.warn_expiring_grants()
    logger.info("Grant expiry warning: %s", results)
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 3: Scheduled EOD Submission
# ═══════════════════════════════════════════════════════════════════════════

@register_job("eod_scheduled_submission")
def submit_scheduled_reports_job(app) -> dict[str, Any]:
    """Submit EOD drafts whose scheduled submission time has arrived."""
    results = eod_sweeps.sweep_scheduled_submissions()
    if results["submitted_count"] or results["errors"]:
        logger.info("Scheduled EOD submission: %s", results)
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 4: End-of-day Forced Submission
# ═══════════════════════════════════════════════════════════════════════════

@register_job("eod_force_submit")
def force_submit_reports_job(app) -> dict[str, Any]:
    """Submit every EOD draft still open for today."""
    results = eod_sweeps.force_end_of_day_submissions()
    logger.info("End-of-day EOD submission: %s", results)
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 5: Midnight Finalization
# ═══════════════════════════════════════════════════════════════════════════

@register_job("eod_finalize")
def finalize_reports_job(app) -> dict[str, Any]:
    """Seal yesterday's submitted EOD reports as final."""
    results = eod_sweeps.finalize_yesterday()
    logger.info("EOD finalization: %s", results)
    return results


# ═══════════════════════════════════════════════════════════════════════════
#  Job 6: EOD Reminder
# ═══════════════════════════════════════════════════════════════════════════

@register_job("eod_reminder")
def send_eod_reminders_job(app) -> dict[str, Any]:
    """Remind developers who have not submitted today's EOD report."""
    results = eod_sweeps.send_eod_reminders()
    logger.info("EOD reminders: %s", results)
    return results
