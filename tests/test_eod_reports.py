"""
Worktrack Platform
Tests: EOD report lifecycle (draft, submit, schedule, editability, queries).
"""

from datetime import date, datetime, timedelta

import pytest
from flask import current_app

from app.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from app.models import db
from app.models.eod import EODReport, EODTask
from app.services import eod_service, eod_sweeps

TODAY = date(2024, 5, 2)


@pytest.fixture()
def tasks(project, developer, make_task):
    """Three tasks in the developer's project."""
    return [make_task(project, title=f"Task {i}", assignee=developer) for i in (1, 2, 3)]


# ═══════════════════════════════════════════════════════════════════════════
#  TEST CLASS 1: Drafts
# ═══════════════════════════════════════════════════════════════════════════

class TestSaveDraft:

    def test_draft_then_submit(self, developer, tasks, freeze):
        t1, t2, t3 = tasks
        draft = eod_service.save_draft(developer.id, {
            "completed_tasks": [t1.id, t2.id],
            "in_progress_tasks": [{"task_id": t3.id, "progress": 40}],
        })
        assert draft["status"] == "DRAFT"
        assert draft["tasks_completed"] == 2
        assert draft["tasks_in_progress"] == 1
        assert draft["report_date"] == TODAY.isoformat()
        assert draft["editable"] is True

        submitted = eod_service.submit_report(developer.id, {"submit_now": True})
        assert submitted["id"] == draft["id"]
        assert submitted["status"] == "SUBMITTED"
        assert submitted["submitted_at"] == freeze().isoformat()
        assert submitted["tasks_completed"] == 2

    def test_completed_lines_carry_full_progress(self, developer, tasks, freeze):
        t1, t2, _ = tasks
        eod_service.save_draft(developer.id, {
            "completed_tasks": [{"task_id": t1.id}],
            "in_progress_tasks": [{"task_id": t2.id}],
        })
        lines = {line.task_id: line for line in EODTask.query.all()}
        assert lines[t1.id].status == "COMPLETED"
        assert lines[t1.id].progress == 100
        assert lines[t2.id].status == "IN_PROGRESS"
        assert lines[t2.id].progress == 0

    def test_task_lists_are_replaced(self, developer, tasks, freeze):
        t1, t2, t3 = tasks
        eod_service.save_draft(developer.id, {"completed_tasks": [t1.id, t2.id]})
        result = eod_service.save_draft(developer.id, {
            "in_progress_tasks": [{"task_id": t3.id, "progress": 70}],
        })
        assert result["tasks_completed"] == 0
        assert result["tasks_in_progress"] == 1
        assert [t["task_id"] for t in result["tasks"]] == [t3.id]
        assert EODTask.query.count() == 1

    def test_omitted_lists_keep_existing_lines(self, developer, tasks, freeze):
        t1, _, _ = tasks
        eod_service.save_draft(developer.id, {"completed_tasks": [t1.id]})
        result = eod_service.save_draft(developer.id, {"notes": "wrapping up"})
        assert result["tasks_completed"] == 1
        assert result["notes"] == "wrapping up"

    def test_one_report_per_day(self, developer, tasks, freeze):
        eod_service.save_draft(developer.id, {"notes": "a"})
        eod_service.save_draft(developer.id, {"notes": "b"})
        eod_service.submit_report(developer.id, {})
        assert EODReport.query.filter_by(user_id=developer.id).count() == 1

    def test_blocker_count(self, developer, tasks, freeze):
        t1, t2, _ = tasks
        result = eod_service.save_draft(developer.id, {"blockers_text": "waiting on API keys"})
        assert result["blockers"] == 1
        result = eod_service.save_draft(developer.id, {"blocked_tasks": [t1.id, t2.id]})
        assert result["blockers"] == 2
        result = eod_service.save_draft(developer.id, {"blocked_tasks": [], "blockers_text": None})
        assert result["blockers"] == 0

    def test_duplicate_task_rejected(self, developer, tasks, freeze):
        t1, _, _ = tasks
        with pytest.raises(ValidationError) as exc:
            eod_service.save_draft(developer.id, {
                "completed_tasks": [t1.id],
                "in_progress_tasks": [{"task_id": t1.id, "progress": 10}],
            })
        assert exc.value.details["task_ids"] == [t1.id]

    @pytest.mark.parametrize("progress", [-1, 101, 50.5, "40", True])
    def test_progress_bounds(self, developer, tasks, progress, freeze):
        with pytest.raises(ValidationError):
            eod_service.save_draft(developer.id, {
                "in_progress_tasks": [{"task_id": tasks[0].id, "progress": progress}],
            })
        assert EODReport.query.count() == 0

    def test_whole_float_progress_accepted(self, developer, tasks, freeze):
        result = eod_service.save_draft(developer.id, {
            "in_progress_tasks": [{"task_id": tasks[0].id, "progress": 40.0}],
        })
        assert result["tasks"][0]["progress"] == 40
        assert isinstance(EODTask.query.one().progress, int)

    @pytest.mark.parametrize("field,limit", [
        ("blockers_text", 500), ("plan_for_tomorrow", 500), ("notes", 1000),
    ])
    def test_text_limits(self, developer, tasks, field, limit, freeze):
        eod_service.save_draft(developer.id, {field: "x" * limit})
        with pytest.raises(ValidationError):
            eod_service.save_draft(developer.id, {field: "x" * (limit + 1)})

    def test_inaccessible_task_rejected(self, developer, tasks, make_project, make_task, freeze):
        foreign = make_task(make_project("Secret"), title="Not yours")
        with pytest.raises(AuthorizationError) as exc:
            eod_service.save_draft(developer.id, {
                "completed_tasks": [tasks[0].id, foreign.id],
            })
        assert exc.value.kind == "TaskNotAccessible"
        assert exc.value.details["task_ids"] == [foreign.id]
        assert EODReport.query.count() == 0

    def test_assigned_task_outside_membership_is_accessible(
        self, developer, project, make_project, make_task, freeze,
    ):
        assigned = make_task(make_project("Elsewhere"), assignee=developer)
        result = eod_service.save_draft(developer.id, {"completed_tasks": [assigned.id]})
        assert result["tasks_completed"] == 1

    def test_only_developers_author_reports(self, team_lead, freeze):
        with pytest.raises(AuthorizationError) as exc:
            eod_service.save_draft(team_lead.id, {})
        assert exc.value.kind == "InsufficientPermissions"

    def test_role_check_precedes_validation(self, manager, freeze):
        with pytest.raises(AuthorizationError):
            eod_service.save_draft(manager.id, {"notes": "x" * 5000})

    def test_other_dates_rejected(self, developer, tasks, freeze):
        with pytest.raises(StateConflictError) as exc:
            eod_service.save_draft(developer.id, {"report_date": "2024-05-01"})
        assert exc.value.kind == "WrongDate"
        with pytest.raises(StateConflictError):
            eod_service.save_draft(developer.id, {"report_date": "2024-05-03"})

    def test_malformed_date_rejected(self, developer, freeze):
        with pytest.raises(ValidationError):
            eod_service.save_draft(developer.id, {"report_date": "yesterday"})


# ═══════════════════════════════════════════════════════════════════════════
#  TEST CLASS 2: Submission and scheduling
# ═══════════════════════════════════════════════════════════════════════════

class TestSubmitReport:

    def test_submit_without_draft_creates_and_submits(self, developer, tasks, freeze):
        result = eod_service.submit_report(developer.id, {
            "completed_tasks": [tasks[0].id],
            "plan_for_tomorrow": "code review",
        })
        assert result["status"] == "SUBMITTED"
        assert result["tasks_completed"] == 1
        assert result["plan_for_tomorrow"] == "code review"

    def test_schedule_then_sweep(self, developer, tasks, freeze):
        freeze.set(datetime(2024, 5, 2, 16, 0))
        result = eod_service.submit_report(developer.id, {
            "submit_now": False,
            "scheduled_submit_at": "2024-05-02T17:00:00",
        })
        assert result["status"] == "DRAFT"
        assert result["scheduled_submit_at"] == "2024-05-02T17:00:00"
        assert result["is_scheduled"] is True

        freeze.set(datetime(2024, 5, 2, 17, 1))
        assert eod_sweeps.sweep_scheduled_submissions() == {"submitted_count": 1, "errors": 0}

        report = db.session.get(EODReport, result["id"])
        assert report.status == "SUBMITTED"
        assert report.submitted_at == datetime(2024, 5, 2, 17, 1)
        assert report.scheduled_submit_at is None

    def test_schedule_in_past_rejected(self, developer, freeze):
        with pytest.raises(ValidationError):
            eod_service.submit_report(developer.id, {
                "submit_now": False, "scheduled_submit_at": "2024-05-02T15:59:00",
            })

    def test_schedule_tomorrow_rejected(self, developer, freeze):
        with pytest.raises(ValidationError):
            eod_service.submit_report(developer.id, {
                "submit_now": False, "scheduled_submit_at": "2024-05-03T00:00:00",
            })

    def test_schedule_required_when_not_submitting_now(self, developer, freeze):
        with pytest.raises(ValidationError):
            eod_service.submit_report(developer.id, {"submit_now": False})

    def test_submit_now_must_be_boolean(self, developer, freeze):
        with pytest.raises(ValidationError):
            eod_service.submit_report(developer.id, {"submit_now": "yes"})

    def test_scheduling_submitted_report_conflicts(self, developer, freeze):
        eod_service.submit_report(developer.id, {})
        with pytest.raises(StateConflictError) as exc:
            eod_service.submit_report(developer.id, {
                "submit_now": False, "scheduled_submit_at": "2024-05-02T18:00:00",
            })
        assert exc.value.kind == "AlreadySubmitted"

    def test_submit_now_clears_schedule(self, developer, freeze):
        eod_service.submit_report(developer.id, {
            "submit_now": False, "scheduled_submit_at": "2024-05-02T18:00:00",
        })
        result = eod_service.submit_report(developer.id, {"submit_now": True})
        assert result["status"] == "SUBMITTED"
        assert result["scheduled_submit_at"] is None

    def test_submitted_report_editable_until_end_of_day(self, developer, tasks, freeze):
        eod_service.submit_report(developer.id, {})
        freeze.set(datetime(2024, 5, 2, 23, 30))
        result = eod_service.save_draft(developer.id, {"notes": "late addition"})
        assert result["status"] == "SUBMITTED"
        assert result["notes"] == "late addition"
        assert result["editable"] is True

    def test_aware_schedule_is_converted_to_local(self, developer, freeze, monkeypatch):
        monkeypatch.setitem(current_app.config, "APP_TIMEZONE", "UTC")
        result = eod_service.submit_report(developer.id, {
            "submit_now": False, "scheduled_submit_at": "2024-05-02T19:00:00Z",
        })
        assert result["scheduled_submit_at"] == "2024-05-02T19:00:00"


# ═══════════════════════════════════════════════════════════════════════════
#  TEST CLASS 3: Finality and editability
# ═══════════════════════════════════════════════════════════════════════════

class TestFinality:

    def test_finalized_report_is_immutable(self, developer, tasks, freeze):
        submitted = eod_service.submit_report(developer.id, {"notes": "done"})
        freeze.set(datetime(2024, 5, 3, 0, 0, 1))
        assert eod_sweeps.finalize_yesterday()["finalized_count"] == 1

        report = db.session.get(EODReport, submitted["id"])
        assert report.is_final is True
        snapshot = report.to_dict()

        with pytest.raises(StateConflictError) as exc:
            eod_service.save_draft(developer.id, {"report_date": "2024-05-02", "notes": "edit"})
        assert exc.value.kind == "ReportFinal"
        with pytest.raises(StateConflictError) as exc:
            eod_service.submit_report(developer.id, {"report_date": "2024-05-02"})
        assert exc.value.kind == "ReportFinal"

        db.session.expire_all()
        assert db.session.get(EODReport, submitted["id"]).to_dict() == snapshot

    def test_is_report_editable(self, developer, freeze):
        report = EODReport(user_id=developer.id, report_date=TODAY, status="DRAFT",
                           is_final=False, blocked_tasks=[])
        now = datetime(2024, 5, 2, 12, 0)
        assert eod_service.is_report_editable(report, now) is True

        report.status = "SUBMITTED"
        assert eod_service.is_report_editable(report, now) is True
        assert eod_service.is_report_editable(report, datetime(2024, 5, 2, 23, 59, 59)) is True
        assert eod_service.is_report_editable(report, datetime(2024, 5, 3, 0, 0)) is False

        report.is_final = True
        assert eod_service.is_report_editable(report, now) is False


# ═══════════════════════════════════════════════════════════════════════════
#  TEST CLASS 4: Today view and history
# ═══════════════════════════════════════════════════════════════════════════

class TestQueries:

    def test_today_without_report(self, developer, project, make_task, freeze):
        make_task(project, title="Shipped", assignee=developer, status="DONE")
        make_task(project, title="Ongoing", assignee=developer, status="IN_PROGRESS")
        make_task(project, title="Backlog", assignee=developer, status="TODO")

        result = eod_service.get_today_report(developer.id)
        assert result["report"] is None
        assert result["editable"] is True
        assert [t["title"] for t in result["tasks_with_status_changes"]["completed"]] == ["Shipped"]
        assert [t["title"] for t in result["tasks_with_status_changes"]["in_progress"]] == ["Ongoing"]

    def test_today_submitted_shows_remaining_time(self, developer, freeze):
        eod_service.submit_report(developer.id, {})
        result = eod_service.get_today_report(developer.id)
        assert result["report"]["status"] == "SUBMITTED"
        assert result["editable"] is True
        remaining = result["time_until_end_of_day"]
        assert remaining["hours"] == 7
        assert remaining["minutes"] == 59

    def test_today_draft_has_no_countdown(self, developer, freeze):
        eod_service.save_draft(developer.id, {})
        assert eod_service.get_today_report(developer.id)["time_until_end_of_day"] is None

    def test_history_is_role_scoped(self, developer, other_developer, team_lead, manager, freeze):
        eod_service.submit_report(developer.id, {})
        eod_service.submit_report(other_developer.id, {})

        assert eod_service.reports_query(developer.id).count() == 1
        assert eod_service.reports_query(developer.id, user_id=other_developer.id).count() == 1
        assert eod_service.reports_query(team_lead.id).count() == 0
        assert eod_service.reports_query(team_lead.id, user_id=developer.id).count() == 1
        assert eod_service.reports_query(manager.id).count() == 2
        assert eod_service.reports_query(manager.id, user_id=other_developer.id).count() == 1

    def test_history_date_range(self, developer, freeze):
        eod_service.submit_report(developer.id, {})
        freeze.set(datetime(2024, 5, 3, 10, 0))
        eod_service.submit_report(developer.id, {})

        q = eod_service.reports_query(developer.id, start_date=date(2024, 5, 3))
        assert [r.report_date for r in q.all()] == [date(2024, 5, 3)]
        newest_first = eod_service.reports_query(developer.id).all()
        assert [r.report_date for r in newest_first] == [date(2024, 5, 3), date(2024, 5, 2)]

    def test_developer_cannot_read_other_report(self, developer, other_developer, freeze):
        mine = eod_service.submit_report(developer.id, {})
        with pytest.raises(AuthorizationError):
            eod_service.get_report(other_developer.id, mine["id"])

    def test_manager_reads_any_report(self, developer, manager, freeze):
        mine = eod_service.submit_report(developer.id, {})
        assert eod_service.get_report(manager.id, mine["id"])["user_id"] == developer.id

    def test_unknown_report(self, developer, freeze):
        with pytest.raises(NotFoundError):
            eod_service.get_report(developer.id, 999)

    def test_time_moves_forward_between_days(self, developer, freeze):
        freeze.advance(timedelta(days=1))
        result = eod_service.save_draft(developer.id, {})
        assert result["report_date"] == "2024-05-03"


# ═══════════════════════════════════════════════════════════════════════════
#  TEST CLASS 5: Manager summary
# ═══════════════════════════════════════════════════════════════════════════

class TestSummary:

    def test_only_admins(self, developer, team_lead, freeze):
        for viewer in (developer, team_lead):
            with pytest.raises(AuthorizationError):
                eod_service.reports_summary(viewer.id)

    def test_defaults_to_today(self, developer, manager, tasks, freeze):
        t1, t2, t3 = tasks
        eod_service.submit_report(developer.id, {
            "completed_tasks": [t1.id],
            "in_progress_tasks": [{"task_id": t2.id, "progress": 30}],
            "blocked_tasks": [t3.id],
            "blockers_text": "waiting on review",
        })
        db.session.add(EODReport(user_id=developer.id, report_date=date(2024, 5, 1),
                                 status="SUBMITTED", is_final=True, blocked_tasks=[]))
        db.session.commit()

        summary = eod_service.reports_summary(manager.id)

        assert summary["total"] == 1
        entry = summary["data"][0]
        assert entry["user_id"] == developer.id
        assert entry["user_name"] == "Dev One"
        assert entry["report_date"] == "2024-05-02"
        assert (entry["completed"], entry["in_progress"], entry["blockers"]) == (1, 1, 1)
        assert entry["has_blockers"] is True
        assert entry["tasks"]["completed"][0]["title"] == "Task 1"
        assert entry["tasks"]["in_progress"][0]["progress"] == 30
        assert entry["tasks"]["blocked"][0]["task_id"] == t3.id
        assert entry["tasks"]["blocked"][0]["project_name"] == "Apollo"

    def test_plain_drafts_excluded_scheduled_included(self, developer, other_developer,
                                                     group_head, freeze):
        eod_service.save_draft(developer.id, {"notes": "not done"})
        eod_service.submit_report(other_developer.id, {
            "submit_now": False, "scheduled_submit_at": "2024-05-02T18:00:00",
        })

        summary = eod_service.reports_summary(group_head.id)

        assert [e["user_id"] for e in summary["data"]] == [other_developer.id]
        assert summary["data"][0]["is_scheduled"] is True
        assert summary["data"][0]["status"] == "DRAFT"

    def test_date_range_and_user_filter(self, developer, other_developer, manager, freeze):
        for user in (developer, other_developer):
            for day in (date(2024, 4, 30), date(2024, 5, 1)):
                db.session.add(EODReport(user_id=user.id, report_date=day, status="SUBMITTED",
                                         is_final=True, blocked_tasks=[]))
        db.session.commit()

        summary = eod_service.reports_summary(
            manager.id, start_date=date(2024, 4, 30), end_date=date(2024, 5, 1),
        )
        assert summary["total"] == 4
        assert [e["report_date"] for e in summary["data"]] == [
            "2024-05-01", "2024-05-01", "2024-04-30", "2024-04-30",
        ]

        mine = eod_service.reports_summary(
            manager.id, user_id=developer.id, start_date=date(2024, 4, 30),
        )
        assert {e["user_id"] for e in mine["data"]} == {developer.id}
        assert mine["total"] == 2
