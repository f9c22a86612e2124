"""
Worktrack Platform
Tests: EOD report blueprint.
"""

from datetime import date, datetime

import pytest

from app.models import db
from app.models.eod import EODReport


@pytest.fixture()
def task(project, developer, make_task):
    return make_task(project, "Fix login", assignee=developer, status="IN_PROGRESS")


# ═══════════════════════════════════════════════════════════════════════════
#  TEST CLASS 1: Draft and submit
# ═══════════════════════════════════════════════════════════════════════════

class TestDraftAndSubmit:

    def test_save_draft(self, client, auth, developer, task, freeze):
        res = client.post("/api/v1/eod-reports/draft", headers=auth(developer), json={
            "in_progress_tasks": [{"task_id": task.id, "progress": 40}],
            "notes": "halfway",
        })
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "DRAFT"
        assert body["tasks_in_progress"] == 1
        assert body["tasks"][0]["progress"] == 40
        assert body["editable"] is True

    def test_submit_now(self, client, auth, developer, task, freeze):
        res = client.post("/api/v1/eod-reports/submit", headers=auth(developer), json={
            "completed_tasks": [task.id],
        })
        assert res.status_code == 200
        body = res.get_json()
        assert body["status"] == "SUBMITTED"
        assert body["submitted_at"] == freeze().isoformat()
        assert body["tasks"][0]["progress"] == 100

    def test_schedule_submission(self, client, auth, developer, freeze):
        res = client.post("/api/v1/eod-reports/submit", headers=auth(developer), json={
            "submit_now": False,
            "scheduled_submit_at": "2024-05-02T17:00:00",
        })
        body = res.get_json()
        assert res.status_code == 200
        assert body["status"] == "DRAFT"
        assert body["is_scheduled"] is True
        assert body["scheduled_submit_at"] == "2024-05-02T17:00:00"

    def test_schedule_past_end_of_day_rejected(self, client, auth, developer, freeze):
        res = client.post("/api/v1/eod-reports/submit", headers=auth(developer), json={
            "submit_now": False,
            "scheduled_submit_at": "2024-05-03T08:00:00",
        })
        assert res.status_code == 400
        assert res.get_json()["details"]["field"] == "scheduled_submit_at"

    def test_wrong_date_conflict(self, client, auth, developer, freeze):
        res = client.post("/api/v1/eod-reports/draft", headers=auth(developer), json={
            "report_date": "2024-05-01",
        })
        assert res.status_code == 409
        assert res.get_json()["details"]["kind"] == "WrongDate"

    def test_final_report_conflict(self, client, auth, developer, freeze):
        db.session.add(EODReport(user_id=developer.id, report_date=date(2024, 5, 2),
                                 status="SUBMITTED", is_final=True, blocked_tasks=[]))
        db.session.commit()
        res = client.post("/api/v1/eod-reports/submit", headers=auth(developer), json={})
        assert res.status_code == 409
        assert res.get_json()["details"]["kind"] == "ReportFinal"

    def test_inaccessible_task_forbidden(self, client, auth, developer, make_project,
                                         make_task, freeze):
        foreign = make_task(make_project("Zephyr"), "Not mine")
        res = client.post("/api/v1/eod-reports/draft", headers=auth(developer), json={
            "completed_tasks": [foreign.id],
        })
        assert res.status_code == 403
        body = res.get_json()
        assert body["details"]["kind"] == "TaskNotAccessible"
        assert body["details"]["task_ids"] == [foreign.id]

    def test_team_lead_cannot_author(self, client, auth, team_lead, freeze):
        res = client.post("/api/v1/eod-reports/draft", headers=auth(team_lead), json={})
        assert res.status_code == 403

    def test_non_object_body_rejected(self, client, auth, developer, freeze):
        res = client.post("/api/v1/eod-reports/draft", headers=auth(developer), json=[1, 2])
        assert res.status_code == 400

    def test_requires_auth(self, client):
        assert client.post("/api/v1/eod-reports/draft", json={}).status_code == 401


# ═══════════════════════════════════════════════════════════════════════════
#  TEST CLASS 2: Reading
# ═══════════════════════════════════════════════════════════════════════════

class TestRead:

    def test_today_without_report(self, client, auth, developer, task, freeze):
        res = client.get("/api/v1/eod-reports/today", headers=auth(developer))
        body = res.get_json()
        assert res.status_code == 200
        assert body["report"] is None
        assert body["editable"] is True
        assert [t["id"] for t in body["tasks_with_status_changes"]["in_progress"]] == [task.id]

    def test_today_after_submit_shows_remaining_time(self, client, auth, developer, freeze):
        client.post("/api/v1/eod-reports/submit", headers=auth(developer), json={})
        body = client.get("/api/v1/eod-reports/today", headers=auth(developer)).get_json()
        assert body["report"]["status"] == "SUBMITTED"
        assert body["time_until_end_of_day"]["hours"] == 7

    def test_list_is_role_scoped(self, client, auth, developer, other_developer, manager, freeze):
        client.post("/api/v1/eod-reports/submit", headers=auth(developer), json={})
        client.post("/api/v1/eod-reports/submit", headers=auth(other_developer), json={})

        own = client.get("/api/v1/eod-reports", headers=auth(developer)).get_json()
        assert own["total"] == 1
        assert own["items"][0]["user_id"] == developer.id

        everyone = client.get("/api/v1/eod-reports", headers=auth(manager)).get_json()
        assert everyone["total"] == 2

        filtered = client.get(f"/api/v1/eod-reports?user_id={other_developer.id}",
                              headers=auth(manager)).get_json()
        assert [r["user_id"] for r in filtered["items"]] == [other_developer.id]

    def test_list_date_range(self, client, auth, developer, manager, freeze):
        for day in (date(2024, 4, 29), date(2024, 4, 30), date(2024, 5, 1)):
            db.session.add(EODReport(user_id=developer.id, report_date=day,
                                     status="SUBMITTED", is_final=True, blocked_tasks=[]))
        db.session.commit()
        res = client.get("/api/v1/eod-reports?start_date=2024-04-30&end_date=2024-05-01",
                         headers=auth(manager))
        dates = [r["report_date"] for r in res.get_json()["items"]]
        assert dates == ["2024-05-01", "2024-04-30"]

    def test_list_bad_date(self, client, auth, manager):
        res = client.get("/api/v1/eod-reports?start_date=yesterday", headers=auth(manager))
        assert res.status_code == 400

    def test_get_report(self, client, auth, developer, other_developer, team_lead, freeze):
        created = client.post("/api/v1/eod-reports/draft", headers=auth(developer),
                              json={}).get_json()

        own = client.get(f"/api/v1/eod-reports/{created['id']}", headers=auth(developer))
        assert own.status_code == 200
        lead = client.get(f"/api/v1/eod-reports/{created['id']}", headers=auth(team_lead))
        assert lead.status_code == 200
        other = client.get(f"/api/v1/eod-reports/{created['id']}", headers=auth(other_developer))
        assert other.status_code == 403

    def test_get_unknown_report(self, client, auth, developer):
        res = client.get("/api/v1/eod-reports/999", headers=auth(developer))
        assert res.status_code == 404

    def test_yesterday_report_not_editable(self, client, auth, developer, freeze):
        created = client.post("/api/v1/eod-reports/submit", headers=auth(developer),
                              json={}).get_json()
        freeze.set(datetime(2024, 5, 3, 9, 0))
        body = client.get(f"/api/v1/eod-reports/{created['id']}",
                          headers=auth(developer)).get_json()
        assert body["editable"] is False


# ═══════════════════════════════════════════════════════════════════════════
#  TEST CLASS 3: Manager summary
# ═══════════════════════════════════════════════════════════════════════════

class TestSummaryApi:

    def test_manager_summary(self, client, auth, developer, manager, task, freeze):
        client.post("/api/v1/eod-reports/submit", headers=auth(developer), json={
            "in_progress_tasks": [{"task_id": task.id, "progress": 60}],
        })
        res = client.get("/api/v1/eod-reports/summary", headers=auth(manager))
        body = res.get_json()
        assert res.status_code == 200
        assert body["total"] == 1
        assert body["data"][0]["tasks"]["in_progress"][0]["title"] == "Fix login"

    def test_team_lead_forbidden_before_query_parsing(self, client, auth, team_lead):
        res = client.get("/api/v1/eod-reports/summary?start_date=garbage",
                         headers=auth(team_lead))
        assert res.status_code == 403
        assert res.get_json()["details"]["kind"] == "InsufficientPermissions"

    def test_bad_date(self, client, auth, group_head):
        res = client.get("/api/v1/eod-reports/summary?end_date=soon", headers=auth(group_head))
        assert res.status_code == 400
