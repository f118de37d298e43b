import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from civicmatch.auth import verify
from civicmatch.features.weekly_matching.api.router import get_calendar_service, router
from civicmatch.features.weekly_matching.services.factory import get_orchestrator
from civicmatch.models.domain.calendar_domain import CalendarEvent
from civicmatch.services.calendar.google_client import GoogleCalendarError


class FakeCalendarService:
    def __init__(self, events: dict | None = None, error: Exception | None = None):
        self.events = events or {}
        self.error = error

    async def get_event(self, event_id: str):
        if self.error:
            raise self.error
        data = self.events.get(event_id)
        return CalendarEvent(data) if data else None


@pytest.fixture
def app(make_orchestrator):
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_orchestrator] = lambda: make_orchestrator()
    app.dependency_overrides[get_calendar_service] = lambda: FakeCalendarService(
        {
            "evt123": {
                "id": "evt123",
                "summary": "Ana + Ben / CivicMatch",
                "start": {"dateTime": "2024-01-12T16:00:00Z"},
                "end": {"dateTime": "2024-01-12T16:30:00Z"},
            },
            "nodates": {"id": "nodates"},
        }
    )
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def cron_secret(monkeypatch):
    monkeypatch.setattr(verify.settings, "CRON_SECRET", "s3cret")
    return "s3cret"


def test_cron_requires_bearer_secret(client, cron_secret):
    assert client.get("/api/cron/weekly-matching").status_code == 401
    response = client.get(
        "/api/cron/weekly-matching", headers={"Authorization": "Bearer wrong"}
    )
    assert response.status_code == 401


def test_cron_runs_a_cycle(client, cron_secret, email_sender):
    response = client.get(
        "/api/cron/weekly-matching", headers={"Authorization": f"Bearer {cron_secret}"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["totalMatches"] == 2
    assert data["sent"] == 4
    assert data["weekNumber"] == 2
    assert data["cycle"] == "bi-weekly"
    assert len(data["results"]) == 4
    assert data["pairs"][0]["meetingStatus"] == "created"
    assert len(email_sender.sent) == 4


def test_cron_reports_skipped_week(app, cron_secret, make_orchestrator, odd_week_now):
    app.dependency_overrides[get_orchestrator] = lambda: make_orchestrator(now=odd_week_now)

    response = TestClient(app).get(
        "/api/cron/weekly-matching", headers={"Authorization": f"Bearer {cron_secret}"}
    )

    assert response.status_code == 200
    assert response.json()["skipped"] is True
    assert response.json()["message"] == "Skipped - bi-weekly schedule (odd week)"


def test_cron_failed_cycle_is_a_server_error(client, cron_secret, email_sender):
    email_sender.misconfigured = True

    response = client.get(
        "/api/cron/weekly-matching", headers={"Authorization": f"Bearer {cron_secret}"}
    )

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert "RESEND_API_KEY" in response.json()["error"]


def test_cron_crash_is_a_server_error(client, cron_secret, profile_store):
    profile_store.error = RuntimeError("bug")

    response = client.get(
        "/api/cron/weekly-matching", headers={"Authorization": f"Bearer {cron_secret}"}
    )

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "Weekly matching failed",
        "details": "bug",
    }


def test_cron_without_configured_secret_is_open(client, monkeypatch):
    monkeypatch.setattr(verify.settings, "CRON_SECRET", None)

    assert client.get("/api/cron/weekly-matching").status_code == 200


def test_preview_lists_pairs_without_sending(client, email_sender, history_store):
    response = client.get("/api/test/weekly-matching", params={"maxMatches": 1})

    assert response.status_code == 200
    data = response.json()
    assert data["eligibleUsers"] == 4
    assert data["totalMatches"] == 1
    assert data["options"]["createMeetings"] is False
    assert data["matches"][0]["user1"]["id"] == "ana"
    assert data["matches"][0]["score"] == 34
    assert email_sender.sent == []
    assert history_store.writes == []


def test_test_endpoints_disabled_in_production(client, monkeypatch):
    monkeypatch.setattr(verify.settings, "environment", "production")

    assert client.get("/api/test/weekly-matching").status_code == 403
    response = client.post(
        "/api/test/weekly-matching", json={"currentUserId": "ana", "matchedUserId": "ben"}
    )
    assert response.status_code == 403


def test_manual_match_prepares_email(client, email_sender):
    response = client.post(
        "/api/test/weekly-matching", json={"currentUserId": "cai", "matchedUserId": "ana"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["match"]["user1"]["id"] == "cai"
    assert data["preparedEmail"]["to"] == "cai@example.org"
    assert data["preparedEmail"]["subject"] == "You might want to connect with Ana Tester"
    assert data["outcome"]["meetingStatus"] == "disabled"
    assert email_sender.sent == []


def test_manual_match_sends_both_emails(client, email_sender, history_store):
    response = client.post(
        "/api/test/weekly-matching",
        json={"currentUserId": "ana", "matchedUserId": "ben", "sendActualEmail": True},
    )

    assert response.status_code == 200
    assert response.json()["emailsSent"] == 2
    assert len(email_sender.sent) == 2
    assert history_store.writes == []


def test_manual_match_unknown_user(client):
    response = client.post(
        "/api/test/weekly-matching", json={"currentUserId": "ana", "matchedUserId": "zed"}
    )

    assert response.status_code == 404


def test_manual_match_self_pair(client):
    response = client.post(
        "/api/test/weekly-matching", json={"currentUserId": "ana", "matchedUserId": "ana"}
    )

    assert response.status_code == 400


def test_ics_download(client):
    response = client.get("/api/calendar/download/evt123.ics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/calendar")
    assert 'filename="civicmatch-meeting-evt123.ics"' in response.headers["content-disposition"]
    assert "UID:evt123@civicmatch.app\r\n" in response.text


def test_ics_download_unknown_event(client):
    assert client.get("/api/calendar/download/missing.ics").status_code == 404


def test_ics_download_event_without_times(client):
    assert client.get("/api/calendar/download/nodates.ics").status_code == 404


def test_ics_download_rejects_odd_ids(client):
    assert client.get("/api/calendar/download/evt.123.ics").status_code == 404


def test_ics_download_calendar_error(app):
    app.dependency_overrides[get_calendar_service] = lambda: FakeCalendarService(
        error=GoogleCalendarError("Calendar access denied", status_code=403)
    )

    assert TestClient(app).get("/api/calendar/download/evt123.ics").status_code == 502


def test_ics_download_without_calendar(app):
    app.dependency_overrides[get_calendar_service] = lambda: None

    assert TestClient(app).get("/api/calendar/download/evt123.ics").status_code == 503
