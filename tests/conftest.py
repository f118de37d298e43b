from datetime import UTC, datetime, timedelta

import pytest

from civicmatch.features.weekly_matching.domain.errors import (
    ConfigurationError,
    DispatchFailure,
    HistoryWriteFailure,
    ProvisioningFailure,
)
from civicmatch.features.weekly_matching.domain.models import (
    Location,
    MeetingDetails,
    Profile,
    SendResult,
    pair_key,
)
from civicmatch.features.weekly_matching.services.dispatcher import SendRateLimiter
from civicmatch.features.weekly_matching.services.orchestrator import CycleOrchestrator

# Monday of ISO week 2 of 2024 (even) and a day in week 1 (odd).
EVEN_WEEK_NOW = datetime(2024, 1, 8, 9, 0, tzinfo=UTC)
ODD_WEEK_NOW = datetime(2024, 1, 3, 9, 0, tzinfo=UTC)

BASE_CREATED_AT = datetime(2023, 6, 1, tzinfo=UTC)


def make_profile(user_id: str, *, created_days: int = 0, **overrides) -> Profile:
    """Complete, opted-in profile with an address; override any field."""
    fields = {
        "user_id": user_id,
        "username": user_id,
        "display_name": f"{user_id.title()} Tester",
        "email": f"{user_id}@example.org",
        "bio": "Organizer",
        "created_at": BASE_CREATED_AT + timedelta(days=created_days),
    }
    for key in ("skills", "causes", "values", "tags"):
        if isinstance(overrides.get(key), list):
            overrides[key] = tuple(overrides[key])
    fields.update(overrides)
    return Profile(**fields)


class FakeProfileStore:
    def __init__(self, profiles: list[Profile] | None = None, error: Exception | None = None):
        self.profiles = list(profiles or [])
        self.error = error
        self.calls = 0

    async def get_eligible_profiles(self) -> list[Profile]:
        self.calls += 1
        if self.error:
            raise self.error
        return [p for p in self.profiles if p.weekly_matching_enabled]

    async def get_profile_by_id(self, user_id: str) -> Profile | None:
        return next((p for p in self.profiles if p.user_id == user_id), None)


class FakeHistoryStore:
    def __init__(self, history: dict[tuple[str, str], datetime] | None = None):
        self.history = dict(history or {})
        self.writes: list[tuple[str, str, datetime]] = []
        self.fail_for: set[tuple[str, str]] = set()

    async def get_last_matched_at(self, user_a_id: str, user_b_id: str) -> datetime | None:
        return self.history.get(pair_key(user_a_id, user_b_id))

    async def get_history_for(self, user_ids) -> dict[tuple[str, str], datetime]:
        ids = set(user_ids)
        return {k: v for k, v in self.history.items() if k[0] in ids and k[1] in ids}

    async def record_match(self, user_a_id: str, user_b_id: str, matched_at: datetime) -> None:
        key = pair_key(user_a_id, user_b_id)
        if key in self.fail_for:
            raise HistoryWriteFailure("history table unavailable", operation="record_match")
        self.writes.append((user_a_id, user_b_id, matched_at))
        self.history[key] = matched_at


class FakeEmailSender:
    def __init__(self, misconfigured: bool = False):
        self.misconfigured = misconfigured
        self.sent: list[tuple[str, object]] = []
        self.fail_for: set[str] = set()

    def validate_config(self) -> None:
        if self.misconfigured:
            raise ConfigurationError("RESEND_API_KEY not set")

    async def send_match_notification(self, recipient_email, payload) -> SendResult:
        if recipient_email in self.fail_for:
            raise DispatchFailure("provider rejected message")
        self.sent.append((recipient_email, payload))
        return SendResult(success=True, message_id=f"msg-{len(self.sent)}")


class FakeProvisioner:
    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.fail_for: set[str] = set()
        self.error: Exception | None = None

    async def create_meeting(self, profile_a: Profile, profile_b: Profile) -> MeetingDetails:
        self.calls.append((profile_a.user_id, profile_b.user_id))
        if self.error:
            raise self.error
        if {profile_a.user_id, profile_b.user_id} & self.fail_for:
            raise ProvisioningFailure("calendar quota exceeded", operation="create_meeting")
        starts_at = datetime(2024, 1, 12, 16, 0, tzinfo=UTC)
        event_id = f"evt-{profile_a.user_id}-{profile_b.user_id}"
        return MeetingDetails(
            event_id=event_id,
            meet_url=f"https://meet.google.com/{event_id}",
            starts_at=starts_at,
            ends_at=starts_at + timedelta(minutes=30),
            timezone="Europe/Berlin",
            ics_download_url=f"https://civicmatch.app/api/calendar/download/{event_id}.ics",
        )


@pytest.fixture
def profile_store():
    return FakeProfileStore(
        [
            make_profile(
                "ana",
                created_days=0,
                causes=["Climate"],
                values=["Equity"],
                skills=["Design"],
                location=Location(city="Berlin", country="Germany"),
            ),
            make_profile(
                "ben",
                created_days=1,
                causes=["climate"],
                values=["equity"],
                skills=["Python"],
                location=Location(city="Berlin", country="Germany"),
            ),
            make_profile("cai", created_days=2, causes=["Housing"], skills=["Law"]),
            make_profile("dee", created_days=3, causes=["Housing"], skills=["Finance"]),
        ]
    )


@pytest.fixture
def history_store():
    return FakeHistoryStore()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def provisioner():
    return FakeProvisioner()


@pytest.fixture
def make_orchestrator(profile_store, history_store, email_sender, provisioner):
    def _make(now: datetime = EVEN_WEEK_NOW, **overrides) -> CycleOrchestrator:
        kwargs = {
            "profile_store": profile_store,
            "history_store": history_store,
            "email_sender": email_sender,
            "provisioner": provisioner,
            "rate_limiter": SendRateLimiter(0),
            "clock": lambda: now,
        }
        kwargs.update(overrides)
        return CycleOrchestrator(**kwargs)

    return _make


@pytest.fixture
def profile_factory():
    return make_profile


@pytest.fixture
def even_week_now():
    return EVEN_WEEK_NOW


@pytest.fixture
def odd_week_now():
    return ODD_WEEK_NOW
