from datetime import UTC, datetime

import pytest

from civicmatch.features.weekly_matching.domain.models import ScoredPair, SendResult
from civicmatch.features.weekly_matching.services.dispatcher import (
    NO_ADDRESS_ERROR,
    NotificationDispatcher,
    SendRateLimiter,
)

NOW = datetime(2024, 1, 10, 9, 0, tzinfo=UTC)


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def pair(profile_factory):
    return ScoredPair(
        a=profile_factory("ana"),
        b=profile_factory("ben"),
        score=42,
        reasons=("Both care about Climate",),
    )


@pytest.fixture
def dispatcher(email_sender, history_store):
    return NotificationDispatcher(
        email_sender, history_store, SendRateLimiter(0), clock=lambda: NOW
    )


@pytest.mark.asyncio
async def test_each_pair_yields_two_results_and_one_history_write(
    dispatcher, pair, email_sender, history_store
):
    outcome = await dispatcher.dispatch_pair(pair)

    assert [(r.user_id, r.matched_user_id) for r in outcome.results] == [
        ("ana", "ben"),
        ("ben", "ana"),
    ]
    assert all(r.success for r in outcome.results)
    assert [email for email, _ in email_sender.sent] == ["ana@example.org", "ben@example.org"]
    assert history_store.writes == [("ana", "ben", NOW)]
    assert outcome.history_recorded is True


@pytest.mark.asyncio
async def test_each_member_is_told_about_the_other(dispatcher, pair, email_sender):
    await dispatcher.dispatch_pair(pair)

    payloads = [payload for _, payload in email_sender.sent]
    assert [(p.recipient.user_id, p.match.user_id) for p in payloads] == [
        ("ana", "ben"),
        ("ben", "ana"),
    ]
    assert all(p.score == 42 for p in payloads)
    assert all(p.reasons == ("Both care about Climate",) for p in payloads)


@pytest.mark.asyncio
async def test_send_failure_does_not_block_partner_or_history(
    dispatcher, pair, email_sender, history_store
):
    email_sender.fail_for.add("ana@example.org")

    outcome = await dispatcher.dispatch_pair(pair)

    assert [r.success for r in outcome.results] == [False, True]
    assert outcome.results[0].error == "provider rejected message"
    assert history_store.writes == [("ana", "ben", NOW)]


@pytest.mark.asyncio
async def test_missing_address_is_reported_without_sending(
    dispatcher, profile_factory, email_sender
):
    pair = ScoredPair(
        a=profile_factory("ana", email=None, username="ana"),
        b=profile_factory("ben"),
        score=10,
    )

    outcome = await dispatcher.dispatch_pair(pair)

    assert outcome.results[0].success is False
    assert outcome.results[0].error == NO_ADDRESS_ERROR
    assert outcome.results[0].email is None
    assert [email for email, _ in email_sender.sent] == ["ben@example.org"]


@pytest.mark.asyncio
async def test_username_that_is_an_address_is_used(dispatcher, profile_factory, email_sender):
    pair = ScoredPair(
        a=profile_factory("ana", email="not-an-email", username="ana@civic.example"),
        b=profile_factory("ben"),
        score=10,
    )

    await dispatcher.dispatch_pair(pair)

    assert email_sender.sent[0][0] == "ana@civic.example"


@pytest.mark.asyncio
async def test_unexpected_sender_error_becomes_failed_result(dispatcher, pair, email_sender):
    async def broken(recipient_email, payload):
        raise RuntimeError("socket closed")

    email_sender.send_match_notification = broken

    outcome = await dispatcher.dispatch_pair(pair)

    assert [r.success for r in outcome.results] == [False, False]
    assert "RuntimeError" in outcome.results[0].error
    assert outcome.history_recorded is True


@pytest.mark.asyncio
async def test_unsuccessful_send_result_is_reported(dispatcher, pair, email_sender):
    async def disabled(recipient_email, payload):
        return SendResult(success=False, error="Email disabled")

    email_sender.send_match_notification = disabled

    outcome = await dispatcher.dispatch_pair(pair)

    assert [r.error for r in outcome.results] == ["Email disabled", "Email disabled"]


@pytest.mark.asyncio
async def test_history_failure_is_captured(dispatcher, pair, history_store):
    history_store.fail_for.add(("ana", "ben"))

    outcome = await dispatcher.dispatch_pair(pair)

    assert len(outcome.results) == 2
    assert outcome.history_recorded is False
    assert "history table unavailable" in outcome.history_error


@pytest.mark.asyncio
async def test_history_can_be_skipped(dispatcher, pair, history_store):
    outcome = await dispatcher.dispatch_pair(pair, record_history=False)

    assert len(outcome.results) == 2
    assert history_store.writes == []


@pytest.mark.asyncio
async def test_dispatch_all_returns_flat_results(dispatcher, profile_factory, history_store):
    pairs = [
        ScoredPair(a=profile_factory("a"), b=profile_factory("b"), score=5),
        ScoredPair(a=profile_factory("c"), b=profile_factory("d"), score=5),
    ]

    results = await dispatcher.dispatch_all(pairs)

    assert [r.user_id for r in results] == ["a", "b", "c", "d"]
    assert len(history_store.writes) == 2


@pytest.mark.asyncio
async def test_sends_are_spaced_by_the_minimum_interval(
    profile_factory, email_sender, history_store
):
    clock = FakeClock()
    starts: list[float] = []
    original = email_sender.send_match_notification

    async def timed(recipient_email, payload):
        starts.append(clock.monotonic())
        return await original(recipient_email, payload)

    email_sender.send_match_notification = timed
    limiter = SendRateLimiter(0.6, clock=clock.monotonic, sleep=clock.sleep)
    dispatcher = NotificationDispatcher(email_sender, history_store, limiter, clock=lambda: NOW)
    pairs = [
        ScoredPair(a=profile_factory("a"), b=profile_factory("b"), score=5),
        ScoredPair(a=profile_factory("c"), b=profile_factory("d"), score=5),
    ]

    await dispatcher.dispatch_all(pairs)

    assert starts == pytest.approx([0.0, 0.6, 1.2, 1.8])
    assert clock.sleeps == pytest.approx([0.6, 0.6, 0.6])


@pytest.mark.asyncio
async def test_failed_sends_still_consume_the_interval(
    profile_factory, email_sender, history_store
):
    clock = FakeClock()
    email_sender.fail_for.add("a@example.org")
    limiter = SendRateLimiter(0.6, clock=clock.monotonic, sleep=clock.sleep)
    dispatcher = NotificationDispatcher(email_sender, history_store, limiter, clock=lambda: NOW)

    await dispatcher.dispatch_pair(
        ScoredPair(a=profile_factory("a"), b=profile_factory("b"), score=5)
    )

    assert clock.sleeps == pytest.approx([0.6])


@pytest.mark.asyncio
async def test_limiter_only_waits_for_the_remaining_time():
    clock = FakeClock()
    limiter = SendRateLimiter(0.6, clock=clock.monotonic, sleep=clock.sleep)

    async with limiter.slot():
        pass
    clock.now += 0.4
    async with limiter.slot():
        pass
    clock.now += 1.0
    async with limiter.slot():
        pass

    assert clock.sleeps == pytest.approx([0.2])
