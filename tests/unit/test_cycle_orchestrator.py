from datetime import date, timedelta

import pytest

from civicmatch.features.weekly_matching.domain.errors import SelectionError
from civicmatch.features.weekly_matching.domain.models import MatchingOptions, MeetingStatus
from civicmatch.features.weekly_matching.services.orchestrator import (
    CycleState,
    cycle_label,
    iso_week_number,
    should_run_this_week,
)


def test_run_gate_follows_iso_week_parity():
    assert iso_week_number(date(2024, 1, 8)) == 2
    assert should_run_this_week(date(2024, 1, 8)) is True
    assert should_run_this_week(date(2024, 1, 1)) is False


def test_run_gate_opens_on_one_weekday_only():
    week_two = [date(2024, 1, 8) + timedelta(days=offset) for offset in range(7)]

    assert [should_run_this_week(day) for day in week_two].count(True) == 1
    assert should_run_this_week(date(2024, 1, 10), run_weekday=2) is True
    assert should_run_this_week(date(2024, 1, 10)) is False


def test_weekly_cadence_runs_every_week_on_the_run_day():
    assert should_run_this_week(date(2024, 1, 1), cadence_weeks=1) is True
    assert should_run_this_week(date(2024, 1, 3), cadence_weeks=1) is False


def test_run_weekday_must_be_a_weekday(make_orchestrator):
    with pytest.raises(ValueError):
        make_orchestrator(run_weekday=7)


def test_cycle_labels():
    assert cycle_label(1) == "weekly"
    assert cycle_label(2) == "bi-weekly"
    assert cycle_label(3) == "every-3-weeks"


@pytest.mark.asyncio
async def test_odd_week_skips_without_touching_the_store(
    make_orchestrator, profile_store, email_sender, odd_week_now
):
    orchestrator = make_orchestrator(now=odd_week_now)

    summary = await orchestrator.run_cycle()

    assert summary.success is True
    assert summary.skipped is True
    assert summary.message == "Skipped - bi-weekly schedule (odd week)"
    assert summary.week_number == 1
    assert profile_store.calls == 0
    assert email_sender.sent == []
    assert orchestrator.transitions == [CycleState.IDLE, CycleState.GATED, CycleState.DONE]


@pytest.mark.asyncio
async def test_force_bypasses_the_run_gate(make_orchestrator, profile_store, odd_week_now):
    orchestrator = make_orchestrator(now=odd_week_now)

    summary = await orchestrator.run_cycle(force=True)

    assert summary.skipped is False
    assert profile_store.calls == 1


@pytest.mark.asyncio
async def test_daily_runs_produce_one_cycle_per_even_week(
    make_orchestrator, email_sender, even_week_now
):
    summaries = [
        await make_orchestrator(now=even_week_now + timedelta(days=offset)).run_cycle()
        for offset in range(7)
    ]

    ran = [summary for summary in summaries if not summary.skipped]
    assert len(ran) == 1
    assert ran[0].total_matches == 2
    assert [recipient for recipient, _ in email_sender.sent].count("ana@example.org") == 1


@pytest.mark.asyncio
async def test_cadence_week_skips_off_the_run_day(make_orchestrator, profile_store, even_week_now):
    orchestrator = make_orchestrator(now=even_week_now + timedelta(days=2))

    summary = await orchestrator.run_cycle()

    assert summary.skipped is True
    assert summary.message == "Skipped - bi-weekly cycle runs on Monday"
    assert profile_store.calls == 0


@pytest.mark.asyncio
async def test_full_cycle_summary(
    make_orchestrator, email_sender, history_store, provisioner, even_week_now
):
    orchestrator = make_orchestrator()

    summary = await orchestrator.run_cycle()

    assert summary.success is True
    assert summary.total_matches == 2
    assert summary.sent == 4
    assert summary.failed == 0
    assert summary.eligible_count == 4
    assert summary.meetings_created == 2
    assert summary.week_number == 2
    assert summary.cycle == "bi-weekly"
    assert summary.message == "Weekly matching completed: 2 matches, 4 sent, 0 failed"
    assert len(history_store.writes) == 2
    assert len(provisioner.calls) == 2
    assert all(payload.meeting is not None for _, payload in email_sender.sent)
    assert orchestrator.state is CycleState.DONE


@pytest.mark.asyncio
async def test_best_pair_comes_first(make_orchestrator):
    summary = await make_orchestrator().run_cycle()

    assert summary.pairs[0].user_ids == ("ana", "ben")
    assert summary.pairs[0].score == 34


@pytest.mark.asyncio
async def test_transitions_for_one_pair(make_orchestrator, profile_store):
    profile_store.profiles = profile_store.profiles[:2]
    orchestrator = make_orchestrator()

    await orchestrator.run_cycle()

    assert orchestrator.transitions == [
        CycleState.IDLE,
        CycleState.GATED,
        CycleState.SELECTING,
        CycleState.ASSEMBLING,
        CycleState.DISPATCHING,
        CycleState.PROVISIONING,
        CycleState.NOTIFYING,
        CycleState.RECORDING_HISTORY,
        CycleState.SUMMARIZING,
        CycleState.DONE,
    ]


@pytest.mark.asyncio
async def test_meeting_failure_only_affects_its_pair(
    make_orchestrator, provisioner, email_sender, history_store
):
    provisioner.fail_for.add("cai")

    summary = await make_orchestrator().run_cycle()

    assert summary.success is True
    assert summary.sent == 4
    assert summary.meetings_created == 1
    failed = [p for p in summary.pairs if p.meeting_status is MeetingStatus.FAILED]
    assert len(failed) == 1
    assert "calendar quota exceeded" in failed[0].meeting_error
    assert len(history_store.writes) == 2
    meetings = {payload.recipient.user_id: payload.meeting for _, payload in email_sender.sent}
    assert meetings["cai"] is None
    assert meetings["ana"] is not None


@pytest.mark.asyncio
async def test_unexpected_provisioner_error_is_contained(make_orchestrator, provisioner):
    provisioner.error = RuntimeError("boom")

    summary = await make_orchestrator().run_cycle()

    assert summary.success is True
    assert summary.sent == 4
    assert all(p.meeting_status is MeetingStatus.FAILED for p in summary.pairs)


@pytest.mark.asyncio
async def test_meetings_can_be_disabled(make_orchestrator, provisioner):
    options = MatchingOptions(create_meetings=False)

    summary = await make_orchestrator().run_cycle(options)

    assert provisioner.calls == []
    assert all(p.meeting_status is MeetingStatus.DISABLED for p in summary.pairs)


@pytest.mark.asyncio
async def test_missing_provisioner_runs_without_meetings(make_orchestrator):
    summary = await make_orchestrator(provisioner=None).run_cycle()

    assert summary.success is True
    assert summary.meetings_created == 0
    assert summary.sent == 4


@pytest.mark.asyncio
async def test_send_failures_are_counted(make_orchestrator, email_sender):
    email_sender.fail_for.add("ana@example.org")

    summary = await make_orchestrator().run_cycle()

    assert summary.success is True
    assert summary.sent == 3
    assert summary.failed == 1
    assert summary.message == "Weekly matching completed: 2 matches, 3 sent, 1 failed"


@pytest.mark.asyncio
async def test_history_failure_is_counted(make_orchestrator, history_store):
    history_store.fail_for.add(("ana", "ben"))

    summary = await make_orchestrator().run_cycle()

    assert summary.success is True
    assert summary.history_failures == 1


@pytest.mark.asyncio
async def test_selection_error_fails_the_cycle(make_orchestrator, profile_store, email_sender):
    profile_store.error = SelectionError("connection refused", operation="get_eligible_profiles")
    orchestrator = make_orchestrator()

    summary = await orchestrator.run_cycle()

    assert summary.success is False
    assert summary.error == "connection refused"
    assert summary.message == "Weekly matching failed: connection refused"
    assert email_sender.sent == []
    assert orchestrator.state is CycleState.FAILED


@pytest.mark.asyncio
async def test_missing_email_credentials_fail_before_selection(
    make_orchestrator, profile_store, email_sender
):
    email_sender.misconfigured = True

    summary = await make_orchestrator().run_cycle()

    assert summary.success is False
    assert "RESEND_API_KEY" in summary.error
    assert profile_store.calls == 0


@pytest.mark.asyncio
async def test_unexpected_error_propagates(make_orchestrator, profile_store):
    profile_store.error = RuntimeError("bug")
    orchestrator = make_orchestrator()

    with pytest.raises(RuntimeError):
        await orchestrator.run_cycle()

    assert orchestrator.state is CycleState.FAILED


@pytest.mark.asyncio
async def test_recent_history_excludes_pair_in_next_cycle(
    make_orchestrator, profile_store, history_store, even_week_now
):
    profile_store.profiles = profile_store.profiles[:2]

    first = await make_orchestrator().run_cycle()
    second = await make_orchestrator(now=even_week_now + timedelta(days=7)).run_cycle(force=True)
    third = await make_orchestrator(now=even_week_now + timedelta(days=14)).run_cycle()

    assert first.total_matches == 1
    assert second.total_matches == 0
    assert third.total_matches == 1


@pytest.mark.asyncio
async def test_concurrent_run_is_skipped(make_orchestrator, profile_store):
    orchestrator = make_orchestrator()

    async with orchestrator._lock:
        summary = await orchestrator.run_cycle()

    assert summary.skipped is True
    assert summary.message == "Skipped - cycle already running"
    assert profile_store.calls == 0


@pytest.mark.asyncio
async def test_preview_has_no_side_effects(
    make_orchestrator, email_sender, history_store, provisioner
):
    eligible, pairs = await make_orchestrator().preview(MatchingOptions(max_matches_per_week=1))

    assert len(eligible) == 4
    assert len(pairs) == 1
    assert email_sender.sent == []
    assert history_store.writes == []
    assert provisioner.calls == []


@pytest.mark.asyncio
async def test_manual_pair_sends_without_recording_history(
    make_orchestrator, email_sender, history_store
):
    pair, outcome, results = await make_orchestrator().run_manual_pair(
        "cai", "ana", send_email=True
    )

    assert pair.user_ids == ("cai", "ana")
    assert [r.success for r in results] == [True, True]
    assert outcome.meeting_status is MeetingStatus.DISABLED
    assert history_store.writes == []


@pytest.mark.asyncio
async def test_manual_pair_can_book_a_meeting(make_orchestrator, provisioner, email_sender):
    _, outcome, results = await make_orchestrator().run_manual_pair(
        "ana", "ben", create_meeting=True
    )

    assert outcome.meeting_status is MeetingStatus.CREATED
    assert outcome.meeting_event_id == "evt-ana-ben"
    assert results == []
    assert email_sender.sent == []


@pytest.mark.asyncio
async def test_manual_pair_rejects_self_match(make_orchestrator):
    with pytest.raises(ValueError):
        await make_orchestrator().run_manual_pair("ana", "ana")


@pytest.mark.asyncio
async def test_manual_pair_requires_both_profiles(make_orchestrator):
    with pytest.raises(LookupError) as exc:
        await make_orchestrator().run_manual_pair("ana", "zed")

    assert "zed" in str(exc.value)
