"""
Cycle orchestration for weekly matching.

One ``run_cycle`` call walks Idle -> Gated -> Selecting -> Assembling ->
Dispatching (per pair: Provisioning -> Notifying -> RecordingHistory) ->
Summarizing -> Done, or ends in Failed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, date, datetime
from enum import Enum

from civicmatch.features.weekly_matching.domain.errors import (
    ConfigurationError,
    ProvisioningFailure,
    SelectionError,
)
from civicmatch.features.weekly_matching.domain.models import (
    CycleSummary,
    DispatchResult,
    MatchingOptions,
    MeetingDetails,
    MeetingStatus,
    PairOutcome,
    Profile,
    ScoredPair,
    pair_key,
)
from civicmatch.features.weekly_matching.domain.ports import (
    EmailSender,
    MatchHistoryStore,
    MeetingProvisioner,
    ProfileStore,
)
from civicmatch.features.weekly_matching.pipeline.assembly.service import MatchAssembler
from civicmatch.features.weekly_matching.pipeline.selection.service import EligibilitySelector
from civicmatch.infrastructure.observability.logging import cycle_log_context, get_logger

from .dispatcher import NotificationDispatcher, SendRateLimiter

logger = get_logger(__name__)


class CycleState(str, Enum):
    IDLE = "idle"
    GATED = "gated"
    SELECTING = "selecting"
    ASSEMBLING = "assembling"
    DISPATCHING = "dispatching"
    PROVISIONING = "provisioning"
    NOTIFYING = "notifying"
    RECORDING_HISTORY = "recording_history"
    SUMMARIZING = "summarizing"
    DONE = "done"
    FAILED = "failed"


def iso_week_number(day: date) -> int:
    return day.isocalendar()[1]


WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def is_cadence_week(day: date, cadence_weeks: int = 2) -> bool:
    """Every ``cadence_weeks``-th ISO week (even weeks when biweekly)."""
    if cadence_weeks <= 1:
        return True
    return iso_week_number(day) % cadence_weeks == 0


def should_run_this_week(day: date, cadence_weeks: int = 2, run_weekday: int = 0) -> bool:
    """
    Run gate: open on exactly one day per cadence window.

    ``run_weekday`` follows ``date.weekday()`` (0 = Monday), so a scheduler
    waking daily still produces a single cycle per cadence week.
    """
    return day.weekday() == run_weekday and is_cadence_week(day, cadence_weeks)


def cycle_label(cadence_weeks: int) -> str:
    if cadence_weeks <= 1:
        return "weekly"
    if cadence_weeks == 2:
        return "bi-weekly"
    return f"every-{cadence_weeks}-weeks"


class CycleOrchestrator:
    """
    Runs one matching cycle end to end.

    Only ConfigurationError and SelectionError produce ``success=False``;
    failures inside a pair are recorded and the next pair is processed.
    """

    def __init__(
        self,
        profile_store: ProfileStore,
        history_store: MatchHistoryStore,
        email_sender: EmailSender,
        provisioner: MeetingProvisioner | None = None,
        *,
        rate_limiter: SendRateLimiter | None = None,
        selector: EligibilitySelector | None = None,
        assembler: MatchAssembler | None = None,
        cadence_weeks: int = 2,
        run_weekday: int = 0,
        clock: Callable[[], datetime] | None = None,
    ):
        if not 0 <= run_weekday <= 6:
            raise ValueError(f"run_weekday must be between 0 and 6, got {run_weekday}")
        self.profile_store = profile_store
        self.history_store = history_store
        self.email_sender = email_sender
        self.provisioner = provisioner
        self.selector = selector or EligibilitySelector()
        self.assembler = assembler or MatchAssembler()
        self.cadence_weeks = cadence_weeks
        self.run_weekday = run_weekday
        self._clock = clock or (lambda: datetime.now(UTC))
        self.dispatcher = NotificationDispatcher(
            email_sender,
            history_store,
            rate_limiter or SendRateLimiter(0.6),
            clock=self._clock,
        )
        self.state = CycleState.IDLE
        self.transitions: list[CycleState] = []
        self._lock = asyncio.Lock()

    def _enter(self, state: CycleState) -> None:
        self.state = state
        self.transitions.append(state)
        logger.debug("Matching cycle state", state=state.value)

    async def run_cycle(
        self, options: MatchingOptions | None = None, *, force: bool = False
    ) -> CycleSummary:
        """
        Execute one cycle.

        Args:
            options: Cooldown, cap and meeting settings
            force: Bypass the run-this-week gate (developer triggers)
        """
        options = options or MatchingOptions()
        label = cycle_label(self.cadence_weeks)

        if self._lock.locked():
            logger.warning("Matching cycle already running, skipping")
            return CycleSummary(
                success=True, skipped=True, cycle=label, message="Skipped - cycle already running"
            )

        async with self._lock:
            self.transitions = []
            self._enter(CycleState.IDLE)
            now = self._clock()
            week = iso_week_number(now.date())

            self._enter(CycleState.GATED)
            today = now.date()
            if not force and not should_run_this_week(
                today, self.cadence_weeks, self.run_weekday
            ):
                if not is_cadence_week(today, self.cadence_weeks):
                    message = (
                        "Skipped - bi-weekly schedule (odd week)"
                        if self.cadence_weeks == 2
                        else f"Skipped - {label} schedule (week {week})"
                    )
                else:
                    message = f"Skipped - {label} cycle runs on {WEEKDAY_NAMES[self.run_weekday]}"
                logger.info("Matching cycle skipped by run gate", week_number=week, cycle=label)
                self._enter(CycleState.DONE)
                return CycleSummary(
                    success=True, skipped=True, message=message, week_number=week, cycle=label
                )

            with cycle_log_context(week, label):
                try:
                    return await self._run(options, now, week, label)
                except (ConfigurationError, SelectionError) as e:
                    self._enter(CycleState.FAILED)
                    logger.error(
                        "Matching cycle failed",
                        error=str(e),
                        error_type=type(e).__name__,
                        operation=e.operation,
                    )
                    return CycleSummary(
                        success=False,
                        message=f"Weekly matching failed: {e}",
                        error=str(e),
                        week_number=week,
                        cycle=label,
                    )
                except Exception as e:
                    self._enter(CycleState.FAILED)
                    logger.error(
                        "Matching cycle crashed", error=str(e), error_type=type(e).__name__
                    )
                    raise

    async def preview(
        self, options: MatchingOptions | None = None
    ) -> tuple[list[Profile], list[ScoredPair]]:
        """Select and assemble without provisioning, sending or writing history."""
        options = options or MatchingOptions()
        eligible, history = await self._select(options)
        pairs = self.assembler.assemble(
            eligible, lambda a, b: history.get(pair_key(a, b)), options, now=self._clock()
        )
        return eligible, pairs

    async def run_manual_pair(
        self,
        user_id: str,
        matched_user_id: str,
        *,
        send_email: bool = False,
        create_meeting: bool = False,
    ) -> tuple[ScoredPair, PairOutcome, list[DispatchResult]]:
        """
        Score (and optionally notify) one hand-picked pair.

        History is not recorded for manual pairs.

        Raises:
            LookupError: Either profile does not exist
        """
        if user_id == matched_user_id:
            raise ValueError("A user cannot be matched with themselves")

        profile_a = await self.profile_store.get_profile_by_id(user_id)
        profile_b = await self.profile_store.get_profile_by_id(matched_user_id)
        missing = [uid for uid, p in ((user_id, profile_a), (matched_user_id, profile_b)) if not p]
        if missing:
            raise LookupError(f"Profile not found: {', '.join(missing)}")

        pair = self.assembler.scorer.score_pair(profile_a, profile_b)
        outcome = PairOutcome(user_ids=pair.user_ids, score=pair.score)
        meeting = None
        if create_meeting and self.provisioner is not None:
            meeting = await self._provision(0, pair, outcome)

        results: list[DispatchResult] = []
        if send_email:
            self.email_sender.validate_config()
            dispatched = await self.dispatcher.dispatch_pair(pair, meeting, record_history=False)
            results = dispatched.results
        return pair, outcome, results

    async def _run(
        self, options: MatchingOptions, now: datetime, week: int, label: str
    ) -> CycleSummary:
        self.email_sender.validate_config()
        meetings_enabled = options.create_meetings and self.provisioner is not None
        if options.create_meetings and self.provisioner is None:
            logger.warning("Meetings requested but no provisioner configured; continuing without")

        self._enter(CycleState.SELECTING)
        eligible, history = await self._select(options)

        self._enter(CycleState.ASSEMBLING)
        pairs = self.assembler.assemble(
            eligible,
            lambda a, b: history.get(pair_key(a, b)),
            options,
            now=now,
        )

        summary = CycleSummary(
            success=True,
            total_matches=len(pairs),
            week_number=week,
            cycle=label,
            eligible_count=len(eligible),
        )

        self._enter(CycleState.DISPATCHING)
        for index, pair in enumerate(pairs):
            await self._process_pair(index, pair, meetings_enabled, summary)

        self._enter(CycleState.SUMMARIZING)
        summary.sent = sum(1 for r in summary.results if r.success)
        summary.failed = sum(1 for r in summary.results if not r.success)
        summary.meetings_created = sum(
            1 for p in summary.pairs if p.meeting_status is MeetingStatus.CREATED
        )
        summary.history_failures = sum(1 for p in summary.pairs if not p.history_recorded)
        summary.message = (
            f"Weekly matching completed: {summary.total_matches} matches, "
            f"{summary.sent} sent, {summary.failed} failed"
        )

        logger.info(
            "Matching cycle completed",
            eligible=summary.eligible_count,
            total_matches=summary.total_matches,
            sent=summary.sent,
            failed=summary.failed,
            meetings_created=summary.meetings_created,
            history_failures=summary.history_failures,
        )
        self._enter(CycleState.DONE)
        return summary

    async def _select(
        self, options: MatchingOptions
    ) -> tuple[list[Profile], dict[tuple[str, str], datetime]]:
        profiles = await self.profile_store.get_eligible_profiles()
        eligible = self.selector.select_eligible(profiles, options)
        history: dict[tuple[str, str], datetime] = {}
        if options.exclude_recent_matches and len(eligible) > 1:
            history = await self.history_store.get_history_for(p.user_id for p in eligible)
        return eligible, history

    async def _process_pair(
        self, index: int, pair: ScoredPair, meetings_enabled: bool, summary: CycleSummary
    ) -> None:
        outcome = PairOutcome(user_ids=pair.user_ids, score=pair.score)
        meeting: MeetingDetails | None = None

        if meetings_enabled:
            self._enter(CycleState.PROVISIONING)
            meeting = await self._provision(index, pair, outcome)

        self._enter(CycleState.NOTIFYING)
        dispatched = await self.dispatcher.dispatch_pair(pair, meeting)
        self._enter(CycleState.RECORDING_HISTORY)
        outcome.history_recorded = dispatched.history_recorded
        outcome.history_error = dispatched.history_error

        summary.results.extend(dispatched.results)
        summary.pairs.append(outcome)

    async def _provision(
        self, index: int, pair: ScoredPair, outcome: PairOutcome
    ) -> MeetingDetails | None:
        try:
            meeting = await self.provisioner.create_meeting(pair.a, pair.b)
        except ProvisioningFailure as e:
            outcome.meeting_status = MeetingStatus.FAILED
            outcome.meeting_error = str(e)
            logger.warning("Meeting provisioning failed", pair_index=index, error=str(e))
            return None
        except Exception as e:
            outcome.meeting_status = MeetingStatus.FAILED
            outcome.meeting_error = f"Unexpected error: {type(e).__name__}: {e}"
            logger.error(
                "Unexpected error provisioning meeting",
                pair_index=index,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        outcome.meeting_status = MeetingStatus.CREATED
        outcome.meeting_event_id = meeting.event_id
        return meeting
