"""
Notification dispatch for accepted pairs.

Each pair produces exactly two DispatchResults (one per member) and one
symmetric match history write. Sends are strictly sequential and spaced
by a minimum interval, including after failed sends.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime

from civicmatch.features.weekly_matching.domain.errors import DispatchFailure, HistoryWriteFailure
from civicmatch.features.weekly_matching.domain.models import (
    DispatchResult,
    MatchNotification,
    MeetingDetails,
    Profile,
    ScoredPair,
    pair_key,
)
from civicmatch.features.weekly_matching.domain.ports import EmailSender, MatchHistoryStore
from civicmatch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

NO_ADDRESS_ERROR = "No email address on profile"


class SendRateLimiter:
    """Enforces a minimum start-to-start interval between sends."""

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = max(0.0, min_interval)
        self._clock = clock
        self._sleep = sleep
        self._last_start: float | None = None

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        if self._last_start is not None:
            remaining = self.min_interval - (self._clock() - self._last_start)
            if remaining > 0:
                await self._sleep(remaining)
        self._last_start = self._clock()
        yield


@dataclass(slots=True)
class PairDispatch:
    results: list[DispatchResult] = field(default_factory=list)
    history_recorded: bool = False
    history_error: str | None = None


class NotificationDispatcher:
    def __init__(
        self,
        email_sender: EmailSender,
        history_store: MatchHistoryStore,
        rate_limiter: SendRateLimiter,
        clock: Callable[[], datetime] | None = None,
    ):
        self.email_sender = email_sender
        self.history_store = history_store
        self.rate_limiter = rate_limiter
        self._clock = clock or (lambda: datetime.now(UTC))

    async def dispatch_all(
        self,
        pairs: list[ScoredPair],
        meeting_by_pair: dict[tuple[str, str], MeetingDetails | None] | None = None,
    ) -> list[DispatchResult]:
        """Notify every pair in order. Each pair must be dispatched only once per cycle."""
        meeting_by_pair = meeting_by_pair or {}
        results: list[DispatchResult] = []
        for pair in pairs:
            outcome = await self.dispatch_pair(pair, meeting_by_pair.get(pair_key(*pair.user_ids)))
            results.extend(outcome.results)
        return results

    async def dispatch_pair(
        self,
        pair: ScoredPair,
        meeting: MeetingDetails | None = None,
        *,
        record_history: bool = True,
    ) -> PairDispatch:
        """Send both notifications, then record the pairing whatever the send outcome."""
        outcome = PairDispatch()
        outcome.results.append(await self._notify(pair.a, pair.b, pair, meeting))
        outcome.results.append(await self._notify(pair.b, pair.a, pair, meeting))

        if not record_history:
            return outcome

        try:
            await self.history_store.record_match(pair.a.user_id, pair.b.user_id, self._clock())
            outcome.history_recorded = True
        except HistoryWriteFailure as e:
            outcome.history_error = str(e)
            logger.error(
                "Match history write failed",
                user_a_id=pair.a.user_id,
                user_b_id=pair.b.user_id,
                error=str(e),
            )
        except Exception as e:
            outcome.history_error = f"Unexpected error: {type(e).__name__}: {e}"
            logger.error(
                "Unexpected error recording match history",
                user_a_id=pair.a.user_id,
                user_b_id=pair.b.user_id,
                error=str(e),
                error_type=type(e).__name__,
            )
        return outcome

    async def _notify(
        self,
        recipient: Profile,
        match: Profile,
        pair: ScoredPair,
        meeting: MeetingDetails | None,
    ) -> DispatchResult:
        email = recipient.contact_email
        if not email:
            logger.warning("Skipping match email, no address", user_id=recipient.user_id)
            return DispatchResult(
                user_id=recipient.user_id,
                matched_user_id=match.user_id,
                email=None,
                success=False,
                error=NO_ADDRESS_ERROR,
            )

        payload = MatchNotification(
            recipient=recipient,
            match=match,
            score=pair.score,
            reasons=pair.reasons,
            meeting=meeting,
        )

        async with self.rate_limiter.slot():
            try:
                sent = await self.email_sender.send_match_notification(email, payload)
            except DispatchFailure as e:
                logger.warning("Match email failed", user_id=recipient.user_id, error=str(e))
                return DispatchResult(
                    user_id=recipient.user_id,
                    matched_user_id=match.user_id,
                    email=email,
                    success=False,
                    error=str(e),
                )
            except Exception as e:
                logger.error(
                    "Unexpected error sending match email",
                    user_id=recipient.user_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return DispatchResult(
                    user_id=recipient.user_id,
                    matched_user_id=match.user_id,
                    email=email,
                    success=False,
                    error=f"Unexpected error: {type(e).__name__}: {e}",
                )

        return DispatchResult(
            user_id=recipient.user_id,
            matched_user_id=match.user_id,
            email=email,
            success=sent.success,
            error=None if sent.success else (sent.error or "Send failed"),
            message_id=sent.message_id,
        )
