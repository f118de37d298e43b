"""
Match assembly - turns the eligible pool into disjoint, ranked pairs.

Greedy selection over all candidate pairs sorted by score. This is not a
maximum-weight matching; with pools the size of the active user base the
O(n^2 log n) sort plus a single walk is the accepted tradeoff.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from itertools import combinations

from civicmatch.features.weekly_matching.domain.models import (
    MatchingOptions,
    Profile,
    ScoredPair,
)
from civicmatch.features.weekly_matching.domain.ports import HistoryLookup
from civicmatch.features.weekly_matching.pipeline.scoring.service import (
    CompatibilityScorer,
    compatibility_scorer,
)
from civicmatch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def _timestamp(profile: Profile) -> float:
    created = profile.created_at
    if created is None:
        return 0.0
    if created.tzinfo is None:
        created = created.replace(tzinfo=UTC)
    return created.timestamp()


def _no_history(user_a_id: str, user_b_id: str) -> datetime | None:
    return None


class MatchAssembler:
    def __init__(self, scorer: CompatibilityScorer | None = None):
        self.scorer = scorer or compatibility_scorer

    def assemble(
        self,
        eligible: list[Profile],
        history_lookup: HistoryLookup | None = None,
        options: MatchingOptions | None = None,
        *,
        now: datetime | None = None,
    ) -> list[ScoredPair]:
        """
        Build this cycle's matches.

        Args:
            eligible: Output of the eligibility selector
            history_lookup: Returns the last time two users were matched, or None
            options: Cooldown and cardinality settings
            now: Reference time for the cooldown window

        Returns:
            Accepted pairs, highest score first. No user appears twice.
        """
        options = options or MatchingOptions()
        history_lookup = history_lookup or _no_history
        now = now or datetime.now(UTC)
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)

        if options.max_matches_per_week <= 0 or len(eligible) < 2:
            return []

        candidates = self._candidates(eligible, history_lookup, options, now)
        candidates.sort(key=self._rank_key)

        matched: set[str] = set()
        accepted: list[ScoredPair] = []
        for pair in candidates:
            if len(accepted) >= options.max_matches_per_week:
                break
            if pair.a.user_id in matched or pair.b.user_id in matched:
                continue
            matched.update(pair.user_ids)
            accepted.append(pair)

        logger.info(
            "Matches assembled",
            eligible=len(eligible),
            candidates=len(candidates),
            accepted=len(accepted),
            unmatched=len(eligible) - len(matched),
            max_matches=options.max_matches_per_week,
        )
        return accepted

    def _candidates(
        self,
        eligible: list[Profile],
        history_lookup: HistoryLookup,
        options: MatchingOptions,
        now: datetime,
    ) -> list[ScoredPair]:
        cutoff = now - timedelta(days=options.min_days_since_last_match)
        candidates: list[ScoredPair] = []
        cooled = 0

        for a, b in combinations(eligible, 2):
            if a.user_id == b.user_id:
                continue
            if options.exclude_recent_matches and self._in_cooldown(a, b, history_lookup, cutoff):
                cooled += 1
                continue
            candidates.append(self.scorer.score_pair(a, b))

        if cooled:
            logger.debug("Candidate pairs excluded by cooldown", excluded=cooled)
        return candidates

    @staticmethod
    def _in_cooldown(
        a: Profile, b: Profile, history_lookup: HistoryLookup, cutoff: datetime
    ) -> bool:
        last = history_lookup(a.user_id, b.user_id)
        if last is None:
            return False
        if last.tzinfo is None:
            last = last.replace(tzinfo=UTC)
        return last > cutoff

    @staticmethod
    def _rank_key(pair: ScoredPair) -> tuple:
        # Score, then older accounts, then ids so equal inputs give equal output.
        return (
            -pair.score,
            _timestamp(pair.a) + _timestamp(pair.b),
            tuple(sorted(pair.user_ids)),
        )


match_assembler = MatchAssembler()
