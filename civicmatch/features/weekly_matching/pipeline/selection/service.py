"""
Eligibility selection - narrows the profile universe for one matching cycle.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from civicmatch.features.weekly_matching.domain.models import MatchingOptions, Profile
from civicmatch.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=UTC)


def _created_key(profile: Profile) -> tuple[datetime, str]:
    created = profile.created_at or _EPOCH
    if created.tzinfo is None:
        created = created.replace(tzinfo=UTC)
    return created, profile.user_id


class EligibilitySelector:
    """
    Filters profiles down to those that can be matched this cycle.

    Recency exclusion is pairwise and happens in the assembler; this step
    only looks at each profile on its own.
    """

    def select_eligible(
        self, profiles: Iterable[Profile], options: MatchingOptions | None = None
    ) -> list[Profile]:
        """Return eligible profiles, oldest accounts first."""
        options = options or MatchingOptions()
        eligible: list[Profile] = []
        seen: set[str] = set()
        dropped: dict[str, int] = {"opted_out": 0, "no_name": 0, "incomplete": 0, "duplicate": 0}

        for profile in profiles:
            reason = self._exclusion_reason(profile, seen)
            if reason:
                dropped[reason] += 1
                continue
            seen.add(profile.user_id)
            eligible.append(profile)

        eligible.sort(key=_created_key)

        logger.info(
            "Eligible profiles selected",
            eligible=len(eligible),
            exclude_recent_matches=options.exclude_recent_matches,
            **{f"dropped_{k}": v for k, v in dropped.items()},
        )
        return eligible

    def _exclusion_reason(self, profile: Profile, seen: set[str]) -> str | None:
        if profile.user_id in seen:
            return "duplicate"
        if not profile.weekly_matching_enabled:
            return "opted_out"
        if not profile.name:
            return "no_name"
        if not self.is_complete(profile):
            return "incomplete"
        return None

    @staticmethod
    def is_complete(profile: Profile) -> bool:
        """At least one core matching field has content."""
        return bool(
            profile.skills
            or profile.causes
            or profile.values
            or profile.tags
            or profile.bio.strip()
            or profile.help_needed.strip()
        )


eligibility_selector = EligibilitySelector()
