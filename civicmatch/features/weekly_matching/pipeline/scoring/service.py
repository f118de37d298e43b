"""
Compatibility scoring - rates how well two profiles fit as a weekly match.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache

from civicmatch.features.weekly_matching.domain.models import Location, Profile, ScoredPair

MAX_REASONS = 4
GENERIC_REASON = "Both changemakers ready to connect and collaborate"

# Fixed tie-break when two signals contribute the same number of points.
_CATEGORY_ORDER = ("causes", "values", "skills", "location", "tags")


@dataclass(slots=True, frozen=True)
class ScoreWeights:
    """Points per matching item and the cap for each signal.

    A single matching item ranks causes > values > skills > location > tags,
    and so do the caps (location and tags share the lowest cap). The caps
    add up to 100 together with the baseline.
    """

    baseline: int = 5
    cause_points: int = 14
    cause_cap: int = 35
    value_points: int = 10
    value_cap: int = 30
    shared_skill_points: int = 6
    complementary_skill_points: int = 5
    skill_cap: int = 20
    same_city_points: int = 5
    same_country_points: int = 3
    tag_points: int = 2
    tag_cap: int = 5
    min_reason_points: int = 1


@dataclass(slots=True, frozen=True)
class _Signal:
    category: str
    points: int
    reason: str


def _keyed(items: tuple[str, ...]) -> dict[str, str]:
    """Case-insensitive lookup of display values."""
    keyed: dict[str, str] = {}
    for item in items:
        keyed.setdefault(item.casefold(), item)
    return keyed


def _shared(left: tuple[str, ...], right: tuple[str, ...]) -> list[str]:
    """Items present in both, spelled the same way whichever side is asked first."""
    left_keyed, right_keyed = _keyed(left), _keyed(right)
    common = sorted(left_keyed.keys() & right_keyed.keys())
    return [min(left_keyed[key], right_keyed[key]) for key in common]


@lru_cache(maxsize=1024)
def _word_pattern(term: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(term)}(?!\w)", re.IGNORECASE)


def _helpable(help_needed: str, skills: tuple[str, ...]) -> list[str]:
    """Skills from ``skills`` that the ``help_needed`` text asks for."""
    if not help_needed:
        return []
    return [skill for skill in skills if _word_pattern(skill.casefold()).search(help_needed)]


def _join(items: list[str], limit: int = 3) -> str:
    shown = items[:limit]
    if len(shown) == 1:
        return shown[0]
    return f"{', '.join(shown[:-1])} and {shown[-1]}"


def _locale(location: Location | None) -> tuple[str, str, str]:
    """(city, country, label); legacy "City, Country" strings are split."""
    if location is None:
        return "", "", ""
    city, country = location.city or "", location.country or ""
    if location.raw and not (city or country):
        parts = [part.strip() for part in location.raw.split(",") if part.strip()]
        if len(parts) >= 2:
            city, country = parts[0], parts[-1]
    return city, country, location.label


def _same(left: str, right: str) -> bool:
    return bool(left) and left.casefold() == right.casefold()


class CompatibilityScorer:
    """
    Pure, symmetric pair scorer.

    Every signal is computed from unordered comparisons so that
    ``score(a, b) == score(b, a)``.
    """

    def __init__(self, weights: ScoreWeights | None = None):
        self.weights = weights or ScoreWeights()

    def score(self, a: Profile, b: Profile) -> tuple[int, list[str]]:
        """Return the 0-100 score and at most four reasons, strongest first."""
        signals = [
            signal
            for signal in (
                self._causes(a, b),
                self._values(a, b),
                self._skills(a, b),
                self._location(a, b),
                self._tags(a, b),
            )
            if signal is not None
        ]

        total = self.weights.baseline + sum(signal.points for signal in signals)
        total = max(0, min(100, total))

        reasons = self._reasons(signals)
        return total, reasons

    def score_pair(self, a: Profile, b: Profile) -> ScoredPair:
        score, reasons = self.score(a, b)
        return ScoredPair(a=a, b=b, score=score, reasons=tuple(reasons))

    def _reasons(self, signals: list[_Signal]) -> list[str]:
        ranked = sorted(
            (s for s in signals if s.points >= self.weights.min_reason_points),
            key=lambda s: (-s.points, _CATEGORY_ORDER.index(s.category)),
        )
        if not ranked:
            return [GENERIC_REASON]
        return [signal.reason for signal in ranked[:MAX_REASONS]]

    def _causes(self, a: Profile, b: Profile) -> _Signal | None:
        shared = _shared(a.causes, b.causes)
        if not shared:
            return None
        points = min(len(shared) * self.weights.cause_points, self.weights.cause_cap)
        return _Signal("causes", points, f"Both care about {_join(shared)}")

    def _values(self, a: Profile, b: Profile) -> _Signal | None:
        shared = _shared(a.values, b.values)
        if not shared:
            return None
        points = min(len(shared) * self.weights.value_points, self.weights.value_cap)
        return _Signal("values", points, f"You both value {_join(shared)}")

    def _skills(self, a: Profile, b: Profile) -> _Signal | None:
        shared = _shared(a.skills, b.skills)
        # Both directions: what b can offer a, and what a can offer b.
        offered = _helpable(a.help_needed, b.skills) + _helpable(b.help_needed, a.skills)
        if not shared and not offered:
            return None

        points = min(
            len(shared) * self.weights.shared_skill_points
            + len(offered) * self.weights.complementary_skill_points,
            self.weights.skill_cap,
        )
        if shared:
            reason = f"Shared expertise in {_join(shared)}"
        else:
            names = sorted(set(offered), key=lambda skill: (skill.casefold(), skill))
            reason = f"Complementary skills: {_join(names)}"
        return _Signal("skills", points, reason)

    def _location(self, a: Profile, b: Profile) -> _Signal | None:
        city_a, country_a, label_a = _locale(a.location)
        city_b, country_b, label_b = _locale(b.location)

        countries_conflict = bool(country_a and country_b) and not _same(country_a, country_b)
        if _same(city_a, city_b) and not countries_conflict:
            place = min(city_a, city_b)
            return _Signal("location", self.weights.same_city_points, f"Both based in {place}")
        if _same(country_a, country_b):
            place = min(country_a, country_b)
            return _Signal("location", self.weights.same_country_points, f"Both based in {place}")
        if _same(label_a, label_b):
            place = min(label_a, label_b)
            return _Signal("location", self.weights.same_city_points, f"Both based in {place}")
        # Unknown or different places never count against a pair.
        return None

    def _tags(self, a: Profile, b: Profile) -> _Signal | None:
        shared = _shared(a.tags, b.tags)
        if not shared:
            return None
        points = min(len(shared) * self.weights.tag_points, self.weights.tag_cap)
        return _Signal("tags", points, f"Common interests: {_join(shared)}")


compatibility_scorer = CompatibilityScorer()
