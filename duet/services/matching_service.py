"""
Duet — Match Ranker

Derives a user's ranked matches from their couple ratings:

  1. Keep candidates of the gender the profile is looking for.
  2. Each "yes" rating whose pair contains the candidate adds
     ``score_increment`` to the score and 1 to the mutual-connection count.
  3. Add integer jitter in ``[0, jitter_max)`` from the injected random source.
  4. Sort by score, highest first; ties keep pool order.
  5. Keep the top ``limit``.
  6. Clamp each score into ``[display_min, display_max]`` for display.

Jitter is cosmetic and not reproducible between calls unless the caller fixes
the random source.  The clamped percentage is never used for ordering.
"""

from __future__ import annotations

import random
from typing import Iterable, Sequence

import structlog

from duet.config import Settings, get_settings
from duet.exceptions import ConfigurationError, ValidationError
from duet.schemas.candidate import Candidate
from duet.schemas.match import Match
from duet.schemas.profile import Profile
from duet.schemas.rating import Rating, Verdict
from duet.utils.keys import split_pair_id

logger = structlog.get_logger("duet.matching_service")

# ──────────────────────────────────────────────────────────────────────────────
# Defaults (mirrored by Settings)
# ──────────────────────────────────────────────────────────────────────────────

SCORE_INCREMENT = 10
JITTER_MAX = 30
MATCH_LIMIT = 10
DISPLAY_MIN = 60
DISPLAY_MAX = 95


def display_percentage(score: int, low: int = DISPLAY_MIN, high: int = DISPLAY_MAX) -> int:
    return min(high, max(low, score))


def compute_matches(
    profile: Profile,
    ratings: Iterable[Rating],
    pool: Sequence[Candidate],
    rng: random.Random | None = None,
    *,
    score_increment: int = SCORE_INCREMENT,
    jitter_max: int = JITTER_MAX,
    limit: int = MATCH_LIMIT,
    display_min: int = DISPLAY_MIN,
    display_max: int = DISPLAY_MAX,
) -> list[Match]:
    """Rank *pool* for *profile* using the "yes" ratings in *ratings*.

    Raises ``ConfigurationError`` if the profile has no preference.  Pass
    ``jitter_max=0`` or a seeded *rng* for reproducible output.
    """
    if profile.preference is None:
        raise ConfigurationError("Profile preference is not set; cannot rank matches")

    rng = rng or random.Random()
    yes_pairs = [
        set(split_pair_id(r.pair_id))
        for r in ratings
        if r.verdict == Verdict.YES
    ]

    scored: list[tuple[int, int, Candidate]] = []
    for candidate in pool:
        if candidate.gender != profile.preference:
            continue

        mutual = sum(1 for members in yes_pairs if candidate.id in members)
        score = mutual * score_increment
        if jitter_max > 0:
            score += rng.randrange(jitter_max)
        scored.append((score, mutual, candidate))

    # sorted() is stable, so equal scores keep pool order.
    ranked = sorted(scored, key=lambda item: item[0], reverse=True)[:limit]

    return [
        Match(
            candidate=candidate,
            score=score,
            mutual_count=mutual,
            percentage=display_percentage(score, display_min, display_max),
        )
        for score, mutual, candidate in ranked
    ]


class MatchingService:
    """Settings-driven front end to ``compute_matches``."""

    def __init__(self, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self.score_increment = settings.MATCH_SCORE_INCREMENT
        self.jitter_max = settings.MATCH_JITTER_MAX
        self.limit = settings.MATCH_LIMIT
        self.display_min = settings.DISPLAY_SCORE_MIN
        self.display_max = settings.DISPLAY_SCORE_MAX

    def rank(
        self,
        profile: Profile | None,
        ratings: Iterable[Rating],
        pool: Sequence[Candidate],
        rng: random.Random | None = None,
    ) -> list[Match]:
        """Rank matches for a saved profile.

        A missing profile or one without a name is incomplete and raises
        ``ValidationError`` before any ranking happens.
        """
        if profile is None or not profile.is_complete:
            raise ValidationError("Complete your profile before viewing matches")

        ratings = list(ratings)
        matches = compute_matches(
            profile,
            ratings,
            pool,
            rng,
            score_increment=self.score_increment,
            jitter_max=self.jitter_max,
            limit=self.limit,
            display_min=self.display_min,
            display_max=self.display_max,
        )

        logger.info(
            "matches_ranked",
            preference=profile.preference.value,
            ratings=len(ratings),
            pool_size=len(pool),
            returned=len(matches),
        )
        return matches
