"""
Duet — Static candidate pool and couple generation.
"""

from __future__ import annotations

import random

from duet.schemas.candidate import Candidate, Couple, Gender
from duet.utils.keys import pair_id

_PHOTO_BASE = "https://images.unsplash.com"

CANDIDATE_POOL: tuple[Candidate, ...] = (
    Candidate(
        id="1", name="Alex", age=28, gender=Gender.MAN,
        photo_ref=f"{_PHOTO_BASE}/photo-1507003211169-0a1dd7228f2d?w=200&h=200&fit=crop&crop=face",
        bio="Love hiking and coffee",
    ),
    Candidate(
        id="2", name="Sam", age=26, gender=Gender.WOMAN,
        photo_ref=f"{_PHOTO_BASE}/photo-1494790108755-2616b612b786?w=200&h=200&fit=crop&crop=face",
        bio="Artist and book lover",
    ),
    Candidate(
        id="3", name="Jordan", age=30, gender=Gender.MAN,
        photo_ref=f"{_PHOTO_BASE}/photo-1472099645785-5658abf4ff4e?w=200&h=200&fit=crop&crop=face",
        bio="Musician and traveler",
    ),
    Candidate(
        id="4", name="Casey", age=25, gender=Gender.WOMAN,
        photo_ref=f"{_PHOTO_BASE}/photo-1517841905240-472988babdf9?w=200&h=200&fit=crop&crop=face",
        bio="Yoga instructor and foodie",
    ),
    Candidate(
        id="5", name="Taylor", age=27, gender=Gender.MAN,
        photo_ref=f"{_PHOTO_BASE}/photo-1500648767791-00dcc994a43e?w=200&h=200&fit=crop&crop=face",
        bio="Tech enthusiast",
    ),
    Candidate(
        id="6", name="Riley", age=24, gender=Gender.WOMAN,
        photo_ref=f"{_PHOTO_BASE}/photo-1438761681033-6461ffad8d80?w=200&h=200&fit=crop&crop=face",
        bio="Photography and nature lover",
    ),
)


def find_candidate(candidate_id: str, pool=CANDIDATE_POOL) -> Candidate | None:
    for candidate in pool:
        if candidate.id == candidate_id:
            return candidate
    return None


def generate_couples(pool=CANDIDATE_POOL, rng: random.Random | None = None) -> list[Couple]:
    """Every opposite-gender pair in the pool, in pool order unless *rng* is
    given, in which case the list is shuffled with it."""
    couples: list[Couple] = []
    for i, first in enumerate(pool):
        for second in pool[i + 1:]:
            if first.gender != second.gender:
                couples.append(Couple(
                    pair_id=pair_id(first.id, second.id),
                    first=first,
                    second=second,
                ))
    if rng is not None:
        rng.shuffle(couples)
    return couples
