"""
Duet — Canonical identifiers.

A rated couple and a conversation are both unordered pairs, so their ids are
built by sorting the two member ids before joining them.  Ids that contain
the separator would make the joined form ambiguous and are rejected.
"""

from __future__ import annotations

from duet.exceptions import ValidationError

PAIR_SEPARATOR = "-"
THREAD_SEPARATOR = "|"


def _join_sorted(a: str, b: str, separator: str, what: str) -> str:
    for value in (a, b):
        if not value:
            raise ValidationError(f"{what} member id must not be empty")
        if separator in value:
            raise ValidationError(
                f"{what} member id {value!r} must not contain {separator!r}"
            )
    if a == b:
        raise ValidationError(f"{what} needs two distinct ids, got {a!r} twice")
    return separator.join(sorted((a, b)))


def _split(key: str, separator: str, what: str) -> tuple[str, str]:
    parts = key.split(separator)
    if len(parts) != 2 or not all(parts):
        raise ValidationError(f"Malformed {what} {key!r}")
    return parts[0], parts[1]


def pair_id(a: str, b: str) -> str:
    """``pair_id("2", "1") == pair_id("1", "2") == "1-2"``."""
    return _join_sorted(a, b, PAIR_SEPARATOR, "Pair")


def split_pair_id(value: str) -> tuple[str, str]:
    return _split(value, PAIR_SEPARATOR, "pair id")


def canonical_pair_id(value: str) -> str:
    return pair_id(*split_pair_id(value))


def thread_key(user_a: str, user_b: str) -> str:
    return _join_sorted(user_a, user_b, THREAD_SEPARATOR, "Thread")


def split_thread_key(key: str) -> tuple[str, str]:
    return _split(key, THREAD_SEPARATOR, "thread key")
