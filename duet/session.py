"""
Duet — Session context.

Everything an operation needs to know about "who is acting" and "where
randomness and time come from" travels in a ``SessionContext``.  Tests build
one with a seeded ``random.Random`` and a fake clock; the HTTP layer builds
one per request.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from typing import Callable

from duet.services.document_store import DocumentStore


def now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass
class SessionContext:
    user_id: str
    store: DocumentStore
    rng: random.Random = field(default_factory=random.Random)
    clock: Callable[[], int] = now_ms
