"""
Duet — Versioned documents over the key-value store.

Every value is written inside an envelope::

    {"schema_version": 1, "kind": "ratings", "data": [...]}

A value without an envelope predates versioning and is read as version 0.
Reads upgrade older documents one version at a time through the registered
migrations and write the upgraded document back, so each key is migrated at
most once.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Sequence, TypeVar

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from duet.exceptions import StorageError, ValidationError
from duet.utils.keys import canonical_pair_id, thread_key
from duet.utils.storage import KeyValueStore

logger = structlog.get_logger("duet.document_store")

ModelT = TypeVar("ModelT", bound=BaseModel)

# ──────────────────────────────────────────────────────────────────────────────
# Keys
# ──────────────────────────────────────────────────────────────────────────────

KEY_PREFIX = "duet"

# Keys written before documents were versioned.  The global profile and
# ratings keys predate per-user storage.
LEGACY_PROFILE_KEY = "duetProfile"
LEGACY_RATINGS_KEY = "duetRatings"
LEGACY_CURRENT_USER_KEY = "duetCurrentUser"


def legacy_profile_key(user_id: str) -> str:
    return f"{LEGACY_PROFILE_KEY}_{user_id}"


def legacy_ratings_key(user_id: str) -> str:
    return f"{LEGACY_RATINGS_KEY}_{user_id}"


def legacy_thread_key(user_a: str, user_b: str) -> str:
    return "chat-" + "-".join(sorted((user_a, user_b)))


def current_user_key() -> str:
    return f"{KEY_PREFIX}:current_user"


def profile_key(user_id: str) -> str:
    return f"{KEY_PREFIX}:profile:{user_id}"


def ratings_key(user_id: str) -> str:
    return f"{KEY_PREFIX}:ratings:{user_id}"


def thread_storage_key(key: str) -> str:
    return f"{KEY_PREFIX}:chat:{key}"


# ──────────────────────────────────────────────────────────────────────────────
# Migrations
# ──────────────────────────────────────────────────────────────────────────────

def _ratings_v0_to_v1(data: Any) -> list[dict]:
    """``{coupleId, rating, timestamp}`` → ``{pair_id, verdict, timestamp}``.

    Numeric ratings from the old slider UI have no yes/no reading and are
    dropped.
    """
    upgraded: list[dict] = []
    for entry in data or []:
        verdict = entry.get("rating")
        if verdict not in ("yes", "no"):
            logger.warning("legacy_rating_dropped", couple_id=entry.get("coupleId"), rating=verdict)
            continue
        try:
            pid = canonical_pair_id(str(entry.get("coupleId", "")))
        except ValidationError:
            logger.warning("legacy_rating_dropped", couple_id=entry.get("coupleId"), rating=verdict)
            continue
        upgraded.append({
            "pair_id": pid,
            "verdict": verdict,
            "timestamp": int(entry.get("timestamp", 0)),
        })
    # Canonicalizing can make two legacy entries name the same pair; keep the
    # later one in its position.
    latest: dict[str, dict] = {}
    for entry in upgraded:
        latest.pop(entry["pair_id"], None)
        latest[entry["pair_id"]] = entry
    return list(latest.values())


_PREFERENCE_DISPLAY = {
    "Looking for a Man": "Man",
    "Looking for a Woman": "Woman",
}


def _profile_v0_to_v1(data: Any) -> dict:
    data = data or {}
    preference = data.get("preference") or None
    return {
        "name": data.get("name", ""),
        "gender": data.get("gender") or None,
        "preference": _PREFERENCE_DISPLAY.get(preference, preference),
        "photo_ref": data.get("photo", ""),
        "summary": data.get("summary", ""),
    }


def _thread_v0_to_v1(data: Any) -> list[dict]:
    return [
        {
            "id": str(m["id"]),
            "sender_id": m["senderId"],
            "receiver_id": m["receiverId"],
            "content": m["content"],
            "timestamp": int(m["timestamp"]),
            "read": bool(m.get("read", False)),
        }
        for m in data or []
    ]


def _current_user_v0_to_v1(data: Any) -> dict:
    data = data or {}
    return {
        "id": data["id"],
        "name": data.get("name", ""),
        "email": data.get("email", ""),
        "created_at": int(data.get("createdAt", 0)),
    }


# kind -> {from_version: upgrade to from_version + 1}
MIGRATIONS: dict[str, dict[int, Callable[[Any], Any]]] = {
    "current_user": {0: _current_user_v0_to_v1},
    "profile": {0: _profile_v0_to_v1},
    "ratings": {0: _ratings_v0_to_v1},
    "thread": {0: _thread_v0_to_v1},
}

SCHEMA_VERSIONS: dict[str, int] = {
    kind: max(steps) + 1 for kind, steps in MIGRATIONS.items()
}


def migrate(kind: str, version: int, data: Any) -> Any:
    """Upgrade *data* from *version* to the current version of *kind*."""
    target = SCHEMA_VERSIONS[kind]
    steps = MIGRATIONS[kind]
    while version < target:
        try:
            data = steps[version](data)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise StorageError(
                f"Cannot migrate {kind} document from version {version}: {exc}"
            ) from exc
        version += 1
    return data


class DocumentStore:
    """Reads and writes versioned documents on a ``KeyValueStore``."""

    def __init__(self, backend: KeyValueStore) -> None:
        self.backend = backend

    def _unwrap(self, key: str, kind: str, raw: Any) -> tuple[int, Any]:
        if isinstance(raw, dict) and "schema_version" in raw and "data" in raw:
            if raw.get("kind") != kind:
                raise StorageError(
                    f"Key {key!r} holds a {raw.get('kind')!r} document, expected {kind!r}",
                    key=key,
                )
            return int(raw["schema_version"]), raw["data"]
        return 0, raw

    async def read(self, key: str, kind: str, legacy_keys: Sequence[str] = ()) -> Any | None:
        """Return the current-version data under *key*, or ``None``.

        When *key* is absent, the first present key in *legacy_keys* is moved
        under *key* and read instead.
        """
        raw = await self.backend.get(key)
        if raw is None:
            for legacy_key in legacy_keys:
                if await self.adopt(legacy_key, key):
                    raw = await self.backend.get(key)
                    break
        if raw is None:
            return None

        version, data = self._unwrap(key, kind, raw)
        target = SCHEMA_VERSIONS[kind]
        if version > target:
            raise StorageError(
                f"Key {key!r} has schema version {version}, newer than supported {target}",
                key=key,
            )
        if version < target:
            try:
                data = migrate(kind, version, data)
            except StorageError as exc:
                exc.key = key
                raise
            await self.write(key, kind, data)
            logger.info("document_migrated", key=key, kind=kind, from_version=version, to_version=target)
        return data

    async def read_model(
        self,
        key: str,
        kind: str,
        model: type[ModelT],
        legacy_keys: Sequence[str] = (),
    ) -> ModelT | None:
        """Read a single-object document and validate it as *model*."""
        data = await self.read(key, kind, legacy_keys)
        if data is None:
            return None
        try:
            return model.model_validate(data)
        except PydanticValidationError as exc:
            logger.error("document_invalid", key=key, kind=kind, error=str(exc))
            raise StorageError(f"Key {key!r} holds an invalid {kind} document", key=key) from exc

    async def read_models(
        self,
        key: str,
        kind: str,
        model: type[ModelT],
        legacy_keys: Sequence[str] = (),
    ) -> list[ModelT] | None:
        """Read a list document and validate each entry as *model*."""
        data = await self.read(key, kind, legacy_keys)
        if data is None:
            return None
        if not isinstance(data, list):
            raise StorageError(f"Key {key!r} holds a {kind} document that is not a list", key=key)
        try:
            return [model.model_validate(entry) for entry in data]
        except PydanticValidationError as exc:
            logger.error("document_invalid", key=key, kind=kind, error=str(exc))
            raise StorageError(f"Key {key!r} holds an invalid {kind} document", key=key) from exc

    async def write(self, key: str, kind: str, data: Any) -> None:
        await self.backend.set(key, {
            "schema_version": SCHEMA_VERSIONS[kind],
            "kind": kind,
            "data": data,
        })

    async def delete(self, key: str) -> None:
        await self.backend.delete(key)

    async def adopt(self, legacy_key: str, target_key: str) -> bool:
        """Move the raw value at *legacy_key* to *target_key*.

        Nothing moves when the legacy key is absent or the target already
        holds a document; in the latter case the legacy value is left in
        place.
        """
        raw = await self.backend.get(legacy_key)
        if raw is None:
            return False
        if await self.backend.get(target_key) is not None:
            logger.warning("legacy_key_conflict", legacy_key=legacy_key, target_key=target_key)
            return False
        await self.backend.set(target_key, raw)
        await self.backend.delete(legacy_key)
        logger.info("legacy_key_adopted", legacy_key=legacy_key, target_key=target_key)
        return True

    async def adopt_legacy_keys(self, user_id: str, partner_ids: Iterable[str] = ()) -> list[str]:
        """Move pre-versioning documents of *user_id* under the current keys.

        Covers the per-user profile and ratings keys, the older global
        profile and ratings keys, and the conversation keys shared with each
        of *partner_ids*.  Per-user keys are adopted before global ones, so
        a global document only moves when the user has none of that kind.
        Returns the adopted legacy keys.
        """
        moves = [
            (legacy_profile_key(user_id), profile_key(user_id)),
            (LEGACY_PROFILE_KEY, profile_key(user_id)),
            (legacy_ratings_key(user_id), ratings_key(user_id)),
            (LEGACY_RATINGS_KEY, ratings_key(user_id)),
        ]
        for partner_id in partner_ids:
            if partner_id == user_id:
                continue
            moves.append((
                legacy_thread_key(user_id, partner_id),
                thread_storage_key(thread_key(user_id, partner_id)),
            ))

        adopted: list[str] = []
        for legacy_key, target_key in moves:
            if await self.adopt(legacy_key, target_key):
                adopted.append(legacy_key)
        if adopted:
            logger.info("legacy_keys_adopted", user_id=user_id, keys=adopted)
        return adopted

    async def close(self) -> None:
        await self.backend.close()
