"""
Duet — Profiles and the current-user record.

The profile form and account system are outside the core; this service only
loads and saves what they produce.  Logging out clears the current-user
record but keeps the user's profile, ratings and conversations.
"""

from __future__ import annotations

from typing import Iterable

import structlog

from duet.exceptions import ValidationError
from duet.schemas.profile import CurrentUser, Profile
from duet.services.document_store import (
    LEGACY_CURRENT_USER_KEY,
    DocumentStore,
    current_user_key,
    legacy_profile_key,
    profile_key,
)
from duet.session import now_ms

logger = structlog.get_logger("duet.profile_service")

_REQUIRED_FIELDS = ("name", "gender", "preference")


class ProfileService:

    def __init__(self, store: DocumentStore, partner_ids: Iterable[str] = ()) -> None:
        self.store = store
        # Conversation partners whose legacy threads are adopted on login.
        self.partner_ids = tuple(partner_ids)

    async def get_profile(self, user_id: str) -> Profile | None:
        return await self.store.read_model(
            profile_key(user_id), "profile", Profile, legacy_keys=(legacy_profile_key(user_id),)
        )

    async def save_profile(self, user_id: str, profile: Profile) -> Profile:
        """Save *profile*; name, gender and preference are all required."""
        missing = [
            field for field in _REQUIRED_FIELDS
            if not (profile.name.strip() if field == "name" else getattr(profile, field))
        ]
        if missing:
            raise ValidationError(f"Profile is missing required fields: {', '.join(missing)}")

        await self.store.write(profile_key(user_id), "profile", profile.model_dump(mode="json"))
        logger.info(
            "profile_saved",
            user_id=user_id,
            preference=profile.preference.value,
        )
        return profile

    # ── Current user ──────────────────────────────────────────────────────

    async def current_user(self) -> CurrentUser | None:
        return await self.store.read_model(
            current_user_key(), "current_user", CurrentUser, legacy_keys=(LEGACY_CURRENT_USER_KEY,)
        )

    async def login(self, user_id: str, name: str = "", email: str = "") -> CurrentUser:
        """Make *user_id* the current user and adopt any pre-versioning data."""
        user = CurrentUser(id=user_id, name=name, email=email, created_at=now_ms())
        await self.store.write(current_user_key(), "current_user", user.model_dump(mode="json"))
        await self.store.delete(LEGACY_CURRENT_USER_KEY)
        adopted = await self.store.adopt_legacy_keys(user_id, self.partner_ids)
        logger.info("session_started", user_id=user_id, adopted_legacy_keys=adopted)
        return user

    async def logout(self) -> None:
        await self.store.delete(current_user_key())
        await self.store.delete(LEGACY_CURRENT_USER_KEY)
        logger.info("session_ended")
