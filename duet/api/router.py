"""
Duet — Main API Router

Aggregates all sub-routers under a single prefix so that ``duet.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from duet.api import conversations, matching, profile

router = APIRouter()

router.include_router(profile.router, tags=["Session & Profile"])
router.include_router(matching.router, tags=["Ratings & Matches"])
router.include_router(conversations.router, prefix="/conversations", tags=["Conversations"])
