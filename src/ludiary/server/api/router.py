"""Main API router that includes all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from ludiary.server.api import friends, groups, health, notifications, records, users

router = APIRouter()

# Include all API routers
router.include_router(health.router)
router.include_router(users.router)
router.include_router(records.router)
router.include_router(friends.router)
router.include_router(groups.router)
router.include_router(notifications.router)
