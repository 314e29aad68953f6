"""Lazily-populated business profile cache."""

from __future__ import annotations

import asyncio
import logging

from orbit.core.engines import ProfileStore
from orbit.core.models import BusinessProfile

logger = logging.getLogger(__name__)


class BusinessProfileCache:
    """Memoizes profiles per business id for the lifetime of the process.

    Concurrent misses for the same id share a single load.
    """

    def __init__(self, store: ProfileStore) -> None:
        self._store = store
        self._profiles: dict[str, BusinessProfile] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def get(self, business_id: str) -> BusinessProfile:
        profile = self._profiles.get(business_id)
        if profile is not None:
            return profile

        lock = self._locks.setdefault(business_id, asyncio.Lock())
        async with lock:
            profile = self._profiles.get(business_id)
            if profile is None:
                profile = await self._store.load_profile(business_id)
                self._profiles[business_id] = profile
                logger.info("profile_loaded business_id=%s", business_id)
        return profile

    def put(self, profile: BusinessProfile) -> None:
        self._profiles[profile.id] = profile

    def evict(self, business_id: str) -> bool:
        self._locks.pop(business_id, None)
        return self._profiles.pop(business_id, None) is not None

    def cached_ids(self) -> list[str]:
        return list(self._profiles)

    def __contains__(self, business_id: object) -> bool:
        return business_id in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)
