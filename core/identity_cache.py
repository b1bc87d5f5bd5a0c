# core/identity_cache.py
"""
Two-slot cache of the externally visible identity (address + country).

The whole record shares one timestamp: writing any slot makes both slots
fresh again, and clearing a slot leaves the timestamp alone.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from core.errors import StorageError

logger = logging.getLogger(__name__)

CACHE_DURATION = 30.0
STORAGE_KEY = "ipCache"

UNKNOWN_ADDRESS = "Unknown"
FAILED_ADDRESS = "Failed to fetch"
SENTINEL_ADDRESSES = frozenset({UNKNOWN_ADDRESS, FAILED_ADDRESS})


class Slot(str, Enum):
    BEFORE = "before"
    AFTER = "after"

    @property
    def country_key(self) -> str:
        return f"{self.value}Country"


def is_valid_address(address: Optional[str]) -> bool:
    """Sentinels are display states, not identities"""
    return bool(address) and address not in SENTINEL_ADDRESSES


@dataclass(frozen=True)
class CachedIdentity:
    address: Optional[str]
    country: Optional[str]
    fresh: bool


def _empty_record() -> Dict[str, Any]:
    return {
        "before": None,
        "after": None,
        "beforeCountry": None,
        "afterCountry": None,
        "timestamp": 0,
    }


class IdentityCache:
    """In-memory identity record with write-through persistence"""

    def __init__(self, store, registry, duration: float = CACHE_DURATION,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            store: key-value store with async get/set (JsonFileStore)
            registry: TaskRegistry used for background persists
            duration: freshness window in seconds
            clock: wall clock returning seconds
        """
        self.store = store
        self.registry = registry
        self.duration = duration
        self.clock = clock
        self._record = _empty_record()

    async def load(self) -> bool:
        """Adopts the persisted record if it is still fresh"""
        stored = await self.store.get(STORAGE_KEY)
        if not isinstance(stored, dict):
            return False

        age = self.clock() - (stored.get("timestamp") or 0)
        if age >= self.duration:
            logger.debug(f"Persisted identity cache is stale ({age:.1f}s old)")
            return False

        record = _empty_record()
        record.update({k: stored.get(k) for k in record})
        self._record = record
        logger.info(f"📦 Identity cache restored ({age:.1f}s old)")
        return True

    def is_fresh(self) -> bool:
        return self.clock() - (self._record["timestamp"] or 0) < self.duration

    def get(self, slot: Slot) -> CachedIdentity:
        return CachedIdentity(
            address=self._record[slot.value],
            country=self._record[slot.country_key],
            fresh=self.is_fresh(),
        )

    def put_address(self, slot: Slot, address: str):
        if not is_valid_address(address):
            raise ValueError(f"Refusing to cache sentinel address {address!r}")
        self._record[slot.value] = address
        self._touch()

    def put_country(self, slot: Slot, country: str):
        self._record[slot.country_key] = country
        self._touch()

    def clear_slot(self, slot: Slot):
        # timestamp stays: freshness belongs to the record, not the slot
        self._record[slot.value] = None
        self._record[slot.country_key] = None
        self._schedule_persist()

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._record)

    def _touch(self):
        self._record["timestamp"] = self.clock()
        self._schedule_persist()

    def _schedule_persist(self):
        self.registry.spawn(self._persist(self.snapshot()), name="identity-cache-persist")

    async def _persist(self, record: Dict[str, Any]):
        try:
            await self.store.set(STORAGE_KEY, record)
        except StorageError as e:
            logger.debug(f"Identity cache not persisted: {e}")
