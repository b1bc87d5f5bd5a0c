# core/refresh_orchestrator.py
"""
Decides per slot whether to show cached data, a loading state or a fresh
resolve-then-geolocate sequence.
"""

import logging
from typing import Callable, Dict

from core.address_resolver import AddressResolver
from core.errors import RequestAborted
from core.geo_resolver import GeoResolver
from core.identity_cache import IdentityCache, Slot, is_valid_address
from core.identity_view import (
    EMPTY_TEXT, LOADING_TEXT, DisplayState, IdentityView, displayed_address, format_identity,
)

logger = logging.getLogger(__name__)

PROXY_SETTLE_TIME = 0.05


class RefreshOrchestrator:
    def __init__(self, cache: IdentityCache, address_resolver: AddressResolver,
                 geo_resolver: GeoResolver, registry, view: IdentityView,
                 is_proxied: Callable[[], bool], settle_delay: float = PROXY_SETTLE_TIME):
        self.cache = cache
        self.address_resolver = address_resolver
        self.geo_resolver = geo_resolver
        self.registry = registry
        self.view = view
        self.is_proxied = is_proxied
        self.settle_delay = settle_delay

        # Последнее, что было показано в каждом слоте
        self._displayed: Dict[Slot, str] = {slot: EMPTY_TEXT for slot in Slot}

        self.address_resolver.on_country = self.apply_country

    def displayed(self, slot: Slot) -> str:
        return self._displayed[slot]

    def project(self, slot: Slot, text: str, state: DisplayState):
        self._displayed[slot] = text
        self.view.show_identity(slot, text, state)

    def clear(self, slot: Slot):
        self.project(slot, EMPTY_TEXT, DisplayState.EMPTY)

    async def refresh(self, slot: Slot, force_refresh: bool = False):
        if slot is Slot.AFTER and not self.is_proxied():
            self.clear(slot)
            return

        cached = self.cache.get(slot)
        if not force_refresh and cached.address and cached.fresh:
            self.project(slot, format_identity(cached.address, cached.country), DisplayState.SUCCESS)
            return

        self.project(slot, LOADING_TEXT, DisplayState.LOADING)
        if slot is Slot.AFTER:
            # give the freshly applied proxy a moment, even if the cache turns out usable
            try:
                await self.registry.sleep(self.settle_delay)
            except RequestAborted:
                logger.debug(f"Refresh of {slot.value} aborted during settle delay")
                return

        result = await self.address_resolver.resolve(slot, use_cache=True)
        self.project(
            slot,
            format_identity(result.address, result.country),
            DisplayState.SUCCESS if result.succeeded else DisplayState.ERROR,
        )

        if result.succeeded and is_valid_address(result.address) and not result.country:
            self.registry.spawn(self._complete_country(slot, result.address),
                                name=f"country-{slot.value}")

    async def _complete_country(self, slot: Slot, address: str):
        country = await self.geo_resolver.resolve(address, slot)
        if country:
            self.apply_country(slot, address, country)

    def apply_country(self, slot: Slot, address: str, country: str):
        """Appends country to the display unless the slot has moved on to another address"""
        if displayed_address(self._displayed[slot]) != address:
            logger.debug(f"Dropping late country for {address}, {slot.value} now shows {self._displayed[slot]!r}")
            return
        self.project(slot, format_identity(address, country), DisplayState.SUCCESS)
