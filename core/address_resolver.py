# core/address_resolver.py
"""Public address lookup with cache fallback"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from core.errors import RequestAborted
from core.geo_resolver import GeoResolver
from core.identity_cache import FAILED_ADDRESS, UNKNOWN_ADDRESS, IdentityCache, Slot

logger = logging.getLogger(__name__)

IP_SERVICE_URL = "https://api.ipify.org?format=json"
IP_FETCH_TIMEOUT = 3.0


@dataclass(frozen=True)
class AddressResult:
    address: str
    country: Optional[str]
    succeeded: bool
    from_cache: bool = False


class AddressResolver:
    """
    Resolves the externally visible address of a slot.

    One attempt per call, no retries and no coalescing of concurrent calls:
    duplicate requests are avoided only because the orchestrator shows a
    loading state before it asks.
    """

    def __init__(self, cache: IdentityCache, geo_resolver: GeoResolver, registry,
                 client_factory: Callable[[Slot], httpx.AsyncClient],
                 active_slot: Callable[[], Slot] = lambda: Slot.BEFORE,
                 service_url: str = IP_SERVICE_URL,
                 timeout: float = IP_FETCH_TIMEOUT):
        self.cache = cache
        self.geo_resolver = geo_resolver
        self.registry = registry
        self.client_factory = client_factory
        self.active_slot = active_slot
        self.service_url = service_url
        self.timeout = timeout
        # (slot, address, country) -> None, set by the orchestrator
        self.on_country: Optional[Callable[[Slot, str, str], None]] = None

    async def resolve(self, slot: Optional[Slot] = None, use_cache: bool = True) -> AddressResult:
        slot = slot or self.active_slot()

        cached = self.cache.get(slot)
        if use_cache and cached.address and cached.fresh:
            return AddressResult(cached.address, cached.country, succeeded=True, from_cache=True)

        try:
            address = await self.registry.fetch(self._request(slot), self.timeout)
        except (RequestAborted, httpx.HTTPError, ValueError) as e:
            logger.warning(f"⚠️ Address lookup ({slot.value}) failed: {e!r}")
            return self._fallback(slot, FAILED_ADDRESS)

        if not address:
            logger.warning(f"⚠️ Address service returned no address ({slot.value})")
            return self._fallback(slot, UNKNOWN_ADDRESS)

        self.cache.put_address(slot, address)
        self.registry.spawn(self._locate(slot, address), name=f"geolocate-{slot.value}")
        logger.info(f"🌍 {slot.value} address: {address}")
        return AddressResult(address, None, succeeded=True)

    def _fallback(self, slot: Slot, sentinel: str) -> AddressResult:
        cached = self.cache.get(slot)
        if cached.address:
            return AddressResult(cached.address, cached.country, succeeded=True, from_cache=True)
        return AddressResult(sentinel, None, succeeded=False)

    async def _request(self, slot: Slot) -> Optional[str]:
        async with self.client_factory(slot) as client:
            response = await client.get(self.service_url)
            response.raise_for_status()
            data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected address response: {data!r}")
        return data.get("ip") or None

    async def _locate(self, slot: Slot, address: str):
        country = await self.geo_resolver.resolve(address, slot)
        if country and self.on_country:
            self.on_country(slot, address, country)
