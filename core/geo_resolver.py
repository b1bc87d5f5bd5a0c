# core/geo_resolver.py
"""Country lookup for a public address (best effort, never raises)"""

import logging
from typing import Callable, Optional

import httpx

from core.errors import RequestAborted
from core.identity_cache import IdentityCache, Slot, is_valid_address

logger = logging.getLogger(__name__)

GEO_SERVICE_URL = "http://ip-api.com/json/{address}?fields=country"
COUNTRY_FETCH_TIMEOUT = 2.0


class GeoResolver:
    def __init__(self, cache: IdentityCache, registry,
                 client_factory: Callable[[Slot], httpx.AsyncClient],
                 service_url: str = GEO_SERVICE_URL,
                 timeout: float = COUNTRY_FETCH_TIMEOUT):
        self.cache = cache
        self.registry = registry
        self.client_factory = client_factory
        self.service_url = service_url
        self.timeout = timeout

    async def resolve(self, address: Optional[str], slot: Slot) -> Optional[str]:
        """
        Returns the country of address, or None when unknown.

        A fresh cached country is reused only when it was recorded for this
        exact address in this slot. Empty answers are not remembered, so the
        next call asks the service again.
        """
        if not is_valid_address(address):
            return None

        cached = self.cache.get(slot)
        if cached.address == address and cached.country and cached.fresh:
            return cached.country

        try:
            country = await self.registry.fetch(self._request(address, slot), self.timeout)
        except (RequestAborted, httpx.HTTPError, ValueError) as e:
            logger.debug(f"Country lookup for {address} failed: {e!r}")
            return self.cache.get(slot).country

        if not country:
            logger.debug(f"No country data for {address}")
            return None

        self.cache.put_country(slot, country)
        return country

    async def _request(self, address: str, slot: Slot) -> Optional[str]:
        url = self.service_url.format(address=address)
        async with self.client_factory(slot) as client:
            response = await client.get(url)
            response.raise_for_status()
            data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected geolocation response: {data!r}")
        return data.get("country") or None
