# core/egress.py
"""HTTP clients for identity lookups, one per egress path"""

import logging
from typing import Optional

import httpx

from core.identity_cache import Slot

logger = logging.getLogger(__name__)

USER_AGENT = "TorSwitchClient/1.0"


class EgressSettings:
    """
    Holds the currently applied proxy.

    The "before" slot always measures the direct path; the "after" slot goes
    through the SOCKS5 proxy while one is applied.
    """

    def __init__(self):
        self.proxy_url: Optional[str] = None

    def apply_proxy(self, host: str, port: int):
        self.proxy_url = f"socks5://{host}:{port}"
        logger.info(f"🧅 Egress routed through {self.proxy_url}")

    def clear_proxy(self):
        self.proxy_url = None
        logger.info("🌐 Egress switched to direct connection")

    @property
    def proxied(self) -> bool:
        return self.proxy_url is not None

    def client_for(self, slot: Slot) -> httpx.AsyncClient:
        proxy = self.proxy_url if slot is Slot.AFTER else None
        return httpx.AsyncClient(
            proxy=proxy,
            headers={"User-Agent": USER_AGENT, "Cache-Control": "no-cache"},
            follow_redirects=False,
        )
