# core/network_policy.py
"""Switching the egress path between direct and SOCKS5"""

import logging
from abc import ABC, abstractmethod

from core.egress import EgressSettings
from core.messages import ToggleResult
from utils.port_utils import get_process_using_port, probe_port

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 2.0


class NetworkPolicy(ABC):
    """Applies or removes the proxied egress path"""

    @abstractmethod
    async def enable(self, host: str, port: int) -> ToggleResult:
        pass

    @abstractmethod
    async def disable(self) -> ToggleResult:
        pass


class SocksProxyPolicy(NetworkPolicy):
    """
    Routes the "after" lookups through a SOCKS5 proxy (Tor Browser listens on
    127.0.0.1:9150, a system tor daemon on 9050).

    The proxy is applied only when its port accepts TCP connections.
    """

    def __init__(self, egress: EgressSettings, probe_timeout: float = PROBE_TIMEOUT):
        self.egress = egress
        self.probe_timeout = probe_timeout

    async def enable(self, host: str, port: int) -> ToggleResult:
        reachable, message = await probe_port(host, port, self.probe_timeout)
        if not reachable:
            logger.error(f"❌ SOCKS proxy unavailable: {message}")
            return ToggleResult(ok=False, error=message)

        if host in ('127.0.0.1', 'localhost'):
            process_info = get_process_using_port(port)
            if process_info:
                logger.info(f"📌 SOCKS port {port} served by {process_info['name']} (PID: {process_info['pid']})")

        self.egress.apply_proxy(host, port)
        return ToggleResult(ok=True)

    async def disable(self) -> ToggleResult:
        self.egress.clear_proxy()
        return ToggleResult(ok=True)
