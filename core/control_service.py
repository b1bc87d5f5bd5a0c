# core/control_service.py
"""
Control side of the application: executes enable/disable/status messages
against the network policy and remembers the proxy state.
"""

import logging
from abc import ABC, abstractmethod
from typing import Union

from core.errors import ChannelError, MessageError, StorageError
from core.messages import (
    ControlRequest, DisableRequest, EnableRequest, StatusRequest, StatusResult, ToggleResult,
)
from core.network_policy import NetworkPolicy
from utils.port_utils import DEFAULT_HOST, DEFAULT_PORT, sanitize_host, sanitize_port

logger = logging.getLogger(__name__)


class ControlService:
    def __init__(self, policy: NetworkPolicy, store, registry):
        self.policy = policy
        self.store = store
        self.registry = registry

    async def handle(self, request: ControlRequest) -> Union[ToggleResult, StatusResult]:
        if isinstance(request, EnableRequest):
            return await self.enable(request.host, request.port)
        if isinstance(request, DisableRequest):
            return await self.disable()
        if isinstance(request, StatusRequest):
            return await self.status()
        raise MessageError(f"Unsupported control request: {request!r}")

    async def enable(self, host, port) -> ToggleResult:
        host = sanitize_host(host)
        port = sanitize_port(port)
        logger.info(f"🧅 Enabling SOCKS5 proxy {host}:{port}")

        result = await self.policy.enable(host, port)
        if result.ok:
            # ответ не ждёт записи на диск
            self._remember(torEnabled=True, torHost=host, torPort=port)
        return result

    async def disable(self) -> ToggleResult:
        logger.info("🛑 Disabling proxy")
        result = await self.policy.disable()
        if result.ok:
            self._remember(torEnabled=False)
        return result

    async def status(self) -> StatusResult:
        return StatusResult(
            tor_enabled=bool(await self.store.get('torEnabled', False)),
            tor_host=await self.store.get('torHost', DEFAULT_HOST),
            tor_port=await self.store.get('torPort', DEFAULT_PORT),
        )

    def _remember(self, **values):
        self.registry.spawn(self._save(values), name="proxy-state-persist")

    async def _save(self, values):
        try:
            for key, value in values.items():
                await self.store.set(key, value)
        except StorageError as e:
            logger.debug(f"Proxy state not persisted: {e}")


class ControlChannel(ABC):
    """Request/response transport between the UI side and ControlService"""

    @abstractmethod
    async def request(self, message: ControlRequest) -> Union[ToggleResult, StatusResult]:
        pass


class LocalControlChannel(ControlChannel):
    """Delivers messages to a ControlService in the same process"""

    def __init__(self, service: ControlService):
        self.service = service

    async def request(self, message: ControlRequest) -> Union[ToggleResult, StatusResult]:
        try:
            return await self.service.handle(message)
        except (MessageError, OSError) as e:
            raise ChannelError(str(e)) from e
