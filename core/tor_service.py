# core/tor_service.py
import asyncio
import concurrent.futures
import logging
import threading
import time
from typing import Awaitable, Optional

from core.address_resolver import IP_SERVICE_URL, AddressResolver
from core.config_manager import ConfigManager, get_app_data_dir, get_config
from core.control_server import ControlServer
from core.control_service import ControlService, LocalControlChannel
from core.egress import EgressSettings
from core.errors import ChannelError, RequestAborted
from core.geo_resolver import GEO_SERVICE_URL, GeoResolver
from core.identity_cache import IdentityCache, Slot
from core.identity_view import IdentityView
from core.messages import (
    ControlRequest, DisableRequest, EnableRequest, StatusRequest, StatusResult, ToggleResult,
)
from core.network_policy import NetworkPolicy, SocksProxyPolicy
from core.refresh_orchestrator import RefreshOrchestrator
from core.storage import JsonFileStore
from core.task_registry import TaskRegistry
from core.toggle_machine import ToggleState, ToggleStateMachine
from utils.port_utils import check_port_availability

logger = logging.getLogger(__name__)


class TorSwitchService:
    """
    Owns the identity subsystem and the event loop it runs on.

    The Qt GUI lives on the main thread, so the core gets its own asyncio
    loop in a daemon thread; the UI talks to it only through submit().
    """

    def __init__(self, view: IdentityView, config: ConfigManager = None, store=None,
                 client_factory=None, policy: NetworkPolicy = None):
        self.config = config or get_config()
        self.view = view
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.thread: Optional[threading.Thread] = None
        self.is_running = False

        identity = self.config.get_identity_config()

        self.registry = TaskRegistry()
        self.store = store or JsonFileStore(get_app_data_dir() / 'state.json')
        self.egress = EgressSettings()
        client_factory = client_factory or self.egress.client_for

        self.cache = IdentityCache(self.store, self.registry,
                                   duration=identity.get('cache_duration', 30.0))
        self.policy = policy or SocksProxyPolicy(
            self.egress, probe_timeout=self.config.get_proxy_config().get('probe_timeout', 2.0))
        self.control_service = ControlService(self.policy, self.store, self.registry)
        self.channel = LocalControlChannel(self.control_service)

        self.machine = ToggleStateMachine(
            self.channel, self.cache, self.registry, view,
            debounce=identity.get('toggle_debounce', 0.5),
            settle_delay=identity.get('settle_delay', 0.05),
        )
        self.geo_resolver = GeoResolver(
            self.cache, self.registry, client_factory,
            service_url=identity.get('geo_service_url', GEO_SERVICE_URL),
            timeout=identity.get('country_fetch_timeout', 2.0),
        )
        self.address_resolver = AddressResolver(
            self.cache, self.geo_resolver, self.registry, client_factory,
            active_slot=self.machine.active_slot,
            service_url=identity.get('ip_service_url', IP_SERVICE_URL),
            timeout=identity.get('ip_fetch_timeout', 3.0),
        )
        self.orchestrator = RefreshOrchestrator(
            self.cache, self.address_resolver, self.geo_resolver, self.registry, view,
            is_proxied=lambda: self.machine.is_proxied,
            settle_delay=identity.get('settle_delay', 0.05),
        )
        self.machine.orchestrator = self.orchestrator

        self.control_server: Optional[ControlServer] = None
        if self.config.get('control.enabled', True):
            self.control_server = ControlServer(self.handle_remote,
                                                port=self.config.get('control.port', 61090))

    def start(self) -> bool:
        """Запускает event loop в отдельном потоке"""
        if self.is_running:
            logger.warning("⚠️ Сервис уже запущен")
            return False

        self.thread = threading.Thread(target=self._run_loop, name="torswitch-core", daemon=True)
        self.thread.start()

        # Ждём запуска (максимум 5 секунд)
        for _ in range(50):
            if self.is_running:
                break
            time.sleep(0.1)

        if not self.is_running:
            logger.error("❌ Event loop не запустился за отведенное время")
            return False

        self.submit(self.initialize()).add_done_callback(self._on_initialized)
        return True

    def _on_initialized(self, future: concurrent.futures.Future):
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(f"❌ Initialization failed: {exc!r}")

    def _run_loop(self):
        try:
            self.loop = asyncio.new_event_loop()
            asyncio.set_event_loop(self.loop)
            self.loop.call_soon(self._mark_running)
            self.loop.run_forever()
        except Exception as e:
            logger.error(f"❌ Ошибка в event loop: {e}")
        finally:
            self.is_running = False
            if self.loop:
                self.loop.close()

    def _mark_running(self):
        self.is_running = True

    def submit(self, coro: Awaitable) -> concurrent.futures.Future:
        """Schedules coro on the core loop from any thread"""
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    async def initialize(self) -> Optional[StatusResult]:
        """Restores cache and proxy state, then fills both identity slots"""
        _, status = await asyncio.gather(self.cache.load(), self._fetch_status())

        if status is not None:
            self.view.show_proxy_endpoint(status.tor_host, status.tor_port)
            if status.tor_enabled:
                # настройка прокси живёт только в памяти процесса, применяем заново
                result = await self.control_service.enable(status.tor_host, status.tor_port)
                if not result.ok:
                    self.view.show_status(f"Failed: {result.error or 'Unknown error'}", "error")
                    status = StatusResult(False, status.tor_host, status.tor_port)

        self.machine.restore(status)
        await self._start_control_server()

        self.registry.spawn(self.orchestrator.refresh(Slot.BEFORE), name="initial-before")
        self.registry.spawn(self.orchestrator.refresh(Slot.AFTER), name="initial-after")
        return status

    async def _fetch_status(self) -> Optional[StatusResult]:
        try:
            return await self.channel.request(StatusRequest())
        except ChannelError as e:
            logger.error(f"❌ Failed to load proxy status: {e}")
            return None

    async def _start_control_server(self):
        if self.control_server is None:
            return
        port_available, port_message = check_port_availability(self.control_server.port)
        if not port_available:
            logger.warning(f"⚠️ Control endpoint disabled: {port_message}")
            self.control_server = None
            return
        await self.control_server.start()

    def toggle(self, host, port) -> concurrent.futures.Future:
        return self.submit(self._tracked(self.machine.toggle(host, port), "toggle"))

    def refresh(self, slot: Slot, force_refresh: bool = False) -> concurrent.futures.Future:
        return self.submit(self._tracked(self.orchestrator.refresh(slot, force_refresh),
                                         f"refresh-{slot.value}"))

    async def _tracked(self, coro: Awaitable, name: str):
        """Runs coro as a registry task so shutdown() can cancel it"""
        task = self.registry.spawn(coro, name=name)
        if task is None:
            raise RequestAborted("Service is shutting down")
        return await task

    def refresh_all(self):
        """Re-projects both slots; cached values are reused while fresh"""
        for slot in Slot:
            self.refresh(slot)

    async def handle_remote(self, request: ControlRequest):
        """
        Control endpoint handler.

        Enable/disable go through the state machine so the window, tray and
        identity slots follow changes made by a second launch.
        """
        if isinstance(request, StatusRequest):
            return await self.control_service.status()

        if isinstance(request, EnableRequest):
            await self.machine.request_enable(request.host, request.port)
            if self.machine.state is ToggleState.ENABLED:
                return ToggleResult(True)
            return ToggleResult(False, self.machine.last_error or "Proxy was not enabled")

        if isinstance(request, DisableRequest):
            await self.machine.request_disable()
            if self.machine.state is ToggleState.DISABLED:
                return ToggleResult(True)
            return ToggleResult(False, self.machine.last_error or "Proxy was not disabled")

        return await self.control_service.handle(request)

    async def shutdown(self):
        """Cancels outstanding lookups and timers, closes the control endpoint"""
        self.registry.cancel_all()
        if self.control_server:
            await self.control_server.stop()

    def stop(self):
        """Остановка сервиса"""
        if not self.is_running:
            return

        logger.info("🛑 Stopping core service...")
        try:
            self.submit(self.shutdown()).result(timeout=5)
        except (concurrent.futures.TimeoutError, RuntimeError) as e:
            logger.error(f"❌ Error during shutdown: {e}")

        self.loop.call_soon_threadsafe(self.loop.stop)
        if self.thread and self.thread.is_alive():
            self.thread.join(timeout=5)
        logger.info("✅ Core service stopped")

