# core/toggle_machine.py
"""Enable/disable flow for the proxied path"""

import logging
import time
from enum import Enum
from typing import Callable, Optional

from core.control_service import ControlChannel
from core.errors import ChannelError
from core.identity_cache import IdentityCache, Slot
from core.identity_view import IdentityView
from core.messages import DisableRequest, EnableRequest, StatusResult
from core.refresh_orchestrator import PROXY_SETTLE_TIME, RefreshOrchestrator
from utils.port_utils import validate_host_input, validate_port_input

logger = logging.getLogger(__name__)

TOGGLE_DEBOUNCE = 0.5


class ToggleState(str, Enum):
    DISABLED = "disabled"
    ENABLING = "enabling"
    ENABLED = "enabled"
    DISABLING = "disabling"

    @property
    def transitional(self) -> bool:
        return self in (ToggleState.ENABLING, ToggleState.DISABLING)


class ToggleStateMachine:
    """
    Single source of truth for whether the proxied path is active.

    Transitions:
        DISABLED --enable--> ENABLING --ok--> ENABLED
        ENABLED --disable--> DISABLING --ok--> DISABLED
    A failed external call reverts to the previous stable state.
    """

    def __init__(self, channel: ControlChannel, cache: IdentityCache, registry, view: IdentityView,
                 debounce: float = TOGGLE_DEBOUNCE, settle_delay: float = PROXY_SETTLE_TIME,
                 clock: Callable[[], float] = time.monotonic):
        self.channel = channel
        self.cache = cache
        self.registry = registry
        self.view = view
        self.debounce = debounce
        self.settle_delay = settle_delay
        self.clock = clock
        self.orchestrator: Optional[RefreshOrchestrator] = None

        self._state = ToggleState.DISABLED
        self._last_request: Optional[float] = None
        self.last_error: Optional[str] = None

    @property
    def state(self) -> ToggleState:
        return self._state

    @property
    def is_proxied(self) -> bool:
        return self._state is ToggleState.ENABLED

    def active_slot(self) -> Slot:
        if self._state in (ToggleState.ENABLED, ToggleState.DISABLING):
            return Slot.AFTER
        return Slot.BEFORE

    def _set_state(self, state: ToggleState):
        if state is not self._state:
            logger.debug(f"Toggle state {self._state.value} -> {state.value}")
        self._state = state
        self.view.show_toggle_state(state)

    def restore(self, status: Optional[StatusResult]):
        """Adopts the persisted proxy state at start-up"""
        if status is None:
            self.view.show_status("Error loading status", "error")
            return
        self._set_state(ToggleState.ENABLED if status.tor_enabled else ToggleState.DISABLED)

    def _accept_request(self) -> bool:
        now = self.clock()
        if self._state.transitional:
            logger.debug("Toggle request ignored: transition in progress")
            self.last_error = "Transition in progress"
            return False
        if self._last_request is not None and now - self._last_request < self.debounce:
            logger.debug("Toggle request ignored: debounce window")
            self.last_error = "Too many requests"
            return False
        self._last_request = now
        self.last_error = None
        return True

    async def toggle(self, host, port) -> bool:
        """Toggle button: enable when disabled, disable when enabled"""
        if self._state is ToggleState.ENABLED:
            return await self.request_disable()
        return await self.request_enable(host, port)

    async def request_enable(self, host, port) -> bool:
        """Returns True when the proxy ended up enabled by this request"""
        if not self._accept_request() or self._state is not ToggleState.DISABLED:
            return False

        host_ok, host_value = validate_host_input(host)
        if not host_ok:
            self.last_error = host_value
            self.view.show_status(f"Error: {host_value}", "error")
            return False
        port_ok, port_value = validate_port_input(port)
        if not port_ok:
            self.last_error = port_value
            self.view.show_status(f"Error: {port_value}", "error")
            return False

        self._set_state(ToggleState.ENABLING)
        self.view.show_status("Enabling Tor proxy...", "info")

        if not await self._send(EnableRequest(host=host_value, port=port_value), ToggleState.DISABLED):
            return False

        self._set_state(ToggleState.ENABLED)
        self.view.show_status(f"✓ Tor proxy enabled ({host_value}:{port_value}).", "success")
        self.registry.spawn(self._refresh_after_settle(), name="refresh-after")
        return True

    async def request_disable(self) -> bool:
        if not self._accept_request() or self._state is not ToggleState.ENABLED:
            return False

        self._set_state(ToggleState.DISABLING)
        self.view.show_status("Disabling proxy...", "info")

        if not await self._send(DisableRequest(), ToggleState.ENABLED):
            return False

        self._set_state(ToggleState.DISABLED)
        self.view.show_status("Proxy disabled. Back to direct connection.", "success")
        self.cache.clear_slot(Slot.AFTER)
        if self.orchestrator:
            self.orchestrator.clear(Slot.AFTER)
            self.registry.spawn(self.orchestrator.refresh(Slot.BEFORE, force_refresh=True),
                                name="refresh-before")
        return True

    async def _send(self, message, revert_to: ToggleState) -> bool:
        try:
            result = await self.channel.request(message)
        except ChannelError as e:
            logger.error(f"❌ Control channel error: {e}")
            self.last_error = str(e)
            self._set_state(revert_to)
            self.view.show_status(f"Error: {e}", "error")
            return False

        if not result.ok:
            logger.error(f"❌ Toggle failed: {result.error}")
            self.last_error = result.error or "Unknown error"
            self._set_state(revert_to)
            self.view.show_status(f"Failed: {result.error or 'Unknown error'}", "error")
            return False
        return True

    async def _refresh_after_settle(self):
        await self.registry.sleep(self.settle_delay)
        if self.orchestrator:
            await self.orchestrator.refresh(Slot.AFTER)
