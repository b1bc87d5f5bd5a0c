"""Shared fixtures for TorSwitch core tests."""

import asyncio

import httpx
import pytest
import pytest_asyncio

from core.config_manager import ConfigManager
from core.identity_cache import Slot
from core.messages import ToggleResult
from core.network_policy import NetworkPolicy
from core.storage import JsonFileStore
from core.task_registry import TaskRegistry


class RecordingView:
    """IdentityView that keeps everything the core projected"""

    def __init__(self):
        self.identities = []
        self.statuses = []
        self.toggle_states = []
        self.endpoints = []

    def show_identity(self, slot, text, state):
        self.identities.append((slot, text, state))

    def show_status(self, message, kind="info"):
        self.statuses.append((message, kind))

    def show_toggle_state(self, state):
        self.toggle_states.append(state)

    def show_proxy_endpoint(self, host, port):
        self.endpoints.append((host, port))

    def texts(self, slot):
        return [text for s, text, _ in self.identities if s is slot]

    def last(self, slot):
        for s, text, state in reversed(self.identities):
            if s is slot:
                return text, state
        return None


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeNetwork:
    """
    Stands in for the address and geolocation services.

    The slot a client was created for decides which address is returned,
    so BEFORE and AFTER see different identities like a real proxy would.
    """

    def __init__(self):
        self.addresses = {Slot.BEFORE: "203.0.113.5", Slot.AFTER: "1.2.3.4"}
        self.countries = {"203.0.113.5": "Sweden", "1.2.3.4": "Germany"}
        self.ip_delay = 0.0
        self.geo_delay = 0.0
        self.ip_status = 200
        self.geo_status = 200
        self.calls = []

    def client_factory(self, slot):
        return httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: self.handle(slot, request)))

    async def handle(self, slot, request):
        if request.url.host == "api.ipify.org":
            self.calls.append((slot, "ip"))
            if self.ip_delay:
                await asyncio.sleep(self.ip_delay)
            if self.ip_status != 200:
                return httpx.Response(self.ip_status)
            address = self.addresses.get(slot)
            return httpx.Response(200, json={"ip": address} if address else {})

        if request.url.host == "ip-api.com":
            self.calls.append((slot, "geo"))
            if self.geo_delay:
                await asyncio.sleep(self.geo_delay)
            if self.geo_status != 200:
                return httpx.Response(self.geo_status)
            address = request.url.path.rsplit("/", 1)[-1]
            country = self.countries.get(address)
            return httpx.Response(200, json={"country": country} if country else {})

        return httpx.Response(404)

    def count(self, kind, slot=None):
        return sum(1 for s, k in self.calls if k == kind and (slot is None or s is slot))


class FakePolicy(NetworkPolicy):
    def __init__(self):
        self.ok = True
        self.error = "SOCKS proxy unavailable"
        self.calls = []

    async def enable(self, host, port):
        self.calls.append(("enable", host, port))
        return ToggleResult(True) if self.ok else ToggleResult(False, self.error)

    async def disable(self):
        self.calls.append(("disable",))
        return ToggleResult(True) if self.ok else ToggleResult(False, self.error)


@pytest.fixture
def view():
    return RecordingView()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def policy():
    return FakePolicy()


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(tmp_path / "state.json")


@pytest.fixture
def config(tmp_path):
    config = ConfigManager(tmp_path / "config.json")
    config.set('control.enabled', False)
    config.set('identity.settle_delay', 0.01)
    config.set('identity.toggle_debounce', 0.0)
    config.set('identity.ip_fetch_timeout', 0.5)
    config.set('identity.country_fetch_timeout', 0.5)
    return config


@pytest_asyncio.fixture
async def registry():
    registry = TaskRegistry()
    yield registry
    registry.cancel_all()
    await asyncio.sleep(0)


@pytest_asyncio.fixture
async def make_service(view, config, store, network, policy):
    """Builds a TorSwitchService on the test loop; overrides go into its config"""
    from core.tor_service import TorSwitchService

    services = []

    def _make(overrides=None):
        for key, value in (overrides or {}).items():
            config.set(key, value)
        service = TorSwitchService(view, config=config, store=store,
                                   client_factory=network.client_factory, policy=policy)
        services.append(service)
        return service

    yield _make
    for service in services:
        await service.shutdown()
    await asyncio.sleep(0)


@pytest.fixture
def drain():
    """Returns a coroutine that waits until a registry has no pending work"""

    async def _drain(registry, timeout=2.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while registry.pending_tasks or registry.pending_timers:
            assert loop.time() < deadline, "background work did not finish"
            await asyncio.sleep(0.01)

    return _drain
