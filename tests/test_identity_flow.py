"""End-to-end identity refresh flows on a fully wired TorSwitchService."""

import asyncio
import time

import pytest

from core.errors import RequestAborted
from core.identity_cache import FAILED_ADDRESS, STORAGE_KEY, Slot
from core.identity_view import EMPTY_TEXT, LOADING_TEXT, DisplayState
from core.toggle_machine import ToggleState


async def _start(service, drain):
    await service.initialize()
    await drain(service.registry)


class TestStartup:
    @pytest.mark.asyncio
    async def test_direct_path_only(self, make_service, view, network, drain):
        service = make_service()
        await _start(service, drain)

        assert service.machine.state is ToggleState.DISABLED
        assert view.last(Slot.BEFORE) == ("203.0.113.5 (Sweden)", DisplayState.SUCCESS)
        assert view.last(Slot.AFTER) == (EMPTY_TEXT, DisplayState.EMPTY)
        assert network.count("ip", Slot.AFTER) == 0
        assert view.endpoints == [("127.0.0.1", 9150)]

    @pytest.mark.asyncio
    async def test_persisted_proxy_is_reapplied(self, make_service, store, policy, view, drain):
        await store.set("torEnabled", True)
        await store.set("torHost", "127.0.0.1")
        await store.set("torPort", 9050)

        service = make_service()
        await _start(service, drain)

        assert policy.calls[0] == ("enable", "127.0.0.1", 9050)
        assert service.machine.state is ToggleState.ENABLED
        assert view.last(Slot.AFTER) == ("1.2.3.4 (Germany)", DisplayState.SUCCESS)

    @pytest.mark.asyncio
    async def test_unreachable_persisted_proxy(self, make_service, store, policy, view, drain):
        await store.set("torEnabled", True)
        policy.ok = False

        service = make_service()
        await _start(service, drain)

        assert service.machine.state is ToggleState.DISABLED
        assert ("Failed: SOCKS proxy unavailable", "error") in view.statuses
        assert view.last(Slot.AFTER) == (EMPTY_TEXT, DisplayState.EMPTY)


class TestRefresh:
    @pytest.mark.asyncio
    async def test_enable_then_geolocate(self, make_service, view, drain):
        service = make_service()
        await _start(service, drain)

        assert await service.machine.request_enable("127.0.0.1", "9150")
        await drain(service.registry)

        after = view.texts(Slot.AFTER)
        loading = after.index(LOADING_TEXT)
        assert after[loading + 1] == "1.2.3.4"
        assert after[-1] == "1.2.3.4 (Germany)"
        assert view.last(Slot.AFTER)[1] is DisplayState.SUCCESS
        assert ("✓ Tor proxy enabled (127.0.0.1:9150).", "success") in view.statuses

    @pytest.mark.asyncio
    async def test_timeout_without_cache_shows_error(self, make_service, view, network, drain):
        network.ip_delay = 5
        service = make_service({'identity.ip_fetch_timeout': 0.05})
        await _start(service, drain)

        assert view.texts(Slot.BEFORE) == [LOADING_TEXT, FAILED_ADDRESS]
        assert view.last(Slot.BEFORE) == (FAILED_ADDRESS, DisplayState.ERROR)
        assert service.cache.get(Slot.BEFORE).address is None

    @pytest.mark.asyncio
    async def test_fresh_cache_needs_no_network(self, make_service, store, view, network, drain):
        await store.set("torEnabled", True)
        await store.set(STORAGE_KEY, {
            "before": None, "after": "5.6.7.8",
            "beforeCountry": None, "afterCountry": "France",
            "timestamp": time.time() - 1,
        })
        service = make_service()
        await _start(service, drain)
        view.identities.clear()

        await service.orchestrator.refresh(Slot.AFTER)

        assert view.identities == [(Slot.AFTER, "5.6.7.8 (France)", DisplayState.SUCCESS)]
        assert network.count("ip", Slot.AFTER) == 0
        assert network.count("geo", Slot.AFTER) == 0

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_display_cache(self, make_service, view, network, drain):
        service = make_service()
        await _start(service, drain)
        assert network.count("ip", Slot.BEFORE) == 1

        await service.orchestrator.refresh(Slot.BEFORE, force_refresh=True)
        await drain(service.registry)

        assert LOADING_TEXT in view.texts(Slot.BEFORE)[1:]
        assert view.last(Slot.BEFORE) == ("203.0.113.5 (Sweden)", DisplayState.SUCCESS)

    @pytest.mark.asyncio
    async def test_late_country_is_dropped(self, make_service, view, network, drain):
        service = make_service()
        await _start(service, drain)
        service.cache.duration = 0
        network.countries.update({"198.51.100.1": "Denmark", "192.0.2.7": "Norway"})

        # the first address gets a slow country lookup
        network.addresses[Slot.BEFORE] = "198.51.100.1"
        network.geo_delay = 0.2
        await service.orchestrator.refresh(Slot.BEFORE, force_refresh=True)
        assert view.texts(Slot.BEFORE)[-1] == "198.51.100.1"

        # a later refresh shows another address before that lookup returns
        network.addresses[Slot.BEFORE] = "192.0.2.7"
        network.geo_delay = 0
        await service.orchestrator.refresh(Slot.BEFORE, force_refresh=True)
        await drain(service.registry)

        assert view.last(Slot.BEFORE) == ("192.0.2.7 (Norway)", DisplayState.SUCCESS)
        assert "198.51.100.1 (Denmark)" not in view.texts(Slot.BEFORE)
        # the slow answer still reached the cache
        assert service.cache.get(Slot.BEFORE).country == "Denmark"

    @pytest.mark.asyncio
    async def test_country_arriving_after_disable_is_dropped(self, make_service, view, network, drain):
        service = make_service()
        await _start(service, drain)
        network.geo_delay = 0.1

        await service.machine.request_enable("127.0.0.1", "9150")
        # wait for the address, but not the slow country lookup
        while view.texts(Slot.AFTER)[-1] != "1.2.3.4":
            await asyncio.sleep(0.005)
        await service.machine.request_disable()
        await drain(service.registry)

        assert view.last(Slot.AFTER) == (EMPTY_TEXT, DisplayState.EMPTY)
        assert "1.2.3.4 (Germany)" not in view.texts(Slot.AFTER)
        # the cache write is not guarded, only the display is
        after = service.cache.get(Slot.AFTER)
        assert (after.address, after.country) == (None, "Germany")


class TestDisable:
    @pytest.mark.asyncio
    async def test_disable_clears_after_and_refreshes_before(self, make_service, view, network, drain):
        service = make_service()
        await _start(service, drain)
        await service.machine.request_enable("127.0.0.1", "9150")
        await drain(service.registry)
        view.identities.clear()

        assert await service.machine.request_disable()
        await drain(service.registry)

        assert service.machine.state is ToggleState.DISABLED
        assert view.last(Slot.AFTER) == (EMPTY_TEXT, DisplayState.EMPTY)
        assert service.cache.get(Slot.AFTER).address is None
        # forced: the slot goes through loading even though the record is fresh
        assert view.texts(Slot.BEFORE)[0] == LOADING_TEXT
        assert view.last(Slot.BEFORE) == ("203.0.113.5 (Sweden)", DisplayState.SUCCESS)

    @pytest.mark.asyncio
    async def test_cancel_all_on_shutdown(self, make_service, network, drain):
        network.ip_delay = 5
        service = make_service({'identity.ip_fetch_timeout': 10})
        await service.initialize()
        assert service.registry.pending_tasks

        await service.shutdown()
        await drain(service.registry)


class TestShutdown:
    @pytest.mark.asyncio
    async def test_no_lookups_after_shutdown(self, make_service, view, network):
        network.ip_delay = 5
        service = make_service({'identity.ip_fetch_timeout': 10})
        service.cache.put_address(Slot.BEFORE, "203.0.113.5")
        service.cache.duration = 0

        refresh = asyncio.ensure_future(service.orchestrator.refresh(Slot.BEFORE, force_refresh=True))
        while not network.count("ip", Slot.BEFORE):
            await asyncio.sleep(0.005)
        await service.shutdown()
        await asyncio.wait_for(refresh, 1)

        # the aborted lookup falls back to the stale address without geolocating it
        assert view.last(Slot.BEFORE) == ("203.0.113.5", DisplayState.SUCCESS)
        await asyncio.sleep(0.05)
        assert network.count("geo") == 0
        assert service.registry.pending_tasks == 0

    @pytest.mark.asyncio
    async def test_settle_delay_is_interrupted(self, make_service, view, network, drain):
        service = make_service()
        await _start(service, drain)
        await service.machine.request_enable("127.0.0.1", "9150")
        await drain(service.registry)
        service.orchestrator.settle_delay = 10
        calls = len(network.calls)

        refresh = asyncio.ensure_future(service.orchestrator.refresh(Slot.AFTER, force_refresh=True))
        await asyncio.sleep(0.01)
        assert view.last(Slot.AFTER) == (LOADING_TEXT, DisplayState.LOADING)

        await service.shutdown()
        await asyncio.wait_for(refresh, 1)
        assert len(network.calls) == calls

    @pytest.mark.asyncio
    async def test_submitted_work_is_tracked(self, make_service, network):
        network.ip_delay = 5
        service = make_service({'identity.ip_fetch_timeout': 10})
        service.loop = asyncio.get_running_loop()

        pending = service.refresh(Slot.BEFORE)
        while not network.count("ip", Slot.BEFORE):
            await asyncio.sleep(0.005)
        assert service.registry.pending_tasks

        await service.shutdown()
        await asyncio.sleep(0.05)
        assert pending.cancelled()

        with pytest.raises(RequestAborted):
            await asyncio.wrap_future(service.refresh(Slot.BEFORE))
