import asyncio
import json
import os

import pytest
import requests

from core.egress import EgressSettings
from core.identity_cache import Slot
from utils import remote_control
from utils.port_utils import (
    probe_port, sanitize_host, sanitize_port, validate_host_input, validate_port_input,
)
from utils.single_instance import SingleInstance


class TestInputValidation:
    @pytest.mark.parametrize("value,expected", [
        ("127.0.0.1", (True, "127.0.0.1")),
        ("  localhost ", (True, "localhost")),
        ("10.0.0.5", (True, "10.0.0.5")),
        ("", (False, "Host cannot be empty")),
        ("   ", (False, "Host cannot be empty")),
        (None, (False, "Host cannot be empty")),
        ("tor.example", (False, "Invalid host format")),
        ("1.2.3", (False, "Invalid host format")),
    ])
    def test_host(self, value, expected):
        assert validate_host_input(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("9150", (True, 9150)),
        (9050, (True, 9050)),
        (" 9150abc", (True, 9150)),
        ("abc", (False, "Port must be a number")),
        ("", (False, "Port must be a number")),
        (None, (False, "Port must be a number")),
        ("0", (False, "Port must be between 1 and 65535")),
        ("65536", (False, "Port must be between 1 and 65535")),
    ])
    def test_port(self, value, expected):
        assert validate_port_input(value) == expected

    def test_sanitize(self):
        assert sanitize_host(" localhost ") == "localhost"
        assert sanitize_host("evil.example") == "127.0.0.1"
        assert sanitize_host(42) == "127.0.0.1"
        assert sanitize_port("9050") == 9050
        assert sanitize_port(True) == 9150
        assert sanitize_port("-1") == 9150


class TestProbe:
    @pytest.mark.asyncio
    async def test_open_port(self):
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        async with server:
            assert await probe_port("127.0.0.1", port, timeout=1) == (True, "OK")

    @pytest.mark.asyncio
    async def test_closed_port(self):
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()

        ok, message = await probe_port("127.0.0.1", port, timeout=1)
        assert not ok
        assert f"127.0.0.1:{port}" in message


class TestEgress:
    @pytest.mark.asyncio
    async def test_apply_and_clear_proxy(self):
        egress = EgressSettings()
        assert not egress.proxied

        egress.apply_proxy("127.0.0.1", 9150)
        assert egress.proxy_url == "socks5://127.0.0.1:9150"

        async with egress.client_for(Slot.BEFORE) as client:
            assert client.headers["User-Agent"] == "TorSwitchClient/1.0"

        egress.clear_proxy()
        assert egress.proxy_url is None


class TestSingleInstance:
    def test_lock_records_control_port(self, tmp_path):
        lock = SingleInstance(tmp_path / "app.lock")
        assert lock.lock(control_port=61090)
        assert json.loads((tmp_path / "app.lock").read_text()) == {
            "pid": os.getpid(), "control_port": 61090,
        }
        assert lock.owner_control_port() == 61090
        # our own pid never counts as another running instance
        assert lock.owner_pid() is None

        lock.unlock()
        assert not (tmp_path / "app.lock").exists()

    def test_stale_lock_is_replaced(self, tmp_path):
        path = tmp_path / "app.lock"
        path.write_text("not json")

        lock = SingleInstance(path)
        assert lock.lock()
        lock.unlock()

    def test_unlock_without_lock(self, tmp_path):
        path = tmp_path / "app.lock"
        path.write_text("{}")
        SingleInstance(path).unlock()
        assert path.exists()


class TestRemoteControl:
    def test_returns_body(self, monkeypatch):
        seen = {}

        class FakeResponse:
            def json(self):
                return {"ok": True}

        def fake_post(url, json, timeout, proxies):
            seen.update(url=url, json=json, proxies=proxies)
            return FakeResponse()

        monkeypatch.setattr(remote_control.requests, "post", fake_post)

        assert remote_control.send_control_message({"type": "disable"}, port=61234) == {"ok": True}
        assert seen["url"] == "http://127.0.0.1:61234/control"
        assert seen["json"] == {"type": "disable"}
        assert seen["proxies"] == {"http": None, "https": None}

    def test_unreachable(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr(remote_control.requests, "post", refuse)
        assert remote_control.send_control_message({"type": "status"}) is None
