# core/control_server.py
"""
Local HTTP endpoint for control messages.

Lets another process (a second launch with --enable/--disable/--status)
drive the running instance. Binds to 127.0.0.1 only.
"""

import json
import logging
from typing import Awaitable, Callable, Union

from aiohttp import web

from core.errors import MessageError
from core.messages import ControlRequest, StatusResult, ToggleResult, parse_request

logger = logging.getLogger(__name__)

CONTROL_PORT = 61090


class ControlServer:
    def __init__(self, handler: Callable[[ControlRequest], Awaitable[Union[ToggleResult, StatusResult]]],
                 port: int = CONTROL_PORT):
        self.handler = handler
        self.port = port
        self.runner = None
        self.site = None

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post('/control', self.handle_control)
        return app

    async def handle_control(self, request: web.Request) -> web.Response:
        try:
            message = parse_request(await request.json())
        except (json.JSONDecodeError, MessageError) as e:
            logger.warning(f"⚠️ Rejected control message: {e}")
            return web.json_response({"ok": False, "err": str(e)}, status=400)

        result = await self.handler(message)
        return web.json_response(result.to_dict())

    async def start(self):
        self.runner = web.AppRunner(self.make_app(), access_log=None)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, host='127.0.0.1', port=self.port)
        await self.site.start()
        logger.info(f"✅ Control endpoint listening on http://127.0.0.1:{self.port}/control")

    async def stop(self):
        try:
            if self.site:
                await self.site.stop()
            if self.runner:
                await self.runner.cleanup()
            logger.debug("✅ Control endpoint stopped")
        except (OSError, RuntimeError) as e:
            logger.error(f"❌ Ошибка при остановке control endpoint: {e}")
        finally:
            self.site = None
            self.runner = None
