"""
Pins ``X-Content-Type-Options: nosniff`` on every HTTP response.

Transformed images carry the Content-Type detected from the output bytes;
clients must not reinterpret them. A header already set by a route wins.
"""

from __future__ import annotations

from starlette.applications import Starlette
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

_HEADER = "X-Content-Type-Options"


class NoSniffMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_header(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                if _HEADER not in headers:
                    headers.append(_HEADER, "nosniff")
            await send(message)

        await self.app(scope, receive, send_with_header)


def install_nosniff(app: Starlette) -> None:
    app.add_middleware(NoSniffMiddleware)
