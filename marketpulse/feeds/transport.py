from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol, Union

import websockets
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006


class FeedConnection(Protocol):
    """Open push connection: text frames in, text frames out."""

    close_code: int | None

    async def send(self, message: str) -> None: ...

    def messages(self) -> AsyncIterator[Any]: ...

    async def close(self, code: int = NORMAL_CLOSURE) -> None: ...


Connector = Callable[[str], Awaitable[FeedConnection]]


class WebSocketConnection:
    def __init__(self, websocket: Any):
        self._ws = websocket
        self.close_code: int | None = None

    async def send(self, message: str) -> None:
        await self._ws.send(message)

    async def messages(self) -> AsyncIterator[Any]:
        try:
            async for raw in self._ws:
                yield raw
        except ConnectionClosed as exc:
            self.close_code = exc.rcvd.code if exc.rcvd is not None else ABNORMAL_CLOSURE
            return
        self.close_code = getattr(self._ws, "close_code", None) or NORMAL_CLOSURE

    async def close(self, code: int = NORMAL_CLOSURE) -> None:
        await self._ws.close(code=code)


async def websocket_connector(url: str) -> WebSocketConnection:
    websocket = await websockets.connect(
        url,
        ping_interval=20,
        ping_timeout=30,
        close_timeout=5,
    )
    logger.debug("websocket opened url=%s", url)
    return WebSocketConnection(websocket)


@dataclass(frozen=True)
class LiveTransport:
    connection: FeedConnection
    task: asyncio.Task[None]


@dataclass(frozen=True)
class DemoTransport:
    task: asyncio.Task[None]


Transport = Union[LiveTransport, DemoTransport]


async def close_connection(connection: FeedConnection, code: int = NORMAL_CLOSURE) -> None:
    try:
        await connection.close(code)
    except Exception as exc:
        logger.debug("ignoring error while closing connection: %s", exc)
