"""Multiplexed live subscriptions with reconnect and demo fallback.

One transport per ``exchange_channel_symbol`` key, shared by every callback
registered for that key. A key whose transport cannot be opened in time, or
that exhausts its reconnect budget, keeps its subscribers fed with synthetic
records until the last subscriber leaves.
"""
from __future__ import annotations

import asyncio
import json
import logging
import random
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Callable

from marketpulse.config.runtime import RuntimeSettings
from marketpulse.feeds.contracts import (
    Channel,
    Exchange,
    LiveRecord,
    RecordCallback,
    subscription_key,
)
from marketpulse.feeds.demo import demo_record
from marketpulse.feeds.normalizers import normalize
from marketpulse.feeds.symbols import format_symbol, subscription_message, websocket_url
from marketpulse.feeds.transport import (
    ABNORMAL_CLOSURE,
    NORMAL_CLOSURE,
    Connector,
    DemoTransport,
    FeedConnection,
    LiveTransport,
    Transport,
    close_connection,
    websocket_connector,
)

logger = logging.getLogger(__name__)


class SubscriptionState(StrEnum):
    UNSUBSCRIBED = "unsubscribed"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DEMO = "demo"
    CLOSED = "closed"


@dataclass(eq=False)
class _Subscription:
    key: str
    exchange: Exchange
    channel: Channel
    symbol: str
    callbacks: dict[RecordCallback, None] = field(default_factory=dict)
    state: SubscriptionState = SubscriptionState.UNSUBSCRIBED
    transport: Transport | None = None
    connect_task: asyncio.Task[None] | None = None
    timeout_handle: asyncio.TimerHandle | None = None
    reconnect_handle: asyncio.TimerHandle | None = None
    grace_handle: asyncio.TimerHandle | None = None
    reconnect_attempts: int = 0
    received_live: bool = False


class StreamingSubscriptionManager:
    def __init__(
        self,
        settings: RuntimeSettings | None = None,
        connector: Connector | None = None,
        rng: random.Random | None = None,
        first_message_grace_seconds: float = 2.0,
    ):
        self.settings = settings or RuntimeSettings.from_env()
        self._connector = connector or websocket_connector
        self._rng = rng or random.Random()
        self._grace_seconds = first_message_grace_seconds
        self._subscriptions: dict[str, _Subscription] = {}

    # ── public API ──

    def subscribe_to_ticker(
        self, symbol: str, callback: RecordCallback, exchange: Exchange | str = Exchange.BINANCE
    ) -> Callable[[], None]:
        return self.subscribe(symbol, callback, exchange=exchange, channel=Channel.TICKER)

    def subscribe_to_orderbook(
        self, symbol: str, callback: RecordCallback, exchange: Exchange | str = Exchange.BINANCE
    ) -> Callable[[], None]:
        return self.subscribe(symbol, callback, exchange=exchange, channel=Channel.ORDERBOOK)

    def subscribe(
        self,
        symbol: str,
        callback: RecordCallback,
        *,
        exchange: Exchange | str,
        channel: Channel | str,
    ) -> Callable[[], None]:
        """Register ``callback`` and return a zero-argument unsubscribe.

        Must be called from the event loop that will drive the transport.
        """
        exchange = exchange if isinstance(exchange, Exchange) else Exchange.parse(exchange)
        channel = Channel(channel)
        key = subscription_key(exchange, channel, symbol)

        sub = self._subscriptions.get(key)
        if sub is None:
            sub = _Subscription(key=key, exchange=exchange, channel=channel, symbol=symbol)
            self._subscriptions[key] = sub
            sub.callbacks[callback] = None
            logger.info("opening subscription key=%s", key)
            self._connect(sub)
        else:
            sub.callbacks[callback] = None

        def _unsubscribe() -> None:
            self._remove_callback(sub, callback)

        return _unsubscribe

    def state_of(self, key: str) -> SubscriptionState:
        sub = self._subscriptions.get(key)
        return sub.state if sub is not None else SubscriptionState.UNSUBSCRIBED

    def connection_status(self) -> dict[str, Any]:
        live = sum(1 for sub in self._subscriptions.values() if isinstance(sub.transport, LiveTransport))
        return {
            "is_connected": live > 0,
            "active_connections": live,
            "active_subscriptions": len(self._subscriptions),
        }

    async def close_all(self) -> None:
        tasks: list[asyncio.Task[None]] = []
        for sub in list(self._subscriptions.values()):
            tasks.extend(self._teardown(sub))
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ── lifecycle ──

    def _is_current(self, sub: _Subscription) -> bool:
        return self._subscriptions.get(sub.key) is sub

    def _connect(self, sub: _Subscription) -> None:
        loop = asyncio.get_running_loop()
        sub.state = SubscriptionState.CONNECTING
        sub.received_live = False
        sub.connect_task = loop.create_task(self._run_connection(sub), name=f"feed:{sub.key}")
        sub.timeout_handle = loop.call_later(
            self.settings.ws_connect_timeout_seconds, self._on_connect_timeout, sub
        )

    async def _run_connection(self, sub: _Subscription) -> None:
        url = websocket_url(sub.symbol, sub.exchange, sub.channel)
        try:
            connection = await self._connector(url)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._on_connect_failed(sub, exc)
            return

        if not self._is_current(sub) or sub.state is not SubscriptionState.CONNECTING:
            logger.info("closing late connection key=%s state=%s", sub.key, sub.state)
            await close_connection(connection)
            return

        self._on_open(sub, connection)
        try:
            handshake = subscription_message(sub.symbol, sub.exchange, sub.channel)
            if handshake is not None:
                await connection.send(json.dumps(handshake))
            async for raw in connection.messages():
                self._on_message(sub, raw)
            code = connection.close_code if connection.close_code is not None else ABNORMAL_CLOSURE
        except asyncio.CancelledError:
            await close_connection(connection, NORMAL_CLOSURE)
            raise
        except Exception as exc:
            logger.warning("connection error key=%s: %s", sub.key, exc)
            code = ABNORMAL_CLOSURE

        self._on_closed(sub, code)

    def _on_open(self, sub: _Subscription, connection: FeedConnection) -> None:
        self._cancel_handle(sub, "timeout_handle")
        sub.reconnect_attempts = 0
        sub.state = SubscriptionState.CONNECTED
        sub.transport = LiveTransport(connection=connection, task=sub.connect_task)
        sub.grace_handle = asyncio.get_running_loop().call_later(
            self._grace_seconds, self._on_first_message_grace, sub
        )
        logger.info("connected key=%s", sub.key)

    def _on_connect_timeout(self, sub: _Subscription) -> None:
        sub.timeout_handle = None
        if not self._is_current(sub) or sub.state is not SubscriptionState.CONNECTING:
            return
        logger.warning(
            "connection timeout key=%s after %.1fs, switching to demo data",
            sub.key,
            self.settings.ws_connect_timeout_seconds,
        )
        self._start_demo(sub)

    def _on_connect_failed(self, sub: _Subscription, exc: Exception) -> None:
        if not self._is_current(sub) or sub.state is not SubscriptionState.CONNECTING:
            logger.debug("ignoring late connection failure key=%s: %s", sub.key, exc)
            return
        self._cancel_handle(sub, "timeout_handle")
        if sub.reconnect_attempts > 0:
            logger.warning("reconnect attempt failed key=%s: %s", sub.key, exc)
            self._on_closed(sub, ABNORMAL_CLOSURE)
            return
        logger.warning("connection failed key=%s: %s, switching to demo data", sub.key, exc)
        self._start_demo(sub)

    def _on_closed(self, sub: _Subscription, code: int) -> None:
        self._cancel_handle(sub, "grace_handle")
        if not self._is_current(sub):
            return
        sub.transport = None

        if code == NORMAL_CLOSURE:
            logger.info("remote closed key=%s normally, switching to demo data", sub.key)
            self._start_demo(sub)
            return

        max_attempts = self.settings.ws_max_reconnect_attempts
        if sub.reconnect_attempts >= max_attempts:
            logger.warning(
                "connection lost key=%s code=%s, reconnect budget exhausted, switching to demo data",
                sub.key,
                code,
            )
            self._start_demo(sub)
            return

        delay = self.settings.ws_reconnect_delay_seconds * (2**sub.reconnect_attempts)
        sub.reconnect_attempts += 1
        sub.state = SubscriptionState.RECONNECTING
        sub.reconnect_handle = asyncio.get_running_loop().call_later(delay, self._reconnect, sub)
        logger.info(
            "connection lost key=%s code=%s, reconnecting in %.1fs (attempt %d/%d)",
            sub.key,
            code,
            delay,
            sub.reconnect_attempts,
            max_attempts,
        )

    def _reconnect(self, sub: _Subscription) -> None:
        sub.reconnect_handle = None
        if not self._is_current(sub):
            return
        self._connect(sub)

    def _on_first_message_grace(self, sub: _Subscription) -> None:
        sub.grace_handle = None
        if not self._is_current(sub) or sub.state is not SubscriptionState.CONNECTED:
            return
        if not sub.received_live:
            logger.debug("no live data yet key=%s, pushing one demo record", sub.key)
            self._deliver(sub, self._demo_record(sub))

    def _on_message(self, sub: _Subscription, raw: Any) -> None:
        if not self._is_current(sub):
            return
        record = normalize(
            raw,
            sub.exchange,
            sub.channel,
            fallback_symbol=format_symbol(sub.symbol, sub.exchange),
        )
        if record is None:
            return
        sub.received_live = True
        self._deliver(sub, record)

    # ── demo mode ──

    def _start_demo(self, sub: _Subscription) -> None:
        sub.state = SubscriptionState.DEMO
        if isinstance(sub.transport, DemoTransport):
            return
        task = asyncio.get_running_loop().create_task(self._demo_loop(sub), name=f"demo:{sub.key}")
        sub.transport = DemoTransport(task=task)

    async def _demo_loop(self, sub: _Subscription) -> None:
        while self._is_current(sub):
            self._deliver(sub, self._demo_record(sub))
            await asyncio.sleep(self.settings.demo_interval_seconds)

    def _demo_record(self, sub: _Subscription) -> LiveRecord:
        return demo_record(sub.channel, sub.symbol, self.settings.demo_base_price, self._rng)

    # ── delivery and teardown ──

    def _deliver(self, sub: _Subscription, record: LiveRecord) -> None:
        for callback in list(sub.callbacks):
            # a callback may unsubscribe itself or others mid-delivery
            if callback not in sub.callbacks or not self._is_current(sub):
                continue
            try:
                callback(record)
            except Exception:
                logger.exception("subscriber callback failed key=%s", sub.key)

    def _remove_callback(self, sub: _Subscription, callback: RecordCallback) -> None:
        if not self._is_current(sub):
            return
        sub.callbacks.pop(callback, None)
        if not sub.callbacks:
            self._teardown(sub)

    def _teardown(self, sub: _Subscription) -> list[asyncio.Task[None]]:
        self._subscriptions.pop(sub.key, None)
        sub.state = SubscriptionState.CLOSED
        sub.callbacks.clear()
        for name in ("timeout_handle", "reconnect_handle", "grace_handle"):
            self._cancel_handle(sub, name)

        tasks: list[asyncio.Task[None]] = []
        transport, sub.transport = sub.transport, None
        if transport is not None:
            # cancelling a live task closes its connection with a normal closure code
            tasks.append(transport.task)
        if sub.connect_task is not None and sub.connect_task not in tasks:
            tasks.append(sub.connect_task)

        pending = [task for task in tasks if task is not None and not task.done()]
        for task in pending:
            task.cancel()
        logger.info("closed subscription key=%s", sub.key)
        return pending

    @staticmethod
    def _cancel_handle(sub: _Subscription, name: str) -> None:
        handle = getattr(sub, name)
        if handle is not None:
            handle.cancel()
            setattr(sub, name, None)
