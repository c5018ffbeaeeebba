from __future__ import annotations

import asyncio
import json
import unittest
from typing import Any, Callable

from marketpulse.config import RuntimeSettings
from marketpulse.feeds import Channel, Exchange, StreamingSubscriptionManager, SubscriptionState
from marketpulse.workers.live_feed_worker import subscribe_all

_BINANCE_TICKER = json.dumps(
    {"E": 1700000000000, "s": "BTCUSDT", "c": "43000", "P": "1.0", "v": "10", "h": "44000", "l": "42000"}
)


class _Drop:
    def __init__(self, code: int):
        self.code = code


class FakeConnection:
    def __init__(self):
        self.sent: list[str] = []
        self.closed_with: int | None = None
        self.close_code: int | None = None
        self._queue: asyncio.Queue[Any] = asyncio.Queue()

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def messages(self):
        while True:
            item = await self._queue.get()
            if isinstance(item, _Drop):
                self.close_code = item.code
                return
            yield item

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code

    def push(self, raw: Any) -> None:
        self._queue.put_nowait(raw)

    def drop(self, code: int = 1006) -> None:
        self._queue.put_nowait(_Drop(code))


class FakeConnector:
    """Scripted connector: each call pops the next behaviour ("open", "fail" or "hang")."""

    def __init__(self, *script: str, default: str = "open"):
        self.script = list(script)
        self.default = default
        self.urls: list[str] = []
        self.connections: list[FakeConnection] = []
        self.gate = asyncio.Event()

    async def __call__(self, url: str) -> FakeConnection:
        self.urls.append(url)
        behaviour = self.script.pop(0) if self.script else self.default
        if behaviour == "fail":
            raise OSError("connection refused")
        if behaviour == "hang":
            await self.gate.wait()
        connection = FakeConnection()
        self.connections.append(connection)
        return connection


def _settings(**overrides: Any) -> RuntimeSettings:
    values = dict(
        ws_connect_timeout_seconds=5.0,
        ws_reconnect_delay_seconds=0.01,
        ws_max_reconnect_attempts=3,
        demo_interval_seconds=0.02,
    )
    values.update(overrides)
    return RuntimeSettings(**values)


async def _until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


class TestMultiplexing(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.connector = FakeConnector()
        self.manager = StreamingSubscriptionManager(
            _settings(), connector=self.connector, first_message_grace_seconds=60
        )

    async def asyncTearDown(self):
        await self.manager.close_all()

    async def test_two_subscribers_share_one_transport(self):
        first: list[Any] = []
        second: list[Any] = []
        self.manager.subscribe_to_ticker("BTCUSDT", first.append)
        self.manager.subscribe_to_ticker("BTCUSDT", second.append)
        key = "binance_ticker_BTCUSDT"

        await _until(lambda: self.manager.state_of(key) is SubscriptionState.CONNECTED)
        self.connector.connections[0].push(_BINANCE_TICKER)
        await _until(lambda: len(first) == 1 and len(second) == 1)

        self.assertEqual(len(self.connector.urls), 1)
        self.assertEqual(self.connector.urls[0], "wss://stream.binance.com:9443/ws/btcusdt@ticker")
        self.assertEqual(first[0].price, 43000.0)
        self.assertIs(first[0], second[0])
        self.assertEqual(
            self.manager.connection_status(),
            {"is_connected": True, "active_connections": 1, "active_subscriptions": 1},
        )

    async def test_partial_unsubscribe_keeps_transport_and_full_unsubscribe_tears_down(self):
        first: list[Any] = []
        second: list[Any] = []
        unsubscribe_first = self.manager.subscribe_to_ticker("BTCUSDT", first.append)
        unsubscribe_second = self.manager.subscribe_to_ticker("BTCUSDT", second.append)
        key = "binance_ticker_BTCUSDT"
        await _until(lambda: self.manager.state_of(key) is SubscriptionState.CONNECTED)
        connection = self.connector.connections[0]

        unsubscribe_first()
        connection.push(_BINANCE_TICKER)
        await _until(lambda: len(second) == 1)
        self.assertEqual(first, [])
        self.assertIsNone(connection.closed_with)

        unsubscribe_second()
        await _until(lambda: connection.closed_with is not None)
        self.assertEqual(connection.closed_with, 1000)
        self.assertIs(self.manager.state_of(key), SubscriptionState.UNSUBSCRIBED)
        self.assertEqual(self.manager.connection_status()["active_subscriptions"], 0)

        unsubscribe_second()  # idempotent
        self.assertEqual(len(self.connector.urls), 1)

    async def test_malformed_frame_is_dropped_without_closing(self):
        records: list[Any] = []
        self.manager.subscribe_to_ticker("BTCUSDT", records.append)
        key = "binance_ticker_BTCUSDT"
        await _until(lambda: self.manager.state_of(key) is SubscriptionState.CONNECTED)
        connection = self.connector.connections[0]

        connection.push('{"c": "1", "s": "BTCUSDT", "E": 1e400}')
        connection.push("not json")
        connection.push(_BINANCE_TICKER)
        await _until(lambda: len(records) == 1)

        self.assertEqual(records[0].price, 43000.0)
        self.assertIs(self.manager.state_of(key), SubscriptionState.CONNECTED)
        self.assertIsNone(connection.closed_with)
        self.assertEqual(len(self.connector.urls), 1)

    async def test_raising_callback_does_not_block_others(self):
        received: list[Any] = []

        def broken(_record: Any) -> None:
            raise RuntimeError("boom")

        self.manager.subscribe_to_ticker("BTCUSDT", broken)
        self.manager.subscribe_to_ticker("BTCUSDT", received.append)
        await _until(lambda: self.manager.state_of("binance_ticker_BTCUSDT") is SubscriptionState.CONNECTED)

        with self.assertLogs("marketpulse.feeds.streaming", level="ERROR"):
            self.connector.connections[0].push(_BINANCE_TICKER)
            await _until(lambda: len(received) == 1)

    async def test_handshake_is_sent_after_open(self):
        self.manager.subscribe_to_orderbook("BTCUSDT", lambda _r: None, exchange="okx")
        await _until(lambda: bool(self.connector.connections) and bool(self.connector.connections[0].sent))

        self.assertEqual(
            json.loads(self.connector.connections[0].sent[0]),
            {"op": "subscribe", "args": [{"channel": "books5", "instId": "BTC-USDT"}]},
        )

    async def test_unknown_exchange_is_rejected(self):
        with self.assertRaises(ValueError):
            self.manager.subscribe_to_ticker("BTCUSDT", lambda _r: None, exchange="kraken")


class TestDemoFallback(unittest.IsolatedAsyncioTestCase):
    async def test_connect_error_pushes_demo_record_promptly(self):
        manager = StreamingSubscriptionManager(RuntimeSettings(), connector=FakeConnector("fail"))
        received = asyncio.Event()
        records: list[Any] = []

        def on_record(record: Any) -> None:
            records.append(record)
            received.set()

        unsubscribe = manager.subscribe_to_ticker("BTCUSDT", on_record)
        await asyncio.wait_for(received.wait(), timeout=3.5)

        self.assertEqual(records[0].exchange, "demo")
        self.assertIs(manager.state_of("binance_ticker_BTCUSDT"), SubscriptionState.DEMO)
        unsubscribe()
        await manager.close_all()

    async def test_timeout_switches_to_demo_and_late_open_is_closed(self):
        connector = FakeConnector("hang")
        manager = StreamingSubscriptionManager(
            _settings(ws_connect_timeout_seconds=0.05), connector=connector
        )
        records: list[Any] = []
        manager.subscribe_to_orderbook("BTCUSDT", records.append)
        key = "binance_orderbook_BTCUSDT"

        await _until(lambda: bool(records))
        self.assertIs(manager.state_of(key), SubscriptionState.DEMO)
        self.assertEqual(records[0].exchange, "demo")
        self.assertEqual(len(records[0].bids), 10)

        connector.gate.set()
        await _until(lambda: bool(connector.connections) and connector.connections[0].closed_with is not None)
        self.assertEqual(connector.connections[0].closed_with, 1000)
        self.assertIs(manager.state_of(key), SubscriptionState.DEMO)
        await manager.close_all()

    async def test_no_demo_push_after_teardown(self):
        manager = StreamingSubscriptionManager(_settings(), connector=FakeConnector("fail"))
        records: list[Any] = []
        unsubscribe = manager.subscribe_to_ticker("BTCUSDT", records.append)
        await _until(lambda: len(records) >= 2)

        unsubscribe()
        count = len(records)
        await asyncio.sleep(0.1)

        self.assertEqual(len(records), count)
        self.assertIs(manager.state_of("binance_ticker_BTCUSDT"), SubscriptionState.UNSUBSCRIBED)

    async def test_silent_connection_gets_one_demo_record(self):
        manager = StreamingSubscriptionManager(
            _settings(), connector=FakeConnector(), first_message_grace_seconds=0.02
        )
        records: list[Any] = []
        manager.subscribe_to_ticker("BTCUSDT", records.append)

        await _until(lambda: bool(records))
        await asyncio.sleep(0.05)

        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].exchange, "demo")
        self.assertIs(manager.state_of("binance_ticker_BTCUSDT"), SubscriptionState.CONNECTED)
        await manager.close_all()


class TestReconnect(unittest.IsolatedAsyncioTestCase):
    async def test_abnormal_close_reconnects(self):
        connector = FakeConnector()
        manager = StreamingSubscriptionManager(
            _settings(ws_reconnect_delay_seconds=0.05), connector=connector, first_message_grace_seconds=60
        )
        records: list[Any] = []
        manager.subscribe_to_ticker("BTCUSDT", records.append)
        key = "binance_ticker_BTCUSDT"
        await _until(lambda: manager.state_of(key) is SubscriptionState.CONNECTED)

        connector.connections[0].drop(1006)
        await _until(lambda: manager.state_of(key) is SubscriptionState.RECONNECTING)
        await _until(lambda: len(connector.connections) == 2)
        await _until(lambda: manager.state_of(key) is SubscriptionState.CONNECTED)

        connector.connections[1].push(_BINANCE_TICKER)
        await _until(lambda: len(records) == 1)
        self.assertEqual(records[0].exchange, "binance")
        await manager.close_all()

    async def test_exhausted_reconnects_fall_back_to_demo(self):
        connector = FakeConnector("open", default="fail")
        manager = StreamingSubscriptionManager(
            _settings(ws_max_reconnect_attempts=2), connector=connector, first_message_grace_seconds=60
        )
        records: list[Any] = []
        manager.subscribe_to_ticker("BTCUSDT", records.append)
        key = "binance_ticker_BTCUSDT"
        await _until(lambda: manager.state_of(key) is SubscriptionState.CONNECTED)

        connector.connections[0].drop(1006)
        await _until(lambda: manager.state_of(key) is SubscriptionState.DEMO)
        await _until(lambda: bool(records))

        self.assertEqual(len(connector.urls), 3)
        self.assertEqual(records[0].exchange, "demo")
        await manager.close_all()

    async def test_unsubscribe_while_reconnecting_cancels_pending_reconnect(self):
        connector = FakeConnector()
        manager = StreamingSubscriptionManager(
            _settings(ws_reconnect_delay_seconds=0.1), connector=connector, first_message_grace_seconds=60
        )
        records: list[Any] = []
        unsubscribe = manager.subscribe_to_ticker("BTCUSDT", records.append)
        key = "binance_ticker_BTCUSDT"
        await _until(lambda: manager.state_of(key) is SubscriptionState.CONNECTED)

        connector.connections[0].drop(1006)
        await _until(lambda: manager.state_of(key) is SubscriptionState.RECONNECTING)
        unsubscribe()
        await asyncio.sleep(0.3)

        self.assertEqual(len(connector.urls), 1)
        self.assertEqual(records, [])
        self.assertIs(manager.state_of(key), SubscriptionState.UNSUBSCRIBED)

    async def test_unsubscribe_while_connecting_disarms_timeout(self):
        connector = FakeConnector("hang")
        manager = StreamingSubscriptionManager(
            _settings(ws_connect_timeout_seconds=0.05), connector=connector, first_message_grace_seconds=0.02
        )
        records: list[Any] = []
        unsubscribe = manager.subscribe_to_ticker("BTCUSDT", records.append)
        key = "binance_ticker_BTCUSDT"
        await _until(lambda: len(connector.urls) == 1)
        self.assertIs(manager.state_of(key), SubscriptionState.CONNECTING)

        unsubscribe()
        connector.gate.set()
        await asyncio.sleep(0.2)

        self.assertEqual(len(connector.urls), 1)
        self.assertEqual(connector.connections, [])
        self.assertEqual(records, [])
        self.assertIs(manager.state_of(key), SubscriptionState.UNSUBSCRIBED)

    async def test_normal_remote_close_switches_to_demo(self):
        connector = FakeConnector()
        manager = StreamingSubscriptionManager(_settings(), connector=connector, first_message_grace_seconds=60)
        records: list[Any] = []
        manager.subscribe_to_ticker("BTCUSDT", records.append, exchange=Exchange.BINANCE)
        key = "binance_ticker_BTCUSDT"
        await _until(lambda: manager.state_of(key) is SubscriptionState.CONNECTED)

        connector.connections[0].drop(1000)
        await _until(lambda: manager.state_of(key) is SubscriptionState.DEMO)
        self.assertEqual(len(connector.urls), 1)
        await manager.close_all()

    async def test_close_all_clears_every_key(self):
        connector = FakeConnector()
        manager = StreamingSubscriptionManager(_settings(), connector=connector, first_message_grace_seconds=60)
        manager.subscribe_to_ticker("BTCUSDT", lambda _r: None)
        manager.subscribe_to_ticker("ETHUSDT", lambda _r: None)
        await _until(lambda: len(connector.connections) == 2)

        await manager.close_all()

        self.assertEqual(
            manager.connection_status(),
            {"is_connected": False, "active_connections": 0, "active_subscriptions": 0},
        )
        self.assertTrue(all(conn.closed_with == 1000 for conn in connector.connections))


class TestLiveFeedWorker(unittest.IsolatedAsyncioTestCase):
    async def test_subscribe_all_opens_one_key_per_symbol_and_channel(self):
        connector = FakeConnector()
        manager = StreamingSubscriptionManager(_settings(), connector=connector, first_message_grace_seconds=60)

        unsubscribers = subscribe_all(
            manager, ["BTCUSDT", "ETHUSDT"], Exchange.OKX, [Channel.TICKER, Channel.ORDERBOOK]
        )
        await _until(lambda: len(connector.connections) == 4)

        self.assertEqual(len(unsubscribers), 4)
        self.assertIs(manager.state_of("okx_orderbook_ETHUSDT"), SubscriptionState.CONNECTED)
        for unsubscribe in unsubscribers:
            unsubscribe()
        self.assertEqual(manager.connection_status()["active_subscriptions"], 0)


if __name__ == "__main__":
    unittest.main()
