from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable

from marketpulse.config.runtime import RuntimeSettings
from marketpulse.feeds import Channel, Exchange, StreamingSubscriptionManager
from marketpulse.feeds.contracts import LiveRecord
from marketpulse.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def _csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _log_record(record: LiveRecord) -> None:
    logger.info("%s", record.to_dict())


def subscribe_all(
    manager: StreamingSubscriptionManager,
    symbols: list[str],
    exchange: Exchange,
    channels: list[Channel],
    callback: Callable[[LiveRecord], None] = _log_record,
) -> list[Callable[[], None]]:
    return [
        manager.subscribe(symbol, callback, exchange=exchange, channel=channel)
        for symbol in symbols
        for channel in channels
    ]


async def main() -> None:
    settings = RuntimeSettings.from_env()
    setup_logging(settings.log_level)
    logger.info("marketpulse live-feed worker bootstrap")

    symbols = _csv(os.getenv("LIVE_SYMBOLS", "BTCUSDT"))
    exchange = Exchange.parse(os.getenv("LIVE_EXCHANGE", "binance"))
    channels = [Channel(name.lower()) for name in _csv(os.getenv("LIVE_CHANNELS", "ticker"))]

    manager = StreamingSubscriptionManager(settings)
    subscribe_all(manager, symbols, exchange, channels)
    logger.info("subscribed symbols=%s exchange=%s channels=%s", symbols, exchange.value, [c.value for c in channels])

    try:
        while True:
            await asyncio.sleep(60)
            logger.info("connection status %s", manager.connection_status())
    finally:
        await manager.close_all()


if __name__ == "__main__":
    asyncio.run(main())
