from __future__ import annotations

import random
import unittest
from datetime import date, datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock, patch

from marketpulse.config import RuntimeSettings
from marketpulse.instruments import get_instrument
from marketpulse.services import DateRange, HistoricalDataService, UnsupportedSymbolError
from marketpulse.services.clients import CoinGeckoRestClient
from marketpulse.services.providers import (
    CoinGeckoProvider,
    OkxCandleProvider,
    ProviderResult,
    SyntheticProvider,
    resolve_history,
)
from marketpulse.services.synthetic import SyntheticSeriesGenerator

TODAY = date(2024, 3, 31)


def _ms(day: date) -> int:
    return int(datetime.combine(day, datetime.min.time(), tzinfo=timezone.utc).timestamp() * 1000)


def _okx_rows(start: date, end: date) -> list[list[str]]:
    rows = []
    day = end
    while day >= start:
        rows.append([str(_ms(day)), "100", "110", "95", "105", "2000000", "0", "0", "1"])
        day -= timedelta(days=1)
    return rows


class StubOkxClient:
    def __init__(self, rows: list[list[Any]] | None = None, error: Exception | None = None):
        self.rows = rows or []
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def candles(self, inst_id, bar="1D", *, after_ms=None, before_ms=None, limit=None):
        self.calls.append({"inst_id": inst_id, "bar": bar, "after_ms": after_ms, "limit": limit})
        if self.error is not None:
            raise self.error
        return self.rows


class StubCoinGeckoClient:
    def __init__(
        self,
        payload: dict[str, Any] | None = None,
        error: Exception | None = None,
        quote: dict[str, Any] | None = None,
    ):
        self.payload = payload or {}
        self.error = error
        self.quote = quote
        self.calls: list[tuple[str, int]] = []
        self.quote_calls: list[str] = []

    def market_chart(self, coin_id, days, vs_currency="usd"):
        self.calls.append((coin_id, days))
        if self.error is not None:
            raise self.error
        return self.payload

    def simple_price(self, coin_id, vs_currency="usd"):
        self.quote_calls.append(coin_id)
        if self.error is not None:
            raise self.error
        return self.quote


class StubExchangeRateClient:
    def __init__(self, rate: float = 1.1, error: Exception | None = None):
        self._rate = rate
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def rate(self, base, quote):
        self.calls.append((base, quote))
        if self.error is not None:
            raise self.error
        return self._rate


def _service(**clients: Any) -> HistoricalDataService:
    return HistoricalDataService(
        RuntimeSettings(use_real_data=True),
        okx_client=clients.get("okx") or StubOkxClient(error=ConnectionError("offline")),
        coingecko_client=clients.get("coingecko") or StubCoinGeckoClient(error=ConnectionError("offline")),
        exchange_rate_client=clients.get("fx") or StubExchangeRateClient(error=ConnectionError("offline")),
        rng=random.Random(7),
        today=lambda: TODAY,
    )


class TestSyntheticHistory(unittest.IsolatedAsyncioTestCase):
    async def test_six_day_synthetic_range(self):
        service = _service()
        start = date(2024, 3, 1)

        records = await service.get_historical_data(
            {"id": "BTC-USD"}, DateRange(start, start + timedelta(days=5)), use_real_data=False
        )

        self.assertEqual(len(records), 6)
        self.assertEqual(list(records), sorted(records))
        for record in records.values():
            self.assertGreaterEqual(record.high, max(record.open, record.close))
            self.assertLessEqual(record.low, min(record.open, record.close))
            self.assertGreater(record.low, 0)
            self.assertGreater(record.volume, 0)
            self.assertEqual(record.data_source, "synthetic")
            self.assertIsNotNone(record.technical_indicators)
            self.assertEqual(len(record.intraday), 8)

    async def test_settings_flag_is_the_default(self):
        service = HistoricalDataService(
            RuntimeSettings(use_real_data=False),
            okx_client=StubOkxClient(rows=_okx_rows(date(2024, 3, 1), date(2024, 3, 3))),
            today=lambda: TODAY,
        )

        records = await service.get_historical_data("BTC", DateRange(date(2024, 3, 1), date(2024, 3, 3)))

        self.assertEqual({r.data_source for r in records.values()}, {"synthetic"})

    async def test_stock_weekend_is_closed_with_dampened_volume(self):
        generator = SyntheticSeriesGenerator(random.Random(1))
        records = generator.generate("AAPL", date(2024, 3, 4), date(2024, 3, 10))

        self.assertTrue(records["2024-03-04"].is_market_open)
        self.assertFalse(records["2024-03-09"].is_market_open)
        self.assertFalse(records["2024-03-10"].is_market_open)

    def test_generator_is_reproducible_with_seeded_rng(self):
        first = SyntheticSeriesGenerator(random.Random(11)).generate("ETH", date(2024, 1, 1), date(2024, 1, 5))
        second = SyntheticSeriesGenerator(random.Random(11)).generate("ETH", date(2024, 1, 1), date(2024, 1, 5))
        self.assertEqual(first, second)


class TestProviderChain(unittest.IsolatedAsyncioTestCase):
    async def test_okx_success_skips_coingecko(self):
        start, end = date(2024, 3, 1), date(2024, 3, 10)
        okx = StubOkxClient(rows=_okx_rows(start, end))
        coingecko = StubCoinGeckoClient()
        service = _service(okx=okx, coingecko=coingecko)

        records = await service.get_historical_data("BTC-USDT", DateRange(start, end))

        self.assertEqual(len(records), 10)
        self.assertEqual({r.data_source for r in records.values()}, {"okx"})
        self.assertEqual(coingecko.calls, [])
        self.assertEqual(okx.calls[0]["inst_id"], "BTC-USDT")
        record = records["2024-03-05"]
        self.assertAlmostEqual(record.performance, 5.0)
        self.assertAlmostEqual(record.volatility, 15 / 95 * 100)
        self.assertAlmostEqual(record.liquidity, 2.0)
        self.assertIsNone(record.error)

    async def test_sparse_okx_falls_through_to_coingecko(self):
        start, end = date(2024, 3, 1), date(2024, 3, 10)
        okx = StubOkxClient(rows=_okx_rows(end, end))
        prices = []
        volumes = []
        day = start - timedelta(days=1)
        price = 100.0
        while day <= end:
            prices.append([_ms(day), price])
            volumes.append([_ms(day), 5e7])
            price *= 1.02
            day += timedelta(days=1)
        coingecko = StubCoinGeckoClient(payload={"prices": prices, "total_volumes": volumes})
        service = _service(okx=okx, coingecko=coingecko)

        records = await service.get_historical_data("ETH", DateRange(start, end))

        self.assertEqual(len(records), 10)
        self.assertEqual({r.data_source for r in records.values()}, {"coingecko"})
        self.assertEqual(coingecko.calls[0][0], "ethereum")
        record = records["2024-03-02"]
        self.assertAlmostEqual(record.performance, 2.0)
        self.assertAlmostEqual(record.liquidity, 5.0)
        self.assertAlmostEqual(record.open, record.close * (1 - 0.02))

    async def test_all_failures_synthesize_with_error(self):
        service = _service()

        records = await service.get_historical_data("BTC", DateRange(date(2024, 3, 1), date(2024, 3, 4)))

        self.assertEqual(len(records), 4)
        for record in records.values():
            self.assertEqual(record.data_source, "synthetic")
            self.assertIn("coingecko", record.error)
            self.assertIn("error", record.to_dict())

    async def test_unsupported_crypto_is_synthesized(self):
        service = _service()

        records = await service.get_historical_data("DOGE", DateRange(date(2024, 3, 1), date(2024, 3, 2)))

        self.assertEqual(len(records), 2)
        self.assertTrue(all("not supported" in r.error for r in records.values()))

    async def test_forex_uses_live_rate_as_anchor(self):
        fx = StubExchangeRateClient(rate=1.2)
        service = _service(fx=fx)

        records = await service.get_historical_data("EURUSD", DateRange(date(2024, 3, 1), date(2024, 3, 3)))

        self.assertEqual(fx.calls, [("EUR", "USD")])
        self.assertEqual({r.data_source for r in records.values()}, {"exchange-rates-api"})
        self.assertAlmostEqual(records["2024-03-01"].open, 1.2, delta=0.05)

    async def test_stock_goes_straight_to_synthetic_without_error(self):
        records = await _service().get_historical_data(
            get_instrument("AAPL"), DateRange(date(2024, 3, 1), date(2024, 3, 3))
        )
        self.assertTrue(all(r.error is None for r in records.values()))
        self.assertEqual({r.data_source for r in records.values()}, {"synthetic"})

    def test_unsupported_symbol_error_is_a_value_error(self):
        provider = OkxCandleProvider(StubOkxClient())
        with self.assertRaises(ValueError):
            provider.fetch("NOTACOIN", date(2024, 3, 1), date(2024, 3, 2))
        self.assertTrue(issubclass(UnsupportedSymbolError, ValueError))

    def test_gaps_are_filled_synthetically(self):
        class HalfProvider:
            name = "half"

            def fetch(self, instrument_id, start, end):
                okx = OkxCandleProvider(StubOkxClient(rows=_okx_rows(start, start + timedelta(days=2))))
                return okx.fetch(instrument_id, start, end)

        result = resolve_history(
            [HalfProvider()],
            SyntheticProvider(SyntheticSeriesGenerator(random.Random(2))),
            "BTC",
            date(2024, 3, 1),
            date(2024, 3, 4),
        )

        self.assertIsInstance(result, ProviderResult)
        self.assertIsNone(result.error)
        sources = [r.data_source for r in result.records.values()]
        self.assertEqual(sources, ["okx", "okx", "okx", "synthetic"])

    def test_coingecko_requests_enough_lookback(self):
        client = StubCoinGeckoClient(payload={"prices": [], "total_volumes": []})
        CoinGeckoProvider(client, today=lambda: TODAY).fetch("BTC", date(2024, 3, 1), date(2024, 3, 31))
        self.assertEqual(client.calls, [("bitcoin", 32)])


class TestQuotes(unittest.IsolatedAsyncioTestCase):
    async def test_crypto_quote_from_coingecko(self):
        coingecko = StubCoinGeckoClient(
            quote={"usd": 64000.0, "usd_market_cap": 1.2e12, "usd_24h_vol": 3.5e10, "usd_24h_change": -1.5}
        )

        quote = await _service(coingecko=coingecko).get_quote("BTC-USD")

        self.assertEqual(coingecko.quote_calls, ["bitcoin"])
        self.assertEqual(quote.price, 64000.0)
        self.assertEqual(quote.market_cap, 1.2e12)
        self.assertEqual(quote.volume24h, 3.5e10)
        self.assertEqual(quote.change24h, -1.5)
        self.assertEqual(quote.data_source, "coingecko")
        self.assertIsNone(quote.error)
        self.assertEqual(quote.to_dict()["currentPrice"], 64000.0)

    async def test_failed_quote_falls_back_to_synthetic_close(self):
        quote = await _service().get_quote("ETH")

        self.assertEqual(quote.data_source, "synthetic")
        self.assertEqual(quote.as_of, TODAY.isoformat())
        self.assertGreater(quote.price, 0)
        self.assertIsNone(quote.market_cap)
        self.assertIn("coingecko", quote.error)
        self.assertIn("error", quote.to_dict())

    async def test_unsupported_crypto_quote_is_synthesized(self):
        coingecko = StubCoinGeckoClient(quote={"usd": 1.0})

        quote = await _service(coingecko=coingecko).get_quote("DOGE")

        self.assertEqual(coingecko.quote_calls, [])
        self.assertIn("not supported", quote.error)

    async def test_non_crypto_and_synthetic_mode_skip_coingecko(self):
        coingecko = StubCoinGeckoClient(quote={"usd": 1.0})
        service = _service(coingecko=coingecko)

        stock = await service.get_quote("AAPL")
        offline = await service.get_quote("BTC", use_real_data=False)

        self.assertEqual(coingecko.quote_calls, [])
        self.assertIsNone(stock.error)
        self.assertEqual({stock.data_source, offline.data_source}, {"synthetic"})


class TestCoinGeckoClient(unittest.TestCase):
    def _response(self, payload: Any) -> MagicMock:
        response = MagicMock()
        response.json.return_value = payload
        return response

    def test_simple_price_requests_market_fields(self):
        response = self._response({"bitcoin": {"usd": 64000.0, "usd_24h_change": 2.0}})
        with patch("marketpulse.services.clients.requests.get", return_value=response) as get:
            entry = CoinGeckoRestClient(base_url="https://cg.test").simple_price("bitcoin")

        self.assertEqual(entry["usd"], 64000.0)
        response.raise_for_status.assert_called_once()
        url = get.call_args.args[0]
        params = get.call_args.kwargs["params"]
        self.assertEqual(url, "https://cg.test/simple/price")
        self.assertEqual(params["ids"], "bitcoin")
        self.assertEqual(params["include_24hr_change"], "true")

    def test_simple_price_without_entry_raises(self):
        with patch("marketpulse.services.clients.requests.get", return_value=self._response({})):
            with self.assertRaises(ValueError):
                CoinGeckoRestClient().simple_price("bitcoin")


class TestPeriodsAndViews(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.service = _service()
        self.service.toggle_data_source(False)

    async def test_toggle_replaces_setting(self):
        self.assertFalse(self.service.settings.use_real_data)
        self.service.toggle_data_source(True)
        self.assertTrue(self.service.settings.use_real_data)

    async def test_single_date_expands_around_and_clips_to_today(self):
        records = await self.service.get_historical_data("BTC", date(2024, 3, 1))

        self.assertEqual(min(records), "2024-01-16")
        self.assertEqual(max(records), "2024-03-31")

    async def test_daily_record_and_future_date(self):
        record = await self.service.get_daily_data("2024-03-15", "BTC")
        self.assertEqual(record.date, "2024-03-15")
        self.assertIsNone(await self.service.get_daily_data(date(2024, 4, 2), "BTC"))

    async def test_weekly_data_starts_on_sunday(self):
        week = await self.service.get_weekly_data(date(2024, 3, 13), "BTC")

        self.assertEqual(week.period_start, "2024-03-10")
        self.assertEqual(week.trading_days, 7)
        self.assertIsNone(await self.service.get_weekly_data(date(2024, 4, 8), "BTC"))

    async def test_current_week_is_clipped_to_today(self):
        week = await self.service.get_weekly_data(TODAY, "BTC")
        self.assertEqual(week.period_start, "2024-03-31")
        self.assertEqual(week.trading_days, 1)

    async def test_monthly_data(self):
        month = await self.service.get_monthly_data(date(2024, 2, 10), "BTC")

        self.assertEqual(month.period_start, "2024-02-01")
        self.assertEqual(month.trading_days, 29)
        self.assertIn("2024-02-04", month.weeks)

    async def test_detailed_day(self):
        detailed = await self.service.get_detailed_day_data(date(2024, 3, 15), "BTC")
        payload = detailed.to_dict()

        self.assertEqual(len(payload["intraday"]), 8)
        self.assertEqual(len(payload["volumeByHour"]), 8)
        volatility = detailed.day.volatility
        self.assertAlmostEqual(payload["volatilityBreakdown"]["afternoon"], volatility * 1.2)

    async def test_chart_series_runs_to_today(self):
        series = await self.service.get_chart_series(date(2024, 3, 25), "BTC")

        self.assertEqual([r.date for r in series][0], "2024-03-25")
        self.assertEqual(series[-1].date, "2024-03-31")
        self.assertEqual(await self.service.get_chart_series(date(2024, 5, 1), "BTC"), [])


if __name__ == "__main__":
    unittest.main()
