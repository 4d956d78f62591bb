"""Tests for BacktestService window resolution and orchestration."""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from core.models.signal import LabelDirection, SignalSnapshot
from backtest.service import BacktestService, parse_datetime, resolve_date

NOW = datetime(2025, 7, 1, 12, tzinfo=timezone.utc)


def make_snapshot(signal_rule: str, magnitude: float, hours: int) -> SignalSnapshot:
    return SignalSnapshot(
        symbol="BTC",
        pair="BTCUSDT",
        generated_at=datetime(2025, 6, 15, tzinfo=timezone.utc) + timedelta(hours=hours),
        price_now=100.0,
        price_future=100.0 + magnitude,
        signal_rule=signal_rule,
        label_direction=LabelDirection.UP if magnitude > 0 else LabelDirection.DOWN,
        label_magnitude=magnitude,
        label_horizon_hours=24,
    )


@pytest.fixture
def source():
    src = AsyncMock()
    src.get_labeled.return_value = []
    return src


class TestParseDatetime:
    def test_bare_date_is_utc_midnight(self):
        assert parse_datetime("2025-06-01") == datetime(2025, 6, 1, tzinfo=timezone.utc)

    def test_zulu_suffix(self):
        assert parse_datetime("2025-06-01T08:30:00Z") == datetime(
            2025, 6, 1, 8, 30, tzinfo=timezone.utc
        )

    def test_offset_converted_to_utc(self):
        assert parse_datetime("2025-06-01T10:00:00+02:00") == datetime(
            2025, 6, 1, 8, tzinfo=timezone.utc
        )

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_datetime("yesterday")


class TestResolveDate:
    def test_fallback_for_missing(self):
        assert resolve_date(None, NOW) == NOW
        assert resolve_date("", NOW) == NOW

    def test_naive_datetime_is_utc(self):
        assert resolve_date(datetime(2025, 6, 1), NOW) == datetime(2025, 6, 1, tzinfo=timezone.utc)


class TestBacktestService:
    @pytest.mark.asyncio
    async def test_default_window_is_thirty_days(self, source):
        service = BacktestService(source)

        result = await service.run(now=NOW)

        source.get_labeled.assert_awaited_once_with("BTC", NOW - timedelta(days=30), NOW)
        assert result.symbol == "BTC"
        assert result.total == 0
        assert result.metrics is None

    @pytest.mark.asyncio
    async def test_symbol_is_uppercased(self, source):
        await BacktestService(source).run(symbol="eth", now=NOW)
        assert source.get_labeled.await_args.args[0] == "ETH"

    @pytest.mark.asyncio
    async def test_string_dates(self, source):
        await BacktestService(source).run(start="2025-06-01", end="2025-06-30T00:00:00Z", now=NOW)

        _, start, end = source.get_labeled.await_args.args
        assert start == datetime(2025, 6, 1, tzinfo=timezone.utc)
        assert end == datetime(2025, 6, 30, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_start_after_end_rejected(self, source):
        with pytest.raises(ValueError):
            await BacktestService(source).run(start="2025-06-30", end="2025-06-01")
        source.get_labeled.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_metrics_from_source(self, source):
        source.get_labeled.return_value = [
            make_snapshot("BUY", 2.0, 0),
            make_snapshot("SELL", 1.0, 1),
        ]

        result = await BacktestService(source).run(now=NOW)

        assert result.total == 2
        assert result.metrics.buy_trades == 1
        assert result.metrics.sell_trades == 1
        assert result.metrics.win_rate == 0.5
        assert result.metrics.avg_return_all_pct == pytest.approx(0.5)
        assert len(result.timeline) == 2
