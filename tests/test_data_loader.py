"""Tests for the market data helpers with mocked HTTP requests."""

import datetime

import pandas
import pytest
import requests

import zscore_strategy.data_loader as data_loader_module
from zscore_strategy.errors import DataUnavailableError


class FakeResponse:
    def __init__(self, payload: dict) -> None:
        self.payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self) -> dict:
        return self.payload


def _kline_row(timestamp: str, close: float) -> list:
    milliseconds = int(pandas.Timestamp(timestamp, tz="UTC").value // 1_000_000)
    return [str(milliseconds), "0", "0", "0", str(close), "0", "0"]


def test_fetch_price_history_pages_backward_and_deduplicates(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pages are requested with decreasing end times and merged in order."""
    monkeypatch.setattr(data_loader_module.config, "KLINE_PAGE_LIMIT", 2)
    page_list = [
        [_kline_row("2024-01-01 03:00", 103.0), _kline_row("2024-01-01 02:00", 102.0)],
        [_kline_row("2024-01-01 02:00", 102.0), _kline_row("2024-01-01 01:00", 101.0)],
        [_kline_row("2024-01-01 00:00", 100.0), _kline_row("2023-12-31 23:00", 99.0)],
    ]
    requested_end_list = []

    def fake_get(url: str, params: dict | None = None, timeout: int = 30) -> FakeResponse:
        requested_end_list.append(params["end"])
        page_index = len(requested_end_list) - 1
        page = page_list[page_index] if page_index < len(page_list) else []
        return FakeResponse({"retCode": 0, "retMsg": "OK", "result": {"list": page}})

    monkeypatch.setattr(data_loader_module.requests, "get", fake_get)

    price_frame = data_loader_module.fetch_price_history(
        start="2023-12-31 23:00", end="2024-01-01 03:30", interval="60"
    )

    assert list(price_frame["close"]) == [99.0, 100.0, 101.0, 102.0, 103.0]
    assert price_frame["time"].is_monotonic_increasing
    assert price_frame["time"].iloc[0] == pandas.Timestamp("2023-12-31 23:00", tz="UTC")
    assert requested_end_list[0] - requested_end_list[1] == 2 * 60 * 60 * 1000
    assert len(requested_end_list) == 3


def test_fetch_price_history_raises_when_no_bars(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_get(url: str, params: dict | None = None, timeout: int = 30) -> FakeResponse:
        return FakeResponse({"retCode": 10001, "retMsg": "params error", "result": {}})

    monkeypatch.setattr(data_loader_module.requests, "get", fake_get)
    with pytest.raises(DataUnavailableError):
        data_loader_module.fetch_price_history(start="2024-01-01", end="2024-01-02")


def test_request_is_retried_before_giving_up(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    call_counter = {"count": 0}

    def failing_get(url: str, params: dict | None = None, timeout: int = 30) -> FakeResponse:
        call_counter["count"] += 1
        raise requests.ConnectionError("network down")

    monkeypatch.setattr(data_loader_module.requests, "get", failing_get)
    monkeypatch.setattr(data_loader_module.time, "sleep", lambda seconds: None)

    with caplog.at_level("WARNING"):
        with pytest.raises(DataUnavailableError):
            data_loader_module.fetch_price_history(start="2024-01-01", end="2024-01-02")
    assert call_counter["count"] == 3
    assert "Attempt 1" in caplog.text


def test_determine_last_closed_bar_start_returns_previous_hour() -> None:
    now = datetime.datetime(2024, 5, 1, 1, 34, tzinfo=datetime.timezone.utc)
    assert data_loader_module.determine_last_closed_bar_start(now) == pandas.Timestamp(
        "2024-05-01 00:00", tz="UTC"
    )
    on_boundary = datetime.datetime(2024, 5, 1, 2, 0, tzinfo=datetime.timezone.utc)
    assert data_loader_module.determine_last_closed_bar_start(on_boundary) == pandas.Timestamp(
        "2024-05-01 01:00", tz="UTC"
    )


def test_fetch_recent_history_excludes_forming_bar(monkeypatch: pytest.MonkeyPatch) -> None:
    captured_arguments = {}

    def fake_fetch_price_history(start, end, symbol, interval):
        captured_arguments.update(start=start, end=end)
        return pandas.DataFrame(
            {
                "time": pandas.date_range("2024-05-01 00:00", periods=3, freq="h", tz="UTC"),
                "close": [1.0, 2.0, 3.0],
            }
        )

    monkeypatch.setattr(data_loader_module, "fetch_price_history", fake_fetch_price_history)
    now = datetime.datetime(2024, 5, 1, 2, 15, tzinfo=datetime.timezone.utc)
    recent_frame = data_loader_module.fetch_recent_history(2, now=now)
    assert list(recent_frame["close"]) == [1.0, 2.0]
    assert captured_arguments["end"] == pandas.Timestamp("2024-05-01 01:59:59.999", tz="UTC")


def test_fetch_realtime_price_reads_last_price(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_get(url: str, params: dict | None = None, timeout: int = 30) -> FakeResponse:
        assert url.endswith("/tickers")
        return FakeResponse({"retCode": 0, "result": {"list": [{"lastPrice": "64123.5"}]}})

    monkeypatch.setattr(data_loader_module.requests, "get", fake_get)
    assert data_loader_module.fetch_realtime_price() == 64123.5


def test_load_local_history_reads_and_sorts(tmp_path) -> None:
    csv_path = tmp_path / "prices.csv"
    csv_path.write_text(
        "time,close\n"
        "2024-01-01 01:00:00,101\n"
        "2024-01-01 00:00:00,100\n"
        "2024-01-01 01:00:00,105\n",
        encoding="utf-8",
    )
    price_frame = data_loader_module.load_local_history(csv_path)
    assert list(price_frame["close"]) == [100.0, 101.0]
    assert str(price_frame["time"].dt.tz) == "UTC"


def test_load_local_history_missing_file_returns_empty(tmp_path) -> None:
    price_frame = data_loader_module.load_local_history(tmp_path / "missing.csv")
    assert price_frame.empty
    assert list(price_frame.columns) == ["time", "close"]


def test_interval_to_minutes() -> None:
    assert data_loader_module.interval_to_minutes("60") == 60
    assert data_loader_module.interval_to_minutes("D") == 1440
    with pytest.raises(ValueError):
        data_loader_module.interval_to_minutes("hourly")
