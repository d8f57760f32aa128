"""Functions for retrieving historical price bars.

Remote data comes from the Bybit v5 ``kline`` endpoint, which returns at
most :data:`~zscore_strategy.config.KLINE_PAGE_LIMIT` candles per request,
newest first. :func:`fetch_price_history` pages backward from the requested
end time until the start time is reached and returns a data frame with a
tz-aware UTC ``time`` column and a float ``close`` column, sorted ascending
with duplicate timestamps removed.
"""

from __future__ import annotations

import datetime
import logging
import time
from pathlib import Path
from typing import Any, Dict, List

import pandas
import requests

from . import config
from .errors import DataUnavailableError

LOGGER = logging.getLogger(__name__)

MILLISECONDS_PER_MINUTE = 60 * 1000
# Bybit identifiers for intervals that are not a number of minutes.
NAMED_INTERVAL_MINUTES: Dict[str, int] = {"D": 24 * 60, "W": 7 * 24 * 60, "M": 30 * 24 * 60}


def interval_to_minutes(interval: str) -> int:
    """Return the length of a Bybit ``interval`` identifier in minutes."""
    if interval in NAMED_INTERVAL_MINUTES:
        return NAMED_INTERVAL_MINUTES[interval]
    try:
        return int(interval)
    except ValueError as conversion_error:
        raise ValueError(f"Unsupported interval: {interval}") from conversion_error


def _to_utc_timestamp(value: Any) -> pandas.Timestamp:
    timestamp = pandas.Timestamp(value)
    if timestamp.tzinfo is None:
        return timestamp.tz_localize("UTC")
    return timestamp.tz_convert("UTC")


def _to_milliseconds(timestamp: pandas.Timestamp) -> int:
    return int(timestamp.value // 1_000_000)


def empty_price_frame() -> pandas.DataFrame:
    """Return an empty frame with the ``time`` and ``close`` columns."""
    return pandas.DataFrame(
        {
            "time": pandas.Series([], dtype="datetime64[ns, UTC]"),
            "close": pandas.Series([], dtype=float),
        }
    )


def _request_json(url: str, parameters: Dict[str, Any]) -> Dict[str, Any]:
    """Fetch JSON data from ``url`` retrying transient failures."""
    for attempt_number in range(1, config.MAXIMUM_REQUEST_ATTEMPTS + 1):
        try:
            response = requests.get(
                url, params=parameters, timeout=config.REQUEST_TIMEOUT_SECONDS
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as request_error:
            LOGGER.warning(
                "Attempt %d to request %s failed: %s",
                attempt_number,
                url,
                request_error,
            )
            if attempt_number == config.MAXIMUM_REQUEST_ATTEMPTS:
                LOGGER.error(
                    "Request to %s failed after %d attempts",
                    url,
                    config.MAXIMUM_REQUEST_ATTEMPTS,
                )
                raise
            time.sleep(1)
    return {}


def _normalize_kline_rows(raw_row_list: List[List[Any]]) -> pandas.DataFrame:
    """Convert raw kline rows into a frame of ``time`` and ``close`` values."""
    if not raw_row_list:
        return empty_price_frame()
    frame = pandas.DataFrame(
        {
            "time": pandas.to_datetime(
                [int(float(row[0])) for row in raw_row_list], unit="ms", utc=True
            ),
            "close": [float(row[4]) for row in raw_row_list],
        }
    )
    return frame


def fetch_price_history(
    start: Any = config.DEFAULT_HISTORY_START,
    end: Any = None,
    symbol: str = config.DEFAULT_SYMBOL,
    interval: str = config.DEFAULT_INTERVAL,
) -> pandas.DataFrame:
    """Download closing prices between ``start`` and ``end``.

    Parameters
    ----------
    start:
        Earliest bar time to keep. Anything accepted by
        :class:`pandas.Timestamp`; naive values are treated as UTC.
    end:
        Latest time to request. ``None`` uses the current time.
    symbol: str
        Linear contract symbol, for example ``"BTCUSDT"``.
    interval: str
        Bybit interval identifier, for example ``"60"`` for hourly bars.

    Returns
    -------
    pandas.DataFrame
        Bars sorted ascending by ``time`` with unique timestamps.

    Raises
    ------
    DataUnavailableError
        If no bars were returned.
    """
    start_timestamp = _to_utc_timestamp(start)
    end_timestamp = (
        pandas.Timestamp.now(tz="UTC") if end is None else _to_utc_timestamp(end)
    )
    start_milliseconds = _to_milliseconds(start_timestamp)
    page_span_milliseconds = (
        interval_to_minutes(interval) * MILLISECONDS_PER_MINUTE * config.KLINE_PAGE_LIMIT
    )
    url = f"{config.BYBIT_API_BASE}/kline"

    raw_row_list: List[List[Any]] = []
    current_end_milliseconds = _to_milliseconds(end_timestamp)
    while current_end_milliseconds > start_milliseconds:
        parameters = {
            "category": "linear",
            "symbol": symbol,
            "interval": interval,
            "limit": config.KLINE_PAGE_LIMIT,
            "end": current_end_milliseconds,
        }
        try:
            payload = _request_json(url, parameters)
        except requests.RequestException as request_error:
            LOGGER.error("Error fetching data for %s: %s", symbol, request_error)
            break
        if payload.get("retCode") != 0 or not payload.get("result"):
            LOGGER.error(
                "API error for %s: %s", symbol, payload.get("retMsg") or "Unknown error"
            )
            break
        page_row_list = payload["result"].get("list") or []
        if not page_row_list:
            break
        raw_row_list.extend(page_row_list)
        current_end_milliseconds -= page_span_milliseconds

    if not raw_row_list:
        raise DataUnavailableError(f"Failed to fetch any data for {symbol}")

    price_frame = _normalize_kline_rows(raw_row_list)
    price_frame = price_frame.loc[price_frame["time"] >= start_timestamp]
    price_frame = (
        price_frame.drop_duplicates(subset="time", keep="first")
        .sort_values("time")
        .reset_index(drop=True)
    )
    LOGGER.info("Fetched %d bars for %s", len(price_frame), symbol)
    return price_frame


def determine_last_closed_bar_start(
    now: datetime.datetime | None = None,
    interval_minutes: int = 60,
) -> pandas.Timestamp:
    """Return the start time of the most recently completed bar.

    Parameters
    ----------
    now:
        Current time. ``None`` uses the system clock. Naive values are
        treated as UTC.
    interval_minutes: int
        Bar length in minutes.

    Returns
    -------
    pandas.Timestamp
        For hourly bars at 01:34 UTC this is 00:00 UTC, the bar that closed
        at 01:00.
    """
    current_time = (
        pandas.Timestamp.now(tz="UTC") if now is None else _to_utc_timestamp(now)
    )
    current_boundary = current_time.floor(f"{interval_minutes}min")
    return current_boundary - pandas.Timedelta(minutes=interval_minutes)


def fetch_recent_history(
    bar_count: int,
    now: datetime.datetime | None = None,
    symbol: str = config.DEFAULT_SYMBOL,
    interval: str = config.DEFAULT_INTERVAL,
) -> pandas.DataFrame:
    """Download the last ``bar_count`` completed bars.

    The request ends one millisecond before the current interval boundary,
    so the still-forming bar is never included.
    """
    interval_minutes = interval_to_minutes(interval)
    last_closed_start = determine_last_closed_bar_start(now, interval_minutes)
    end_timestamp = (
        last_closed_start
        + pandas.Timedelta(minutes=interval_minutes)
        - pandas.Timedelta(milliseconds=1)
    )
    start_timestamp = end_timestamp - pandas.Timedelta(minutes=interval_minutes * bar_count)
    price_frame = fetch_price_history(
        start=start_timestamp, end=end_timestamp, symbol=symbol, interval=interval
    )
    return price_frame.loc[price_frame["time"] <= last_closed_start].reset_index(drop=True)


def fetch_realtime_price(symbol: str = config.DEFAULT_SYMBOL) -> float:
    """Return the last traded price for ``symbol``.

    Raises
    ------
    DataUnavailableError
        If the ticker endpoint reports an error or no ticker.
    """
    payload = _request_json(
        f"{config.BYBIT_API_BASE}/tickers", {"category": "linear", "symbol": symbol}
    )
    ticker_list = (payload.get("result") or {}).get("list") or []
    if payload.get("retCode") != 0 or not ticker_list:
        raise DataUnavailableError(
            payload.get("retMsg") or f"Failed to fetch real-time price for {symbol}"
        )
    return float(ticker_list[0]["lastPrice"])


def load_local_history(csv_path: Path | None) -> pandas.DataFrame:
    """Load bars from a local CSV with ``time`` and ``close`` columns.

    Returns an empty frame when the file is missing or unreadable. Numeric
    ``time`` values are interpreted as epoch milliseconds.
    """
    if csv_path is None or not csv_path.exists():
        LOGGER.warning("Local CSV not found: %s", csv_path)
        return empty_price_frame()
    try:
        frame = pandas.read_csv(csv_path)
    except (OSError, ValueError, pandas.errors.ParserError) as read_error:
        LOGGER.warning("Failed to read local CSV %s: %s", csv_path, read_error)
        return empty_price_frame()
    frame.columns = [str(name).lower().replace(" ", "_") for name in frame.columns]
    if frame.empty or not {"time", "close"}.issubset(frame.columns):
        LOGGER.warning("Local CSV %s lacks time/close columns", csv_path)
        return empty_price_frame()

    if pandas.api.types.is_numeric_dtype(frame["time"]):
        time_series = pandas.to_datetime(frame["time"], unit="ms", utc=True)
    else:
        time_series = pandas.to_datetime(frame["time"], utc=True)
    price_frame = pandas.DataFrame(
        {"time": time_series, "close": frame["close"].astype(float)}
    )
    return (
        price_frame.dropna(subset=["close"])
        .drop_duplicates(subset="time", keep="first")
        .sort_values("time")
        .reset_index(drop=True)
    )
