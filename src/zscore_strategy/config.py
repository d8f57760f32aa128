"""Configuration settings for backtests and live monitoring.

Market data is retrieved from the public Bybit v5 REST API, which serves
candlesticks newest first in pages of at most 1000 bars. Notifications are
sent through the Telegram Bot API. Bot credentials are read from the
``TELEGRAM_BOT_TOKEN`` and ``TELEGRAM_CHAT_ID`` environment variables when
they are not supplied explicitly.
"""

from __future__ import annotations

import os
from pathlib import Path

REPOSITORY_ROOT = Path(__file__).resolve().parents[2]

BYBIT_API_BASE = "https://api.bybit.com/v5/market"
TELEGRAM_API_BASE = "https://api.telegram.org/bot"

DEFAULT_SYMBOL = "BTCUSDT"
# Bybit interval identifier; "60" denotes hourly candles.
DEFAULT_INTERVAL = "60"
DEFAULT_HISTORY_START = "2022-01-01T00:00:00Z"
KLINE_PAGE_LIMIT = 1000
REQUEST_TIMEOUT_SECONDS = 30
MAXIMUM_REQUEST_ATTEMPTS = 3

DEFAULT_WINDOW = 200
DEFAULT_ENTRY_THRESHOLD = 2.3
DEFAULT_EXIT_THRESHOLD = -1.0
DEFAULT_LOGIC = "trend"
DEFAULT_SIDE = "both"

MONITOR_POLL_INTERVAL_SECONDS = 10.0
# Extra bars requested beyond the window so a missing candle does not
# leave the trailing window short.
MONITOR_HISTORY_PADDING = 10

DATA_DIRECTORY = REPOSITORY_ROOT / "data"
REPORT_DIRECTORY = DATA_DIRECTORY / "reports"
DEFAULT_LOG_PATH = REPOSITORY_ROOT / "logs" / "zscore_strategy.log"

TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN", "")
TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID", "")
