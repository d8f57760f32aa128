"""Telegram notifications for connectivity tests and live monitoring.

Message builders are plain functions so their output can be inspected
without network access. :class:`TelegramNotifier` posts the text to the Bot
API and reports delivery as a boolean; failures are logged and never raised
unless the caller asks for guaranteed delivery.
"""

from __future__ import annotations

import datetime
import logging
import math

import requests

from . import config
from .errors import NotificationFailureError

LOGGER = logging.getLogger(__name__)

SIGNAL_PRESENTATION = {
    "entry_long": ("🟢", "Long Entry Signal"),
    "entry_short": ("🔴", "Short Entry Signal"),
    "exit_long": ("🟡", "Long Exit Signal"),
    "exit_short": ("🟡", "Short Exit Signal"),
}
POSITION_TEXT = {"long": "Long", "short": "Short", "none": "Flat"}


def _format_price(price: float | None) -> str:
    if price is None or math.isnan(price):
        return "N/A"
    return f"${price:,.2f}"


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.timezone.utc)


def format_test_message(now: datetime.datetime | None = None) -> str:
    """Return the connectivity test message."""
    timestamp_text = (now or _utc_now()).strftime("%Y-%m-%d %H:%M:%S")
    return (
        "🤖 <b>Bitcoin Trading Strategy System</b>\n\n"
        "✅ Telegram connection test successful!\n"
        f"⏰ Time: {timestamp_text}\n\n"
        "System is ready to monitor Bitcoin prices and send trading signals."
    )


def format_signal_message(
    signal_kind: str,
    price: float,
    zscore: float,
    entry_threshold: float,
    exit_threshold: float,
    now: datetime.datetime | None = None,
) -> str:
    """Return the message announcing a single position transition."""
    emoji, action = SIGNAL_PRESENTATION.get(signal_kind, ("⚪", "Unknown Signal"))
    if signal_kind == "entry_long":
        reason = f"Z-Score ({zscore:.2f}) >= {entry_threshold} (price above mean)"
    elif signal_kind == "entry_short":
        reason = f"Z-Score ({zscore:.2f}) <= {exit_threshold} (price below mean)"
    elif signal_kind == "exit_long":
        reason = f"Z-Score ({zscore:.2f}) <= {exit_threshold} (price returning to mean)"
    elif signal_kind == "exit_short":
        reason = f"Z-Score ({zscore:.2f}) >= {entry_threshold} (price returning to mean)"
    else:
        reason = "Unknown reason"
    timestamp_text = (now or _utc_now()).strftime("%Y-%m-%d %H:%M:%S")
    return (
        f"{emoji} <b>{action}</b>\n\n"
        f"💰 Price: {_format_price(price)}\n"
        f"📊 Z-Score: {zscore:.2f}\n"
        f"📈 Reason: {reason}\n"
        f"⏰ Time: {timestamp_text}"
    )


def format_zscore_comparison(
    zscore: float, position_label: str, entry_threshold: float, exit_threshold: float
) -> str:
    """Compare ``zscore`` with the threshold relevant to the held position."""
    if position_label == "long":
        operator = ">" if zscore > entry_threshold else "<"
        return f"{zscore:.2f} {operator} {entry_threshold}"
    if position_label == "short":
        operator = "<" if zscore < exit_threshold else ">"
        return f"{zscore:.2f} {operator} {exit_threshold}"
    return f"{zscore:.2f}"


def format_hourly_update(
    time_label: str,
    date_label: str,
    zscore: float,
    price: float | None,
    position_label: str,
    window_size: int,
    entry_threshold: float,
    exit_threshold: float,
    logic: str,
    side: str,
) -> str:
    """Return the status message sent for every newly closed bar."""
    return (
        f"⏰ Hourly Monitor {time_label} ({date_label})\n"
        f"💰 Price: {_format_price(price)}\n"
        f"📚 Strategy: {logic} {side}\n"
        f"🪟 Window: {window_size}\n"
        f"📏 Thresholds: Entry {entry_threshold}, Exit {exit_threshold}\n"
        "📊 Z-Score: "
        f"{format_zscore_comparison(zscore, position_label, entry_threshold, exit_threshold)}\n"
        f"📌 Position: {POSITION_TEXT.get(position_label, 'Flat')}"
    )


class TelegramNotifier:
    """Send messages to a Telegram chat through the Bot API."""

    def __init__(self, bot_token: str | None = None, chat_id: str | None = None) -> None:
        self.bot_token = bot_token if bot_token is not None else config.TELEGRAM_BOT_TOKEN
        self.chat_id = chat_id if chat_id is not None else config.TELEGRAM_CHAT_ID
        self.base_url = f"{config.TELEGRAM_API_BASE}{self.bot_token}"

    def send_message(self, text: str) -> bool:
        """Post ``text`` to the configured chat.

        Returns
        -------
        bool
            ``True`` when Telegram acknowledged the message.
        """
        try:
            response = requests.post(
                f"{self.base_url}/sendMessage",
                data={"chat_id": self.chat_id, "text": text},
                timeout=config.REQUEST_TIMEOUT_SECONDS,
            )
            payload = response.json()
        except (requests.RequestException, ValueError) as send_error:
            LOGGER.warning("Error sending Telegram message: %s", send_error)
            return False
        delivered = payload.get("ok") is True
        if not delivered:
            LOGGER.warning(
                "Telegram rejected message: %s", payload.get("description", "unknown error")
            )
        return delivered

    def require_delivery(self, text: str) -> None:
        """Send ``text`` and raise if it was not delivered.

        Raises
        ------
        NotificationFailureError
            If Telegram did not acknowledge the message.
        """
        if not self.send_message(text):
            raise NotificationFailureError("Telegram message could not be delivered")

    def send_test_message(self, now: datetime.datetime | None = None) -> bool:
        return self.send_message(format_test_message(now))

    def send_signal(
        self,
        signal_kind: str,
        price: float,
        zscore: float,
        entry_threshold: float,
        exit_threshold: float,
    ) -> bool:
        return self.send_message(
            format_signal_message(signal_kind, price, zscore, entry_threshold, exit_threshold)
        )

    def send_hourly_update(
        self,
        time_label: str,
        date_label: str,
        zscore: float,
        price: float | None,
        position_label: str,
        window_size: int,
        entry_threshold: float,
        exit_threshold: float,
        logic: str,
        side: str,
    ) -> bool:
        return self.send_message(
            format_hourly_update(
                time_label,
                date_label,
                zscore,
                price,
                position_label,
                window_size,
                entry_threshold,
                exit_threshold,
                logic,
                side,
            )
        )
