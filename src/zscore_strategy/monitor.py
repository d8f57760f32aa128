"""Live monitoring of the z-score strategy on newly closed bars.

:class:`LiveSignalStateMachine` applies the same transition rules as the
batch signal generator, but against an explicit :class:`LiveState` instead
of the previous element of a series. :class:`MonitorSession` owns that state
for the lifetime of one monitoring session and drives the state machine from
a polling loop that wakes up on every hour rollover.
"""

from __future__ import annotations

import datetime
import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable

import pandas
import requests

from . import config
from .backtest import BacktestParameters
from .data_loader import fetch_recent_history, interval_to_minutes
from .errors import DataUnavailableError
from .indicators import latest_zscore
from .notifier import TelegramNotifier
from .signals import FLAT_POSITION, LONG_POSITION, SHORT_POSITION, get_transition_rule

LOGGER = logging.getLogger(__name__)

POSITION_LABELS = {LONG_POSITION: "long", SHORT_POSITION: "short", FLAT_POSITION: "none"}
LABEL_POSITIONS = {label: position for position, label in POSITION_LABELS.items()}

HistoryFetcher = Callable[..., pandas.DataFrame]
Clock = Callable[[], datetime.datetime]


@dataclass(frozen=True)
class LiveState:
    """Position state carried between monitoring ticks."""

    last_processed_hour_start: pandas.Timestamp | None = None
    current_position: str = "none"


@dataclass(frozen=True)
class LiveTransition:
    """Result of applying one closed bar to a :class:`LiveState`."""

    state: LiveState
    previous_position: str
    new_position: str
    signal_kind: str
    action_label: str


def determine_signal_kind(previous_position: str, new_position: str) -> str:
    """Classify a position change.

    The classification depends only on the old and new positions. A direct
    flip between long and short is reported as an entry into the new side.
    """
    if previous_position == new_position:
        return "none"
    if previous_position == "long" and new_position == "none":
        return "exit_long"
    if previous_position == "short" and new_position == "none":
        return "exit_short"
    if new_position == "long":
        return "entry_long"
    if new_position == "short":
        return "entry_short"
    return "none"


def determine_action_label(previous_position: str, new_position: str) -> str:
    """Return a human readable description of a position change."""
    if new_position == "long" and previous_position != "long":
        return "Enter Long"
    if new_position == "short" and previous_position != "short":
        return "Enter Short"
    if previous_position == "long" and new_position == "none":
        return "Close Long"
    if previous_position == "short" and new_position == "none":
        return "Close Short"
    if new_position == "long":
        return "Hold Long"
    if new_position == "short":
        return "Hold Short"
    return "No position (no new signal)"


class LiveSignalStateMachine:
    """Evaluate one z-score at a time against the current position."""

    def __init__(
        self, entry_threshold: float, exit_threshold: float, logic: str, side: str
    ) -> None:
        self.entry_threshold = entry_threshold
        self.exit_threshold = exit_threshold
        self.logic = logic
        self.side = side
        self._rule = get_transition_rule(logic, side)

    @staticmethod
    def is_new_bar(state: LiveState, bar_time: pandas.Timestamp) -> bool:
        """Return ``True`` when ``bar_time`` has not been processed yet."""
        return (
            state.last_processed_hour_start is None
            or bar_time > state.last_processed_hour_start
        )

    def advance(
        self, state: LiveState, bar_time: pandas.Timestamp, zscore: float
    ) -> LiveTransition:
        """Apply the z-score of the bar starting at ``bar_time``."""
        previous_position = state.current_position
        position_value = self._rule(
            LABEL_POSITIONS[previous_position],
            zscore,
            self.entry_threshold,
            self.exit_threshold,
        )
        new_position = POSITION_LABELS[position_value]
        return LiveTransition(
            state=replace(
                state,
                last_processed_hour_start=bar_time,
                current_position=new_position,
            ),
            previous_position=previous_position,
            new_position=new_position,
            signal_kind=determine_signal_kind(previous_position, new_position),
            action_label=determine_action_label(previous_position, new_position),
        )


@dataclass(frozen=True)
class TickResult:
    """Outcome of a monitoring tick that processed a new bar."""

    bar_time: pandas.Timestamp
    close: float
    zscore: float
    transition: LiveTransition
    notification_delivered: bool


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.timezone.utc)


class MonitorSession:
    """Own the live state of one monitoring session.

    Parameters
    ----------
    parameters: BacktestParameters
        Strategy parameters evaluated on every closed bar.
    notifier: TelegramNotifier
        Receives one status message per newly closed bar.
    history_fetcher:
        Callable returning the trailing completed bars. It receives the bar
        count positionally and ``now``, ``symbol`` and ``interval`` as
        keyword arguments.
    clock:
        Callable returning the current time.
    """

    def __init__(
        self,
        parameters: BacktestParameters,
        notifier: TelegramNotifier,
        history_fetcher: HistoryFetcher = fetch_recent_history,
        clock: Clock = _utc_now,
        poll_interval_seconds: float = config.MONITOR_POLL_INTERVAL_SECONDS,
        symbol: str = config.DEFAULT_SYMBOL,
        interval: str = config.DEFAULT_INTERVAL,
    ) -> None:
        parameters.validate()
        self.parameters = parameters
        self.notifier = notifier
        self.history_fetcher = history_fetcher
        self.clock = clock
        self.poll_interval_seconds = poll_interval_seconds
        self.symbol = symbol
        self.interval = interval
        self.interval_minutes = interval_to_minutes(interval)
        self.state_machine = LiveSignalStateMachine(
            parameters.entry_threshold,
            parameters.exit_threshold,
            parameters.logic,
            parameters.side,
        )
        self._state = LiveState()
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._worker: threading.Thread | None = None
        self._running = False

    @property
    def state(self) -> LiveState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    def _current_boundary(self) -> pandas.Timestamp:
        current_time = pandas.Timestamp(self.clock())
        if current_time.tzinfo is None:
            current_time = current_time.tz_localize("UTC")
        return current_time.floor(f"{self.interval_minutes}min")

    def tick(self) -> TickResult | None:
        """Process the latest closed bar if it has not been seen yet.

        Returns ``None`` without computing anything when the newest bar was
        already processed. The position transition is committed before the
        status message is sent, so a failed delivery leaves it in place.

        Raises
        ------
        DataUnavailableError
            If no bars, or fewer bars than the window, were returned.
        """
        with self._tick_lock:
            window_size = self.parameters.window
            price_frame = self.history_fetcher(
                window_size + config.MONITOR_HISTORY_PADDING,
                now=self.clock(),
                symbol=self.symbol,
                interval=self.interval,
            )
            if price_frame.empty:
                raise DataUnavailableError("No recent bars available")
            bar_time = pandas.Timestamp(price_frame["time"].iloc[-1])
            if not self.state_machine.is_new_bar(self._state, bar_time):
                LOGGER.debug("Bar %s already processed", bar_time)
                return None

            _, _, zscore = latest_zscore(price_frame["close"], window_size)
            close_price = float(price_frame["close"].iloc[-1])
            transition = self.state_machine.advance(self._state, bar_time, zscore)
            self._state = transition.state
            if transition.signal_kind != "none":
                LOGGER.info(
                    "Signal %s at %s (z-score %.2f)",
                    transition.signal_kind,
                    bar_time,
                    zscore,
                )

            bar_close_time = bar_time + pandas.Timedelta(minutes=self.interval_minutes)
            delivered = self.notifier.send_hourly_update(
                time_label=bar_close_time.strftime("%H:%M"),
                date_label=bar_close_time.strftime("%Y-%m-%d"),
                zscore=zscore,
                price=close_price,
                position_label=transition.new_position,
                window_size=window_size,
                entry_threshold=self.parameters.entry_threshold,
                exit_threshold=self.parameters.exit_threshold,
                logic=self.parameters.logic,
                side=self.parameters.side,
            )
            if not delivered:
                LOGGER.warning(
                    "Hourly Telegram message for %s failed to send", bar_time
                )
            return TickResult(
                bar_time=bar_time,
                close=close_price,
                zscore=zscore,
                transition=transition,
                notification_delivered=delivered,
            )

    def _tick_safely(self) -> TickResult | None:
        if self._stop_event.is_set():
            return None
        try:
            return self.tick()
        except (DataUnavailableError, requests.RequestException) as tick_error:
            LOGGER.error("Error checking trading signal: %s", tick_error)
            return None

    def _run_loop(self, last_boundary: pandas.Timestamp) -> None:
        while not self._stop_event.wait(self.poll_interval_seconds):
            current_boundary = self._current_boundary()
            if current_boundary <= last_boundary:
                continue
            last_boundary = current_boundary
            LOGGER.info("Hour changed; refreshing trading signal")
            self._tick_safely()

    def start(self, run_in_background: bool = True) -> TickResult | None:
        """Reset the state, evaluate the latest bar and start polling.

        With ``run_in_background`` set to ``False`` the polling loop runs in
        the calling thread until :meth:`stop` is called from another thread.
        """
        if self._running:
            return None
        with self._tick_lock:
            self._state = LiveState()
        self._stop_event.clear()
        self._running = True
        # Sampled before the first tick so a rollover during it is not missed.
        last_boundary = self._current_boundary()
        LOGGER.info(
            "Monitoring started for %s (%s/%s, window %d)",
            self.symbol,
            self.parameters.logic,
            self.parameters.side,
            self.parameters.window,
        )
        first_result = self._tick_safely()
        if run_in_background:
            self._worker = threading.Thread(
                target=self._run_loop,
                args=(last_boundary,),
                name="zscore-monitor",
                daemon=True,
            )
            self._worker.start()
        else:
            self._run_loop(last_boundary)
        return first_result

    def stop(self) -> None:
        """Stop polling and reset the live state."""
        if not self._running:
            return
        self._stop_event.set()
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join()
        self._worker = None
        with self._tick_lock:
            self._state = LiveState()
        self._running = False
        LOGGER.info("Live monitoring stopped")
