"""Interactive shell for backtesting and live monitoring."""

from __future__ import annotations

import cmd
import logging
import sys
from pathlib import Path
from typing import List

from . import config, data_loader, report
from .backtest import BacktestParameters, run_strategy_report
from .cli import format_report_summary
from .errors import DataUnavailableError, InvalidParameterError
from .monitor import MonitorSession
from .notifier import TelegramNotifier

LOGGER = logging.getLogger(__name__)

STRATEGY_USAGE = "LOGIC SIDE WINDOW ENTRY_THRESHOLD EXIT_THRESHOLD"


def _parse_strategy_arguments(argument_parts: List[str]) -> BacktestParameters:
    """Build validated parameters from ``LOGIC SIDE WINDOW ENTRY EXIT`` tokens."""
    logic, side, window_text, entry_text, exit_text = argument_parts
    try:
        parameters = BacktestParameters(
            window=int(window_text),
            entry_threshold=float(entry_text),
            exit_threshold=float(exit_text),
            logic=logic,
            side=side,
        )
    except ValueError as conversion_error:
        raise InvalidParameterError(
            f"Could not parse strategy parameters: {conversion_error}"
        ) from conversion_error
    parameters.validate()
    return parameters


class StrategyShell(cmd.Cmd):
    """Interactive command shell for z-score strategy research."""

    intro = "Z-score strategy shell. Type help or ? to list commands."
    prompt = "(zscore-strategy) "

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.notifier: TelegramNotifier | None = None
        self.monitor_session: MonitorSession | None = None

    @property
    def is_monitoring(self) -> bool:
        return self.monitor_session is not None and self.monitor_session.is_running

    def do_run_backtest(self, argument_line: str) -> None:  # noqa: D401
        """run_backtest LOGIC SIDE WINDOW ENTRY_THRESHOLD EXIT_THRESHOLD [OUTPUT_DIRECTORY]
        Backtest the strategy on hourly history since the default start date."""
        argument_parts: List[str] = argument_line.split()
        if len(argument_parts) not in (5, 6):
            self.stdout.write(f"usage: run_backtest {STRATEGY_USAGE} [OUTPUT_DIRECTORY]\n")
            return
        if self.is_monitoring:
            self.stdout.write("Please stop monitoring before running a new backtest\n")
            return
        try:
            parameters = _parse_strategy_arguments(argument_parts[:5])
        except InvalidParameterError as parameter_error:
            self.stdout.write(f"Error: {parameter_error}\n")
            return

        try:
            price_frame = data_loader.fetch_price_history(
                start=config.DEFAULT_HISTORY_START
            )
            backtest_report = run_strategy_report(price_frame, parameters)
        except DataUnavailableError as data_error:
            self.stdout.write(f"Error: {data_error}\n")
            return

        self.stdout.write(format_report_summary(backtest_report) + "\n")
        output_directory = (
            Path(argument_parts[5]) if len(argument_parts) == 6 else config.REPORT_DIRECTORY
        )
        output_path = output_directory / report.build_report_file_name(parameters)
        report.write_backtest_report(backtest_report.results, output_path)
        self.stdout.write(f"Report written to {output_path}\n")

    def help_run_backtest(self) -> None:
        """Display help for the run_backtest command."""
        self.stdout.write(
            f"run_backtest {STRATEGY_USAGE} [OUTPUT_DIRECTORY]\n"
            "Backtest the z-score strategy and write the per-bar CSV report.\n"
            "Parameters:\n"
            "  LOGIC: trend or fast.\n"
            "  SIDE: long, short or both.\n"
            "  WINDOW: Lookback window between 1 and 1000 bars.\n"
            "  ENTRY_THRESHOLD: Entry z-score in (0, 5].\n"
            "  EXIT_THRESHOLD: Exit z-score in [-5, 0).\n"
            "  OUTPUT_DIRECTORY: Optional report directory (default data/reports).\n"
        )

    def do_test_telegram(self, argument_line: str) -> None:  # noqa: D401
        """test_telegram TOKEN CHAT_ID
        Send a test message and keep the credentials for monitoring."""
        argument_parts: List[str] = argument_line.split()
        if len(argument_parts) != 2:
            self.stdout.write("usage: test_telegram TOKEN CHAT_ID\n")
            return
        bot_token, chat_id = argument_parts
        try:
            int(chat_id)
        except ValueError:
            self.stdout.write("Error: Chat ID must be numeric\n")
            return
        notifier = TelegramNotifier(bot_token, chat_id)
        if notifier.send_test_message():
            self.notifier = notifier
            self.stdout.write("Telegram connection test successful\n")
        else:
            self.stdout.write(
                "Telegram connection test failed. Please check Token and Chat ID.\n"
            )

    def help_test_telegram(self) -> None:
        """Display help for the test_telegram command."""
        self.stdout.write(
            "test_telegram TOKEN CHAT_ID\n"
            "Send a Telegram test message. Monitoring requires a successful test.\n"
        )

    def do_start_monitor(self, argument_line: str) -> None:  # noqa: D401
        """start_monitor LOGIC SIDE WINDOW ENTRY_THRESHOLD EXIT_THRESHOLD
        Start hourly live monitoring with Telegram status updates."""
        argument_parts: List[str] = argument_line.split()
        if len(argument_parts) != 5:
            self.stdout.write(f"usage: start_monitor {STRATEGY_USAGE}\n")
            return
        if self.notifier is None:
            self.stdout.write("Please configure Telegram with test_telegram first\n")
            return
        if self.is_monitoring:
            self.stdout.write("Monitoring is already running\n")
            return
        try:
            parameters = _parse_strategy_arguments(argument_parts)
        except InvalidParameterError as parameter_error:
            self.stdout.write(f"Error: {parameter_error}\n")
            return
        self.monitor_session = MonitorSession(parameters, self.notifier)
        first_result = self.monitor_session.start()
        self.stdout.write("Monitoring started\n")
        if first_result is not None:
            self.stdout.write(
                f"Last bar {first_result.bar_time}: close {first_result.close:,.2f}, "
                f"z-score {first_result.zscore:.2f}, "
                f"{first_result.transition.action_label}\n"
            )

    def help_start_monitor(self) -> None:
        """Display help for the start_monitor command."""
        self.stdout.write(
            f"start_monitor {STRATEGY_USAGE}\n"
            "Evaluate the strategy on every newly closed hourly bar and send a\n"
            "Telegram status message each hour.\n"
        )

    def do_stop_monitor(self, argument_line: str) -> None:  # noqa: D401
        """stop_monitor
        Stop live monitoring and reset the position state."""
        if not self.is_monitoring:
            self.stdout.write("Monitoring is not running\n")
            return
        self.monitor_session.stop()
        self.monitor_session = None
        self.stdout.write("Monitoring stopped\n")

    def help_stop_monitor(self) -> None:
        """Display help for the stop_monitor command."""
        self.stdout.write("stop_monitor\nStop live monitoring.\n")

    def do_monitor_status(self, argument_line: str) -> None:  # noqa: D401
        """monitor_status
        Show the current live position."""
        if not self.is_monitoring:
            self.stdout.write("Not monitoring\n")
            return
        state = self.monitor_session.state
        self.stdout.write(
            f"Position: {state.current_position}, "
            f"last bar: {state.last_processed_hour_start}\n"
        )

    def do_exit(self, argument_line: str) -> bool:  # noqa: D401
        """exit
        Exit the shell."""
        if self.is_monitoring:
            self.monitor_session.stop()
        self.stdout.write("Bye\n")
        return True

    def help_exit(self) -> None:
        """Display help for the exit command."""
        self.stdout.write("exit\nExit the shell.\n")

    def do_EOF(self, arg: str) -> bool:
        """Exit the shell when an end-of-file (EOF) condition is reached."""
        return self.do_exit(arg)


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    if sys.argv[1:]:
        StrategyShell().onecmd(" ".join(sys.argv[1:]))
    else:
        StrategyShell().cmdloop()
