"""Position rules that map z-scores to target positions.

Every combination of strategy logic and trading side is described by a pure
transition function ``rule(previous_position, zscore, entry, exit)`` stored
in :data:`TRANSITION_RULES`. The batch generator folds a rule over a whole
z-score series while the live monitor applies the same rule to its current
position one bar at a time, so both paths share a single decision table.

Positions are integers: ``1`` for long, ``-1`` for short and ``0`` for flat.
Thresholds are not validated here.
"""

from __future__ import annotations

import math
from typing import Callable, Dict, List, Tuple

import pandas

from .errors import InvalidParameterError

LOGIC_CHOICES: Tuple[str, ...] = ("trend", "fast")
SIDE_CHOICES: Tuple[str, ...] = ("long", "short", "both")

LONG_POSITION = 1
SHORT_POSITION = -1
FLAT_POSITION = 0

TransitionRule = Callable[[int, float, float, float], int]


def _trend_long(
    previous_position: int, zscore: float, entry_threshold: float, exit_threshold: float
) -> int:
    position = previous_position
    if zscore >= entry_threshold:
        position = LONG_POSITION
    if zscore <= exit_threshold:
        position = FLAT_POSITION
    return position


def _trend_short(
    previous_position: int, zscore: float, entry_threshold: float, exit_threshold: float
) -> int:
    position = previous_position
    if zscore >= entry_threshold:
        position = FLAT_POSITION
    if zscore <= exit_threshold:
        position = SHORT_POSITION
    return position


def _trend_both(
    previous_position: int, zscore: float, entry_threshold: float, exit_threshold: float
) -> int:
    """Go long above entry and short below exit, otherwise hold.

    The short branch is evaluated after the long branch, so with thresholds
    where both conditions hold at once the short position wins.
    """
    position = previous_position
    if zscore >= entry_threshold:
        position = LONG_POSITION
    if zscore <= exit_threshold:
        position = SHORT_POSITION
    return position


def _fast_rule(allow_long: bool, allow_short: bool) -> TransitionRule:
    """Build a fast rule from the four ordered sub-rules.

    The sub-rules are applied in a fixed priority: close a short when the
    z-score rises above exit, close a long when it falls below entry, open a
    long at or above entry, open a short at or below exit. For a single
    eligible side this is the stateless ``z >= entry`` or ``z <= exit`` test.
    """

    def rule(
        previous_position: int,
        zscore: float,
        entry_threshold: float,
        exit_threshold: float,
    ) -> int:
        position = previous_position
        if allow_short and position == SHORT_POSITION and zscore > exit_threshold:
            position = FLAT_POSITION
        if allow_long and position == LONG_POSITION and zscore < entry_threshold:
            position = FLAT_POSITION
        if allow_long and position == FLAT_POSITION and zscore >= entry_threshold:
            position = LONG_POSITION
        if allow_short and position == FLAT_POSITION and zscore <= exit_threshold:
            position = SHORT_POSITION
        return position

    return rule


TRANSITION_RULES: Dict[Tuple[str, str], TransitionRule] = {
    ("trend", "long"): _trend_long,
    ("trend", "short"): _trend_short,
    ("trend", "both"): _trend_both,
    ("fast", "long"): _fast_rule(allow_long=True, allow_short=False),
    ("fast", "short"): _fast_rule(allow_long=False, allow_short=True),
    # Two-sided fast logic holds between thresholds like the trend logic.
    ("fast", "both"): _trend_both,
}


def get_transition_rule(logic: str, side: str) -> TransitionRule:
    """Return the transition rule for ``logic`` and ``side``.

    Raises
    ------
    InvalidParameterError
        If either value is not a supported choice.
    """
    try:
        return TRANSITION_RULES[(logic, side)]
    except KeyError:
        raise InvalidParameterError(
            f"Unsupported strategy combination: logic={logic!r}, side={side!r}"
        ) from None


def next_position(
    previous_position: int,
    zscore: float,
    entry_threshold: float,
    exit_threshold: float,
    logic: str,
    side: str,
) -> int:
    """Apply a single bar's z-score to ``previous_position``.

    An undefined z-score leaves the position unchanged.
    """
    if zscore is None or math.isnan(zscore):
        return previous_position
    rule = get_transition_rule(logic, side)
    return rule(previous_position, zscore, entry_threshold, exit_threshold)


def generate_position_series(
    zscore_series: pandas.Series,
    entry_threshold: float,
    exit_threshold: float,
    logic: str,
    side: str,
) -> pandas.Series:
    """Return the forward-filled target position for every bar.

    Bars without a z-score inherit the previous bar's position, and bars
    before the first defined z-score hold ``0``.
    """
    rule = get_transition_rule(logic, side)
    position_list: List[int] = []
    current_position = FLAT_POSITION
    for zscore in zscore_series.to_numpy(dtype=float):
        if not math.isnan(zscore):
            current_position = rule(
                current_position, float(zscore), entry_threshold, exit_threshold
            )
        position_list.append(current_position)
    return pandas.Series(position_list, index=zscore_series.index, dtype="int64", name="position")


def generate_positions(
    scored_frame: pandas.DataFrame,
    entry_threshold: float,
    exit_threshold: float,
    logic: str,
    side: str,
) -> pandas.DataFrame:
    """Return ``scored_frame`` extended with a ``position`` column."""
    position_series = generate_position_series(
        scored_frame["zscore"], entry_threshold, exit_threshold, logic, side
    )
    return scored_frame.assign(position=position_series)
