"""Exception types raised by the z-score strategy package."""

from __future__ import annotations


class ZScoreStrategyError(Exception):
    """Base class for errors raised by this package."""


class DataUnavailableError(ZScoreStrategyError):
    """Raised when no price bars, or too few for the window, are available."""


class InvalidParameterError(ZScoreStrategyError, ValueError):
    """Raised when strategy parameters fall outside their accepted range."""


class NotificationFailureError(ZScoreStrategyError):
    """Raised when a notification that must be delivered could not be sent."""
