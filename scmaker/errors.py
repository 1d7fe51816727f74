"""Exception types raised across the market maker."""

from __future__ import annotations


class ScMakerError(Exception):
    """Base class for every error raised by scmaker."""


class ConfigError(ScMakerError, ValueError):
    """Invalid or missing configuration value."""

    def __init__(self, key: str, message: str):
        super().__init__(f"{key}: {message}")
        self.key = key


class ScaleError(ConfigError):
    """Scale function can not be solved with the configured domain/range."""


class QueryError(ScMakerError):
    """Ticker, balance or account query failed."""


class OrderSubmitError(ScMakerError):
    """A single order intent was rejected or could not be sent."""


class OrderCancelError(ScMakerError):
    """Cancelling an order failed."""
