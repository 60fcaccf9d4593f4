"""Exceptions raised by the rank expectancy backtest pipeline.

Every error carries the pipeline ``stage`` it came from so callers (the Flask
endpoint, the CLI) can report it without exposing a stack trace.
"""


class RankBacktestError(Exception):
    """Base exception for rank backtest runs."""

    stage = "engine"

    def __init__(self, message: str, stage: str = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class ConfigurationError(RankBacktestError, ValueError):
    """Raised for a missing credential, unknown environment or bad lever. Fatal."""

    stage = "config"


class InsufficientDataError(RankBacktestError):
    """Raised when alignment yields fewer timestamps than MIN_TIMESTAMPS."""

    stage = "alignment"


class UpstreamError(RankBacktestError):
    """Raised when the candle provider returned nothing for every instrument."""

    stage = "fetch"
