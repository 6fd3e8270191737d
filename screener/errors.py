# -*- coding: utf-8 -*-
"""
Exception types shared by the screener and the backtester.
"""


class ScreenerError(Exception):
    """Base class for every error raised by this package."""


class InsufficientDataError(ScreenerError):
    """A series is shorter than the minimum window a computation needs."""

    def __init__(self, what: str, required: int, actual: int):
        self.what = what
        self.required = required
        self.actual = actual
        super().__init__(f"{what} needs at least {required} bars, got {actual}")


class InvalidInputError(ScreenerError):
    """Malformed numeric input such as a non-positive period."""
