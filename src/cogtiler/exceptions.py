# src/cogtiler/exceptions.py

"""
Exception hierarchy and the provider error notification channel.
"""

import logging
from typing import Callable, List

log = logging.getLogger(__name__)

__all__ = [
    "CogTilerError",
    "ConfigurationError",
    "UnsupportedProjectionError",
    "ExpressionError",
    "DecodeError",
    "ProviderNotReadyError",
    "ErrorEvent"
]

class CogTilerError(Exception):
    """Base class for all errors raised by cogtiler."""

class ConfigurationError(CogTilerError, ValueError):
    """
    Invalid provider or render configuration.

    Raised while a provider opens (bad render mode combination, band index
    outside the raster's sample count, unknown color scale...). Fatal to the
    provider instance.
    """

class UnsupportedProjectionError(ConfigurationError):
    """The raster CRS is not handled natively and no projection was supplied."""

class ExpressionError(ConfigurationError):
    """A band arithmetic expression could not be parsed or compiled."""

class DecodeError(CogTilerError, IOError):
    """The raster decoder failed to read a window."""

    def __init__(self, message: str, tile=None):
        super().__init__(message)
        self.tile = tile

class ProviderNotReadyError(CogTilerError, RuntimeError):
    """A tile or value was requested before the provider finished opening."""

class ErrorEvent:
    """
    Minimal listener registry used to signal tile failures to the host.

    Listeners receive the exception instance. A failing listener is logged
    and skipped so that one misbehaving handler cannot break rendering.
    """

    def __init__(self):
        self._listeners: List[Callable[[Exception], None]] = []

    def add_listener(self, listener: Callable[[Exception], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self.remove_listener(listener)

    def remove_listener(self, listener: Callable[[Exception], None]) -> bool:
        try:
            self._listeners.remove(listener)
            return True
        except ValueError:
            return False

    @property
    def number_of_listeners(self) -> int:
        return len(self._listeners)

    def raise_event(self, error: Exception) -> None:
        for listener in list(self._listeners):
            try:
                listener(error)
            except Exception as e:
                log.error(f"Error listener {listener!r} failed: {e}")
