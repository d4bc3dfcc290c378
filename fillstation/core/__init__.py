"""Core runtime modules of the fill session controller."""

from . import logger, configio, models, countdown, poller, admission

__all__ = [
    "logger",
    "configio",
    "models",
    "countdown",
    "poller",
    "admission",
]
