"""Logging and timing helpers."""

from .logging import setup_logging
from .timing import prettytime

__all__ = ['setup_logging', 'prettytime']
