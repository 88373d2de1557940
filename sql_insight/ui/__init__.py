"""
UI module - human-facing output on stderr.
"""

from .console import ConsoleUI

__all__ = ["ConsoleUI"]
