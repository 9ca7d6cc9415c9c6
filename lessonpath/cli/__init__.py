"""
Terminal interface for lessonpath.
"""

from .main import app, run

__all__ = ["app", "run"]
