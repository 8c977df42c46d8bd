"""
Logging module for embeddb.
This module provides the root logger setup shared by the console entry and tests.
"""

from .setup import setup_logging

__all__ = ["setup_logging"]
