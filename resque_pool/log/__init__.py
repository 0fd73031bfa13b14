"""
Logging module for the pool manager.
This module provides functionality to set up logging and reopen log files.
"""

from .setup import MainFormatter, reopen_logs, setup_logging

__all__ = ["MainFormatter", "reopen_logs", "setup_logging"]
