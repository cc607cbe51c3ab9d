"""
Utility Module for the Invoice Extraction Pipeline.

This module provides common utilities used across all other modules:
    - Logging configuration
    - Exception hierarchy
    - Common helpers
"""

from .logger import RunLoggerAdapter, get_logger, run_logger, setup_logger, setup_logger_from_config
from .helpers import (
    ensure_directory,
    remove_directory,
    get_file_extension,
    clamp,
    truncate_text,
)

__all__ = [
    'setup_logger',
    'setup_logger_from_config',
    'get_logger',
    'run_logger',
    'RunLoggerAdapter',
    'ensure_directory',
    'remove_directory',
    'get_file_extension',
    'clamp',
    'truncate_text',
]
