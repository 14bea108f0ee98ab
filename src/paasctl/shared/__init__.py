"""Shared modules for paasctl.

This module provides functionality used across the CLI and the core:
- Logging setup
- ~/.paasctl/ paths
"""

from .logging import configure_logging, get_logger
from .paths import BACKUP_DIR, LOG_DIR, PAASCTL_DIR, ensure_dirs, get_log_file

__all__ = [
    # Paths
    "PAASCTL_DIR",
    "LOG_DIR",
    "BACKUP_DIR",
    "ensure_dirs",
    "get_log_file",
    # Logging
    "configure_logging",
    "get_logger",
]
