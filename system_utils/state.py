"""
Shared State Module for system_utils package.
Contains the task tracker and process-wide constants.

CRITICAL: This module imports NOTHING from the system_utils package to
prevent circular imports.
"""
from __future__ import annotations

from logging_config import get_logger

# Initialize Logger for this module
logger = get_logger(__name__)

# ==========================================
# CONSTANTS
# ==========================================

# Icons kept on disk before the oldest are pruned
_MAX_ICON_FILES = 50

# Seconds in-flight notifications get to finish during shutdown
SHUTDOWN_GRACE_SECONDS = 1.0

# ==========================================
# TASK TRACKING
# ==========================================

# Global set to track background tasks and prevent garbage collection
_background_tasks: set = set()
