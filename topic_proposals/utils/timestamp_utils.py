"""
Timestamp utilities for consistent time handling across the system.

All persisted timestamps are integer milliseconds since the Unix epoch.
"""

import time

MS_PER_DAY = 24 * 60 * 60 * 1000


def now_ms() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)
