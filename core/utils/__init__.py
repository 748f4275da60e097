"""
Core Utilities Package

Modules:
    - time: The millisecond clock used by signers and the live stream
"""

from core.utils.time import Clock, current_utc_datetime, now_ms

__all__ = ["Clock", "current_utc_datetime", "now_ms"]
