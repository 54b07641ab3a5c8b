"""
Utility modules for the session scheduling backend.

This package contains shared helpers used across the application:
datetime normalization between the practice timezone and UTC instants,
and reusable session queries.
"""

from utils.datetime_utils import APP_TZ, ensure_utc, utc_now

__all__ = ['APP_TZ', 'ensure_utc', 'utc_now']
