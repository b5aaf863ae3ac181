"""
Utility modules for the scheduling backend.

This package contains shared helpers used across the services, including
time-of-day arithmetic and the injectable clock.
"""

from utils.time_utils import add_minutes, check_time_overlap, day_of_week

__all__ = ['add_minutes', 'check_time_overlap', 'day_of_week']
