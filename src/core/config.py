"""
Application configuration using python-dotenv.

This module loads environment variables from .env file into os.environ
for use throughout the application.
"""

import os
import pathlib
from dotenv import load_dotenv


# Determine if we're running in a test environment
# Don't load .env file during testing to ensure predictable test behavior
is_testing = os.getenv("PYTEST_VERSION") is not None

# Load .env file into os.environ (only outside of testing)
if not is_testing:
    possible_paths = [
        pathlib.Path(__file__).parent.parent.parent / ".env",  # project root (when run from src)
        pathlib.Path.cwd() / ".env",  # .env in current directory
    ]

    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(env_path)
            break


def get_database_url():
    """Get the database URL from environment."""
    return os.getenv(
        "DATABASE_URL",
        "postgresql://localhost/clinic_scheduling_dev"
    )

DATABASE_URL = get_database_url()

# Isolation level for the check-then-write transactions of the schedule,
# exception and appointment stores. Overlap checks are only race-free under
# SERIALIZABLE (or row locks on the same doctor/day key).
DB_ISOLATION_LEVEL = os.getenv("DB_ISOLATION_LEVEL", "SERIALIZABLE")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Slot and appointment durations (minutes)
DEFAULT_SLOT_DURATION_MINUTES = int(os.getenv("DEFAULT_SLOT_DURATION_MINUTES", "30"))
DEFAULT_APPOINTMENT_DURATION_MINUTES = int(os.getenv("DEFAULT_APPOINTMENT_DURATION_MINUTES", "30"))
MIN_APPOINTMENT_DURATION_MINUTES = int(os.getenv("MIN_APPOINTMENT_DURATION_MINUTES", "15"))

# Search windows (days)
NEXT_AVAILABLE_MAX_DAYS = int(os.getenv("NEXT_AVAILABLE_MAX_DAYS", "30"))
NEXT_WORKING_DAY_MAX_DAYS = int(os.getenv("NEXT_WORKING_DAY_MAX_DAYS", "14"))
UPCOMING_APPOINTMENT_DAYS = int(os.getenv("UPCOMING_APPOINTMENT_DAYS", "7"))

# Result sizes
DEFAULT_UPCOMING_EXCEPTIONS_LIMIT = int(os.getenv("DEFAULT_UPCOMING_EXCEPTIONS_LIMIT", "10"))
DEFAULT_NEXT_SLOTS_COUNT = int(os.getenv("DEFAULT_NEXT_SLOTS_COUNT", "10"))
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))
