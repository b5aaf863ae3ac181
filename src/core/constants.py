"""Application constants and configuration values."""

# Database field lengths
MAX_STRING_LENGTH = 255
MAX_STATUS_LENGTH = 20

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# Day numbering used by schedules: 0=Sunday ... 6=Saturday
DAY_NAMES = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']
UNKNOWN_DAY_NAME = 'Unknown'

SECONDS_PER_MINUTE = 60
MINUTES_PER_DAY = 24 * 60

# Reasons attached to unavailable slots
BLOCKED_SLOT_REASON = "Blocked"
BOOKED_SLOT_REASON = "Appointment booked"
OUTSIDE_WORKING_HOURS_REASON = "Outside working hours"
NOT_ENOUGH_TIME_REASON = "Not enough available time"
