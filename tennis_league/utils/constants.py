"""
Constants used across the league standings and match lifecycle code.
"""

import os

# Points awarded by the stats aggregator
POINTS_PER_WIN = 3
POINTS_PER_DRAW = 1
POINTS_PER_LOSS = 0

# Result validation
MAX_ANECDOTE_WORDS = 50
MAX_GAMES_PER_SET = 99

# Time blocks derived from a match start time: (name, first hour, last hour exclusive)
TIME_BLOCKS = (
    ("Morning", 7, 12),
    ("Afternoon", 12, 18),
    ("Evening", 18, 23),
)
WEEK_DAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

# Open match notifications
RECENT_NOTIFICATIONS_LIMIT = 5
DEDUP_FILTER_MAX_ENTRIES = 1000

# Read-through cache for roster/registration data
REGISTRY_CACHE_TTL_SECONDS = int(os.getenv("REGISTRY_CACHE_TTL_SECONDS", "60"))
