"""Centralized constants for CogniFlow.

All scheduling knobs, mastery weights and sync defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Scheduling (SM-2 family) ----------
INITIAL_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3

AGAIN_INTERVAL_DAYS = 1
HARD_INTERVAL_MULTIPLIER = 1.2
EASY_BONUS_MULTIPLIER = 1.3
EASY_GRADUATING_INTERVAL = 4
MAX_INTERVAL_DAYS = 36500

# Keyed by ReviewRating value (1=Again, 2=Hard, 3=Good, 4=Easy)
EASE_FACTOR_MODIFIERS = {
    1: -0.20,
    2: -0.15,
    3: 0.0,
    4: 0.15,
}

# Extra ease penalty per lapse beyond the second
REPEATED_LAPSE_PENALTY = 0.05
REPEATED_LAPSE_GRACE = 2

# ---------- Mastery ----------
MASTERY_SMOOTHING = 0.5
MASTERY_TARGETS = {
    1: 0.0,
    2: 0.45,
    3: 0.8,
    4: 1.0,
}
# Half-life of a memory, as a multiple of the current interval
MASTERY_HALF_LIFE_FACTOR = 2.0

# ---------- Leeches ----------
DEFAULT_LEECH_THRESHOLD = 8
DEFAULT_LEECH_ACTION = "suspend"
LEECH_TAG = "leech"

# ---------- Simulation ----------
DEFAULT_SIMULATION_DAYS = 30
DEFAULT_NEW_ITEMS_PER_DAY = 20
DEFAULT_RETENTION = 0.9

# ---------- Snapshot / Sync ----------
SNAPSHOT_VERSION = 9
IO_TIMEOUT = 30.0
IO_RETRIES = 2
RETRY_BACKOFF = 0.5  # seconds, doubled per attempt
