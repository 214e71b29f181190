"""
Constants used across the match reservation and rating system.
"""

import os

# ELO calculation constants
K_SINGLES = 20  # K-factor for singles ratings
K_DOUBLES = 20  # K-factor for doubles ratings
INITIAL_ELO = 1500
MIN_ELO = 0  # Ratings never drop below this floor

# Slot reservation holds
SLOT_LOCK_EXPIRATION_HOURS = float(os.getenv("SLOT_LOCK_EXPIRATION_HOURS", "2"))

# Confirming a slot rejects the applicant's other applications within this window
OVERLAP_BUFFER_HOURS = 2

# Notification collaborator gives up on a channel after this many failed attempts
MAX_DELIVERY_RETRIES = 3

# Sets needed to win a best-of-3 match
SETS_TO_WIN = 2
