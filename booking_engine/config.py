"""Environment-driven settings for the booking engine."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Shortest phone number accepted as a client identifier
MIN_CLIENT_PHONE_LENGTH = int(os.getenv("MIN_CLIENT_PHONE_LENGTH", "10"))

# Used when a booking request omits the duration
DEFAULT_DURATION_MINUTES = int(os.getenv("DEFAULT_DURATION_MINUTES", "60"))

# How long a booking request waits for the staff/client locks before giving up
LOCK_TIMEOUT_SECONDS = float(os.getenv("LOCK_TIMEOUT_SECONDS", "5.0"))
