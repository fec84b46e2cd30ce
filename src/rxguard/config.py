"""Configuration for the interaction safety engine.

Loads settings from environment variables (via a .env file or the system
environment). Every setting has a default so the package can be imported
and tested without any environment configured.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if it exists (CI and Docker run without one)
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(_env_path)

# --- Check orchestration ---
# How many of the patient's other prescriptions (newest first) are pulled
# into a prescription check. Bounds the O(n^2) pair evaluation.
HISTORY_LIMIT: int = int(os.getenv("RXGUARD_HISTORY_LIMIT", "10"))

# Rolling window (days) used by the check-outcome statistics.
STATS_WINDOW_DAYS: int = int(os.getenv("RXGUARD_STATS_WINDOW_DAYS", "30"))

# Maximum number of medication pairs evaluated at the same time.
CHECK_CONCURRENCY: int = int(os.getenv("RXGUARD_CHECK_CONCURRENCY", "4"))

# --- External drug databases ---
# Upper bound (seconds) on a single fetch from an external source.
FETCH_TIMEOUT: float = float(os.getenv("RXGUARD_FETCH_TIMEOUT", "30.0"))

# Upper bound (seconds) on a connection probe.
PROBE_TIMEOUT: float = float(os.getenv("RXGUARD_PROBE_TIMEOUT", "5.0"))

# --- Data files ---
# Optional JSON file overriding the heuristic keyword sets.
KEYWORDS_FILE: str = os.getenv("RXGUARD_KEYWORDS_FILE", "")

# Optional JSON file seeding the in-memory medication/patient stores
# used by the bundled API server.
DATA_FILE: str = os.getenv("RXGUARD_DATA_FILE", "")

# --- Logging ---
LOG_LEVEL: str = os.getenv("RXGUARD_LOG_LEVEL", "INFO")
