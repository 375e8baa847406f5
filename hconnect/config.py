"""
Centralised configuration constants and environment helpers.
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

# ── Hosted backend ───────────────────────────────────────────────────
SUPABASE_URL_VAR = "SUPABASE_URL"
SUPABASE_KEY_VAR = "SUPABASE_ANON_KEY"
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "15"))

# CLI keeps the signed-in session here between runs (unset = memory only).
SESSION_FILE = os.getenv("HCONNECT_SESSION_FILE") or None

# Refresh the access token this many seconds before it actually expires.
TOKEN_EXPIRY_MARGIN_SECONDS = 10

# ── Roles / routing ──────────────────────────────────────────────────
ROLES = ("patient", "doctor", "admin")
APPOINTMENT_STATUSES = (
    "pending", "approved", "in_progress", "completed", "cancelled", "rescheduled",
)

UNAUTHENTICATED_PATH = "/auth"
LANDING_PATHS = {
    "patient": "/patient",
    "doctor": "/doctor",
    "admin": "/admin",
}

# ── Screens ──────────────────────────────────────────────────────────
# Static slot list; there is no availability engine behind it.
TIME_SLOTS = (
    "09:00", "09:30", "10:00", "10:30", "11:00", "11:30",
    "14:00", "14:30", "15:00", "15:30", "16:00", "16:30",
)
MIN_PASSWORD_LENGTH = 6
DEFAULT_SPECIALTY = "General"
HOSPITAL_ADMIN_SPECIALTY = "Hospital Admin"

PATIENT_RECENT_APPOINTMENTS = 10
PATIENT_RECENT_INVOICES = 5
PATIENT_RECENT_PRESCRIPTIONS = 5
ADMIN_APPOINTMENT_LIMIT = 50

# PostgREST error code for a unique constraint violation.
UNIQUE_VIOLATION = "23505"

# ── API server ───────────────────────────────────────────────────────
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value
