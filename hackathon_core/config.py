import os
from pathlib import Path

# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR}/hackathons.db")

# Identity
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "hackathon_session")
SESSION_EXPIRE_DAYS = int(os.getenv("SESSION_EXPIRE_DAYS", "7"))

# Submissions
LATE_SUBMISSION_GRACE_HOURS = int(os.getenv("LATE_SUBMISSION_GRACE_HOURS", "24"))

# Teams
JOIN_CODE_LENGTH = int(os.getenv("JOIN_CODE_LENGTH", "6"))
JOIN_CODE_ATTEMPTS = int(os.getenv("JOIN_CODE_ATTEMPTS", "10"))
DEFAULT_MAX_TEAM_SIZE = int(os.getenv("DEFAULT_MAX_TEAM_SIZE", "4"))

# Registrations: "auto" approves on creation, "manual" leaves them pending
# until a moderator approves them outside this service.
REGISTRATION_APPROVAL = os.getenv("REGISTRATION_APPROVAL", "auto").lower()

# Notifications: "database" stores in-app alerts, "log" only logs them
NOTIFIER = os.getenv("NOTIFIER", "database").lower()

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE") or None

# Seeded on startup when no account with this email exists
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "password")
