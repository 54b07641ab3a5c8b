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
is_testing = os.getenv("PYTEST_VERSION") is not None or any("pytest" in str(frame) for frame in __import__('inspect').stack(0))

# Load .env file into os.environ (only outside of testing)
if not is_testing:
    # Try multiple possible locations for .env file
    possible_paths = [
        pathlib.Path(__file__).parent.parent.parent / ".env",  # backend/.env (when run from backend/src)
        pathlib.Path(__file__).parent.parent.parent.parent / ".env",  # .env at repository root
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
        "sqlite:///./sessions.db"
    )


DATABASE_URL = get_database_url()
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Practice timezone used to interpret wall-clock schedule patterns
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "America/Sao_Paulo")

# Scheduling engine
SESSION_BUFFER_MINUTES = int(os.getenv("SESSION_BUFFER_MINUTES", "1"))
DEFAULT_SESSION_DURATION_MINUTES = int(os.getenv("DEFAULT_SESSION_DURATION_MINUTES", "50"))
DEFAULT_RENEWAL_WEEKS = int(os.getenv("DEFAULT_RENEWAL_WEEKS", "12"))

# Hour of day (practice timezone) for the periodic auto-renewal scan
AUTO_RENEW_CHECK_HOUR = int(os.getenv("AUTO_RENEW_CHECK_HOUR", "6"))
AUTO_RENEW_SCHEDULER_ENABLED = os.getenv("AUTO_RENEW_SCHEDULER_ENABLED", "true").lower() == "true"
