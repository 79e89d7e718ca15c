# config/validation.py

"""
Environment variable validation for the intake application.
Validates required environment variables at startup.
"""

import os
import sys
from typing import List, Tuple

from config.dedupe import DedupeConfigError, load_profile


def validate_environment(flask_env: str = None) -> Tuple[bool, List[str]]:
    """
    Validate required environment variables.

    Args:
        flask_env: Flask environment (development, production, testing)
                  If None, reads from FLASK_ENV environment variable

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if flask_env is None:
        flask_env = os.environ.get("FLASK_ENV", "development")

    errors = []

    # A broken dedupe profile silently weakens duplicate detection; check it everywhere.
    try:
        load_profile(os.environ)
    except DedupeConfigError as exc:
        errors.append(f"DEDUPE_PROFILE_PATH is invalid: {exc}")

    raw_threshold = os.environ.get("DUPLICATE_THRESHOLD")
    if raw_threshold:
        try:
            threshold = float(raw_threshold)
        except ValueError:
            threshold = -1.0
        if not 0.0 <= threshold <= 1.0:
            errors.append("DUPLICATE_THRESHOLD must be a number between 0.0 and 1.0.")

    if flask_env != "production":
        return len(errors) == 0, errors

    # Production validations
    secret_key = os.environ.get("SECRET_KEY", "")
    if not secret_key or secret_key == "your-secret-key" or secret_key == "your_secret_key":
        errors.append(
            "SECRET_KEY is required in production and must not be the default value. "
            'Generate a secure key: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        errors.append(
            "DATABASE_URL is required in production. "
            "Set it to your PostgreSQL connection string."
        )

    sync_url = os.environ.get("SYNC_BACKEND_URL", "")
    if sync_url and not sync_url.startswith(("http://", "https://")):
        errors.append("SYNC_BACKEND_URL must be an http(s) URL.")

    is_valid = len(errors) == 0
    return is_valid, errors


def validate_and_exit(flask_env: str = None) -> None:
    """
    Validate environment variables and exit with error if validation fails.
    Intended to be called at application startup.

    Args:
        flask_env: Flask environment (development, production, testing)
    """
    is_valid, errors = validate_environment(flask_env)

    if not is_valid:
        print("=" * 80, file=sys.stderr)
        print("ENVIRONMENT VALIDATION FAILED", file=sys.stderr)
        print("=" * 80, file=sys.stderr)
        print("\nThe following environment variables are missing or invalid:\n", file=sys.stderr)

        for i, error in enumerate(errors, 1):
            print(f"{i}. {error}", file=sys.stderr)

        print("\n" + "=" * 80, file=sys.stderr)
        print("Please check your .env file or environment variables.", file=sys.stderr)
        print("=" * 80, file=sys.stderr)

        sys.exit(1)
