# config/base.py
import os

from intake_app.models.application.enums import DEFAULT_REJECTION_REASONS


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_threshold(value, default=0.88):
    """Parse a 0.0-1.0 confidence threshold, falling back to the default when out of range."""
    if value is None or str(value).strip() == "":
        return default
    try:
        number = float(value)
    except ValueError:
        return default
    if number < 0.0 or number > 1.0:
        return default
    return number


def _parse_list(value, default=()):
    """
    Parse a pipe-separated list while keeping order and removing duplicates.

    Pipes are used because rejection reasons routinely contain commas.
    """
    if not value:
        return tuple(default)

    seen = set()
    items = []
    for raw_item in value.split("|"):
        item = raw_item.strip()
        if not item or item in seen:
            continue
        seen.add(item)
        items.append(item)
    return tuple(items) or tuple(default)


DEFAULT_DOCUMENT_CHECKLIST = (
    "Aadhaar Card",
    "Income Certificate",
    "Caste Certificate",
    "Bank Passbook",
    "Passport Photo",
)


class Config:
    _flask_env = os.environ.get("FLASK_ENV", "development")

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-in-production")

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Duplicate detection
    DUPLICATE_THRESHOLD = _coerce_threshold(os.environ.get("DUPLICATE_THRESHOLD"))
    DEDUPE_USE_INDEX = _coerce_bool(os.environ.get("DEDUPE_USE_INDEX"), default=False)
    DEDUPE_PROFILE_PATH = os.environ.get("DEDUPE_PROFILE_PATH")

    # Validation workspace
    REJECTION_REASONS = _parse_list(os.environ.get("REJECTION_REASONS"), DEFAULT_REJECTION_REASONS)
    DOCUMENT_CHECKLIST = _parse_list(os.environ.get("DOCUMENT_CHECKLIST"), DEFAULT_DOCUMENT_CHECKLIST)
    DEFAULT_PROJECT_ID = os.environ.get("DEFAULT_PROJECT_ID")

    # Remote backend sync
    SYNC_BACKEND_URL = os.environ.get("SYNC_BACKEND_URL")
    try:
        SYNC_TIMEOUT_SECONDS = float(os.environ.get("SYNC_TIMEOUT_SECONDS", "5"))
    except ValueError:
        SYNC_TIMEOUT_SECONDS = 5.0

    JSON_SORT_KEYS = False


class DevelopmentConfig(Config):
    DEBUG = True
    # Keep the SQLite file in the instance folder next to the project root
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")

    if not os.path.exists(instance_path):
        os.makedirs(instance_path, exist_ok=True)

    # SQLite URI format: sqlite:///absolute/path (forward slashes on Windows too)
    db_path = os.path.join(instance_path, "intake_dev.db").replace("\\", "/")
    db_uri = f"sqlite:///{db_path}"

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", db_uri)
    SQLALCHEMY_ECHO = _coerce_bool(os.environ.get("SQLALCHEMY_ECHO"), default=False)
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": 5,
            }
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {}


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"  # conftest swaps in a temp file per test
    SQLALCHEMY_ECHO = False
    DUPLICATE_THRESHOLD = 0.88
    DEDUPE_USE_INDEX = False
    DEDUPE_PROFILE_PATH = None
    SYNC_BACKEND_URL = "http://backend.test"
    SYNC_TIMEOUT_SECONDS = 5.0
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {
            "check_same_thread": False,
            "timeout": 5,
        }
    }


class ProductionConfig(Config):
    DEBUG = False
    uri = os.environ.get("DATABASE_URL")
    if uri and uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = uri
    SQLALCHEMY_ECHO = False
    DEDUPE_USE_INDEX = _coerce_bool(os.environ.get("DEDUPE_USE_INDEX"), default=True)


config_by_name = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}
