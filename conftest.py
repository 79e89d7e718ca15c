# conftest.py

import os
import tempfile
import uuid

import pytest

# Set testing environment BEFORE importing app so the module-level app uses TestingConfig
os.environ["FLASK_ENV"] = "testing"

from app import create_app  # noqa: E402
from intake_app.lifecycle.duplicates import DuplicateDetector  # noqa: E402
from intake_app.lifecycle.intake import IntakeService  # noqa: E402
from intake_app.lifecycle.resolution import ResolutionWorkflow  # noqa: E402
from intake_app.lifecycle.state_machine import LifecycleStateMachine  # noqa: E402
from intake_app.lifecycle.store import RecordStore  # noqa: E402
from intake_app.models import db  # noqa: E402


@pytest.fixture(scope="function")
def app():
    """Create a test Flask application backed by its own temporary SQLite file"""
    db_fd, temp_db = tempfile.mkstemp(suffix=f"_{uuid.uuid4().hex[:8]}.db")

    try:
        flask_app = create_app(
            "testing",
            {
                "TESTING": True,
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{temp_db}",
                "SQLALCHEMY_ECHO": False,
                "ENABLE_FILE_LOGGING": False,
                "ENABLE_CONSOLE_LOGGING": False,
                "DUPLICATE_THRESHOLD": 0.88,
                "DEDUPE_USE_INDEX": False,
                "DEFAULT_PROJECT_ID": None,
            },
        )

        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            yield flask_app
            db.session.remove()
            db.drop_all()
            db.engine.dispose()
    finally:
        # Always close and remove the temporary database file, even on error
        try:
            os.close(db_fd)
        except OSError:
            pass
        for path in (temp_db, f"{temp_db}-wal", f"{temp_db}-shm"):
            try:
                if os.path.exists(path):
                    os.unlink(path)
            except OSError:
                pass


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


@pytest.fixture
def store(app):
    return RecordStore()


@pytest.fixture
def detector(store):
    return DuplicateDetector(store)


@pytest.fixture
def state_machine(store):
    return LifecycleStateMachine(store)


@pytest.fixture
def workflow(store, detector, state_machine):
    return ResolutionWorkflow(store, detector, state_machine, threshold=0.88)


@pytest.fixture
def service(store, detector, state_machine, workflow):
    return IntakeService(store, detector, state_machine, workflow)


@pytest.fixture
def make_application(state_machine):
    """Factory creating a saved STAGING/PENDING application"""

    def _make(app_id, actor="operator-1", **fields):
        payload = {"id": app_id, "project_id": "PROJ-001", "applicant_name": f"Applicant {app_id}"}
        payload.update(fields)
        return state_machine.save_record(payload, actor, is_new=True)

    return _make
