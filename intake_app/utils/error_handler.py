# intake_app/utils/error_handler.py
"""
JSON error handlers for lifecycle, backend and HTTP errors.
"""

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException

from intake_app.lifecycle.errors import (
    ConflictError,
    DuplicateReviewRequired,
    InvalidTransitionError,
    LifecycleError,
    NotFoundError,
    StaleWriteError,
    TransientIOError,
    ValidationPreconditionError,
)
from intake_app.models import db
from intake_app.sync.client import BackendError, BackendUnreachableError, InvalidCredentialsError

# Most specific classes first; the first isinstance match wins.
LIFECYCLE_STATUS_CODES = (
    (NotFoundError, 404),
    (DuplicateReviewRequired, 409),
    (ConflictError, 409),
    (StaleWriteError, 409),
    (InvalidTransitionError, 409),
    (ValidationPreconditionError, 422),
    (TransientIOError, 503),
)


def status_for(error):
    for error_class, status_code in LIFECYCLE_STATUS_CODES:
        if isinstance(error, error_class):
            return status_code
    return 400


def handle_lifecycle_error(error):
    status_code = status_for(error)
    log = current_app.logger.error if status_code >= 500 else current_app.logger.info
    log(
        f"{type(error).__name__}: {error.message}",
        extra={"record_id": error.record_id, "field": error.field, "status_code": status_code},
    )
    return jsonify(error.to_dict()), status_code


def handle_backend_error(error):
    if isinstance(error, InvalidCredentialsError):
        status_code = 401
    elif isinstance(error, BackendUnreachableError):
        status_code = 503
    else:
        status_code = 502
    current_app.logger.warning(f"Backend error: {error}", extra={"status_code": error.status_code})
    return jsonify({"error": type(error).__name__, "message": str(error)}), status_code


def handle_http_exception(error):
    return jsonify({"error": error.name, "message": error.description}), error.code


def handle_unexpected_error(error):
    db.session.rollback()
    current_app.logger.exception(f"Unhandled error: {error}")
    return jsonify({"error": "InternalServerError", "message": "An unexpected error occurred"}), 500


def init_error_handlers(app):
    """Register JSON error handlers on the app."""
    app.register_error_handler(LifecycleError, handle_lifecycle_error)
    app.register_error_handler(BackendError, handle_backend_error)
    app.register_error_handler(HTTPException, handle_http_exception)
    app.register_error_handler(Exception, handle_unexpected_error)
