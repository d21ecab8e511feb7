# Overview: Maps service-layer exceptions to JSON error responses.

from flask import jsonify, current_app

from ..validation import (
    ValidationError,
    LocationNotFoundError,
    ConflictError,
    InvalidStateError,
    SessionNotFoundError,
    StorageUnavailableError,
)


# Most specific first: not-found subclasses before their parents
_STATUS_BY_ERROR = (
    (LocationNotFoundError, 404),
    (SessionNotFoundError, 404),
    (ValidationError, 400),
    (ConflictError, 409),
    (InvalidStateError, 409),
    (StorageUnavailableError, 503),
)

DOMAIN_ERRORS = tuple(error for error, _ in _STATUS_BY_ERROR)


def error_response(exc: Exception):
    for error, status in _STATUS_BY_ERROR:
        if isinstance(exc, error):
            if status == 503:
                return jsonify({"error": "Storage unavailable, please retry"}), 503
            return jsonify({"error": str(exc), "type": error.__name__}), status
    current_app.logger.exception("Unhandled error")
    return jsonify({"error": "Internal server error"}), 500
