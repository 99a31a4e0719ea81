"""JSON error envelope shared by every endpoint.

Every failure leaves the API as ``{"error": str, "code": str, "details": {...}}``
with ``details`` omitted when empty.  Views return :func:`api_error` directly
for request-shape problems; everything raised from the service layer is
translated by the handlers that :func:`register_error_handlers` installs.

Usage
-----
    from thesis_tracker.utils.errors import api_error, E

    return api_error(E.VALIDATION_REQUIRED, "No fields to update")
    return api_error(E.GOVERNANCE_BLOCK, "Week 3 must be closed first",
                     details={"gate": "prior_week_open"})
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


class E:
    """Machine-readable error codes and their default HTTP status."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    NOT_FOUND = "ERR_NOT_FOUND"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"
    # A week-closure gate refused the close
    GOVERNANCE_BLOCK = "GOVERNANCE_BLOCK"

    STATUS = {
        VALIDATION_REQUIRED: 400,
        VALIDATION_INVALID: 400,
        GOVERNANCE_BLOCK: 400,
        NOT_FOUND: 404,
        CONFLICT_DUPLICATE: 409,
        CONFLICT_STATE: 409,
        DATABASE: 500,
        INTERNAL: 500,
    }


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a failure.

    *status* defaults to the code's entry in ``E.STATUS`` (400 when unknown).
    """
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or E.STATUS.get(code, 400)


def register_error_handlers(app, db):
    """Translate domain exceptions and storage failures into the envelope.

    Every handler that can follow a partial write rolls the session back
    first, so a rejected request never leaves pending changes behind.
    """
    from thesis_tracker.core.exceptions import (
        ClosureError,
        ConflictError,
        NotFoundError,
        StateConflictError,
        ValidationError,
    )

    @app.errorhandler(NotFoundError)
    def _not_found(exc):
        return api_error(E.NOT_FOUND, str(exc))

    @app.errorhandler(ValidationError)
    def _invalid(exc):
        db.session.rollback()
        if isinstance(exc, ClosureError):
            logger.info("Close refused by gate %s: %s", exc.gate, exc)
        return api_error(exc.code, str(exc), details=exc.details)

    @app.errorhandler(StateConflictError)
    def _state_conflict(exc):
        db.session.rollback()
        return api_error(E.CONFLICT_STATE, str(exc), details=exc.details)

    @app.errorhandler(ConflictError)
    def _duplicate(exc):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(exc), details={"field": exc.field})

    @app.errorhandler(IntegrityError)
    def _integrity(exc):
        db.session.rollback()
        logger.warning("Integrity error: %s", exc.orig)
        return api_error(E.DATABASE, str(exc.orig), status=409)

    @app.errorhandler(SQLAlchemyError)
    def _storage(exc):
        db.session.rollback()
        logger.exception("Storage failure on %s %s", request.method, request.path)
        return api_error(E.DATABASE, str(getattr(exc, "orig", None) or exc))

    @app.errorhandler(404)
    def _no_route(_e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def _bad_method(_e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(429)
    def _throttled(e):
        return api_error(E.VALIDATION_INVALID, "Too many requests", status=429,
                         details={"retry_after": str(e.description)})

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("Unhandled error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
