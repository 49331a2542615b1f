"""
Cost Ledger Service
Blueprint registry.

Shared pieces for the ledger blueprints: turning a ``LedgerResult`` into a
JSON response, and the error handlers every ledger blueprint registers.
"""

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from app.core.exceptions import NotFoundError, TransactionFailure, ValidationError
from app.utils.errors import E, api_error, status_for

logger = logging.getLogger(__name__)


def ledger_response(result, success_status=200):
    """Map a ``LedgerResult`` to ``(json, status)``.

    Successful results return their data payload; refusals return the
    standard error body with the refusal's code and the facts it carried.
    """
    if result.status:
        return jsonify(result.data), success_status
    return api_error(
        result.code or E.CONFLICT_STATE,
        result.message,
        status=status_for(result.code) if result.code else 409,
        details=result.data or None,
    )


def json_body():
    """Request JSON as a dict, ``{}`` when absent."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_ledger_error_handlers(bp):
    """Attach the ledger exception → HTTP mapping to a blueprint."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(TransactionFailure)
    def _handle_transaction(error: TransactionFailure):
        logger.error("Ledger transaction failed endpoint=%s: %s", request.endpoint, error)
        return api_error(E.DATABASE, "Database error")

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

    return bp
