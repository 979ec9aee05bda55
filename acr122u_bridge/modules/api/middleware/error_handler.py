"""
ACR122U NFC Bridge - Error Handler Middleware

Every REST error is returned as {'success': False, 'error': {'message', 'status'}},
the same shape the Socket.IO channel uses for its error messages.
"""

from flask import jsonify, request

from ....utils.exceptions import ValidationError
from ....utils.logger import get_logger
from ..exceptions import APIError

logger = get_logger(__name__)


def init_error_handlers(app):
    """
    Register the JSON error handlers on a Flask application.

    Args:
        app: Flask application instance
    """
    app.register_error_handler(400, lambda e: api_error_response(
        getattr(e, 'description', None) or "Bad request", 400))
    app.register_error_handler(404, lambda e: api_error_response(
        f"Resource not found: {request.path}", 404))
    app.register_error_handler(405, lambda e: api_error_response(
        f"Method {request.method} not allowed for {request.path}", 405))
    app.register_error_handler(500, handle_internal_error)

    app.register_error_handler(APIError, handle_api_error)
    app.register_error_handler(ValidationError, handle_validation_error)

    logger.debug("Error handlers initialized")


def handle_internal_error(error):
    # Details stay in the log; clients get a generic message
    logger.exception(f"Unhandled error in {request.method} {request.path}: {error}")
    return api_error_response("An internal server error occurred", 500)


def handle_api_error(error):
    """Handle errors raised by route handlers (bad request, unknown reader, no bridge)."""
    return api_error_response(error.message, error.status_code, error.payload)


def handle_validation_error(error):
    """Handle invalid input reported by the message codec or validators."""
    return api_error_response(error.message, 400, error.details)


def api_error_response(message, status_code, details=None):
    """
    Create a standardized error response.

    Args:
        message (str): Error message
        status_code (int): HTTP status code
        details (dict, optional): Additional error details

    Returns:
        tuple: (JSON response, status code)
    """
    error = {'message': message, 'status': status_code}
    if details:
        error['details'] = details
    return jsonify({'success': False, 'error': error}), status_code
