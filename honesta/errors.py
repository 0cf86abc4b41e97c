import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


def error_response(message, status):
    return jsonify({'error': message}), status


def register_error_handlers(app):
    """Answer every error with a JSON body instead of an HTML page."""

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return error_response(e.description, e.code)

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        logger.exception("Unhandled error: %s", e)
        return error_response('Internal server error', 500)
