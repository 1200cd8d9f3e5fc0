"""
api.errors - JSON error handlers for the API blueprint.
"""

import logging

from flask import jsonify

import config
from api import api_bp

logger = logging.getLogger(__name__)


@api_bp.errorhandler(404)
def api_not_found(_e):
    return jsonify({"error": "not found"}), 404


@api_bp.errorhandler(400)
def api_bad_request(_e):
    return jsonify({"error": "bad request"}), 400


@api_bp.errorhandler(413)
def api_upload_too_large(_e):
    return jsonify({"error": f"upload exceeds {config.MAX_UPLOAD_MB} MB"}), 413


@api_bp.errorhandler(500)
def api_server_error(e):
    logger.error(f"Unhandled API error: {getattr(e, 'original_exception', e)}")
    return jsonify({"error": "internal server error"}), 500
