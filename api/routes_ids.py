"""
api.routes_ids - /api/v1/ids endpoints.
"""

from flask import jsonify

from api import api_bp
from db import get_session
from services.sequence_service import peek_next_number


@api_bp.route("/ids/<entity_type>/peek")
def peek_next_id(entity_type: str):
    """GET /api/v1/ids/{entity_type}/peek - next number, not consumed."""
    session = get_session()
    try:
        next_id = peek_next_number(session, entity_type)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    finally:
        session.close()
    return jsonify({"entityType": entity_type, "nextNumber": next_id})
