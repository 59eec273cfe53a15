# Overview: Flask API routes for the role-scoped activity audit log.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import activity_service
from ..validation import optional_int, parse_date

activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity")


@activity_bp.get("")
@require_auth
def list_activity_route():
    """
    Query params: action, user_id, from_date, to_date, page, limit

    Date-only to_date values include the whole day.
    """
    result = activity_service.list_activity(
        g.actor,
        action=request.args.get("action") or None,
        user_id=optional_int(request.args.get("user_id"), "user_id"),
        from_date=parse_date(request.args.get("from_date"), "from_date"),
        to_date=parse_date(request.args.get("to_date"), "to_date", end_of_day=True),
        page=request.args.get("page", 1),
        limit=request.args.get("limit", 50),
    )
    return jsonify(result), 200
