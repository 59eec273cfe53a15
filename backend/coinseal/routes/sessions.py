# Overview: Flask API routes for trip sessions: creation, sealing, verification, listing and comments.

"""
Session API routes.

LIFECYCLE:
- POST /api/sessions                 Operator creates (charges the company 1 coin)
- POST /api/sessions/<id>/seal       Operator attaches a barcode seal
- POST /api/sessions/<id>/verify     Guard verifies and completes
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import trip_service
from ..validation import optional_int, parse_bool

sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")

# Top-level body keys that are not part of the free-form trip details
_SESSION_FIELDS = {"source", "destination", "barcode", "trip_details"}


@sessions_bp.post("")
@require_auth
def create_session_route():
    """
    Request body:
    {
        "source": str,
        "destination": str,
        "barcode": str (optional; seals the session immediately),
        "trip_details": {...} (optional; material, vehicle, weights, images...)
    }

    Any other top-level keys are folded into trip_details.
    """
    data = request.get_json(silent=True) or {}
    trip_details = data.get("trip_details")
    extra = {k: v for k, v in data.items() if k not in _SESSION_FIELDS}
    if extra:
        trip_details = {**extra, **(trip_details if isinstance(trip_details, dict) else {})}

    session = trip_service.create_session(
        g.actor,
        data.get("source"),
        data.get("destination"),
        trip_details,
        barcode=data.get("barcode"),
    )
    return jsonify({"session": session.to_dict(), "message": "Session created"}), 201


@sessions_bp.get("")
@require_auth
def list_sessions_route():
    """
    Query params: status, company_id, needs_verification, page, limit
    """
    result = trip_service.list_sessions(
        g.actor,
        status=request.args.get("status") or None,
        company_id=optional_int(request.args.get("company_id"), "company_id"),
        needs_verification=parse_bool(request.args.get("needs_verification")),
        page=request.args.get("page", 1),
        limit=request.args.get("limit", 10),
    )
    return jsonify(result), 200


@sessions_bp.get("/<int:session_id>")
@require_auth
def get_session_route(session_id: int):
    session = trip_service.get_session(g.actor, session_id)
    return jsonify({"session": session.to_dict(include_comments=True)}), 200


@sessions_bp.post("/<int:session_id>/seal")
@require_auth
def attach_seal_route(session_id: int):
    data = request.get_json(silent=True) or {}
    seal = trip_service.attach_seal(g.actor, session_id, data.get("barcode"))
    return jsonify({"seal": seal.to_dict(), "message": "Seal attached"}), 201


@sessions_bp.post("/<int:session_id>/verify")
@require_auth
def verify_seal_route(session_id: int):
    """
    Request body: the guard's observations, e.g.
    {"barcode": "...", "vehicle_number": {"value": "...", "comment": "..."}, "gross_weight": 1200}

    Photo checks go under "image_verifications":
    {"seal_photo": {"verified": true, "comment": "..."}}
    """
    data = request.get_json(silent=True)
    data = dict(data) if isinstance(data, dict) else {}
    image_verifications = data.pop("image_verifications", None)
    verification = data.get("verification", data)
    session = trip_service.verify_seal(g.actor, session_id, verification, image_verifications)
    return jsonify({"session": session.to_dict(), "message": "Seal verified"}), 200


@sessions_bp.post("/<int:session_id>/comments")
@require_auth
def add_comment_route(session_id: int):
    data = request.get_json(silent=True) or {}
    comment = trip_service.add_comment(g.actor, session_id, data.get("message"))
    return jsonify({"comment": comment.to_dict()}), 201


@sessions_bp.get("/<int:session_id>/comments")
@require_auth
def list_comments_route(session_id: int):
    return jsonify({"comments": trip_service.list_comments(g.actor, session_id)}), 200
