# Overview: Flask API routes for system statistics.

from flask import Blueprint, g, jsonify

from ..decorators import require_auth, require_roles
from ..roles import Role
from ..services import ledger_service

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/stats")
@require_auth
@require_roles(Role.SUPERADMIN)
def stats_route():
    """Account counts by role, coins in circulation, sessions by status."""
    return jsonify(ledger_service.system_stats(g.actor)), 200
