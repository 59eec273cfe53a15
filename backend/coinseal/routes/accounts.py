# Overview: Flask API routes for account provisioning, listing, update and deletion.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_roles
from ..roles import Role
from ..services import identity_service
from ..validation import optional_int

accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


@accounts_bp.post("")
@require_auth
@require_roles(Role.SUPERADMIN, Role.ADMIN)
def create_account_route():
    """
    Provision an account (creation matrix enforced by identity_service).

    Request body:
    {
        "name": str, "email": str, "password": str,
        "role": "ADMIN" | "COMPANY" | "EMPLOYEE",
        "subrole": "OPERATOR" | "DRIVER" | "TRANSPORTER" | "GUARD" (employees),
        "company_id": int (employees),
        "phone": str (optional), "address": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    account = identity_service.create_account(g.actor, data)
    return jsonify({"user": account.to_dict(), "message": "Account created"}), 201


@accounts_bp.get("")
@require_auth
def list_accounts_route():
    """
    Query params: search, role, company_id, page, limit (max 100)
    """
    result = identity_service.list_accounts(
        g.actor,
        search=request.args.get("search") or None,
        role=request.args.get("role") or None,
        company_id=optional_int(request.args.get("company_id"), "company_id"),
        page=request.args.get("page", 1),
        limit=request.args.get("limit", 50),
    )
    return jsonify(result), 200


@accounts_bp.get("/<int:account_id>")
@require_auth
def get_account_route(account_id: int):
    account = identity_service.get_account(g.actor, account_id)
    return jsonify({"user": account.to_dict()}), 200


@accounts_bp.patch("/<int:account_id>")
@require_auth
@require_roles(Role.SUPERADMIN, Role.ADMIN)
def update_account_route(account_id: int):
    data = request.get_json(silent=True) or {}
    account = identity_service.update_account(g.actor, account_id, data)
    return jsonify({"user": account.to_dict(), "message": "Account updated"}), 200


@accounts_bp.delete("/<int:account_id>")
@require_auth
@require_roles(Role.SUPERADMIN, Role.ADMIN)
def delete_account_route(account_id: int):
    identity_service.delete_account(g.actor, account_id)
    return jsonify({"message": "Account deleted"}), 200


@accounts_bp.get("/admins/<int:admin_id>/overview")
@require_auth
@require_roles(Role.SUPERADMIN)
def admin_overview_route(admin_id: int):
    return jsonify(identity_service.admin_overview(g.actor, admin_id)), 200
