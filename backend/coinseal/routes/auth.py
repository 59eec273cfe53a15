# Overview: Flask API routes for login, logout and the current account; parses input and returns JSON responses.

"""
Authentication API routes

- POST /api/auth/login: email + password -> bearer token (LOGIN entry)
- POST /api/auth/logout: revoke the presented token (LOGOUT entry)
- GET /api/auth/me: the caller's account

Self-registration does not exist: accounts are provisioned through
POST /api/accounts (creation matrix) or the CLI.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..extensions import db
from ..models import Account
from ..services import auth_service

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a bearer token.

    Request body: {"email": str, "password": str}
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not email or not password:
        return jsonify({"error": "email and password required", "code": "VALIDATION_ERROR"}), 400

    result = auth_service.login(
        email,
        password,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    if not result:
        current_app.logger.info("Failed login attempt for %s", email)
        return jsonify({"error": "Invalid credentials", "code": "INVALID_CREDENTIALS"}), 401

    account, record, token = result
    return jsonify({
        "user": account.to_dict(),
        "token": token,
        "expires_at": record.to_dict()["expires_at"],
        "message": "Login successful",
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    auth_service.logout(g.token, ip_address=g.actor.ip_address, user_agent=g.actor.user_agent)
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    account = db.session.get(Account, g.actor.account_id)
    return jsonify({"user": account.to_dict()}), 200
