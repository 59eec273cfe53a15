# Overview: Flask API routes for coin transfer, allocation, balance and transaction history.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_roles
from ..errors import RecipientNotFoundError
from ..roles import Role
from ..services import ledger_service
from ..validation import coerce_int, optional_int, parse_amount, parse_date

coins_bp = Blueprint("coins", __name__, url_prefix="/api/coins")


def _recipient_id(data: dict) -> int:
    value = data.get("to_account_id", data.get("to_user_id"))
    if value is None:
        raise RecipientNotFoundError("to_account_id is required")
    return coerce_int(value, "to_account_id")


@coins_bp.post("/transfer")
@require_auth
def transfer_route():
    """
    Request body:
    {
        "to_account_id": int,
        "amount": int,
        "reason": "ADMIN_TRANSFER" | "EMPLOYEE_TRANSFER",
        "note": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    amount = parse_amount(data.get("amount"))
    txn = ledger_service.transfer_coins(
        g.actor,
        _recipient_id(data),
        amount,
        data.get("reason"),
        note=data.get("note"),
    )
    return jsonify({"transaction": txn.to_dict(), "message": "Transfer completed"}), 201


@coins_bp.post("/allocate")
@require_auth
@require_roles(Role.SUPERADMIN, Role.ADMIN)
def allocate_route():
    """
    Request body: {"to_account_id": int, "amount": int, "note": str (optional)}
    """
    data = request.get_json(silent=True) or {}
    amount = parse_amount(data.get("amount"))
    txn = ledger_service.allocate_coins(g.actor, _recipient_id(data), amount, note=data.get("note"))
    return jsonify({"transaction": txn.to_dict(), "message": "Coins allocated"}), 201


@coins_bp.get("/balance")
@require_auth
def balance_route():
    return jsonify(ledger_service.get_balance(g.actor)), 200


@coins_bp.get("/transactions")
@require_auth
def transactions_route():
    """
    Query params: reason, account_id, from_date, to_date, page, limit
    """
    result = ledger_service.list_transactions(
        g.actor,
        reason=request.args.get("reason") or None,
        account_id=optional_int(request.args.get("account_id"), "account_id"),
        from_date=parse_date(request.args.get("from_date"), "from_date"),
        to_date=parse_date(request.args.get("to_date"), "to_date", end_of_day=True),
        page=request.args.get("page", 1),
        limit=request.args.get("limit", 50),
    )
    return jsonify(result), 200
