# Overview: Flask API routes for company accounts and banks; parses input and returns JSON responses.

# backend/sierra/routes/accounts.py
"""
Company account and bank routes.

SECURITY: Reads require VIEW_ACCOUNTS. Creating or editing accounts and
banks, deposits and transfers require MANAGE_ACCOUNTS (admin only).
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import account_service
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth, require_permission


accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")
banks_bp = Blueprint("banks", __name__, url_prefix="/api/banks")


@accounts_bp.get("")
@require_auth
@require_permission("VIEW_ACCOUNTS")
def list_accounts_route():
    """Query params: account_type (cash|bank), include_inactive."""
    accounts = account_service.list_accounts(
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        account_type=request.args.get("account_type"),
    )
    return jsonify({
        "accounts": [a.to_dict() for a in accounts],
        "total_balance_cents": sum(a.current_balance_cents for a in accounts),
    }), 200


@accounts_bp.post("")
@require_auth
@require_permission("MANAGE_ACCOUNTS")
def create_account_route():
    payload = request.get_json(silent=True) or {}
    try:
        account = account_service.create_account(payload)
        return jsonify({"account": account.to_dict()}), 201
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create account")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.post("/transaction")
@require_auth
@require_permission("MANAGE_ACCOUNTS")
def account_transaction_route():
    """
    Deposit into or transfer between company accounts.

    Body:
    - {"type": "deposit", "amount_cents", "to_account_id", "notes"?}
    - {"type": "transfer", "amount_cents", "from_account_id", "to_account_id", "notes"?}
    """
    payload = request.get_json(silent=True) or {}
    try:
        result = account_service.record_transaction(payload, user_id=g.current_user.id)
        result["message"] = "Transaction completed"
        return jsonify(result), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record account transaction")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.get("/<int:account_id>")
@require_auth
@require_permission("VIEW_ACCOUNTS")
def get_account_route(account_id: int):
    try:
        account = account_service.get_account(account_id)
        return jsonify({"account": account.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@accounts_bp.put("/<int:account_id>")
@require_auth
@require_permission("MANAGE_ACCOUNTS")
def update_account_route(account_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        account = account_service.update_account(account_id, payload)
        return jsonify({"account": account.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update account")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.get("/<int:account_id>/transactions")
@require_auth
@require_permission("VIEW_ACCOUNTS")
def account_ledger_route(account_id: int):
    """Ledger rows (newest first) plus a reconciliation flag."""
    limit = min(request.args.get("limit", 200, type=int), 1000)
    try:
        return jsonify(account_service.get_account_ledger(account_id, limit=limit)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


# =============================================================================
# BANKS
# =============================================================================

@banks_bp.get("")
@require_auth
@require_permission("VIEW_ACCOUNTS")
def list_banks_route():
    return jsonify({"banks": [b.to_dict() for b in account_service.list_banks()]}), 200


@banks_bp.post("")
@require_auth
@require_permission("MANAGE_ACCOUNTS")
def create_bank_route():
    payload = request.get_json(silent=True) or {}
    try:
        bank = account_service.create_bank(payload)
        return jsonify({"bank": bank.to_dict()}), 201
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create bank")
        return jsonify({"error": "Internal server error"}), 500
