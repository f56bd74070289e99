# Overview: Flask API routes for expenses; parses input and returns JSON responses.

# backend/sierra/routes/expenses.py
"""
Expense routes.

SECURITY: All routes require MANAGE_EXPENSES.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import expense_service
from ..validation import ValidationError, ConflictError, NotFoundError, parse_date
from ..decorators import require_auth, require_permission


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_auth
@require_permission("MANAGE_EXPENSES")
def list_expenses_route():
    """Query params: category, start_date, end_date."""
    try:
        expenses = expense_service.list_expenses(
            category=request.args.get("category"),
            start_date=parse_date("start_date", request.args.get("start_date"), required=False),
            end_date=parse_date("end_date", request.args.get("end_date"), required=False),
        )
        return jsonify({
            "expenses": [e.to_dict() for e in expenses],
            "count": len(expenses),
            "total_cents": sum(e.amount_cents for e in expenses),
        }), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@expenses_bp.get("/summary")
@require_auth
@require_permission("MANAGE_EXPENSES")
def expense_summary_route():
    try:
        summary = expense_service.expense_summary(
            start_date=parse_date("start_date", request.args.get("start_date"), required=False),
            end_date=parse_date("end_date", request.args.get("end_date"), required=False),
        )
        return jsonify(summary), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@expenses_bp.post("")
@require_auth
@require_permission("MANAGE_EXPENSES")
def create_expense_route():
    """
    Record an expense.

    With account_id the company account is debited in the same transaction.
    """
    payload = request.get_json(silent=True) or {}
    try:
        expense = expense_service.create_expense(payload, user_id=g.current_user.id)
        return jsonify({"expense": expense.to_dict()}), 201
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.get("/<int:expense_id>")
@require_auth
@require_permission("MANAGE_EXPENSES")
def get_expense_route(expense_id: int):
    try:
        return jsonify({"expense": expense_service.get_expense(expense_id).to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@expenses_bp.put("/<int:expense_id>")
@require_auth
@require_permission("MANAGE_EXPENSES")
def update_expense_route(expense_id: int):
    """Amount and account are fixed once posted; delete and re-enter to change them."""
    payload = request.get_json(silent=True) or {}
    try:
        expense = expense_service.update_expense(expense_id, payload)
        return jsonify({"expense": expense.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.delete("/<int:expense_id>")
@require_auth
@require_permission("MANAGE_EXPENSES")
def delete_expense_route(expense_id: int):
    try:
        expense_service.delete_expense(expense_id, user_id=g.current_user.id)
        return jsonify({"message": "Expense deleted"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete expense")
        return jsonify({"error": "Internal server error"}), 500
