# Overview: Flask API routes for monthly budgets and budget-vs-actual; parses input and returns JSON responses.

# backend/sierra/routes/budgets.py
"""
Budget routes.

SECURITY: Reading budgets and the comparison requires VIEW_REPORTS;
creating, changing and deleting them requires MANAGE_BUDGETS.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import budget_service
from ..validation import ValidationError, ConflictError, NotFoundError, parse_choice
from ..decorators import require_auth, require_permission


budgets_bp = Blueprint("budgets", __name__, url_prefix="/api/budgets")


def _filters():
    return {
        "period": budget_service.parse_budget_period("period", request.args.get("period"), required=False),
        "year": budget_service.parse_year(request.args.get("year")),
        "budget_type": parse_choice("type", request.args.get("type"), budget_service.BUDGET_TYPES, required=False),
    }


@budgets_bp.get("")
@require_auth
@require_permission("VIEW_REPORTS")
def list_budgets_route():
    """Query params: period (YYYY-MM), year (YYYY), type."""
    try:
        budgets = budget_service.list_budgets(**_filters())
        return jsonify({"budgets": [b.to_dict() for b in budgets], "count": len(budgets)}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@budgets_bp.get("/vs-actual")
@require_auth
@require_permission("VIEW_REPORTS")
def budget_vs_actual_route():
    """Each budget beside the month's actual figure, plus a summary."""
    try:
        return jsonify(budget_service.budget_vs_actual(**_filters())), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@budgets_bp.post("")
@require_auth
@require_permission("MANAGE_BUDGETS")
def create_budget_route():
    """
    Set a budget.

    Body: budget_period (YYYY-MM), budget_type (sales | expenses | purchases),
    budgeted_amount_cents, category (expense budgets only), notes.
    """
    payload = request.get_json(silent=True) or {}
    try:
        budget = budget_service.create_budget(payload, user_id=g.current_user.id)
        return jsonify({"budget": budget.to_dict(), "message": "Budget created"}), 201
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create budget")
        return jsonify({"error": "Internal server error"}), 500


@budgets_bp.get("/<int:budget_id>")
@require_auth
@require_permission("VIEW_REPORTS")
def get_budget_route(budget_id: int):
    try:
        return jsonify({"budget": budget_service.get_budget(budget_id).to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@budgets_bp.route("/<int:budget_id>", methods=["PUT", "PATCH"])
@require_auth
@require_permission("MANAGE_BUDGETS")
def update_budget_route(budget_id: int):
    """Body: budgeted_amount_cents and/or notes."""
    payload = request.get_json(silent=True) or {}
    try:
        budget = budget_service.update_budget(budget_id, payload)
        return jsonify({"budget": budget.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update budget %s", budget_id)
        return jsonify({"error": "Internal server error"}), 500


@budgets_bp.delete("/<int:budget_id>")
@require_auth
@require_permission("MANAGE_BUDGETS")
def delete_budget_route(budget_id: int):
    try:
        budget_service.delete_budget(budget_id)
        return jsonify({"message": "Budget deleted"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete budget %s", budget_id)
        return jsonify({"error": "Internal server error"}), 500
