# Overview: Flask API routes for purchases; parses input and returns JSON responses.

# backend/sierra/routes/purchases.py
"""
Purchase routes.

SECURITY: All routes require authentication.
- Reads require VIEW_PURCHASES
- Recording purchases requires CREATE_PURCHASES
- Editing a posted purchase requires EDIT_PURCHASES (admin only)
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import purchase_service
from ..validation import ValidationError, ConflictError, NotFoundError, parse_date
from ..decorators import require_auth, require_permission


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
@require_auth
@require_permission("CREATE_PURCHASES")
def create_purchase_route():
    """
    Record a purchase from the primary supplier.

    Stock is incremented in the same transaction.
    """
    payload = request.get_json(silent=True) or {}
    try:
        purchase = purchase_service.create_purchase(payload, user_id=g.current_user.id)
        body = purchase_service.purchase_detail(purchase)
        body["message"] = "Purchase recorded and stock updated"
        return jsonify(body), 201
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@purchases_bp.get("")
@require_auth
@require_permission("VIEW_PURCHASES")
def list_purchases_route():
    """Query params: supplier_id, payment_status, start_date, end_date."""
    try:
        purchases = purchase_service.list_purchases(
            supplier_id=request.args.get("supplier_id", type=int),
            payment_status=request.args.get("payment_status"),
            start_date=parse_date("start_date", request.args.get("start_date"), required=False),
            end_date=parse_date("end_date", request.args.get("end_date"), required=False),
        )
        return jsonify({"purchases": [p.to_dict() for p in purchases], "count": len(purchases)}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@purchases_bp.get("/unpaid")
@require_auth
@require_permission("VIEW_PURCHASES")
def unpaid_purchases_route():
    purchases = purchase_service.list_unpaid_purchases()
    return jsonify({
        "purchases": [p.to_dict() for p in purchases],
        "count": len(purchases),
        "total_balance_due_cents": sum(p.balance_due_cents for p in purchases),
    }), 200


@purchases_bp.get("/<int:purchase_id>")
@require_auth
@require_permission("VIEW_PURCHASES")
def get_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.get_purchase(purchase_id)
        body = purchase_service.purchase_detail(purchase)
        body["supplier_payments"] = [p.to_dict() for p in purchase.supplier_payments]
        return jsonify(body), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@purchases_bp.put("/<int:purchase_id>/update")
@require_auth
@require_permission("EDIT_PURCHASES")
def update_purchase_route(purchase_id: int):
    """
    Full edit of a posted purchase.

    Body: purchase_date, items[] (required), invoice_number, notes.
    Stock moves by the per-product difference between old and new items.
    """
    payload = request.get_json(silent=True) or {}
    try:
        result = purchase_service.update_purchase(purchase_id, payload, user_id=g.current_user.id)
        result["message"] = "Purchase updated and stock adjusted"
        return jsonify(result), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update purchase")
        return jsonify({"error": "Internal server error"}), 500
