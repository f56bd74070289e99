# Overview: Flask API routes for customers operations; parses input and returns JSON responses.

# backend/sierra/routes/customers.py
"""
Customer master data, credit and balance routes.

SECURITY: All routes require authentication.
- Reads require VIEW_ORDERS
- Writes require MANAGE_CUSTOMERS
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import customer_service
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth, require_permission


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
@require_permission("VIEW_ORDERS")
def list_customers_route():
    """
    Query params:
    - search: matches name or phone
    - include_inactive: "true" to include deactivated customers
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    customers = customer_service.list_customers(
        search=request.args.get("search"),
        include_inactive=include_inactive,
    )
    return jsonify({"customers": [c.to_dict() for c in customers]}), 200


@customers_bp.post("")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        customer = customer_service.create_customer(payload)
        return jsonify({"customer": customer.to_dict()}), 201
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_permission("VIEW_ORDERS")
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
        return jsonify({"customer": customer.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        customer = customer_service.update_customer(customer_id, payload)
        return jsonify({"customer": customer.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/credit")
@require_auth
@require_permission("VIEW_ORDERS")
def customer_credit_route(customer_id: int):
    """Sum of non-returned standalone payments held as credit."""
    try:
        credit = customer_service.get_credit_balance(customer_id)
        return jsonify({"customer_id": customer_id, "credit_balance_cents": credit}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@customers_bp.get("/<int:customer_id>/balance")
@require_auth
@require_permission("VIEW_ORDERS")
def customer_balance_route(customer_id: int):
    """Stored outstanding balance next to the value derived from orders and payments."""
    try:
        return jsonify(customer_service.get_balance_summary(customer_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
