# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/sierra/routes/products.py
"""
Product management and stock routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_INVENTORY permission
- Product writes require MANAGE_PRODUCTS permission
- Manual stock changes require ADJUST_INVENTORY permission
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import products_service, inventory_service
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth, require_permission


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_products_route():
    """
    List products with optional pagination.

    Query params:
    - search: matches name or SKU
    - category: exact category
    - include_inactive: "true" to include deactivated products
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    result = products_service.list_products(
        search=request.args.get("search"),
        category=request.args.get("category"),
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@products_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_INVENTORY")
def low_stock_route():
    products = products_service.list_low_stock()
    return jsonify({"products": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    """
    Create a new product.

    stock_quantity, if given, is recorded as an opening stock adjustment.
    """
    payload = request.get_json(silent=True) or {}
    try:
        product = products_service.create_product(payload, user_id=g.current_user.id)
        return jsonify({"product": product.to_dict()}), 201
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("VIEW_INVENTORY")
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    """Stock is not writable here; use POST /<id>/stock."""
    payload = request.get_json(silent=True) or {}
    try:
        product = products_service.update_product(product_id, payload)
        return jsonify({"product": product.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/stock")
@require_auth
@require_permission("ADJUST_INVENTORY")
def adjust_stock_route(product_id: int):
    """
    Manual stock change.

    Body: {quantity: int > 0, operation: "add" | "subtract", notes?}
    """
    payload = request.get_json(silent=True) or {}
    try:
        result = inventory_service.adjust_stock(product_id, payload, user_id=g.current_user.id)
        return jsonify(result), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/transactions")
@require_auth
@require_permission("VIEW_INVENTORY")
def product_transactions_route(product_id: int):
    """Inventory ledger for one product, with a stock reconciliation flag."""
    limit = min(request.args.get("limit", 200, type=int), 1000)
    try:
        return jsonify(inventory_service.get_product_ledger(product_id, limit=limit)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
