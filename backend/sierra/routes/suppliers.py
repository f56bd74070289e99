# Overview: Flask API routes for suppliers operations; parses input and returns JSON responses.

# backend/sierra/routes/suppliers.py
"""
Supplier routes.

SECURITY: Reads require VIEW_PURCHASES, writes require MANAGE_SUPPLIERS.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import supplier_service
from ..validation import ValidationError, ConflictError, NotFoundError
from ..decorators import require_auth, require_permission


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
@require_permission("VIEW_PURCHASES")
def list_suppliers_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    suppliers = supplier_service.list_suppliers(include_inactive=include_inactive)
    return jsonify({"suppliers": [s.to_dict() for s in suppliers]}), 200


@suppliers_bp.get("/primary")
@require_auth
@require_permission("VIEW_PURCHASES")
def primary_supplier_route():
    """The supplier new purchases are filed against."""
    try:
        supplier = supplier_service.get_primary_supplier()
        return jsonify({"supplier": supplier.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 404


@suppliers_bp.post("")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    try:
        supplier = supplier_service.create_supplier(payload)
        return jsonify({"supplier": supplier.to_dict()}), 201
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
@require_permission("VIEW_PURCHASES")
def get_supplier_route(supplier_id: int):
    try:
        supplier = supplier_service.get_supplier(supplier_id)
        return jsonify({"supplier": supplier.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@suppliers_bp.put("/<int:supplier_id>")
@require_auth
@require_permission("MANAGE_SUPPLIERS")
def update_supplier_route(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        supplier = supplier_service.update_supplier(supplier_id, payload)
        return jsonify({"supplier": supplier.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update supplier")
        return jsonify({"error": "Internal server error"}), 500
