# Overview: Flask API routes for the inventory ledger; read-only.

# backend/sierra/routes/inventory.py
"""
Inventory transaction ledger.

Rows are written by sales, returns, purchases, purchase edits and manual
adjustments; there is no endpoint that writes them directly.
"""

from flask import Blueprint, request, jsonify

from ..services import inventory_service
from ..decorators import require_auth, require_permission


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory-transactions")


@inventory_bp.get("")
@require_auth
@require_permission("VIEW_INVENTORY")
def list_inventory_transactions_route():
    """
    Query params: product_id, transaction_type, reference_type,
    reference_id, limit (default 200, max 1000).
    """
    transaction_type = request.args.get("transaction_type")
    if transaction_type and transaction_type not in inventory_service.TRANSACTION_TYPES:
        return jsonify({"error": f"transaction_type must be one of: {', '.join(sorted(inventory_service.TRANSACTION_TYPES))}"}), 400

    txns = inventory_service.list_transactions(
        product_id=request.args.get("product_id", type=int),
        transaction_type=transaction_type,
        reference_type=request.args.get("reference_type"),
        reference_id=request.args.get("reference_id", type=int),
        limit=min(request.args.get("limit", 200, type=int), 1000),
    )
    return jsonify({"transactions": [t.to_dict() for t in txns], "count": len(txns)}), 200
