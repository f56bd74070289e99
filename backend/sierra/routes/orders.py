# Overview: Flask API routes for orders (bills); parses input and returns JSON responses.

# backend/sierra/routes/orders.py
"""
Order (bill) routes.

SECURITY: All routes require authentication.
- Reads require VIEW_ORDERS
- Creating bills requires CREATE_ORDERS
- Status edits, cancellations and returns require PROCESS_RETURNS

IDEMPOTENCY: POST /api/orders honours an `Idempotency-Key` header. A
repeated key returns the original order with 200 and "replayed": true.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import order_service
from ..services.order_service import InsufficientStockError
from ..validation import ValidationError, ConflictError, NotFoundError, parse_date
from ..decorators import require_auth, require_permission


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
@require_permission("CREATE_ORDERS")
def create_order_route():
    """
    Create a bill.

    Stock, the inventory ledger, the customer's outstanding balance and the
    optional initial payment are all written in one transaction. If any
    product is short, nothing is written and the shortages are returned
    in `details`.
    """
    payload = request.get_json(silent=True) or {}
    idempotency_key = request.headers.get("Idempotency-Key")

    try:
        order, profit_cents, replayed = order_service.create_order(
            payload,
            user_id=g.current_user.id,
            idempotency_key=idempotency_key,
        )
        body = {
            "order": order.to_dict(),
            "items": [item.to_dict() for item in order.items],
            "profit_cents": profit_cents,
        }
        if replayed:
            body["replayed"] = True
            body["message"] = "Order already created for this Idempotency-Key"
            return jsonify(body), 200

        body["message"] = "Order created successfully"
        return jsonify(body), 201

    except InsufficientStockError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
@require_permission("VIEW_ORDERS")
def list_orders_route():
    """
    Query params: customer_id, status, payment_status,
    start_date, end_date (YYYY-MM-DD).
    """
    try:
        orders = order_service.list_orders(
            customer_id=request.args.get("customer_id", type=int),
            status=request.args.get("status"),
            payment_status=request.args.get("payment_status"),
            start_date=parse_date("start_date", request.args.get("start_date"), required=False),
            end_date=parse_date("end_date", request.args.get("end_date"), required=False),
        )
        return jsonify({"orders": orders, "count": len(orders)}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@orders_bp.get("/unpaid")
@require_auth
@require_permission("VIEW_ORDERS")
def unpaid_orders_route():
    """Open orders with a balance still to collect."""
    orders = order_service.list_unpaid_orders()
    return jsonify({"orders": orders, "count": len(orders)}), 200


@orders_bp.get("/unpaid/by-customer/<int:customer_id>")
@require_auth
@require_permission("VIEW_ORDERS")
def unpaid_orders_by_customer_route(customer_id: int):
    orders = order_service.list_unpaid_orders(customer_id=customer_id)
    return jsonify({
        "orders": orders,
        "count": len(orders),
        "total_balance_cents": sum(o["balance_cents"] for o in orders),
    }), 200


@orders_bp.get("/<int:order_id>")
@require_auth
@require_permission("VIEW_ORDERS")
def get_order_route(order_id: int):
    """Order, items, payments, paid amount and balance."""
    try:
        order = order_service.get_order(order_id)
        return jsonify(order_service.order_detail(order, include_payments=True)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@orders_bp.put("/<int:order_id>")
@require_auth
@require_permission("PROCESS_RETURNS")
def update_order_route(order_id: int):
    """
    Update status / notes.

    payment_status is derived from payments; sending a value that differs
    from the derived one returns 409.
    """
    payload = request.get_json(silent=True) or {}
    try:
        order = order_service.update_order(order_id, payload)
        return jsonify({"order": order.to_dict(), "message": "Order updated"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/return")
@require_auth
@require_permission("PROCESS_RETURNS")
def return_order_route(order_id: int):
    """
    Cancel an order or return some of its items.

    Body:
    - {"action": "cancel"}
    - {"action": "partial_return", "items": [{"order_item_id", "return_qty"}]}
    """
    payload = request.get_json(silent=True) or {}
    try:
        result = order_service.return_order(order_id, payload, user_id=g.current_user.id)
        return jsonify(result), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to process order return")
        return jsonify({"error": "Internal server error"}), 500
