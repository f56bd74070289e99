# Overview: Flask API routes for customer payments and cheques; parses input and returns JSON responses.

# backend/sierra/routes/payments.py
"""
Customer payment routes.

SECURITY: Reads require VIEW_ORDERS; recording payments and moving
cheques through their lifecycle require RECORD_PAYMENTS.

IDEMPOTENCY: POST /api/payments honours an `Idempotency-Key` header.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import payment_service
from ..validation import ValidationError, ConflictError, NotFoundError, parse_date
from ..decorators import require_auth, require_permission


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("")
@require_auth
@require_permission("RECORD_PAYMENTS")
def record_payment_route():
    """
    Record a payment against an order, or as standalone customer credit.

    Body: customer_id, amount_cents, payment_method, order_id (optional),
    deposit_account_id (cash/bank_transfer), cheque_number, cheque_date,
    bank_account_id (cheque), payment_date, reference_number, notes.
    """
    payload = request.get_json(silent=True) or {}
    idempotency_key = request.headers.get("Idempotency-Key")

    try:
        payment, replayed = payment_service.record_payment(
            payload,
            user_id=g.current_user.id,
            idempotency_key=idempotency_key,
        )
        body = {"payment": payment.to_dict()}
        if payment.order is not None:
            body["order"] = payment.order.to_dict()
            body.update(payment_service.get_order_payment_summary(payment.order))
        if replayed:
            body["replayed"] = True
            return jsonify(body), 200
        body["message"] = "Payment recorded successfully"
        return jsonify(body), 201

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("")
@require_auth
@require_permission("VIEW_ORDERS")
def list_payments_route():
    """
    Query params: customer_id, order_id, payment_method, cheque_status,
    start_date, end_date.
    """
    try:
        payments = payment_service.list_payments(
            customer_id=request.args.get("customer_id", type=int),
            order_id=request.args.get("order_id", type=int),
            payment_method=request.args.get("payment_method"),
            cheque_status=request.args.get("cheque_status"),
            start_date=parse_date("start_date", request.args.get("start_date"), required=False),
            end_date=parse_date("end_date", request.args.get("end_date"), required=False),
        )
        return jsonify({"payments": [p.to_dict() for p in payments], "count": len(payments)}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@payments_bp.get("/<int:payment_id>")
@require_auth
@require_permission("VIEW_ORDERS")
def get_payment_route(payment_id: int):
    try:
        payment = payment_service.get_payment(payment_id)
        return jsonify({"payment": payment.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@payments_bp.patch("/<int:payment_id>")
@require_auth
@require_permission("RECORD_PAYMENTS")
def update_cheque_status_route(payment_id: int):
    """
    Cheque status transition.

    Body: {"cheque_status": "deposited" | "passed" | "returned",
    "deposit_account_id"?}. passed and returned are terminal (409).
    """
    payload = request.get_json(silent=True) or {}
    try:
        payment = payment_service.update_cheque_status(payment_id, payload, user_id=g.current_user.id)
        body = {"payment": payment.to_dict(), "message": f"Cheque marked {payment.cheque_status}"}
        if payment.order is not None:
            body["order"] = payment.order.to_dict()
        return jsonify(body), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update cheque status")
        return jsonify({"error": "Internal server error"}), 500
