# Overview: Flask API routes for supplier payments; parses input and returns JSON responses.

# backend/sierra/routes/supplier_payments.py
"""
Supplier payment routes.

SECURITY: Reads require VIEW_PURCHASES; paying, resolving cheques and
deleting payments require PAY_SUPPLIERS.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import supplier_payment_service
from ..validation import ValidationError, ConflictError, NotFoundError, parse_date
from ..decorators import require_auth, require_permission


supplier_payments_bp = Blueprint("supplier_payments", __name__, url_prefix="/api/supplier-payments")


@supplier_payments_bp.post("")
@require_auth
@require_permission("PAY_SUPPLIERS")
def create_supplier_payment_route():
    """
    Pay a supplier from a company account.

    Body: supplier_id, company_account_id, amount_cents, payment_method,
    payment_date, purchase_id?, bank_id?, cheque_number?, cheque_date?,
    reference_number?, notes?
    """
    payload = request.get_json(silent=True) or {}
    try:
        payment = supplier_payment_service.create_supplier_payment(payload, user_id=g.current_user.id)
        body = {"payment": payment.to_dict(), "message": "Supplier payment recorded"}
        if payment.purchase is not None:
            body["purchase"] = payment.purchase.to_dict()
        return jsonify(body), 201
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record supplier payment")
        return jsonify({"error": "Internal server error"}), 500


@supplier_payments_bp.get("")
@require_auth
@require_permission("VIEW_PURCHASES")
def list_supplier_payments_route():
    """Query params: supplier_id, purchase_id, cheque_status, start_date, end_date."""
    try:
        payments = supplier_payment_service.list_supplier_payments(
            supplier_id=request.args.get("supplier_id", type=int),
            purchase_id=request.args.get("purchase_id", type=int),
            cheque_status=request.args.get("cheque_status"),
            start_date=parse_date("start_date", request.args.get("start_date"), required=False),
            end_date=parse_date("end_date", request.args.get("end_date"), required=False),
        )
        return jsonify({
            "payments": [p.to_dict() for p in payments],
            "count": len(payments),
            "total_cents": sum(p.amount_cents for p in payments),
        }), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@supplier_payments_bp.get("/summary")
@require_auth
@require_permission("VIEW_PURCHASES")
def payables_summary_route():
    """Accounts payable and supplier cheques still pending."""
    return jsonify(supplier_payment_service.payables_summary()), 200


@supplier_payments_bp.get("/<int:payment_id>")
@require_auth
@require_permission("VIEW_PURCHASES")
def get_supplier_payment_route(payment_id: int):
    try:
        payment = supplier_payment_service.get_supplier_payment(payment_id)
        return jsonify({"payment": payment.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@supplier_payments_bp.patch("/<int:payment_id>")
@require_auth
@require_permission("PAY_SUPPLIERS")
def update_supplier_cheque_route(payment_id: int):
    """Body: {"status": "passed" | "returned"} for a pending cheque."""
    payload = request.get_json(silent=True) or {}
    try:
        payment = supplier_payment_service.update_cheque_status(payment_id, payload, user_id=g.current_user.id)
        return jsonify({"payment": payment.to_dict(), "message": f"Cheque marked {payment.cheque_status}"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update supplier cheque")
        return jsonify({"error": "Internal server error"}), 500


@supplier_payments_bp.delete("/<int:payment_id>")
@require_auth
@require_permission("PAY_SUPPLIERS")
def delete_supplier_payment_route(payment_id: int):
    """Delete a payment and reverse its account debit and purchase balance."""
    try:
        supplier_payment_service.delete_supplier_payment(payment_id, user_id=g.current_user.id)
        return jsonify({"message": "Supplier payment deleted"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to delete supplier payment")
        return jsonify({"error": "Internal server error"}), 500
