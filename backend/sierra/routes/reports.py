# Overview: Flask API routes for financial reports, the dashboard and analytics; read-only.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_permission
from ..services import reporting_service
from ..validation import ValidationError, parse_choice, parse_date, parse_int
from sierra.time_utils import today


reports_bp = Blueprint("reports", __name__, url_prefix="/api/financial-reports")
dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")
analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


@reports_bp.get("/trading-account")
@require_auth
@require_permission("VIEW_REPORTS")
def trading_account_report():
    try:
        start_date, end_date = reporting_service.parse_period(
            request.args.get("start_date"), request.args.get("end_date")
        )
        return jsonify(reporting_service.trading_account(start_date, end_date)), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/profit-loss")
@require_auth
@require_permission("VIEW_REPORTS")
def profit_loss_report():
    try:
        start_date, end_date = reporting_service.parse_period(
            request.args.get("start_date"), request.args.get("end_date")
        )
        return jsonify(reporting_service.profit_and_loss(start_date, end_date)), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/balance-sheet")
@require_auth
@require_permission("VIEW_REPORTS")
def balance_sheet_report():
    """
    Query params:
    - end_date (required): the "as at" date
    - start_date (optional): start of the profit period, default 1 January
    """
    try:
        as_at = parse_date("end_date", request.args.get("end_date"))
        start_date = parse_date("start_date", request.args.get("start_date"), required=False)
        return jsonify(reporting_service.balance_sheet(as_at, start_date=start_date)), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@dashboard_bp.get("/stats")
@require_auth
@require_permission("VIEW_REPORTS")
def dashboard_stats():
    try:
        stats = reporting_service.dashboard_stats()
        stats["as_of"] = today().isoformat()
        return jsonify(stats), 200
    except Exception:
        current_app.logger.exception("Failed to build dashboard stats")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/product-performance")
@require_auth
@require_permission("VIEW_REPORTS")
def product_performance_report():
    """
    Query params:
    - limit (default 20)
    - status: out_of_stock | low_stock | overstocked | normal
    """
    try:
        limit = parse_int("limit", request.args.get("limit"), required=False)
        if limit is None:
            limit = 20
        elif limit < 1:
            raise ValidationError("limit must be >= 1")
        status = parse_choice(
            "status", request.args.get("status"), reporting_service.STOCK_STATUSES, required=False
        )
        return jsonify(reporting_service.product_performance(limit=limit, status=status)), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400


@analytics_bp.get("/financial-health")
@require_auth
@require_permission("VIEW_REPORTS")
def financial_health_report():
    try:
        return jsonify({"financial_health": reporting_service.financial_health()}), 200
    except Exception:
        current_app.logger.exception("Failed to build financial health figures")
        return jsonify({"error": "Internal server error"}), 500
