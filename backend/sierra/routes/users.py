# Overview: Flask API routes for user administration; parses input and returns JSON responses.

# backend/sierra/routes/users.py
"""
User administration routes.

SECURITY: All routes require MANAGE_USERS (admin only).
Self-registration does not exist; accounts are created here or via
`flask users create`. Users are never hard-deleted: DELETE deactivates
the account so bills and payments keep their attribution.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..models import User
from ..services import auth_service
from ..services.auth_service import PasswordValidationError, UserExistsError, UserUpdateError
from ..validation import NotFoundError
from ..decorators import require_auth, require_permission


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_permission("MANAGE_USERS")
def list_users_route():
    users = db.session.query(User).order_by(User.username).all()
    return jsonify({"users": [u.to_dict() for u in users]}), 200


@users_bp.post("")
@require_auth
@require_permission("MANAGE_USERS")
def create_user_route():
    """
    Create a user.

    Body: username, email, password, full_name (optional),
    role ("admin" or "staff", default "staff").
    """
    data = request.get_json(silent=True) or {}
    username = (data.get("username") or "").strip()
    email = (data.get("email") or "").strip()
    password = data.get("password")
    role = data.get("role") or "staff"

    if not all([username, email, password]):
        return jsonify({"error": "username, email and password are required"}), 400

    try:
        user = auth_service.create_user(
            username=username,
            email=email,
            password=password,
            full_name=data.get("full_name"),
            role_name=role,
        )
        return jsonify({"user": user.to_dict(), "message": "User created"}), 201
    except UserExistsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except (PasswordValidationError, ValueError) as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def get_user_route(user_id: int):
    try:
        return jsonify({"user": auth_service.get_user(user_id).to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@users_bp.put("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def update_user_route(user_id: int):
    """
    Update a user.

    Body (all optional): email, full_name, role ("admin" or "staff"),
    is_active. Deactivating logs the user out everywhere.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        user = auth_service.update_user(user_id, data, acting_user_id=g.current_user.id)
        return jsonify({"user": user.to_dict(), "message": "User updated"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except UserExistsError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except (UserUpdateError, ValueError) as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update user %s", user_id)
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def deactivate_user_route(user_id: int):
    try:
        revoked = auth_service.deactivate_user(user_id, acting_user_id=g.current_user.id)
        return jsonify({"message": "User deactivated", "sessions_revoked": revoked}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except UserUpdateError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate user %s", user_id)
        return jsonify({"error": "Internal server error"}), 500
