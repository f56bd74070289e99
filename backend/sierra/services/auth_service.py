# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every bill, payment and stock movement must be attributable to a
user. Uses bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
"""

import logging
import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User, Role, UserRole
from ..permissions import DEFAULT_ROLE_DESCRIPTIONS
from ..validation import NotFoundError
from sierra.time_utils import utcnow
from .session_service import revoke_all_user_sessions


logger = logging.getLogger(__name__)


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class UserExistsError(Exception):
    """Raised when a username or email is already taken."""
    pass


class UserUpdateError(Exception):
    """Raised when a user change is not allowed (400)."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    full_name: str | None = None,
    role_name: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        UserExistsError: username or email already taken
        PasswordValidationError: password doesn't meet requirements
        ValueError: role_name does not exist
    """
    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise UserExistsError("Username or email already exists")

    role = None
    if role_name:
        role = db.session.query(Role).filter_by(name=role_name).first()
        if not role:
            raise ValueError(f"Role {role_name} not found")

    user = User(
        username=username,
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
    )
    db.session.add(user)
    db.session.flush()

    if role:
        db.session.add(UserRole(user_id=user.id, role_id=role.id))

    db.session.commit()
    logger.info("Created user %s (roles=%s)", username, role_name or "-")
    return user


# =============================================================================
# USER MAINTENANCE
# =============================================================================

def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    return user


def _set_role(user: User, role_name: str) -> None:
    """Replace the user's roles with the single named role."""
    role = db.session.query(Role).filter_by(name=role_name).first()
    if not role:
        raise ValueError(f"Role {role_name} not found")
    for user_role in list(user.user_roles):
        if user_role.role_id != role.id:
            db.session.delete(user_role)
    if role.id not in {ur.role_id for ur in user.user_roles}:
        db.session.add(UserRole(user_id=user.id, role_id=role.id))


def update_user(user_id: int, data: dict, *, acting_user_id: int) -> User:
    """
    Update email, full_name, role and is_active.

    Deactivating revokes every session of the user. Nobody can deactivate
    themselves or change their own role.

    Raises:
        NotFoundError: unknown user
        UserExistsError: email already taken
        UserUpdateError: not allowed on the acting user, or bad field
        ValueError: role does not exist
    """
    user = get_user(user_id)
    unknown = set(data) - {"email", "full_name", "role", "is_active"}
    if unknown:
        raise UserUpdateError(f"Fields not allowed: {', '.join(sorted(unknown))}")

    if "email" in data:
        email = (data["email"] or "").strip()
        if not email:
            raise UserUpdateError("email cannot be blank")
        taken = db.session.query(User).filter(User.email == email, User.id != user_id).first()
        if taken:
            raise UserExistsError("Email already in use")
        user.email = email

    if "full_name" in data:
        user.full_name = (data["full_name"] or "").strip() or None

    if "role" in data:
        if user.id == acting_user_id:
            raise UserUpdateError("Cannot change your own role")
        _set_role(user, data["role"])

    revoked = 0
    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            raise UserUpdateError("is_active must be true or false")
        if not data["is_active"] and user.id == acting_user_id:
            raise UserUpdateError("Cannot deactivate your own account")
        if user.is_active and not data["is_active"]:
            revoked = revoke_all_user_sessions(user.id)
        user.is_active = data["is_active"]

    db.session.commit()
    logger.info("Updated user %s (fields=%s, sessions revoked=%s)", user.username, sorted(data), revoked)
    return user


def deactivate_user(user_id: int, *, acting_user_id: int) -> int:
    """
    Deactivate a user and revoke their sessions (DELETE /api/users/<id>).

    Rows that reference the user stay intact. Returns sessions revoked.
    """
    user = get_user(user_id)
    if user.id == acting_user_id:
        raise UserUpdateError("Cannot deactivate your own account")
    if not user.is_active:
        raise UserUpdateError("User is already deactivated")

    user.is_active = False
    revoked = revoke_all_user_sessions(user.id)
    db.session.commit()
    logger.info("Deactivated user %s (%s sessions revoked)", user.username, revoked)
    return revoked


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username (or email) and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def assign_role(user_id: int, role_name: str) -> UserRole:
    """Assign role to user."""
    role = db.session.query(Role).filter_by(name=role_name).first()
    if not role:
        raise ValueError(f"Role {role_name} not found")

    existing = db.session.query(UserRole).filter_by(
        user_id=user_id,
        role_id=role.id
    ).first()

    if existing:
        return existing

    user_role = UserRole(user_id=user_id, role_id=role.id)

    db.session.add(user_role)
    db.session.commit()
    return user_role


def create_default_roles() -> None:
    """Create the admin and staff roles if they don't exist."""
    for name, desc in DEFAULT_ROLE_DESCRIPTIONS.items():
        existing = db.session.query(Role).filter_by(name=name).first()
        if not existing:
            db.session.add(Role(name=name, description=desc))

    db.session.commit()
