# Overview: Service-layer operations for auth; password hashing and credential checks.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
- Deactivated users cannot authenticate
"""

import logging
import re

import bcrypt
from flask import current_app

from ..errors import ValidationFailed
from ..extensions import db
from ..models import User
from elora.time_utils import utcnow

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises ValidationFailed(field="password") if requirements not met.
    """
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long", field="password"
        )

    if not re.search(r'[A-Z]', password):
        raise ValidationFailed("Password must contain at least one uppercase letter", field="password")

    if not re.search(r'[a-z]', password):
        raise ValidationFailed("Password must contain at least one lowercase letter", field="password")

    if not re.search(r'\d', password):
        raise ValidationFailed("Password must contain at least one digit", field="password")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise ValidationFailed("Password must contain at least one special character", field="password")


def _bcrypt_rounds() -> int:
    # Tests lower the cost factor; hashing at 12 rounds dominates suite time
    return int(current_app.config.get("BCRYPT_ROUNDS", 12))


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_bcrypt_rounds())
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        logger.warning("Unreadable password hash encountered during login")
        return False


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user with email and password.

    Returns the active User if credentials are valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        User.email == normalize_email(email),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
