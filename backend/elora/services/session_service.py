# Overview: Service-layer operations for session; issues, validates and revokes bearer tokens.

"""
Bearer sessions.

A login issues a random token; only its SHA-256 digest is persisted, so a
leaked database cannot be replayed against the API. A session ends when:
- SESSION_ABSOLUTE_TIMEOUT_HOURS have passed since login
- it sat unused for SESSION_IDLE_TIMEOUT_HOURS
- the user logs out, is deactivated, or changes password
"""

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..errors import NotFound
from ..extensions import db
from ..models import SessionToken, User
from .permission_service import Principal, principal_from_user
from elora.time_utils import utcnow

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32
STALE_SESSION_RETENTION = timedelta(days=30)


@dataclass
class SessionContext:
    """What an authenticated request carries: account, session row, principal."""
    user: User
    session: SessionToken
    principal: Principal


def _hours(key: str, default: int) -> timedelta:
    return timedelta(hours=current_app.config.get(key, default))


def generate_token() -> str:
    """Plaintext token handed to the client once (hex, TOKEN_BYTES of entropy)."""
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(token: str) -> str:
    # Tokens are random, so a fast digest is enough (no bcrypt here)
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _live_session(token: str) -> SessionToken | None:
    return (
        db.session.query(SessionToken)
        .filter(SessionToken.token_hash == hash_token(token), SessionToken.is_revoked.is_(False))
        .first()
    )


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Open a session for `user_id`.

    Returns (session row, plaintext token). The caller must hand the token
    to the client now; it cannot be recovered later.
    """
    if db.session.query(User.id).filter(User.id == user_id).first() is None:
        raise NotFound("User", user_id)

    token = generate_token()
    issued = utcnow()
    record = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=issued,
        last_used_at=issued,
        expires_at=issued + _hours("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24),
        is_revoked=False,
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
    )
    db.session.add(record)
    db.session.commit()
    return record, token


def _revoke(record: SessionToken, reason: str) -> None:
    record.is_revoked = True
    record.revoked_at = utcnow()
    record.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its SessionContext, or None.

    Idle sessions and sessions of deactivated users are revoked on the
    spot; a live session has its last_used_at refreshed.
    """
    if not token:
        return None

    record = _live_session(token)
    if record is None:
        return None

    now = utcnow()
    if now > record.expires_at:
        return None
    if now - record.last_used_at > _hours("SESSION_IDLE_TIMEOUT_HOURS", 2):
        _revoke(record, "Idle timeout")
        return None

    user = record.user
    if user is None or not user.is_active:
        _revoke(record, "User account deactivated")
        return None

    record.last_used_at = now
    db.session.commit()
    return SessionContext(user=user, session=record, principal=principal_from_user(user))


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """False when the token is unknown or already revoked."""
    record = _live_session(token)
    if record is None:
        return False
    _revoke(record, reason)
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    """Revoke every live session of a user in one UPDATE; returns how many."""
    revoked = (
        db.session.query(SessionToken)
        .filter(SessionToken.user_id == user_id, SessionToken.is_revoked.is_(False))
        .update(
            {"is_revoked": True, "revoked_at": utcnow(), "revoked_reason": reason},
            synchronize_session=False,
        )
    )
    db.session.commit()
    if revoked:
        logger.info("Revoked %d sessions of user %s: %s", revoked, user_id, reason, extra={"user_id": user_id})
    return revoked


def cleanup_expired_sessions() -> int:
    """Purge sessions that ended (expired or revoked) and are past retention."""
    now = utcnow()
    purged = (
        db.session.query(SessionToken)
        .filter(
            db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True)),
            SessionToken.created_at < now - STALE_SESSION_RETENTION,
        )
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return purged
