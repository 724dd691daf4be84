# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

MULTI-TENANT: Registration creates a Main User (a new tenant). Sub-users
are created by their Main User through user_service.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit and special char required
- Session tokens managed separately (see session_service.py)
- Password reset tokens are single-use and short-lived; asking for a reset
  never reveals whether the email is registered
"""

import re
import uuid
from datetime import timedelta

import bcrypt
from flask import current_app
from sqlalchemy import func, or_

from ..errors import AuthenticationError, BusinessRuleViolation, ConflictError
from ..extensions import db
from ..models import PasswordResetToken, User
from ..validation import ValidationError
from backoffice.time_utils import utcnow
from . import email_service, session_service
from .security_service import log_security_event


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

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
    Hash password using bcrypt with cost factor 12.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash counts as a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def ensure_username_available(username: str, *, exclude_user_id: int | None = None) -> None:
    query = db.session.query(User).filter(func.lower(User.username) == username.lower())
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    if query.first():
        raise ConflictError("Username is already taken.")


def ensure_email_available(email: str, *, exclude_user_id: int | None = None) -> None:
    query = db.session.query(User).filter(func.lower(User.email) == email.lower())
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    if query.first():
        raise ConflictError("Email is already registered.")


def register_main_user(
    *,
    username: str,
    email: str,
    password: str,
    company_name: str | None = None,
) -> User:
    """
    Register a new Main User (tenant).

    Raises:
        ConflictError: username or email already in use (case-insensitive)
        PasswordValidationError: weak password
    """
    username = username.strip()
    email = email.strip().lower()
    ensure_username_available(username)
    ensure_email_available(email)

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        company_name=company_name,
        is_active=True,
        context={},
    )
    db.session.add(user)
    db.session.commit()

    current_app.logger.info("Registered main user id=%s username=%s", user.id, user.username)
    return user


def authenticate(
    identifier: str,
    password: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> User:
    """
    Authenticate by username or email.

    Raises:
        AuthenticationError: unknown user, wrong password, or inactive account
    """
    identifier = (identifier or "").strip()
    user = None
    if identifier:
        user = db.session.query(User).filter(or_(
            func.lower(User.username) == identifier.lower(),
            func.lower(User.email) == identifier.lower(),
        )).first()

    if not user or not verify_password(password, user.password_hash):
        log_security_event(
            user_id=user.id if user else None,
            main_user_id=(user.parent_user_id or user.id) if user else None,
            event_type="LOGIN_FAILED",
            success=False,
            reason="Invalid credentials",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        raise AuthenticationError("Invalid credentials")

    if not user.is_active:
        log_security_event(
            user_id=user.id,
            main_user_id=user.parent_user_id or user.id,
            event_type="LOGIN_FAILED",
            success=False,
            reason="User account is inactive",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        raise AuthenticationError("User account is inactive")

    if user.parent is not None and not user.parent.is_active:
        raise AuthenticationError("Main account is inactive")

    return user


def login(
    identifier: str,
    password: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[User, str]:
    """Authenticate and open a session; returns (user, plaintext_token)."""
    user = authenticate(identifier, password, ip_address=ip_address, user_agent=user_agent)
    user.last_login_at = utcnow()
    _, token = session_service.create_session(user, user_agent=user_agent, ip_address=ip_address)
    return user, token


def _reset_ttl() -> timedelta:
    return timedelta(minutes=current_app.config.get("PASSWORD_RESET_TOKEN_TTL_MINUTES", 60))


def build_reset_link(token: str) -> str:
    base_url = current_app.config["PASSWORD_RESET_URL"]
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}token={token}"


def request_password_reset(email: str, *, ip_address: str | None = None) -> None:
    """
    Issue a reset token and email the link.

    Unknown emails are ignored silently (no account enumeration). Earlier
    tokens of the user are deleted. Email delivery failures are logged and
    never surface to the caller.
    """
    email = (email or "").strip().lower()
    user = db.session.query(User).filter(func.lower(User.email) == email).first() if email else None
    if user is None:
        current_app.logger.warning("Password reset requested for unknown email")
        return

    db.session.query(PasswordResetToken).filter_by(user_id=user.id).delete(synchronize_session=False)
    token = PasswordResetToken(
        token=uuid.uuid4().hex,
        user_id=user.id,
        expires_at=utcnow() + _reset_ttl(),
    )
    db.session.add(token)
    db.session.commit()

    log_security_event(
        user_id=user.id,
        main_user_id=user.parent_user_id or user.id,
        event_type="PASSWORD_RESET_REQUESTED",
        success=True,
        ip_address=ip_address,
    )

    try:
        email_service.send_password_reset_email(user.email, user.username, build_reset_link(token.token))
    except Exception:
        current_app.logger.exception("Failed to send password reset email to user_id=%s", user.id)


def confirm_password_reset(token: str, new_password: str) -> None:
    """
    Set a new password using a reset token.

    Raises:
        BusinessRuleViolation: token unknown or expired (an expired token is deleted)
        PasswordValidationError: weak password
    """
    record = db.session.query(PasswordResetToken).filter_by(token=(token or "").strip()).first()
    if record is None:
        raise BusinessRuleViolation("Invalid or expired password reset token.")

    if record.is_expired(utcnow()):
        db.session.delete(record)
        db.session.commit()
        raise BusinessRuleViolation("Invalid or expired password reset token.")

    password_hash = hash_password(new_password)
    user = db.session.get(User, record.user_id)
    user.password_hash = password_hash
    db.session.query(PasswordResetToken).filter_by(user_id=user.id).delete(synchronize_session=False)
    session_service.revoke_all_user_sessions(user.id, reason="Password reset", commit=False)
    db.session.commit()

    log_security_event(
        user_id=user.id,
        main_user_id=user.parent_user_id or user.id,
        event_type="PASSWORD_RESET_COMPLETED",
        success=True,
    )


def purge_expired_reset_tokens() -> int:
    """Delete reset tokens past their expiry. Returns count deleted."""
    deleted = db.session.query(PasswordResetToken).filter(
        PasswordResetToken.expires_at < utcnow()
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
