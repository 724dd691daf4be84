# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/backoffice/routes/auth.py
"""
Authentication API routes

- Self-registration creates a Main User (a new tenant)
- Session tokens are opaque bearer tokens (hash stored server-side)
- Password reset never reveals whether an email is registered
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import DomainError, error_response
from ..services import auth_service
from ..services import session_service
from ..validation import ValidationError, enforce_rules_email
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _required_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required")
    return value


@auth_bp.post("/register")
def register_route():
    """
    Register a new Main User.

    Body: username, email, password, optional company_name.
    """
    data = request.get_json(silent=True) or {}
    try:
        username = _required_str(data, "username").strip()
        email = _required_str(data, "email").strip()
        password = _required_str(data, "password")
        enforce_rules_email({"email": email})
        if len(username) > 64:
            raise ValidationError("username exceeds max length 64")

        user = auth_service.register_main_user(
            username=username,
            email=email,
            password=password,
            company_name=(data.get("company_name") or None),
        )
        return jsonify({"user": user.to_dict(), "message": "Registration successful"}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Accepts username or email as identifier. The token must be sent as
    "Authorization: Bearer <token>" on protected routes.
    """
    data = request.get_json(silent=True) or {}
    identifier = data.get("username") or data.get("email") or data.get("identifier")
    password = data.get("password")

    if not all([identifier, password]):
        return jsonify({"error": "username/email and password required"}), 400

    try:
        user, token = auth_service.login(
            identifier,
            password,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "main_user_id": user.parent_user_id or user.id,
            "message": "Login successful",
        }), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.auth_token, reason="User logout")
    return jsonify({"message": "Logged out"}), 200


@auth_bp.post("/password-reset/request")
def password_reset_request_route():
    """Always answers 202 so callers cannot probe for registered emails."""
    data = request.get_json(silent=True) or {}
    try:
        auth_service.request_password_reset(data.get("email") or "", ip_address=request.remote_addr)
    except Exception:
        current_app.logger.exception("Failed to process password reset request")
    return jsonify({"message": "If the email is registered, a reset link has been sent."}), 202


@auth_bp.post("/password-reset/confirm")
def password_reset_confirm_route():
    """Body: token, new_password."""
    data = request.get_json(silent=True) or {}
    try:
        token = _required_str(data, "token")
        new_password = _required_str(data, "new_password")
        auth_service.confirm_password_reset(token, new_password)
        return jsonify({"message": "Password has been reset"}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to confirm password reset")
        return jsonify({"error": "Internal server error"}), 500
