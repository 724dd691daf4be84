# Overview: Flask API routes for the current user, company info and sub-users.

"""
User routes.

/api/users/me          profile of the authenticated user (any user)
/api/users/me/company  company info (main user only)
/api/users/me/sub-users  sub-user management (main user only)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError, error_response
from ..decorators import require_auth, require_main_user
from ..services import user_service
from ..validation import (
    ValidationError,
    coerce_context,
    enforce_rules_email,
    parse_bool_arg,
    parse_int_arg,
)


users_bp = Blueprint("users", __name__, url_prefix="/api/users")

_MAX_LENGTHS = {
    "username": 64,
    "email": 255,
    "company_name": 255,
    "company_address": 255,
    "company_phone": 32,
    "company_nit": 32,
}


def _clean_patch(payload, allowed: set[str]) -> dict:
    """Allowlist + light normalization for user-facing patches."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    patch = {}
    for key, value in payload.items():
        if key not in allowed:
            raise ValidationError(f"Field not allowed: {key}")
        if key == "context":
            patch[key] = coerce_context(value)
        elif key in ("is_active",):
            if not isinstance(value, bool):
                raise ValidationError(f"{key} must be a boolean")
            patch[key] = value
        elif key == "password":
            if not isinstance(value, str) or not value:
                raise ValidationError("password must be a non-empty string")
            patch[key] = value
        else:
            if value is None:
                if key in ("username", "email"):
                    raise ValidationError(f"{key} cannot be null")
                patch[key] = None
                continue
            text = str(value).strip()
            if key in ("username", "email") and not text:
                raise ValidationError(f"{key} cannot be blank")
            limit = _MAX_LENGTHS.get(key)
            if limit and len(text) > limit:
                raise ValidationError(f"{key} exceeds max length {limit}")
            patch[key] = text
    enforce_rules_email(patch)
    return patch


@users_bp.get("/me")
@require_auth
def get_me_route():
    try:
        return jsonify({"user": user_service.get_current_user(g.tenant)}), 200
    except DomainError as e:
        return error_response(e)


@users_bp.patch("/me")
@require_auth
def update_me_route():
    try:
        patch = _clean_patch(request.get_json(silent=True) or {}, {"username", "email", "context"})
        return jsonify({"user": user_service.update_current_user(g.tenant, patch=patch)}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update user profile")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/me/password")
@require_auth
def change_password_route():
    """Body: current_password, new_password. Other sessions stay valid."""
    data = request.get_json(silent=True) or {}
    current_password = data.get("current_password")
    new_password = data.get("new_password")
    if not current_password or not new_password:
        return jsonify({"error": "current_password and new_password required"}), 400
    try:
        user_service.change_password(
            g.tenant, current_password=current_password, new_password=new_password
        )
        return jsonify({"message": "Password changed"}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/me")
@require_auth
@require_main_user
def delete_me_route():
    """Delete the main account and everything the tenant owns."""
    try:
        user_service.delete_main_account(g.tenant)
        return jsonify({"ok": True}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete account")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/me/company")
@require_auth
@require_main_user
def update_company_route():
    try:
        patch = _clean_patch(request.get_json(silent=True) or {}, set(user_service.COMPANY_FIELDS))
        return jsonify({"user": user_service.update_company_info(g.tenant, patch=patch)}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update company info")
        return jsonify({"error": "Internal server error"}), 500


# Sub-users

@users_bp.get("/me/sub-users")
@require_auth
@require_main_user
def list_sub_users_route():
    try:
        result = user_service.list_sub_users(
            g.tenant,
            is_active=parse_bool_arg(request.args.get("is_active"), "is_active"),
            page=parse_int_arg(request.args.get("page"), "page"),
            per_page=parse_int_arg(request.args.get("per_page"), "per_page"),
        )
        return jsonify(result), 200
    except DomainError as e:
        return error_response(e)


@users_bp.post("/me/sub-users")
@require_auth
@require_main_user
def create_sub_user_route():
    """Body: username, email, password, optional context."""
    try:
        patch = _clean_patch(
            request.get_json(silent=True) or {}, {"username", "email", "password", "context"}
        )
        missing = sorted(k for k in ("username", "email", "password") if k not in patch)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        created = user_service.create_sub_user(
            g.tenant,
            username=patch["username"],
            email=patch["email"],
            password=patch["password"],
            context=patch.get("context"),
        )
        return jsonify({"user": created}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sub-user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("/me/sub-users/<int:sub_user_id>")
@require_auth
@require_main_user
def get_sub_user_route(sub_user_id: int):
    try:
        return jsonify({"user": user_service.get_sub_user(g.tenant, sub_user_id)}), 200
    except DomainError as e:
        return error_response(e)


@users_bp.patch("/me/sub-users/<int:sub_user_id>")
@require_auth
@require_main_user
def update_sub_user_route(sub_user_id: int):
    try:
        patch = _clean_patch(
            request.get_json(silent=True) or {},
            {"username", "email", "password", "context", "is_active"},
        )
        return jsonify({"user": user_service.update_sub_user(g.tenant, sub_user_id, patch=patch)}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update sub-user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/me/sub-users/<int:sub_user_id>/status")
@require_auth
@require_main_user
def set_sub_user_status_route(sub_user_id: int):
    """Deactivating a sub-user revokes its sessions."""
    data = request.get_json(silent=True) or {}
    is_active = data.get("is_active")
    if not isinstance(is_active, bool):
        return jsonify({"error": "is_active must be a boolean"}), 400
    try:
        updated = user_service.set_sub_user_status(g.tenant, sub_user_id, is_active=is_active)
        return jsonify({"user": updated}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update sub-user status")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/me/sub-users/<int:sub_user_id>")
@require_auth
@require_main_user
def delete_sub_user_route(sub_user_id: int):
    try:
        user_service.delete_sub_user(g.tenant, sub_user_id)
        return jsonify({"ok": True}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete sub-user")
        return jsonify({"error": "Internal server error"}), 500

