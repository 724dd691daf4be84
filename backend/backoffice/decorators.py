# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import DomainError, error_response
from .services import session_service
from .services.tenant_service import resolve_tenant


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.tenant: TenantContext (main_user_id, actor_user_id) passed to services
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account (or its main account) deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        try:
            tenant = resolve_tenant(
                context.user,
                request_id=getattr(g, "request_id", None),
                ip_address=request.remote_addr,
            )
        except DomainError as e:
            body, status = error_response(e)
            return jsonify(body), status

        # Session tenant must still match the account hierarchy
        if tenant.main_user_id != context.main_user_id:
            return jsonify({"error": "Invalid session: tenant changed"}), 401

        g.current_user = context.user
        g.tenant = tenant
        g.session_context = context
        g.auth_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_main_user(f):
    """Restrict a route to Main Users. Must be stacked under @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant = getattr(g, "tenant", None)
        if tenant is None:
            return jsonify({"error": "Authentication required"}), 401
        if not tenant.is_main_user:
            return jsonify({"error": "This operation is restricted to the main account"}), 403
        return f(*args, **kwargs)

    return decorated_function
