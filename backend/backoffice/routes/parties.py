# Overview: Flask API routes for clients and providers; parses input and returns JSON responses.

"""
Counterparty routes.

Clients and Providers expose the same CRUD surface, so both blueprints are
built by one factory:

/api/clients, /api/providers
    GET     list (is_active, search, page, per_page)
    POST    create
    GET     /<id>
    PUT/PATCH /<id>
    PATCH   /<id>/status
    DELETE  /<id>   (409 while referenced by a transaction)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError, error_response
from ..decorators import require_auth
from ..services import counterparty_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_email,
    parse_bool_arg,
    parse_int_arg,
)


PARTY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "nit", "email", "phone", "address", "is_active", "context"},
    required_on_create={"name"},
)


def _build_party_blueprint(kind: str) -> Blueprint:
    model = counterparty_service.party_model(kind)
    label = model.__name__.lower()
    bp = Blueprint(kind, __name__, url_prefix=f"/api/{kind}")

    @bp.get("")
    @require_auth
    def list_route():
        try:
            result = counterparty_service.list_parties(
                g.tenant,
                model,
                is_active=parse_bool_arg(request.args.get("is_active"), "is_active"),
                search=request.args.get("search"),
                page=parse_int_arg(request.args.get("page"), "page"),
                per_page=parse_int_arg(request.args.get("per_page"), "per_page"),
            )
            return jsonify(result), 200
        except DomainError as e:
            return error_response(e)

    @bp.post("")
    @require_auth
    def create_route():
        payload = request.get_json(silent=True) or {}
        try:
            patch = validate_payload(model=model, payload=payload, policy=PARTY_POLICY, partial=False)
            enforce_rules_email(patch)
            created = counterparty_service.create_party(g.tenant, model, patch=patch)
        except DomainError as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to create %s", label)
            return jsonify({"error": "Internal server error"}), 500
        return jsonify(created), 201

    @bp.get("/<int:party_id>")
    @require_auth
    def get_route(party_id: int):
        try:
            return jsonify(counterparty_service.get_party(g.tenant, model, party_id)), 200
        except DomainError as e:
            return error_response(e)

    @bp.route("/<int:party_id>", methods=["PUT", "PATCH"])
    @require_auth
    def update_route(party_id: int):
        payload = request.get_json(silent=True) or {}
        try:
            patch = validate_payload(model=model, payload=payload, policy=PARTY_POLICY, partial=True)
            enforce_rules_email(patch)
            updated = counterparty_service.update_party(g.tenant, model, party_id, patch=patch)
        except DomainError as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to update %s", label)
            return jsonify({"error": "Internal server error"}), 500
        return jsonify(updated), 200

    @bp.patch("/<int:party_id>/status")
    @require_auth
    def set_status_route(party_id: int):
        payload = request.get_json(silent=True) or {}
        try:
            is_active = payload.get("is_active")
            if not isinstance(is_active, bool):
                raise ValidationError("is_active must be a boolean")
            updated = counterparty_service.set_party_status(g.tenant, model, party_id, is_active=is_active)
            return jsonify(updated), 200
        except DomainError as e:
            return error_response(e)

    @bp.delete("/<int:party_id>")
    @require_auth
    def delete_route(party_id: int):
        try:
            counterparty_service.delete_party(g.tenant, model, party_id)
        except DomainError as e:
            return error_response(e)
        except Exception:
            current_app.logger.exception("Failed to delete %s", label)
            return jsonify({"error": "Internal server error"}), 500
        return jsonify({"ok": True}), 200

    return bp


clients_bp = _build_party_blueprint("clients")
providers_bp = _build_party_blueprint("providers")
