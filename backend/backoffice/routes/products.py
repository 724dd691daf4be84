# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/backoffice/routes/products.py
"""
Product management routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the caller's tenant
(g.tenant, set by @require_auth). Foreign ids answer 404 like missing ones.
"""
from flask import Blueprint, request, g, jsonify, current_app

from ..errors import DomainError, error_response
from ..models import Product
from ..services import products_service, stock_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_product,
    parse_bool_arg,
    parse_int_arg,
)
from ..decorators import require_auth

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "purchase_price_cents", "sale_price_cents",
        "current_stock", "unit_of_measure", "category", "is_active", "context",
    },
    required_on_create={"sku", "name"},
)

# current_stock is only settable at creation; afterwards use stock adjustments
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_POLICY.writable_fields - {"current_stock"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    List products with pagination.

    Query params:
    - category: exact match, case-insensitive
    - is_active: true/false
    - search: substring of name or SKU
    - page, per_page (default 20, max 100)
    """
    try:
        result = products_service.list_products(
            g.tenant,
            category=request.args.get("category"),
            is_active=parse_bool_arg(request.args.get("is_active"), "is_active"),
            search=request.args.get("search"),
            page=parse_int_arg(request.args.get("page"), "page"),
            per_page=parse_int_arg(request.args.get("per_page"), "per_page"),
        )
        return jsonify(result), 200
    except DomainError as e:
        return error_response(e)


@products_bp.post("")
@require_auth
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        created = products_service.create_product(g.tenant, patch=patch)
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(created), 201


@products_bp.get("/stock")
@require_auth
def stock_levels_route():
    """Stock snapshot for ?ids=1,2,3 (ids of other tenants are omitted)."""
    raw = request.args.get("ids", "")
    try:
        ids = [part for part in raw.split(",") if part.strip()]
        return jsonify({"items": stock_service.get_stock_levels(g.tenant, ids)}), 200
    except DomainError as e:
        return error_response(e)


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return jsonify(products_service.get_product(g.tenant, product_id)), 200
    except DomainError as e:
        return error_response(e)


@products_bp.route("/<int:product_id>", methods=["PUT", "PATCH"])
@require_auth
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch)
        updated = products_service.update_product(g.tenant, product_id, patch=patch)
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(updated), 200


@products_bp.patch("/<int:product_id>/status")
@require_auth
def set_product_status_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        is_active = payload.get("is_active")
        if not isinstance(is_active, bool):
            raise ValidationError("is_active must be a boolean")
        return jsonify(products_service.set_product_status(g.tenant, product_id, is_active=is_active)), 200
    except DomainError as e:
        return error_response(e)


@products_bp.post("/<int:product_id>/stock-adjustments")
@require_auth
def adjust_stock_route(product_id: int):
    """Body: {"adjustment": <signed int, non-zero>, "reason": "..."}"""
    payload = request.get_json(silent=True) or {}
    try:
        if "adjustment" not in payload:
            raise ValidationError("adjustment is required")
        reason = payload.get("reason")
        adjusted = stock_service.adjust_stock(
            g.tenant, product_id, payload["adjustment"], str(reason).strip()[:255] if reason else None
        )
        return jsonify(adjusted), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    """Delete a product; 409 while any transaction references it."""
    try:
        products_service.delete_product(g.tenant, product_id)
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"ok": True}), 200
