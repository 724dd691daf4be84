# Overview: Flask API routes for sale/purchase transactions; parses input and returns JSON responses.

"""
Transaction routes.

MULTI-TENANT: Every call runs under g.tenant (set by @require_auth); the
service layer enforces ownership of every referenced id.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError, error_response
from ..decorators import require_auth
from ..services import transaction_service
from ..services.transaction_service import TransactionFilter
from ..validation import ValidationError, parse_int_arg


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.post("/sales")
@require_auth
def create_sale_route():
    """Create a SALE. Body: client_id, items[], optional date/reference/notes/context/status."""
    try:
        created = transaction_service.create_sale(g.tenant, request.get_json(silent=True))
        return jsonify({"transaction": created}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/purchases")
@require_auth
def create_purchase_route():
    """Create a PURCHASE. Body: provider_id, items[], optional date/reference/notes/context/status."""
    try:
        created = transaction_service.create_purchase(g.tenant, request.get_json(silent=True))
        return jsonify({"transaction": created}), 201
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    """
    List transactions.

    Query params:
    - type, status, client_id, provider_id
    - date_from, date_to (inclusive, ISO-8601)
    - reference (case-insensitive substring)
    - page, per_page, sort ("field,asc|desc")
    """
    try:
        filters = TransactionFilter.from_args(request.args)
        result = transaction_service.list_transactions(
            g.tenant,
            filters,
            page=parse_int_arg(request.args.get("page"), "page"),
            per_page=parse_int_arg(request.args.get("per_page"), "per_page"),
            sort=request.args.get("sort"),
        )
        return jsonify(result), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    try:
        return jsonify({"transaction": transaction_service.get_transaction(g.tenant, transaction_id)}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.patch("/<int:transaction_id>")
@require_auth
def update_transaction_route(transaction_id: int):
    """Update notes, reference_number, context, or move PENDING to COMPLETED."""
    try:
        updated = transaction_service.update_transaction(
            g.tenant, transaction_id, request.get_json(silent=True)
        )
        return jsonify({"transaction": updated}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.post("/<int:transaction_id>/cancel")
@require_auth
def cancel_transaction_route(transaction_id: int):
    """Cancel and reverse stock effects. Optional body: {"reason": "..."}."""
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        reason = data.get("reason")
        cancelled = transaction_service.cancel_transaction(
            g.tenant, transaction_id, str(reason).strip()[:255] if reason else None
        )
        return jsonify({"transaction": cancelled}), 200
    except DomainError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel transaction")
        return jsonify({"error": "Internal server error"}), 500
