from flask import Blueprint, jsonify, request, g

from backoffice.decorators import require_auth
from backoffice.errors import DomainError, error_response
from backoffice.services import reporting_service
from backoffice.validation import parse_bool_arg, parse_int_arg


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_auth
def sales_report():
    group_by = request.args.get("group_by", "total")
    start = request.args.get("start")
    end = request.args.get("end")

    try:
        report = reporting_service.sales_report(g.tenant, start=start, end=end, group_by=group_by)
        return jsonify(report), 200
    except DomainError as exc:
        return error_response(exc)


@reports_bp.get("/inventory")
@require_auth
def inventory_report():
    try:
        report = reporting_service.inventory_report(
            g.tenant,
            category=request.args.get("category"),
            min_stock=parse_int_arg(request.args.get("min_stock"), "min_stock"),
            max_stock=parse_int_arg(request.args.get("max_stock"), "max_stock"),
            include_inactive=bool(parse_bool_arg(request.args.get("include_inactive"), "include_inactive")),
        )
        return jsonify(report), 200
    except DomainError as exc:
        return error_response(exc)
