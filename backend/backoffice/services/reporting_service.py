# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from backoffice.models import Client, Product, Transaction, TransactionItem
from backoffice.time_utils import to_utc_z
from .tenant_service import TenantContext, scoped_query
from .transaction_service import parse_date_bound
from ..validation import ValidationError

SALES_GROUPINGS = ("total", "client", "product", "day")

# Products at or below this stock are flagged in the inventory report
LOW_STOCK_THRESHOLD = 5


def _sales_base(ctx: TenantContext, start_dt: datetime | None, end_dt: datetime | None):
    """Completed sales of the tenant inside the (inclusive) date range."""
    query = scoped_query(Transaction, ctx).filter(
        Transaction.transaction_type == "SALE",
        Transaction.status == "COMPLETED",
    )
    if start_dt:
        query = query.filter(Transaction.transaction_date >= start_dt)
    if end_dt:
        query = query.filter(Transaction.transaction_date <= end_dt)
    return query


def sales_report(
    ctx: TenantContext,
    *,
    start: str | None = None,
    end: str | None = None,
    group_by: str = "total",
) -> dict:
    """
    Sales totals for COMPLETED sales in [start, end].

    group_by:
    - total: one row with total_sales_cents and transaction_count
    - client: one row per client
    - product: one row per product (quantity and subtotal sums from items)
    - day: one row per calendar day of transaction_date
    """
    if group_by not in SALES_GROUPINGS:
        raise ValidationError(f"group_by must be one of: {', '.join(SALES_GROUPINGS)}")

    start_dt = parse_date_bound(start, "start", end_of_day=False)
    end_dt = parse_date_bound(end, "end", end_of_day=True)
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start must be before end")

    base = _sales_base(ctx, start_dt, end_dt)

    totals = base.with_entities(
        func.coalesce(func.sum(Transaction.total_amount_cents), 0),
        func.count(Transaction.id),
    ).one()
    summary = {
        "total_sales_cents": int(totals[0] or 0),
        "transaction_count": int(totals[1] or 0),
    }

    rows: list[dict] = []
    if group_by == "client":
        grouped = (
            base.join(Client, Client.id == Transaction.client_id)
            .with_entities(
                Client.id,
                Client.name,
                func.coalesce(func.sum(Transaction.total_amount_cents), 0).label("total"),
                func.count(Transaction.id).label("count"),
            )
            .group_by(Client.id, Client.name)
            .order_by(func.sum(Transaction.total_amount_cents).desc(), Client.id.asc())
            .all()
        )
        rows = [
            {
                "client_id": r[0],
                "client_name": r[1],
                "total_sales_cents": int(r[2] or 0),
                "transaction_count": int(r[3] or 0),
            }
            for r in grouped
        ]
    elif group_by == "product":
        grouped = (
            base.join(TransactionItem, TransactionItem.transaction_id == Transaction.id)
            .join(Product, Product.id == TransactionItem.product_id)
            .with_entities(
                Product.id,
                Product.sku,
                Product.name,
                func.coalesce(func.sum(TransactionItem.quantity), 0),
                func.coalesce(func.sum(TransactionItem.subtotal_cents), 0),
            )
            .group_by(Product.id, Product.sku, Product.name)
            .order_by(func.sum(TransactionItem.subtotal_cents).desc(), Product.id.asc())
            .all()
        )
        rows = [
            {
                "product_id": r[0],
                "sku": r[1],
                "name": r[2],
                "quantity_sold": int(r[3] or 0),
                "total_sales_cents": int(r[4] or 0),
            }
            for r in grouped
        ]
    elif group_by == "day":
        day = func.date(Transaction.transaction_date)
        grouped = (
            base.with_entities(
                day.label("day"),
                func.coalesce(func.sum(Transaction.total_amount_cents), 0),
                func.count(Transaction.id),
            )
            .group_by(day)
            .order_by(day.asc())
            .all()
        )
        rows = [
            {
                "day": str(r[0]),
                "total_sales_cents": int(r[1] or 0),
                "transaction_count": int(r[2] or 0),
            }
            for r in grouped
        ]

    return {
        "report": "sales",
        "group_by": group_by,
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        **summary,
        "rows": rows,
    }


def inventory_report(
    ctx: TenantContext,
    *,
    category: str | None = None,
    min_stock: int | None = None,
    max_stock: int | None = None,
    include_inactive: bool = False,
) -> dict:
    """Current stock per product, optionally filtered by category and stock range."""
    if min_stock is not None and max_stock is not None and min_stock > max_stock:
        raise ValidationError("min_stock must be <= max_stock")

    query = scoped_query(Product, ctx)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category:
        query = query.filter(func.lower(Product.category) == category.strip().lower())
    if min_stock is not None:
        query = query.filter(Product.current_stock >= min_stock)
    if max_stock is not None:
        query = query.filter(Product.current_stock <= max_stock)

    products = query.order_by(Product.name.asc(), Product.id.asc()).all()

    rows = []
    total_units = 0
    total_value_cents = 0
    for p in products:
        stock_value = p.current_stock * (p.purchase_price_cents or 0)
        total_units += p.current_stock
        total_value_cents += stock_value
        rows.append({
            "product_id": p.id,
            "sku": p.sku,
            "name": p.name,
            "category": p.category,
            "current_stock": p.current_stock,
            "unit_of_measure": p.unit_of_measure,
            "purchase_price_cents": p.purchase_price_cents,
            "sale_price_cents": p.sale_price_cents,
            "stock_value_cents": stock_value,
            "low_stock": p.current_stock <= LOW_STOCK_THRESHOLD,
        })

    return {
        "report": "inventory",
        "filters": {"category": category, "min_stock": min_stock, "max_stock": max_stock},
        "product_count": len(rows),
        "total_units": total_units,
        "total_value_cents": total_value_cents,
        "rows": rows,
    }
