# Overview: Service-layer operations for stock; the only code path that changes Product.current_stock.

"""
Stock Ledger

Computes and applies the stock delta for a single (product, quantity,
direction) triple.

INVARIANTS:
- A DECREASE never drives current_stock below zero (sales and negative
  manual adjustments share this guard).
- An INCREASE is unconditionally accepted.
- Reversing a prior movement (cancellation) is not guarded: undoing a
  purchase may leave stock negative.
- Movements only change the in-memory Product; the enclosing unit of work
  persists them together with the rows they are derived from.
"""

from __future__ import annotations

import enum

from flask import current_app

from ..errors import InsufficientStockError
from ..models import Product
from ..validation import MAX_LINE_QUANTITY, ValidationError, coerce_int
from .concurrency import run_in_transaction
from .ledger_service import append_ledger_event
from .tenant_service import TenantContext, get_owned_or_404, records_tenant_denials, scoped_query


class StockDirection(str, enum.Enum):
    DECREASE = "DECREASE"
    INCREASE = "INCREASE"


_DIRECTION_BY_TYPE = {
    "SALE": StockDirection.DECREASE,
    "PURCHASE": StockDirection.INCREASE,
}


def direction_for(transaction_type: str) -> StockDirection:
    try:
        return _DIRECTION_BY_TYPE[transaction_type]
    except KeyError:
        raise ValidationError(f"Unknown transaction type: {transaction_type}")


def compute_new_stock(*, product: Product, quantity: int, direction: StockDirection) -> int:
    """
    Pure stock arithmetic with the non-negative guard for decreases.

    Raises:
        ValidationError: quantity is not a positive integer
        InsufficientStockError: a decrease would go below zero
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")

    current = product.current_stock or 0
    if direction == StockDirection.INCREASE:
        return current + quantity

    new_stock = current - quantity
    if new_stock < 0:
        raise InsufficientStockError(
            product_id=product.id,
            product_name=product.name,
            required=quantity,
            available=current,
        )
    return new_stock


def apply_stock_movement(product: Product, quantity: int, direction: StockDirection) -> int:
    """Apply a guarded movement to the in-memory product; returns the new stock."""
    product.current_stock = compute_new_stock(product=product, quantity=quantity, direction=direction)
    return product.current_stock


def reverse_stock_movement(product: Product, quantity: int, original_direction: StockDirection) -> int:
    """
    Undo a movement previously applied with `original_direction`.

    Reversing a DECREASE adds the quantity back. Reversing an INCREASE
    subtracts it and may leave stock negative.
    """
    if original_direction == StockDirection.DECREASE:
        product.current_stock = (product.current_stock or 0) + quantity
    else:
        product.current_stock = (product.current_stock or 0) - quantity
    return product.current_stock


@records_tenant_denials
def adjust_stock(ctx: TenantContext, product_id: int, adjustment, reason: str | None = None) -> dict:
    """
    Manual stock adjustment (signed, non-zero).

    Negative adjustments use the same non-negative guard as sales.
    The product row is locked and the change is audited in the same unit of work.
    """
    delta = coerce_int(adjustment, "adjustment")
    if delta == 0:
        raise ValidationError("adjustment must be non-zero")
    if abs(delta) > MAX_LINE_QUANTITY:
        raise ValidationError(f"adjustment cannot exceed {MAX_LINE_QUANTITY} units")

    def _op():
        product = get_owned_or_404(Product, product_id, ctx, lock=True)
        before = product.current_stock
        if delta > 0:
            apply_stock_movement(product, delta, StockDirection.INCREASE)
        else:
            apply_stock_movement(product, -delta, StockDirection.DECREASE)

        append_ledger_event(
            owner_user_id=ctx.main_user_id,
            actor_user_id=ctx.actor_user_id,
            event_type="product.stock_adjusted",
            event_category="product",
            entity_type="product",
            entity_id=product.id,
            note=reason or f"Manual stock adjustment {delta:+d}",
            payload={"before": before, "after": product.current_stock, "adjustment": delta},
        )
        current_app.logger.info(
            "Stock adjusted product_id=%s %s -> %s by user_id=%s",
            product.id, before, product.current_stock, ctx.actor_user_id,
        )
        return product.id

    adjusted_id = run_in_transaction(_op)
    return get_owned_or_404(Product, adjusted_id, ctx).to_dict()


def get_stock_levels(ctx: TenantContext, product_ids) -> list[dict]:
    """Tenant-scoped stock snapshot; ids of other tenants are silently omitted."""
    ids = [coerce_int(pid, "product_id") for pid in product_ids]
    if not ids:
        return []
    rows = (
        scoped_query(Product, ctx)
        .filter(Product.id.in_(ids))
        .order_by(Product.id.asc())
        .all()
    )
    return [
        {"product_id": p.id, "sku": p.sku, "name": p.name, "current_stock": p.current_stock}
        for p in rows
    ]
