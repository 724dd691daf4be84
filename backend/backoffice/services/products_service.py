# backend/backoffice/services/products_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations are tenant-scoped.
- list_products filters by the caller's tenant
- create_product stamps owner_user_id from the TenantContext
- get/update/delete go through the Ownership Guard

STOCK: current_stock is set once at creation; afterwards it only changes
through transactions or stock_service.adjust_stock.
"""
from __future__ import annotations

from sqlalchemy import func, or_

from ..errors import ConflictError
from ..extensions import db
from ..models import Product, TransactionItem
from ..pagination import paginate_query
from .concurrency import run_in_transaction
from .ledger_service import append_ledger_event
from .tenant_service import TenantContext, get_owned_or_404, records_tenant_denials, scoped_query

PRODUCT_MUTABLE_FIELDS = {
    "sku", "name", "description", "purchase_price_cents", "sale_price_cents",
    "unit_of_measure", "category", "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k == "context":
            merged = dict(p.context or {})
            merged.update(v or {})
            p.context = merged
            continue
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _ensure_unique_sku(ctx: TenantContext, sku: str, *, exclude_id: int | None = None) -> None:
    query = scoped_query(Product, ctx).filter(func.lower(Product.sku) == sku.lower())
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError(f"SKU '{sku}' already exists.")


def _ledger(ctx: TenantContext, product: Product, event_type: str, note: str) -> None:
    append_ledger_event(
        owner_user_id=ctx.main_user_id,
        actor_user_id=ctx.actor_user_id,
        event_type=event_type,
        event_category="product",
        entity_type="product",
        entity_id=product.id,
        note=note,
    )


def list_products(
    ctx: TenantContext,
    *,
    category: str | None = None,
    is_active: bool | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Tenant-scoped product listing.

    category: case-insensitive exact match
    search: case-insensitive substring over name and SKU
    """
    query = scoped_query(Product, ctx)
    if category:
        query = query.filter(func.lower(Product.category) == category.strip().lower())
    if is_active is not None:
        query = query.filter(Product.is_active == is_active)
    if search:
        term = search.strip().lower()
        query = query.filter(or_(
            func.lower(Product.name).contains(term, autoescape=True),
            func.lower(Product.sku).contains(term, autoescape=True),
        ))
    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate_query(query, page=page, per_page=per_page, serialize=Product.to_dict)


@records_tenant_denials
def get_product(ctx: TenantContext, product_id: int) -> dict:
    return get_owned_or_404(Product, product_id, ctx).to_dict()


def create_product(ctx: TenantContext, *, patch: dict) -> dict:
    """
    Create product using a validated patch dict.

    Raises:
        ConflictError: If SKU already exists in the tenant (case-insensitive)
    """
    def _op():
        _ensure_unique_sku(ctx, patch["sku"])

        p = Product(owner_user_id=ctx.main_user_id, current_stock=patch.get("current_stock") or 0)
        apply_product_patch(p, patch)

        db.session.add(p)
        db.session.flush()  # ensure p.id exists before ledger append

        _ledger(ctx, p, "product.created", f"Created product sku={p.sku} name={p.name}")
        return p.id

    product_id = run_in_transaction(_op)
    return get_product(ctx, product_id)


@records_tenant_denials
def update_product(ctx: TenantContext, product_id: int, *, patch: dict) -> dict:
    """Partial update; SKU uniqueness re-checked on change, context merged."""
    def _op():
        p = get_owned_or_404(Product, product_id, ctx, lock=True)
        new_sku = patch.get("sku")
        if new_sku and new_sku.lower() != (p.sku or "").lower():
            _ensure_unique_sku(ctx, new_sku, exclude_id=p.id)

        apply_product_patch(p, patch)
        _ledger(ctx, p, "product.updated", f"Updated product fields: {', '.join(sorted(patch))}")
        return p.id

    run_in_transaction(_op)
    return get_product(ctx, product_id)


@records_tenant_denials
def set_product_status(ctx: TenantContext, product_id: int, *, is_active: bool) -> dict:
    def _op():
        p = get_owned_or_404(Product, product_id, ctx, lock=True)
        p.is_active = is_active
        _ledger(ctx, p, "product.activated" if is_active else "product.deactivated", f"sku={p.sku}")
        return p.id

    run_in_transaction(_op)
    return get_product(ctx, product_id)


@records_tenant_denials
def delete_product(ctx: TenantContext, product_id: int) -> None:
    """
    Delete a product that no transaction references.

    Raises:
        ConflictError: product is referenced by transaction items
    """
    def _op():
        p = get_owned_or_404(Product, product_id, ctx, lock=True)
        references = (
            db.session.query(func.count(func.distinct(TransactionItem.transaction_id)))
            .filter(TransactionItem.product_id == p.id)
            .scalar()
        )
        if references:
            raise ConflictError(
                f"Cannot delete product: It is referenced in {references} transaction(s). "
                "Consider deactivating instead.",
                details={"transaction_count": references},
            )

        _ledger(ctx, p, "product.deleted", f"Deleted product sku={p.sku} name={p.name}")
        db.session.delete(p)

    run_in_transaction(_op)
