# Overview: Service-layer operations for sale/purchase transactions; assembly, cancellation and querying.

"""
Transaction Service - sales and purchases with atomic stock effects

WHY: A transaction and the stock movements it causes are one fact. Every
mutation here runs as a single unit of work: header, items, product stock
and the ledger event commit together or not at all.

MULTI-TENANT: every function takes the caller's TenantContext; every
referenced client, provider, product and transaction goes through the
Ownership Guard.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Mapping

from sqlalchemy import func
from sqlalchemy.orm import joinedload, selectinload

from ..errors import BusinessRuleViolation
from ..extensions import db
from ..models import Client, Product, Provider, Transaction, TransactionItem
from ..models.transactions import TRANSACTION_STATUSES, TRANSACTION_TYPES
from ..pagination import paginate_query
from ..validation import (
    ValidationError,
    coerce_context,
    coerce_datetime,
    coerce_int,
    parse_line_quantity,
    parse_unit_price,
)
from backoffice.time_utils import end_of_day as day_end, is_date_only, parse_iso_datetime, utcnow
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import append_ledger_event
from .stock_service import apply_stock_movement, direction_for, reverse_stock_movement
from .tenant_service import TenantContext, get_owned_or_404, records_tenant_denials, scoped_query


CREATE_FIELDS = {
    "transaction_date", "reference_number", "notes", "context", "status",
    "client_id", "provider_id", "items",
}
ITEM_FIELDS = {"product_id", "quantity", "unit_price_cents", "context"}
UPDATE_FIELDS = {"status", "notes", "reference_number", "context"}
CREATABLE_STATUSES = {"COMPLETED", "PENDING"}

REFERENCE_MAX_LENGTH = 64

# Declared fetch plan for the detail projection
DETAIL_LOAD_OPTIONS = (
    selectinload(Transaction.items).joinedload(TransactionItem.product),
    joinedload(Transaction.client),
    joinedload(Transaction.provider),
    joinedload(Transaction.created_by),
)

SORTABLE_FIELDS = {
    "transaction_date": Transaction.transaction_date,
    "total_amount_cents": Transaction.total_amount_cents,
    "reference_number": Transaction.reference_number,
    "created_at": Transaction.created_at,
    "id": Transaction.id,
}
DEFAULT_SORT = "transaction_date,desc"


@dataclass
class _ItemRequest:
    product_id: int
    quantity: int
    unit_price_cents: int
    context: dict


@dataclass
class _CreateRequest:
    transaction_type: str
    counterparty_id: int
    transaction_date: datetime
    reference_number: str | None
    notes: str | None
    context: dict
    status: str
    items: list[_ItemRequest]


@dataclass
class TransactionFilter:
    """
    Optional filters for listing transactions.

    All provided fields are combined with AND. date_from/date_to are
    inclusive; reference_number is a case-insensitive substring match.
    """
    transaction_type: str | None = None
    status: str | None = None
    client_id: int | None = None
    provider_id: int | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    reference_number: str | None = None

    @classmethod
    def from_args(cls, args: Mapping[str, Any]) -> "TransactionFilter":
        """Parse query-string style arguments (all values may be strings)."""
        def _get(key):
            value = args.get(key)
            if isinstance(value, str):
                value = value.strip()
            return value if value not in (None, "") else None

        transaction_type = _get("type") or _get("transaction_type")
        if transaction_type is not None:
            transaction_type = str(transaction_type).upper()
            if transaction_type not in TRANSACTION_TYPES:
                raise ValidationError(f"type must be one of: {', '.join(TRANSACTION_TYPES)}")

        status = _get("status")
        if status is not None:
            status = str(status).upper()
            if status not in TRANSACTION_STATUSES:
                raise ValidationError(f"status must be one of: {', '.join(TRANSACTION_STATUSES)}")

        client_id = _get("client_id")
        provider_id = _get("provider_id")

        return cls(
            transaction_type=transaction_type,
            status=status,
            client_id=coerce_int(client_id, "client_id") if client_id is not None else None,
            provider_id=coerce_int(provider_id, "provider_id") if provider_id is not None else None,
            date_from=parse_date_bound(_get("date_from"), "date_from", end_of_day=False),
            date_to=parse_date_bound(_get("date_to"), "date_to", end_of_day=True),
            reference_number=_get("reference_number") or _get("reference"),
        )

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


def parse_date_bound(value, field: str, *, end_of_day: bool) -> datetime | None:
    """A bare date (YYYY-MM-DD) as an upper bound covers the whole day."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    try:
        dt = parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date or datetime")
    if dt is None:
        return None
    if end_of_day and is_date_only(str(value)):
        dt = day_end(dt)
    return dt


def _optional_text(payload: dict, key: str, max_length: int | None = None) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    if max_length and len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value or None


def _parse_items(raw_items) -> list[_ItemRequest]:
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        unknown = set(raw) - ITEM_FIELDS
        if unknown:
            raise ValidationError(f"items[{index}]: field not allowed: {sorted(unknown)[0]}")
        if raw.get("product_id") is None:
            raise ValidationError(f"items[{index}]: product_id is required")
        try:
            items.append(_ItemRequest(
                product_id=coerce_int(raw["product_id"], "product_id"),
                quantity=parse_line_quantity(raw.get("quantity")),
                unit_price_cents=parse_unit_price(raw.get("unit_price_cents")),
                context=coerce_context(raw.get("context")),
            ))
        except ValidationError as exc:
            raise ValidationError(f"items[{index}]: {exc.message}")
    return items


def _parse_create_request(payload: dict | None, transaction_type: str) -> _CreateRequest:
    """
    Validate a create payload before touching the database.

    The exactly-one-counterparty rule is checked here so a sale without a
    client (or a purchase without a provider) fails before any lookup or
    stock mutation.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = set(payload) - CREATE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    if transaction_type == "SALE":
        if payload.get("client_id") is None:
            raise BusinessRuleViolation("Client ID is required for SALE transactions.")
        if payload.get("provider_id") is not None:
            raise BusinessRuleViolation("SALE transactions cannot reference a provider.")
        counterparty_id = coerce_int(payload["client_id"], "client_id")
    else:
        if payload.get("provider_id") is None:
            raise BusinessRuleViolation("Provider ID is required for PURCHASE transactions.")
        if payload.get("client_id") is not None:
            raise BusinessRuleViolation("PURCHASE transactions cannot reference a client.")
        counterparty_id = coerce_int(payload["provider_id"], "provider_id")

    status = str(payload.get("status") or "COMPLETED").upper()
    if status not in CREATABLE_STATUSES:
        raise ValidationError("status must be COMPLETED or PENDING on creation")

    raw_date = payload.get("transaction_date")
    transaction_date = coerce_datetime(raw_date, "transaction_date") if raw_date else utcnow()

    return _CreateRequest(
        transaction_type=transaction_type,
        counterparty_id=counterparty_id,
        transaction_date=transaction_date,
        reference_number=_optional_text(payload, "reference_number", REFERENCE_MAX_LENGTH),
        notes=_optional_text(payload, "notes"),
        context=coerce_context(payload.get("context")),
        status=status,
        items=_parse_items(payload.get("items")),
    )


def compute_total(items) -> int:
    """Sum of item subtotals; missing subtotals count as zero."""
    return sum(item.subtotal_cents or 0 for item in items)


def _assemble(ctx: TenantContext, request: _CreateRequest) -> int:
    """Build and stage the transaction aggregate; returns the new id (not committed)."""
    if request.transaction_type == "SALE":
        counterparty = get_owned_or_404(Client, request.counterparty_id, ctx)
    else:
        counterparty = get_owned_or_404(Provider, request.counterparty_id, ctx)

    txn = Transaction(
        transaction_type=request.transaction_type,
        status=request.status,
        owner_user_id=ctx.main_user_id,
        created_by_user_id=ctx.actor_user_id,
        client_id=counterparty.id if request.transaction_type == "SALE" else None,
        provider_id=counterparty.id if request.transaction_type == "PURCHASE" else None,
        transaction_date=request.transaction_date,
        reference_number=request.reference_number,
        notes=request.notes,
        context=request.context,
    )

    # Lock referenced rows in id order before any stock change
    product_ids = sorted({line.product_id for line in request.items})
    if product_ids:
        lock_for_update(
            scoped_query(Product, ctx).filter(Product.id.in_(product_ids)).order_by(Product.id)
        ).all()

    direction = direction_for(request.transaction_type)
    products: dict[int, Product] = {}
    for position, line in enumerate(request.items):
        product = products.get(line.product_id)
        if product is None:
            product = get_owned_or_404(Product, line.product_id, ctx, lock=True)
            products[line.product_id] = product

        # Same product on several lines accumulates against the same row
        apply_stock_movement(product, line.quantity, direction)

        txn.items.append(TransactionItem(
            product=product,
            position=position,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            subtotal_cents=line.quantity * line.unit_price_cents,
            context=line.context,
        ))

    txn.total_amount_cents = compute_total(txn.items)

    db.session.add(txn)
    db.session.flush()

    append_ledger_event(
        owner_user_id=ctx.main_user_id,
        actor_user_id=ctx.actor_user_id,
        event_type="transaction.created",
        event_category="transaction",
        entity_type="transaction",
        entity_id=txn.id,
        occurred_at=txn.transaction_date,
        note=f"{txn.transaction_type} {txn.reference_number or txn.id} total_cents={txn.total_amount_cents}",
        payload={
            "items": [
                {"product_id": item.product_id, "quantity": item.quantity}
                for item in txn.items
            ],
        },
    )
    return txn.id


def _create_transaction(ctx: TenantContext, payload: dict | None, transaction_type: str) -> dict:
    request = _parse_create_request(payload, transaction_type)
    txn_id = run_in_transaction(lambda: _assemble(ctx, request))
    return get_transaction(ctx, txn_id)


@records_tenant_denials
def create_sale(ctx: TenantContext, payload: dict | None) -> dict:
    """
    Record a SALE: requires an owned client, decreases stock per item.

    Fails as a whole (no stock change persisted) if any product is missing,
    foreign, or lacks stock for its cumulative quantity.
    """
    return _create_transaction(ctx, payload, "SALE")


@records_tenant_denials
def create_purchase(ctx: TenantContext, payload: dict | None) -> dict:
    """Record a PURCHASE: requires an owned provider, increases stock per item."""
    return _create_transaction(ctx, payload, "PURCHASE")


@records_tenant_denials
def get_transaction(ctx: TenantContext, transaction_id: int) -> dict:
    """Detail projection, loaded with the declared fetch plan."""
    txn = get_owned_or_404(Transaction, transaction_id, ctx, options=DETAIL_LOAD_OPTIONS)
    return txn.to_detail()


@records_tenant_denials
def update_transaction(ctx: TenantContext, transaction_id: int, payload: dict | None) -> dict:
    """
    Update the mutable header fields of a transaction.

    Only notes, reference_number, context (merged) and the PENDING -> COMPLETED
    status transition are allowed. Items, counterparty, type and total never
    change; cancellation has its own operation.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(payload) - UPDATE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    new_status = payload.get("status")
    if new_status is not None:
        new_status = str(new_status).upper()
        if new_status not in TRANSACTION_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(TRANSACTION_STATUSES)}")
        if new_status == "CANCELLED":
            raise BusinessRuleViolation("Use the cancel operation to cancel a transaction.")
    context_patch = coerce_context(payload["context"]) if "context" in payload else None

    def _op():
        txn = get_owned_or_404(Transaction, transaction_id, ctx, lock=True)
        if txn.status == "CANCELLED":
            raise BusinessRuleViolation("Cancelled transactions cannot be modified.")

        changed = []
        if new_status is not None and new_status != txn.status:
            if not (txn.status == "PENDING" and new_status == "COMPLETED"):
                raise BusinessRuleViolation(f"Cannot change status from {txn.status} to {new_status}.")
            txn.status = new_status
            changed.append("status")
        if "notes" in payload:
            txn.notes = _optional_text(payload, "notes")
            changed.append("notes")
        if "reference_number" in payload:
            txn.reference_number = _optional_text(payload, "reference_number", REFERENCE_MAX_LENGTH)
            changed.append("reference_number")
        if context_patch is not None:
            merged = dict(txn.context or {})
            merged.update(context_patch)
            txn.context = merged
            changed.append("context")

        if changed:
            append_ledger_event(
                owner_user_id=ctx.main_user_id,
                actor_user_id=ctx.actor_user_id,
                event_type="transaction.updated",
                event_category="transaction",
                entity_type="transaction",
                entity_id=txn.id,
                note=f"Updated {', '.join(changed)}",
            )
        return txn.id

    txn_id = run_in_transaction(_op)
    return get_transaction(ctx, txn_id)


@records_tenant_denials
def cancel_transaction(ctx: TenantContext, transaction_id: int, reason: str | None = None) -> dict:
    """
    Cancel a transaction and reverse its stock effects.

    SALE items are added back; PURCHASE items are subtracted, possibly
    leaving stock negative. Cancelling twice is a BusinessRuleViolation and
    changes nothing.
    """
    def _op():
        txn = get_owned_or_404(
            Transaction,
            transaction_id,
            ctx,
            lock=True,
            options=(selectinload(Transaction.items).joinedload(TransactionItem.product),),
        )
        if txn.status == "CANCELLED":
            raise BusinessRuleViolation("Transaction is already cancelled.")

        product_ids = sorted({item.product_id for item in txn.items})
        if product_ids:
            lock_for_update(
                db.session.query(Product).filter(Product.id.in_(product_ids)).order_by(Product.id)
            ).all()

        original_direction = direction_for(txn.transaction_type)
        for item in txn.items:
            reverse_stock_movement(item.product, item.quantity, original_direction)

        now = utcnow()
        txn.status = "CANCELLED"
        txn.cancelled_at = now
        txn.cancelled_by_user_id = ctx.actor_user_id
        if reason:
            merged = dict(txn.context or {})
            merged["cancellation_reason"] = reason
            txn.context = merged

        append_ledger_event(
            owner_user_id=ctx.main_user_id,
            actor_user_id=ctx.actor_user_id,
            event_type="transaction.cancelled",
            event_category="transaction",
            entity_type="transaction",
            entity_id=txn.id,
            occurred_at=now,
            note=reason or f"Cancelled {txn.transaction_type} {txn.id}",
            payload={
                "items": [
                    {"product_id": item.product_id, "quantity": item.quantity}
                    for item in txn.items
                ],
            },
        )
        return txn.id

    txn_id = run_in_transaction(_op)
    return get_transaction(ctx, txn_id)


def build_transaction_query(ctx: TenantContext, filters: TransactionFilter | None = None):
    """Tenant predicate AND every provided filter."""
    query = scoped_query(Transaction, ctx)
    if filters is None:
        return query

    if filters.transaction_type:
        query = query.filter(Transaction.transaction_type == filters.transaction_type)
    if filters.status:
        query = query.filter(Transaction.status == filters.status)
    if filters.client_id is not None:
        query = query.filter(Transaction.client_id == filters.client_id)
    if filters.provider_id is not None:
        query = query.filter(Transaction.provider_id == filters.provider_id)
    if filters.date_from is not None:
        query = query.filter(Transaction.transaction_date >= filters.date_from)
    if filters.date_to is not None:
        query = query.filter(Transaction.transaction_date <= filters.date_to)
    if filters.reference_number:
        query = query.filter(
            func.lower(Transaction.reference_number).contains(
                filters.reference_number.lower(), autoescape=True
            )
        )
    return query


def parse_sort(sort: str | None):
    """'field,dir' over a whitelist; id is always the final tiebreaker."""
    field, _, direction = (sort or DEFAULT_SORT).partition(",")
    field = field.strip() or "transaction_date"
    direction = (direction.strip() or "desc").lower()

    column = SORTABLE_FIELDS.get(field)
    if column is None:
        raise ValidationError(f"Cannot sort by {field}")
    if direction not in ("asc", "desc"):
        raise ValidationError("Sort direction must be asc or desc")

    if direction == "asc":
        return [column.asc(), Transaction.id.asc()]
    return [column.desc(), Transaction.id.desc()]


def list_transactions(
    ctx: TenantContext,
    filters: TransactionFilter | None = None,
    *,
    page: int | None = None,
    per_page: int | None = None,
    sort: str | None = None,
) -> dict:
    """Paginated summary projections of the tenant's transactions."""
    query = build_transaction_query(ctx, filters).order_by(*parse_sort(sort))
    return paginate_query(query, page=page, per_page=per_page, serialize=Transaction.to_summary)
