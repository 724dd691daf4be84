# Overview: Service-layer operations for clients and providers (transaction counterparties).

"""
Counterparty Service: Clients and Providers

Clients and Providers share one shape and one lifecycle, so every operation
here takes the model class. Differences are data, not code:

- Provider NIT is unique per tenant.
- Client NIT is unique per tenant except for the generic final-consumer NIT
  ("CF" / "C/F"), which many walk-in clients share.
- Either one is undeletable while a transaction references it.
"""
from __future__ import annotations

from sqlalchemy import func, or_

from ..errors import ConflictError
from ..extensions import db
from ..models import Client, Provider, Transaction
from ..pagination import paginate_query
from .concurrency import run_in_transaction
from .ledger_service import append_ledger_event
from .tenant_service import TenantContext, get_owned_or_404, records_tenant_denials, scoped_query

PARTY_MUTABLE_FIELDS = {"name", "nit", "email", "phone", "address", "is_active"}

# Final-consumer NIT values, compared after normalize_nit()
GENERIC_CLIENT_NITS = {"CF", "C/F"}


def normalize_nit(nit: str | None) -> str | None:
    if nit is None:
        return None
    nit = nit.strip().upper()
    return nit or None


def _is_generic_nit(model, nit: str | None) -> bool:
    return model is Client and nit in GENERIC_CLIENT_NITS


def _ensure_unique_nit(ctx: TenantContext, model, nit: str | None, *, exclude_id: int | None = None) -> None:
    if nit is None or _is_generic_nit(model, nit):
        return
    query = scoped_query(model, ctx).filter(func.upper(model.nit) == nit)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if query.first():
        raise ConflictError(f"{model.__name__} with NIT '{nit}' already exists.")


def _category(model) -> str:
    return model.__name__.lower()


def _reference_column(model):
    return Transaction.client_id if model is Client else Transaction.provider_id


def apply_party_patch(party, patch: dict) -> None:
    for k, v in patch.items():
        if k == "context":
            merged = dict(party.context or {})
            merged.update(v or {})
            party.context = merged
            continue
        if k not in PARTY_MUTABLE_FIELDS:
            continue
        if k == "nit":
            v = normalize_nit(v)
        setattr(party, k, v)


def _ledger(ctx: TenantContext, party, event_type: str, note: str) -> None:
    category = _category(type(party))
    append_ledger_event(
        owner_user_id=ctx.main_user_id,
        actor_user_id=ctx.actor_user_id,
        event_type=f"{category}.{event_type}",
        event_category=category,
        entity_type=category,
        entity_id=party.id,
        note=note,
    )


def list_parties(
    ctx: TenantContext,
    model,
    *,
    is_active: bool | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Tenant-scoped listing; search is a case-insensitive substring over name, NIT and email."""
    query = scoped_query(model, ctx)
    if is_active is not None:
        query = query.filter(model.is_active == is_active)
    if search:
        term = search.strip().lower()
        query = query.filter(or_(
            func.lower(model.name).contains(term, autoescape=True),
            func.lower(model.nit).contains(term, autoescape=True),
            func.lower(model.email).contains(term, autoescape=True),
        ))
    query = query.order_by(model.name.asc(), model.id.asc())
    return paginate_query(query, page=page, per_page=per_page, serialize=model.to_dict)


@records_tenant_denials
def get_party(ctx: TenantContext, model, party_id: int) -> dict:
    return get_owned_or_404(model, party_id, ctx).to_dict()


def create_party(ctx: TenantContext, model, *, patch: dict) -> dict:
    def _op():
        _ensure_unique_nit(ctx, model, normalize_nit(patch.get("nit")))

        party = model(owner_user_id=ctx.main_user_id)
        apply_party_patch(party, patch)
        db.session.add(party)
        db.session.flush()

        _ledger(ctx, party, "created", f"Created {_category(model)} {party.name}")
        return party.id

    party_id = run_in_transaction(_op)
    return get_party(ctx, model, party_id)


@records_tenant_denials
def update_party(ctx: TenantContext, model, party_id: int, *, patch: dict) -> dict:
    def _op():
        party = get_owned_or_404(model, party_id, ctx, lock=True)
        if "nit" in patch:
            new_nit = normalize_nit(patch["nit"])
            if new_nit != normalize_nit(party.nit):
                _ensure_unique_nit(ctx, model, new_nit, exclude_id=party.id)

        apply_party_patch(party, patch)
        _ledger(ctx, party, "updated", f"Updated fields: {', '.join(sorted(patch))}")
        return party.id

    run_in_transaction(_op)
    return get_party(ctx, model, party_id)


@records_tenant_denials
def set_party_status(ctx: TenantContext, model, party_id: int, *, is_active: bool) -> dict:
    def _op():
        party = get_owned_or_404(model, party_id, ctx, lock=True)
        party.is_active = is_active
        _ledger(ctx, party, "activated" if is_active else "deactivated", party.name)
        return party.id

    run_in_transaction(_op)
    return get_party(ctx, model, party_id)


@records_tenant_denials
def delete_party(ctx: TenantContext, model, party_id: int) -> None:
    """
    Raises:
        ConflictError: a transaction references this client/provider
    """
    def _op():
        party = get_owned_or_404(model, party_id, ctx, lock=True)
        references = (
            db.session.query(func.count(Transaction.id))
            .filter(_reference_column(model) == party.id)
            .scalar()
        )
        if references:
            raise ConflictError(
                f"Cannot delete {_category(model)}: It is referenced in {references} transaction(s). "
                "Consider deactivating instead.",
                details={"transaction_count": references},
            )

        _ledger(ctx, party, "deleted", f"Deleted {_category(model)} {party.name}")
        db.session.delete(party)

    run_in_transaction(_op)


def party_model(kind: str):
    """Map a route kind ('clients' / 'providers') to its model."""
    return {"clients": Client, "providers": Provider}[kind]
