"""
Multi-Tenant Service: Tenant Resolution and Ownership Guard

WHY: Centralize tenant validation logic for reuse across services and routes.
Every request is scoped to a tenant (a Main User), and cross-tenant access
must be explicitly denied.

SECURITY INVARIANTS:
1. Every authenticated request resolves exactly one TenantContext
2. Entity ids from client input are checked against ctx.main_user_id
3. Queries touching tenant-owned data filter by owner_user_id
4. Cross-tenant access attempts are logged as security events and surface
   to the client exactly like a missing entity

POLICY: Sub-users act as their Main User for every entity operation
(products, clients, providers, transactions, reports). Company info,
sub-user management and account deletion stay main-user only.

USAGE:
    from backoffice.services.tenant_service import get_owned_or_404

    product = get_owned_or_404(Product, product_id, ctx, lock=True)
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps

from flask import current_app

from ..extensions import db
from ..errors import (
    AuthenticationError,
    NotFoundError,
    TenantAccessError,
    UnauthorizedOperationError,
)
from ..models import User
from .concurrency import lock_for_update
from .security_service import log_security_event


@dataclass(frozen=True)
class TenantContext:
    """
    Immutable request-scoped tenant identity.

    main_user_id: the tenant that owns every entity touched by the request
    actor_user_id: the authenticated user (main user or sub-user); recorded
    as the creator of transactions and the actor of ledger events
    """
    main_user_id: int
    actor_user_id: int
    request_id: str | None = None
    ip_address: str | None = None

    @property
    def is_main_user(self) -> bool:
        return self.main_user_id == self.actor_user_id


def resolve_tenant(user: User, *, request_id: str | None = None, ip_address: str | None = None) -> TenantContext:
    """
    Resolve an authenticated user into the tenant it acts for.

    Raises:
        AuthenticationError: user (or its Main User) is inactive
        UnauthorizedOperationError: nesting deeper than one level
    """
    if not user.is_active:
        raise AuthenticationError("User account is inactive")

    if user.parent_user_id is None:
        return TenantContext(
            main_user_id=user.id,
            actor_user_id=user.id,
            request_id=request_id,
            ip_address=ip_address,
        )

    parent = db.session.get(User, user.parent_user_id)
    if parent is None or not parent.is_active:
        raise AuthenticationError("Main account is inactive")
    if parent.parent_user_id is not None:
        raise UnauthorizedOperationError("Invalid account hierarchy")

    return TenantContext(
        main_user_id=parent.id,
        actor_user_id=user.id,
        request_id=request_id,
        ip_address=ip_address,
    )


def require_main_user(ctx: TenantContext) -> None:
    """Fail unless the actor is the Main User itself."""
    if not ctx.is_main_user:
        raise UnauthorizedOperationError("This operation is restricted to the main account")


def scoped_query(model, ctx: TenantContext):
    """Base query over `model` restricted to the caller's tenant."""
    return db.session.query(model).filter(model.owner_user_id == ctx.main_user_id)


def get_owned_or_404(model, entity_id: int, ctx: TenantContext, *, lock: bool = False, options=()):
    """
    Ownership Guard: fetch a tenant-owned entity by id.

    Raises:
        NotFoundError: no row with that id
        TenantAccessError: row exists but belongs to another tenant
            (same message as not-found; never reveals existence)
    """
    label = model.__name__
    query = db.session.query(model).filter(model.id == entity_id)
    if options:
        query = query.options(*options)
    if lock:
        query = lock_for_update(query)

    entity = query.first()
    if entity is None:
        raise NotFoundError(f"{label} not found")

    if entity.owner_user_id != ctx.main_user_id:
        raise TenantAccessError(
            f"{label} not found",
            resource=label.lower(),
            entity_id=entity_id,
            main_user_id=ctx.main_user_id,
            actor_user_id=ctx.actor_user_id,
            owner_user_id=entity.owner_user_id,
        )

    return entity


def record_cross_tenant_attempt(exc: TenantAccessError, ctx: TenantContext | None = None) -> None:
    """Persist a CROSS_TENANT_ACCESS_DENIED security event for a caught denial."""
    log_security_event(
        user_id=exc.actor_user_id,
        main_user_id=exc.main_user_id,
        event_type="CROSS_TENANT_ACCESS_DENIED",
        success=False,
        resource=f"{exc.resource}:{exc.entity_id}",
        reason=f"{exc.resource} {exc.entity_id} belongs to tenant {exc.owner_user_id}, not {exc.main_user_id}",
        ip_address=ctx.ip_address if ctx else None,
        request_id=ctx.request_id if ctx else None,
    )


def records_tenant_denials(func):
    """
    Decorator for tenant-scoped service functions taking `ctx` as first argument.

    A TenantAccessError escaping the wrapped call discards any pending work,
    is written to the security audit trail, then propagates unchanged.
    """
    @wraps(func)
    def wrapper(ctx: TenantContext, *args, **kwargs):
        try:
            return func(ctx, *args, **kwargs)
        except TenantAccessError as exc:
            db.session.rollback()
            try:
                record_cross_tenant_attempt(exc, ctx)
            except Exception:
                db.session.rollback()
                current_app.logger.exception("Failed to record cross-tenant access attempt")
            raise

    return wrapper
