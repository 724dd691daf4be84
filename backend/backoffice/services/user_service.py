# Overview: Service-layer operations for user profiles, company info and sub-users.

"""
User Service

- Profile: any authenticated user manages its own username, email, context
  and password.
- Company info, sub-user management and account deletion are main-user only.
- Sub-users belong to exactly one Main User; ids of another tenant's
  sub-users behave exactly like unknown ids.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import BusinessRuleViolation, NotFoundError, TenantAccessError
from ..extensions import db
from ..models import (
    Client,
    LedgerEvent,
    PasswordResetToken,
    Product,
    Provider,
    SessionToken,
    Transaction,
    TransactionItem,
    User,
)
from ..pagination import paginate_query
from .auth_service import ensure_email_available, ensure_username_available, hash_password, verify_password
from .concurrency import lock_for_update, run_in_transaction
from .ledger_service import append_ledger_event
from .security_service import log_security_event
from .session_service import revoke_all_user_sessions
from .tenant_service import TenantContext, records_tenant_denials, require_main_user

PROFILE_FIELDS = {"username", "email", "context"}
COMPANY_FIELDS = {"company_name", "company_address", "company_phone", "company_nit"}


def _actor(ctx: TenantContext) -> User:
    user = db.session.get(User, ctx.actor_user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def _apply_profile_patch(user: User, patch: dict) -> None:
    if "username" in patch and patch["username"] != user.username:
        ensure_username_available(patch["username"], exclude_user_id=user.id)
        user.username = patch["username"]
    if "email" in patch:
        email = patch["email"].lower()
        if email != user.email:
            ensure_email_available(email, exclude_user_id=user.id)
            user.email = email
    if "context" in patch:
        merged = dict(user.context or {})
        merged.update(patch["context"] or {})
        user.context = merged
    if "is_active" in patch:
        user.is_active = patch["is_active"]


def _user_event(ctx: TenantContext, user: User, event_type: str, note: str) -> None:
    append_ledger_event(
        owner_user_id=ctx.main_user_id,
        actor_user_id=ctx.actor_user_id,
        event_type=event_type,
        event_category="user",
        entity_type="user",
        entity_id=user.id,
        note=note,
    )


def get_current_user(ctx: TenantContext) -> dict:
    return _actor(ctx).to_dict()


def update_current_user(ctx: TenantContext, *, patch: dict) -> dict:
    """Update own username/email/context; uniqueness is case-insensitive."""
    def _op():
        user = _actor(ctx)
        _apply_profile_patch(user, {k: v for k, v in patch.items() if k in PROFILE_FIELDS})
        _user_event(ctx, user, "user.updated", f"Updated profile fields: {', '.join(sorted(patch))}")
        return user.id

    run_in_transaction(_op)
    return get_current_user(ctx)


def change_password(ctx: TenantContext, *, current_password: str, new_password: str) -> None:
    """
    Raises:
        BusinessRuleViolation: current password does not match
        PasswordValidationError: weak new password
    """
    user = _actor(ctx)
    if not verify_password(current_password, user.password_hash):
        log_security_event(
            user_id=user.id,
            main_user_id=ctx.main_user_id,
            event_type="PASSWORD_CHANGE_FAILED",
            success=False,
            reason="Incorrect current password",
            ip_address=ctx.ip_address,
            request_id=ctx.request_id,
        )
        raise BusinessRuleViolation("Incorrect current password.")

    password_hash = hash_password(new_password)

    def _op():
        target = _actor(ctx)
        target.password_hash = password_hash
        _user_event(ctx, target, "user.password_changed", "Password changed")

    run_in_transaction(_op)


def update_company_info(ctx: TenantContext, *, patch: dict) -> dict:
    """Main user only. Company fields live on the Main User."""
    require_main_user(ctx)

    def _op():
        user = _actor(ctx)
        for key, value in patch.items():
            if key in COMPANY_FIELDS:
                setattr(user, key, value)
        _user_event(ctx, user, "user.company_updated", f"Updated company fields: {', '.join(sorted(patch))}")
        return user.id

    run_in_transaction(_op)
    return get_current_user(ctx)


def delete_main_account(ctx: TenantContext) -> None:
    """
    Main user only. Removes the tenant and everything it owns: sub-users,
    transactions (with items), products, clients, providers, sessions and
    reset tokens. Ledger and security events are kept.
    """
    require_main_user(ctx)
    main_user_id = ctx.main_user_id

    def _op():
        user_ids = [main_user_id] + [
            row.id for row in db.session.query(User.id).filter(User.parent_user_id == main_user_id)
        ]
        txn_ids = [
            row.id for row in db.session.query(Transaction.id).filter(Transaction.owner_user_id == main_user_id)
        ]

        db.session.query(TransactionItem).filter(
            TransactionItem.transaction_id.in_(txn_ids)
        ).delete(synchronize_session=False)
        db.session.query(Transaction).filter(
            Transaction.owner_user_id == main_user_id
        ).delete(synchronize_session=False)
        for model in (Product, Client, Provider):
            db.session.query(model).filter(model.owner_user_id == main_user_id).delete(synchronize_session=False)
        db.session.query(SessionToken).filter(SessionToken.user_id.in_(user_ids)).delete(synchronize_session=False)
        db.session.query(PasswordResetToken).filter(
            PasswordResetToken.user_id.in_(user_ids)
        ).delete(synchronize_session=False)
        db.session.query(User).filter(User.parent_user_id == main_user_id).delete(synchronize_session=False)
        db.session.query(User).filter(User.id == main_user_id).delete(synchronize_session=False)

        db.session.add(LedgerEvent(
            owner_user_id=main_user_id,
            actor_user_id=main_user_id,
            event_type="user.account_deleted",
            event_category="user",
            entity_type="user",
            entity_id=main_user_id,
            note=f"Deleted main account and {len(user_ids) - 1} sub-user(s)",
        ))

    run_in_transaction(_op)
    db.session.expunge_all()
    current_app.logger.info("Deleted main account user_id=%s", main_user_id)


# Sub-users

def _get_sub_user(ctx: TenantContext, sub_user_id: int, *, lock: bool = False) -> User:
    query = db.session.query(User).filter(User.id == sub_user_id)
    if lock:
        query = lock_for_update(query)
    user = query.first()
    if user is None or user.parent_user_id is None:
        raise NotFoundError("User not found")
    if user.parent_user_id != ctx.main_user_id:
        raise TenantAccessError(
            "User not found",
            resource="user",
            entity_id=sub_user_id,
            main_user_id=ctx.main_user_id,
            actor_user_id=ctx.actor_user_id,
            owner_user_id=user.parent_user_id,
        )
    return user


@records_tenant_denials
def get_sub_user(ctx: TenantContext, sub_user_id: int) -> dict:
    require_main_user(ctx)
    return _get_sub_user(ctx, sub_user_id).to_dict()


def list_sub_users(
    ctx: TenantContext,
    *,
    is_active: bool | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    require_main_user(ctx)
    query = db.session.query(User).filter(User.parent_user_id == ctx.main_user_id)
    if is_active is not None:
        query = query.filter(User.is_active == is_active)
    query = query.order_by(func.lower(User.username).asc(), User.id.asc())
    return paginate_query(query, page=page, per_page=per_page, serialize=User.to_dict)


def create_sub_user(ctx: TenantContext, *, username: str, email: str, password: str, context: dict | None = None) -> dict:
    """Main user only. The sub-user inherits the company name of its Main User."""
    require_main_user(ctx)
    password_hash = hash_password(password)

    def _op():
        main_user = _actor(ctx)
        ensure_username_available(username)
        ensure_email_available(email)
        sub_user = User(
            username=username,
            email=email.lower(),
            password_hash=password_hash,
            parent_user_id=main_user.id,
            company_name=main_user.company_name,
            is_active=True,
            context=dict(context or {}),
        )
        db.session.add(sub_user)
        db.session.flush()
        _user_event(ctx, sub_user, "user.sub_user_created", f"Created sub-user {sub_user.username}")
        return sub_user.id

    sub_user_id = run_in_transaction(_op)
    return get_sub_user(ctx, sub_user_id)


@records_tenant_denials
def update_sub_user(ctx: TenantContext, sub_user_id: int, *, patch: dict) -> dict:
    require_main_user(ctx)
    password = patch.get("password")
    password_hash = hash_password(password) if password else None

    def _op():
        user = _get_sub_user(ctx, sub_user_id, lock=True)
        _apply_profile_patch(user, {k: v for k, v in patch.items() if k in PROFILE_FIELDS | {"is_active"}})
        if password_hash:
            user.password_hash = password_hash
            revoke_all_user_sessions(user.id, reason="Password changed by main account", commit=False)
        if patch.get("is_active") is False:
            revoke_all_user_sessions(user.id, reason="Account deactivated", commit=False)
        _user_event(ctx, user, "user.sub_user_updated", f"Updated fields: {', '.join(sorted(patch))}")
        return user.id

    run_in_transaction(_op)
    return get_sub_user(ctx, sub_user_id)


def set_sub_user_status(ctx: TenantContext, sub_user_id: int, *, is_active: bool) -> dict:
    return update_sub_user(ctx, sub_user_id, patch={"is_active": is_active})


@records_tenant_denials
def delete_sub_user(ctx: TenantContext, sub_user_id: int) -> None:
    """Transactions the sub-user created stay with the tenant; their creator becomes null."""
    require_main_user(ctx)

    def _op():
        user = _get_sub_user(ctx, sub_user_id, lock=True)
        db.session.query(Transaction).filter(
            Transaction.created_by_user_id == user.id
        ).update({"created_by_user_id": None}, synchronize_session=False)
        db.session.query(Transaction).filter(
            Transaction.cancelled_by_user_id == user.id
        ).update({"cancelled_by_user_id": None}, synchronize_session=False)
        db.session.query(SessionToken).filter_by(user_id=user.id).delete(synchronize_session=False)
        db.session.query(PasswordResetToken).filter_by(user_id=user.id).delete(synchronize_session=False)
        _user_event(ctx, user, "user.sub_user_deleted", f"Deleted sub-user {user.username}")
        db.session.delete(user)

    run_in_transaction(_op)
