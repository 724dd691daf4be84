from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class _PartyMixin:
    """Columns shared by Clients and Providers (the transaction counterparties)."""

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    # Tax identification number
    nit = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    context = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "nit": self.nit}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_user_id": self.owner_user_id,
            "name": self.name,
            "nit": self.nit,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "is_active": self.is_active,
            "context": self.context or {},
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Client(_PartyMixin, db.Model):
    """
    Customer a tenant sells to.

    MULTI-TENANT: owned by a Main User (owner_user_id).
    NIT is unique per tenant except for the generic final-consumer NIT.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_owner_name", "owner_user_id", "name"),
        db.Index("ix_clients_owner_nit", "owner_user_id", "nit"),
        {"sqlite_autoincrement": True},
    )

    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    owner = db.relationship("User", foreign_keys=[owner_user_id])

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.name!r} owner_user_id={self.owner_user_id}>"


class Provider(_PartyMixin, db.Model):
    """
    Supplier a tenant purchases from.

    MULTI-TENANT: owned by a Main User (owner_user_id). NIT is unique per tenant.
    """
    __tablename__ = "providers"
    __table_args__ = (
        db.UniqueConstraint("owner_user_id", "nit", name="uq_providers_owner_nit"),
        db.Index("ix_providers_owner_name", "owner_user_id", "name"),
        {"sqlite_autoincrement": True},
    )

    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    owner = db.relationship("User", foreign_keys=[owner_user_id])

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Provider id={self.id} name={self.name!r} owner_user_id={self.owner_user_id}>"
