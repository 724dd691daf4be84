from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data and on-hand stock.

    MULTI-TENANT: Products are owned by a Main User (owner_user_id).
    SKUs are unique within a tenant (case-insensitive, checked by the service
    layer; the constraint below catches exact duplicates).

    STOCK: current_stock is only ever mutated through the stock service
    (transaction assembly, cancellation, manual adjustment). version_id_col
    turns a concurrent read-modify-write on the same row into a StaleDataError.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("owner_user_id", "sku", name="uq_products_owner_sku"),
        db.Index("ix_products_owner_name", "owner_user_id", "name"),
        db.Index("ix_products_owner_active", "owner_user_id", "is_active"),
        db.Index("ix_products_owner_category", "owner_user_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    purchase_price_cents = db.Column(db.Integer, nullable=True)
    sale_price_cents = db.Column(db.Integer, nullable=True)

    current_stock = db.Column(db.BigInteger, nullable=False, default=0)
    unit_of_measure = db.Column(db.String(32), nullable=False, default="unit")
    category = db.Column(db.String(100), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    context = db.Column(db.JSON, nullable=False, default=dict)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    owner = db.relationship("User", foreign_keys=[owner_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.current_stock} owner_user_id={self.owner_user_id}>"

    def to_summary(self) -> dict:
        return {"id": self.id, "sku": self.sku, "name": self.name}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_user_id": self.owner_user_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "purchase_price_cents": self.purchase_price_cents,
            "sale_price_cents": self.sale_price_cents,
            "current_stock": self.current_stock,
            "unit_of_measure": self.unit_of_measure,
            "category": self.category,
            "is_active": self.is_active,
            "context": self.context or {},
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
