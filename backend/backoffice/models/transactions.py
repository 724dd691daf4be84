from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


TRANSACTION_TYPES = ("SALE", "PURCHASE")
TRANSACTION_STATUSES = ("COMPLETED", "PENDING", "CANCELLED")


class Transaction(db.Model):
    """
    Sale or purchase header.

    MULTI-TENANT: owner_user_id is the Main User (tenant); created_by_user_id
    is the actor (Main User or sub-user) who recorded it.

    INVARIANTS:
    - SALE has client_id and no provider_id; PURCHASE the reverse.
    - total_amount_cents == sum(item.subtotal_cents) at persistence time.
    - Items, counterparty, type and total are immutable after creation;
      stock effects are only undone through cancellation.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.CheckConstraint(
            "(transaction_type = 'SALE' AND client_id IS NOT NULL AND provider_id IS NULL) OR "
            "(transaction_type = 'PURCHASE' AND provider_id IS NOT NULL AND client_id IS NULL)",
            name="ck_transactions_counterparty",
        ),
        db.Index("ix_transactions_owner_date", "owner_user_id", "transaction_date"),
        db.Index("ix_transactions_owner_type_status", "owner_user_id", "transaction_type", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)

    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    # Nulled when the sub-user who created it is deleted
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=True, index=True)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    reference_number = db.Column(db.String(64), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    total_amount_cents = db.Column(db.BigInteger, nullable=False, default=0)

    context = db.Column(db.JSON, nullable=False, default=dict)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    owner = db.relationship("User", foreign_keys=[owner_user_id])
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    cancelled_by = db.relationship("User", foreign_keys=[cancelled_by_user_id])
    client = db.relationship("Client", foreign_keys=[client_id])
    provider = db.relationship("Provider", foreign_keys=[provider_id])
    items = db.relationship(
        "TransactionItem",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionItem.position",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Transaction id={self.id} type={self.transaction_type} status={self.status} "
            f"total_cents={self.total_amount_cents} owner_user_id={self.owner_user_id}>"
        )

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "transaction_type": self.transaction_type,
            "status": self.status,
            "owner_user_id": self.owner_user_id,
            "created_by_user_id": self.created_by_user_id,
            "client_id": self.client_id,
            "provider_id": self.provider_id,
            "transaction_date": to_utc_z(self.transaction_date),
            "reference_number": self.reference_number,
            "total_amount_cents": self.total_amount_cents,
            "created_at": to_utc_z(self.created_at),
        }

    def to_detail(self) -> dict:
        """Full projection; callers must have eager-loaded the relationships."""
        data = self.to_summary()
        data.update({
            "notes": self.notes,
            "context": self.context or {},
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
            "client": self.client.to_summary() if self.client else None,
            "provider": self.provider.to_summary() if self.provider else None,
            "created_by": self.created_by.to_summary() if self.created_by else None,
            "items": [item.to_dict() for item in self.items],
        })
        return data


class TransactionItem(db.Model):
    """
    Line item owned by exactly one Transaction (cascade lifecycle).

    subtotal_cents = quantity * unit_price_cents, computed at assembly time.
    """
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_transaction_items_quantity_positive"),
        db.Index("ix_transaction_items_txn_position", "transaction_id", "position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(
        db.Integer, db.ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Preserves request order of the line items
    position = db.Column(db.Integer, nullable=False, default=0)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.BigInteger, nullable=True)

    context = db.Column(db.JSON, nullable=False, default=dict)

    transaction = db.relationship("Transaction", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "position": self.position,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
            "context": self.context or {},
        }
