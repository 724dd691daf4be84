from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class LedgerEvent(db.Model):
    """
    Append-only domain audit log.

    MULTI-TENANT: owner_user_id is the tenant the event belongs to. It is a
    plain integer (no FK) so the trail survives account deletion.

    Events are written inside the same DB transaction as the change they
    record, so a rolled-back operation leaves no event behind.
    """
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_owner_occurred", "owner_user_id", "occurred_at"),
        db.Index("ix_ledger_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    owner_user_id = db.Column(db.Integer, nullable=False, index=True)
    actor_user_id = db.Column(db.Integer, nullable=True, index=True)

    # What happened
    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., transaction.created, product.stock_adjusted
    event_category = db.Column(db.String(32), nullable=False, index=True)  # transaction, product, client, provider, user

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    # Business vs system time
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_user_id": self.owner_user_id,
            "actor_user_id": self.actor_user_id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }
