from __future__ import annotations

from ..extensions import db
from lounge.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer master data for sessions and loyalty.

    loyalty_points only grows in this system (no redemption flow); every
    award is also written to the LoyaltyTransaction ledger.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(255), nullable=False)
    phone_number = db.Column(db.String(32), nullable=True, index=True)
    email = db.Column(db.String(255), nullable=True)

    loyalty_points = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "phone_number": self.phone_number,
            "email": self.email,
            "loyalty_points": self.loyalty_points,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class LoyaltyTransaction(db.Model):
    """
    Append-only ledger of loyalty point awards.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        db.Index("ix_loyalty_txns_customer_occurred", "customer_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True, index=True)

    points = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship(
        "Customer",
        backref=db.backref("loyalty_transactions", lazy=True, cascade="all, delete-orphan"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "payment_id": self.payment_id,
            "points": self.points,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
        }
