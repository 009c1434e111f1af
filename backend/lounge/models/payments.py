from __future__ import annotations

from ..extensions import db
from lounge.time_utils import to_utc_z


class Payment(db.Model):
    """
    Money owed or received against a session (or an ad-hoc transaction).

    ROWS PER SESSION (by kind):
    - CHARGE: one row created when the session ends; while PENDING it
      carries the outstanding balance and disappears once nothing is owed
    - SETTLEMENT: one COMPLETED row per partial payment or split part
    - TRANSACTION: ad-hoc charges (snacks, top-ups) that merely reference
      the session; never part of its balance

    IMMUTABLE: COMPLETED rows are never revised.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_session_status", "session_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("sessions.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    split_part_id = db.Column(db.Integer, db.ForeignKey("payment_split_parts.id"), nullable=True, index=True)
    kind = db.Column(db.String(16), nullable=False, default="TRANSACTION", index=True)  # CHARGE, SETTLEMENT, TRANSACTION

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False, default="PENDING", index=True)  # CASH, MPESA, PENDING
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)  # PENDING, COMPLETED, FAILED

    reference = db.Column(db.String(128), nullable=True)  # M-Pesa receipt / checkout id
    description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    session = db.relationship("GamingSession", backref=db.backref("payments", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("payments", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "customer_id": self.customer_id,
            "split_part_id": self.split_part_id,
            "kind": self.kind,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "reference": self.reference,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "version_id": self.version_id,
        }


class PaymentSplit(db.Model):
    """
    One charge divided into independently payable parts.

    OPEN until every part is paid, then SETTLED. Paid parts are frozen;
    unpaid parts are redistributed when parts are added or removed.
    """
    __tablename__ = "payment_splits"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("sessions.id"), nullable=True, index=True)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)  # OPEN, SETTLED

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    settled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    session = db.relationship("GamingSession", backref=db.backref("splits", lazy=True))
    parts = db.relationship(
        "PaymentSplitPart",
        backref="split",
        lazy=True,
        order_by="PaymentSplitPart.position",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "total_amount_cents": self.total_amount_cents,
            "status": self.status,
            "parts": [p.to_dict() for p in self.parts],
            "created_at": to_utc_z(self.created_at),
            "settled_at": to_utc_z(self.settled_at) if self.settled_at else None,
            "version_id": self.version_id,
        }


class PaymentSplitPart(db.Model):
    __tablename__ = "payment_split_parts"
    __table_args__ = (
        db.UniqueConstraint("split_id", "position", name="uq_split_parts_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    split_id = db.Column(db.Integer, db.ForeignKey("payment_splits.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)  # 0-based split index
    amount_cents = db.Column(db.Integer, nullable=False)
    paid = db.Column(db.Boolean, nullable=False, default=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "split_id": self.split_id,
            "index": self.position,
            "amount_cents": self.amount_cents,
            "paid": self.paid,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
        }


class MobileMoneyRequest(db.Model):
    """
    An outstanding M-Pesa confirmation (STK push or QR).

    STATUS:
    - PENDING: waiting on the provider
    - COMPLETED: provider confirmed, target settled
    - FAILED: provider reported failure, nothing was settled
    - UNKNOWN: polling gave up; needs manual reconciliation

    The target is one of: a split part, a session balance, or an ad-hoc
    pending payment.
    """
    __tablename__ = "mobile_money_requests"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(8), nullable=False)  # STK, QR
    checkout_id = db.Column(db.String(128), nullable=False, unique=True, index=True)
    phone_number = db.Column(db.String(32), nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)

    session_id = db.Column(db.Integer, db.ForeignKey("sessions.id"), nullable=True, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True, index=True)
    split_id = db.Column(db.Integer, db.ForeignKey("payment_splits.id"), nullable=True, index=True)
    split_index = db.Column(db.Integer, nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(255), nullable=True)
    settled_payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "checkout_id": self.checkout_id,
            "phone_number": self.phone_number,
            "amount_cents": self.amount_cents,
            "session_id": self.session_id,
            "payment_id": self.payment_id,
            "split_id": self.split_id,
            "split_index": self.split_index,
            "customer_id": self.customer_id,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "settled_payment_id": self.settled_payment_id,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
        }
