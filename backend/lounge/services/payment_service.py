# Overview: Service-layer operations for payments; settlement, balances and loyalty.

"""
Payment Reconciler

WHY: Ending a session leaves money owed. This module records what is paid,
by which method, and keeps the session's payment status in step.

DESIGN PRINCIPLES:
- Payments are separate from sessions (many-to-one relationship)
- Each session has at most one PENDING CHARGE row holding the
  outstanding balance; settlements are separate COMPLETED rows
- Ad-hoc TRANSACTION rows may reference a session but never count
  towards its balance
- Partial payments reduce the charge row; the final one removes it
- A session is paid when sum(COMPLETED) == total_amount_cents
- Loyalty: one point per LOYALTY_CENTS_PER_POINT of completed payment,
  awarded only when a customer is attached to the payment
- Every failure raises before commit; run_with_retry rolls the session back
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import GamingSession, Payment, Customer, LoyaltyTransaction
from ..errors import NotFound, InvalidState, ValidationError
from ..validation import require_positive_amount
from lounge.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .stats_service import touch_today
from .notification_service import notify, PAYMENT_CREATED, PAYMENT_COMPLETED


# =============================================================================
# PAYMENT METHODS / STATUS (CONSTANTS)
# =============================================================================

METHOD_CASH = "CASH"
METHOD_MPESA = "MPESA"
METHOD_PENDING = "PENDING"

VALID_SETTLEMENT_METHODS = [METHOD_CASH, METHOD_MPESA]

PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_COMPLETED = "COMPLETED"
PAYMENT_STATUS_FAILED = "FAILED"  # used by mobile-money requests; settlements never write it

PAYMENT_KIND_CHARGE = "CHARGE"
PAYMENT_KIND_SETTLEMENT = "SETTLEMENT"
PAYMENT_KIND_TRANSACTION = "TRANSACTION"

SESSION_LEDGER_KINDS = (PAYMENT_KIND_CHARGE, PAYMENT_KIND_SETTLEMENT)

DEFAULT_LOYALTY_CENTS_PER_POINT = 10_000


def _require_method(method: str) -> str:
    if method not in VALID_SETTLEMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {method}. Must be one of {VALID_SETTLEMENT_METHODS}")
    return method


def _require_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if not customer:
        raise NotFound(f"Customer {customer_id} not found")
    return customer


# =============================================================================
# BALANCES
# =============================================================================

def paid_cents(session_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(
            Payment.session_id == session_id,
            Payment.status == PAYMENT_STATUS_COMPLETED,
            Payment.kind.in_(SESSION_LEDGER_KINDS),
        )
        .scalar()
    )
    return int(total or 0)


def remaining_cents(session: GamingSession) -> int:
    return max((session.total_amount_cents or 0) - paid_cents(session.id), 0)


def get_charge_row(session_id: int) -> Payment | None:
    """The session's outstanding CHARGE row, if any money is still owed."""
    return lock_for_update(
        db.session.query(Payment).filter(
            Payment.session_id == session_id,
            Payment.kind == PAYMENT_KIND_CHARGE,
            Payment.status == PAYMENT_STATUS_PENDING,
        )
    ).order_by(Payment.id.asc()).first()


def is_fully_paid(session_id: int) -> bool:
    session = db.session.query(GamingSession).filter_by(id=session_id).first()
    if not session:
        raise NotFound(f"Session {session_id} not found")
    if session.status != "COMPLETED" or session.total_amount_cents is None:
        return False
    return paid_cents(session_id) >= session.total_amount_cents


def get_payment_summary(session_id: int) -> dict:
    session = db.session.query(GamingSession).filter_by(id=session_id).first()
    if not session:
        raise NotFound(f"Session {session_id} not found")

    payments = (
        db.session.query(Payment)
        .filter_by(session_id=session_id)
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )
    total = session.total_amount_cents or 0
    paid = paid_cents(session_id)
    return {
        "session_id": session_id,
        "session_status": session.status,
        "total_amount_cents": total,
        "paid_cents": paid,
        "remaining_cents": max(total - paid, 0),
        "payment_status": session.payment_status,
        "is_fully_paid": session.status == "COMPLETED" and paid >= total,
        "payments": [p.to_dict() for p in payments if p.kind in SESSION_LEDGER_KINDS],
        "transactions": [p.to_dict() for p in payments if p.kind == PAYMENT_KIND_TRANSACTION],
    }


def list_payments(status: str | None = None, method: str | None = None, limit: int = 100) -> list[Payment]:
    query = db.session.query(Payment)
    if status:
        query = query.filter(Payment.status == status)
    if method:
        query = query.filter(Payment.payment_method == method)
    limit = max(1, min(limit or 100, 500))
    return query.order_by(Payment.created_at.desc(), Payment.id.desc()).limit(limit).all()


def list_customer_payments(customer_id: int) -> list[Payment]:
    _require_customer(customer_id)
    return (
        db.session.query(Payment)
        .filter_by(customer_id=customer_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )


# =============================================================================
# LOYALTY
# =============================================================================

def award_loyalty_points(
    customer_id: int,
    amount_cents: int,
    payment_id: int | None = None,
    reason: str | None = None,
) -> int:
    """
    Award floor(amount_cents / LOYALTY_CENTS_PER_POINT) points.

    Appends a LoyaltyTransaction and increments the balance with a single
    UPDATE. Does not commit; runs inside the payment transaction.

    Returns the points awarded (0 awards write nothing).
    """
    _require_customer(customer_id)
    cents_per_point = current_app.config.get("LOYALTY_CENTS_PER_POINT", DEFAULT_LOYALTY_CENTS_PER_POINT)
    points = max(int(amount_cents), 0) // cents_per_point
    if points <= 0:
        return 0

    db.session.add(LoyaltyTransaction(
        customer_id=customer_id,
        payment_id=payment_id,
        points=points,
        amount_cents=amount_cents,
        reason=reason or "Payment",
        occurred_at=utcnow(),
    ))
    (
        db.session.query(Customer)
        .filter(Customer.id == customer_id)
        .update(
            {
                Customer.loyalty_points: Customer.loyalty_points + points,
                Customer.version_id: Customer.version_id + 1,
            },
            synchronize_session=False,
        )
    )
    loaded = db.session.identity_map.get(db.session.identity_key(Customer, customer_id))
    if loaded is not None:
        db.session.expire(loaded)
    return points


# =============================================================================
# SETTLEMENT
# =============================================================================

def apply_session_payment(
    session: GamingSession,
    *,
    amount_cents: int,
    method: str,
    customer_id: int | None = None,
    reference: str | None = None,
    split_part_id: int | None = None,
    description: str | None = None,
) -> Payment:
    """
    Record `amount_cents` against a completed session. Does not commit.

    - Full remaining amount, not a split part: the charge row is completed in place
    - Otherwise: a new COMPLETED row, and the charge row shrinks by the amount
      (removed when it reaches zero)
    """
    if session.status != "COMPLETED":
        raise InvalidState(f"Session {session.id} is not completed", status=session.status)

    remaining = remaining_cents(session)
    if remaining <= 0:
        raise InvalidState(f"Session {session.id} is already fully paid")
    if amount_cents > remaining:
        raise ValidationError(
            f"Payment amount {amount_cents} exceeds remaining balance {remaining}",
            remaining_cents=remaining,
        )

    now = utcnow()
    charge = get_charge_row(session.id)

    if charge is not None and split_part_id is None and amount_cents == charge.amount_cents:
        payment = charge
        payment.status = PAYMENT_STATUS_COMPLETED
        payment.payment_method = method
        payment.reference = reference
        payment.completed_at = now
        if customer_id is not None:
            payment.customer_id = customer_id
    else:
        payment = Payment(
            session_id=session.id,
            customer_id=customer_id if customer_id is not None else session.customer_id,
            split_part_id=split_part_id,
            kind=PAYMENT_KIND_SETTLEMENT,
            amount_cents=amount_cents,
            payment_method=method,
            status=PAYMENT_STATUS_COMPLETED,
            reference=reference,
            description=description or f"Session {session.id}",
            completed_at=now,
        )
        db.session.add(payment)
        if charge is not None:
            left = charge.amount_cents - amount_cents
            if left > 0:
                charge.amount_cents = left
            else:
                db.session.delete(charge)

    db.session.flush()

    session.payment_method = method
    session.payment_reference = reference
    session.payment_status = PAYMENT_STATUS_COMPLETED if amount_cents == remaining else PAYMENT_STATUS_PENDING

    if customer_id is not None:
        award_loyalty_points(customer_id, amount_cents, payment_id=payment.id, reason=f"Session {session.id}")

    touch_today()
    return payment


def settle_full(
    session_id: int,
    method: str,
    amount_cents: int,
    customer_id: int | None = None,
    reference: str | None = None,
    notifier=None,
) -> Payment:
    """
    Take a cash or M-Pesa payment against a completed session.

    Raises:
        ValidationError: bad method, non-positive amount, amount above balance
        NotFound: session or customer missing
        InvalidState: session still active or already fully paid
    """
    _require_method(method)
    require_positive_amount(amount_cents)

    def _op():
        session = lock_for_update(db.session.query(GamingSession).filter_by(id=session_id)).first()
        if not session:
            raise NotFound(f"Session {session_id} not found")
        if customer_id is not None:
            _require_customer(customer_id)

        payment = apply_session_payment(
            session,
            amount_cents=amount_cents,
            method=method,
            customer_id=customer_id,
            reference=reference,
        )
        db.session.commit()
        return payment

    payment = run_with_retry(_op)
    notify(notifier, PAYMENT_COMPLETED, payment.to_dict())
    return payment


def create_transaction(
    amount_cents: int,
    session_id: int | None = None,
    customer_id: int | None = None,
    description: str | None = None,
    notifier=None,
) -> Payment:
    """Record a standalone PENDING payment (snacks, top-ups, manual charges)."""
    require_positive_amount(amount_cents)

    def _op():
        if session_id is not None:
            if not db.session.query(GamingSession).filter_by(id=session_id).first():
                raise NotFound(f"Session {session_id} not found")
        if customer_id is not None:
            _require_customer(customer_id)

        payment = Payment(
            session_id=session_id,
            customer_id=customer_id,
            kind=PAYMENT_KIND_TRANSACTION,
            amount_cents=amount_cents,
            payment_method=METHOD_PENDING,
            status=PAYMENT_STATUS_PENDING,
            description=description,
        )
        db.session.add(payment)
        db.session.commit()
        return payment

    payment = run_with_retry(_op)
    notify(notifier, PAYMENT_CREATED, payment.to_dict())
    return payment


def settle_transaction(
    payment_id: int,
    method: str,
    customer_id: int | None = None,
    reference: str | None = None,
    notifier=None,
) -> Payment:
    """
    Complete a PENDING payment as a whole.

    A session's CHARGE row goes through the session balance rules; ad-hoc
    transactions are completed in place and leave the session balance alone.
    """
    _require_method(method)

    def _op():
        payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).first()
        if not payment:
            raise NotFound(f"Payment {payment_id} not found")
        if payment.status != PAYMENT_STATUS_PENDING:
            raise InvalidState(f"Payment {payment_id} is not pending", status=payment.status)
        if customer_id is not None:
            _require_customer(customer_id)

        if payment.kind == PAYMENT_KIND_CHARGE:
            session = lock_for_update(db.session.query(GamingSession).filter_by(id=payment.session_id)).first()
            settled = apply_session_payment(
                session,
                amount_cents=payment.amount_cents,
                method=method,
                customer_id=customer_id,
                reference=reference,
            )
            db.session.commit()
            return settled

        payment.status = PAYMENT_STATUS_COMPLETED
        payment.payment_method = method
        payment.reference = reference
        payment.completed_at = utcnow()
        if customer_id is not None:
            payment.customer_id = customer_id
        db.session.flush()
        if customer_id is not None:
            award_loyalty_points(customer_id, payment.amount_cents, payment_id=payment.id)
        touch_today()
        db.session.commit()
        return payment

    payment = run_with_retry(_op)
    notify(notifier, PAYMENT_COMPLETED, payment.to_dict())
    return payment
