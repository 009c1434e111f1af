# Overview: Service-layer operations for customers; profiles and loyalty ledger.

from __future__ import annotations

from ..extensions import db
from ..models import Customer, GamingSession, LoyaltyTransaction, Payment, MobileMoneyRequest
from ..errors import NotFound, InvalidState, ValidationError
from ..validation import enforce_rules_customer
from lounge.time_utils import utcnow
from .concurrency import run_with_retry
from .notification_service import notify, CUSTOMER_CREATED, CUSTOMER_UPDATED, CUSTOMER_DELETED


# Loyalty points are earned through payments only
CUSTOMER_MUTABLE_FIELDS = {"full_name", "phone_number", "email"}


def get_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if not customer:
        raise NotFound(f"Customer {customer_id} not found")
    return customer


def list_customers(search: str | None = None, limit: int = 200) -> list[Customer]:
    query = db.session.query(Customer)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Customer.full_name.ilike(like), Customer.phone_number.ilike(like)))
    limit = max(1, min(limit or 200, 1000))
    return query.order_by(Customer.full_name.asc(), Customer.id.asc()).limit(limit).all()


def create_customer(patch: dict, notifier=None) -> Customer:
    full_name = (patch.get("full_name") or "").strip()
    if not full_name:
        raise ValidationError("full_name is required")
    enforce_rules_customer(patch)

    def _op():
        customer = Customer(loyalty_points=0)
        for k, v in patch.items():
            if k in CUSTOMER_MUTABLE_FIELDS:
                setattr(customer, k, v)
        db.session.add(customer)
        db.session.commit()
        return customer

    customer = run_with_retry(_op)
    notify(notifier, CUSTOMER_CREATED, customer.to_dict())
    return customer


def update_customer(customer_id: int, patch: dict, notifier=None) -> Customer:
    if "loyalty_points" in patch:
        raise ValidationError("loyalty_points cannot be set directly")
    if "full_name" in patch and not (patch["full_name"] or "").strip():
        raise ValidationError("full_name cannot be blank")
    enforce_rules_customer(patch)

    def _op():
        customer = get_customer(customer_id)
        for k, v in patch.items():
            if k in CUSTOMER_MUTABLE_FIELDS:
                setattr(customer, k, v)
        customer.updated_at = utcnow()
        db.session.commit()
        return customer

    customer = run_with_retry(_op)
    notify(notifier, CUSTOMER_UPDATED, customer.to_dict())
    return customer


def delete_customer(customer_id: int, notifier=None) -> None:
    """
    Remove a customer and their loyalty ledger.

    Refused while the customer is playing, and for customers with session
    history (sessions keep their customer for reporting).
    """
    def _op():
        customer = get_customer(customer_id)
        active = (
            db.session.query(GamingSession)
            .filter_by(customer_id=customer_id, status="ACTIVE")
            .first()
        )
        if active:
            raise InvalidState("Cannot delete customer with an active session", session_id=active.id)
        if db.session.query(GamingSession).filter_by(customer_id=customer_id).first():
            raise InvalidState("Cannot delete customer with session history")

        db.session.query(Payment).filter_by(customer_id=customer_id).update(
            {Payment.customer_id: None}, synchronize_session=False
        )
        db.session.query(MobileMoneyRequest).filter_by(customer_id=customer_id).update(
            {MobileMoneyRequest.customer_id: None}, synchronize_session=False
        )
        db.session.delete(customer)
        db.session.commit()

    run_with_retry(_op)
    notify(notifier, CUSTOMER_DELETED, {"id": customer_id})


def list_loyalty_transactions(customer_id: int) -> list[LoyaltyTransaction]:
    get_customer(customer_id)
    return (
        db.session.query(LoyaltyTransaction)
        .filter_by(customer_id=customer_id)
        .order_by(LoyaltyTransaction.occurred_at.desc(), LoyaltyTransaction.id.desc())
        .all()
    )
