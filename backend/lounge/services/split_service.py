# Overview: Service-layer operations for split payments; part allocation and settlement.

"""
Split Payments

WHY: Friends sharing a console want to pay their own share, possibly by
different methods and at different times.

RULES:
- 1..MAX_SPLIT_PARTS parts per split
- Paid parts are frozen (amount fixed, cannot be removed)
- Unpaid parts share (total - paid) evenly in whole cents; leftover cents go
  one each to the leading unpaid parts, so the parts always sum exactly
- A manual amount on one part makes the others share what is left; this can
  leave the split unbalanced, and an unbalanced split refuses payment
- Paying the last unpaid part settles the split
"""

from __future__ import annotations

from typing import Callable

from flask import current_app

from ..extensions import db
from ..models import GamingSession, Payment, PaymentSplit, PaymentSplitPart
from ..errors import NotFound, InvalidState, ValidationError, SplitImbalance
from ..validation import require_positive_amount
from lounge.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .payment_service import (
    apply_session_payment,
    award_loyalty_points,
    remaining_cents,
    _require_customer,
    _require_method,
    PAYMENT_KIND_SETTLEMENT,
    PAYMENT_STATUS_COMPLETED,
)
from .stats_service import touch_today
from .notification_service import notify, PAYMENT_COMPLETED


SPLIT_STATUS_OPEN = "OPEN"
SPLIT_STATUS_SETTLED = "SETTLED"

DEFAULT_MAX_SPLIT_PARTS = 5


def _max_parts() -> int:
    return current_app.config.get("MAX_SPLIT_PARTS", DEFAULT_MAX_SPLIT_PARTS)


# =============================================================================
# ALLOCATION
# =============================================================================

def even_shares(amount_cents: int, count: int) -> list[int]:
    """Split `amount_cents` into `count` shares; leading shares absorb the remainder."""
    if count <= 0:
        return []
    base, extra = divmod(max(amount_cents, 0), count)
    return [base + (1 if i < extra else 0) for i in range(count)]


def _redistribute(split: PaymentSplit) -> None:
    parts = sorted(split.parts, key=lambda p: p.position)
    unpaid = [p for p in parts if not p.paid]
    paid_total = sum(p.amount_cents for p in parts if p.paid)
    for part, share in zip(unpaid, even_shares(split.total_amount_cents - paid_total, len(unpaid))):
        part.amount_cents = share


def split_balance(split: PaymentSplit) -> dict:
    allocated = sum(p.amount_cents for p in split.parts)
    difference = split.total_amount_cents - allocated
    return {
        "total_cents": split.total_amount_cents,
        "allocated_cents": allocated,
        "difference_cents": difference,
        "balanced": difference == 0,
    }


# =============================================================================
# QUERIES
# =============================================================================

def get_split(split_id: int) -> PaymentSplit:
    split = db.session.query(PaymentSplit).filter_by(id=split_id).first()
    if not split:
        raise NotFound(f"Split {split_id} not found")
    return split


def _lock_open_split(split_id: int) -> PaymentSplit:
    split = lock_for_update(db.session.query(PaymentSplit).filter_by(id=split_id)).first()
    if not split:
        raise NotFound(f"Split {split_id} not found")
    if split.status != SPLIT_STATUS_OPEN:
        raise InvalidState(f"Split {split_id} is already settled", status=split.status)
    return split


def _get_part(split: PaymentSplit, index: int) -> PaymentSplitPart:
    for part in split.parts:
        if part.position == index:
            return part
    raise NotFound(f"Split {split.id} has no part {index}")


def list_session_splits(session_id: int) -> list[PaymentSplit]:
    return (
        db.session.query(PaymentSplit)
        .filter_by(session_id=session_id)
        .order_by(PaymentSplit.id.asc())
        .all()
    )


# =============================================================================
# PLAN EDITING
# =============================================================================

def create_split(
    part_count: int,
    total_amount_cents: int | None = None,
    session_id: int | None = None,
) -> PaymentSplit:
    """
    Create a split of `part_count` even parts.

    With a session, the total defaults to the session's remaining balance and
    may not exceed it. Without one, total_amount_cents is required.
    """
    if isinstance(part_count, bool) or not isinstance(part_count, int):
        raise ValidationError("part_count must be an integer")
    if part_count < 1 or part_count > _max_parts():
        raise ValidationError(f"part_count must be between 1 and {_max_parts()}")
    if total_amount_cents is not None:
        require_positive_amount(total_amount_cents, "total_amount_cents")
    elif session_id is None:
        raise ValidationError("total_amount_cents is required without a session")

    def _op():
        total = total_amount_cents
        if session_id is not None:
            session = lock_for_update(db.session.query(GamingSession).filter_by(id=session_id)).first()
            if not session:
                raise NotFound(f"Session {session_id} not found")
            if session.status != "COMPLETED":
                raise InvalidState(f"Session {session_id} is not completed", status=session.status)
            remaining = remaining_cents(session)
            if remaining <= 0:
                raise InvalidState(f"Session {session_id} is already fully paid")
            open_split = (
                db.session.query(PaymentSplit)
                .filter_by(session_id=session_id, status=SPLIT_STATUS_OPEN)
                .first()
            )
            if open_split:
                raise InvalidState(f"Session {session_id} already has an open split", split_id=open_split.id)
            if total is None:
                total = remaining
            elif total > remaining:
                raise ValidationError(
                    f"Split total {total} exceeds remaining balance {remaining}",
                    remaining_cents=remaining,
                )

        split = PaymentSplit(session_id=session_id, total_amount_cents=total, status=SPLIT_STATUS_OPEN)
        db.session.add(split)
        for position, share in enumerate(even_shares(total, part_count)):
            split.parts.append(PaymentSplitPart(position=position, amount_cents=share, paid=False))
        db.session.commit()
        return split

    return run_with_retry(_op)


def add_part(split_id: int) -> PaymentSplit:
    def _op():
        split = _lock_open_split(split_id)
        if len(split.parts) >= _max_parts():
            raise ValidationError(f"A split cannot have more than {_max_parts()} parts")
        next_position = max((p.position for p in split.parts), default=-1) + 1
        split.parts.append(PaymentSplitPart(position=next_position, amount_cents=0, paid=False))
        _redistribute(split)
        db.session.commit()
        return split

    return run_with_retry(_op)


def remove_part(split_id: int, index: int) -> PaymentSplit:
    """
    Drop an unpaid part; the remaining unpaid parts share its amount.
    Parts after it move down one index.
    """
    def _op():
        split = _lock_open_split(split_id)
        part = _get_part(split, index)
        if part.paid:
            raise InvalidState(f"Part {index} is already paid and cannot be removed")
        if len(split.parts) <= 1:
            raise InvalidState("A split must keep at least one part")
        if not any(not p.paid and p is not part for p in split.parts):
            raise InvalidState("A split must keep at least one unpaid part")

        split.parts.remove(part)
        db.session.flush()

        for position, remaining_part in enumerate(sorted(split.parts, key=lambda p: p.position)):
            remaining_part.position = position
        _redistribute(split)
        db.session.commit()
        return split

    return run_with_retry(_op)


def set_part_amount(split_id: int, index: int, amount_cents: int) -> PaymentSplit:
    """
    Manually set one unpaid part. The other unpaid parts share what is left of
    the unpaid total (floored at zero). The result may be unbalanced.
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError("amount_cents must be an integer number of cents")
    if amount_cents < 0:
        raise ValidationError("amount_cents must be >= 0")

    def _op():
        split = _lock_open_split(split_id)
        part = _get_part(split, index)
        if part.paid:
            raise InvalidState(f"Part {index} is already paid")

        part.amount_cents = amount_cents
        paid_total = sum(p.amount_cents for p in split.parts if p.paid)
        others = [p for p in sorted(split.parts, key=lambda p: p.position) if not p.paid and p is not part]
        left = split.total_amount_cents - paid_total - amount_cents
        for other, share in zip(others, even_shares(left, len(others))):
            other.amount_cents = share
        db.session.commit()
        return split

    return run_with_retry(_op)


# =============================================================================
# PAYMENT
# =============================================================================

def pay_part(
    split_id: int,
    index: int,
    method: str,
    amount_cents: int | None = None,
    customer_id: int | None = None,
    reference: str | None = None,
    on_settled: Callable[[PaymentSplit], None] | None = None,
    notifier=None,
) -> Payment:
    """
    Pay one part of a balanced split.

    Raises:
        SplitImbalance: parts do not add up to the total (details carry the balance)
        InvalidState: split settled or part already paid
        ValidationError: amount given and different from the part amount
    """
    _require_method(method)

    def _op():
        split = _lock_open_split(split_id)
        part = _get_part(split, index)
        if part.paid:
            raise InvalidState(f"Part {index} is already paid")

        balance = split_balance(split)
        if not balance["balanced"]:
            raise SplitImbalance(
                "Split parts do not add up to the total",
                balance=balance,
            )
        if amount_cents is not None and amount_cents != part.amount_cents:
            raise ValidationError(
                f"Amount {amount_cents} does not match part amount {part.amount_cents}",
                part_amount_cents=part.amount_cents,
            )
        require_positive_amount(part.amount_cents)
        if customer_id is not None:
            _require_customer(customer_id)

        description = f"Split {split.id} part {index + 1}/{len(split.parts)}"
        if split.session_id is not None:
            session = lock_for_update(db.session.query(GamingSession).filter_by(id=split.session_id)).first()
            payment = apply_session_payment(
                session,
                amount_cents=part.amount_cents,
                method=method,
                customer_id=customer_id,
                reference=reference,
                split_part_id=part.id,
                description=description,
            )
        else:
            payment = Payment(
                customer_id=customer_id,
                split_part_id=part.id,
                kind=PAYMENT_KIND_SETTLEMENT,
                amount_cents=part.amount_cents,
                payment_method=method,
                status=PAYMENT_STATUS_COMPLETED,
                reference=reference,
                description=description,
                completed_at=utcnow(),
            )
            db.session.add(payment)
            db.session.flush()
            if customer_id is not None:
                award_loyalty_points(customer_id, part.amount_cents, payment_id=payment.id, reason=description)
            touch_today()

        part.paid = True
        part.paid_at = utcnow()

        settled = all(p.paid for p in split.parts)
        if settled:
            split.status = SPLIT_STATUS_SETTLED
            split.settled_at = utcnow()

        db.session.commit()
        return split, payment, settled

    split, payment, settled = run_with_retry(_op)

    if settled and on_settled is not None:
        on_settled(split)

    event = payment.to_dict()
    event.update({"split_id": split.id, "split_index": index, "split_settled": settled})
    notify(notifier, PAYMENT_COMPLETED, event)
    return payment
