import pytest

from lounge.errors import NotFound, InvalidState, ValidationError
from lounge.models import Customer, GamingSession, LoyaltyTransaction, Payment
from lounge.services import payment_service, session_service


def test_cash_settles_charge_row_in_place(db_session, ended_session, customer, events):
    events.drain()
    payment = payment_service.settle_full(ended_session.id, "CASH", 60000, customer_id=customer.id)

    assert payment.status == "COMPLETED"
    assert payment.payment_method == "CASH"
    assert db_session.query(Payment).filter_by(session_id=ended_session.id).count() == 1

    session = db_session.get(GamingSession, ended_session.id)
    assert session.payment_status == "COMPLETED"
    assert session.payment_method == "CASH"
    assert payment_service.is_fully_paid(ended_session.id) is True
    assert events.types() == ["PAYMENT_COMPLETED"]


def test_partial_payments_shrink_charge_row(db_session, ended_session):
    payment_service.settle_full(ended_session.id, "CASH", 25000)

    summary = payment_service.get_payment_summary(ended_session.id)
    assert summary["paid_cents"] == 25000
    assert summary["remaining_cents"] == 35000
    assert summary["payment_status"] == "PENDING"
    pending = [p for p in summary["payments"] if p["status"] == "PENDING"]
    assert [p["amount_cents"] for p in pending] == [35000]

    payment_service.settle_full(ended_session.id, "MPESA", 35000, reference="QAB12XYZ")

    summary = payment_service.get_payment_summary(ended_session.id)
    assert summary["remaining_cents"] == 0
    assert summary["is_fully_paid"] is True
    assert summary["payment_status"] == "COMPLETED"
    assert all(p["status"] == "COMPLETED" for p in summary["payments"])
    assert sum(p["amount_cents"] for p in summary["payments"]) == 60000


def test_overpayment_is_refused(db_session, ended_session):
    with pytest.raises(ValidationError):
        payment_service.settle_full(ended_session.id, "CASH", 60001)

    assert payment_service.get_payment_summary(ended_session.id)["paid_cents"] == 0


@pytest.mark.parametrize("method,amount", [("CARD", 1000), ("CASH", 0), ("CASH", -5), ("CASH", 10.5)])
def test_settle_rejects_bad_input(db_session, ended_session, method, amount):
    with pytest.raises(ValidationError):
        payment_service.settle_full(ended_session.id, method, amount)


def test_cannot_pay_active_or_paid_session(db_session, clock, station, customer):
    session = session_service.start_session(station.id, customer.id, "HOURLY")
    with pytest.raises(InvalidState):
        payment_service.settle_full(session.id, "CASH", 1000)

    clock.advance(minutes=10)
    session_service.end_session(session.id)
    payment_service.settle_full(session.id, "CASH", 20000)

    with pytest.raises(InvalidState):
        payment_service.settle_full(session.id, "CASH", 100)


def test_missing_session_or_customer(db_session, ended_session):
    with pytest.raises(NotFound):
        payment_service.settle_full(999, "CASH", 100)
    with pytest.raises(NotFound):
        payment_service.settle_full(ended_session.id, "CASH", 100, customer_id=999)

    assert payment_service.get_payment_summary(ended_session.id)["paid_cents"] == 0


@pytest.mark.parametrize("amount,points", [(9900, 0), (10000, 1), (25000, 2)])
def test_loyalty_points_round_down(db_session, customer, amount, points):
    awarded = payment_service.award_loyalty_points(customer.id, amount)
    db_session.commit()

    assert awarded == points
    assert db_session.get(Customer, customer.id).loyalty_points == points
    assert db_session.query(LoyaltyTransaction).count() == (1 if points else 0)


def test_settlement_awards_points_to_named_customer(db_session, ended_session, customer):
    payment = payment_service.settle_full(ended_session.id, "CASH", 60000, customer_id=customer.id)

    assert db_session.get(Customer, customer.id).loyalty_points == 6
    ledger = db_session.query(LoyaltyTransaction).one()
    assert ledger.payment_id == payment.id
    assert ledger.points == 6


def test_no_points_without_customer(db_session, ended_session, customer):
    payment_service.settle_full(ended_session.id, "CASH", 60000)
    assert db_session.get(Customer, customer.id).loyalty_points == 0


def test_adhoc_transaction_lifecycle(db_session, customer, events):
    payment = payment_service.create_transaction(15000, customer_id=customer.id, description="Snacks")
    assert payment.status == "PENDING"

    settled = payment_service.settle_transaction(payment.id, "CASH", customer_id=customer.id)
    assert settled.status == "COMPLETED"
    assert settled.completed_at is not None
    assert db_session.get(Customer, customer.id).loyalty_points == 1

    with pytest.raises(InvalidState):
        payment_service.settle_transaction(payment.id, "CASH")
    assert events.types() == ["PAYMENT_CREATED", "PAYMENT_COMPLETED"]


def test_settle_transaction_on_charge_row_updates_session(db_session, ended_session):
    charge = db_session.query(Payment).filter_by(session_id=ended_session.id, status="PENDING").one()

    payment_service.settle_transaction(charge.id, "MPESA", reference="QXY")

    session = db_session.get(GamingSession, ended_session.id)
    assert session.payment_status == "COMPLETED"
    assert session.payment_reference == "QXY"


def test_list_payments_filters(db_session, ended_session, customer):
    payment_service.settle_full(ended_session.id, "CASH", 10000, customer_id=customer.id)

    completed = payment_service.list_payments(status="COMPLETED")
    assert [p.amount_cents for p in completed] == [10000]
    assert len(payment_service.list_payments(method="PENDING")) == 1
    assert len(payment_service.list_customer_payments(customer.id)) == 2


def test_snack_before_session_end_is_not_the_charge_row(db_session, clock, station, customer):
    session = session_service.start_session(station.id, customer.id, "HOURLY")
    snack = payment_service.create_transaction(500, session_id=session.id, description="Snacks")
    clock.advance(minutes=130)
    session_service.end_session(session.id)

    payment_service.settle_full(session.id, "CASH", 60000)

    snack = db_session.get(Payment, snack.id)
    assert snack is not None
    assert snack.status == "PENDING"
    assert snack.kind == "TRANSACTION"
    ledger = (
        db_session.query(Payment)
        .filter(Payment.session_id == session.id, Payment.kind != "TRANSACTION")
        .all()
    )
    assert [(p.kind, p.amount_cents, p.status) for p in ledger] == [("CHARGE", 60000, "COMPLETED")]
    assert db_session.get(GamingSession, session.id).payment_status == "COMPLETED"


def test_settled_snack_does_not_reduce_session_balance(db_session, clock, station, customer):
    session = session_service.start_session(station.id, customer.id, "HOURLY")
    snack = payment_service.create_transaction(500, session_id=session.id, description="Snacks")
    payment_service.settle_transaction(snack.id, "CASH")
    clock.advance(minutes=130)
    session_service.end_session(session.id)

    summary = payment_service.get_payment_summary(session.id)
    assert summary["paid_cents"] == 0
    assert summary["remaining_cents"] == 60000
    assert [p["kind"] for p in summary["payments"]] == ["CHARGE"]
    assert [p["amount_cents"] for p in summary["transactions"]] == [500]

    payment_service.settle_full(session.id, "MPESA", 60000, reference="QK1")
    assert payment_service.is_fully_paid(session.id) is True
    assert payment_service.paid_cents(session.id) == 60000


def test_snack_after_session_end_settles_in_place(db_session, ended_session):
    snack = payment_service.create_transaction(800, session_id=ended_session.id, description="Drinks")

    settled = payment_service.settle_transaction(snack.id, "CASH")

    assert settled.id == snack.id
    assert settled.status == "COMPLETED"
    charge = payment_service.get_charge_row(ended_session.id)
    assert charge.amount_cents == 60000
    assert payment_service.remaining_cents(db_session.get(GamingSession, ended_session.id)) == 60000
    assert db_session.get(GamingSession, ended_session.id).payment_status == "PENDING"
