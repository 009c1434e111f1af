import pytest

from lounge.errors import InvalidState, ValidationError, SplitImbalance
from lounge.models import GamingSession, Payment
from lounge.services import split_service, payment_service


def _amounts(split):
    return [p.amount_cents for p in sorted(split.parts, key=lambda p: p.position)]


@pytest.mark.parametrize("total,count,expected", [
    (90000, 3, [30000, 30000, 30000]),
    (10000, 3, [3334, 3333, 3333]),
    (5, 5, [1, 1, 1, 1, 1]),
    (2, 3, [1, 1, 0]),
])
def test_even_shares_sum_exactly(total, count, expected):
    shares = split_service.even_shares(total, count)
    assert shares == expected
    assert sum(shares) == total


def test_create_split_defaults_to_session_balance(db_session, ended_session):
    split = split_service.create_split(3, session_id=ended_session.id)

    assert split.total_amount_cents == 60000
    assert _amounts(split) == [20000, 20000, 20000]
    assert split_service.split_balance(split)["balanced"] is True


@pytest.mark.parametrize("count", [0, 6])
def test_part_count_limits(db_session, count):
    with pytest.raises(ValidationError):
        split_service.create_split(count, total_amount_cents=90000)


def test_one_open_split_per_session(db_session, ended_session):
    split_service.create_split(2, session_id=ended_session.id)
    with pytest.raises(InvalidState):
        split_service.create_split(3, session_id=ended_session.id)


def test_pay_part_then_remove_unpaid_keeps_total(db_session):
    split = split_service.create_split(3, total_amount_cents=90000)
    assert _amounts(split) == [30000, 30000, 30000]

    split_service.pay_part(split.id, 1, "CASH")
    split = split_service.get_split(split.id)
    assert _amounts(split) == [30000, 30000, 30000]

    split = split_service.remove_part(split.id, 2)

    assert _amounts(split) == [60000, 30000]
    assert [p.paid for p in sorted(split.parts, key=lambda p: p.position)] == [False, True]
    assert split_service.split_balance(split)["balanced"] is True


def test_paid_part_cannot_be_removed(db_session):
    split = split_service.create_split(2, total_amount_cents=20000)
    split_service.pay_part(split.id, 0, "CASH")

    with pytest.raises(InvalidState):
        split_service.remove_part(split.id, 0)


def test_last_unpaid_part_cannot_be_removed(db_session):
    split = split_service.create_split(2, total_amount_cents=20000)
    split_service.pay_part(split.id, 0, "CASH")

    with pytest.raises(InvalidState):
        split_service.remove_part(split.id, 1)


def test_add_part_redistributes_unpaid(db_session):
    split = split_service.create_split(2, total_amount_cents=90000)
    split_service.pay_part(split.id, 0, "CASH")

    split = split_service.add_part(split.id)

    assert _amounts(split) == [45000, 22500, 22500]

    for _ in range(2):
        split = split_service.add_part(split.id)
    assert len(split.parts) == 5
    with pytest.raises(ValidationError):
        split_service.add_part(split.id)


def test_manual_amount_can_unbalance_and_blocks_payment(db_session):
    split = split_service.create_split(3, total_amount_cents=90000)

    split = split_service.set_part_amount(split.id, 0, 50000)
    assert _amounts(split) == [50000, 20000, 20000]
    assert split_service.split_balance(split)["balanced"] is True

    split = split_service.set_part_amount(split.id, 1, 45000)
    assert _amounts(split) == [22500, 45000, 22500]

    split = split_service.set_part_amount(split.id, 0, 95000)
    assert _amounts(split) == [95000, 0, 0]
    balance = split_service.split_balance(split)
    assert balance["balanced"] is False
    assert balance["difference_cents"] == -5000

    with pytest.raises(SplitImbalance) as exc:
        split_service.pay_part(split.id, 1, "CASH")
    assert exc.value.status_code == 409
    assert exc.value.details["balance"]["balanced"] is False
    assert db_session.query(Payment).count() == 0


def test_pay_part_amount_must_match(db_session):
    split = split_service.create_split(3, total_amount_cents=90000)
    with pytest.raises(ValidationError):
        split_service.pay_part(split.id, 0, "CASH", amount_cents=29999)

    split_service.pay_part(split.id, 0, "CASH", amount_cents=30000)
    with pytest.raises(InvalidState):
        split_service.pay_part(split.id, 0, "CASH")


def test_settling_session_split(db_session, ended_session, customer, events):
    split = split_service.create_split(2, session_id=ended_session.id)
    settled = []
    events.drain()

    split_service.pay_part(split.id, 0, "CASH", customer_id=customer.id)
    assert db_session.get(GamingSession, ended_session.id).payment_status == "PENDING"
    charge = db_session.query(Payment).filter_by(session_id=ended_session.id, status="PENDING").one()
    assert charge.amount_cents == 30000

    split_service.pay_part(split.id, 1, "MPESA", reference="QR77", on_settled=settled.append)

    split = split_service.get_split(split.id)
    assert split.status == "SETTLED"
    assert [s.id for s in settled] == [split.id]
    assert db_session.get(GamingSession, ended_session.id).payment_status == "COMPLETED"
    assert db_session.query(Payment).filter_by(session_id=ended_session.id, status="PENDING").count() == 0
    assert payment_service.get_payment_summary(ended_session.id)["paid_cents"] == 60000

    completed = events.drain()
    assert [e["data"]["split_index"] for e in completed] == [0, 1]
    assert [e["data"]["split_settled"] for e in completed] == [False, True]

    with pytest.raises(InvalidState):
        split_service.add_part(split.id)
