import pytest

from lounge.errors import InvalidState, NotFound, ValidationError
from lounge.models import Customer, Game
from lounge.services import customer_service, game_service, payment_service, session_service


def test_customer_create_and_update(db_session, events):
    customer = customer_service.create_customer({"full_name": "Achieng Atieno", "email": "achieng@example.com"})
    assert customer.loyalty_points == 0

    with pytest.raises(ValidationError):
        customer_service.update_customer(customer.id, {"loyalty_points": 500})
    with pytest.raises(ValidationError):
        customer_service.update_customer(customer.id, {"email": "not-an-email"})

    updated = customer_service.update_customer(customer.id, {"phone_number": "254711000000"})
    assert updated.phone_number == "254711000000"
    assert events.types() == ["CUSTOMER_CREATED", "CUSTOMER_UPDATED"]


def test_customer_search(db_session, customer):
    customer_service.create_customer({"full_name": "Brian Mwangi", "phone_number": "254799000111"})

    assert [c.full_name for c in customer_service.list_customers(search="Wanjiru")] == ["Wanjiru Kamau"]
    assert [c.full_name for c in customer_service.list_customers(search="799")] == ["Brian Mwangi"]


def test_customer_delete_rules(db_session, clock, station, customer):
    session = session_service.start_session(station.id, customer.id, "HOURLY")
    with pytest.raises(InvalidState):
        customer_service.delete_customer(customer.id)

    clock.advance(minutes=5)
    session_service.end_session(session.id)
    with pytest.raises(InvalidState):
        customer_service.delete_customer(customer.id)

    walk_in = customer_service.create_customer({"full_name": "Walk-in"})
    payment = payment_service.create_transaction(5000, customer_id=walk_in.id)
    customer_service.delete_customer(walk_in.id)

    assert db_session.get(Customer, walk_in.id) is None
    assert payment_service.list_payments()[0].id == payment.id
    with pytest.raises(NotFound):
        customer_service.get_customer(walk_in.id)


def test_loyalty_ledger_listing(db_session, ended_session, customer):
    payment_service.settle_full(ended_session.id, "CASH", 30000, customer_id=customer.id)
    payment_service.settle_full(ended_session.id, "CASH", 30000, customer_id=customer.id)

    ledger = customer_service.list_loyalty_transactions(customer.id)
    assert [t.points for t in ledger] == [3, 3]
    assert db_session.get(Customer, customer.id).loyalty_points == 6


def test_game_crud(db_session, events):
    with pytest.raises(ValidationError):
        game_service.create_game({"title": "Halo"})

    game = game_service.create_game({"title": "Halo Infinite", "platform": "XBOX", "rate_per_game_cents": 5000})
    assert game.is_active is True

    game_service.update_game(game.id, {"is_popular": True})
    assert [g.id for g in game_service.list_games(popular=True)] == [game.id]

    game_service.delete_game(game.id)
    assert db_session.get(Game, game.id) is None
    assert events.types() == ["GAME_CREATED", "GAME_UPDATED", "GAME_DELETED"]


def test_game_in_use_cannot_be_deleted(db_session, clock, station, customer, game):
    session_service.start_session(station.id, customer.id, "FIXED", game_id=game.id)

    with pytest.raises(InvalidState):
        game_service.delete_game(game.id)

    game_service.update_game(game.id, {"is_active": False})
    assert game_service.list_games(active_only=True) == []
