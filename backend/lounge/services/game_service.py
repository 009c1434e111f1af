# Overview: Service-layer operations for the game catalog.

from __future__ import annotations

from ..extensions import db
from ..models import Game, GamingSession
from ..errors import NotFound, InvalidState, ValidationError
from ..validation import enforce_rules_game
from lounge.time_utils import utcnow
from .concurrency import run_with_retry
from .notification_service import notify, GAME_CREATED, GAME_UPDATED, GAME_DELETED


GAME_MUTABLE_FIELDS = {
    "title",
    "description",
    "genre",
    "platform",
    "box_art_url",
    "release_date",
    "rate_per_game_cents",
    "is_popular",
    "is_active",
}


def get_game(game_id: int) -> Game:
    game = db.session.query(Game).filter_by(id=game_id).first()
    if not game:
        raise NotFound(f"Game {game_id} not found")
    return game


def list_games(active_only: bool = False, platform: str | None = None, popular: bool | None = None) -> list[Game]:
    query = db.session.query(Game)
    if active_only:
        query = query.filter(Game.is_active.is_(True))
    if platform:
        query = query.filter(Game.platform == platform)
    if popular is not None:
        query = query.filter(Game.is_popular.is_(popular))
    return query.order_by(Game.title.asc(), Game.id.asc()).all()


def create_game(patch: dict, notifier=None) -> Game:
    for field in ("title", "platform"):
        if not (patch.get(field) or "").strip():
            raise ValidationError(f"{field} is required")
    enforce_rules_game(patch)

    def _op():
        game = Game(is_active=True, is_popular=False)
        for k, v in patch.items():
            if k in GAME_MUTABLE_FIELDS:
                setattr(game, k, v)
        db.session.add(game)
        db.session.commit()
        return game

    game = run_with_retry(_op)
    notify(notifier, GAME_CREATED, game.to_dict())
    return game


def update_game(game_id: int, patch: dict, notifier=None) -> Game:
    for field in ("title", "platform"):
        if field in patch and not (patch[field] or "").strip():
            raise ValidationError(f"{field} cannot be blank")
    enforce_rules_game(patch)

    def _op():
        game = get_game(game_id)
        for k, v in patch.items():
            if k in GAME_MUTABLE_FIELDS:
                setattr(game, k, v)
        game.updated_at = utcnow()
        db.session.commit()
        return game

    game = run_with_retry(_op)
    notify(notifier, GAME_UPDATED, game.to_dict())
    return game


def delete_game(game_id: int, notifier=None) -> None:
    """
    Hard delete. Refused while a session is running the game; games with
    history should be deactivated (is_active=false) instead.
    """
    def _op():
        game = get_game(game_id)
        active = db.session.query(GamingSession).filter_by(game_id=game_id, status="ACTIVE").first()
        if active:
            raise InvalidState("Cannot delete a game with an active session", session_id=active.id)
        if db.session.query(GamingSession).filter_by(game_id=game_id).first():
            raise InvalidState("Game has session history; deactivate it instead")
        db.session.delete(game)
        db.session.commit()

    run_with_retry(_op)
    notify(notifier, GAME_DELETED, {"id": game_id})
