# Overview: Flask API routes for the game catalog.

from flask import Blueprint, request, jsonify, current_app

from ..models import Game
from ..errors import LoungeError
from ..validation import ModelValidationPolicy, validate_payload
from ..services import game_service
from .common import error_response, json_body


GAME_POLICY = ModelValidationPolicy(
    writable_fields={
        "title",
        "description",
        "genre",
        "platform",
        "box_art_url",
        "release_date",
        "rate_per_game_cents",
        "is_popular",
        "is_active",
    },
    required_on_create={"title", "platform"},
)

games_bp = Blueprint("games", __name__, url_prefix="/api/games")


@games_bp.get("")
def list_games_route():
    """Query params: active (true/false), platform, popular (true/false)."""
    popular = request.args.get("popular")
    games = game_service.list_games(
        active_only=request.args.get("active", "false").lower() == "true",
        platform=request.args.get("platform"),
        popular=None if popular is None else popular.lower() == "true",
    )
    return jsonify({"items": [g.to_dict() for g in games], "count": len(games)}), 200


@games_bp.post("")
def create_game_route():
    try:
        patch = validate_payload(model=Game, payload=json_body(), policy=GAME_POLICY, partial=False)
        game = game_service.create_game(patch)
        return jsonify({"game": game.to_dict()}), 201
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create game")
        return jsonify({"error": "Internal server error"}), 500


@games_bp.get("/<int:game_id>")
def get_game_route(game_id: int):
    try:
        return jsonify({"game": game_service.get_game(game_id).to_dict()}), 200
    except LoungeError as e:
        return error_response(e)


@games_bp.patch("/<int:game_id>")
def update_game_route(game_id: int):
    try:
        patch = validate_payload(model=Game, payload=json_body(), policy=GAME_POLICY, partial=True)
        game = game_service.update_game(game_id, patch)
        return jsonify({"game": game.to_dict()}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update game")
        return jsonify({"error": "Internal server error"}), 500


@games_bp.delete("/<int:game_id>")
def delete_game_route(game_id: int):
    try:
        game_service.delete_game(game_id)
        return jsonify({"deleted": True, "id": game_id}), 200
    except LoungeError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete game")
        return jsonify({"error": "Internal server error"}), 500
