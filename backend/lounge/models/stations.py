from __future__ import annotations

from ..extensions import db
from lounge.time_utils import to_utc_z


class Station(db.Model):
    """
    Physical gaming rig (PS5, XBOX, PC, VR) rentable by the hour or per game.

    STATUS:
    - AVAILABLE: free for a new session
    - ACTIVE: exactly one ACTIVE session references this station
    - MAINTENANCE: out of service (reason/ETA recorded)

    Status is only moved by session start/end (atomic compare-and-set in
    station_service) and by the maintenance toggles. Stations are never
    hard-deleted.
    """
    __tablename__ = "stations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    station_type = db.Column(db.String(16), nullable=False, index=True)  # PS5, XBOX, PC, VR
    status = db.Column(db.String(16), nullable=False, default="AVAILABLE", index=True)

    # Rate card (cents). NULL means "use the configured default".
    rate_per_hour_cents = db.Column(db.Integer, nullable=True)
    rate_per_game_cents = db.Column(db.Integer, nullable=True)

    maintenance_reason = db.Column(db.String(255), nullable=True)
    maintenance_eta = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "station_type": self.station_type,
            "status": self.status,
            "rate_per_hour_cents": self.rate_per_hour_cents,
            "rate_per_game_cents": self.rate_per_game_cents,
            "maintenance_reason": self.maintenance_reason,
            "maintenance_eta": self.maintenance_eta,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Game(db.Model):
    """
    Game catalog entry. A FIXED session may be priced from the game's
    per-game rate when the station has none.
    """
    __tablename__ = "games"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    genre = db.Column(db.String(64), nullable=True)
    platform = db.Column(db.String(64), nullable=False)
    box_art_url = db.Column(db.String(512), nullable=True)
    release_date = db.Column(db.DateTime(timezone=True), nullable=True)
    rate_per_game_cents = db.Column(db.Integer, nullable=True)

    is_popular = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "genre": self.genre,
            "platform": self.platform,
            "box_art_url": self.box_art_url,
            "release_date": to_utc_z(self.release_date),
            "rate_per_game_cents": self.rate_per_game_cents,
            "is_popular": self.is_popular,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
