from __future__ import annotations

from ..extensions import db
from lounge.time_utils import to_utc_z


class GamingSession(db.Model):
    """
    One customer's occupancy of a station, from start to end.

    LIFECYCLE:
    - ACTIVE: station is occupied, clock is running
    - COMPLETED: ended; end_time, duration and total are fixed
    - CANCELLED: reserved terminal state

    IMMUTABLE: end_time and total_amount_cents are written once, when the
    session is closed, and never revised. session_service is the only writer
    of status/time/amount fields.
    """
    __tablename__ = "sessions"
    __table_args__ = (
        db.Index("ix_sessions_station_status", "station_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    game_id = db.Column(db.Integer, db.ForeignKey("games.id"), nullable=True, index=True)

    session_type = db.Column(db.String(16), nullable=False)  # HOURLY, FIXED
    # Rate selected at start (hourly or per-game, cents), after default fallback
    base_rate_cents = db.Column(db.Integer, nullable=False)
    planned_duration_minutes = db.Column(db.Integer, nullable=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    duration_minutes = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)
    total_amount_cents = db.Column(db.Integer, nullable=True)

    # Payment linkage, refreshed by payment_service
    payment_method = db.Column(db.String(16), nullable=True)  # CASH, MPESA, PENDING
    payment_status = db.Column(db.String(16), nullable=True)  # PENDING, COMPLETED, FAILED
    payment_reference = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    station = db.relationship("Station", backref=db.backref("sessions", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("sessions", lazy=True))
    game = db.relationship("Game", backref=db.backref("sessions", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "customer_id": self.customer_id,
            "game_id": self.game_id,
            "session_type": self.session_type,
            "base_rate_cents": self.base_rate_cents,
            "planned_duration_minutes": self.planned_duration_minutes,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time) if self.end_time else None,
            "duration_minutes": self.duration_minutes,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "payment_reference": self.payment_reference,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
