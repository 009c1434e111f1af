from __future__ import annotations

from ..extensions import db
from lounge.time_utils import to_utc_z


class DailyStat(db.Model):
    """
    Per-day dashboard counters.

    One row per calendar date. Counters are moved incrementally by session
    start/end (single SQL UPDATE, see stats_service.adjust) and can always be
    rebuilt from sessions/payments by stats_service.recompute_day.
    """
    __tablename__ = "daily_stats"
    __table_args__ = (
        db.UniqueConstraint("stat_date", name="uq_daily_stats_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stat_date = db.Column(db.Date, nullable=False, index=True)

    active_stations = db.Column(db.Integer, nullable=False, default=0)
    active_users = db.Column(db.Integer, nullable=False, default=0)
    total_hours = db.Column(db.Float, nullable=False, default=0.0)
    total_revenue_cents = db.Column(db.Integer, nullable=False, default=0)

    station_utilization = db.Column(db.JSON, nullable=True)  # {"PS5": 3, "PC": 1}
    popular_games = db.Column(db.JSON, nullable=True)  # [{"game_id": 1, "title": ..., "sessions": 4}]

    recomputed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.stat_date.isoformat(),
            "active_stations": self.active_stations,
            "active_users": self.active_users,
            "total_hours": round(self.total_hours or 0.0, 4),
            "total_revenue_cents": self.total_revenue_cents,
            "station_utilization": self.station_utilization,
            "popular_games": self.popular_games,
            "recomputed_at": to_utc_z(self.recomputed_at) if self.recomputed_at else None,
            "updated_at": to_utc_z(self.updated_at),
        }
