# Overview: Service-layer operations for reporting; read-only aggregates over sessions and payments.

"""
Reports feed the dashboard charts and the PDF exporter; rendering happens
elsewhere. All money is integer cents; percentages are rounded to 2 places.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import GamingSession, Payment, Game, Customer
from ..errors import ValidationError
from lounge.time_utils import business_date, to_utc_z, utcnow
from .stats_service import list_days


DEFAULT_ACTIVITY_DAYS = 7

LOYALTY_TIERS = [
    ("Bronze", 1, 100),
    ("Silver", 101, 500),
    ("Gold", 501, 1000),
    ("Platinum", 1001, None),
]


def _resolve_range(start: date | None, end: date | None, default_days: int = DEFAULT_ACTIVITY_DAYS) -> tuple[date, date]:
    end = end or business_date()
    start = start or (end - timedelta(days=default_days - 1))
    if start > end:
        raise ValidationError("start must be on or before end")
    return start, end


def _window(start: date, end: date) -> tuple[datetime, datetime]:
    return datetime.combine(start, time.min), datetime.combine(end + timedelta(days=1), time.min)


def _day_key(value) -> str:
    # func.date() gives a string on SQLite and a date elsewhere
    return value.isoformat() if isinstance(value, date) else str(value)[:10]


def _days(start: date, end: date) -> list[str]:
    return [(start + timedelta(days=i)).isoformat() for i in range((end - start).days + 1)]


def _pct(part: int, whole: int) -> float:
    return round(part * 100.0 / whole, 2) if whole else 0.0


def today_summary() -> dict:
    start, end = _window(business_date(), business_date())

    revenue = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(
            Payment.status == "COMPLETED",
            Payment.completed_at >= start,
            Payment.completed_at < end,
        )
        .scalar()
    )

    completed_count, completed_value = (
        db.session.query(
            func.count(GamingSession.id),
            func.coalesce(func.sum(GamingSession.total_amount_cents), 0),
        )
        .filter(
            GamingSession.status == "COMPLETED",
            GamingSession.end_time >= start,
            GamingSession.end_time < end,
        )
        .one()
    )

    active = (
        db.session.query(GamingSession)
        .filter(GamingSession.status == "ACTIVE")
        .order_by(GamingSession.start_time.asc())
        .all()
    )

    return {
        "date": business_date().isoformat(),
        "revenue_cents": int(revenue or 0),
        "active_session_count": len(active),
        "completed_session_count": int(completed_count),
        "average_session_value_cents": int(completed_value) // int(completed_count) if completed_count else 0,
        "active_sessions": [s.to_dict() for s in active],
        "generated_at": to_utc_z(utcnow()),
    }


def customer_activity(start: date | None = None, end: date | None = None) -> list[dict]:
    """Per-day sessions started, their revenue and distinct customers. Every day in range is present."""
    start, end = _resolve_range(start, end)
    window_start, window_end = _window(start, end)

    day_expr = func.date(GamingSession.start_time)
    rows = (
        db.session.query(
            day_expr.label("day"),
            func.count(GamingSession.id),
            func.coalesce(func.sum(GamingSession.total_amount_cents), 0),
            func.count(func.distinct(GamingSession.customer_id)),
        )
        .filter(GamingSession.start_time >= window_start, GamingSession.start_time < window_end)
        .group_by(day_expr)
        .all()
    )
    by_day = {_day_key(day): (count, revenue, customers) for day, count, revenue, customers in rows}

    result = []
    for day in _days(start, end):
        count, revenue, customers = by_day.get(day, (0, 0, 0))
        result.append({
            "date": day,
            "session_count": int(count),
            "revenue_cents": int(revenue),
            "unique_customers": int(customers),
        })
    return result


def payment_method_breakdown(start: date | None = None, end: date | None = None) -> list[dict]:
    query = db.session.query(
        Payment.payment_method,
        func.count(Payment.id),
        func.coalesce(func.sum(Payment.amount_cents), 0),
    ).filter(Payment.status == "COMPLETED")
    if start or end:
        start, end = _resolve_range(start, end)
        window_start, window_end = _window(start, end)
        query = query.filter(Payment.completed_at >= window_start, Payment.completed_at < window_end)

    rows = query.group_by(Payment.payment_method).all()
    grand_total = sum(int(amount) for _, _, amount in rows)
    return [
        {
            "method": method,
            "count": int(count),
            "amount_cents": int(amount),
            "percentage": _pct(int(amount), grand_total),
        }
        for method, count, amount in sorted(rows, key=lambda r: -int(r[2]))
    ]


def game_performance(start: date | None = None, end: date | None = None) -> dict:
    start, end = _resolve_range(start, end, default_days=30)
    window_start, window_end = _window(start, end)

    rows = (
        db.session.query(
            Game.id,
            Game.title,
            func.count(GamingSession.id),
            func.coalesce(func.sum(GamingSession.total_amount_cents), 0),
            func.coalesce(func.sum(GamingSession.duration_minutes), 0),
        )
        .join(GamingSession, GamingSession.game_id == Game.id)
        .filter(
            GamingSession.status == "COMPLETED",
            GamingSession.start_time >= window_start,
            GamingSession.start_time < window_end,
        )
        .group_by(Game.id, Game.title)
        .all()
    )

    games = []
    for game_id, title, count, revenue, minutes in rows:
        count, revenue, minutes = int(count), int(revenue), int(minutes)
        games.append({
            "game_id": game_id,
            "title": title,
            "session_count": count,
            "revenue_cents": revenue,
            "total_minutes": minutes,
            "average_minutes": round(minutes / count, 2) if count else 0.0,
            "revenue_per_hour_cents": int(revenue * 60 / minutes) if minutes else 0,
        })
    games.sort(key=lambda g: (-g["session_count"], g["title"]))

    most_popular = games[0] if games else None
    highest_revenue = max(games, key=lambda g: g["revenue_cents"]) if games else None
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "games": games,
        "most_popular": most_popular,
        "highest_revenue": highest_revenue,
    }


def loyalty_report() -> list[dict]:
    segments = []
    for name, low, high in LOYALTY_TIERS:
        query = db.session.query(
            func.count(Customer.id),
            func.coalesce(func.sum(Customer.loyalty_points), 0),
        ).filter(Customer.loyalty_points >= low)
        if high is not None:
            query = query.filter(Customer.loyalty_points <= high)
        count, points = query.one()
        count, points = int(count), int(points)
        segments.append({
            "tier": name,
            "min_points": low,
            "max_points": high,
            "customer_count": count,
            "total_points": points,
            "average_points": round(points / count, 2) if count else 0.0,
        })
    return segments


def revenue_report(start: date | None = None, end: date | None = None) -> dict:
    start, end = _resolve_range(start, end, default_days=30)
    window_start, window_end = _window(start, end)

    day_expr = func.date(Payment.completed_at)
    rows = (
        db.session.query(day_expr, func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(
            Payment.status == "COMPLETED",
            Payment.completed_at >= window_start,
            Payment.completed_at < window_end,
        )
        .group_by(day_expr)
        .all()
    )
    by_day = {_day_key(day): int(amount) for day, amount in rows}
    series = [{"date": day, "revenue_cents": by_day.get(day, 0)} for day in _days(start, end)]

    total = sum(d["revenue_cents"] for d in series)
    highest = max(series, key=lambda d: d["revenue_cents"]) if total else None
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "total_revenue_cents": total,
        "average_daily_cents": total // len(series),
        "highest_day": highest,
        "by_day": series,
        "by_method": payment_method_breakdown(start, end),
    }


def daily_stats(start: date | None = None, end: date | None = None) -> list[dict]:
    return [row.to_dict() for row in list_days(start, end)]
