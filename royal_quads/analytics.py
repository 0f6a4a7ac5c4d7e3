"""Read-only figures for the admin dashboard.

Everything is recomputed from the bookings table on each call. Only completed
bookings count; revenue is ``price + overtime_charge`` unless stated otherwise.
"""
import csv
import io
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from .models import Booking


def _completed(db: Session):
    return db.query(Booking).filter(Booking.status == "completed").all()


def _revenue(booking: Booking) -> int:
    return booking.price + (booking.overtime_charge or 0)


def get_sales(db: Session, now=None):
    now = now or datetime.now()
    completed = _completed(db)
    week_start = now - timedelta(days=7)
    month_start = now - timedelta(days=30)

    return {
        "total": sum(_revenue(b) for b in completed),
        "today": sum(
            _revenue(b) for b in completed if b.end_time and b.end_time.date() == now.date()
        ),
        "thisWeek": sum(_revenue(b) for b in completed if b.end_time and b.end_time >= week_start),
        "thisMonth": sum(_revenue(b) for b in completed if b.end_time and b.end_time >= month_start),
        "overtimeRevenue": sum(b.overtime_charge or 0 for b in completed),
    }


def revenue_chart(db: Session, now=None, days=7):
    """Daily revenue and ride counts for the last ``days`` calendar days, oldest first.

    Buckets are keyed by ISO date (``YYYY-MM-DD``), not a locale-formatted
    date string.
    """
    today = (now or datetime.now()).date()
    buckets = {}
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        buckets[day] = {"date": day.isoformat(), "revenue": 0, "rides": 0}

    for booking in _completed(db):
        if not booking.end_time:
            continue
        bucket = buckets.get(booking.end_time.date())
        if bucket is not None:
            bucket["revenue"] += _revenue(booking)
            bucket["rides"] += 1
    return list(buckets.values())


def peak_hours(db: Session):
    # bucketed by when the ride started
    counts = [0] * 24
    for booking in _completed(db):
        counts[booking.start_time.hour] += 1
    return [{"hour": hour, "count": count} for hour, count in enumerate(counts)]


def quad_utilisation(db: Session):
    per_quad = {}
    for booking in _completed(db):
        entry = per_quad.setdefault(
            booking.quad_name,
            {"quadName": booking.quad_name, "rides": 0, "revenue": 0, "totalMins": 0},
        )
        entry["rides"] += 1
        entry["revenue"] += booking.price
        entry["totalMins"] += booking.duration
    return sorted(per_quad.values(), key=lambda e: e["revenue"], reverse=True)


def customer_stats(db: Session):
    customers = {}
    for booking in _completed(db):
        entry = customers.setdefault(booking.customer_phone, {"name": booking.customer_name, "rides": 0, "spent": 0})
        entry["rides"] += 1
        entry["spent"] += booking.price

    top_spender, top_amount = "", 0
    for entry in customers.values():
        if entry["spent"] > top_amount:
            top_spender, top_amount = entry["name"], entry["spent"]

    return {
        "total": len(customers),
        "returning": sum(1 for entry in customers.values() if entry["rides"] > 1),
        "topSpender": top_spender,
        "topAmount": top_amount,
    }


EXPORT_COLUMNS = [
    ("Receipt", "receiptId"),
    ("Quad", "quadName"),
    ("Customer", "customerName"),
    ("Phone", "customerPhone"),
    ("Duration (min)", "duration"),
    ("Original Price", "originalPrice"),
    ("Price", "price"),
    ("Promo", "promoCode"),
    ("Overtime (min)", "overtimeMinutes"),
    ("Overtime Charge", "overtimeCharge"),
    ("Deposit", "depositAmount"),
    ("Deposit Returned", "depositReturned"),
    ("Status", "status"),
    ("Start", "startTime"),
    ("End", "endTime"),
    ("Rating", "rating"),
]


def export_bookings_csv(bookings) -> str:
    out = io.StringIO()
    writer = csv.writer(out)
    writer.writerow([header for header, _ in EXPORT_COLUMNS])
    for booking in bookings:
        row = booking.to_dict()
        writer.writerow(["" if row[key] is None else row[key] for _, key in EXPORT_COLUMNS])
    return out.getvalue()
