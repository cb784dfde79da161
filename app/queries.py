"""Named analytical queries over the marketplace schema.

Each entry builds a SQLAlchemy Core ``select`` so the same query can be run,
compiled for any dialect, or handed to the profiler in ``explain``.
"""
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Dict

from sqlalchemy import func, select, desc
from sqlalchemy.dialects import postgresql

import models_sqlalchemy as models
from errors import UnknownQueryError

logger = logging.getLogger(__name__)

User = models.User.__table__
Property = models.Property.__table__
Booking = models.Booking.__table__
Payment = models.Payment.__table__
Review = models.Review.__table__


@dataclass(frozen=True)
class NamedQuery:
    name: str
    description: str
    build: Callable


def bookings_with_users():
    b, u = Booking.alias("b"), User.alias("u")
    return (
        select(
            b.c.id.label("booking_id"), b.c.start_date, b.c.end_date,
            u.c.id.label("user_id"), u.c.first_name, u.c.last_name,
        )
        .select_from(b.join(u, b.c.user_id == u.c.id))
        .order_by(b.c.start_date, b.c.id)
    )


def properties_with_reviews():
    p, r = Property.alias("p"), Review.alias("r")
    return (
        select(
            p.c.id.label("property_id"), p.c.name.label("property_name"),
            r.c.id.label("review_id"), r.c.rating, r.c.comment,
        )
        .select_from(p.outerjoin(r, p.c.id == r.c.property_id))
        .order_by(p.c.id, r.c.id)
    )


def users_and_bookings():
    u, b = User.alias("u"), Booking.alias("b")
    return (
        select(
            u.c.id.label("user_id"), u.c.first_name, u.c.last_name,
            b.c.id.label("booking_id"), b.c.start_date, b.c.end_date,
        )
        .select_from(u.join(b, u.c.id == b.c.user_id, full=True))
        .order_by(func.coalesce(u.c.id, b.c.user_id), b.c.start_date)
    )


def highly_rated_properties(min_rating=4.0):
    p, r = Property.alias("p"), Review.alias("r")
    rated = (
        select(r.c.property_id)
        .group_by(r.c.property_id)
        .having(func.avg(r.c.rating) > min_rating)
    )
    return (
        select(p.c.id.label("property_id"), p.c.name.label("property_name"), p.c.description)
        .where(p.c.id.in_(rated))
        .order_by(p.c.id)
    )


def frequent_bookers(min_bookings=3):
    u, b = User.alias("u"), Booking.alias("b")
    # correlated on u.id: evaluated once per user row
    booking_count = (
        select(func.count())
        .select_from(b)
        .where(b.c.user_id == u.c.id)
        .scalar_subquery()
    )
    return (
        select(u.c.id.label("user_id"), u.c.first_name, u.c.last_name, u.c.email)
        .where(booking_count > min_bookings)
        .order_by(u.c.id)
    )


def bookings_per_user():
    u, b = User.alias("u"), Booking.alias("b")
    total = func.count(b.c.id).label("total_bookings")
    return (
        select(u.c.id.label("user_id"), u.c.first_name, u.c.last_name, total)
        .select_from(u.outerjoin(b, u.c.id == b.c.user_id))
        .group_by(u.c.id, u.c.first_name, u.c.last_name)
        .order_by(desc(total), u.c.id)
    )


def property_booking_rank():
    p, b = Property.alias("p"), Booking.alias("b")
    total = func.count(b.c.id)
    booking_rank = func.rank().over(order_by=total.desc()).label("booking_rank")
    return (
        select(p.c.id.label("property_id"), p.c.name.label("property_name"), total.label("total_bookings"), booking_rank)
        .select_from(p.outerjoin(b, p.c.id == b.c.property_id))
        .group_by(p.c.id, p.c.name)
        .order_by(booking_rank, p.c.id)
    )


def booking_details_initial():
    """Every booking with guest, property and payment; no filter, all rows."""
    b, u, p, pay = Booking.alias("b"), User.alias("u"), Property.alias("p"), Payment.alias("pay")
    return (
        select(
            b.c.id.label("booking_id"), b.c.start_date, b.c.end_date,
            u.c.first_name, u.c.last_name,
            p.c.name.label("property_name"), p.c.location,
            pay.c.amount.label("payment_amount"),
        )
        .select_from(
            b.join(u, b.c.user_id == u.c.id)
            .join(p, b.c.property_id == p.c.id)
            .join(pay, b.c.id == pay.c.booking_id)
        )
        .order_by(b.c.start_date)
    )


def booking_details_optimized(since=None):
    """Refactored booking_details_initial: narrow CTE projections and a start_date cutoff."""
    since = since or date.today() - timedelta(days=365)
    b, pay = Booking.alias("b"), Payment.alias("pay")
    user_details = select(User.c.id, User.c.first_name, User.c.last_name).cte("user_details")
    property_details = select(Property.c.id, Property.c.name, Property.c.location).cte("property_details")
    return (
        select(
            b.c.id.label("booking_id"), b.c.start_date, b.c.end_date,
            user_details.c.first_name, user_details.c.last_name,
            property_details.c.name.label("property_name"), property_details.c.location,
            pay.c.amount.label("payment_amount"),
        )
        .select_from(
            b.join(user_details, b.c.user_id == user_details.c.id)
            .join(property_details, b.c.property_id == property_details.c.id)
            .join(pay, b.c.id == pay.c.booking_id)
        )
        .where(b.c.start_date >= since)
        .order_by(b.c.start_date)
    )


def bookings_after(since=date(2024, 1, 1)):
    b, u = Booking.alias("b"), User.alias("u")
    return (
        select(b.c.id.label("booking_id"), b.c.start_date, u.c.first_name)
        .select_from(b.join(u, b.c.user_id == u.c.id))
        .where(b.c.start_date > since)
        .order_by(b.c.start_date)
    )


def bookings_by_location(location="New York, NY"):
    p, b = Property.alias("p"), Booking.alias("b")
    return (
        select(p.c.name, func.count(b.c.id).label("bookings"))
        .select_from(p.outerjoin(b, p.c.id == b.c.property_id))
        .where(p.c.location == location)
        .group_by(p.c.id, p.c.name)
    )


CATALOG: Dict[str, NamedQuery] = {
    q.name: q for q in [
        NamedQuery("bookings_with_users", "INNER JOIN: every booking with the guest who made it", bookings_with_users),
        NamedQuery("properties_with_reviews", "LEFT JOIN: every property with its reviews, including unreviewed ones", properties_with_reviews),
        NamedQuery("users_and_bookings", "FULL OUTER JOIN: all users and all bookings", users_and_bookings),
        NamedQuery("highly_rated_properties", "Non-correlated subquery: properties averaging more than 4.0 stars", highly_rated_properties),
        NamedQuery("frequent_bookers", "Correlated subquery: users with more than 3 bookings", frequent_bookers),
        NamedQuery("bookings_per_user", "COUNT + GROUP BY: bookings made by each user", bookings_per_user),
        NamedQuery("property_booking_rank", "RANK() window: properties ranked by total bookings", property_booking_rank),
        NamedQuery("booking_details_initial", "Four-way join without filters (performance baseline)", booking_details_initial),
        NamedQuery("booking_details_optimized", "CTE refactor of the baseline, recent bookings only", booking_details_optimized),
        NamedQuery("bookings_after", "Bookings starting after a date, with guest name", bookings_after),
        NamedQuery("bookings_by_location", "Booking count per property at one location", bookings_by_location),
    ]
}


def get_query(name):
    try:
        return CATALOG[name]
    except KeyError:
        raise UnknownQueryError(name) from None


def to_sql(statement, dialect=None):
    dialect = dialect or postgresql.dialect()
    return str(statement.compile(dialect=dialect, compile_kwargs={"literal_binds": True}))


def run_query(db, name, **params):
    statement = get_query(name).build(**params)
    logger.debug("Running query %s", name)
    return [dict(row) for row in db.execute(statement).mappings()]
