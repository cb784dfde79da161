"""Sample marketplace data: 5 users, 3 properties, 4 bookings and their payments,
reviews and messages. Dates are relative to late October 2025.

Foreign keys below are 1-based positions in the parent list and are resolved
to the ids the database assigns: users 1=Alice (admin), 2=Bob (host), 3=Carol (host),
4=David (guest), 5=Eve (guest); properties 1=NYC, 2=LA, 3=Aspen.
"""
import logging
from datetime import date, datetime

from sqlalchemy import func, select

import models_sqlalchemy as models
import models_pydantic as schemas

logger = logging.getLogger(__name__)

USERS = [
    schemas.UserSeed(first_name="Alice", last_name="Admin", email="admin@airbnb.com", password_hash="hashed_admin_pass", phone_number="+1-555-0100", role="admin"),
    schemas.UserSeed(first_name="Bob", last_name="Host", email="host1@example.com", password_hash="hashed_host1_pass", phone_number="+1-555-0200", role="host"),
    schemas.UserSeed(first_name="Carol", last_name="Host", email="host2@example.com", password_hash="hashed_host2_pass", phone_number="+1-555-0300", role="host"),
    schemas.UserSeed(first_name="David", last_name="Guest", email="guest1@example.com", password_hash="hashed_guest1_pass", phone_number="+1-555-0400", role="guest"),
    schemas.UserSeed(first_name="Eve", last_name="Guest", email="guest2@example.com", password_hash="hashed_guest2_pass", phone_number="+1-555-0500", role="guest"),
]

PROPERTIES = [
    schemas.PropertySeed(host_id=2, name="Cozy Apartment in NYC", description="Comfortable 2-bedroom in Manhattan.", location="New York, NY", price_per_night="150.00", created_at=datetime(2025, 1, 15)),
    schemas.PropertySeed(host_id=2, name="Beach House in LA", description="Beachfront with pool.", location="Los Angeles, CA", price_per_night="250.00", created_at=datetime(2025, 2, 10)),
    schemas.PropertySeed(host_id=3, name="Mountain Cabin in Aspen", description="Rustic for skiing.", location="Aspen, CO", price_per_night="300.00", created_at=datetime(2025, 3, 5)),
]

BOOKINGS = [
    schemas.BookingSeed(property_id=1, user_id=4, start_date=date(2025, 10, 1), end_date=date(2025, 10, 5), status="confirmed", created_at=datetime(2025, 9, 20)),
    schemas.BookingSeed(property_id=2, user_id=5, start_date=date(2025, 11, 10), end_date=date(2025, 11, 12), status="pending", created_at=datetime(2025, 10, 25)),
    schemas.BookingSeed(property_id=1, user_id=5, start_date=date(2025, 9, 15), end_date=date(2025, 9, 18), status="canceled", created_at=datetime(2025, 9, 10)),
    schemas.BookingSeed(property_id=3, user_id=4, start_date=date(2025, 10, 10), end_date=date(2025, 10, 13), status="confirmed", created_at=datetime(2025, 9, 25)),
]

# confirmed stays only: NYC 150 x 4 nights, Aspen 300 x 3 nights
PAYMENTS = [
    schemas.PaymentSeed(booking_id=1, amount="600.00", payment_method="credit_card", payment_date=datetime(2025, 9, 21)),
    schemas.PaymentSeed(booking_id=4, amount="900.00", payment_method="paypal", payment_date=datetime(2025, 9, 26)),
]

REVIEWS = [
    schemas.ReviewSeed(property_id=1, user_id=4, rating=5, comment="Amazing stay!", created_at=datetime(2025, 10, 6)),
    schemas.ReviewSeed(property_id=3, user_id=4, rating=4, comment="Great cabin!", created_at=datetime(2025, 10, 14)),
]

MESSAGES = [
    schemas.MessageSeed(sender_id=2, recipient_id=4, message_body="Welcome! Check-in tomorrow.", sent_at=datetime(2025, 9, 20)),
    schemas.MessageSeed(sender_id=5, recipient_id=2, message_body="Extra night available?", sent_at=datetime(2025, 10, 25)),
]

SEED_ORDER = [
    (models.User, USERS),
    (models.Property, PROPERTIES),
    (models.Booking, BOOKINGS),
    (models.Payment, PAYMENTS),
    (models.Review, REVIEWS),
    (models.Message, MESSAGES),
]


FOREIGN_KEYS = {
    models.Property: {"host_id": "users"},
    models.Booking: {"property_id": "properties", "user_id": "users"},
    models.Payment: {"booking_id": "bookings"},
    models.Review: {"property_id": "properties", "user_id": "users"},
    models.Message: {"sender_id": "users", "recipient_id": "users"},
}


def _insert(db, model, rows, inserted):
    refs = FOREIGN_KEYS.get(model, {})
    ids = []
    for row in rows:
        values = row.model_dump(exclude_none=True)
        for column, parent in refs.items():
            values[column] = inserted[parent][values[column] - 1]
        obj = model(**values)
        db.add(obj)
        db.flush()
        ids.append(obj.id)
    return ids


def table_counts(db):
    return {
        model.__tablename__: db.scalar(select(func.count()).select_from(model))
        for model, _ in SEED_ORDER
    }


def load_seed(db):
    """Insert the sample data in one transaction. Returns False when users already exist."""
    if db.scalar(select(func.count()).select_from(models.User)):
        logger.info("Seed skipped: users table is not empty")
        return False
    try:
        inserted = {}
        for model, rows in SEED_ORDER:
            ids = _insert(db, model, rows, inserted)
            inserted[model.__tablename__] = ids
            logger.debug("Seeded %s ids=%s", model.__tablename__, ids)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Seeding failed, transaction rolled back")
        raise
    logger.info("Seeded %s", table_counts(db))
    return True
