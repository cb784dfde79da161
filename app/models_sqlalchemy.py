from sqlalchemy import (
    Column, Integer, SmallInteger, String, Numeric, Boolean, Date, DateTime, ForeignKey, Text,
    Index, UniqueConstraint, CheckConstraint, func, text
)
from sqlalchemy.orm import declarative_base, relationship, validates

import config

DATABASE_URL = config.DATABASE_URL

Base = declarative_base()

USER_ROLES = ("guest", "host", "admin")
BOOKING_STATUSES = ("pending", "confirmed", "canceled", "completed")
PAYMENT_METHODS = ("credit_card", "paypal", "stripe")
PAYMENT_STATUSES = ("success", "failed", "refunded")

USER_ID_FK = "users.id"
PROPERTY_ID_FK = "properties.id"


def _in_list(column, values):
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    first_name = Column(String(80), nullable=False)
    last_name = Column(String(80), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    phone_number = Column(String(20), nullable=True)
    role = Column(String(10), nullable=False, default="guest", server_default="guest")
    is_active = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=False, server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    properties = relationship("Property", back_populates="host", passive_deletes=True)
    bookings = relationship("Booking", back_populates="user", passive_deletes=True)
    reviews = relationship("Review", back_populates="user", passive_deletes=True)
    sent_messages = relationship("Message", foreign_keys="Message.sender_id", back_populates="sender", passive_deletes=True)
    received_messages = relationship("Message", foreign_keys="Message.recipient_id", back_populates="recipient", passive_deletes=True)

    __table_args__ = (
        CheckConstraint(_in_list("role", USER_ROLES), name="chk_users_role"),
    )

    @validates("email")
    def normalize_email(self, key, value):
        # emails compare case-insensitively (CITEXT in the original design)
        return value.strip().lower() if value else value

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class Property(Base):
    __tablename__ = "properties"
    id = Column(Integer, primary_key=True)
    host_id = Column(Integer, ForeignKey(USER_ID_FK, ondelete="CASCADE"), nullable=False)
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=False)
    location = Column(String(255), nullable=False)
    latitude = Column(Numeric(9, 6), nullable=True)
    longitude = Column(Numeric(9, 6), nullable=True)
    price_per_night = Column(Numeric(10, 2), nullable=False)
    max_guests = Column(SmallInteger, nullable=False, default=1, server_default="1")
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=False, server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    host = relationship("User", back_populates="properties")
    bookings = relationship("Booking", back_populates="property", passive_deletes=True)
    reviews = relationship("Review", back_populates="property", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("price_per_night > 0", name="chk_properties_price"),
        CheckConstraint("max_guests > 0", name="chk_properties_max_guests"),
    )

    def __repr__(self) -> str:
        return f"<Property(id={self.id}, name={self.name}, host={self.host_id})>"


class Booking(Base):
    """A stay of one guest at one property over [start_date, end_date).

    The price is not stored: it depends on the property's nightly rate and
    the number of nights, so keeping a copy here would break 3NF.
    """
    __tablename__ = "bookings"
    id = Column(Integer, primary_key=True)
    property_id = Column(Integer, ForeignKey(PROPERTY_ID_FK, ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey(USER_ID_FK, ondelete="CASCADE"), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(15), nullable=False, default="pending", server_default="pending")
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    updated_at = Column(DateTime, nullable=False, server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    __table_args__ = (
        CheckConstraint("start_date < end_date", name="chk_booking_dates"),
        CheckConstraint(_in_list("status", BOOKING_STATUSES), name="chk_booking_status"),
        UniqueConstraint("property_id", "user_id", "start_date", name="uq_booking"),
    )

    @property
    def nights(self):
        return (self.end_date - self.start_date).days

    @property
    def total_price(self):
        return self.property.price_per_night * self.nights

    # "property" shadows the builtin from here on
    property = relationship("Property", back_populates="bookings")
    user = relationship("User", back_populates="bookings")
    payment = relationship("Payment", back_populates="booking", uselist=False, passive_deletes=True)

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, property={self.property_id}, user={self.user_id}, status={self.status})>"


class Payment(Base):
    __tablename__ = "payments"
    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_date = Column(DateTime, nullable=False, server_default=func.current_timestamp())
    payment_method = Column(String(20), nullable=False)
    payment_status = Column(String(15), nullable=False, default="success", server_default="success")
    transaction_ref = Column(String(64), nullable=True, unique=True)

    booking = relationship("Booking", back_populates="payment")

    __table_args__ = (
        CheckConstraint("amount > 0", name="chk_payments_amount"),
        CheckConstraint(_in_list("payment_method", PAYMENT_METHODS), name="chk_payments_method"),
        CheckConstraint(_in_list("payment_status", PAYMENT_STATUSES), name="chk_payments_status"),
    )


class Review(Base):
    __tablename__ = "reviews"
    id = Column(Integer, primary_key=True)
    property_id = Column(Integer, ForeignKey(PROPERTY_ID_FK, ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey(USER_ID_FK, ondelete="CASCADE"), nullable=False)
    rating = Column(SmallInteger, nullable=False)
    comment = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    property = relationship("Property", back_populates="reviews")
    user = relationship("User", back_populates="reviews")

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="chk_reviews_rating"),
        UniqueConstraint("property_id", "user_id", name="uq_review"),
    )


class Message(Base):
    __tablename__ = "messages"
    id = Column(Integer, primary_key=True)
    sender_id = Column(Integer, ForeignKey(USER_ID_FK, ondelete="CASCADE"), nullable=False)
    recipient_id = Column(Integer, ForeignKey(USER_ID_FK, ondelete="CASCADE"), nullable=False)
    message_body = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    sent_at = Column(DateTime, nullable=False, server_default=func.current_timestamp())

    sender = relationship("User", foreign_keys=[sender_id], back_populates="sent_messages")
    recipient = relationship("User", foreign_keys=[recipient_id], back_populates="received_messages")

    __table_args__ = (
        CheckConstraint("sender_id <> recipient_id", name="chk_message_sender_recipient"),
    )


Index("idx_users_email_role", User.email, User.role)
Index("idx_users_active", User.is_active)

Index("idx_properties_location", Property.location)
Index("idx_properties_geo", Property.latitude, Property.longitude)
Index("idx_properties_price_range", Property.price_per_night)
Index("idx_properties_host", Property.host_id)

ACTIVE_BOOKING_FILTER = text(_in_list("status", ("confirmed", "pending")))
Index(
    "idx_bookings_active", Booking.property_id, Booking.start_date, Booking.end_date,
    postgresql_where=ACTIVE_BOOKING_FILTER, sqlite_where=ACTIVE_BOOKING_FILTER,
)
Index("idx_bookings_user_status", Booking.user_id, Booking.status)

Index("idx_payments_status", Payment.payment_status)
Index("idx_payments_recent", Payment.payment_date.desc())

Index("idx_reviews_property_rating", Review.property_id, Review.rating)
Index("idx_reviews_recent", Review.created_at.desc())

Index("idx_messages_conversation", Message.sender_id, Message.recipient_id, Message.sent_at.desc())
UNREAD_FILTER = text("is_read = false")
Index("idx_messages_unread", Message.recipient_id, postgresql_where=UNREAD_FILTER, sqlite_where=UNREAD_FILTER)

TIMESTAMPED_TABLES = ("users", "properties", "bookings")
