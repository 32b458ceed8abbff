# app/models.py
"""SQLAlchemy ORM models for persisted entities.

A `Post` is the aggregate root of a listing: it owns its car or bike detail
record, its images, its verification request and its review log. Accounts,
fee tiers, contracts and the admin settings rows live on their own.
"""
from sqlalchemy import (
    Column, Integer, BigInteger, Text, String, Numeric, Boolean, TIMESTAMP,
    ForeignKey, JSON, func, Index,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from .db import Base

# post_type
EV_CAR = "EV_CAR"
EV_BIKE = "EV_BIKE"
EV_BATTERY = "EV_BATTERY"  # reserved, no detail table yet
POST_TYPES = (EV_CAR, EV_BIKE, EV_BATTERY)

# post status
DRAFT = "DRAFT"
PENDING_REVIEW = "PENDING_REVIEW"
PUBLISHED = "PUBLISHED"
REJECTED = "REJECTED"
SOLD = "SOLD"
POST_STATUSES = (DRAFT, PENDING_REVIEW, PUBLISHED, REJECTED, SOLD)

ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"


class Account(Base):
    __tablename__ = "accounts"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=True)
    phone = Column(String(20), unique=True, nullable=True)
    full_name = Column(String(100), nullable=False)
    password_hash = Column(Text, nullable=False)
    role = Column(String(16), nullable=False, default=ROLE_USER)
    status = Column(String(16), nullable=False, default="active")
    avatar_url = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    posts = relationship("Post", back_populates="seller")


class Post(Base):
    __tablename__ = "posts"
    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    post_type = Column(String(16), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    # address names are cached on the post to avoid joins against the geography tables
    ward_code = Column(String(16))
    province_name_cached = Column(String(100))
    district_name_cached = Column(String(100))
    ward_name_cached = Column(String(100))
    address_text_cached = Column(Text)
    price_vnd = Column(BigInteger, nullable=False)
    is_negotiable = Column(Boolean, nullable=False, default=False)
    status = Column(String(16), nullable=False, default=DRAFT, index=True)
    submitted_at = Column(TIMESTAMP(timezone=True))
    reviewed_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    seller = relationship("Account", back_populates="posts")
    car_details = relationship(
        "PostEvCarDetails", uselist=False, back_populates="post", cascade="all, delete-orphan"
    )
    bike_details = relationship(
        "PostEvBikeDetails", uselist=False, back_populates="post", cascade="all, delete-orphan"
    )
    images = relationship(
        "PostImage", back_populates="post", order_by="PostImage.position",
        cascade="all, delete-orphan"
    )
    verification = relationship(
        "PostVerification", uselist=False, back_populates="post", cascade="all, delete-orphan"
    )
    review_logs = relationship(
        "PostReviewLog", back_populates="post", order_by="PostReviewLog.id",
        cascade="all, delete-orphan"
    )


class PostEvCarDetails(Base):
    __tablename__ = "post_ev_car_details"
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True)
    brand_id = Column(Integer)
    model_id = Column(Integer)
    manufacture_year = Column(Integer)
    body_style = Column(String(32))
    origin = Column(String(16))
    color = Column(String(32))
    seats = Column(Integer)
    license_plate = Column(String(32))
    owners_count = Column(Integer)
    odo_km = Column(Integer)
    battery_capacity_kwh = Column(Numeric(6, 2))
    range_km = Column(Integer)
    charge_ac_kw = Column(Numeric(6, 2))
    charge_dc_kw = Column(Numeric(6, 2))
    battery_health_pct = Column(Numeric(5, 2))

    post = relationship("Post", back_populates="car_details")


class PostEvBikeDetails(Base):
    __tablename__ = "post_ev_bike_details"
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True)
    brand_id = Column(Integer)
    model_id = Column(Integer)
    manufacture_year = Column(Integer)
    bike_style = Column(String(32))
    origin = Column(String(16))
    color = Column(String(32))
    license_plate = Column(String(32))
    owners_count = Column(Integer)
    odo_km = Column(Integer)
    battery_capacity_kwh = Column(Numeric(6, 2))
    range_km = Column(Integer)
    motor_power_kw = Column(Numeric(6, 2))
    charge_ac_kw = Column(Numeric(6, 2))
    battery_health_pct = Column(Numeric(5, 2))

    post = relationship("Post", back_populates="bike_details")


class PostImage(Base):
    __tablename__ = "post_images"
    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(Text, nullable=False)
    public_id = Column(String(255))
    width = Column(Integer)
    height = Column(Integer)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    post = relationship("Post", back_populates="images")


class PostVerification(Base):
    __tablename__ = "post_verification_requests"
    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, unique=True)
    status = Column(String(16), nullable=False, default="PENDING")
    rejection_reason = Column(Text)
    requested_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    reviewed_at = Column(TIMESTAMP(timezone=True))

    post = relationship("Post", back_populates="verification")


class PostReviewLog(Base):
    __tablename__ = "post_review_logs"
    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    actor_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    action = Column(String(16), nullable=False)
    reason = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    post = relationship("Post", back_populates="review_logs")


class FeeTier(Base):
    __tablename__ = "fee_tiers"
    id = Column(Integer, primary_key=True, index=True)
    min_price = Column(BigInteger, nullable=False)
    max_price = Column(BigInteger, nullable=True)  # null = unbounded top tier
    deposit_rate = Column(Numeric(5, 4), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())


class Contract(Base):
    __tablename__ = "contracts"
    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column(Integer, ForeignKey("posts.id"), nullable=False)  # one contract per listing
    buyer_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    seller_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    file_path = Column(Text)
    listing_snapshot = Column(JSON().with_variant(JSONB(), "postgresql"))
    fee_rate = Column(Numeric(5, 4))
    deposit_amount = Column(BigInteger)
    confirmed_at = Column(TIMESTAMP(timezone=True))
    hash = Column(String(255))
    signature_placeholder = Column(String(255))
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

    buyer = relationship("Account", foreign_keys=[buyer_id])
    seller = relationship("Account", foreign_keys=[seller_id])


class RefundPolicy(Base):
    __tablename__ = "refund_policies"
    id = Column(Integer, primary_key=True)
    cancel_early_rate = Column(Numeric(5, 4), nullable=False, default=1)
    seller_fault_rate = Column(Numeric(5, 4), nullable=False, default=1)
    buyer_fault_rate = Column(Numeric(5, 4), nullable=False, default=0)
    hold_days = Column(Integer, nullable=False, default=3)
    auto_refund = Column(Boolean, nullable=False, default=False)
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())


class PostLifecycle(Base):
    __tablename__ = "post_lifecycle_settings"
    id = Column(Integer, primary_key=True)
    expiration_days = Column(Integer, nullable=False, default=30)
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())

Index("idx_posts_price", Post.price_vnd)
Index("idx_contracts_listing", Contract.listing_id, unique=True)
Index("idx_fee_tiers_min_price", FeeTier.min_price)
