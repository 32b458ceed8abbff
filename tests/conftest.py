# tests/conftest.py
import os

# point the app at a throwaway in-memory database before anything imports app.db
os.environ["POSTGRES_URL"] = "sqlite://"
os.environ["CREATE_TABLES_ON_STARTUP"] = "0"

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from app import services
from app.db import Base, engine, SessionLocal
from app.main import app
from app.models import Account, FeeTier, Post, PostEvCarDetails, PostEvBikeDetails, PostImage


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db, tmp_path, monkeypatch):
    monkeypatch.setattr(services, "CONTRACTS_DIR", str(tmp_path / "contracts"))
    return TestClient(app)


def make_account(db, email="seller@example.com", role="USER", full_name="Nguyen Van A"):
    obj = Account(email=email, full_name=full_name, password_hash=services.hash_password("secret123"), role=role)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


def make_car_post(db, seller, status="DRAFT", price=650_000_000, images=("https://img/1.jpg",)):
    post = Post(
        seller_id=seller.id,
        post_type="EV_CAR",
        title="VinFast VF8 2023",
        province_name_cached="Ha Noi",
        price_vnd=price,
        is_negotiable=True,
        status=status,
    )
    post.car_details = PostEvCarDetails(
        brand_id=1, model_id=8, manufacture_year=2023, body_style="SUV", origin="NOI_DIA",
        color="white", seats=5, owners_count=1, odo_km=12000,
        battery_capacity_kwh=Decimal("87.70"), range_km=447,
        charge_ac_kw=Decimal("11.00"), charge_dc_kw=Decimal("150.00"),
        battery_health_pct=Decimal("96.50"),
    )
    for i, url in enumerate(images):
        post.images.append(PostImage(url=url, position=i))
    db.add(post)
    db.commit()
    db.refresh(post)
    return post


def make_bike_post(db, seller, status="DRAFT", price=25_000_000):
    post = Post(
        seller_id=seller.id,
        post_type="EV_BIKE",
        title="VinFast Klara S",
        price_vnd=price,
        is_negotiable=False,
        status=status,
    )
    post.bike_details = PostEvBikeDetails(
        brand_id=1, model_id=3, manufacture_year=2022, bike_style="scooter", origin="NOI_DIA",
        odo_km=8000, battery_capacity_kwh=Decimal("3.50"), range_km=120,
        motor_power_kw=Decimal("1.20"), battery_health_pct=Decimal("90.00"),
    )
    db.add(post)
    db.commit()
    db.refresh(post)
    return post


def make_fee_tiers(db):
    tiers = [
        FeeTier(min_price=0, max_price=100_000_000, deposit_rate=Decimal("0.02"), active=True),
        FeeTier(min_price=100_000_000, max_price=500_000_000, deposit_rate=Decimal("0.015"), active=True),
        FeeTier(min_price=500_000_000, max_price=None, deposit_rate=Decimal("0.01"), active=True),
    ]
    db.add_all(tiers)
    db.commit()
    return tiers


def auth(account):
    return {"X-Account-Id": str(account.id)}
