# tests/test_api.py
import json
import os
from decimal import Decimal
import pytest
from app import crud, schemas, services
from app.services import snapshot_hash, verify_password
from app.models import Account, Contract, FeeTier
from conftest import auth, make_account, make_bike_post, make_car_post, make_fee_tiers


CAR_POST = {
    "post_type": "EV_CAR",
    "title": "VinFast VF e34",
    "price_vnd": 450_000_000,
    "is_negotiable": True,
    "province_name_cached": "Da Nang",
    "car_details": {"brand_id": 1, "model_id": 2, "seats": 5, "battery_capacity_kwh": "42.00", "origin": "NOI_DIA"},
    "images": [{"url": "https://img/cover.jpg"}, {"url": "https://img/side.jpg"}],
}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


# accounts

def test_signup_with_email(client, db):
    res = client.post("/accounts", json={
        "mode": "email", "email": "Buyer@Example.com", "full_name": "  Tran Thi B ",
        "password": "abc12345", "confirm_password": "abc12345",
    })
    assert res.status_code == 201
    body = res.json()
    assert body["email"] == "buyer@example.com"
    assert body["full_name"] == "Tran Thi B"
    assert "password_hash" not in body
    stored = db.query(Account).filter(Account.id == body["id"]).first()
    assert verify_password("abc12345", stored.password_hash)
    assert not verify_password("wrong", stored.password_hash)


def test_signup_with_phone_normalizes(client):
    res = client.post("/accounts", json={
        "mode": "phone", "phone": "090 123-4567", "full_name": "Le C",
        "password": "abc12345", "confirm_password": "abc12345",
    })
    assert res.status_code == 201
    assert res.json()["phone"] == "0901234567"


def test_signup_password_mismatch(client):
    res = client.post("/accounts", json={
        "mode": "email", "email": "x@example.com", "full_name": "Le C",
        "password": "abc12345", "confirm_password": "abc12346",
    })
    assert res.status_code == 400
    assert res.json()["field"] == "confirm_password"


def test_signup_missing_contact_and_duplicate(client, db):
    res = client.post("/accounts", json={
        "mode": "phone", "full_name": "Le C", "password": "abc12345", "confirm_password": "abc12345",
    })
    assert res.status_code == 400
    assert res.json()["field"] == "phone"

    make_account(db, email="dup@example.com")
    res = client.post("/accounts", json={
        "mode": "email", "email": "dup@example.com", "full_name": "Le C",
        "password": "abc12345", "confirm_password": "abc12345",
    })
    assert res.status_code == 400
    assert res.json()["field"] == "email"


def test_signup_weak_password_is_422(client):
    res = client.post("/accounts", json={
        "mode": "email", "email": "x@example.com", "full_name": "Le C",
        "password": "short", "confirm_password": "short",
    })
    assert res.status_code == 422


# posts

def test_post_lifecycle(client, db):
    seller = make_account(db)
    admin = make_account(db, email="admin@example.com", role="ADMIN")

    res = client.post("/posts", json=CAR_POST, headers=auth(seller))
    assert res.status_code == 201
    post = res.json()
    assert post["status"] == "DRAFT"
    assert post["car_details"]["seats"] == 5
    assert "bike_details" not in post
    assert [i["url"] for i in post["images"]] == ["https://img/cover.jpg", "https://img/side.jpg"]
    assert post["seller"]["id"] == seller.id
    post_id = post["id"]

    # not public yet
    assert client.get("/posts").json() == []

    res = client.post(f"/posts/{post_id}/submit", headers=auth(seller))
    assert res.json()["status"] == "PENDING_REVIEW"
    assert res.json()["submitted_at"] is not None

    res = client.post(f"/admin/posts/{post_id}/review", json={"approve": False}, headers=auth(admin))
    assert res.status_code == 400
    assert res.json()["field"] == "reason"

    res = client.post(f"/admin/posts/{post_id}/review", json={"approve": False, "reason": "missing papers"},
                      headers=auth(admin))
    assert res.json()["status"] == "REJECTED"

    # editing a rejected post returns it to draft
    res = client.patch(f"/posts/{post_id}", json={"price_vnd": 430_000_000}, headers=auth(seller))
    assert res.json()["status"] == "DRAFT"
    assert res.json()["price_vnd"] == 430_000_000

    client.post(f"/posts/{post_id}/submit", headers=auth(seller))
    res = client.post(f"/admin/posts/{post_id}/review", json={"approve": True}, headers=auth(admin))
    assert res.json()["status"] == "PUBLISHED"

    listed = client.get("/posts").json()
    assert [p["id"] for p in listed] == [post_id]

    logs = client.get(f"/posts/{post_id}/review-logs").json()
    assert [l["action"] for l in logs] == ["SUBMITTED", "REJECTED", "SUBMITTED", "APPROVED"]
    assert logs[1]["reason"] == "missing papers"

    res = client.patch(f"/posts/{post_id}", json={"status": "SOLD"}, headers=auth(seller))
    assert res.json()["status"] == "SOLD"
    assert client.delete(f"/posts/{post_id}", headers=auth(seller)).status_code == 409


def test_create_post_rejects_mismatched_details(client, db):
    seller = make_account(db)
    body = dict(CAR_POST)
    body.pop("car_details")
    body["bike_details"] = {"bike_style": "scooter"}
    assert client.post("/posts", json=body, headers=auth(seller)).status_code == 422

    body = dict(CAR_POST, post_type="EV_BATTERY")
    assert client.post("/posts", json=body, headers=auth(seller)).status_code == 422


def test_post_detail_shapes(client, db):
    seller = make_account(db)
    bike = make_bike_post(db, seller, status="PUBLISHED")
    body = client.get(f"/posts/{bike.id}").json()
    assert Decimal(body["bike_details"]["motor_power_kw"]) == Decimal("1.2")
    assert "car_details" not in body
    assert body["images"] == []
    assert body["verification_status"] == "UNVERIFIED"
    assert "verification_rejection_reason" not in body
    assert client.get("/posts/9999").status_code == 404


def test_only_owner_can_edit(client, db):
    seller = make_account(db)
    other = make_account(db, email="other@example.com")
    post = make_car_post(db, seller)
    res = client.patch(f"/posts/{post.id}", json={"title": "mine now"}, headers=auth(other))
    assert res.status_code == 403
    assert client.patch(f"/posts/{post.id}", json={"title": "x"}).status_code == 403


def test_published_post_cannot_be_edited(client, db):
    seller = make_account(db)
    post = make_car_post(db, seller, status="PUBLISHED")
    res = client.patch(f"/posts/{post.id}", json={"title": "new"}, headers=auth(seller))
    assert res.status_code == 409


def test_add_images_appends(client, db):
    seller = make_account(db)
    post = make_car_post(db, seller, images=("a.jpg", "b.jpg"))
    res = client.post(f"/posts/{post.id}/images", json={"images": [{"url": "c.jpg"}]}, headers=auth(seller))
    images = res.json()["images"]
    assert [i["url"] for i in images] == ["a.jpg", "b.jpg", "c.jpg"]
    assert [i["position"] for i in images] == [0, 1, 2]


def test_my_posts_by_status(client, db):
    seller = make_account(db)
    make_car_post(db, seller, status="DRAFT")
    make_bike_post(db, seller, status="PUBLISHED")
    drafts = client.get("/me/posts", params={"status": "DRAFT"}, headers=auth(seller)).json()
    assert [p["post_type"] for p in drafts] == ["EV_CAR"]
    assert len(client.get("/me/posts", headers=auth(seller)).json()) == 2


def test_verification_flow(client, db):
    seller = make_account(db)
    admin = make_account(db, email="admin@example.com", role="ADMIN")
    post = make_car_post(db, seller, status="PUBLISHED")

    res = client.post(f"/posts/{post.id}/verification", headers=auth(seller))
    assert res.json()["verification_status"] == "PENDING"
    assert client.post(f"/posts/{post.id}/verification", headers=auth(seller)).status_code == 409

    res = client.post(f"/admin/posts/{post.id}/verification", json={"approve": False, "reason": "odometer photo"},
                      headers=auth(admin))
    assert res.json()["verification_status"] == "REJECTED"
    assert res.json()["verification_rejection_reason"] == "odometer photo"

    client.post(f"/posts/{post.id}/verification", headers=auth(seller))
    res = client.post(f"/admin/posts/{post.id}/verification", json={"approve": True}, headers=auth(admin))
    assert res.json()["verification_status"] == "VERIFIED"


# fee tiers

def test_fee_tier_admin(client, db):
    admin = make_account(db, email="admin@example.com", role="ADMIN")
    h = auth(admin)

    for body in (
        {"min_price": 500, "max_price": None, "deposit_rate": "0.01"},
        {"min_price": 0, "max_price": 100, "deposit_rate": "0.02"},
        {"min_price": 100, "max_price": 500, "deposit_rate": "0.015"},
    ):
        assert client.post("/admin/fee-tiers", json=body, headers=h).status_code == 201

    listed = client.get("/admin/fee-tiers", headers=h).json()
    assert [t["min_price"] for t in listed] == [0, 100, 500]

    res = client.post("/admin/fee-tiers", json={"min_price": 100, "max_price": 100, "deposit_rate": "0.1"}, headers=h)
    assert res.status_code == 400
    assert res.json()["field"] == "max_price"

    res = client.post("/admin/fee-tiers", json={"min_price": 0, "deposit_rate": "1.5", "active": False}, headers=h)
    assert res.status_code == 400
    assert res.json()["field"] == "deposit_rate"

    res = client.post("/admin/fee-tiers", json={"min_price": 50, "max_price": 150, "deposit_rate": "0.1"}, headers=h)
    assert res.status_code == 400
    assert "overlaps" in res.json()["detail"]

    # inactive tiers may overlap
    res = client.post("/admin/fee-tiers", json={"min_price": 50, "max_price": 150, "deposit_rate": "0.1",
                                                "active": False}, headers=h)
    assert res.status_code == 201
    inactive_id = res.json()["id"]
    res = client.patch(f"/admin/fee-tiers/{inactive_id}", json={"active": True}, headers=h)
    assert res.status_code == 400

    tier_id = listed[1]["id"]
    res = client.patch(f"/admin/fee-tiers/{tier_id}", json={"deposit_rate": "0.0125"}, headers=h)
    assert res.status_code == 200
    assert Decimal(res.json()["deposit_rate"]) == Decimal("0.0125")

    res = client.get("/fee-tiers/resolve", params={"price": 250})
    assert res.json()["tier"]["id"] == tier_id
    assert res.json()["deposit_amount"] == 3  # 250 * 0.0125 = 3.125

    assert client.delete(f"/admin/fee-tiers/{tier_id}", headers=h).status_code == 200
    assert client.delete(f"/admin/fee-tiers/{tier_id}", headers=h).status_code == 404
    assert client.get("/fee-tiers/resolve", params={"price": 250}).status_code == 404


def test_fee_tier_rate_precision_is_kept(client, db):
    admin = make_account(db, email="admin@example.com", role="ADMIN")
    res = client.post("/admin/fee-tiers", json={"min_price": 0, "deposit_rate": "0.12345"}, headers=auth(admin))
    assert res.status_code == 400
    assert res.json()["field"] == "deposit_rate"
    assert client.get("/admin/fee-tiers", headers=auth(admin)).json() == []

    res = client.post("/admin/fee-tiers", json={"min_price": 0, "deposit_rate": "0.1234"}, headers=auth(admin))
    assert res.status_code == 201
    assert Decimal(res.json()["deposit_rate"]) == Decimal("0.1234")


def test_fee_tier_overlap_checks_only_the_new_range(client, db):
    admin = make_account(db, email="admin@example.com", role="ADMIN")
    h = auth(admin)
    # rows that overlap each other, written before the overlap check existed
    legacy = [
        FeeTier(min_price=0, max_price=100, deposit_rate=Decimal("0.02"), active=True),
        FeeTier(min_price=50, max_price=150, deposit_rate=Decimal("0.01"), active=True),
    ]
    db.add_all(legacy)
    db.commit()

    res = client.post("/admin/fee-tiers", json={"min_price": 200, "max_price": 300, "deposit_rate": "0.01"}, headers=h)
    assert res.status_code == 201

    res = client.post("/admin/fee-tiers", json={"min_price": 140, "max_price": 180, "deposit_rate": "0.01"}, headers=h)
    assert res.status_code == 400
    assert f"tier {legacy[1].id} " in res.json()["detail"]


def test_admin_routes_require_admin(client, db):
    user = make_account(db)
    assert client.get("/admin/fee-tiers", headers=auth(user)).status_code == 403
    assert client.get("/admin/fee-tiers").status_code == 403


# contracts

def test_confirm_contract(client, db):
    seller = make_account(db)
    buyer = make_account(db, email="buyer@example.com")
    make_fee_tiers(db)
    post = make_car_post(db, seller, status="PUBLISHED", price=650_000_000)

    res = client.post("/contracts", json={"listing_id": post.id}, headers=auth(buyer))
    assert res.status_code == 201
    contract = res.json()
    assert contract["buyer_id"] == buyer.id
    assert contract["seller_id"] == seller.id
    assert Decimal(contract["fee_rate"]) == Decimal("0.01")
    assert contract["deposit_amount"] == 6_500_000
    assert contract["signature_placeholder"] is None
    assert contract["listing_snapshot"]["title"] == "VinFast VF8 2023"
    assert "bike_details" not in contract["listing_snapshot"]
    assert contract["hash"] == snapshot_hash(contract["listing_snapshot"])

    assert os.path.exists(contract["file_path"])
    with open(contract["file_path"], encoding="utf-8") as fh:
        doc = json.load(fh)
    assert doc["hash"] == contract["hash"]
    assert doc["deposit_amount"] == 6_500_000

    # second buyer is turned away
    other = make_account(db, email="late@example.com")
    assert client.post("/contracts", json={"listing_id": post.id}, headers=auth(other)).status_code == 409

    assert client.get(f"/contracts/{contract['id']}", headers=auth(seller)).status_code == 200
    assert client.get(f"/contracts/{contract['id']}", headers=auth(other)).status_code == 403


def test_contract_blocked_without_tier_or_by_seller(client, db):
    seller = make_account(db)
    buyer = make_account(db, email="buyer@example.com")
    post = make_car_post(db, seller, status="PUBLISHED")

    res = client.post("/contracts", json={"listing_id": post.id}, headers=auth(buyer))
    assert res.status_code == 409
    assert "fee tier" in res.json()["detail"]

    make_fee_tiers(db)
    assert client.post("/contracts", json={"listing_id": post.id}, headers=auth(seller)).status_code == 409

    draft = make_bike_post(db, seller)
    assert client.post("/contracts", json={"listing_id": draft.id}, headers=auth(buyer)).status_code == 409


def test_failed_contract_insert_removes_document(client, db, monkeypatch):
    seller = make_account(db)
    buyer = make_account(db, email="buyer@example.com")
    make_fee_tiers(db)
    post = make_car_post(db, seller, status="PUBLISHED")

    def broken_insert(db, data):
        raise RuntimeError("database went away")

    monkeypatch.setattr(crud, "create_contract", broken_insert)
    with pytest.raises(RuntimeError):
        services.confirm_contract(db, buyer.id, schemas.ContractCreate(listing_id=post.id))

    assert os.listdir(services.CONTRACTS_DIR) == []
    assert crud.get_contract_for_listing(db, post.id) is None


def test_concurrent_confirmation_loses_to_unique_listing(client, db, monkeypatch):
    seller = make_account(db)
    first = make_account(db, email="first@example.com")
    second = make_account(db, email="second@example.com")
    make_fee_tiers(db)
    post = make_car_post(db, seller, status="PUBLISHED")

    assert client.post("/contracts", json={"listing_id": post.id}, headers=auth(first)).status_code == 201

    # the second request passed its existence check before the first one committed
    monkeypatch.setattr(crud, "get_contract_for_listing", lambda db, listing_id: None)
    res = client.post("/contracts", json={"listing_id": post.id}, headers=auth(second))
    assert res.status_code == 409
    assert "already has a contract" in res.json()["detail"]

    assert len(os.listdir(services.CONTRACTS_DIR)) == 1
    assert db.query(Contract).filter(Contract.listing_id == post.id).count() == 1


# settings

def test_refund_policy_and_lifecycle(client, db):
    admin = make_account(db, email="admin@example.com", role="ADMIN")
    h = auth(admin)

    assert client.get("/admin/refund-policy", headers=h).json()["hold_days"] == 3
    res = client.patch("/admin/refund-policy", json={"buyer_fault_rate": "0.3", "auto_refund": True}, headers=h)
    assert res.status_code == 200
    assert Decimal(res.json()["buyer_fault_rate"]) == Decimal("0.3")
    assert res.json()["auto_refund"] is True

    res = client.patch("/admin/refund-policy", json={"seller_fault_rate": "1.2"}, headers=h)
    assert res.status_code == 400
    assert res.json()["field"] == "seller_fault_rate"

    res = client.put("/admin/post-lifecycle", json={"expiration_days": 0}, headers=h)
    assert res.status_code == 400
    assert res.json()["field"] == "expiration_days"
    res = client.put("/admin/post-lifecycle", json={"expiration_days": 60}, headers=h)
    assert res.json()["expiration_days"] == 60
