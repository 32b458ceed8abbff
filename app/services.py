# app/services.py
"""Business operations behind the API routes.

Each operation validates fully before writing anything; a raised
`MarketError` leaves the database untouched.
"""
import hashlib
import json
import os
import secrets
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from dotenv import load_dotenv
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from . import crud, fees, mappers, schemas, verification
from .errors import FieldValidationError, InvalidStateError, NotFoundError, PermissionDeniedError
from .models import (
    Account, Post, PostEvBikeDetails, PostEvCarDetails, PostImage, PostReviewLog,
    EV_CAR, EV_BIKE, DRAFT, PENDING_REVIEW, PUBLISHED, REJECTED, SOLD, ROLE_ADMIN,
)
from .utils import logger, retry

load_dotenv()
CONTRACTS_DIR = os.getenv("CONTRACTS_DIR", "./contracts")

PBKDF2_ITERATIONS = 260000


def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        _, iterations, salt, expected = stored.split("$")
    except ValueError:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), int(iterations))
    return secrets.compare_digest(digest.hex(), expected)


# accounts

def require_account(db: Session, account_id: Optional[int]) -> Account:
    if account_id is None:
        raise PermissionDeniedError("authentication required")
    account = crud.get_account(db, account_id)
    if account is None:
        raise NotFoundError("Account", account_id)
    if account.status != "active":
        raise PermissionDeniedError("account is not active")
    return account


def require_admin(db: Session, account_id: Optional[int]) -> Account:
    account = require_account(db, account_id)
    if account.role != ROLE_ADMIN:
        raise PermissionDeniedError("admin role required")
    return account


def signup(db: Session, payload: schemas.AccountCreate) -> Account:
    if payload.mode == "email":
        if not payload.email:
            raise FieldValidationError("email", "email is required")
        email, phone = str(payload.email).strip().lower(), None
    else:
        if not payload.phone:
            raise FieldValidationError("phone", "phone is required")
        email, phone = None, payload.phone
    if payload.password != payload.confirm_password:
        raise FieldValidationError("confirm_password", "passwords do not match")
    if crud.find_account_by_contact(db, email=email, phone=phone):
        field = "email" if email else "phone"
        raise FieldValidationError(field, f"{field} is already registered")
    account = crud.create_account(db, {
        "email": email,
        "phone": phone,
        "full_name": payload.full_name,
        "password_hash": hash_password(payload.password),
    })
    logger.info("Created account %s via %s", account.id, payload.mode)
    return account


# posts

def _get_post(db: Session, post_id: int) -> Post:
    post = crud.get_post(db, post_id)
    if post is None:
        raise NotFoundError("Post", post_id)
    return post


def _get_own_post(db: Session, post_id: int, seller_id: int) -> Post:
    post = _get_post(db, post_id)
    if post.seller_id != seller_id:
        raise PermissionDeniedError("not the owner of this post")
    return post


def _append_images(db: Session, post: Post, images: List[schemas.ImageIn]) -> None:
    start = crud.next_image_position(db, post.id) if post.id is not None else len(post.images)
    for offset, img in enumerate(images):
        post.images.append(PostImage(position=start + offset, **img.model_dump()))


def create_post(db: Session, seller_id: int, payload) -> Post:
    require_account(db, seller_id)
    data = payload.model_dump(exclude={"car_details", "bike_details", "images"})
    post = Post(seller_id=seller_id, status=DRAFT, **data)
    if payload.post_type == EV_CAR:
        post.car_details = PostEvCarDetails(**payload.car_details.model_dump())
    elif payload.post_type == EV_BIKE:
        post.bike_details = PostEvBikeDetails(**payload.bike_details.model_dump())
    else:
        raise FieldValidationError("post_type", f"unsupported post type {payload.post_type}")
    _append_images(db, post, payload.images)
    post = crud.save_post(db, post)
    logger.info("Seller %s created draft post %s (%s)", seller_id, post.id, post.post_type)
    return post


def update_post(db: Session, post_id: int, seller_id: int, payload: schemas.PostUpdate) -> Post:
    post = _get_own_post(db, post_id, seller_id)
    updates = payload.model_dump(exclude_unset=True, exclude={"car_details", "bike_details", "status"})

    if payload.status == SOLD:
        if post.status != PUBLISHED:
            raise InvalidStateError("only published posts can be marked as sold")
        if updates or payload.car_details or payload.bike_details:
            raise InvalidStateError("a post cannot be edited while being marked as sold")
        post.status = SOLD
        post = crud.save_post(db, post)
        logger.info("Post %s marked as sold", post.id)
        return post

    if post.status not in (DRAFT, REJECTED):
        raise InvalidStateError(f"post cannot be edited while {post.status}")
    if payload.car_details is not None and post.post_type != EV_CAR:
        raise FieldValidationError("car_details", "car details only apply to EV_CAR posts")
    if payload.bike_details is not None and post.post_type != EV_BIKE:
        raise FieldValidationError("bike_details", "bike details only apply to EV_BIKE posts")
    for key in ("title", "price_vnd", "is_negotiable"):
        if key in updates and updates[key] is None:
            raise FieldValidationError(key, f"{key} cannot be null")

    if payload.car_details is not None:
        _apply(post.car_details, payload.car_details, PostEvCarDetails, post, "car_details")
    if payload.bike_details is not None:
        _apply(post.bike_details, payload.bike_details, PostEvBikeDetails, post, "bike_details")
    for k, v in updates.items():
        setattr(post, k, v)
    if post.status == REJECTED:
        # editing a rejected post sends it back to draft for resubmission
        post.status = DRAFT
    return crud.save_post(db, post)


def _apply(target, payload, model, post: Post, attr: str) -> None:
    values = payload.model_dump(exclude_unset=True)
    if target is None:
        setattr(post, attr, model(**values))
        return
    for k, v in values.items():
        setattr(target, k, v)


def delete_post(db: Session, post_id: int, seller_id: int) -> None:
    post = _get_own_post(db, post_id, seller_id)
    if post.status == SOLD:
        raise InvalidStateError("sold posts cannot be deleted")
    if crud.get_contract_for_listing(db, post.id):
        raise InvalidStateError("post is referenced by a contract")
    crud.delete_post(db, post)
    logger.info("Post %s deleted by seller %s", post_id, seller_id)


def add_images(db: Session, post_id: int, seller_id: int, payload: schemas.ImagesAdd) -> Post:
    post = _get_own_post(db, post_id, seller_id)
    if post.status == SOLD:
        raise InvalidStateError("sold posts cannot be edited")
    _append_images(db, post, payload.images)
    return crud.save_post(db, post)


def submit_post(db: Session, post_id: int, seller_id: int) -> Post:
    post = _get_own_post(db, post_id, seller_id)
    if post.status != DRAFT:
        raise InvalidStateError(f"only drafts can be submitted, post is {post.status}")
    post.status = PENDING_REVIEW
    post.submitted_at = datetime.now(timezone.utc)
    post.review_logs.append(PostReviewLog(actor_id=seller_id, action="SUBMITTED"))
    post = crud.save_post(db, post)
    logger.info("Post %s submitted for review", post.id)
    return post


def review_post(db: Session, post_id: int, admin_id: int, decision: schemas.ReviewDecision) -> Post:
    require_admin(db, admin_id)
    post = _get_post(db, post_id)
    if post.status != PENDING_REVIEW:
        raise InvalidStateError(f"post is {post.status}, not pending review")
    reason = (decision.reason or "").strip() or None
    if not decision.approve and reason is None:
        raise FieldValidationError("reason", "rejection reason is required")
    post.status = PUBLISHED if decision.approve else REJECTED
    post.reviewed_at = datetime.now(timezone.utc)
    post.review_logs.append(PostReviewLog(
        actor_id=admin_id,
        action="APPROVED" if decision.approve else "REJECTED",
        reason=reason,
    ))
    post = crud.save_post(db, post)
    logger.info("Post %s %s by admin %s", post.id, post.status.lower(), admin_id)
    return post


def request_post_verification(db: Session, post_id: int, seller_id: int) -> Post:
    post = _get_own_post(db, post_id, seller_id)
    verification.request_verification(post)
    post = crud.save_post(db, post)
    logger.info("Verification requested for post %s", post.id)
    return post


def review_post_verification(db: Session, post_id: int, admin_id: int, decision: schemas.ReviewDecision) -> Post:
    require_admin(db, admin_id)
    post = _get_post(db, post_id)
    verification.review_verification(post, decision.approve, decision.reason)
    post = crud.save_post(db, post)
    logger.info("Verification for post %s %s", post.id, "approved" if decision.approve else "rejected")
    return post


# fee tiers

def _check_overlap(db: Session, candidate, exclude_id: Optional[int] = None) -> None:
    if not candidate.active:
        return
    others = [t for t in crud.list_fee_tiers(db, active_only=True) if t.id != exclude_id]
    other = fees.find_overlapping(candidate, others)
    if other is not None:
        raise FieldValidationError(
            "min_price",
            f"price range overlaps active tier {other.id} [{other.min_price}, {other.max_price})",
        )


def create_fee_tier(db: Session, payload: schemas.FeeTierCreate):
    data = payload.model_dump()
    fees.validate_fee_tier(data["min_price"], data["max_price"], data["deposit_rate"])
    _check_overlap(db, SimpleNamespace(id=None, **data))
    tier = crud.create_fee_tier(db, data)
    logger.info("Created fee tier %s [%s, %s) rate=%s", tier.id, tier.min_price, tier.max_price, tier.deposit_rate)
    return tier


def update_fee_tier(db: Session, tier_id: int, payload: schemas.FeeTierUpdate):
    tier = crud.get_fee_tier(db, tier_id)
    if tier is None:
        raise NotFoundError("FeeTier", tier_id)
    updates = payload.model_dump(exclude_unset=True)
    for key in ("min_price", "deposit_rate", "active"):
        if key in updates and updates[key] is None:
            raise FieldValidationError(key, f"{key} cannot be null")
    merged = {
        "min_price": tier.min_price,
        "max_price": tier.max_price,
        "deposit_rate": tier.deposit_rate,
        "active": tier.active,
        **updates,
    }
    fees.validate_fee_tier(merged["min_price"], merged["max_price"], merged["deposit_rate"])
    _check_overlap(db, SimpleNamespace(id=tier.id, **merged), exclude_id=tier.id)
    tier = crud.update_fee_tier(db, tier_id, updates)
    logger.info("Updated fee tier %s: %s", tier_id, sorted(updates))
    return tier


def delete_fee_tier(db: Session, tier_id: int) -> None:
    if not crud.delete_fee_tier(db, tier_id):
        raise NotFoundError("FeeTier", tier_id)
    logger.info("Deleted fee tier %s", tier_id)


def resolve_fee(db: Session, price: int) -> Optional[Dict[str, Any]]:
    tier = fees.resolve_tier(price, crud.list_fee_tiers(db, active_only=True))
    if tier is None:
        return None
    return {"price": price, "tier": tier, "deposit_amount": fees.compute_deposit(price, tier)}


# contracts

def canonical_json(data: Dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def snapshot_hash(snapshot: Dict[str, Any]) -> str:
    return hashlib.sha256(canonical_json(snapshot).encode("utf-8")).hexdigest()


@retry(OSError, tries=3, delay=0.5, backoff=2)
def write_contract_document(document: Dict[str, Any], filename: str) -> str:
    os.makedirs(CONTRACTS_DIR, exist_ok=True)
    path = os.path.join(CONTRACTS_DIR, filename)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(document, fh, ensure_ascii=False, indent=2, sort_keys=True)
    return path


def discard_contract_document(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def confirm_contract(db: Session, buyer_id: int, payload: schemas.ContractCreate):
    require_account(db, buyer_id)
    post = _get_post(db, payload.listing_id)
    if post.status != PUBLISHED:
        raise InvalidStateError(f"listing is {post.status}, not published")
    if post.seller_id == buyer_id:
        raise InvalidStateError("sellers cannot buy their own listing")
    if crud.get_contract_for_listing(db, post.id):
        raise InvalidStateError("listing already has a contract")

    resolved = resolve_fee(db, post.price_vnd)
    if resolved is None:
        raise InvalidStateError(f"no active fee tier for price {post.price_vnd}")
    tier = resolved["tier"]

    snapshot = mappers.to_post_response(post).model_dump(mode="json", exclude_unset=True)
    digest = snapshot_hash(snapshot)
    confirmed_at = datetime.now(timezone.utc)
    document = {
        "listing_id": post.id,
        "buyer_id": buyer_id,
        "seller_id": post.seller_id,
        "fee_rate": str(tier.deposit_rate),
        "deposit_amount": resolved["deposit_amount"],
        "confirmed_at": confirmed_at.isoformat(),
        "listing": snapshot,
        "hash": digest,
    }
    path = write_contract_document(document, f"contract_{post.id}_{buyer_id}_{digest[:16]}.json")
    try:
        contract = crud.create_contract(db, {
            "listing_id": post.id,
            "buyer_id": buyer_id,
            "seller_id": post.seller_id,
            "file_path": path,
            "listing_snapshot": snapshot,
            "fee_rate": Decimal(str(tier.deposit_rate)),
            "deposit_amount": resolved["deposit_amount"],
            "confirmed_at": confirmed_at,
            "hash": digest,
        })
    except IntegrityError:
        # a concurrent confirmation won the unique listing_id constraint
        db.rollback()
        discard_contract_document(path)
        raise InvalidStateError("listing already has a contract")
    except Exception:
        db.rollback()
        discard_contract_document(path)
        raise
    logger.info("Contract %s confirmed for listing %s (deposit %s)", contract.id, post.id, contract.deposit_amount)
    return contract


# admin settings

def _check_rate(field: str, value) -> None:
    if value is None:
        raise FieldValidationError(field, f"{field} cannot be null")
    if value < 0 or value > 1:
        raise FieldValidationError(field, f"{field} must be between 0 and 1")


def update_refund_policy(db: Session, payload: schemas.RefundPolicyUpdate):
    updates = payload.model_dump(exclude_unset=True)
    for field in ("cancel_early_rate", "seller_fault_rate", "buyer_fault_rate"):
        if field in updates:
            _check_rate(field, updates[field])
    if "hold_days" in updates and (updates["hold_days"] is None or updates["hold_days"] < 0):
        raise FieldValidationError("hold_days", "hold_days must be >= 0")
    if "auto_refund" in updates and updates["auto_refund"] is None:
        raise FieldValidationError("auto_refund", "auto_refund cannot be null")
    policy = crud.update_refund_policy(db, updates)
    logger.info("Refund policy updated: %s", sorted(updates))
    return policy


def update_post_lifecycle(db: Session, payload: schemas.PostLifecycleUpdate):
    if payload.expiration_days < 1:
        raise FieldValidationError("expiration_days", "expiration_days must be >= 1")
    lifecycle = crud.update_post_lifecycle(db, {"expiration_days": payload.expiration_days})
    logger.info("Post lifecycle updated: expiration_days=%s", lifecycle.expiration_days)
    return lifecycle
