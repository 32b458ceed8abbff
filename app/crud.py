# app/crud.py
"""CRUD operations for accounts, posts, fee tiers, contracts and settings.

Post reads always eager-load the relations the response mapper renders, so a
post returned from here can be mapped without further queries.
"""
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload
from typing import Dict, Any, List, Optional
from .models import (
    Account, Post, PostImage, PostReviewLog, FeeTier, Contract, RefundPolicy,
    PostLifecycle, PUBLISHED,
)

SORTS = {
    "newest": (Post.created_at.desc(), Post.id.desc()),
    "oldest": (Post.created_at.asc(), Post.id.asc()),
    "price-asc": (Post.price_vnd.asc(), Post.id.asc()),
    "price-desc": (Post.price_vnd.desc(), Post.id.desc()),
}


# accounts

def create_account(db: Session, data: Dict[str, Any]) -> Account:
    obj = Account(**data)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj

def get_account(db: Session, account_id: int) -> Optional[Account]:
    return db.query(Account).filter(Account.id == account_id).first()

def find_account_by_contact(db: Session, email: Optional[str] = None, phone: Optional[str] = None):
    conds = []
    if email:
        conds.append(Account.email == email)
    if phone:
        conds.append(Account.phone == phone)
    if not conds:
        return None
    return db.query(Account).filter(or_(*conds)).first()


# posts

def _post_query(db: Session):
    return db.query(Post).options(
        selectinload(Post.seller),
        selectinload(Post.car_details),
        selectinload(Post.bike_details),
        selectinload(Post.images),
        selectinload(Post.verification),
    )

def get_post(db: Session, post_id: int) -> Optional[Post]:
    return _post_query(db).filter(Post.id == post_id).first()

def list_posts(db: Session, skip: int = 0, limit: int = 20, filters: Dict = None, sort: str = "newest"):
    q = _post_query(db)
    if filters:
        if filters.get("status"):
            q = q.filter(Post.status == filters["status"])
        if filters.get("seller_id") is not None:
            q = q.filter(Post.seller_id == filters["seller_id"])
        if filters.get("post_type"):
            q = q.filter(Post.post_type == filters["post_type"])
        if filters.get("min_price") is not None:
            q = q.filter(Post.price_vnd >= filters["min_price"])
        if filters.get("max_price") is not None:
            q = q.filter(Post.price_vnd <= filters["max_price"])
        if filters.get("province"):
            q = q.filter(Post.province_name_cached.ilike(f"%{filters['province']}%"))
    total = q.count()
    items = q.order_by(*SORTS.get(sort, SORTS["newest"])).offset(skip).limit(limit).all()
    return {"total": total, "items": items}

def list_published_posts(db: Session, skip: int = 0, limit: int = 20, filters: Dict = None, sort: str = "newest"):
    filters = dict(filters or {}, status=PUBLISHED)
    return list_posts(db, skip=skip, limit=limit, filters=filters, sort=sort)

def save_post(db: Session, post: Post) -> Post:
    db.add(post)
    db.commit()
    return get_post(db, post.id)

def delete_post(db: Session, post: Post) -> None:
    db.delete(post)
    db.commit()

def next_image_position(db: Session, post_id: int) -> int:
    last = (
        db.query(PostImage.position)
        .filter(PostImage.post_id == post_id)
        .order_by(PostImage.position.desc())
        .first()
    )
    return last[0] + 1 if last else 0

def list_review_logs(db: Session, post_id: int) -> List[PostReviewLog]:
    return (
        db.query(PostReviewLog)
        .filter(PostReviewLog.post_id == post_id)
        .order_by(PostReviewLog.id.asc())
        .all()
    )


# fee tiers

def list_fee_tiers(db: Session, active_only: bool = False) -> List[FeeTier]:
    q = db.query(FeeTier)
    if active_only:
        q = q.filter(FeeTier.active.is_(True))
    return q.order_by(FeeTier.min_price.asc(), FeeTier.id.asc()).all()

def get_fee_tier(db: Session, tier_id: int) -> Optional[FeeTier]:
    return db.query(FeeTier).filter(FeeTier.id == tier_id).first()

def create_fee_tier(db: Session, data: Dict[str, Any]) -> FeeTier:
    obj = FeeTier(**data)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj

def update_fee_tier(db: Session, tier_id: int, updates: Dict[str, Any]) -> Optional[FeeTier]:
    obj = get_fee_tier(db, tier_id)
    if not obj:
        return None
    for k, v in updates.items():
        setattr(obj, k, v)
    db.commit()
    db.refresh(obj)
    return obj

def delete_fee_tier(db: Session, tier_id: int) -> bool:
    obj = get_fee_tier(db, tier_id)
    if not obj:
        return False
    db.delete(obj)
    db.commit()
    return True


# contracts

def create_contract(db: Session, data: Dict[str, Any]) -> Contract:
    obj = Contract(**data)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj

def get_contract_for_listing(db: Session, listing_id: int) -> Optional[Contract]:
    return db.query(Contract).filter(Contract.listing_id == listing_id).first()

def get_contract(db: Session, contract_id: int) -> Optional[Contract]:
    return db.query(Contract).filter(Contract.id == contract_id).first()


# settings (single row each)

def get_refund_policy(db: Session) -> RefundPolicy:
    obj = db.query(RefundPolicy).order_by(RefundPolicy.id.asc()).first()
    if obj is None:
        obj = RefundPolicy(cancel_early_rate=1, seller_fault_rate=1, buyer_fault_rate=0,
                           hold_days=3, auto_refund=False)
        db.add(obj)
        db.commit()
        db.refresh(obj)
    return obj

def update_refund_policy(db: Session, updates: Dict[str, Any]) -> RefundPolicy:
    obj = get_refund_policy(db)
    for k, v in updates.items():
        setattr(obj, k, v)
    db.commit()
    db.refresh(obj)
    return obj

def get_post_lifecycle(db: Session) -> PostLifecycle:
    obj = db.query(PostLifecycle).order_by(PostLifecycle.id.asc()).first()
    if obj is None:
        obj = PostLifecycle(expiration_days=30)
        db.add(obj)
        db.commit()
        db.refresh(obj)
    return obj

def update_post_lifecycle(db: Session, updates: Dict[str, Any]) -> PostLifecycle:
    obj = get_post_lifecycle(db)
    for k, v in updates.items():
        setattr(obj, k, v)
    db.commit()
    db.refresh(obj)
    return obj
