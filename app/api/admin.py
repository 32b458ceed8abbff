# app/api/admin.py
from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session
from typing import List, Literal, Optional
from .. import crud, mappers, schemas, services
from ..db import get_db


def require_admin(x_account_id: Optional[int] = Header(None), db: Session = Depends(get_db)):
    return services.require_admin(db, x_account_id)


router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


# post review

@router.get("/posts", response_model=List[schemas.PostResponse], response_model_exclude_unset=True)
def review_queue(
    status: Literal["DRAFT", "PENDING_REVIEW", "PUBLISHED", "REJECTED", "SOLD"] = "PENDING_REVIEW",
    skip: int = 0,
    limit: int = 50,
    db: Session = Depends(get_db)
):
    res = crud.list_posts(db, skip=skip, limit=limit, filters={"status": status}, sort="oldest")
    return mappers.to_post_responses(res["items"])


@router.post("/posts/{post_id}/review", response_model=schemas.PostResponse, response_model_exclude_unset=True)
def review_post(post_id: int, decision: schemas.ReviewDecision,
                admin=Depends(require_admin), db: Session = Depends(get_db)):
    return mappers.to_post_response(services.review_post(db, post_id, admin.id, decision))


@router.post("/posts/{post_id}/verification", response_model=schemas.PostResponse, response_model_exclude_unset=True)
def review_verification(post_id: int, decision: schemas.ReviewDecision,
                        admin=Depends(require_admin), db: Session = Depends(get_db)):
    return mappers.to_post_response(services.review_post_verification(db, post_id, admin.id, decision))


# fee tiers

@router.get("/fee-tiers", response_model=List[schemas.FeeTierOut])
def list_fee_tiers(db: Session = Depends(get_db)):
    return crud.list_fee_tiers(db)


@router.get("/fee-tiers/{tier_id}", response_model=schemas.FeeTierOut)
def get_fee_tier(tier_id: int, db: Session = Depends(get_db)):
    obj = crud.get_fee_tier(db, tier_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Fee tier not found")
    return obj


@router.post("/fee-tiers", response_model=schemas.FeeTierOut, status_code=201)
def create_fee_tier(payload: schemas.FeeTierCreate, db: Session = Depends(get_db)):
    return services.create_fee_tier(db, payload)


@router.patch("/fee-tiers/{tier_id}", response_model=schemas.FeeTierOut)
def update_fee_tier(tier_id: int, payload: schemas.FeeTierUpdate, db: Session = Depends(get_db)):
    return services.update_fee_tier(db, tier_id, payload)


@router.delete("/fee-tiers/{tier_id}")
def delete_fee_tier(tier_id: int, db: Session = Depends(get_db)):
    services.delete_fee_tier(db, tier_id)
    return {"status": "deleted"}


# settings

@router.get("/refund-policy", response_model=schemas.RefundPolicyOut)
def get_refund_policy(db: Session = Depends(get_db)):
    return crud.get_refund_policy(db)


@router.patch("/refund-policy", response_model=schemas.RefundPolicyOut)
def update_refund_policy(payload: schemas.RefundPolicyUpdate, db: Session = Depends(get_db)):
    return services.update_refund_policy(db, payload)


@router.get("/post-lifecycle", response_model=schemas.PostLifecycleOut)
def get_post_lifecycle(db: Session = Depends(get_db)):
    return crud.get_post_lifecycle(db)


@router.put("/post-lifecycle", response_model=schemas.PostLifecycleOut)
def update_post_lifecycle(payload: schemas.PostLifecycleUpdate, db: Session = Depends(get_db)):
    return services.update_post_lifecycle(db, payload)
