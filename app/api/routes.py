# app/api/routes.py
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session
from typing import List, Literal, Optional
from .. import crud, mappers, schemas, services
from ..db import get_db

router = APIRouter()

SortParam = Literal["newest", "oldest", "price-asc", "price-desc"]

@router.get("/health")
def health():
    return {"status": "ok"}


# accounts

@router.post("/accounts", response_model=schemas.AccountSafeOut, status_code=201)
def signup(payload: schemas.AccountCreate, db: Session = Depends(get_db)):
    return mappers.to_account_safe(services.signup(db, payload))


@router.get("/accounts/{account_id}", response_model=schemas.AccountSafeOut)
def get_account(account_id: int, db: Session = Depends(get_db)):
    obj = crud.get_account(db, account_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Account not found")
    return mappers.to_account_safe(obj)


# posts

@router.get("/posts", response_model=List[schemas.PostResponse], response_model_exclude_unset=True)
def list_posts(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    post_type: Literal["EV_CAR", "EV_BIKE"] | None = Query(None),
    min_price: int | None = Query(None, ge=0),
    max_price: int | None = Query(None, ge=0),
    province: str | None = Query(None),
    sort: SortParam = Query("newest"),
    db: Session = Depends(get_db)
):
    filters = {
        "post_type": post_type,
        "min_price": min_price,
        "max_price": max_price,
        "province": province,
    }
    res = crud.list_published_posts(db, skip=skip, limit=limit, filters=filters, sort=sort)
    return mappers.to_post_responses(res["items"])


@router.get("/me/posts", response_model=List[schemas.PostResponse], response_model_exclude_unset=True)
def my_posts(
    status: Literal["DRAFT", "PENDING_REVIEW", "PUBLISHED", "REJECTED", "SOLD"] | None = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    sort: SortParam = Query("newest"),
    x_account_id: Optional[int] = Header(None),
    db: Session = Depends(get_db)
):
    account = services.require_account(db, x_account_id)
    filters = {"seller_id": account.id, "status": status}
    res = crud.list_posts(db, skip=skip, limit=limit, filters=filters, sort=sort)
    return mappers.to_post_responses(res["items"])


@router.post("/posts", response_model=schemas.PostResponse, response_model_exclude_unset=True, status_code=201)
def create_post(payload: schemas.PostCreate, x_account_id: Optional[int] = Header(None), db: Session = Depends(get_db)):
    services.require_account(db, x_account_id)
    return mappers.to_post_response(services.create_post(db, x_account_id, payload))


@router.get("/posts/{post_id}", response_model=schemas.PostResponse, response_model_exclude_unset=True)
def get_post(post_id: int, db: Session = Depends(get_db)):
    obj = crud.get_post(db, post_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Post not found")
    return mappers.to_post_response(obj)


@router.patch("/posts/{post_id}", response_model=schemas.PostResponse, response_model_exclude_unset=True)
def update_post(post_id: int, payload: schemas.PostUpdate, x_account_id: Optional[int] = Header(None),
                db: Session = Depends(get_db)):
    services.require_account(db, x_account_id)
    return mappers.to_post_response(services.update_post(db, post_id, x_account_id, payload))


@router.delete("/posts/{post_id}")
def delete_post(post_id: int, x_account_id: Optional[int] = Header(None), db: Session = Depends(get_db)):
    services.require_account(db, x_account_id)
    services.delete_post(db, post_id, x_account_id)
    return {"status": "deleted"}


@router.post("/posts/{post_id}/images", response_model=schemas.PostResponse, response_model_exclude_unset=True)
def add_images(post_id: int, payload: schemas.ImagesAdd, x_account_id: Optional[int] = Header(None),
               db: Session = Depends(get_db)):
    services.require_account(db, x_account_id)
    return mappers.to_post_response(services.add_images(db, post_id, x_account_id, payload))


@router.post("/posts/{post_id}/submit", response_model=schemas.PostResponse, response_model_exclude_unset=True)
def submit_post(post_id: int, x_account_id: Optional[int] = Header(None), db: Session = Depends(get_db)):
    services.require_account(db, x_account_id)
    return mappers.to_post_response(services.submit_post(db, post_id, x_account_id))


@router.post("/posts/{post_id}/verification", response_model=schemas.PostResponse, response_model_exclude_unset=True)
def request_verification(post_id: int, x_account_id: Optional[int] = Header(None), db: Session = Depends(get_db)):
    services.require_account(db, x_account_id)
    return mappers.to_post_response(services.request_post_verification(db, post_id, x_account_id))


@router.get("/posts/{post_id}/review-logs", response_model=List[schemas.ReviewLogOut])
def review_logs(post_id: int, db: Session = Depends(get_db)):
    if not crud.get_post(db, post_id):
        raise HTTPException(status_code=404, detail="Post not found")
    return crud.list_review_logs(db, post_id)


# fee tiers (public read)

@router.get("/fee-tiers", response_model=List[schemas.FeeTierOut])
def list_active_fee_tiers(db: Session = Depends(get_db)):
    return crud.list_fee_tiers(db, active_only=True)


@router.get("/fee-tiers/resolve", response_model=schemas.FeeTierResolveOut)
def resolve_fee_tier(price: int = Query(..., ge=0), db: Session = Depends(get_db)):
    res = services.resolve_fee(db, price)
    if res is None:
        raise HTTPException(status_code=404, detail="No fee tier matches this price")
    return res


# contracts

@router.post("/contracts", response_model=schemas.ContractOut, status_code=201)
def confirm_contract(payload: schemas.ContractCreate, x_account_id: Optional[int] = Header(None),
                     db: Session = Depends(get_db)):
    return services.confirm_contract(db, x_account_id, payload)


@router.get("/contracts/{contract_id}", response_model=schemas.ContractOut)
def get_contract(contract_id: int, x_account_id: Optional[int] = Header(None), db: Session = Depends(get_db)):
    account = services.require_account(db, x_account_id)
    obj = crud.get_contract(db, contract_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Contract not found")
    if account.id not in (obj.buyer_id, obj.seller_id) and account.role != "ADMIN":
        raise HTTPException(status_code=403, detail="Not a party to this contract")
    return obj
