# app/schemas.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Annotated, List, Literal, Optional, Union
from datetime import datetime
from decimal import Decimal
import re

Origin = Literal["NOI_DIA", "NHAP_KHAU"]

_PHONE_RE = re.compile(r"^(0\d{9,10}|\+84\d{9,10})$")


# accounts

class AccountCreate(BaseModel):
    mode: Literal["email", "phone"] = "email"
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    full_name: str
    password: str
    confirm_password: str

    @field_validator("full_name")
    @classmethod
    def _full_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2 or len(v) > 100:
            raise ValueError("full name must be 2-100 characters")
        return v

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        v = re.sub(r"[\s-]", "", v)
        if not _PHONE_RE.match(v):
            raise ValueError("invalid phone number")
        return v

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("password must be at least 8 characters")
        if not re.search(r"[A-Za-z]", v) or not re.search(r"\d", v):
            raise ValueError("password must contain letters and digits")
        return v


class AccountSafeOut(BaseModel):
    id: int
    email: Optional[str] = None
    phone: Optional[str] = None
    full_name: str
    role: str
    status: str
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# post details

class CarDetailsBase(BaseModel):
    brand_id: Optional[int] = None
    model_id: Optional[int] = None
    manufacture_year: Optional[int] = Field(None, ge=1900, le=2100)
    body_style: Optional[str] = None
    origin: Optional[Origin] = None
    color: Optional[str] = None
    seats: Optional[int] = Field(None, ge=1, le=50)
    license_plate: Optional[str] = None
    owners_count: Optional[int] = Field(None, ge=0)
    odo_km: Optional[int] = Field(None, ge=0)
    battery_capacity_kwh: Optional[Decimal] = Field(None, ge=0)
    range_km: Optional[int] = Field(None, ge=0)
    charge_ac_kw: Optional[Decimal] = Field(None, ge=0)
    charge_dc_kw: Optional[Decimal] = Field(None, ge=0)
    battery_health_pct: Optional[Decimal] = Field(None, ge=0, le=100)


class BikeDetailsBase(BaseModel):
    brand_id: Optional[int] = None
    model_id: Optional[int] = None
    manufacture_year: Optional[int] = Field(None, ge=1900, le=2100)
    bike_style: Optional[str] = None
    origin: Optional[Origin] = None
    color: Optional[str] = None
    license_plate: Optional[str] = None
    owners_count: Optional[int] = Field(None, ge=0)
    odo_km: Optional[int] = Field(None, ge=0)
    battery_capacity_kwh: Optional[Decimal] = Field(None, ge=0)
    range_km: Optional[int] = Field(None, ge=0)
    motor_power_kw: Optional[Decimal] = Field(None, ge=0)
    charge_ac_kw: Optional[Decimal] = Field(None, ge=0)
    battery_health_pct: Optional[Decimal] = Field(None, ge=0, le=100)


class CarDetailsOut(CarDetailsBase):
    model_config = ConfigDict(from_attributes=True)


class BikeDetailsOut(BikeDetailsBase):
    model_config = ConfigDict(from_attributes=True)


# posts

class ImageIn(BaseModel):
    url: str = Field(..., min_length=1)
    public_id: Optional[str] = None
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)


class ImagesAdd(BaseModel):
    images: List[ImageIn] = Field(..., min_length=1)


class PostImageOut(BaseModel):
    id: int
    url: str
    public_id: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    position: int

    model_config = ConfigDict(from_attributes=True)


class PostBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    ward_code: Optional[str] = None
    province_name_cached: Optional[str] = None
    district_name_cached: Optional[str] = None
    ward_name_cached: Optional[str] = None
    address_text_cached: Optional[str] = None
    price_vnd: int = Field(..., ge=0)
    is_negotiable: bool = False


class CarPostCreate(PostBase):
    post_type: Literal["EV_CAR"]
    car_details: CarDetailsBase
    images: List[ImageIn] = []


class BikePostCreate(PostBase):
    post_type: Literal["EV_BIKE"]
    bike_details: BikeDetailsBase
    images: List[ImageIn] = []


# the detail block is keyed by post_type so a car post can never carry bike details
PostCreate = Annotated[Union[CarPostCreate, BikePostCreate], Field(discriminator="post_type")]


class PostUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    ward_code: Optional[str] = None
    province_name_cached: Optional[str] = None
    district_name_cached: Optional[str] = None
    ward_name_cached: Optional[str] = None
    address_text_cached: Optional[str] = None
    price_vnd: Optional[int] = Field(None, ge=0)
    is_negotiable: Optional[bool] = None
    status: Optional[Literal["SOLD"]] = None
    car_details: Optional[CarDetailsBase] = None
    bike_details: Optional[BikeDetailsBase] = None


class PostResponse(BaseModel):
    """Client-facing post. Relation blocks are left unset when absent."""
    id: int
    post_type: str
    title: str
    description: Optional[str] = None
    ward_code: Optional[str] = None
    province_name_cached: Optional[str] = None
    district_name_cached: Optional[str] = None
    ward_name_cached: Optional[str] = None
    address_text_cached: Optional[str] = None
    price_vnd: int
    is_negotiable: bool
    status: str
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    verification_status: str = "UNVERIFIED"
    verification_rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    seller: Optional[AccountSafeOut] = None
    car_details: Optional[CarDetailsOut] = None
    bike_details: Optional[BikeDetailsOut] = None
    images: Optional[List[PostImageOut]] = None


class ReviewDecision(BaseModel):
    approve: bool
    reason: Optional[str] = None


class ReviewLogOut(BaseModel):
    id: int
    post_id: int
    actor_id: Optional[int] = None
    action: str
    reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# fee tiers

class FeeTierCreate(BaseModel):
    min_price: int
    max_price: Optional[int] = None
    deposit_rate: Decimal
    active: bool = True


class FeeTierUpdate(BaseModel):
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    deposit_rate: Optional[Decimal] = None
    active: Optional[bool] = None


class FeeTierOut(BaseModel):
    id: int
    min_price: int
    max_price: Optional[int] = None
    deposit_rate: Decimal
    active: bool
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class FeeTierResolveOut(BaseModel):
    price: int
    tier: FeeTierOut
    deposit_amount: int


# contracts

class ContractCreate(BaseModel):
    listing_id: int


class ContractOut(BaseModel):
    id: int
    listing_id: int
    buyer_id: int
    seller_id: int
    file_path: Optional[str] = None
    listing_snapshot: Optional[dict] = None
    fee_rate: Optional[Decimal] = None
    deposit_amount: Optional[int] = None
    confirmed_at: Optional[datetime] = None
    hash: Optional[str] = None
    signature_placeholder: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# admin settings

class RefundPolicyOut(BaseModel):
    cancel_early_rate: Decimal
    seller_fault_rate: Decimal
    buyer_fault_rate: Decimal
    hold_days: int
    auto_refund: bool
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RefundPolicyUpdate(BaseModel):
    cancel_early_rate: Optional[Decimal] = None
    seller_fault_rate: Optional[Decimal] = None
    buyer_fault_rate: Optional[Decimal] = None
    hold_days: Optional[int] = None
    auto_refund: Optional[bool] = None


class PostLifecycleOut(BaseModel):
    expiration_days: int
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PostLifecycleUpdate(BaseModel):
    expiration_days: int
