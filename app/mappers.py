# app/mappers.py
"""Map ORM posts to client-facing responses.

Relation blocks (seller, car/bike details, images) appear in the response only
when the relation is loaded and populated on the post. Unloaded relations are
treated as absent so mapping never triggers a lazy load.
"""
from typing import Iterable, List
from sqlalchemy import inspect
from . import schemas
from .models import Account, Post, PostEvBikeDetails, PostEvCarDetails, PostImage
from .verification import UNVERIFIED, map_status

POST_SCALAR_FIELDS = (
    "id",
    "post_type",
    "title",
    "description",
    "ward_code",
    "province_name_cached",
    "district_name_cached",
    "ward_name_cached",
    "address_text_cached",
    "price_vnd",
    "is_negotiable",
    "status",
    "submitted_at",
    "reviewed_at",
    "created_at",
    "updated_at",
)


def _loaded(obj, attr: str) -> bool:
    return attr not in inspect(obj).unloaded


def to_account_safe(account: Account) -> schemas.AccountSafeOut:
    return schemas.AccountSafeOut.model_validate(account)


def to_car_details(details: PostEvCarDetails) -> schemas.CarDetailsOut:
    return schemas.CarDetailsOut.model_validate(details)


def to_bike_details(details: PostEvBikeDetails) -> schemas.BikeDetailsOut:
    return schemas.BikeDetailsOut.model_validate(details)


def to_images(images: Iterable[PostImage]) -> List[schemas.PostImageOut]:
    return [schemas.PostImageOut.model_validate(img) for img in images]


def to_post_response(post: Post) -> schemas.PostResponse:
    if post is None:
        raise ValueError("post is required")
    data = {f: getattr(post, f) for f in POST_SCALAR_FIELDS}
    if _loaded(post, "verification"):
        data.update(map_status(post))
    else:
        data["verification_status"] = UNVERIFIED

    if _loaded(post, "seller") and post.seller is not None:
        data["seller"] = to_account_safe(post.seller)
    if _loaded(post, "car_details") and post.car_details is not None:
        data["car_details"] = to_car_details(post.car_details)
    if _loaded(post, "bike_details") and post.bike_details is not None:
        data["bike_details"] = to_bike_details(post.bike_details)
    if _loaded(post, "images") and post.images is not None:
        data["images"] = to_images(post.images)

    return schemas.PostResponse(**data)


def to_post_responses(posts: Iterable[Post]) -> List[schemas.PostResponse]:
    return [to_post_response(p) for p in posts]
