# app/verification.py
"""Seller-requested verification of published posts.

`map_status` derives the client-facing verification status from the stored
request; the request/review helpers move that request through its states.
"""
from datetime import datetime, timezone
from typing import Dict, Optional
from .errors import FieldValidationError, InvalidStateError
from .models import Post, PostVerification, PUBLISHED

UNVERIFIED = "UNVERIFIED"
PENDING = "PENDING"
VERIFIED = "VERIFIED"
REJECTED = "REJECTED"

_DISPLAY = {
    "PENDING": PENDING,
    "APPROVED": VERIFIED,
    "REJECTED": REJECTED,
}


def map_status(post: Post) -> Dict[str, Optional[str]]:
    req = post.verification
    if req is None:
        return {"verification_status": UNVERIFIED}
    status = _DISPLAY.get(req.status, UNVERIFIED)
    out = {"verification_status": status}
    if status == REJECTED:
        out["verification_rejection_reason"] = req.rejection_reason
    return out


def request_verification(post: Post) -> PostVerification:
    if post.status != PUBLISHED:
        raise InvalidStateError("only published posts can be verified")
    req = post.verification
    if req is not None:
        if req.status != "REJECTED":
            raise InvalidStateError(f"verification already {req.status.lower()}")
        # a rejected request is reopened rather than duplicated
        req.status = "PENDING"
        req.rejection_reason = None
        req.reviewed_at = None
        req.requested_at = datetime.now(timezone.utc)
        return req
    req = PostVerification(status="PENDING", requested_at=datetime.now(timezone.utc))
    post.verification = req
    return req


def review_verification(post: Post, approve: bool, reason: Optional[str] = None) -> PostVerification:
    req = post.verification
    if req is None or req.status != "PENDING":
        raise InvalidStateError("no pending verification request")
    if not approve and not (reason and reason.strip()):
        raise FieldValidationError("reason", "rejection reason is required")
    req.status = "APPROVED" if approve else "REJECTED"
    req.rejection_reason = None if approve else reason.strip()
    req.reviewed_at = datetime.now(timezone.utc)
    return req
