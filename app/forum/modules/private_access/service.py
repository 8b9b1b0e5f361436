from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from app.forum import identity
from app.forum.constants import MIN_JUSTIFICATION_LENGTH, ModerationAction, RequestStatus
from app.forum.errors import Conflict, Forbidden, NotFound, ValidationError
from app.forum.models import User
from app.forum.modules.moderation.service import record_action
from app.forum.modules.private_access.models import PrivateAccessRequest
from app.forum.policy import can_moderate

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# Reviewer-facing outcomes; "pending" is never a valid decision.
VALID_OUTCOMES = (RequestStatus.APPROVED.value, RequestStatus.REJECTED.value)


def pending_request_for(s: "Session", user_id: int) -> PrivateAccessRequest | None:
    return (
        s.query(PrivateAccessRequest)
        .filter(PrivateAccessRequest.user_id == user_id)
        .filter(PrivateAccessRequest.status == RequestStatus.PENDING)
        .one_or_none()
    )


def my_latest_request(s: "Session", user: User) -> PrivateAccessRequest | None:
    return (
        s.query(PrivateAccessRequest)
        .filter(PrivateAccessRequest.user_id == user.id)
        .order_by(PrivateAccessRequest.created_at.desc(), PrivateAccessRequest.id.desc())
        .first()
    )


def submit(s: "Session", user: User, justification: str | None) -> PrivateAccessRequest:
    """
    NoRequest/Rejected -> Pending. A user may hold at most one pending request,
    and users who already have the grant cannot ask again.
    """
    if user.has_private_access:
        raise Conflict("You already have access to the private section.")
    if pending_request_for(s, user.id) is not None:
        raise Conflict("You already have a pending request.")

    text = (justification or "").strip()
    if len(text) < MIN_JUSTIFICATION_LENGTH:
        raise ValidationError(
            f"The justification must be at least {MIN_JUSTIFICATION_LENGTH} characters.",
            field="justification",
        )

    req = PrivateAccessRequest(
        user_id=user.id,
        justification=text,
        status=RequestStatus.PENDING,
        created_at=datetime.utcnow(),
    )
    s.add(req)
    try:
        # The partial unique index catches a concurrent double submit.
        s.flush()
    except IntegrityError:
        s.rollback()
        raise Conflict("You already have a pending request.")
    logger.info("private access request submitted id=%s user=%s", req.id, user.id)
    return req


def list_pending(s: "Session", reviewer: User | None) -> list[PrivateAccessRequest]:
    if not can_moderate(reviewer):
        raise Forbidden("Only moderators can review requests.")
    return (
        s.query(PrivateAccessRequest)
        .filter(PrivateAccessRequest.status == RequestStatus.PENDING)
        .order_by(PrivateAccessRequest.created_at.desc(), PrivateAccessRequest.id.desc())
        .all()
    )


def decide(s: "Session", reviewer: User, request_id: int, outcome: str | None) -> PrivateAccessRequest:
    """
    Pending -> Approved | Rejected (terminal). Approval grants access to the
    requester within the same unit of work, and every decision is logged.
    Replaying a decision fails NotFound since the request is no longer pending.
    """
    if not can_moderate(reviewer):
        raise Forbidden("Only moderators can review requests.")
    outcome = (outcome or "").strip().lower()
    if outcome not in VALID_OUTCOMES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(VALID_OUTCOMES)}", field="status")

    req = s.get(PrivateAccessRequest, request_id, with_for_update=True)
    if req is None or req.status != RequestStatus.PENDING:
        raise NotFound("Request not found.")

    requester = identity.find_by_id(s, req.user_id)
    req.status = RequestStatus(outcome)
    req.reviewed_by = reviewer
    req.reviewed_at = datetime.utcnow()

    if req.status == RequestStatus.APPROVED:
        identity.grant_private_access(requester)
        action = ModerationAction.APPROVE_REQUEST
    else:
        action = ModerationAction.REJECT_REQUEST

    record_action(
        s,
        actor=reviewer,
        action=action,
        target=requester,
        details={"request_id": req.id},
    )
    s.flush()
    return req
