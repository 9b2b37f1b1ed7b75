"""Membership lifecycle: the state machine over a (group, user) pair.

States are derived from the rows present for the pair:

- NONE: no membership, no pending request, no block
- PENDING: a pending JoinRequest and no membership
- ACTIVE_MEMBER / ACTIVE_ADMIN: an active membership with that role
- BLOCKED: a GroupBlock row (a blocked user never holds a membership)

Every mutating operation derives the current state, looks the event up in
TRANSITIONS and raises the matching domain error when the move is illegal.
Side effects for a legal move run inside a single transaction.
"""
import enum
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from groupdesk.database import transaction
from groupdesk.models.group import GroupMember, GroupRole, MembershipStatus
from groupdesk.models.join_request import JoinRequest, JoinRequestStatus
from groupdesk.models.moderation import GroupBlock, GroupRemoval
from groupdesk.models.user import User
from groupdesk.services import group_service
from groupdesk.services.exceptions import (
    AlreadyMemberError,
    AuthorizationError,
    BlockedError,
    ConflictError,
    DuplicateRequestError,
    GroupDeskError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


class MembershipState(str, enum.Enum):
    none = "NONE"
    pending = "PENDING"
    active_member = "ACTIVE_MEMBER"
    active_admin = "ACTIVE_ADMIN"
    blocked = "BLOCKED"


class MembershipEvent(str, enum.Enum):
    submit_join_request = "submit_join_request"
    approve = "approve"
    reject = "reject"
    block = "block"
    unblock = "unblock"
    remove = "remove"
    remove_self = "remove_self"


S = MembershipState
E = MembershipEvent

# (state, event) -> next state. Anything absent is illegal.
TRANSITIONS: dict[tuple[MembershipState, MembershipEvent], MembershipState] = {
    (S.none, E.submit_join_request): S.pending,
    (S.pending, E.approve): S.active_member,
    (S.pending, E.reject): S.none,
    (S.active_member, E.block): S.blocked,
    (S.blocked, E.unblock): S.none,
    (S.active_member, E.remove): S.none,
    (S.active_admin, E.remove_self): S.none,
}

# Errors for illegal moves that have a more specific meaning than "not found".
_REJECTIONS: dict[tuple[MembershipState, MembershipEvent], tuple[type[GroupDeskError], str]] = {
    (S.pending, E.submit_join_request): (DuplicateRequestError, "You already have a pending request for this group"),
    (S.active_member, E.submit_join_request): (AlreadyMemberError, "You are already a member of this group"),
    (S.active_admin, E.submit_join_request): (AlreadyMemberError, "You are already a member of this group"),
    (S.blocked, E.submit_join_request): (BlockedError, "You have been blocked from this group"),
    (S.active_member, E.approve): (AlreadyMemberError, "User is already a member of this group"),
    (S.active_admin, E.approve): (AlreadyMemberError, "User is already a member of this group"),
    (S.active_admin, E.block): (AuthorizationError, "Admins cannot be blocked"),
    (S.blocked, E.block): (ConflictError, "User is already blocked"),
    (S.active_admin, E.remove): (AuthorizationError, "Admins can only remove themselves"),
}

_NOT_FOUND = {
    E.approve: "Join request not found",
    E.reject: "Join request not found",
    E.block: "Member not found",
    E.unblock: "Blocked user not found",
    E.remove: "Member not found",
    E.remove_self: "Member not found",
}


def transition(state: MembershipState, event: MembershipEvent) -> MembershipState:
    """Return the next state or raise the domain error for an illegal move."""
    target = TRANSITIONS.get((state, event))
    if target is not None:
        return target
    rejection = _REJECTIONS.get((state, event))
    if rejection is not None:
        error_cls, message = rejection
        raise error_cls(message)
    raise NotFoundError(_NOT_FOUND.get(event, "Membership not found"))


# ── State derivation ───────────────────────────────────────────────


def find_membership(db: Session, group_id: str, user_id: str) -> Optional[GroupMember]:
    return (
        db.query(GroupMember)
        .filter(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
        .first()
    )


def _pending_request(db: Session, group_id: str, user_id: str) -> Optional[JoinRequest]:
    return (
        db.query(JoinRequest)
        .filter(
            JoinRequest.group_id == group_id,
            JoinRequest.user_id == user_id,
            JoinRequest.status == JoinRequestStatus.pending,
        )
        .first()
    )


def _block(db: Session, group_id: str, user_id: str) -> Optional[GroupBlock]:
    return (
        db.query(GroupBlock)
        .filter(GroupBlock.group_id == group_id, GroupBlock.user_id == user_id)
        .first()
    )


def current_state(db: Session, group_id: str, user_id: str) -> MembershipState:
    """Derive the lifecycle state of a (group, user) pair from its rows."""
    if _block(db, group_id, user_id):
        return S.blocked
    member = find_membership(db, group_id, user_id)
    if member and member.status == MembershipStatus.active:
        return S.active_admin if member.role == GroupRole.admin else S.active_member
    if member or _pending_request(db, group_id, user_id):
        return S.pending
    return S.none


def is_member(db: Session, group_id: str, user_id: str) -> bool:
    return current_state(db, group_id, user_id) in (S.active_member, S.active_admin)


def is_admin(db: Session, group_id: str, user_id: str) -> bool:
    return current_state(db, group_id, user_id) == S.active_admin


def is_blocked(db: Session, group_id: str, user_id: str) -> bool:
    return _block(db, group_id, user_id) is not None


# ── Join requests ──────────────────────────────────────────────────


def submit_join_request(db: Session, code: str, user_id: str) -> JoinRequest:
    """NONE -> PENDING for the group identified by its join code."""
    group = group_service.get_group_by_code(db, code)
    transition(current_state(db, group.group_id, user_id), E.submit_join_request)

    request = JoinRequest(group_id=group.group_id, user_id=user_id, status=JoinRequestStatus.pending)
    try:
        with transaction(db):
            db.add(request)
    except IntegrityError:
        # Lost a race with a concurrent request for the same pair.
        raise DuplicateRequestError("You already have a pending request for this group")
    db.refresh(request)
    logger.info("User %s requested to join group %s (request %s)", user_id, group.group_id, request.request_id)
    return request


def _get_request(db: Session, group_id: str, request_id: str) -> JoinRequest:
    request = (
        db.query(JoinRequest)
        .filter(JoinRequest.request_id == request_id, JoinRequest.group_id == group_id)
        .first()
    )
    if not request:
        raise NotFoundError("Join request not found")
    if request.status != JoinRequestStatus.pending:
        raise ConflictError(f"Join request is already {request.status.value}")
    return request


def approve_request(db: Session, group_id: str, request_id: str, admin_id: str) -> GroupMember:
    """PENDING -> ACTIVE_MEMBER: add the membership and close the request together."""
    request = _get_request(db, group_id, request_id)
    transition(current_state(db, group_id, request.user_id), E.approve)

    member = find_membership(db, group_id, request.user_id)
    try:
        with transaction(db):
            if member is None:
                member = GroupMember(group_id=group_id, user_id=request.user_id, role=GroupRole.member)
                db.add(member)
            member.status = MembershipStatus.active
            request.status = JoinRequestStatus.approved
            request.resolved_at = datetime.now(timezone.utc)
            request.resolved_by = admin_id
    except IntegrityError:
        raise AlreadyMemberError("User is already a member of this group")
    db.refresh(member)
    logger.info("Admin %s approved request %s; user %s joined group %s", admin_id, request_id, request.user_id, group_id)
    return member


def reject_request(db: Session, group_id: str, request_id: str, admin_id: str) -> JoinRequest:
    """PENDING -> NONE."""
    request = _get_request(db, group_id, request_id)
    transition(current_state(db, group_id, request.user_id), E.reject)

    with transaction(db):
        request.status = JoinRequestStatus.rejected
        request.resolved_at = datetime.now(timezone.utc)
        request.resolved_by = admin_id
    db.refresh(request)
    logger.info("Admin %s rejected request %s for group %s", admin_id, request_id, group_id)
    return request


# ── Moderation ─────────────────────────────────────────────────────


def block_member(
    db: Session,
    group_id: str,
    target_id: str,
    admin_id: str,
    reason: Optional[str] = None,
) -> GroupBlock:
    """ACTIVE_MEMBER -> BLOCKED: drop the membership and record the block."""
    if target_id == admin_id:
        raise AuthorizationError("You cannot block yourself")
    transition(current_state(db, group_id, target_id), E.block)

    block = GroupBlock(group_id=group_id, user_id=target_id, blocked_by=admin_id, reason=reason)
    try:
        with transaction(db):
            db.delete(find_membership(db, group_id, target_id))
            db.add(block)
    except IntegrityError:
        raise ConflictError("User is already blocked")
    db.refresh(block)
    logger.info("Admin %s blocked user %s from group %s (reason: %s)", admin_id, target_id, group_id, reason)
    return block


def unblock_member(db: Session, group_id: str, target_id: str, admin_id: str) -> None:
    """BLOCKED -> NONE. The user must request to join again."""
    transition(current_state(db, group_id, target_id), E.unblock)
    with transaction(db):
        db.delete(_block(db, group_id, target_id))
    logger.info("Admin %s unblocked user %s in group %s", admin_id, target_id, group_id)


def remove_member(
    db: Session,
    group_id: str,
    target_id: str,
    admin_id: str,
    reason: Optional[str] = None,
) -> GroupRemoval:
    """ACTIVE_* -> NONE. Admins may remove members, or themselves, but not other admins."""
    event = E.remove_self if target_id == admin_id else E.remove
    transition(current_state(db, group_id, target_id), event)

    removal = GroupRemoval(group_id=group_id, user_id=target_id, removed_by=admin_id, reason=reason)
    with transaction(db):
        db.add(removal)
        db.delete(find_membership(db, group_id, target_id))
    db.refresh(removal)
    logger.info("Admin %s removed user %s from group %s", admin_id, target_id, group_id)

    if event == E.remove_self and not _has_admin(db, group_id):
        logger.warning("Group %s has no admins left after user %s removed themselves", group_id, target_id)
    return removal


def _has_admin(db: Session, group_id: str) -> bool:
    return (
        db.query(GroupMember.user_id)
        .filter(
            GroupMember.group_id == group_id,
            GroupMember.role == GroupRole.admin,
            GroupMember.status == MembershipStatus.active,
        )
        .first()
        is not None
    )


# ── Read views ─────────────────────────────────────────────────────


def check_blocked(db: Session, code: str, user_id: str) -> tuple[bool, Optional[str]]:
    """Whether the user is blocked from the group with this join code, and why."""
    group = group_service.get_group_by_code(db, code)
    block = _block(db, group.group_id, user_id)
    if block is None:
        return False, None
    return True, block.reason


def list_pending_requests(db: Session, group_id: str) -> list[dict[str, Any]]:
    rows = (
        db.query(JoinRequest, User.display_name)
        .join(User, User.user_id == JoinRequest.user_id)
        .filter(JoinRequest.group_id == group_id, JoinRequest.status == JoinRequestStatus.pending)
        .order_by(JoinRequest.created_at)
        .all()
    )
    return [
        {
            "request_id": req.request_id,
            "user_id": req.user_id,
            "display_name": display_name,
            "status": req.status.value,
            "created_at": req.created_at,
        }
        for req, display_name in rows
    ]


def list_members(db: Session, group_id: str) -> list[dict[str, Any]]:
    rows = (
        db.query(GroupMember, User.display_name)
        .join(User, User.user_id == GroupMember.user_id)
        .filter(GroupMember.group_id == group_id, GroupMember.status == MembershipStatus.active)
        .order_by(GroupMember.joined_at)
        .all()
    )
    return [
        {
            "user_id": member.user_id,
            "display_name": display_name,
            "role": member.role.value,
            "status": member.status.value,
            "joined_at": member.joined_at,
        }
        for member, display_name in rows
    ]


def list_blocked(db: Session, group_id: str) -> list[dict[str, Any]]:
    blocker = aliased(User)
    rows = (
        db.query(GroupBlock, User.display_name, blocker.display_name)
        .join(User, User.user_id == GroupBlock.user_id)
        .join(blocker, blocker.user_id == GroupBlock.blocked_by)
        .filter(GroupBlock.group_id == group_id)
        .order_by(GroupBlock.blocked_at.desc())
        .all()
    )
    return [
        {
            "block_id": block.block_id,
            "user_id": block.user_id,
            "display_name": display_name,
            "blocked_by": block.blocked_by,
            "blocked_by_name": blocked_by_name,
            "blocked_at": block.blocked_at,
            "reason": block.reason,
        }
        for block, display_name, blocked_by_name in rows
    ]


def verify_membership(db: Session, group_id: str, user_id: str) -> dict[str, Any]:
    """Advisory snapshot of membership and pending-request state for UI display."""
    member = find_membership(db, group_id, user_id)
    pending = _pending_request(db, group_id, user_id)
    return {
        "is_member": member is not None and member.status == MembershipStatus.active,
        "role": member.role.value if member else None,
        "status": member.status.value if member else None,
        "has_pending_request": pending is not None,
    }
