"""Direct invitations: an admin invites a user, the user accepts or declines."""
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from groupdesk.database import transaction
from groupdesk.models.group import Group, GroupMember, GroupRole, MembershipStatus
from groupdesk.models.invite import GroupInvite, InviteStatus
from groupdesk.models.join_request import JoinRequest, JoinRequestStatus
from groupdesk.models.user import User
from groupdesk.services import membership_service
from groupdesk.services.exceptions import (
    AlreadyMemberError,
    AuthorizationError,
    BlockedError,
    ConflictError,
    NotFoundError,
)
from groupdesk.services.membership_service import MembershipState

logger = logging.getLogger(__name__)


def _check_invitable(db: Session, group_id: str, user_id: str) -> None:
    state = membership_service.current_state(db, group_id, user_id)
    if state == MembershipState.blocked:
        raise BlockedError("User is blocked from this group")
    if state in (MembershipState.active_member, MembershipState.active_admin):
        raise AlreadyMemberError("User is already a member of this group")


def invite_user(db: Session, group_id: str, invitee_id: str, admin_id: str) -> GroupInvite:
    if not db.query(User.user_id).filter(User.user_id == invitee_id).first():
        raise NotFoundError("User not found")
    _check_invitable(db, group_id, invitee_id)

    invite = GroupInvite(group_id=group_id, user_id=invitee_id, invited_by=admin_id)
    try:
        with transaction(db):
            db.add(invite)
    except IntegrityError:
        raise ConflictError("User already has a pending invite to this group")
    db.refresh(invite)
    logger.info("Admin %s invited user %s to group %s (invite %s)", admin_id, invitee_id, group_id, invite.invite_id)
    return invite


def list_pending_invites(db: Session, user_id: str) -> list[dict[str, Any]]:
    rows = (
        db.query(GroupInvite, Group.name, User.display_name)
        .join(Group, Group.group_id == GroupInvite.group_id)
        .join(User, User.user_id == GroupInvite.invited_by)
        .filter(GroupInvite.user_id == user_id, GroupInvite.status == InviteStatus.pending)
        .order_by(GroupInvite.created_at.desc())
        .all()
    )
    return [
        {
            "invite_id": invite.invite_id,
            "group_id": invite.group_id,
            "group_name": group_name,
            "invited_by": invite.invited_by,
            "invited_by_name": invited_by_name,
            "created_at": invite.created_at,
        }
        for invite, group_name, invited_by_name in rows
    ]


def _get_own_pending_invite(db: Session, invite_id: str, user_id: str) -> GroupInvite:
    invite = db.query(GroupInvite).filter(GroupInvite.invite_id == invite_id).first()
    if not invite:
        raise NotFoundError("Invite not found")
    if invite.user_id != user_id:
        raise AuthorizationError("This invite belongs to another user")
    if invite.status != InviteStatus.pending:
        raise ConflictError(f"Invite is already {invite.status.value}")
    return invite


def accept_invite(db: Session, invite_id: str, user_id: str) -> GroupMember:
    """Join the group as an active member; any pending join request is resolved with it."""
    invite = _get_own_pending_invite(db, invite_id, user_id)
    group_id = invite.group_id
    _check_invitable(db, group_id, user_id)

    now = datetime.now(timezone.utc)
    try:
        with transaction(db):
            member = membership_service.find_membership(db, group_id, user_id)
            if member is None:
                member = GroupMember(group_id=group_id, user_id=user_id, role=GroupRole.member)
                db.add(member)
            member.status = MembershipStatus.active
            invite.status = InviteStatus.accepted
            invite.resolved_at = now
            db.query(JoinRequest).filter(
                JoinRequest.group_id == group_id,
                JoinRequest.user_id == user_id,
                JoinRequest.status == JoinRequestStatus.pending,
            ).update(
                {"status": JoinRequestStatus.approved, "resolved_at": now, "resolved_by": invite.invited_by},
                synchronize_session=False,
            )
    except IntegrityError:
        raise AlreadyMemberError("You are already a member of this group")
    db.refresh(member)
    logger.info("User %s accepted invite %s to group %s", user_id, invite_id, group_id)
    return member


def decline_invite(db: Session, invite_id: str, user_id: str) -> GroupInvite:
    invite = _get_own_pending_invite(db, invite_id, user_id)
    with transaction(db):
        invite.status = InviteStatus.declined
        invite.resolved_at = datetime.now(timezone.utc)
    db.refresh(invite)
    logger.info("User %s declined invite %s", user_id, invite_id)
    return invite
