"""Group management API routes."""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from groupdesk.database import get_db
from groupdesk.dependencies import get_current_user, require_admin, require_member
from groupdesk.models.user import User
from groupdesk.schemas.common import MessageOut
from groupdesk.schemas.group import (
    BlockedList,
    CheckBlockedOut,
    GroupCreate,
    GroupCreated,
    GroupDetail,
    GroupList,
    GroupOut,
    InviteCreate,
    InviteCreated,
    InviteOut,
    JoinGroup,
    JoinResult,
    MemberList,
    ModerationReason,
    NotificationList,
    PendingInviteList,
    RequestDecision,
    RequestList,
    VerifyMembershipOut,
)
from groupdesk.services import group_service, invite_service, membership_service, notification_service

logger = logging.getLogger(__name__)
router = APIRouter()


# ── Caller-scoped routes (declared before /{group_id}) ─────────────


@router.post("/create", response_model=GroupCreated, status_code=status.HTTP_201_CREATED)
def create_group(payload: GroupCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Create a new group. Creator is automatically added as admin."""
    group = group_service.create_group(db, user.user_id, payload.name)
    return GroupCreated(group_id=group.group_id, group_code=group.code)


@router.post("/join", response_model=JoinResult)
def join_group(payload: JoinGroup, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Submit a join request using a group's code."""
    request = membership_service.submit_join_request(db, payload.group_code, user.user_id)
    return JoinResult(group_id=request.group_id, request_id=request.request_id, status=request.status.value)


@router.get("/my-groups", response_model=GroupList)
def my_groups(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """List groups the caller belongs to, newest first."""
    groups = group_service.list_groups_for_user(db, user.user_id)
    return GroupList(groups=[GroupOut.model_validate(g) for g in groups])


@router.get("/user-notifications", response_model=NotificationList)
def user_notifications(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Unread block and removal notifications for the caller."""
    return NotificationList(notifications=notification_service.list_notifications(db, user.user_id))


@router.delete("/notifications/{notification_id}", response_model=MessageOut)
def dismiss_notification(notification_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Mark a notification as read."""
    notification_service.dismiss(db, notification_id, user.user_id)
    return MessageOut(message="Notification dismissed")


@router.get("/invites/pending", response_model=PendingInviteList)
def pending_invites(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Invites waiting for the caller's answer."""
    return PendingInviteList(invites=invite_service.list_pending_invites(db, user.user_id))


@router.post("/invites/{invite_id}/accept", response_model=MessageOut)
def accept_invite(invite_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    member = invite_service.accept_invite(db, invite_id, user.user_id)
    return MessageOut(message=f"Joined group {member.group_id}")


@router.post("/invites/{invite_id}/decline", response_model=MessageOut)
def decline_invite(invite_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    invite_service.decline_invite(db, invite_id, user.user_id)
    return MessageOut(message="Invite declined")


@router.get("/groups/check-blocked/{group_code}", response_model=CheckBlockedOut)
def check_blocked(group_code: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Whether the caller is blocked from the group with this code."""
    blocked, reason = membership_service.check_blocked(db, group_code, user.user_id)
    return CheckBlockedOut(is_blocked=blocked, reason=reason)


# ── Moderation (admin) ─────────────────────────────────────────────


@router.post("/groups/{group_id}/members/{member_id}/block", response_model=MessageOut)
def block_member(
    group_id: str,
    member_id: str,
    payload: ModerationReason | None = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Block a member: their membership is deleted and they cannot rejoin."""
    reason = payload.reason if payload else None
    membership_service.block_member(db, group_id, member_id, admin.user_id, reason)
    return MessageOut(message="Member blocked")


@router.post("/groups/{group_id}/members/{member_id}/unblock", response_model=MessageOut)
def unblock_member(group_id: str, member_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Lift a block. The user must request to join again."""
    membership_service.unblock_member(db, group_id, member_id, admin.user_id)
    return MessageOut(message="Member unblocked")


@router.get("/groups/{group_id}/blocked-members", response_model=BlockedList)
def blocked_members(group_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    return BlockedList(blocked_members=membership_service.list_blocked(db, group_id))


# ── Group-scoped routes ────────────────────────────────────────────


@router.get("/{group_id}", response_model=GroupDetail)
def get_group(group_id: str, user: User = Depends(require_member), db: Session = Depends(get_db)):
    """Fetch a group with the caller's role and the active member count."""
    group = group_service.get_group(db, group_id)
    role = "admin" if membership_service.is_admin(db, group_id, user.user_id) else "member"
    member_count = len(membership_service.list_members(db, group_id))
    return GroupDetail(group=GroupOut.model_validate(group), role=role, member_count=member_count)


@router.get("/{group_id}/members", response_model=MemberList)
def list_members(group_id: str, user: User = Depends(require_member), db: Session = Depends(get_db)):
    return MemberList(members=membership_service.list_members(db, group_id))


@router.delete("/{group_id}", response_model=MessageOut)
def delete_group(group_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Delete a group and everything attached to it."""
    group_service.delete_group(db, group_id)
    return MessageOut(message="Group deleted")


@router.get("/{group_id}/requests", response_model=RequestList)
def list_requests(group_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Pending join requests, oldest first."""
    return RequestList(requests=membership_service.list_pending_requests(db, group_id))


@router.put("/{group_id}/requests/{request_id}/approve", response_model=RequestDecision)
def approve_request(group_id: str, request_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    membership_service.approve_request(db, group_id, request_id, admin.user_id)
    return RequestDecision(request_id=request_id, status="approved")


@router.put("/{group_id}/requests/{request_id}/reject", response_model=RequestDecision)
def reject_request(group_id: str, request_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    membership_service.reject_request(db, group_id, request_id, admin.user_id)
    return RequestDecision(request_id=request_id, status="rejected")


@router.post("/{group_id}/members/{member_id}/remove", response_model=MessageOut)
def remove_member(
    group_id: str,
    member_id: str,
    payload: ModerationReason | None = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Remove a member. Admins may only remove themselves, not other admins."""
    reason = payload.reason if payload else None
    membership_service.remove_member(db, group_id, member_id, admin.user_id, reason)
    return MessageOut(message="Member removed")


@router.get("/{group_id}/verify-membership", response_model=VerifyMembershipOut)
def verify_membership(group_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Membership snapshot for the caller, including a pending join request."""
    group_service.get_group(db, group_id)
    return VerifyMembershipOut(**membership_service.verify_membership(db, group_id, user.user_id))


@router.post("/{group_id}/invite", response_model=InviteCreated, status_code=status.HTTP_201_CREATED)
def invite_user(
    group_id: str,
    payload: InviteCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    invite = invite_service.invite_user(db, group_id, payload.user_id, admin.user_id)
    return InviteCreated(invite=InviteOut(
        invite_id=invite.invite_id,
        group_id=invite.group_id,
        user_id=invite.user_id,
        invited_by=invite.invited_by,
        status=invite.status.value,
        created_at=invite.created_at,
    ))
