"""Pydantic schemas for Groups, membership, moderation and invites."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import Field

from groupdesk.schemas.common import CamelModel, Envelope


class GroupCreate(CamelModel):
    name: str = Field(min_length=1, max_length=150)


class GroupCreated(Envelope):
    group_id: str
    group_code: str


class JoinGroup(CamelModel):
    group_code: str = Field(max_length=20)


class JoinResult(Envelope):
    group_id: str
    request_id: str
    status: str


class GroupOut(CamelModel):
    group_id: str
    name: str
    code: str
    created_by: str
    created_at: datetime


class GroupList(Envelope):
    groups: list[GroupOut] = []


class GroupDetail(Envelope):
    group: GroupOut
    role: str
    member_count: int


class MemberOut(CamelModel):
    user_id: str
    display_name: str
    role: str
    status: str
    joined_at: Optional[datetime] = None


class MemberList(Envelope):
    members: list[MemberOut] = []


class JoinRequestOut(CamelModel):
    request_id: str
    user_id: str
    display_name: str
    status: str
    created_at: Optional[datetime] = None


class RequestList(Envelope):
    requests: list[JoinRequestOut] = []


class RequestDecision(Envelope):
    request_id: str
    status: str


class ModerationReason(CamelModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class BlockedMemberOut(CamelModel):
    block_id: str
    user_id: str
    display_name: str
    blocked_by: str
    blocked_by_name: str
    blocked_at: datetime
    reason: Optional[str] = None


class BlockedList(Envelope):
    blocked_members: list[BlockedMemberOut] = []


class CheckBlockedOut(Envelope):
    is_blocked: bool
    reason: Optional[str] = None


class VerifyMembershipOut(Envelope):
    is_member: bool
    role: Optional[str] = None
    status: Optional[str] = None
    has_pending_request: bool


class NotificationOut(CamelModel):
    id: str
    type: str
    group_id: str
    group_name: str
    reason: Optional[str] = None
    created_at: datetime


class NotificationList(Envelope):
    notifications: list[NotificationOut] = []


class InviteCreate(CamelModel):
    user_id: str


class InviteOut(CamelModel):
    invite_id: str
    group_id: str
    user_id: str
    invited_by: str
    status: str
    created_at: datetime


class InviteCreated(Envelope):
    invite: InviteOut


class PendingInviteOut(CamelModel):
    invite_id: str
    group_id: str
    group_name: str
    invited_by: str
    invited_by_name: str
    created_at: datetime


class PendingInviteList(Envelope):
    invites: list[PendingInviteOut] = []
