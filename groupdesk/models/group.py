"""Group and GroupMember ORM models."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, ForeignKey, Enum as SAEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from groupdesk.database import Base
import enum

# Join codes are this many uppercase letters or digits.
CODE_LENGTH = 6


class GroupRole(str, enum.Enum):
    admin = "admin"
    member = "member"


class MembershipStatus(str, enum.Enum):
    active = "active"
    pending = "pending"


class Group(Base):
    __tablename__ = "groups"

    group_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(150), nullable=False)
    code = Column(String(CODE_LENGTH), nullable=False, unique=True, index=True)
    created_by = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), server_default=func.now())

    # Deleting a group takes every dependent row with it in the same flush.
    members = relationship("GroupMember", back_populates="group", cascade="all, delete-orphan")
    join_requests = relationship("JoinRequest", cascade="all, delete-orphan")
    blocks = relationship("GroupBlock", back_populates="group", cascade="all, delete-orphan")
    removals = relationship("GroupRemoval", back_populates="group", cascade="all, delete-orphan")
    invites = relationship("GroupInvite", back_populates="group", cascade="all, delete-orphan")


class GroupMember(Base):
    __tablename__ = "group_members"

    group_id = Column(String(36), ForeignKey("groups.group_id"), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.user_id"), primary_key=True)
    role = Column(SAEnum(GroupRole), nullable=False, default=GroupRole.member)
    status = Column(SAEnum(MembershipStatus), nullable=False, default=MembershipStatus.active)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    group = relationship("Group", back_populates="members")
