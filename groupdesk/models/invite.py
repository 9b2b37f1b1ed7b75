"""GroupInvite ORM model: admin-issued invitations."""
import uuid
from datetime import datetime, timezone
import enum
from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Enum as SAEnum, text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from groupdesk.database import Base


class InviteStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"


class GroupInvite(Base):
    __tablename__ = "group_invites"
    __table_args__ = (
        Index(
            "uq_group_invites_pending",
            "group_id",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    invite_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    group_id = Column(String(36), ForeignKey("groups.group_id"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    invited_by = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    status = Column(SAEnum(InviteStatus), nullable=False, default=InviteStatus.pending)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), server_default=func.now())
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    group = relationship("Group", back_populates="invites")
