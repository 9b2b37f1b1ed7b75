"""Block and removal records: the sources of the notification feed.

Both tables are append-only apart from `notification_read`.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from groupdesk.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GroupBlock(Base):
    __tablename__ = "group_blocks"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_blocks_group_user"),)

    block_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    group_id = Column(String(36), ForeignKey("groups.group_id"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    blocked_by = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    blocked_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    reason = Column(String(500), nullable=True)
    notification_read = Column(Boolean, nullable=False, default=False)

    group = relationship("Group", back_populates="blocks")


class GroupRemoval(Base):
    __tablename__ = "group_removals"

    removal_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    group_id = Column(String(36), ForeignKey("groups.group_id"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    removed_by = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    removed_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    reason = Column(String(500), nullable=True)
    notification_read = Column(Boolean, nullable=False, default=False)

    group = relationship("Group", back_populates="removals")
