"""Notification feed derived from block and removal records."""
import logging
from typing import Any

from sqlalchemy.orm import Session

from groupdesk.database import transaction
from groupdesk.models.group import Group
from groupdesk.models.moderation import GroupBlock, GroupRemoval
from groupdesk.services.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def list_notifications(db: Session, user_id: str) -> list[dict[str, Any]]:
    """Unread block and removal events for a user, newest first."""
    blocks = (
        db.query(GroupBlock, Group.name)
        .join(Group, Group.group_id == GroupBlock.group_id)
        .filter(GroupBlock.user_id == user_id, GroupBlock.notification_read.is_(False))
        .all()
    )
    removals = (
        db.query(GroupRemoval, Group.name)
        .join(Group, Group.group_id == GroupRemoval.group_id)
        .filter(GroupRemoval.user_id == user_id, GroupRemoval.notification_read.is_(False))
        .all()
    )

    notifications = [
        {
            "id": block.block_id,
            "type": "blocked",
            "group_id": block.group_id,
            "group_name": group_name,
            "reason": block.reason,
            "created_at": block.blocked_at,
        }
        for block, group_name in blocks
    ] + [
        {
            "id": removal.removal_id,
            "type": "removed",
            "group_id": removal.group_id,
            "group_name": group_name,
            "reason": removal.reason,
            "created_at": removal.removed_at,
        }
        for removal, group_name in removals
    ]
    notifications.sort(key=lambda n: n["created_at"], reverse=True)
    return notifications


def dismiss(db: Session, notification_id: str, user_id: str) -> str:
    """Mark one notification read. Block records are checked before removal records.

    Returns the kind of record that was updated.
    """
    with transaction(db):
        updated = (
            db.query(GroupBlock)
            .filter(GroupBlock.block_id == notification_id, GroupBlock.user_id == user_id)
            .update({"notification_read": True}, synchronize_session=False)
        )
        kind = "blocked"
        if updated == 0:
            updated = (
                db.query(GroupRemoval)
                .filter(GroupRemoval.removal_id == notification_id, GroupRemoval.user_id == user_id)
                .update({"notification_read": True}, synchronize_session=False)
            )
            kind = "removed"
        if updated == 0:
            raise NotFoundError("Notification not found")
    logger.info("User %s dismissed %s notification %s", user_id, kind, notification_id)
    return kind
