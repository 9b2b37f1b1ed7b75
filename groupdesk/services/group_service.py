"""Group registry: creation with unique join codes, lookup, listing, deletion."""
import logging
import re
import secrets
import string

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from groupdesk.config import settings
from groupdesk.database import transaction
from groupdesk.models.group import CODE_LENGTH, Group, GroupMember, GroupRole, MembershipStatus
from groupdesk.services.exceptions import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_PATTERN = re.compile(rf"^[A-Z0-9]{{{CODE_LENGTH}}}$")


def generate_code(length: int | None = None) -> str:
    """Random uppercase alphanumeric join code."""
    length = length or CODE_LENGTH
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    """Upper-case and validate a user-supplied join code."""
    normalized = (code or "").strip().upper()
    if not CODE_PATTERN.match(normalized):
        raise ValidationError(f"Group code must be {CODE_LENGTH} letters or digits")
    return normalized


def create_group(db: Session, caller_id: str, name: str) -> Group:
    """Create a group and make the caller its active admin, atomically.

    A code collision rolls the attempt back and retries with a fresh code;
    after GROUP_CODE_MAX_ATTEMPTS collisions a ConflictError is raised.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Group name is required")

    for attempt in range(1, settings.GROUP_CODE_MAX_ATTEMPTS + 1):
        code = generate_code()
        if db.query(Group.group_id).filter(Group.code == code).first():
            logger.warning("Join code %s already taken (attempt %d)", code, attempt)
            continue
        try:
            with transaction(db):
                group = Group(name=name, code=code, created_by=caller_id)
                db.add(group)
                db.flush()
                db.add(GroupMember(
                    group_id=group.group_id,
                    user_id=caller_id,
                    role=GroupRole.admin,
                    status=MembershipStatus.active,
                ))
        except IntegrityError:
            # Another writer claimed the code between the check and the insert.
            logger.warning("Join code %s collided on insert (attempt %d)", code, attempt)
            continue
        db.refresh(group)
        logger.info("Created group '%s' (%s) with code %s by user %s", name, group.group_id, code, caller_id)
        return group

    raise ConflictError("Could not generate a unique group code, please try again")


def list_groups_for_user(db: Session, user_id: str) -> list[Group]:
    """Groups the user holds any membership in, newest first."""
    return (
        db.query(Group)
        .join(GroupMember, GroupMember.group_id == Group.group_id)
        .filter(GroupMember.user_id == user_id)
        .order_by(Group.created_at.desc())
        .all()
    )


def group_exists(db: Session, group_id: str) -> bool:
    return db.query(Group.group_id).filter(Group.group_id == group_id).first() is not None


def get_group(db: Session, group_id: str) -> Group:
    group = db.query(Group).filter(Group.group_id == group_id).first()
    if not group:
        raise NotFoundError("Group not found")
    return group


def get_group_by_code(db: Session, code: str) -> Group:
    group = db.query(Group).filter(Group.code == normalize_code(code)).first()
    if not group:
        raise NotFoundError("Invalid group code")
    return group


def delete_group(db: Session, group_id: str) -> None:
    """Delete a group together with its memberships, requests, blocks, removals and invites."""
    group = get_group(db, group_id)
    with transaction(db):
        db.delete(group)
    logger.info("Deleted group %s", group_id)
