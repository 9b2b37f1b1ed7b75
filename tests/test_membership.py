"""Tests for the membership lifecycle: join requests, approval, blocking, removal."""
import pytest

from groupdesk.models.group import GroupMember, GroupRole, MembershipStatus
from groupdesk.models.join_request import JoinRequest, JoinRequestStatus
from groupdesk.models.moderation import GroupBlock, GroupRemoval
from groupdesk.services import group_service, membership_service as ms
from groupdesk.services.exceptions import (
    AlreadyMemberError,
    AuthorizationError,
    BlockedError,
    ConflictError,
    DuplicateRequestError,
    NotFoundError,
)
from groupdesk.services.membership_service import MembershipEvent, MembershipState
from tests.conftest import create_test_group, join_and_approve, make_user, register_user


@pytest.fixture
def setup(db):
    """An admin, a prospective member and a group."""
    admin = make_user(db, "Admin")
    user = make_user(db, "User")
    group = group_service.create_group(db, admin.user_id, "Book Club")
    return admin, user, group


def _join(db, group, user):
    return ms.submit_join_request(db, group.code, user.user_id)


def _member(db, group, admin, user):
    request = _join(db, group, user)
    ms.approve_request(db, group.group_id, request.request_id, admin.user_id)


class TestTransitionTable:
    """The table alone decides legality."""

    def test_legal_moves(self):
        assert ms.transition(MembershipState.none, MembershipEvent.submit_join_request) == MembershipState.pending
        assert ms.transition(MembershipState.pending, MembershipEvent.approve) == MembershipState.active_member
        assert ms.transition(MembershipState.pending, MembershipEvent.reject) == MembershipState.none
        assert ms.transition(MembershipState.active_member, MembershipEvent.block) == MembershipState.blocked
        assert ms.transition(MembershipState.blocked, MembershipEvent.unblock) == MembershipState.none
        assert ms.transition(MembershipState.active_member, MembershipEvent.remove) == MembershipState.none
        assert ms.transition(MembershipState.active_admin, MembershipEvent.remove_self) == MembershipState.none

    @pytest.mark.parametrize("state, error", [
        (MembershipState.pending, DuplicateRequestError),
        (MembershipState.active_member, AlreadyMemberError),
        (MembershipState.active_admin, AlreadyMemberError),
        (MembershipState.blocked, BlockedError),
    ])
    def test_join_rejections(self, state, error):
        with pytest.raises(error):
            ms.transition(state, MembershipEvent.submit_join_request)

    def test_unknown_move_is_not_found(self):
        with pytest.raises(NotFoundError):
            ms.transition(MembershipState.none, MembershipEvent.unblock)


class TestJoinRequests:

    def test_join_creates_pending_request(self, db, setup):
        _, user, group = setup
        request = _join(db, group, user)
        assert request.status == JoinRequestStatus.pending
        assert ms.current_state(db, group.group_id, user.user_id) == MembershipState.pending
        assert not ms.is_member(db, group.group_id, user.user_id)

    def test_join_code_is_case_insensitive(self, db, setup):
        _, user, group = setup
        request = ms.submit_join_request(db, group.code.lower(), user.user_id)
        assert request.group_id == group.group_id

    def test_second_request_is_duplicate(self, db, setup):
        _, user, group = setup
        _join(db, group, user)
        with pytest.raises(DuplicateRequestError):
            _join(db, group, user)
        assert db.query(JoinRequest).filter(JoinRequest.user_id == user.user_id).count() == 1

    def test_member_cannot_request_again(self, db, setup):
        admin, user, group = setup
        with pytest.raises(AlreadyMemberError):
            _join(db, group, admin)
        _member(db, group, admin, user)
        with pytest.raises(AlreadyMemberError):
            _join(db, group, user)

    def test_unknown_code(self, db, setup):
        _, user, _ = setup
        with pytest.raises(NotFoundError):
            ms.submit_join_request(db, "NOPE00", user.user_id)

    def test_approve(self, db, setup):
        admin, user, group = setup
        request = _join(db, group, user)
        member = ms.approve_request(db, group.group_id, request.request_id, admin.user_id)
        assert member.role == GroupRole.member
        assert ms.current_state(db, group.group_id, user.user_id) == MembershipState.active_member
        assert ms.list_pending_requests(db, group.group_id) == []
        db.refresh(request)
        assert request.status == JoinRequestStatus.approved
        assert request.resolved_by == admin.user_id

    def test_reject_returns_to_none(self, db, setup):
        admin, user, group = setup
        request = _join(db, group, user)
        ms.reject_request(db, group.group_id, request.request_id, admin.user_id)
        assert ms.current_state(db, group.group_id, user.user_id) == MembershipState.none
        assert ms.find_membership(db, group.group_id, user.user_id) is None
        # A rejected user may ask again.
        again = _join(db, group, user)
        assert again.request_id != request.request_id

    def test_resolved_request_cannot_be_reused(self, db, setup):
        admin, user, group = setup
        request = _join(db, group, user)
        ms.reject_request(db, group.group_id, request.request_id, admin.user_id)
        with pytest.raises(ConflictError, match="already rejected"):
            ms.approve_request(db, group.group_id, request.request_id, admin.user_id)

    def test_request_from_other_group_not_found(self, db, setup):
        admin, user, group = setup
        other = group_service.create_group(db, admin.user_id, "Other")
        request = _join(db, group, user)
        with pytest.raises(NotFoundError):
            ms.approve_request(db, other.group_id, request.request_id, admin.user_id)


class TestBlocking:

    def test_block_member(self, db, setup):
        admin, user, group = setup
        _member(db, group, admin, user)
        block = ms.block_member(db, group.group_id, user.user_id, admin.user_id, reason="spam")
        assert block.reason == "spam"
        assert not ms.is_member(db, group.group_id, user.user_id)
        assert not ms.is_admin(db, group.group_id, user.user_id)
        assert ms.is_blocked(db, group.group_id, user.user_id)
        assert db.query(GroupMember).filter(GroupMember.user_id == user.user_id).count() == 0

    def test_blocked_user_cannot_join(self, db, setup):
        admin, user, group = setup
        _member(db, group, admin, user)
        ms.block_member(db, group.group_id, user.user_id, admin.user_id)
        with pytest.raises(BlockedError):
            _join(db, group, user)
        pending = db.query(JoinRequest).filter(
            JoinRequest.user_id == user.user_id, JoinRequest.status == JoinRequestStatus.pending
        )
        assert pending.count() == 0

    def test_unblock_returns_to_none(self, db, setup):
        admin, user, group = setup
        _member(db, group, admin, user)
        ms.block_member(db, group.group_id, user.user_id, admin.user_id)
        ms.unblock_member(db, group.group_id, user.user_id, admin.user_id)
        assert ms.current_state(db, group.group_id, user.user_id) == MembershipState.none
        assert not ms.is_member(db, group.group_id, user.user_id)

    def test_cannot_block_self(self, db, setup):
        admin, _, group = setup
        with pytest.raises(AuthorizationError):
            ms.block_member(db, group.group_id, admin.user_id, admin.user_id)
        assert ms.is_admin(db, group.group_id, admin.user_id)
        assert db.query(GroupBlock).count() == 0

    def test_cannot_block_admin(self, db, setup):
        admin, user, group = setup
        _member(db, group, admin, user)
        db.query(GroupMember).filter(GroupMember.user_id == user.user_id).update({"role": GroupRole.admin})
        db.commit()
        with pytest.raises(AuthorizationError):
            ms.block_member(db, group.group_id, user.user_id, admin.user_id)
        assert ms.is_admin(db, group.group_id, user.user_id)
        assert db.query(GroupBlock).count() == 0

    def test_block_non_member_not_found(self, db, setup):
        admin, user, group = setup
        with pytest.raises(NotFoundError):
            ms.block_member(db, group.group_id, user.user_id, admin.user_id)

    def test_unblock_not_blocked(self, db, setup):
        admin, user, group = setup
        with pytest.raises(NotFoundError):
            ms.unblock_member(db, group.group_id, user.user_id, admin.user_id)

    def test_list_blocked(self, db, setup):
        admin, user, group = setup
        _member(db, group, admin, user)
        ms.block_member(db, group.group_id, user.user_id, admin.user_id, reason="spam")
        blocked = ms.list_blocked(db, group.group_id)
        assert len(blocked) == 1
        assert blocked[0]["display_name"] == "User"
        assert blocked[0]["blocked_by_name"] == "Admin"
        assert blocked[0]["reason"] == "spam"


class TestRemoval:

    def test_remove_member(self, db, setup):
        admin, user, group = setup
        _member(db, group, admin, user)
        ms.remove_member(db, group.group_id, user.user_id, admin.user_id, reason="inactive")
        assert ms.current_state(db, group.group_id, user.user_id) == MembershipState.none
        removals = db.query(GroupRemoval).filter(GroupRemoval.user_id == user.user_id).all()
        assert len(removals) == 1
        assert removals[0].reason == "inactive"

    def test_removed_member_may_rejoin(self, db, setup):
        admin, user, group = setup
        _member(db, group, admin, user)
        ms.remove_member(db, group.group_id, user.user_id, admin.user_id)
        request = _join(db, group, user)
        assert request.status == JoinRequestStatus.pending

    def test_cannot_remove_other_admin(self, db, setup):
        admin, user, group = setup
        _member(db, group, admin, user)
        db.query(GroupMember).filter(GroupMember.user_id == user.user_id).update({"role": GroupRole.admin})
        db.commit()
        with pytest.raises(AuthorizationError):
            ms.remove_member(db, group.group_id, user.user_id, admin.user_id)
        assert ms.is_admin(db, group.group_id, user.user_id)
        assert db.query(GroupRemoval).count() == 0

    def test_admin_may_remove_self(self, db, setup):
        admin, _, group = setup
        ms.remove_member(db, group.group_id, admin.user_id, admin.user_id)
        assert ms.current_state(db, group.group_id, admin.user_id) == MembershipState.none
        assert db.query(GroupRemoval).count() == 1

    def test_remove_non_member_not_found(self, db, setup):
        admin, user, group = setup
        with pytest.raises(NotFoundError):
            ms.remove_member(db, group.group_id, user.user_id, admin.user_id)


class TestConcurrentWrites:
    """A writer that passes the state check but loses at the unique constraint gets a domain error."""

    def test_join_loses_to_pending_request(self, db, setup, monkeypatch):
        _, user, group = setup
        _join(db, group, user)
        monkeypatch.setattr(ms, "current_state", lambda db, group_id, user_id: MembershipState.none)

        with pytest.raises(DuplicateRequestError):
            _join(db, group, user)
        assert db.query(JoinRequest).count() == 1

    def test_approve_loses_to_existing_membership(self, db, setup, monkeypatch):
        admin, user, group = setup
        request = _join(db, group, user)
        existing = GroupMember(
            group_id=group.group_id,
            user_id=user.user_id,
            role=GroupRole.member,
            status=MembershipStatus.active,
        )
        db.add(existing)
        db.commit()
        db.expunge(existing)
        monkeypatch.setattr(ms, "find_membership", lambda db, group_id, user_id: None)

        with pytest.raises(AlreadyMemberError):
            ms.approve_request(db, group.group_id, request.request_id, admin.user_id)
        monkeypatch.undo()

        assert db.query(GroupMember).filter_by(group_id=group.group_id, user_id=user.user_id).count() == 1
        db.refresh(request)
        assert request.status == JoinRequestStatus.pending

    def test_block_loses_to_existing_block(self, db, setup, monkeypatch):
        admin, user, group = setup
        _member(db, group, admin, user)
        db.add(GroupBlock(group_id=group.group_id, user_id=user.user_id, blocked_by=admin.user_id, reason="first"))
        db.commit()
        monkeypatch.setattr(ms, "current_state", lambda db, group_id, user_id: MembershipState.active_member)

        with pytest.raises(ConflictError, match="already blocked"):
            ms.block_member(db, group.group_id, user.user_id, admin.user_id, reason="second")
        monkeypatch.undo()

        blocks = db.query(GroupBlock).all()
        assert [b.reason for b in blocks] == ["first"]
        # The membership delete was rolled back with the failed insert.
        assert ms.find_membership(db, group.group_id, user.user_id) is not None


class TestVerifyMembership:

    def test_states(self, db, setup):
        admin, user, group = setup
        assert ms.verify_membership(db, group.group_id, user.user_id) == {
            "is_member": False, "role": None, "status": None, "has_pending_request": False,
        }
        request = _join(db, group, user)
        assert ms.verify_membership(db, group.group_id, user.user_id)["has_pending_request"] is True
        ms.approve_request(db, group.group_id, request.request_id, admin.user_id)
        assert ms.verify_membership(db, group.group_id, user.user_id) == {
            "is_member": True, "role": "member", "status": "active", "has_pending_request": False,
        }


class TestMembershipAPI:
    """End-to-end scenarios over HTTP."""

    def test_book_club_scenario(self, client):
        alice = register_user(client, name="Alice")
        bob = register_user(client, name="Bob")
        group = create_test_group(client, alice, name="Book Club")
        gid = group["groupId"]

        resp = client.post("/api/groups/join", json={"groupCode": group["groupCode"]}, headers=bob["headers"])
        assert resp.status_code == 200
        assert resp.json()["groupId"] == gid
        assert resp.json()["status"] == "pending"

        resp = client.get(f"/api/groups/{gid}/requests", headers=alice["headers"])
        requests = resp.json()["requests"]
        assert [r["displayName"] for r in requests] == ["Bob"]

        resp = client.put(f"/api/groups/{gid}/requests/{requests[0]['requestId']}/approve", headers=alice["headers"])
        assert resp.status_code == 200
        assert resp.json()["status"] == "approved"

        resp = client.get(f"/api/groups/{gid}/verify-membership", headers=bob["headers"])
        assert resp.status_code == 200
        assert resp.json() == {
            "success": 1, "isMember": True, "role": "member", "status": "active", "hasPendingRequest": False,
        }

    def test_spam_block_scenario(self, client):
        alice = register_user(client, name="Alice")
        bob = register_user(client, name="Bob")
        group = create_test_group(client, alice)
        gid = group["groupId"]
        join_and_approve(client, alice, bob, group)

        resp = client.post(
            f"/api/groups/groups/{gid}/members/{bob['user_id']}/block",
            json={"reason": "spam"},
            headers=alice["headers"],
        )
        assert resp.status_code == 200

        resp = client.get(f"/api/groups/groups/check-blocked/{group['groupCode']}", headers=bob["headers"])
        assert resp.json() == {"success": 1, "isBlocked": True, "reason": "spam"}

        resp = client.post("/api/groups/join", json={"groupCode": group["groupCode"]}, headers=bob["headers"])
        assert resp.status_code == 403
        assert resp.json() == {"success": 0, "message": "You have been blocked from this group"}

        resp = client.get(f"/api/groups/groups/{gid}/blocked-members", headers=alice["headers"])
        assert [b["displayName"] for b in resp.json()["blockedMembers"]] == ["Bob"]

        resp = client.post(f"/api/groups/groups/{gid}/members/{bob['user_id']}/unblock", headers=alice["headers"])
        assert resp.status_code == 200
        resp = client.get(f"/api/groups/groups/check-blocked/{group['groupCode']}", headers=bob["headers"])
        assert resp.json()["isBlocked"] is False

    def test_duplicate_join_is_conflict(self, client):
        alice = register_user(client, name="Alice")
        bob = register_user(client, name="Bob")
        group = create_test_group(client, alice)
        client.post("/api/groups/join", json={"groupCode": group["groupCode"]}, headers=bob["headers"])
        resp = client.post("/api/groups/join", json={"groupCode": group["groupCode"]}, headers=bob["headers"])
        assert resp.status_code == 409
        assert resp.json()["success"] == 0

    def test_malformed_code_is_bad_request(self, client):
        bob = register_user(client, name="Bob")
        resp = client.post("/api/groups/join", json={"groupCode": "no!"}, headers=bob["headers"])
        assert resp.status_code == 400

    def test_reject_over_http(self, client):
        alice = register_user(client, name="Alice")
        bob = register_user(client, name="Bob")
        group = create_test_group(client, alice)
        gid = group["groupId"]
        request_id = client.post(
            "/api/groups/join", json={"groupCode": group["groupCode"]}, headers=bob["headers"]
        ).json()["requestId"]

        resp = client.put(f"/api/groups/{gid}/requests/{request_id}/reject", headers=alice["headers"])
        assert resp.status_code == 200
        resp = client.get(f"/api/groups/{gid}/verify-membership", headers=bob["headers"])
        assert resp.json()["hasPendingRequest"] is False
        assert resp.json()["isMember"] is False

    def test_member_cannot_approve(self, client):
        alice = register_user(client, name="Alice")
        bob = register_user(client, name="Bob")
        carol = register_user(client, name="Carol")
        group = create_test_group(client, alice)
        gid = group["groupId"]
        join_and_approve(client, alice, bob, group)
        request_id = client.post(
            "/api/groups/join", json={"groupCode": group["groupCode"]}, headers=carol["headers"]
        ).json()["requestId"]

        resp = client.put(f"/api/groups/{gid}/requests/{request_id}/approve", headers=bob["headers"])
        assert resp.status_code == 403

    def test_remove_over_http(self, client):
        alice = register_user(client, name="Alice")
        bob = register_user(client, name="Bob")
        group = create_test_group(client, alice)
        gid = group["groupId"]
        join_and_approve(client, alice, bob, group)

        resp = client.post(
            f"/api/groups/{gid}/members/{bob['user_id']}/remove",
            json={"reason": "cleanup"},
            headers=alice["headers"],
        )
        assert resp.status_code == 200
        resp = client.get(f"/api/groups/{gid}/members", headers=bob["headers"])
        assert resp.status_code == 403

    def test_block_self_over_http(self, client):
        alice = register_user(client, name="Alice")
        group = create_test_group(client, alice)
        resp = client.post(
            f"/api/groups/groups/{group['groupId']}/members/{alice['user_id']}/block",
            headers=alice["headers"],
        )
        assert resp.status_code == 403
        assert resp.json()["message"] == "You cannot block yourself"
