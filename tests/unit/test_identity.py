"""
Unit tests for IdentityResolver.
Tests: sign_up, authenticate, get_profile, search_by_username_prefix,
       summarize, update_profile, adjust_points
"""
import pytest
from sqlalchemy.exc import IntegrityError
from skillarena.errors import AuthenticationFailed, Conflict, InvalidArgument, NotFound
from skillarena.identity import IdentityResolver
from skillarena.models import db, User
from skillarena.presence import PresenceTracker


class TestSignUp:

    def test_creates_profile(self, identity, db_session):
        user = identity.sign_up("NewPlayer", "New@Example.com", "secret123")

        assert user.id.startswith("u_")
        assert user.username == "newplayer"
        assert user.email == "new@example.com"
        assert user.points == 0
        assert user.friend_ids == []
        assert user.created_at is not None

    def test_password_is_hashed(self, identity, db_session):
        user = identity.sign_up("hashme", "hash@example.com", "secret123")
        assert user.password_hash != "secret123"
        assert user.check_password("secret123")

    @pytest.mark.parametrize("username,email,password", [
        ("", "x@example.com", "secret123"),
        ("x", "", "secret123"),
        ("x", "x@example.com", ""),
        ("   ", "x@example.com", "secret123"),
    ])
    def test_missing_fields(self, identity, db_session, username, email, password):
        with pytest.raises(InvalidArgument):
            identity.sign_up(username, email, password)
        assert User.query.count() == 0

    def test_short_password(self, identity, db_session):
        with pytest.raises(InvalidArgument, match="at least 6"):
            identity.sign_up("shorty", "short@example.com", "12345")

    def test_invalid_email(self, identity, db_session):
        with pytest.raises(InvalidArgument):
            identity.sign_up("noat", "not-an-email", "secret123")

    def test_duplicate_username_case_insensitive(self, identity, alice):
        with pytest.raises(Conflict, match="Username"):
            identity.sign_up("ALICE", "other@example.com", "secret123")

    def test_duplicate_email(self, identity, alice):
        with pytest.raises(Conflict, match="Email"):
            identity.sign_up("alice2", "ALICE@example.com", "secret123")

    @pytest.mark.parametrize("username,email,password", [
        (7, "x@example.com", "secret123"),
        ("x", ["x@example.com"], "secret123"),
        ("x", "x@example.com", 12345678),
    ])
    def test_non_string_fields(self, identity, db_session, username, email, password):
        with pytest.raises(InvalidArgument):
            identity.sign_up(username, email, password)
        assert User.query.count() == 0

    def test_concurrent_duplicate_is_conflict(self, identity, db_session, mocker):
        """Losing the unique-constraint race reports a conflict, not an outage."""
        mocker.patch.object(
            db.session, "commit",
            side_effect=IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        )

        with pytest.raises(Conflict):
            identity.sign_up("racer", "racer@example.com", "secret123")

        mocker.stopall()
        assert User.query.count() == 0

    def test_publishes_registration(self, db_session, mock_redis):
        identity = IdentityResolver(publisher=None)
        identity.publisher.redis = mock_redis

        identity.sign_up("evented", "evented@example.com", "secret123")

        channel, payload = mock_redis.publish.call_args.args
        assert channel == "global:announcements"
        assert '"user.registered"' in payload


class TestAuthenticate:

    def test_valid_credentials(self, identity, alice):
        assert identity.authenticate("ALICE@example.com", "secret123").id == alice.id

    def test_wrong_password(self, identity, alice):
        with pytest.raises(AuthenticationFailed):
            identity.authenticate("alice@example.com", "wrong-password")

    def test_unknown_email(self, identity, db_session):
        with pytest.raises(AuthenticationFailed):
            identity.authenticate("ghost@example.com", "secret123")

    def test_missing_credentials(self, identity, db_session):
        with pytest.raises(InvalidArgument):
            identity.authenticate("", "")


class TestGetProfile:

    def test_existing(self, identity, alice):
        assert identity.get_profile(alice.id).username == "alice"

    def test_missing(self, identity, db_session):
        with pytest.raises(NotFound):
            identity.get_profile("u_doesnotexist")

    def test_private_fields(self, identity, alice):
        data = identity.get_profile(alice.id).to_dict(include_private=True)
        assert data["email"] == "alice@example.com"
        assert data["friends"] == []
        assert "email" not in identity.get_profile(alice.id).to_dict()


class TestSearchByUsernamePrefix:

    def test_prefix_match_ordered(self, identity, alice, bob, carol):
        identity.sign_up("bobby", "bobby@example.com", "secret123")
        identity.sign_up("alfred", "alfred@example.com", "secret123")

        results = identity.search_by_username_prefix("Bo", exclude_user_id=alice.id)

        assert [r["username"] for r in results] == ["bob", "bobby"]
        assert results[0] == {"id": bob.id, "username": "bob", "online": False}

    def test_excludes_caller(self, identity, alice, bob):
        results = identity.search_by_username_prefix("alice", exclude_user_id=alice.id)
        assert results == []

    def test_no_partial_infix_match(self, identity, alice, bob):
        assert identity.search_by_username_prefix("ob") == []

    def test_empty_prefix(self, identity, db_session):
        with pytest.raises(InvalidArgument):
            identity.search_by_username_prefix("   ")

    def test_limit(self, identity, db_session):
        for i in range(5):
            identity.sign_up(f"player{i}", f"p{i}@example.com", "secret123")
        assert len(identity.search_by_username_prefix("player", limit=3)) == 3

    def test_online_flag_from_presence(self, identity, alice, bob, mock_redis):
        mock_redis.smismember.return_value = [1]
        resolver = IdentityResolver(presence=PresenceTracker(mock_redis))

        results = resolver.search_by_username_prefix("bob", exclude_user_id=alice.id)

        assert results[0]["online"] is True
        mock_redis.smismember.assert_called_once_with("presence:online", [bob.id])


class TestSummarize:

    def test_keeps_order_and_drops_unknown(self, identity, alice, bob, carol):
        summaries = identity.summarize([carol.id, "u_ghost", alice.id])
        assert [s["id"] for s in summaries] == [carol.id, alice.id]

    def test_empty(self, identity, db_session):
        assert identity.summarize([]) == []


class TestUpdateProfile:

    def test_updates_bio_and_picture(self, identity, alice):
        user = identity.update_profile(alice.id, bio=" Grinding ranked ", profile_picture="https://cdn/x.png")
        assert user.bio == "Grinding ranked"
        assert user.profile_picture == "https://cdn/x.png"
        assert user.username == "alice"

    def test_non_string_rejected(self, identity, alice):
        with pytest.raises(InvalidArgument):
            identity.update_profile(alice.id, bio=5)
        with pytest.raises(InvalidArgument):
            identity.update_profile(alice.id, profile_picture={"url": "x"})
        assert identity.get_profile(alice.id).bio is None

    def test_blank_clears_field(self, identity, alice):
        identity.update_profile(alice.id, bio="hello")
        assert identity.update_profile(alice.id, bio="  ").bio is None

    def test_unknown_user(self, identity, db_session):
        with pytest.raises(NotFound):
            identity.update_profile("u_ghost", bio="x")


class TestAdjustPoints:

    def test_add_points_and_level(self, identity, alice):
        user = identity.adjust_points(alice.id, 250)
        assert user.points == 250
        assert user.level == 2

    def test_cannot_go_negative(self, identity, alice):
        identity.adjust_points(alice.id, 10)
        with pytest.raises(InvalidArgument):
            identity.adjust_points(alice.id, -11)
        assert identity.get_profile(alice.id).points == 10

    def test_rejects_non_integer(self, identity, alice):
        with pytest.raises(InvalidArgument):
            identity.adjust_points(alice.id, 1.5)

    def test_unknown_user(self, identity, db_session):
        with pytest.raises(NotFound):
            identity.adjust_points("u_ghost", 5)


class TestPresenceTracker:

    def test_without_redis(self):
        tracker = PresenceTracker()
        tracker.mark_online("u_1")
        assert tracker.is_online("u_1") is False
        assert tracker.online_among(["u_1"]) == set()

    def test_mark_online_offline(self, mock_redis):
        tracker = PresenceTracker(mock_redis)
        tracker.mark_online("u_1")
        tracker.mark_offline("u_1")

        mock_redis.sadd.assert_called_once_with("presence:online", "u_1")
        mock_redis.srem.assert_called_once_with("presence:online", "u_1")

    def test_online_among(self, mock_redis):
        mock_redis.smismember.return_value = [1, 0, 1]
        tracker = PresenceTracker(mock_redis)
        assert tracker.online_among(["a", "b", "c"]) == {"a", "c"}
