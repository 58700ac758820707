import logging
from typing import List

from sqlalchemy.exc import IntegrityError

from .errors import AuthenticationFailed, Conflict, InvalidArgument, NotFound, store_errors
from .models import db, User
from .presence import PresenceTracker
from shared.events import user_registered_event
from shared.pubsub import EventPublisher

logger = logging.getLogger(__name__)

# Upper bound of a prefix range scan over usernames
PREFIX_SENTINEL = '\uf8ff'


def clean_text(value, field: str) -> str:
    """Strip a free-text field from a request body; missing becomes ''."""
    if value is None:
        return ''
    if not isinstance(value, str):
        raise InvalidArgument(f"{field} must be a string")
    return value.strip()


class IdentityResolver:
    """
    Resolves user ids to profiles and owns the account lifecycle:
    - sign up / authenticate
    - profile lookups, edits and points
    - username prefix search
    """

    def __init__(
        self,
        presence: PresenceTracker = None,
        publisher: EventPublisher = None,
        min_password_length: int = 6,
        search_limit: int = 20
    ):
        self.presence = presence or PresenceTracker()
        self.publisher = publisher or EventPublisher()
        self.min_password_length = min_password_length
        self.search_limit = search_limit

    def get_profile(self, user_id: str) -> User:
        with store_errors(action="Profile lookup"):
            user = db.session.get(User, user_id) if user_id else None
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user

    def summarize(self, user_ids: List[str]) -> List[dict]:
        """Display summaries for ``user_ids`` in order; unknown ids are dropped."""
        user_ids = list(user_ids)
        if not user_ids:
            return []

        with store_errors(action="User lookup"):
            users = {u.id: u for u in User.query.filter(User.id.in_(user_ids)).all()}
            online = self.presence.online_among(users.keys())

        return [
            {'id': uid, 'username': users[uid].username, 'online': uid in online}
            for uid in user_ids if uid in users
        ]

    def search_by_username_prefix(
        self,
        prefix: str,
        exclude_user_id: str = None,
        limit: int = None
    ) -> List[dict]:
        prefix = clean_text(prefix, 'prefix').lower()
        if not prefix:
            raise InvalidArgument("Search prefix must not be empty")

        query = User.query.filter(
            User.username >= prefix,
            User.username <= prefix + PREFIX_SENTINEL
        )
        if exclude_user_id:
            query = query.filter(User.id != exclude_user_id)

        with store_errors(action="User search"):
            users = query.order_by(User.username.asc()).limit(limit or self.search_limit).all()
            online = self.presence.online_among(u.id for u in users)

        return [{'id': u.id, 'username': u.username, 'online': u.id in online} for u in users]

    def sign_up(self, username: str, email: str, password: str) -> User:
        """Create an account. Username and email are stored lowercased."""
        username = clean_text(username, 'username').lower()
        email = clean_text(email, 'email').lower()
        password = password or ''
        if not isinstance(password, str):
            raise InvalidArgument("password must be a string")

        if not username or not email or not password.strip():
            raise InvalidArgument("Username, email and password are required")
        if len(password) < self.min_password_length:
            raise InvalidArgument(
                f"Password must be at least {self.min_password_length} characters"
            )
        if '@' not in email:
            raise InvalidArgument("Invalid email address")

        with store_errors(db.session, action="Sign up"):
            if User.query.filter_by(email=email).first():
                raise Conflict("Email address already in use")
            if User.query.filter_by(username=username).first():
                raise Conflict("Username already taken")

            user = User(username=username, email=email, points=0)
            user.set_password(password)
            db.session.add(user)
            try:
                db.session.commit()
            except IntegrityError:
                # A concurrent sign-up claimed the username or email first
                db.session.rollback()
                raise Conflict("Username or email address already in use")

        logger.info(f"Registered user {user.id} ({username})")
        self.publisher.publish("global:announcements", user_registered_event(user.id, username))
        return user

    def authenticate(self, email: str, password: str) -> User:
        email = clean_text(email, 'email').lower()
        if not email or not password:
            raise InvalidArgument("Email and password are required")
        if not isinstance(password, str):
            raise InvalidArgument("password must be a string")

        with store_errors(action="Login"):
            user = User.query.filter_by(email=email).first()

        if user is None or not user.check_password(password):
            raise AuthenticationFailed("Invalid email or password")
        return user

    def update_profile(self, user_id: str, bio: str = None, profile_picture: str = None) -> User:
        """Edit the mutable profile fields. The username never changes."""
        changes = {}
        if bio is not None:
            changes['bio'] = clean_text(bio, 'bio') or None
        if profile_picture is not None:
            changes['profile_picture'] = clean_text(profile_picture, 'profilePicture') or None
        user = self.get_profile(user_id)

        with store_errors(db.session, action="Profile update"):
            for field, value in changes.items():
                setattr(user, field, value)
            db.session.commit()

        return user

    def adjust_points(self, user_id: str, delta: int) -> User:
        if not isinstance(delta, int) or isinstance(delta, bool):
            raise InvalidArgument("Points delta must be an integer")

        with store_errors(db.session, action="Points update"):
            user = User.query.filter_by(id=user_id).with_for_update().first()
            if user is None:
                raise NotFound(f"User {user_id} not found")
            if user.points + delta < 0:
                raise InvalidArgument("Points cannot become negative")

            user.points = user.points + delta
            db.session.commit()

        logger.info(f"Points of {user_id} adjusted by {delta} to {user.points}")
        return user
