import uuid
from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from shared.state_machine import FriendRequestState, TournamentState

db = SQLAlchemy()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def isoformat(value: datetime):
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.String(50), primary_key=True, default=lambda: generate_id('u'))
    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=True)
    points = db.Column(db.Integer, nullable=False, default=0)
    bio = db.Column(db.Text, nullable=True)
    profile_picture = db.Column('profilePicture', db.String(500), nullable=True)
    created_at = db.Column('createdAt', db.DateTime, default=utcnow)

    __table_args__ = (
        db.CheckConstraint('points >= 0', name='non_negative_points'),
    )

    @property
    def level(self) -> int:
        return (self.points or 0) // 100

    @property
    def friend_ids(self) -> list:
        rows = Friendship.query.filter_by(user_id=self.id).order_by(Friendship.created_at).all()
        return [r.friend_id for r in rows]

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def to_dict(self, include_private: bool = False):
        data = {
            'id': self.id,
            'username': self.username,
            'points': self.points,
            'level': self.level,
            'bio': self.bio,
            'profilePicture': self.profile_picture,
            'createdAt': isoformat(self.created_at),
        }
        if include_private:
            data['email'] = self.email
            data['friends'] = self.friend_ids
        return data


class Friendship(db.Model):
    """One direction of a friendship; accepted requests write both."""
    __tablename__ = 'friendships'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(50), db.ForeignKey('users.id'), nullable=False, index=True)
    # Weak reference: may outlive the friend's user record
    friend_id = db.Column(db.String(50), nullable=False)
    created_at = db.Column('createdAt', db.DateTime, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint('user_id', 'friend_id', name='unique_friendship'),
    )


class FriendRequest(db.Model):
    __tablename__ = 'friend_requests'

    id = db.Column(db.String(50), primary_key=True, default=lambda: generate_id('fr'))
    from_id = db.Column('from', db.String(50), nullable=False, index=True)
    to_id = db.Column('to', db.String(50), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=FriendRequestState.PENDING.value)
    created_at = db.Column('createdAt', db.DateTime, default=utcnow)
    responded_at = db.Column('respondedAt', db.DateTime, nullable=True)

    @property
    def state(self) -> FriendRequestState:
        return FriendRequestState(self.status)

    def to_dict(self):
        return {
            'id': self.id,
            'from': self.from_id,
            'to': self.to_id,
            'status': self.status,
            'createdAt': isoformat(self.created_at),
            'respondedAt': isoformat(self.responded_at),
        }


class Tournament(db.Model):
    __tablename__ = 'tournaments'

    id = db.Column(db.String(50), primary_key=True, default=lambda: generate_id('t'))
    name = db.Column(db.String(200), nullable=False)
    game = db.Column(db.String(100), nullable=False)
    scheduled_at = db.Column('date', db.DateTime, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=TournamentState.OPEN.value)
    max_participants = db.Column('maxParticipants', db.Integer, nullable=False)
    prize = db.Column(db.String(200), nullable=True)
    created_by = db.Column('createdBy', db.String(50), nullable=False, index=True)
    created_at = db.Column('createdAt', db.DateTime, default=utcnow)

    participants = db.relationship(
        'Participant',
        back_populates='tournament',
        order_by='Participant.id',
        cascade='all, delete-orphan'
    )

    __table_args__ = (
        db.CheckConstraint('"maxParticipants" > 0', name='positive_capacity'),
    )

    @property
    def state(self) -> TournamentState:
        return TournamentState(self.status)

    @property
    def participant_ids(self) -> list:
        return [p.user_id for p in self.participants]

    @property
    def is_full(self) -> bool:
        return len(self.participants) >= self.max_participants

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'game': self.game,
            'date': isoformat(self.scheduled_at),
            'status': self.status,
            'maxParticipants': self.max_participants,
            'currentParticipants': len(self.participants),
            'participants': self.participant_ids,
            'prize': self.prize,
            'createdBy': self.created_by,
            'createdAt': isoformat(self.created_at),
        }


class Participant(db.Model):
    __tablename__ = 'tournament_participants'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.String(50), db.ForeignKey('tournaments.id'), nullable=False, index=True)
    # Weak reference to users.id
    user_id = db.Column(db.String(50), nullable=False, index=True)
    joined_at = db.Column('joinedAt', db.DateTime, default=utcnow)

    tournament = db.relationship('Tournament', back_populates='participants')

    __table_args__ = (
        db.UniqueConstraint('tournament_id', 'user_id', name='unique_participant_per_tournament'),
    )
