from enum import Enum
from dataclasses import dataclass
from datetime import datetime, timezone
import json


class EventType(str, Enum):
    # Identity
    USER_REGISTERED = "user.registered"

    # Relationships
    FRIEND_REQUESTED = "friend.requested"
    FRIEND_ACCEPTED = "friend.accepted"
    FRIEND_REJECTED = "friend.rejected"

    # Tournaments
    TOURNAMENT_CREATED = "tournament.created"
    PARTICIPANT_REGISTERED = "participant.registered"
    STATE_CHANGED = "state.changed"


@dataclass
class Event:
    type: EventType
    subject_id: str
    timestamp: str = None
    data: dict = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"
        if self.data is None:
            self.data = {}

    def to_dict(self) -> dict:
        return {
            "type": self.type.value if isinstance(self.type, EventType) else self.type,
            "subject_id": self.subject_id,
            "timestamp": self.timestamp,
            "data": self.data
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def user_registered_event(user_id: str, username: str) -> Event:
    return Event(
        type=EventType.USER_REGISTERED,
        subject_id=user_id,
        data={"username": username}
    )


def friend_requested_event(request_id: str, from_id: str, to_id: str) -> Event:
    return Event(
        type=EventType.FRIEND_REQUESTED,
        subject_id=request_id,
        data={"from": from_id, "to": to_id}
    )


def friend_responded_event(request_id: str, from_id: str, to_id: str, accepted: bool) -> Event:
    return Event(
        type=EventType.FRIEND_ACCEPTED if accepted else EventType.FRIEND_REJECTED,
        subject_id=request_id,
        data={"from": from_id, "to": to_id}
    )


def tournament_created_event(tournament_id: str, name: str, game: str, created_by: str) -> Event:
    return Event(
        type=EventType.TOURNAMENT_CREATED,
        subject_id=tournament_id,
        data={"name": name, "game": game, "createdBy": created_by}
    )


def participant_registered_event(tournament_id: str, user_id: str, participant_count: int) -> Event:
    return Event(
        type=EventType.PARTICIPANT_REGISTERED,
        subject_id=tournament_id,
        data={"user_id": user_id, "participants": participant_count}
    )


def state_changed_event(tournament_id: str, from_state: str, to_state: str) -> Event:
    return Event(
        type=EventType.STATE_CHANGED,
        subject_id=tournament_id,
        data={
            "from_state": from_state,
            "to_state": to_state
        }
    )
