from enum import Enum
from typing import List
from dataclasses import dataclass


class TournamentState(str, Enum):
    OPEN = "open"
    ONGOING = "ongoing"
    COMPLETED = "completed"


class FriendRequestState(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TransitionError(Exception):
    def __init__(self, from_state: str, to_state: str, reason: str = None):
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason or f"Cannot transition from {from_state} to {to_state}"
        super().__init__(self.reason)


@dataclass
class Transition:
    from_state: Enum
    to_state: Enum
    action: str


class StateMachine:
    """Table-driven transitions over a closed set of states."""

    TRANSITIONS: List[Transition] = []
    ALLOWED_ACTIONS: dict = {}
    INITIAL_STATE: Enum = None

    def __init__(self, initial_state: Enum = None):
        self._state = initial_state if initial_state is not None else self.INITIAL_STATE

    @property
    def state(self):
        return self._state

    @property
    def allowed_actions(self) -> List[str]:
        return self.ALLOWED_ACTIONS.get(self._state, [])

    def can_perform(self, action: str) -> bool:
        return action in self.allowed_actions

    def transition(self, action: str):
        for t in self.TRANSITIONS:
            if t.from_state == self._state and t.action == action:
                self._state = t.to_state
                return self._state

        raise TransitionError(
            self._state.value,
            "unknown",
            f"No valid transition for action '{action}' from state '{self._state.value}'"
        )


class TournamentStateMachine(StateMachine):
    INITIAL_STATE = TournamentState.OPEN

    TRANSITIONS = [
        Transition(TournamentState.OPEN, TournamentState.ONGOING, "start"),
        Transition(TournamentState.ONGOING, TournamentState.COMPLETED, "complete"),
    ]

    ALLOWED_ACTIONS = {
        TournamentState.OPEN: ["register_participant", "start"],
        TournamentState.ONGOING: ["complete"],
        TournamentState.COMPLETED: [],
    }

    @classmethod
    def from_state_string(cls, state_str: str) -> "TournamentStateMachine":
        return cls(initial_state=TournamentState(state_str))


class FriendRequestStateMachine(StateMachine):
    INITIAL_STATE = FriendRequestState.PENDING

    TRANSITIONS = [
        Transition(FriendRequestState.PENDING, FriendRequestState.ACCEPTED, "accept"),
        Transition(FriendRequestState.PENDING, FriendRequestState.REJECTED, "reject"),
    ]

    ALLOWED_ACTIONS = {
        FriendRequestState.PENDING: ["accept", "reject"],
        FriendRequestState.ACCEPTED: [],
        FriendRequestState.REJECTED: [],
    }

    @classmethod
    def from_state_string(cls, state_str: str) -> "FriendRequestStateMachine":
        return cls(initial_state=FriendRequestState(state_str))
