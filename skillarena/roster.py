import logging
from datetime import datetime, timezone
from enum import Enum
from typing import List

from sqlalchemy.exc import IntegrityError

from .errors import Conflict, InvalidArgument, NotFound, store_errors
from .identity import IdentityResolver, clean_text
from .models import db, Tournament, Participant, utcnow
from shared.events import (
    participant_registered_event,
    state_changed_event,
    tournament_created_event,
)
from shared.pubsub import EventPublisher
from shared.state_machine import TournamentStateMachine, TournamentState, TransitionError

logger = logging.getLogger(__name__)


class RegistrationResult(str, Enum):
    REGISTERED = "registered"
    ALREADY_REGISTERED = "already_registered"
    FULL = "full"
    CLOSED = "closed"


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class TournamentRoster:
    """
    Manages tournaments and their rosters:
    - Create tournaments (validated before touching the store)
    - Register participants with membership and capacity checks
    - Advance status on behalf of an external scheduler
    """

    def __init__(self, identity: IdentityResolver, publisher: EventPublisher = None):
        self.identity = identity
        self.publisher = publisher or EventPublisher()

    def create_tournament(
        self,
        creator_id: str,
        name: str,
        game: str,
        max_participants: int,
        scheduled_at: datetime,
        prize: str = None,
        now: datetime = None
    ) -> Tournament:
        """Create an open tournament with an empty roster."""
        name = clean_text(name, 'name')
        game = clean_text(game, 'game')
        prize = clean_text(prize, 'prize') or None

        if not creator_id:
            raise InvalidArgument("Creator is required")
        if not name or not game:
            raise InvalidArgument("Tournament name and game are required")
        if not isinstance(max_participants, int) or isinstance(max_participants, bool) \
                or max_participants <= 0:
            raise InvalidArgument("maxParticipants must be a positive integer")
        if not isinstance(scheduled_at, datetime):
            raise InvalidArgument("Tournament date is required")

        scheduled_at = to_naive_utc(scheduled_at)
        now = to_naive_utc(now) if now else utcnow()
        if scheduled_at <= now:
            raise InvalidArgument("Tournament date and time must be in the future")

        with store_errors(db.session, action="Create tournament"):
            tournament = Tournament(
                name=name,
                game=game,
                max_participants=max_participants,
                scheduled_at=scheduled_at,
                status=TournamentState.OPEN.value,
                prize=prize,
                created_by=creator_id
            )
            db.session.add(tournament)
            db.session.commit()

        logger.info(f"Tournament {tournament.id} '{name}' created by {creator_id}")
        self.publisher.publish_tournament_event(
            tournament.id, tournament_created_event(tournament.id, name, game, creator_id)
        )
        return tournament

    def get_tournament(self, tournament_id: str) -> Tournament:
        with store_errors(action="Tournament lookup"):
            tournament = db.session.get(Tournament, tournament_id) if tournament_id else None
        if tournament is None:
            raise NotFound(f"Tournament {tournament_id} not found")
        return tournament

    def list_tournaments(self, status: str = None, limit: int = None, offset: int = 0) -> List[Tournament]:
        """Tournaments ordered by scheduled date, latest first. No limit returns all of them."""
        if limit is not None and limit <= 0:
            raise InvalidArgument("limit must be a positive integer")
        if offset < 0:
            raise InvalidArgument("offset must not be negative")

        query = Tournament.query

        if status:
            try:
                query = query.filter_by(status=TournamentState(status).value)
            except ValueError:
                raise InvalidArgument(f"Unknown tournament status '{status}'")

        query = query.order_by(Tournament.scheduled_at.desc(), Tournament.id).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        with store_errors(action="Tournament list"):
            return query.all()

    def list_user_tournaments(self, user_id: str) -> List[Tournament]:
        with store_errors(action="User tournaments"):
            return Tournament.query.join(Participant).filter(
                Participant.user_id == user_id
            ).order_by(Tournament.scheduled_at.desc()).all()

    def register(self, tournament_id: str, user_id: str) -> RegistrationResult:
        """
        Add ``user_id`` to the roster.

        Membership is checked before capacity, so a registered user never
        sees FULL. The tournament row stays locked from the checks until
        commit.
        """
        if not user_id:
            raise InvalidArgument("User is required")
        self.identity.get_profile(user_id)

        with store_errors(db.session, action="Tournament registration"):
            tournament = Tournament.query.filter_by(id=tournament_id).with_for_update().first()
            if tournament is None:
                raise NotFound(f"Tournament {tournament_id} not found")

            if user_id in tournament.participant_ids:
                db.session.rollback()
                return RegistrationResult.ALREADY_REGISTERED

            sm = TournamentStateMachine.from_state_string(tournament.status)
            if not sm.can_perform('register_participant'):
                db.session.rollback()
                return RegistrationResult.CLOSED

            if tournament.is_full:
                db.session.rollback()
                return RegistrationResult.FULL

            db.session.add(Participant(tournament_id=tournament.id, user_id=user_id))
            try:
                db.session.commit()
            except IntegrityError:
                # Lost a race against the same user's concurrent registration
                db.session.rollback()
                return RegistrationResult.ALREADY_REGISTERED

            count = len(tournament.participants)

        logger.info(f"User {user_id} registered for {tournament_id} ({count}/{tournament.max_participants})")
        self.publisher.publish_tournament_event(
            tournament_id, participant_registered_event(tournament_id, user_id, count)
        )
        return RegistrationResult.REGISTERED

    def advance_status(self, tournament_id: str, action: str) -> Tournament:
        """Apply ``start`` or ``complete``; used by the external scheduler."""
        with store_errors(db.session, action="Tournament status change"):
            tournament = Tournament.query.filter_by(id=tournament_id).with_for_update().first()
            if tournament is None:
                raise NotFound(f"Tournament {tournament_id} not found")

            sm = TournamentStateMachine.from_state_string(tournament.status)
            old_state = sm.state.value
            try:
                new_state = sm.transition(action)
            except TransitionError as e:
                raise Conflict(str(e)) from e

            tournament.status = new_state.value
            db.session.commit()

        logger.info(f"Tournament {tournament_id}: {old_state} -> {new_state.value}")
        self.publisher.publish_tournament_event(
            tournament_id, state_changed_event(tournament_id, old_state, new_state.value)
        )
        return tournament

    def participant_summaries(self, tournament: Tournament) -> List[dict]:
        return self.identity.summarize(tournament.participant_ids)
