import logging
from typing import List, Set

from sqlalchemy.exc import IntegrityError

from .errors import Conflict, InvalidArgument, NotFound, store_errors
from .identity import IdentityResolver
from .models import db, Friendship, FriendRequest, utcnow
from shared.events import friend_requested_event, friend_responded_event
from shared.pubsub import EventPublisher
from shared.state_machine import FriendRequestStateMachine, FriendRequestState, TransitionError

logger = logging.getLogger(__name__)


class RelationshipEngine:
    """
    Owns the friend-request lifecycle (pending -> accepted | rejected) and the
    symmetric friend-set written when a request is accepted.
    """

    def __init__(self, identity: IdentityResolver, publisher: EventPublisher = None):
        self.identity = identity
        self.publisher = publisher or EventPublisher()

    def send_request(self, from_id: str, to_id: str) -> FriendRequest:
        """
        Create a pending request from ``from_id`` to ``to_id``.

        A pending request between the same pair is returned as-is instead of
        creating a second one.
        """
        if not from_id or not to_id:
            raise InvalidArgument("Sender and recipient are required")
        if from_id == to_id:
            raise InvalidArgument("Cannot send a friend request to yourself")

        self.identity.get_profile(from_id)
        self.identity.get_profile(to_id)

        with store_errors(db.session, action="Send friend request"):
            existing = FriendRequest.query.filter_by(
                from_id=from_id,
                to_id=to_id,
                status=FriendRequestState.PENDING.value
            ).first()
            if existing:
                return existing

            request = FriendRequest(
                from_id=from_id,
                to_id=to_id,
                status=FriendRequestState.PENDING.value
            )
            db.session.add(request)
            db.session.commit()

        logger.info(f"Friend request {request.id}: {from_id} -> {to_id}")
        self.publisher.publish_user_notification(
            to_id, friend_requested_event(request.id, from_id, to_id)
        )
        return request

    def accept_request(self, request_id: str, acting_user_id: str = None) -> FriendRequest:
        """
        Mark the request accepted and befriend both users in one transaction.

        Accepting an already accepted request changes nothing.
        """
        return self._respond(request_id, 'accept', acting_user_id)

    def reject_request(self, request_id: str, acting_user_id: str = None) -> FriendRequest:
        return self._respond(request_id, 'reject', acting_user_id)

    def _respond(
        self,
        request_id: str,
        action: str,
        acting_user_id: str = None,
        retried: bool = False
    ) -> FriendRequest:
        with store_errors(db.session, action=f"Friend request {action}"):
            request = FriendRequest.query.filter_by(id=request_id).with_for_update().first()
            if request is None or (acting_user_id and request.to_id != acting_user_id):
                raise NotFound(f"Friend request {request_id} not found")

            sm = FriendRequestStateMachine.from_state_string(request.status)
            target = FriendRequestState.ACCEPTED if action == 'accept' else FriendRequestState.REJECTED
            if sm.state == target:
                db.session.rollback()
                return request

            try:
                new_state = sm.transition(action)
            except TransitionError as e:
                raise Conflict(f"Friend request is already {request.status}") from e

            request.status = new_state.value
            request.responded_at = utcnow()
            try:
                if new_state == FriendRequestState.ACCEPTED:
                    self._befriend(request.from_id, request.to_id)
                    self._befriend(request.to_id, request.from_id)
                db.session.commit()
            except IntegrityError:
                if retried:
                    raise
                # The reverse request was accepted concurrently and wrote the friendship first
                db.session.rollback()
                logger.info(f"Friend request {request_id}: friendship already written, retrying")
                return self._respond(request_id, action, acting_user_id, retried=True)

        logger.info(f"Friend request {request.id} {request.status}")
        self.publisher.publish_user_notification(
            request.from_id,
            friend_responded_event(
                request.id, request.from_id, request.to_id,
                accepted=request.status == FriendRequestState.ACCEPTED.value
            )
        )
        return request

    def _befriend(self, user_id: str, friend_id: str):
        """Stage one direction of a friendship unless it already exists."""
        exists = Friendship.query.filter_by(user_id=user_id, friend_id=friend_id).first()
        if not exists:
            db.session.add(Friendship(user_id=user_id, friend_id=friend_id))

    def list_friends(self, user_id: str) -> List[dict]:
        with store_errors(action="Friend list"):
            rows = Friendship.query.filter(
                Friendship.user_id == user_id,
                Friendship.friend_id != user_id
            ).order_by(Friendship.created_at, Friendship.id).all()
        return self.identity.summarize([r.friend_id for r in rows])

    def list_incoming_requests(self, user_id: str) -> List[FriendRequest]:
        with store_errors(action="Incoming friend requests"):
            return FriendRequest.query.filter_by(
                to_id=user_id,
                status=FriendRequestState.PENDING.value
            ).order_by(FriendRequest.created_at).all()

    def list_outgoing_requests(self, user_id: str) -> List[FriendRequest]:
        with store_errors(action="Outgoing friend requests"):
            return FriendRequest.query.filter_by(
                from_id=user_id,
                status=FriendRequestState.PENDING.value
            ).order_by(FriendRequest.created_at).all()

    def friend_ids(self, user_id: str) -> Set[str]:
        with store_errors(action="Friendship lookup"):
            rows = Friendship.query.filter_by(user_id=user_id).all()
        return {r.friend_id for r in rows}

    def serialize_requests(self, requests: List[FriendRequest]) -> List[dict]:
        """Requests with the sender's display summary attached."""
        senders = {s['id']: s for s in self.identity.summarize({r.from_id for r in requests})}
        result = []
        for r in requests:
            data = r.to_dict()
            data['sender'] = senders.get(r.from_id)
            result.append(data)
        return result
