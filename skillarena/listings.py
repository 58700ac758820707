from datetime import datetime
from typing import List

from .identity import IdentityResolver
from .models import Tournament, utcnow
from .relationships import RelationshipEngine
from .roster import TournamentRoster, to_naive_utc
from shared.state_machine import TournamentState


class ListingFacade:
    """Read-only projections for the client screens. Holds no state."""

    def __init__(
        self,
        identity: IdentityResolver,
        relationships: RelationshipEngine,
        roster: TournamentRoster
    ):
        self.identity = identity
        self.relationships = relationships
        self.roster = roster

    def tournament_card(self, tournament: Tournament, now: datetime = None) -> dict:
        now = to_naive_utc(now) if now else utcnow()
        data = tournament.to_dict()
        is_past = tournament.scheduled_at <= now
        is_open = tournament.status == TournamentState.OPEN.value
        data['isPast'] = is_past
        data['isUpcoming'] = is_open and not is_past
        data['joinable'] = is_open and not is_past and not tournament.is_full
        return data

    def tournament_cards(
        self,
        status: str = None,
        now: datetime = None,
        limit: int = None,
        offset: int = 0
    ) -> List[dict]:
        tournaments = self.roster.list_tournaments(status=status, limit=limit, offset=offset)
        return [self.tournament_card(t, now) for t in tournaments]

    def tournament_detail(self, tournament_id: str, viewer_id: str = None, now: datetime = None) -> dict:
        tournament = self.roster.get_tournament(tournament_id)
        data = self.tournament_card(tournament, now)
        data['participants'] = self.roster.participant_summaries(tournament)
        data['isRegistered'] = bool(viewer_id) and viewer_id in tournament.participant_ids
        return data

    def dashboard(self, user_id: str) -> dict:
        user = self.identity.get_profile(user_id)
        incoming = self.relationships.list_incoming_requests(user_id)
        return {
            'profile': user.to_dict(include_private=True),
            'friends': self.relationships.list_friends(user_id),
            'incomingRequests': self.relationships.serialize_requests(incoming),
            'tournaments': [t.to_dict() for t in self.roster.list_user_tournaments(user_id)],
        }

    def find_players(self, prefix: str, viewer_id: str) -> List[dict]:
        results = self.identity.search_by_username_prefix(prefix, exclude_user_id=viewer_id)
        pending = {r.to_id for r in self.relationships.list_outgoing_requests(viewer_id)}
        friends = self.relationships.friend_ids(viewer_id)
        for r in results:
            r['isFriend'] = r['id'] in friends
            r['requestPending'] = r['id'] in pending
        return results
