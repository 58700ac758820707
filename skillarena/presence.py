from typing import Iterable, Set
import redis

ONLINE_KEY = "presence:online"


class PresenceTracker:
    """
    Tracks which users are online in a redis set.

    Without a redis client every user reads as offline.
    """

    def __init__(self, redis_client: redis.Redis = None):
        self.redis = redis_client

    def mark_online(self, user_id: str):
        if self.redis is not None:
            self.redis.sadd(ONLINE_KEY, user_id)

    def mark_offline(self, user_id: str):
        if self.redis is not None:
            self.redis.srem(ONLINE_KEY, user_id)

    def is_online(self, user_id: str) -> bool:
        if self.redis is None:
            return False
        return bool(self.redis.sismember(ONLINE_KEY, user_id))

    def online_among(self, user_ids: Iterable[str]) -> Set[str]:
        """Subset of ``user_ids`` currently online, in one round trip."""
        user_ids = list(user_ids)
        if self.redis is None or not user_ids:
            return set()
        flags = self.redis.smismember(ONLINE_KEY, user_ids)
        return {uid for uid, flag in zip(user_ids, flags) if flag}
