import logging
import redis
from typing import Optional
from .events import Event

logger = logging.getLogger(__name__)

GLOBAL_CHANNEL = "global:announcements"


def connect(redis_url: str) -> Optional[redis.Redis]:
    """Build a redis client, or None when no URL is configured."""
    if not redis_url:
        return None
    return redis.from_url(
        redis_url,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5
    )


class EventPublisher:
    """
    Fans domain events out to redis channels.

    Publishing happens after the database commit, so a failure here is logged
    and never undoes or fails the operation that produced the event.
    """

    def __init__(self, redis_client: redis.Redis = None):
        self.redis = redis_client

    def publish(self, channel: str, event: Event) -> bool:
        if self.redis is None:
            return False
        try:
            self.redis.publish(channel, event.to_json())
            return True
        except redis.exceptions.RedisError as e:
            logger.warning(f"Failed to publish {event.to_dict()['type']} on {channel}: {e}")
            return False

    def publish_tournament_event(self, tournament_id: str, event: Event):
        self.publish(f"tournament:{tournament_id}:events", event)
        self.publish(GLOBAL_CHANNEL, event)

    def publish_user_notification(self, user_id: str, event: Event):
        self.publish(f"user:{user_id}:notifications", event)
