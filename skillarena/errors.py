from contextlib import contextmanager
import logging

import redis
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class SkillArenaError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {'error': self.message}


class InvalidArgument(SkillArenaError):
    """Malformed input, rejected before the store is touched."""
    status_code = 400


class AuthenticationFailed(SkillArenaError):
    status_code = 401


class NotFound(SkillArenaError):
    status_code = 404


class Conflict(SkillArenaError):
    """Duplicate identity or an illegal status transition."""
    status_code = 409


class RemoteUnavailable(SkillArenaError):
    """The database or redis failed; the caller may retry manually."""
    status_code = 503


@contextmanager
def store_errors(session=None, action: str = "store operation"):
    """
    Translate database and redis failures into RemoteUnavailable.

    Rolls back ``session`` first so nothing partially applied is left behind
    and row locks taken inside the block are released.
    """
    try:
        yield
    except SkillArenaError:
        if session is not None:
            session.rollback()
        raise
    except (SQLAlchemyError, redis.exceptions.RedisError) as e:
        if session is not None:
            session.rollback()
        logger.error(f"{action} failed: {e}")
        raise RemoteUnavailable(f"{action} failed, please retry") from e
