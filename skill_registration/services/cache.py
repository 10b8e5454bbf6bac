import logging
from abc import ABC, abstractmethod
from typing import Optional, Set

import redis
from redis.exceptions import RedisError

from skill_registration.core.config import settings

logger = logging.getLogger(__name__)

COPIED_IMAGES_KEY = "skill-registration:copied-images"


class ArtifactCache(ABC):
    """
    Names of images already copied to the canonical registry.

    Entries are only ever added, so concurrent registrations sharing one
    cache never overwrite each other.
    """

    @abstractmethod
    def contains(self, image_name: str) -> bool:
        ...

    @abstractmethod
    def add(self, image_name: str) -> None:
        ...


class InMemoryArtifactCache(ArtifactCache):
    """Process-local cache; entries live as long as the instance."""

    def __init__(self):
        self._names: Set[str] = set()

    def contains(self, image_name: str) -> bool:
        return image_name in self._names

    def add(self, image_name: str) -> None:
        self._names.add(image_name)


class RedisArtifactCache(ArtifactCache):
    """
    Cache shared between processes through a Redis set.

    Redis failures degrade to cache misses: the image is copied again, which
    the destination registry tolerates.
    """

    def __init__(self, client: redis.Redis, key: str = COPIED_IMAGES_KEY):
        self._client = client
        self._key = key

    def contains(self, image_name: str) -> bool:
        try:
            return bool(self._client.sismember(self._key, image_name))
        except RedisError as e:
            logger.warning(f"Cache read error for {image_name}: {e}")
            return False

    def add(self, image_name: str) -> None:
        try:
            self._client.sadd(self._key, image_name)
            logger.debug(f"Cached copied image {image_name}")
        except RedisError as e:
            logger.warning(f"Cache write error for {image_name}: {e}")


def create_artifact_cache(redis_url: Optional[str] = None) -> ArtifactCache:
    """Redis-backed cache when a URL is configured, in-memory otherwise."""
    url = redis_url or settings.REDIS_URL
    if not url:
        return InMemoryArtifactCache()

    client = redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=5.0,
        socket_connect_timeout=5.0,
    )
    try:
        client.ping()
        logger.info("Redis connection established")
    except RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Proceeding with in-memory cache.")
        return InMemoryArtifactCache()
    return RedisArtifactCache(client)
