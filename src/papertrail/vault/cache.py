"""
Caching layer for the papertrail vault.

This module provides in-memory and optional Redis-based caching for the
per-user progress and profile snapshots served on every screen load.
Values are stored in their JSON wire form so both backends hold the same
thing.
"""

import json
import time
from typing import Dict, Optional, Any
from abc import ABC, abstractmethod
from threading import Lock

from loguru import logger

from .config import VaultConfig, get_config
from .exceptions import CacheConnectionError


class CacheBackend(ABC):
    """Abstract base class for cache backends."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set value in cache with optional TTL."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete key from cache."""
        pass

    @abstractmethod
    def clear(self) -> bool:
        """Clear all cache entries."""
        pass

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        pass


class MemoryCache(CacheBackend):
    """In-memory cache implementation."""

    def __init__(self, default_ttl: int = 300):
        """
        Initialize memory cache.

        Args:
            default_ttl: Default TTL in seconds
        """
        self.cache: Dict[str, Dict[str, Any]] = {}
        self.default_ttl = default_ttl
        self._lock = Lock()
        logger.info("Memory cache initialized")

    def _is_expired(self, entry: Dict[str, Any]) -> bool:
        if entry.get('expires_at') is None:
            return False
        return time.time() > entry['expires_at']

    def _cleanup_expired(self) -> None:
        expired_keys = [key for key, entry in self.cache.items() if self._is_expired(entry)]
        for key in expired_keys:
            del self.cache[key]

        if expired_keys:
            logger.debug(f"Cleaned up {len(expired_keys)} expired cache entries")

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self.cache.get(key)
            if not entry:
                return None

            if self._is_expired(entry):
                del self.cache[key]
                return None

            return json.loads(entry['value'])

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        ttl = ttl or self.default_ttl
        expires_at = time.time() + ttl if ttl > 0 else None

        with self._lock:
            # Stored serialized so callers never share a mutable object with the cache
            self.cache[key] = {
                'value': json.dumps(value, default=str),
                'expires_at': expires_at,
            }

            # Periodic cleanup
            if len(self.cache) % 100 == 0:
                self._cleanup_expired()

        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self.cache.pop(key, None) is not None

    def clear(self) -> bool:
        with self._lock:
            self.cache.clear()
        logger.info("Memory cache cleared")
        return True

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            total_entries = len(self.cache)
            expired_count = sum(1 for entry in self.cache.values() if self._is_expired(entry))

        return {
            'backend': 'memory',
            'total_entries': total_entries,
            'expired_entries': expired_count,
            'active_entries': total_entries - expired_count,
            'default_ttl': self.default_ttl
        }


class RedisCache(CacheBackend):
    """Redis-based cache implementation."""

    def __init__(self, redis_url: str, default_ttl: int = 300, client=None):
        """
        Initialize Redis cache.

        Args:
            redis_url: Redis connection URL
            default_ttl: Default TTL in seconds
            client: Preconfigured redis client (defaults to one built from the URL)
        """
        try:
            import redis
            self.redis = client or redis.from_url(redis_url)
            self.default_ttl = default_ttl

            # Test connection
            self.redis.ping()
            logger.info(f"Redis cache initialized: {redis_url}")

        except ImportError:
            raise CacheConnectionError("Redis package not installed. Install with: pip install redis")
        except Exception as e:
            raise CacheConnectionError(f"Failed to connect to Redis: {str(e)}")

    def get(self, key: str) -> Optional[Any]:
        try:
            value = self.redis.get(key)
            if value is None:
                return None
            if isinstance(value, bytes):
                value = value.decode('utf-8')
            return json.loads(value)
        except Exception as e:
            logger.error(f"Failed to get Redis key {key}: {str(e)}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        try:
            ttl = ttl or self.default_ttl
            serialized = json.dumps(value, default=str)

            if ttl > 0:
                return bool(self.redis.setex(key, ttl, serialized))
            return bool(self.redis.set(key, serialized))
        except Exception as e:
            logger.error(f"Failed to set Redis key {key}: {str(e)}")
            return False

    def delete(self, key: str) -> bool:
        try:
            return bool(self.redis.delete(key))
        except Exception as e:
            logger.error(f"Failed to delete Redis key {key}: {str(e)}")
            return False

    def clear(self) -> bool:
        try:
            self.redis.flushdb()
            logger.info("Redis cache cleared")
            return True
        except Exception as e:
            logger.error(f"Failed to clear Redis cache: {str(e)}")
            return False

    def get_stats(self) -> Dict[str, Any]:
        try:
            info = self.redis.info()
            return {
                'backend': 'redis',
                'used_memory_human': info.get('used_memory_human', '0B'),
                'connected_clients': info.get('connected_clients', 0),
                'keyspace_hits': info.get('keyspace_hits', 0),
                'keyspace_misses': info.get('keyspace_misses', 0),
                'default_ttl': self.default_ttl
            }
        except Exception as e:
            logger.error(f"Failed to get Redis stats: {str(e)}")
            return {'backend': 'redis', 'error': str(e)}


class VaultCache:
    """
    Per-user snapshot cache.

    Holds the wire form of each user's progress mapping and profile. Every
    write path invalidates the user's entries and bumps the user's
    generation; a snapshot read under an older generation is never stored,
    so a read racing a write cannot put the pre-write state back.
    """

    SECTIONS = ("progress", "profile")

    def __init__(self, backend: Optional[CacheBackend] = None, config: Optional[VaultConfig] = None):
        """
        Initialize vault cache.

        Args:
            backend: Cache backend (auto-configured if None)
            config: Configuration used to pick the default backend
        """
        if backend is None:
            backend = self._create_default_backend(config or get_config())

        self.backend = backend
        self.hit_count = 0
        self.miss_count = 0
        self._generations: Dict[str, int] = {}
        self._lock = Lock()

        logger.info(f"VaultCache initialized with {backend.__class__.__name__}")

    def _create_default_backend(self, config: VaultConfig) -> CacheBackend:
        if config.enable_redis_cache and config.redis_url:
            try:
                return RedisCache(config.redis_url, config.cache_ttl_seconds)
            except CacheConnectionError as e:
                logger.warning(f"Failed to initialize Redis cache, falling back to memory: {str(e)}")

        return MemoryCache(config.cache_ttl_seconds)

    def _make_key(self, section: str, user_id: str) -> str:
        return f"papertrail:{section}:{user_id}"

    def _get(self, section: str, user_id: str) -> Optional[Any]:
        value = self.backend.get(self._make_key(section, user_id))
        if value is not None:
            self.hit_count += 1
            logger.debug(f"Cache HIT for {section}: {user_id}")
        else:
            self.miss_count += 1
            logger.debug(f"Cache MISS for {section}: {user_id}")
        return value

    def _set(self, section: str, user_id: str, value: Any, ttl: Optional[int], generation: Optional[int]) -> bool:
        with self._lock:
            if generation is not None and generation != self._generations.get(user_id, 0):
                logger.debug(f"Dropped stale {section} snapshot for {user_id}")
                return False
            return self.backend.set(self._make_key(section, user_id), value, ttl)

    def generation(self, user_id: str) -> int:
        """
        Current generation for ``user_id``.

        Read it before loading a snapshot from the store and pass it to the
        matching ``set_*`` call.
        """
        with self._lock:
            return self._generations.get(user_id, 0)

    def get_progress(self, user_id: str) -> Optional[Dict[str, Dict[str, Any]]]:
        return self._get("progress", user_id)

    def set_progress(self, user_id: str, progress: Dict[str, Dict[str, Any]], ttl: Optional[int] = None,
                     generation: Optional[int] = None) -> bool:
        return self._set("progress", user_id, progress, ttl, generation)

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._get("profile", user_id)

    def set_profile(self, user_id: str, profile: Dict[str, Any], ttl: Optional[int] = None,
                    generation: Optional[int] = None) -> bool:
        return self._set("profile", user_id, profile, ttl, generation)

    def invalidate_user(self, user_id: str) -> None:
        """Drop every cached snapshot for ``user_id``."""
        with self._lock:
            self._generations[user_id] = self._generations.get(user_id, 0) + 1
            for section in self.SECTIONS:
                self.backend.delete(self._make_key(section, user_id))
        logger.debug(f"Invalidated cache for user: {user_id}")

    def get_cache_stats(self) -> Dict[str, Any]:
        total_requests = self.hit_count + self.miss_count
        stats = {
            'hits': self.hit_count,
            'misses': self.miss_count,
            'total_requests': total_requests,
            'hit_rate': (self.hit_count / total_requests) if total_requests > 0 else 0,
        }
        stats.update(self.backend.get_stats())
        return stats
