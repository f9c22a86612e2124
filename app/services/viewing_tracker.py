"""
Task viewing tracker.

Records "user U is looking at task T" as a short-lived cache entry
(key ``viewing:<task_id>:<user_id>``, value = last heartbeat timestamp).
Clients send a heartbeat while a task is open; an entry disappears on its
own once heartbeats stop for ``VIEWING_TTL_SECONDS``. Used to suppress
notifications to users who are already looking at the task.

Uses Redis when REDIS_URL is set, a simple in-memory dict otherwise.
Nothing here is durable state.
"""

import logging
import os
import time

from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

DEFAULT_VIEWING_TTL = 15  # seconds

_KEY_PREFIX = "viewing:"


# ── In-memory fallback ───────────────────────────────────────────────────

_memory_store: dict = {}  # key → (value, expire_ts)


class _MemoryBackend:
    """Dict-backed TTL store for dev/testing."""

    def get(self, key):
        entry = _memory_store.get(key)
        if entry is None:
            return None
        val, expires = entry
        if expires and time.time() > expires:
            _memory_store.pop(key, None)
            return None
        return val

    def setex(self, key, ttl_seconds, value):
        _memory_store[key] = (value, time.time() + ttl_seconds)

    def delete(self, *keys):
        for k in keys:
            _memory_store.pop(k, None)

    def scan_iter(self, match):
        """Glob matching for 'prefix*' patterns; skips expired entries."""
        prefix = match[:-1] if match.endswith("*") else match
        for k in list(_memory_store):
            if k.startswith(prefix) and self.get(k) is not None:
                yield k

    def flushdb(self):
        _memory_store.clear()

    def ping(self):
        return True


# ── Singleton backend ────────────────────────────────────────────────────

_backend = None


def _config(name, default=None):
    if has_app_context():
        value = current_app.config.get(name)
        if value is not None:
            return value
    return os.getenv(name, default)


def _get_backend():
    """Lazy-initialise Redis or fall back to in-memory."""
    global _backend
    if _backend is not None:
        return _backend

    redis_url = _config("REDIS_URL")
    if redis_url and not redis_url.startswith("memory://"):
        try:
            import redis as _redis
            _backend = _redis.from_url(redis_url, decode_responses=True)
            _backend.ping()
            logger.info("Viewing tracker: using Redis at %s", redis_url.split("@")[-1])
        except Exception as exc:
            logger.warning("Redis unavailable (%s), using in-memory viewing tracker", exc)
            _backend = _MemoryBackend()
    else:
        _backend = _MemoryBackend()
    return _backend


def reset_backend():
    """Drop the cached backend (tests, config reload)."""
    global _backend
    _backend = None
    _memory_store.clear()


def _ttl() -> int:
    try:
        return int(_config("VIEWING_TTL_SECONDS", DEFAULT_VIEWING_TTL))
    except (TypeError, ValueError):
        return DEFAULT_VIEWING_TTL


def _key(task_id, user_id):
    return f"{_KEY_PREFIX}{task_id}:{user_id}"


# ── Public API ───────────────────────────────────────────────────────────


def mark_viewing(task_id, user_id):
    """Record a heartbeat; returns the TTL applied."""
    ttl = _ttl()
    _get_backend().setex(_key(task_id, user_id), ttl, str(time.time()))
    return ttl


def mark_not_viewing(task_id, user_id):
    _get_backend().delete(_key(task_id, user_id))


def is_viewing(task_id, user_id):
    return _get_backend().get(_key(task_id, user_id)) is not None


def viewers_of(task_id):
    """User ids with a live heartbeat on the task."""
    prefix = f"{_KEY_PREFIX}{task_id}:"
    viewers = []
    for key in _get_backend().scan_iter(match=f"{prefix}*"):
        try:
            viewers.append(int(key[len(prefix):]))
        except ValueError:
            continue
    return sorted(viewers)


def health_check():
    """Return tracker backend status."""
    try:
        be = _get_backend()
        be.ping()
        return {"status": "ok", "backend": "memory" if isinstance(be, _MemoryBackend) else "redis"}
    except Exception as exc:
        return {"status": "error", "error": str(exc)}
