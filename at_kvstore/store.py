"""
In-process key-value store with lazy TTL expiry, conditional writes and
append-only string queues.

Each key maps to an Entry holding either a Scalar or a Queue. Queues are
handed out as a JSON array of strings so that GET returns them like any
other string value; callers use decode_queue() to read them back.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import structlog

from .clock import Clock, SystemClock
from .errors import ConditionFailed, EncodingError, InvalidArgument, NotFound
from .locks import ReadWriteLock

logger = structlog.get_logger()

# Roughly 100 years; keeps now + ttl inside the datetime range.
MAX_TTL_SECONDS = 100 * 365 * 24 * 3600


class Condition(Enum):
    NONE = "NONE"
    NOT_EXISTS = "NX"  # write only if the key is absent
    MUST_EXIST = "XX"  # write only if the key is present

    @classmethod
    def from_token(cls, token: Optional[str]) -> "Condition":
        """Map a wire token ("NX", "XX", empty) to a Condition."""
        if token is None or token == "":
            return cls.NONE
        if not isinstance(token, str):
            raise InvalidArgument(f"Invalid condition: {token!r}")
        try:
            return cls(token.strip().upper())
        except ValueError:
            raise InvalidArgument(f"Invalid condition: {token}")


@dataclass(frozen=True)
class Scalar:
    text: str

    def encode(self) -> str:
        return self.text


@dataclass(frozen=True)
class Queue:
    items: Tuple[str, ...] = ()

    def encode(self) -> str:
        return json.dumps(list(self.items), separators=(",", ":"))

    def extend(self, values: Sequence[str]) -> "Queue":
        return Queue(self.items + tuple(values))

    def __len__(self) -> int:
        return len(self.items)


Value = Union[Scalar, Queue]


@dataclass(frozen=True)
class Entry:
    """A stored value and its optional expiry instant."""
    value: Value
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


def decode_queue(encoded: str) -> List[str]:
    """
    Decode a queue value returned by KeyValueStore.get().

    Raises:
        EncodingError: if the value is not a JSON array of strings
    """
    try:
        items = json.loads(encoded)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Unable to decode queue data: {e}")

    if not isinstance(items, list) or not all(isinstance(item, str) for item in items):
        raise EncodingError("Stored value is not a queue of strings")
    return items


def parse_ttl(ttl_seconds: Any) -> int:
    """Validate a TTL given as int or numeric string; 0 means no expiry."""
    if isinstance(ttl_seconds, bool):
        raise InvalidArgument("Invalid expiry value")

    if isinstance(ttl_seconds, int):
        ttl = ttl_seconds
    elif isinstance(ttl_seconds, str):
        try:
            ttl = int(ttl_seconds.strip())
        except ValueError:
            raise InvalidArgument(f"Invalid expiry value: {ttl_seconds}")
    else:
        raise InvalidArgument("Invalid expiry value")

    if ttl < 0:
        raise InvalidArgument(f"Expiry must not be negative: {ttl}")
    if ttl > MAX_TTL_SECONDS:
        raise InvalidArgument(f"Expiry out of range: {ttl}")
    return ttl


def _require_key(key: Any) -> None:
    if not isinstance(key, str) or not key:
        raise InvalidArgument("Key is required")


class KeyValueStore:
    """
    Thread-safe map from key to Entry.

    All operations are synchronous and guarded by one readers-writer lock
    over the whole map. Expired entries are evicted by whichever operation
    first observes them; sweep_expired() removes the rest on demand.
    """

    def __init__(self, clock: Optional[Clock] = None, evictions=None):
        """
        Args:
            clock: Time source for expiry (defaults to SystemClock)
            evictions: Optional prometheus Counter labelled by ``reason``
        """
        self._clock = clock or SystemClock()
        self._entries: Dict[str, Entry] = {}
        self._lock = ReadWriteLock()
        self.evictions = evictions

    def set(
        self,
        key: str,
        value: str,
        ttl_seconds: Any = 0,
        condition: Union[Condition, str, None] = Condition.NONE
    ) -> None:
        """
        Store a scalar value, replacing whatever the key held before.

        Raises:
            InvalidArgument: empty key/value, bad TTL or unknown condition
            ConditionFailed: NX on a live key, or XX on an absent key
        """
        _require_key(key)
        if not isinstance(value, str) or not value:
            raise InvalidArgument("Value is required", key)
        ttl = parse_ttl(ttl_seconds)
        if not isinstance(condition, Condition):
            condition = Condition.from_token(condition)

        with self._lock.write():
            now = self._clock.now_utc()
            present = self._live_entry(key, now) is not None

            if present and condition is Condition.NOT_EXISTS:
                raise ConditionFailed("Key already exists", key, key_exists=True)
            if not present and condition is Condition.MUST_EXIST:
                raise ConditionFailed("Key does not exist", key, key_exists=False)

            expires_at = now + timedelta(seconds=ttl) if ttl else None
            self._entries[key] = Entry(Scalar(value), expires_at)

        logger.debug(
            "Key set",
            key=key,
            ttl_seconds=ttl,
            condition=condition.value,
            replaced=present
        )

    def get(self, key: str) -> str:
        """
        Return the stored value (queues come back JSON-encoded).

        Raises:
            NotFound: key absent or expired
        """
        _require_key(key)
        entry = self._lookup(key)
        if entry is None:
            raise NotFound("Key not found or expired", key)
        return entry.value.encode()

    def exists(self, key: str) -> bool:
        _require_key(key)
        return self._lookup(key) is not None

    def queue_push(self, key: str, values: Sequence[str]) -> int:
        """
        Append values to the queue at key, creating it when absent.

        Returns:
            Queue length after the push

        Raises:
            InvalidArgument: empty key, empty values or an empty value
            EncodingError: key holds a scalar
        """
        _require_key(key)
        if not isinstance(values, (list, tuple)) or not values:
            raise InvalidArgument("Values are required", key)
        if not all(isinstance(v, str) and v for v in values):
            raise InvalidArgument("Queue values must be non-empty strings", key)

        with self._lock.write():
            entry = self._live_entry(key, self._clock.now_utc())

            if entry is None:
                queue, expires_at = Queue(), None
            elif isinstance(entry.value, Queue):
                queue, expires_at = entry.value, entry.expires_at
            else:
                raise EncodingError("Key holds a scalar value, not a queue", key)

            queue = queue.extend(values)
            self._entries[key] = Entry(queue, expires_at)

        logger.debug("Queue pushed", key=key, pushed=len(values), length=len(queue))
        return len(queue)

    def delete(self, key: str) -> bool:
        """Remove key; returns False when there was no live entry."""
        _require_key(key)
        with self._lock.write():
            if self._live_entry(key, self._clock.now_utc()) is None:
                return False
            del self._entries[key]
        return True

    def sweep_expired(self) -> int:
        """Evict every expired entry and return how many were removed."""
        with self._lock.write():
            now = self._clock.now_utc()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for k in expired:
                del self._entries[k]

        if expired:
            self._record_eviction("sweep", len(expired))
            logger.debug("Expired keys swept", count=len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)

    def _lookup(self, key: str) -> Optional[Entry]:
        with self._lock.read():
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_expired(self._clock.now_utc()):
                return entry

        # Escalate to evict; the entry may have been replaced meanwhile.
        with self._lock.write():
            if self._entries.get(key) is entry:
                del self._entries[key]
                self._record_eviction("lazy")
                logger.debug("Expired key evicted", key=key)
        return None

    def _live_entry(self, key: str, now: datetime) -> Optional[Entry]:
        # Caller holds the write lock.
        entry = self._entries.get(key)
        if entry is not None and entry.is_expired(now):
            del self._entries[key]
            self._record_eviction("lazy")
            logger.debug("Expired key evicted", key=key)
            return None
        return entry

    def _record_eviction(self, reason: str, count: int = 1) -> None:
        if self.evictions is not None:
            self.evictions.labels(reason=reason).inc(count)
