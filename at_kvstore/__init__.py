"""
at-kvstore: In-memory key-value store with TTL expiry, conditional writes
and append-only queues, served over HTTP
"""

__version__ = "1.0.0"

from .errors import StoreError, InvalidArgument, NotFound, ConditionFailed, EncodingError, UnknownCommand
from .store import KeyValueStore, Condition, Entry, Scalar, Queue, decode_queue

__all__ = [
    "KeyValueStore",
    "Condition",
    "Entry",
    "Scalar",
    "Queue",
    "decode_queue",
    "StoreError",
    "InvalidArgument",
    "NotFound",
    "ConditionFailed",
    "EncodingError",
    "UnknownCommand",
]
