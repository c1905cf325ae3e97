"""
Typed failures raised by the key-value store and its command parser.

Every error carries a stable code so the HTTP layer can report it as
"KV-00N: message" without inspecting the message text.
"""

from typing import Optional


class StoreError(Exception):
    """Base class for all store failures."""

    code = "KV-000"

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.key = key

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class InvalidArgument(StoreError):
    """Malformed or missing input, rejected before any state changes."""

    code = "KV-001"


class NotFound(StoreError):
    """Key absent or expired."""

    code = "KV-002"


class ConditionFailed(StoreError):
    """Conditional write precondition not met.

    ``key_exists`` tells which branch failed: True when NX found the key,
    False when XX did not.
    """

    def __init__(self, message: str, key: Optional[str] = None, key_exists: bool = False):
        super().__init__(message, key)
        self.key_exists = key_exists

    @property
    def code(self) -> str:
        return "KV-003" if self.key_exists else "KV-004"


class EncodingError(StoreError):
    """Stored value cannot be read as the requested shape."""

    code = "KV-005"


class UnknownCommand(InvalidArgument):
    code = "KV-006"
