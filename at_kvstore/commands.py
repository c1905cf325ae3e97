"""
Tokenizer for single-string commands such as ``SET key value EX 10 NX``.

Produces a structured record per verb; the HTTP layer then calls the
matching store operation with it.
"""

from dataclasses import dataclass
from typing import List, Tuple, Union

from .errors import InvalidArgument, UnknownCommand
from .store import Condition, parse_ttl


@dataclass(frozen=True)
class SetCommand:
    key: str
    value: str
    ttl_seconds: int = 0
    condition: Condition = Condition.NONE


@dataclass(frozen=True)
class GetCommand:
    key: str


@dataclass(frozen=True)
class QPushCommand:
    key: str
    values: Tuple[str, ...]


Command = Union[SetCommand, GetCommand, QPushCommand]


def parse_command(text: str) -> Command:
    """
    Parse a command string.

    Supported forms:
        SET key value [EX seconds] [NX|XX]   (options in any order)
        GET key
        QPUSH key value [value ...]

    Raises:
        UnknownCommand: unrecognised verb
        InvalidArgument: wrong arity or malformed options
    """
    words = (text or "").split()
    if not words:
        raise InvalidArgument("Empty command")

    verb, args = words[0].upper(), words[1:]

    if verb == "SET":
        return _parse_set(args)
    if verb == "GET":
        if len(args) != 1:
            raise InvalidArgument("GET expects exactly one key")
        return GetCommand(key=args[0])
    if verb == "QPUSH":
        if len(args) < 2:
            raise InvalidArgument("QPUSH expects a key and at least one value")
        return QPushCommand(key=args[0], values=tuple(args[1:]))

    raise UnknownCommand(f"Unknown command: {words[0]}")


def _parse_set(args: List[str]) -> SetCommand:
    if len(args) < 2:
        raise InvalidArgument("SET expects a key and a value")

    key, value, options = args[0], args[1], args[2:]
    ttl = None
    condition = None

    i = 0
    while i < len(options):
        token = options[i].upper()
        if token == "EX":
            if ttl is not None:
                raise InvalidArgument("EX given more than once")
            if i + 1 >= len(options):
                raise InvalidArgument("EX requires a number of seconds")
            ttl = parse_ttl(options[i + 1])
            i += 2
        elif token in ("NX", "XX"):
            if condition is not None:
                raise InvalidArgument("Only one of NX or XX may be given")
            condition = Condition.from_token(token)
            i += 1
        else:
            raise InvalidArgument(f"Unexpected SET option: {options[i]}")

    return SetCommand(
        key=key,
        value=value,
        ttl_seconds=ttl or 0,
        condition=condition or Condition.NONE
    )
