"""
Request bodies accepted by the HTTP adapter.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, Field, StrictInt, field_validator


class SetRequest(BaseModel):
    """Body of POST /set. Empty strings are rejected by the store."""
    key: str = ""
    value: str = ""
    # Strings are passed through so the store decides if they parse
    expiry: Union[StrictInt, str] = Field(0, description="TTL in seconds, 0 for no expiry")
    condition: Optional[str] = Field(None, description="NX or XX")

    @field_validator('condition')
    @classmethod
    def normalize_condition(cls, v):
        if v is None:
            return v
        return v.strip().upper()


class QPushRequest(BaseModel):
    key: str = ""
    values: List[str] = Field(default_factory=list)


class CommandRequest(BaseModel):
    command: str = Field(..., description='e.g. "SET key value EX 10 NX"')
