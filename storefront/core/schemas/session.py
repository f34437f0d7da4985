"""Session payload schemas"""

from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Bump when the shape of ``SessionPayload.data`` changes incompatibly
PAYLOAD_VERSION = 1

_JSON_SCALARS = (str, int, float, bool, type(None))


def _check_json_value(value: Any, path: str) -> None:
    """Only JSON-native values survive a round trip through the payload column."""
    if isinstance(value, _JSON_SCALARS):
        return
    if isinstance(value, list):
        for index, item in enumerate(value):
            _check_json_value(item, f"{path}[{index}]")
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValueError(f"{path} has non-string key {key!r}")
            _check_json_value(item, f"{path}.{key}")
        return
    raise ValueError(f"{path} holds {type(value).__name__}, which is not a JSON value")


class SessionPayload(BaseModel):
    """
    Versioned envelope stored in the ``payload`` column of the session table.

    ``data`` holds JSON values only (str, int, float, bool, None, lists and
    str-keyed dicts of those). Tuples, sets, datetimes and other objects are
    rejected rather than coerced, so what is loaded equals what was saved.
    """

    model_config = ConfigDict(extra="forbid")

    version: int = Field(PAYLOAD_VERSION, ge=1, description="Envelope schema version")
    data: Dict[str, Any] = Field(default_factory=dict, description="Application session values")

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: int) -> int:
        """Refuse envelopes written by a newer release"""
        if v > PAYLOAD_VERSION:
            raise ValueError(
                f"Session payload version {v} is newer than supported version {PAYLOAD_VERSION}"
            )
        return v

    @field_validator("data", mode="before")
    @classmethod
    def validate_json_values(cls, v: Any) -> Any:
        if isinstance(v, dict):
            _check_json_value(v, "data")
        return v


class StoredSession(BaseModel):
    """A live session as returned by the store"""

    id: str
    data: Dict[str, Any]
    expires_at: datetime
