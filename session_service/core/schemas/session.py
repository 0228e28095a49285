"""Session Schemas"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic.alias_generators import to_camel


class Session(BaseModel):
    """A stored session, serialised with camelCase keys"""

    session_id: str = Field(..., min_length=1, description="Unique session identifier")
    username: str = Field(..., min_length=1, description="Owner of the session")
    payload: str = Field(..., description="Opaque application-defined session data")
    created_at: int = Field(..., description="Creation time (epoch seconds)")
    expires_at: int = Field(..., description="Expiry time (epoch seconds)")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        json_schema_extra={
            "example": {
                "sessionId": "8Jp2m4R0Yb0d5vQe1u7w9A",
                "username": "alice",
                "payload": "p1",
                "createdAt": 1760659200,
                "expiresAt": 1760662800,
            }
        },
    )

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


class CreateSessionRequest(BaseModel):
    """Request body for session creation.

    Presence and range checks happen in the repository so that a missing
    username and an empty one produce the same error.
    """

    username: Optional[StrictStr] = Field(None, description="Owner of the session")
    payload: Optional[StrictStr] = Field(None, description="Opaque session data")
    ttl_seconds: Optional[int] = Field(
        None, description="Lifetime in seconds (defaults to the service setting)"
    )
    session_id: Optional[StrictStr] = Field(
        None, description="Caller-chosen session id (generated when omitted)"
    )

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {"username": "alice", "payload": "p1", "ttlSeconds": 3600}
        },
    )


class DeleteSessionsResponse(BaseModel):
    """Response for a bulk delete of a user's sessions"""

    username: str
    deleted_count: int = Field(..., ge=0)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(BaseModel):
    """Error body returned by every non-2xx response"""

    error: str
