from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class OpenSessionPayload(BaseModel):
    """Sent once right after the socket opens."""

    client: str = "zremote"


class OpenAckPayload(BaseModel):
    uuid: str


class ErrorPayload(BaseModel):
    """Broker-side failure answering a request."""

    error: str


class SessionInfoPayload(BaseModel):
    zid: str
    routers: List[str] = Field(default_factory=list)
    peers: List[str] = Field(default_factory=list)


class TimestampPayload(BaseModel):
    id: str
    string_rep: str
    millis_since_epoch: int


class MatchingStatusPayload(BaseModel):
    matching: bool

