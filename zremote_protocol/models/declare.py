"""Payloads of declare.* requests.

Undeclare requests carry no payload: the entity id travels in the envelope.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class DeclarePublisherPayload(BaseModel):
    key_expr: str
    encoding: Optional[str] = None
    congestion_control: Optional[int] = None
    priority: Optional[int] = None
    express: Optional[bool] = None
    reliability: Optional[int] = None
    allowed_destination: Optional[int] = None


class DeclareSubscriberPayload(BaseModel):
    key_expr: str
    allowed_origin: Optional[int] = None


class DeclareQueryablePayload(BaseModel):
    key_expr: str
    complete: bool = False
    allowed_origin: Optional[int] = None


class DeclareQuerierPayload(BaseModel):
    key_expr: str
    target: Optional[int] = None
    consolidation: Optional[int] = None
    congestion_control: Optional[int] = None
    priority: Optional[int] = None
    express: Optional[bool] = None
    accept_replies: Optional[int] = None
    allowed_destination: Optional[int] = None
    timeout_ms: int = Field(default=10_000, ge=0)


class DeclareLivelinessTokenPayload(BaseModel):
    key_expr: str


class DeclareLivelinessSubscriberPayload(BaseModel):
    key_expr: str
    history: bool = False


class DeclareMatchingListenerPayload(BaseModel):
    """Matching listeners watch either a publisher or a querier."""

    entity: Literal["publisher", "querier"]
    entity_id: int = Field(ge=0)


class GetMatchingStatusPayload(BaseModel):
    entity: Literal["publisher", "querier"]
    entity_id: int = Field(ge=0)
