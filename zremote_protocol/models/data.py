from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from .envelope import WireBytes


class PutPayload(BaseModel):
    key_expr: str
    payload: WireBytes
    encoding: Optional[str] = None
    attachment: Optional[WireBytes] = None
    timestamp: Optional[str] = None
    congestion_control: Optional[int] = None
    priority: Optional[int] = None
    express: Optional[bool] = None


class DeletePayload(BaseModel):
    key_expr: str
    attachment: Optional[WireBytes] = None
    timestamp: Optional[str] = None
    congestion_control: Optional[int] = None
    priority: Optional[int] = None
    express: Optional[bool] = None


class PublisherPutPayload(BaseModel):
    """Put through a declared publisher; the publisher id is the envelope id."""

    payload: WireBytes
    encoding: Optional[str] = None
    attachment: Optional[WireBytes] = None
    timestamp: Optional[str] = None


class PublisherDeletePayload(BaseModel):
    attachment: Optional[WireBytes] = None
    timestamp: Optional[str] = None


class GetPayload(BaseModel):
    key_expr: str
    parameters: Optional[str] = None
    payload: Optional[WireBytes] = None
    encoding: Optional[str] = None
    attachment: Optional[WireBytes] = None
    target: Optional[int] = None
    consolidation: Optional[int] = None
    congestion_control: Optional[int] = None
    priority: Optional[int] = None
    express: Optional[bool] = None
    timeout_ms: int = Field(default=10_000, ge=0)


class QuerierGetPayload(BaseModel):
    querier_id: int = Field(ge=0)
    parameters: Optional[str] = None
    payload: Optional[WireBytes] = None
    encoding: Optional[str] = None
    attachment: Optional[WireBytes] = None


class LivelinessGetPayload(BaseModel):
    key_expr: str
    timeout_ms: int = Field(default=10_000, ge=0)


class Sample(BaseModel):
    """A value (or deletion) observed on a key expression."""

    key_expr: str
    payload: WireBytes = b""
    kind: Literal["put", "delete"] = "put"
    encoding: Optional[str] = None
    attachment: Optional[WireBytes] = None
    timestamp: Optional[str] = None
    priority: Optional[int] = None
    congestion_control: Optional[int] = None
    express: Optional[bool] = None


class ReplyError(BaseModel):
    payload: WireBytes = b""
    encoding: Optional[str] = None


class Reply(BaseModel):
    """One answer to a query: either a sample or an error."""

    ok: Optional[Sample] = None
    err: Optional[ReplyError] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "Reply":
        if (self.ok is None) == (self.err is None):
            raise ValueError("reply must carry exactly one of ok/err")
        return self

    def is_ok(self) -> bool:
        return self.ok is not None


class QueryPayload(BaseModel):
    """Incoming query for a declared queryable."""

    query_id: int = Field(ge=0)
    key_expr: str
    parameters: str = ""
    payload: Optional[WireBytes] = None
    encoding: Optional[str] = None
    attachment: Optional[WireBytes] = None


class ReplyOkPayload(BaseModel):
    query_id: int = Field(ge=0)
    key_expr: str
    payload: WireBytes
    encoding: Optional[str] = None
    attachment: Optional[WireBytes] = None
    timestamp: Optional[str] = None


class ReplyDelPayload(BaseModel):
    query_id: int = Field(ge=0)
    key_expr: str
    attachment: Optional[WireBytes] = None
    timestamp: Optional[str] = None


class ReplyErrPayload(BaseModel):
    query_id: int = Field(ge=0)
    payload: WireBytes
    encoding: Optional[str] = None


class QueryFinalPayload(BaseModel):
    query_id: int = Field(ge=0)
