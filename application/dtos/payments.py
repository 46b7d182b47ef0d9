"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict


class WebhookEvent(BaseModel):
    """Verified provider event"""
    id: str
    type: str
    provider: str
    data: dict[str, Any]
    created: Optional[int] = None
    # raw fields for traceability
    raw_headers: Optional[dict[str, Any]] = None
    raw_body: Optional[bytes] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def data_object(self) -> dict[str, Any]:
        obj = self.data.get("object") if isinstance(self.data, dict) else None
        return obj if isinstance(obj, dict) else {}


class FanoutSummary(BaseModel):
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0


class WebhookAck(BaseModel):
    """Acknowledgement returned to the provider. Always HTTP 200 once verified."""
    received: bool = True
    event_id: str
    event_type: str
    duplicate: bool = False
    order_transitioned: bool = False
    fanout: Optional[FanoutSummary] = None
    error: Optional[str] = None
