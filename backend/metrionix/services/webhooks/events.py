"""Inbound webhook envelope."""

import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ...errors import InvalidWebhookPayload


class WebhookEvent(BaseModel):
    """Envelope every platform webhook is normalized to."""

    agency_id: uuid.UUID = Field(..., description="Agency owning the integration")
    account_id: str = Field(..., min_length=1, description="Platform account id")
    event_type: str = Field(..., min_length=1, description="e.g. order.created, AD_UPDATED")
    data: Dict[str, Any] = Field(default_factory=dict, description="Platform payload")
    signature: Optional[str] = Field(None, description="Body-field HMAC when no signature header is sent")

    def require(self, key: str) -> Any:
        """Required field of `data`; missing raises InvalidWebhookPayload."""
        value = self.data.get(key)
        if value in (None, ""):
            raise InvalidWebhookPayload(f"{self.event_type} payload is missing data.{key}")
        return value
