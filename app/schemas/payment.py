"""
Pydantic schemas for payment endpoints.
"""
from typing import Optional
from pydantic import BaseModel, Field


class WebhookAck(BaseModel):
    """Acknowledgement returned to the payment provider."""
    received: bool = True
    event_type: str = Field(..., description="Provider event type")
    payment_id: Optional[str] = Field(None, description="Local payment the event applied to")
    status: Optional[str] = Field(None, description="Payment status after the event")
    ignored: bool = Field(False, description="True for events this service does not act on")

    class Config:
        json_schema_extra = {
            "example": {
                "received": True,
                "event_type": "payment_intent.succeeded",
                "payment_id": "0b7f3c1e-4d1e-4a55-9a0b-6c1f3e2d9a10",
                "status": "completed",
                "ignored": False
            }
        }
