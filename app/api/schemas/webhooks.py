from typing import Optional

from pydantic import BaseModel, Field


class WebhookAck(BaseModel):
    received: bool = True
    error: Optional[str] = Field(None, description="Only set when the delivery was rejected")
