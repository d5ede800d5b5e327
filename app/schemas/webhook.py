from typing import Any, Dict, Optional
from pydantic import BaseModel

class WebhookDelivery(BaseModel):
    """A verified webhook body plus the Shopify delivery headers."""
    payload: Dict[str, Any]
    topic: Optional[str] = None
    shop: Optional[str] = None
    webhook_id: Optional[str] = None
