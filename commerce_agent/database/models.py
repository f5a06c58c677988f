"""
Pydantic models for durable records.

AI Assistant Notes:
- ConversationMemoryRecord is the tier-2 row: one user/agent exchange
- tenant_id is Optional only so the isolation audit can represent orphaned rows;
  every write path requires it
- OrderRecord is what the order repository returns after creation
- Timestamps are timezone-aware UTC
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum
import re


class OrderStatus(str, Enum):
    """Order status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ConversationMemoryRecord(BaseModel):
    """Durable conversation memory row (one exchange)."""

    id: str = Field(..., description="Record identifier (uuid4 hex)")
    tenant_id: Optional[str] = Field(None, description="Owning tenant")
    conversation_id: Optional[str] = Field(None, description="Conversation/session identifier")
    participant_id: str = Field(..., description="End customer identifier")
    user_message: Optional[str] = Field(None, description="Customer text")
    ai_response: Optional[str] = Field(None, description="Agent text")
    intent: Optional[str] = Field(None, description="Detected intent")
    sentiment: Optional[str] = Field(None, description="Detected sentiment")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Additional metadata")
    timestamp: datetime = Field(..., description="Exchange timestamp")

    @field_validator('timestamp')
    @classmethod
    def validate_timestamp(cls, v: datetime) -> datetime:
        """Normalize timestamps to aware UTC."""
        return as_utc(v)


class OrderRecord(BaseModel):
    """Persisted order created from a confirmed conversation."""

    id: Optional[int] = Field(None, description="Database ID")
    order_number: str = Field(..., description="Unique order number")
    tenant_id: str = Field(..., min_length=1, description="Owning tenant")
    customer_id: Optional[str] = Field(None, description="Customer identifier, if known")
    customer_name: str = Field(..., min_length=1, description="Customer name")
    customer_phone: str = Field(..., description="Customer phone number")
    customer_address: str = Field(..., min_length=1, description="Delivery address")
    city: str = Field(..., min_length=1, description="Governorate / city")
    product_name: str = Field(..., min_length=1, description="Ordered product")
    product_color: Optional[str] = Field(None, description="Chosen color")
    product_size: Optional[str] = Field(None, description="Chosen size")
    quantity: int = Field(1, ge=1, le=100, description="Ordered quantity")
    order_status: OrderStatus = Field(OrderStatus.PENDING, description="Current order status")
    extraction_method: Optional[str] = Field(None, description="How the order was captured")
    notes: Optional[str] = Field(None, description="Free-form notes")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")

    @field_validator('customer_phone')
    @classmethod
    def validate_customer_phone(cls, v: str) -> str:
        """Keep digits only."""
        digits = re.sub(r'[^\d]', '', v or '')
        if len(digits) < 10 or len(digits) > 15:
            raise ValueError('Phone number must have 10-15 digits')
        return digits

    model_config = {"use_enum_values": True}


class ShippingZone(BaseModel):
    """Delivery estimate for one governorate of one tenant."""

    id: Optional[int] = None
    tenant_id: str = Field(..., min_length=1)
    governorate: str = Field(..., min_length=1)
    delivery_time: str = Field(..., min_length=1)
    price: Optional[float] = Field(None, ge=0)
    is_active: bool = True
