"""
Order extraction data models.

AI Assistant Notes:
- OrderDraft is built incrementally and never persisted before 'confirmed'
- Field aliases follow the camelCase JSON schema the model is asked to emit;
  populate_by_name keeps Python-side construction snake_case
- ExtractionResult.status and .response are kept consistent by the engine
"""

from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from enum import Enum

from commerce_agent.database.models import OrderRecord


REQUIRED_ORDER_FIELDS = ("customerName", "customerPhone", "customerAddress", "city", "product")


class ExtractionStatus(str, Enum):
    """Order state machine status for a single inbound message."""
    COLLECTING_DATA = "collecting_data"
    COMPLETE = "complete"
    CONFIRMED = "confirmed"
    CLARIFICATION_NEEDED = "clarification_needed"
    ERROR = "error"


class OrderItem(BaseModel):
    """One requested product line."""
    product: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    quantity: int = Field(1, ge=1, le=100)

    @field_validator('product', 'size', 'color', mode='before')
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator('quantity', mode='before')
    @classmethod
    def default_quantity(cls, v):
        return 1 if v in (None, "", 0) else v


class OrderDraft(BaseModel):
    """Order under construction."""
    customer_name: Optional[str] = Field(None, alias="customerName")
    customer_phone: Optional[str] = Field(None, alias="customerPhone")
    customer_address: Optional[str] = Field(None, alias="customerAddress")
    city: Optional[str] = None
    items: List[OrderItem] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    @field_validator('customer_name', 'customer_phone', 'customer_address', 'city', mode='before')
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator('items', mode='before')
    @classmethod
    def null_items(cls, v):
        return v or []

    @property
    def primary_item(self) -> Optional[OrderItem]:
        return self.items[0] if self.items else None

    def missing_fields(self) -> List[str]:
        """Names of required fields that are still unresolved."""
        missing = []
        if not self.customer_name:
            missing.append("customerName")
        if not self.customer_phone:
            missing.append("customerPhone")
        if not self.customer_address:
            missing.append("customerAddress")
        if not self.city:
            missing.append("city")
        if not self.primary_item or not self.primary_item.product:
            missing.append("product")
        return missing

    def is_complete(self) -> bool:
        return not self.missing_fields()


class RegexHints(BaseModel):
    """High-precision candidate fields harvested from the latest message."""
    has_data: bool = False
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    city: Optional[str] = None
    product_size: Optional[str] = None
    product_color: Optional[str] = None


class ExtractionResult(BaseModel):
    """Outcome of processing one inbound message."""
    order: Optional[OrderDraft] = None
    missing_fields: List[str] = Field(default_factory=list, alias="missingFields")
    status: ExtractionStatus
    response: str = ""
    order_created: Optional[OrderRecord] = Field(None, alias="orderCreated")
    error: Optional[str] = None

    model_config = {"populate_by_name": True}

    @field_validator('missing_fields', mode='before')
    @classmethod
    def null_missing(cls, v):
        return v or []

    @field_validator('response', mode='before')
    @classmethod
    def null_response(cls, v):
        return v or ""
