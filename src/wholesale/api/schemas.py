"""Pydantic request/response models for the wholesale API.

API schemas are separate from Protean commands (anti-corruption pattern).
"""

from typing import Literal

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request Models
# ---------------------------------------------------------------------------
class InventoryChangeRequest(BaseModel):
    operation: Literal["SET", "INCREMENT", "DECREMENT"]
    quantity: int = Field(..., ge=0)
    reason: str | None = Field(None, max_length=500)


class OrderLineSchema(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    variant: str | None = Field(None, max_length=100)


class ShippingAddressSchema(BaseModel):
    recipient_name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=1, max_length=30)
    address: str = Field(..., min_length=1, max_length=255)
    address_detail: str | None = Field(None, max_length=255)
    zip_code: str = Field(..., min_length=1, max_length=20)


class PlaceOrderRequest(BaseModel):
    items: list[OrderLineSchema] = Field(..., min_length=1)
    shipping_address: ShippingAddressSchema

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [{"product_id": "prod-001", "quantity": 12}],
                    "shipping_address": {
                        "recipient_name": "Jane Doe",
                        "phone": "010-1234-5678",
                        "address": "1 Market Street",
                        "zip_code": "04524",
                    },
                }
            ]
        }
    }


class OrderStatusRequest(BaseModel):
    status: Literal["PENDING", "PAID", "PREPARING", "SHIPPED", "DELIVERED", "CANCELLED"]
    reason: str | None = Field(None, max_length=500)
    tracking_number: str | None = Field(None, max_length=100)


class NotificationActionRequest(BaseModel):
    action: Literal["mark_read", "mark_all_read"]
    notification_id: str | None = None


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------
class StatusResponse(BaseModel):
    status: str = "ok"


class InventoryChangeResponse(BaseModel):
    product_id: str
    previous_inventory: int
    new_inventory: int
    previous_status: str
    new_status: str
    status_changed: bool


class OrderPlacedResponse(BaseModel):
    order_id: str
    order_number: str
    status: str
    total_amount: float


class OrderTransitionResponse(BaseModel):
    order_id: str
    previous_status: str
    new_status: str
    requires_refund: bool
    tracking_number: str | None = None


class NotificationResponse(BaseModel):
    id: str
    recipient_key: str
    notification_type: str
    title: str
    message: str
    created_at: str
    read: bool
    order_id: str | None = None
    product_id: str | None = None
    data: dict = Field(default_factory=dict)


class NotificationPollResponse(BaseModel):
    notifications: list[NotificationResponse]
    unread_count: int
    timestamp: str
    poll_interval: int
