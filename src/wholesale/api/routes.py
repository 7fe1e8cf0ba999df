"""FastAPI routes for the wholesale core.

Thin adapters that translate HTTP requests into domain commands.
No business logic, just schema -> command -> response translation.

Handlers are plain ``def``: the domain blocks on row locks and retry
backoff, so FastAPI runs each request on its worker threadpool. The domain
context pushed by the middleware travels with the request's contextvars.
"""

import json
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from protean.utils.globals import current_domain

from wholesale.api.dependencies import admit, get_actor, request_origin
from wholesale.api.schemas import (
    InventoryChangeRequest,
    InventoryChangeResponse,
    NotificationActionRequest,
    NotificationPollResponse,
    OrderPlacedResponse,
    OrderStatusRequest,
    OrderTransitionResponse,
    PlaceOrderRequest,
    StatusResponse,
)
from wholesale.config import get_settings
from wholesale.identity.user import User
from wholesale.inventory.adjustment import ChangeInventory
from wholesale.notifications.dispatcher import get_dispatcher
from wholesale.ordering.lifecycle import TransitionOrder
from wholesale.ordering.placement import PlaceOrder
from wholesale.shared.errors import ValidationFailedError

product_router = APIRouter(prefix="/products", tags=["inventory"])
order_router = APIRouter(prefix="/orders", tags=["orders"])
notification_router = APIRouter(prefix="/notifications", tags=["notifications"])


def _actor_fields(actor: User) -> dict:
    return {
        "actor_id": str(actor.id),
        "actor_role": actor.role,
        "actor_brand_id": actor.brand_id,
    }


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------
@product_router.patch(
    "/{product_id}/inventory",
    response_model=InventoryChangeResponse,
    dependencies=[Depends(admit)],
)
def change_inventory(
    product_id: str,
    body: InventoryChangeRequest,
    actor: User = Depends(get_actor),
    origin: str = Depends(request_origin),
) -> InventoryChangeResponse:
    command = ChangeInventory(
        product_id=product_id,
        operation=body.operation,
        quantity=body.quantity,
        reason=body.reason,
        origin=origin,
        **_actor_fields(actor),
    )
    result = current_domain.process(command, asynchronous=False)
    return InventoryChangeResponse(
        product_id=result.product_id,
        previous_inventory=result.previous_inventory,
        new_inventory=result.new_inventory,
        previous_status=result.previous_status,
        new_status=result.new_status,
        status_changed=result.status_changed,
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
@order_router.post(
    "",
    status_code=201,
    response_model=OrderPlacedResponse,
    dependencies=[Depends(admit)],
)
def place_order(
    body: PlaceOrderRequest,
    actor: User = Depends(get_actor),
    origin: str = Depends(request_origin),
) -> OrderPlacedResponse:
    command = PlaceOrder(
        items=json.dumps([line.model_dump() for line in body.items]),
        shipping_address=json.dumps(body.shipping_address.model_dump()),
        origin=origin,
        **_actor_fields(actor),
    )
    result = current_domain.process(command, asynchronous=False)
    return OrderPlacedResponse(
        order_id=result.order_id,
        order_number=result.order_number,
        status=result.status,
        total_amount=result.total_amount,
    )


@order_router.patch(
    "/{order_id}/status",
    response_model=OrderTransitionResponse,
    dependencies=[Depends(admit)],
)
def update_order_status(
    order_id: str,
    body: OrderStatusRequest,
    actor: User = Depends(get_actor),
    origin: str = Depends(request_origin),
) -> OrderTransitionResponse:
    metadata = {k: v for k, v in {"reason": body.reason, "tracking_number": body.tracking_number}.items() if v}
    command = TransitionOrder(
        order_id=order_id,
        target_status=body.status,
        metadata=json.dumps(metadata),
        origin=origin,
        **_actor_fields(actor),
    )
    result = current_domain.process(command, asynchronous=False)
    return OrderTransitionResponse(
        order_id=result.order_id,
        previous_status=result.previous_status,
        new_status=result.new_status,
        requires_refund=result.requires_refund,
        tracking_number=result.tracking_number,
    )


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
@notification_router.get("/check", response_model=NotificationPollResponse)
def check_notifications(since: str | None = None, actor: User = Depends(get_actor)) -> NotificationPollResponse:
    """Incremental poll: notifications newer than ``since`` plus the unread count."""
    since_dt = None
    if since:
        try:
            since_dt = datetime.fromisoformat(since.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationFailedError("since must be an ISO-8601 timestamp", field="since", value=since) from None

    polled = get_dispatcher().poll(str(actor.id), actor.role, since_dt)
    return NotificationPollResponse(poll_interval=get_settings().poll_interval_seconds, **polled)


@notification_router.post("/check", response_model=StatusResponse)
def update_notifications(body: NotificationActionRequest, actor: User = Depends(get_actor)) -> StatusResponse:
    dispatcher = get_dispatcher()
    if body.action == "mark_read":
        if not body.notification_id:
            raise ValidationFailedError("notification_id is required for mark_read", field="notification_id")
        dispatcher.mark_as_read(str(actor.id), body.notification_id)
    else:
        dispatcher.mark_all_as_read(str(actor.id), actor.role)
    return StatusResponse()
