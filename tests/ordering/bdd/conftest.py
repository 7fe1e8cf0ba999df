"""Shared BDD fixtures and step definitions for the order lifecycle."""

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then

from wholesale.ordering.lifecycle import OrderLifecycleController
from wholesale.ordering.order import Order
from wholesale.ordering.placement import OrderPlacement
from wholesale.shared.errors import InvalidTransitionError, UnauthorizedActorError, ValidationFailedError

ADDRESS = {
    "recipient_name": "Kim Lee",
    "phone": "010-1234-5678",
    "address": "12 Market Street",
    "zip_code": "04524",
}

_ERRORS = {
    "invalid": InvalidTransitionError,
    "invalid input": ValidationFailedError,
    "unauthorized": UnauthorizedActorError,
}


@pytest.fixture()
def error():
    """Container for the failure raised by a When step."""
    return {"exc": None}


@pytest.fixture()
def controller(engine, dispatcher):
    return OrderLifecycleController(engine=engine, dispatcher=dispatcher, sleep=lambda _: None)


@pytest.fixture()
def transition_result():
    return {"result": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("a product with {count:d} units in stock"), target_fixture="product")
def _(make_product, count):
    return make_product(inventory=count)


@given(parsers.cfparse("the buyer has placed an order for {count:d} units"), target_fixture="order_id")
def _(engine, dispatcher, product, buyer, count):
    placement = OrderPlacement(engine=engine, dispatcher=dispatcher)
    return placement.place_order(buyer, [{"product_id": product.id, "quantity": count}], ADDRESS).order_id


@given(parsers.cfparse('the order has moved to "{status}"'))
def _(controller, master_admin, order_id, status):
    metadata = {"tracking_number": "TRK-GIVEN"} if status == "SHIPPED" else None
    controller.transition_order(order_id, status, master_admin, metadata=metadata)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order is "{status}"'))
def _(order_id, status):
    assert current_domain.repository_for(Order).get(order_id).status == status


@then(parsers.cfparse("the stock level is {count:d}"))
def _(reload_product, product, count):
    assert reload_product(product.id).inventory == count


@then(parsers.cfparse("the transition is rejected as {reason}"))
def _(error, reason):
    assert type(error["exc"]) is _ERRORS[reason]
