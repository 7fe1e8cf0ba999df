"""Shared BDD fixtures and step definitions for inventory mutations."""

import pytest
from pytest_bdd import given, parsers, then

from wholesale.identity.user import system_actor
from wholesale.shared.errors import (
    InsufficientInventoryError,
    NegativeInventoryError,
    UnauthorizedActorError,
)

_ERRORS = {
    "insufficient inventory": InsufficientInventoryError,
    "negative inventory": NegativeInventoryError,
    "unauthorized": UnauthorizedActorError,
}


@pytest.fixture()
def error():
    """Container for the failure raised by a When step."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("a product with {count:d} units in stock"), target_fixture="product")
def _(make_product, count):
    return make_product(inventory=count, brand_id="brand-a")


@given(parsers.cfparse("the stock has been decremented by {count:d}"))
def _(engine, product, count):
    engine.apply_inventory_change(product.id, "DECREMENT", count, actor=system_actor())


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the stock level is {count:d}"))
def _(reload_product, product, count):
    assert reload_product(product.id).inventory == count


@then(parsers.cfparse('the product status is "{status}"'))
def _(reload_product, product, status):
    assert reload_product(product.id).status == status


@then(parsers.cfparse("the change is rejected as {reason}"))
def _(error, reason):
    assert isinstance(error["exc"], _ERRORS[reason])
