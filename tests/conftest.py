import os
from pathlib import Path

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Fetch and activate the domain by pushing the associated domain_context. The activated domain can then be referred to elsewhere as `current_domain`
    """
    os.environ["PROTEAN_ENV"] = session.config.option.env

    from wholesale.domain import wholesale

    wholesale.init()
    wholesale.domain_context().push()


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/bdd/" in test_path:
            item.add_marker(pytest.mark.bdd)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session", autouse=True)
def setup_db(request):
    from wholesale.domain import wholesale
    from wholesale.utils.db import drop_db, setup_db

    setup_db(wholesale)

    yield

    drop_db(wholesale)


@pytest.fixture(autouse=True)
def run_around_tests():
    """Fixture to automatically cleanup infrastructure after every test"""
    yield

    from protean import current_domain

    from wholesale.config import reset_settings
    from wholesale.inventory.engine import reset_inventory_engine
    from wholesale.notifications.dispatcher import reset_dispatcher
    from wholesale.notifications.store import reset_notification_store
    from wholesale.ordering.lifecycle import reset_lifecycle_controller
    from wholesale.shared.admission import reset_admission_guard
    from wholesale.shared.concurrency import reset_row_locks

    # Clear all databases
    for _, provider in current_domain.providers.items():
        provider._data_reset()

    # Drain event stores
    current_domain.event_store.store._data_reset()

    # Forget process-wide collaborators so every test starts from defaults
    reset_settings()
    reset_notification_store()
    reset_dispatcher()
    reset_inventory_engine()
    reset_lifecycle_controller()
    reset_admission_guard()
    reset_row_locks()


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------
@pytest.fixture()
def buyer():
    from wholesale.identity.user import Role, User

    return User(id="buyer-001", role=Role.BUYER.value)


@pytest.fixture()
def other_buyer():
    from wholesale.identity.user import Role, User

    return User(id="buyer-002", role=Role.BUYER.value)


@pytest.fixture()
def master_admin():
    from wholesale.identity.user import Role, User

    return User(id="admin-001", role=Role.MASTER_ADMIN.value)


@pytest.fixture()
def brand_admin():
    from wholesale.identity.user import Role, User

    return User(id="brand-admin-a", role=Role.BRAND_ADMIN.value, brand_id="brand-a")


@pytest.fixture()
def other_brand_admin():
    from wholesale.identity.user import Role, User

    return User(id="brand-admin-b", role=Role.BRAND_ADMIN.value, brand_id="brand-b")


# ---------------------------------------------------------------------------
# Stored aggregates
# ---------------------------------------------------------------------------
@pytest.fixture()
def make_product():
    """Create and store a product; keyword arguments override the defaults."""
    from protean import current_domain

    from wholesale.catalogue.product import Product

    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        values = {
            "sku": f"SKU-{counter['n']:03d}",
            "brand_id": "brand-a",
            "name": f"Product {counter['n']}",
            "base_price": 100.0,
            "inventory": 10,
        }
        values.update(overrides)
        product = Product.create(**values)
        current_domain.repository_for(Product).add(product)
        return product

    return _make


@pytest.fixture()
def reload_product():
    from protean import current_domain

    from wholesale.catalogue.product import Product

    def _reload(product_id):
        return current_domain.repository_for(Product).get(product_id)

    return _reload


@pytest.fixture()
def audit_records():
    """All stored audit records, optionally filtered by action."""
    from protean import current_domain

    from wholesale.audit.audit_record import AuditRecord

    def _records(action=None):
        records = current_domain.repository_for(AuditRecord)._dao.query.all().items
        if action is not None:
            value = getattr(action, "value", action)
            records = [r for r in records if r.action == value]
        return records

    return _records


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
@pytest.fixture()
def memory_store():
    from wholesale.notifications.store import InMemoryNotificationStore, set_notification_store

    store = InMemoryNotificationStore()
    set_notification_store(store)
    return store


@pytest.fixture()
def dispatcher(memory_store):
    from wholesale.identity.directory import StaticRoleDirectory
    from wholesale.notifications.dispatcher import NotificationDispatcher, set_dispatcher

    dispatcher = NotificationDispatcher(store=memory_store, role_directory=StaticRoleDirectory())
    set_dispatcher(dispatcher)
    return dispatcher


@pytest.fixture()
def engine():
    from wholesale.inventory.engine import InventoryMutationEngine, set_inventory_engine

    engine = InventoryMutationEngine(sleep=lambda _: None)
    set_inventory_engine(engine)
    return engine
