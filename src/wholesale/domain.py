"""Wholesale bounded context: order/inventory consistency core.

Hosts the User, Product, Order, AuditRecord and Notification aggregates,
the inventory mutation engine, the order lifecycle controller and the
notification dispatcher. Logging is configured by the entry points
(``wholesale.server``, ``wholesale.manage``), not on import.
"""

from protean.domain import Domain

from wholesale.utils.logging import get_logger

logger = get_logger(__name__)

# Domain Composition Root
wholesale = Domain(name="wholesale")
