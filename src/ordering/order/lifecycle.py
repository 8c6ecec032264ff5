"""Order lifecycle: single-order transition and deletion commands.

Each command runs in its own unit of work.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import OrderNotFound
from ordering.order.order import Order

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class MarkOrderProcessing:
    order_id = Identifier(required=True)


@ordering.command(part_of="Order")
class ShipOrder:
    """Ship an order, moving a pending order through processing first."""

    order_id = Identifier(required=True)


@ordering.command(part_of="Order")
class DeliverOrder:
    order_id = Identifier(required=True)


@ordering.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)


@ordering.command(part_of="Order")
class DeleteOrder:
    """Delete an order together with its items."""

    order_id = Identifier(required=True)


def load_order(order_id):
    """Fetch an order or raise ``OrderNotFound``."""
    try:
        return current_domain.repository_for(Order).get(str(order_id))
    except ObjectNotFoundError:
        raise OrderNotFound({"order_id": [f"Order not found: {order_id}"]}) from None


@ordering.command_handler(part_of=Order)
class OrderLifecycleHandler:
    def _transition(self, order_id, action):
        order = load_order(order_id)
        getattr(order, action)()
        current_domain.repository_for(Order).add(order)
        return order

    @handle(MarkOrderProcessing)
    def mark_processing(self, command):
        self._transition(command.order_id, "mark_as_processing")

    @handle(ShipOrder)
    def ship_order(self, command):
        order = self._transition(command.order_id, "ship")
        logger.debug("Order shipped", order_id=str(order.id))

    @handle(DeliverOrder)
    def deliver_order(self, command):
        self._transition(command.order_id, "mark_as_delivered")

    @handle(CancelOrder)
    def cancel_order(self, command):
        order = self._transition(command.order_id, "mark_as_cancelled")
        logger.info("Order cancelled", order_id=str(order.id))

    @handle(DeleteOrder)
    def delete_order(self, command):
        repo = current_domain.repository_for(Order)
        order = load_order(command.order_id)

        # Items are owned by the order; drop them before the root row
        for item in list(order.items):
            order.remove_items(item)
        repo.add(order)
        repo._dao.delete(order)
        logger.info("Order deleted", order_id=str(command.order_id))
