"""Tests for Order status transitions and the transition guards."""

import pytest
from ordering.order.events import OrderCancelled, OrderShipped
from ordering.order.order import Order, OrderStatus
from ordering.product.product import Product
from protean.exceptions import ValidationError


def _order_at_state(target_status):
    """Create an order with one line and advance it to the desired state."""
    order = Order.create(customer_name="Ada Lovelace", customer_email="ada@example.com")
    order.add_product(Product(name="Widget", price=10.0, stock_quantity=5), 1)
    order._events.clear()

    if target_status == OrderStatus.PENDING:
        return order

    if target_status == OrderStatus.CANCELLED:
        order.mark_as_cancelled()
        order._events.clear()
        return order

    order.mark_as_processing()
    if target_status == OrderStatus.PROCESSING:
        return order

    order.mark_as_shipped()
    if target_status == OrderStatus.SHIPPED:
        return order

    order.mark_as_delivered()
    order._events.clear()
    return order


class TestValidTransitions:
    @pytest.mark.parametrize(
        "start, method, expected",
        [
            (OrderStatus.PENDING, "mark_as_processing", OrderStatus.PROCESSING),
            (OrderStatus.PENDING, "mark_as_cancelled", OrderStatus.CANCELLED),
            (OrderStatus.PROCESSING, "mark_as_shipped", OrderStatus.SHIPPED),
            (OrderStatus.PROCESSING, "mark_as_cancelled", OrderStatus.CANCELLED),
            (OrderStatus.SHIPPED, "mark_as_delivered", OrderStatus.DELIVERED),
            (OrderStatus.SHIPPED, "mark_as_cancelled", OrderStatus.CANCELLED),
        ],
    )
    def test_transition(self, start, method, expected):
        order = _order_at_state(start)
        getattr(order, method)()
        assert order.status == expected.value


class TestInvalidTransitions:
    @pytest.mark.parametrize(
        "start, method",
        [
            (OrderStatus.PENDING, "mark_as_shipped"),
            (OrderStatus.PENDING, "mark_as_delivered"),
            (OrderStatus.PROCESSING, "mark_as_processing"),
            (OrderStatus.DELIVERED, "mark_as_cancelled"),
            (OrderStatus.DELIVERED, "mark_as_processing"),
            (OrderStatus.CANCELLED, "mark_as_processing"),
            (OrderStatus.CANCELLED, "mark_as_shipped"),
        ],
    )
    def test_rejected(self, start, method):
        order = _order_at_state(start)
        with pytest.raises(ValidationError):
            getattr(order, method)()
        assert order.status == start.value


class TestShip:
    def test_pending_order_passes_through_processing(self):
        order = _order_at_state(OrderStatus.PENDING)
        order.ship()
        assert order.status == OrderStatus.SHIPPED.value

    def test_processing_order_ships(self):
        order = _order_at_state(OrderStatus.PROCESSING)
        order.ship()
        assert order.status == OrderStatus.SHIPPED.value
        assert isinstance(order._events[-1], OrderShipped)

    @pytest.mark.parametrize("start", [OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    def test_cannot_ship_twice_or_after_terminal(self, start):
        order = _order_at_state(start)
        with pytest.raises(ValidationError):
            order.ship()


class TestCancellationEvent:
    def test_records_previous_status(self):
        order = _order_at_state(OrderStatus.PROCESSING)
        order.mark_as_cancelled()

        event = order._events[-1]
        assert isinstance(event, OrderCancelled)
        assert event.previous_status == OrderStatus.PROCESSING.value
