"""In-process entry points of the Ordering domain.

Presentation layers (HTTP, CLI, workers) call these functions with plain
Python values. Each write goes through a command, so it runs in its own
unit of work.
"""

import json

from protean.utils.globals import current_domain

from ordering.order.lifecycle import (
    CancelOrder,
    DeleteOrder,
    DeliverOrder,
    MarkOrderProcessing,
    ShipOrder,
    load_order,
)
from ordering.order.order import Order
from ordering.order.placement import CheckoutOrder, PlaceOrder
from ordering.processing import recorder
from ordering.shipment.coordinator import BulkShipmentCoordinator


def _line_to_dict(line):
    if isinstance(line, dict):
        return {"product_id": line.get("product_id"), "quantity": line.get("quantity")}
    product_id, quantity = line
    return {"product_id": product_id, "quantity": quantity}


def place_order(customer_name, customer_email, product_ids, quantities) -> Order:
    order_id = current_domain.process(
        PlaceOrder(
            customer_name=customer_name,
            customer_email=customer_email,
            product_ids=json.dumps([None if pid is None else str(pid) for pid in product_ids or []]),
            quantities=json.dumps(list(quantities or [])),
        ),
        asynchronous=False,
    )
    return load_order(order_id)


def checkout_order(customer_name, customer_email, order_lines, coupon_code=None) -> Order:
    """Check out ``order_lines``: ``(product_id, quantity)`` pairs or dicts with those keys."""
    lines = [_line_to_dict(line) for line in order_lines or []]
    for line in lines:
        if line["product_id"] is not None:
            line["product_id"] = str(line["product_id"])

    order_id = current_domain.process(
        CheckoutOrder(
            customer_name=customer_name,
            customer_email=customer_email,
            lines=json.dumps(lines),
            coupon_code=coupon_code,
        ),
        asynchronous=False,
    )
    return load_order(order_id)


def bulk_ship_orders(job_id, order_ids, should_cancel=None, time_budget=None, coordinator=None):
    """Ship ``order_ids`` under ``job_id``. Poll ``get_status(job_id)`` for progress."""
    coordinator = coordinator or BulkShipmentCoordinator()
    return coordinator.run(job_id, order_ids, should_cancel=should_cancel, time_budget=time_budget)


def get_status(job_id):
    return recorder.get_status(job_id)


def get_order(order_id) -> Order:
    return load_order(order_id)


def list_orders(limit=1000):
    return current_domain.repository_for(Order).find_all(limit=limit)


def _dispatch(command):
    current_domain.process(command, asynchronous=False)


def mark_order_processing(order_id):
    _dispatch(MarkOrderProcessing(order_id=order_id))


def ship_order(order_id):
    _dispatch(ShipOrder(order_id=order_id))


def deliver_order(order_id):
    _dispatch(DeliverOrder(order_id=order_id))


def cancel_order(order_id):
    _dispatch(CancelOrder(order_id=order_id))


def delete_order(order_id):
    _dispatch(DeleteOrder(order_id=order_id))
