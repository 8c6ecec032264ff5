"""Order placement and checkout: commands and handler.

Both commands run as a single unit of work: every referenced product is
loaded up front, each line is added through the aggregate, and the order is
saved together with the drawn-down products only when every line succeeded.
"""

import json

import structlog
from protean import handle
from protean.fields import String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.errors import InvalidInput, InvalidQuantity, ProductNotFound
from ordering.order.order import Order
from ordering.product.product import Product

logger = structlog.get_logger(__name__)


@ordering.command(part_of="Order")
class PlaceOrder:
    """Place a PENDING order from parallel lists of product ids and quantities."""

    customer_name = String(max_length=255)
    customer_email = String(max_length=255)
    product_ids = Text()  # JSON: list of product ids
    quantities = Text()  # JSON: list of ints, same length as product_ids


@ordering.command(part_of="Order")
class CheckoutOrder:
    """Check out an order: add the lines, price it and start processing."""

    customer_name = String(max_length=255)
    customer_email = String(max_length=255)
    lines = Text()  # JSON: list of {"product_id": ..., "quantity": ...}
    coupon_code = String(max_length=100)


def _load_json_list(raw, field_name):
    if raw is None or raw == "":
        return []
    try:
        value = json.loads(raw) if isinstance(raw, str) else raw
    except json.JSONDecodeError:
        raise InvalidInput({field_name: ["Must be a JSON list"]}) from None
    if not isinstance(value, list):
        raise InvalidInput({field_name: ["Must be a JSON list"]})
    return value


def _validate_customer(command):
    if not (command.customer_name or "").strip() or not (command.customer_email or "").strip():
        raise InvalidInput({"customer": ["Customer name and email are required"]})


def _validate_lines(lines):
    """Reject empty or malformed lines before anything is loaded or changed."""
    if not lines:
        raise InvalidInput({"lines": ["At least one order line is required"]})

    for product_id, quantity in lines:
        if product_id is None or str(product_id).strip() == "":
            raise InvalidInput({"product_id": ["Product id is required"]})
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            raise InvalidInput({"quantity": [f"Quantity must be an integer, got {quantity!r}"]})
        if quantity <= 0:
            raise InvalidQuantity({"quantity": [f"Quantity must be positive, got {quantity}"]})


def _build_order(command, lines):
    """Create a PENDING order with ``lines`` added, returning it with the touched products."""
    products = current_domain.repository_for(Product).find_all_by_ids(pid for pid, _ in lines)

    for product_id, _ in lines:
        if str(product_id) not in products:
            raise ProductNotFound({"product_id": [f"Product not found: {product_id}"]})

    order = Order.create(
        customer_name=command.customer_name.strip(),
        customer_email=command.customer_email.strip(),
    )
    for product_id, quantity in lines:
        order.add_product(products[str(product_id)], quantity)

    return order, products.values()


def _save(order, products):
    product_repo = current_domain.repository_for(Product)
    for product in products:
        product_repo.add(product)
    current_domain.repository_for(Order).add(order)


@ordering.command_handler(part_of=Order)
class OrderPlacementHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        _validate_customer(command)
        product_ids = _load_json_list(command.product_ids, "product_ids")
        quantities = _load_json_list(command.quantities, "quantities")
        if len(product_ids) != len(quantities):
            raise InvalidInput({"quantities": ["Each product id needs exactly one quantity"]})

        lines = list(zip(product_ids, quantities, strict=True))
        _validate_lines(lines)

        order, products = _build_order(command, lines)
        order.place()
        _save(order, products)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            item_count=len(order.items),
            total_amount=order.total_amount,
        )
        return str(order.id)

    @handle(CheckoutOrder)
    def checkout_order(self, command):
        _validate_customer(command)
        raw_lines = _load_json_list(command.lines, "lines")
        if not all(isinstance(line, dict) for line in raw_lines):
            raise InvalidInput({"lines": ["Each line must be an object with product_id and quantity"]})

        lines = [(line.get("product_id"), line.get("quantity")) for line in raw_lines]
        _validate_lines(lines)

        order, products = _build_order(command, lines)
        order.apply_shipping_and_discount(command.coupon_code)
        order.mark_as_processing()
        order.place()
        _save(order, products)

        logger.info(
            "Order checked out",
            order_id=str(order.id),
            item_count=len(order.items),
            total_amount=order.total_amount,
            coupon_code=command.coupon_code,
        )
        return str(order.id)
