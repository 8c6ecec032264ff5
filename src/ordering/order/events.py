"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="Order")
class ItemAdded:
    """A product line was added to a pending order."""

    __version__ = 1

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    price = Float(required=True)
    new_total_amount = Float(required=True)


@ordering.event(part_of="Order")
class ItemRemoved:
    """A line was removed from a pending order. Stock is not returned."""

    __version__ = 1

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    new_total_amount = Float(required=True)


@ordering.event(part_of="Order")
class OrderPlaced:
    """A new order was accepted from a customer."""

    __version__ = 1

    order_id = Identifier(required=True)
    customer_name = String(required=True)
    customer_email = String(required=True)
    item_count = Integer(required=True)
    total_amount = Float(required=True)
    coupon_code = String()
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderProcessing:
    __version__ = 1

    order_id = Identifier(required=True)
    started_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderShipped:
    __version__ = 1

    order_id = Identifier(required=True)
    shipped_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    cancelled_at = DateTime(required=True)
