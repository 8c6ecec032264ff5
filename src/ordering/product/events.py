"""Domain events for the Product aggregate."""

from protean.fields import DateTime, Identifier, Integer

from ordering.domain import ordering


@ordering.event(part_of="Product")
class StockDecreased:
    """Stock was taken from a product to fill an order line."""

    __version__ = 1

    product_id = Identifier(required=True)
    quantity = Integer(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)
    decreased_at = DateTime(required=True)
