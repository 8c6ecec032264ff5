"""Order aggregate: the consistency boundary for an order and its lines.

Stock checks, line pricing and total recalculation all happen here so that
every caller gets the same rules. Repositories are resolved by the handlers;
the aggregate only ever sees the Product objects it is handed.

State Machine:
    PENDING → PROCESSING → SHIPPED → DELIVERED
    PENDING / PROCESSING / SHIPPED → CANCELLED
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String, ValueObject

from ordering.domain import ordering
from ordering.errors import InsufficientStock, InvalidQuantity
from ordering.order.events import (
    ItemAdded,
    ItemRemoved,
    OrderCancelled,
    OrderDelivered,
    OrderPlaced,
    OrderProcessing,
    OrderShipped,
)
from ordering.order.pricing import ZERO, OrderPricing, default_pricing_policy, to_money


class OrderStatus(Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """A line in an order: a product snapshot taken when the line was added.

    The unit price is copied from the Product at add-time, so later catalogue
    price changes never reach historical orders.
    """

    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    price = Float(required=True, min_value=0.0)

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.price) * self.quantity


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    customer_name = String(required=True, max_length=255)
    customer_email = String(required=True, max_length=255)
    status = String(
        choices=OrderStatus,
        default=OrderStatus.PENDING.value,
    )
    order_date = DateTime()
    items = HasMany(OrderItem)
    total_amount = Float(default=0.0)
    pricing = ValueObject(OrderPricing)
    coupon_code = String(max_length=100)

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, customer_name, customer_email):
        """Start an empty PENDING order for a customer."""
        return cls(
            customer_name=customer_name,
            customer_email=customer_email,
            status=OrderStatus.PENDING.value,
            order_date=datetime.now(UTC),
            total_amount=0.0,
        )

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        """Validate that the current state allows transition to target."""
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def _assert_modifiable(self):
        if OrderStatus(self.status) != OrderStatus.PENDING:
            raise ValidationError({"status": ["Items can only be changed while the order is Pending"]})

    @property
    def items_subtotal(self) -> Decimal:
        return sum((item.subtotal for item in self.items), ZERO)

    # -------------------------------------------------------------------
    # Item composition
    # -------------------------------------------------------------------
    def add_product(self, product, quantity):
        """Add ``quantity`` units of ``product`` as a new line.

        Draws the stock down on the Product passed in; the caller must save
        the product together with this order.
        """
        self._assert_modifiable()
        if quantity is None or quantity <= 0:
            raise InvalidQuantity({"quantity": [f"Quantity must be positive, got {quantity}"]})
        if not product.has_stock(quantity):
            raise InsufficientStock(
                {
                    "stock_quantity": [
                        f"Insufficient stock for product {product.id}: "
                        f"requested {quantity}, available {product.stock_quantity}"
                    ]
                }
            )

        item = OrderItem(
            product_id=product.id,
            quantity=quantity,
            price=product.price,
        )
        product.decrease_stock(quantity)
        self.add_items(item)
        self.recalculate_total_amount()

        self.raise_(
            ItemAdded(
                order_id=str(self.id),
                item_id=str(item.id),
                product_id=str(product.id),
                quantity=quantity,
                price=item.price,
                new_total_amount=self.total_amount,
            )
        )
        return item

    def remove_item(self, item):
        """Remove a line by entity or id. Stock is not returned to the product."""
        self._assert_modifiable()

        item_id = str(getattr(item, "id", item))
        existing = next((i for i in self.items if str(i.id) == item_id), None)
        if existing is None:
            raise ValidationError({"item_id": ["Item not found"]})

        self.remove_items(existing)
        self.recalculate_total_amount()

        self.raise_(
            ItemRemoved(
                order_id=str(self.id),
                item_id=item_id,
                new_total_amount=self.total_amount,
            )
        )

    def recalculate_total_amount(self):
        """Reset the total to the sum of line subtotals.

        Any checkout pricing is dropped, since it was computed for the old lines.
        """
        self.pricing = None
        self.total_amount = float(self.items_subtotal)

    # -------------------------------------------------------------------
    # Pricing
    # -------------------------------------------------------------------
    def apply_shipping_and_discount(self, coupon_code=None, policy=None):
        """Price the order for checkout.

        Shipping and discount are computed from the line subtotal, never from
        the running total, so repeating the call gives the same result.
        """
        policy = policy or default_pricing_policy
        pricing = policy.price(self.items_subtotal, coupon_code)

        self.pricing = pricing
        self.coupon_code = coupon_code
        self.total_amount = pricing.grand_total
        return pricing

    def place(self):
        """Record that the order was accepted. Requires at least one line."""
        if not self.items:
            raise ValidationError({"items": ["An order needs at least one item"]})

        self.raise_(
            OrderPlaced(
                order_id=str(self.id),
                customer_name=self.customer_name,
                customer_email=self.customer_email,
                item_count=len(self.items),
                total_amount=self.total_amount,
                coupon_code=self.coupon_code,
                placed_at=datetime.now(UTC),
            )
        )

    # -------------------------------------------------------------------
    # Lifecycle transitions
    # -------------------------------------------------------------------
    def mark_as_processing(self):
        self._assert_can_transition(OrderStatus.PROCESSING)
        self.status = OrderStatus.PROCESSING.value
        self.raise_(OrderProcessing(order_id=str(self.id), started_at=datetime.now(UTC)))

    def mark_as_shipped(self):
        self._assert_can_transition(OrderStatus.SHIPPED)
        self.status = OrderStatus.SHIPPED.value
        self.raise_(OrderShipped(order_id=str(self.id), shipped_at=datetime.now(UTC)))

    def mark_as_delivered(self):
        self._assert_can_transition(OrderStatus.DELIVERED)
        self.status = OrderStatus.DELIVERED.value
        self.raise_(OrderDelivered(order_id=str(self.id), delivered_at=datetime.now(UTC)))

    def mark_as_cancelled(self):
        previous = OrderStatus(self.status)
        self._assert_can_transition(OrderStatus.CANCELLED)
        self.status = OrderStatus.CANCELLED.value
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                previous_status=previous.value,
                cancelled_at=datetime.now(UTC),
            )
        )

    def ship(self):
        """Move the order to SHIPPED, passing through PROCESSING if still pending."""
        if OrderStatus(self.status) == OrderStatus.PENDING:
            self.mark_as_processing()
        self.mark_as_shipped()


@ordering.repository(part_of=Order)
class OrderRepository:
    def find_all_by_ids(self, order_ids):
        """Fetch every order in ``order_ids`` in one query, keyed by id."""
        ids = list(dict.fromkeys(str(oid) for oid in order_ids))
        if not ids:
            return {}
        orders = self._dao.query.filter(id__in=ids).limit(len(ids)).all().items
        return {str(order.id): order for order in orders}

    def find_all(self, limit=1000):
        return self._dao.query.limit(limit).all().items
