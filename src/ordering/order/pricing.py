"""Order pricing: shipping and coupon discounts applied at checkout.

Amounts are stored as floats on the aggregates, so every computation goes
through ``to_money`` and is done in ``Decimal`` cents.
"""

from decimal import ROUND_HALF_UP, Decimal

from protean.fields import Float

from ordering.domain import ordering

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

FREE_SHIPPING_THRESHOLD = Decimal("100.00")
FLAT_SHIPPING_FEE = Decimal("5.00")
COUPON_DISCOUNT = Decimal("10.00")
COUPON_PREFIX = "SALE"


def to_money(value) -> Decimal:
    """Convert a stored amount to a Decimal rounded to cents."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@ordering.value_object(part_of="Order")
class OrderPricing:
    """Financial summary of a checked-out order.

    Locked in at checkout; later catalogue price changes never alter it.
    """

    subtotal = Float(default=0.0)
    shipping_cost = Float(default=0.0)
    discount_total = Float(default=0.0)
    grand_total = Float(default=0.0)


class OrderPricingPolicy:
    """Computes shipping and discount from an item subtotal and coupon code.

    The result depends only on its inputs, so pricing the same order twice
    never compounds shipping or discounts.
    """

    def __init__(
        self,
        free_shipping_threshold=FREE_SHIPPING_THRESHOLD,
        shipping_fee=FLAT_SHIPPING_FEE,
        coupon_discount=COUPON_DISCOUNT,
        coupon_prefix=COUPON_PREFIX,
    ):
        self.free_shipping_threshold = to_money(free_shipping_threshold)
        self.shipping_fee = to_money(shipping_fee)
        self.coupon_discount = to_money(coupon_discount)
        self.coupon_prefix = coupon_prefix

    def shipping_for(self, subtotal) -> Decimal:
        return ZERO if to_money(subtotal) >= self.free_shipping_threshold else self.shipping_fee

    def is_recognized_coupon(self, coupon_code) -> bool:
        return bool(coupon_code) and coupon_code.startswith(self.coupon_prefix)

    def discount_for(self, coupon_code) -> Decimal:
        return self.coupon_discount if self.is_recognized_coupon(coupon_code) else ZERO

    def price(self, subtotal, coupon_code=None) -> OrderPricing:
        subtotal = to_money(subtotal)
        shipping = self.shipping_for(subtotal)
        # A discount never takes the order below zero
        discount = min(self.discount_for(coupon_code), subtotal + shipping)
        return OrderPricing(
            subtotal=float(subtotal),
            shipping_cost=float(shipping),
            discount_total=float(discount),
            grand_total=float(subtotal + shipping - discount),
        )


default_pricing_policy = OrderPricingPolicy()
