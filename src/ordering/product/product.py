"""Product aggregate: the catalog record an order line is priced from.

Only the part of the catalog that ordering depends on lives here: the price
quoted at add-time and the stock level that checkout draws down.
"""

from datetime import UTC, datetime

from protean.fields import Float, Integer, String

from ordering.domain import ordering
from ordering.errors import InsufficientStock, InvalidQuantity
from ordering.product.events import StockDecreased


@ordering.aggregate
class Product:
    name = String(max_length=255)
    price = Float(required=True, min_value=0.0)
    stock_quantity = Integer(default=0, min_value=0)

    def has_stock(self, quantity):
        return (self.stock_quantity or 0) >= quantity

    def decrease_stock(self, quantity):
        """Take ``quantity`` units out of stock."""
        if quantity is None or quantity <= 0:
            raise InvalidQuantity({"quantity": [f"Quantity must be positive, got {quantity}"]})
        if not self.has_stock(quantity):
            raise InsufficientStock(
                {
                    "stock_quantity": [
                        f"Insufficient stock for product {self.id}: "
                        f"requested {quantity}, available {self.stock_quantity}"
                    ]
                }
            )

        previous = self.stock_quantity
        self.stock_quantity = previous - quantity

        self.raise_(
            StockDecreased(
                product_id=str(self.id),
                quantity=quantity,
                previous_quantity=previous,
                new_quantity=self.stock_quantity,
                decreased_at=datetime.now(UTC),
            )
        )


@ordering.repository(part_of=Product)
class ProductRepository:
    def find_all_by_ids(self, product_ids):
        """Fetch every product in ``product_ids`` in one query, keyed by id."""
        ids = list(dict.fromkeys(str(pid) for pid in product_ids))
        if not ids:
            return {}
        products = self._dao.query.filter(id__in=ids).limit(len(ids)).all().items
        return {str(product.id): product for product in products}
