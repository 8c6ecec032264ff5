"""Tests for the Product aggregate's stock handling."""

import pytest
from ordering.errors import InsufficientStock, InvalidQuantity
from ordering.product.events import StockDecreased
from ordering.product.product import Product
from protean.exceptions import ValidationError


def _product(stock_quantity=10, price=12.5):
    return Product(name="Widget", price=price, stock_quantity=stock_quantity)


class TestProductConstruction:
    def test_basic_construction(self):
        product = _product()
        assert product.name == "Widget"
        assert product.price == 12.5
        assert product.stock_quantity == 10

    def test_generates_id(self):
        assert _product().id is not None

    def test_negative_stock_is_rejected(self):
        with pytest.raises(ValidationError):
            Product(name="Widget", price=1.0, stock_quantity=-1)

    def test_price_is_required(self):
        with pytest.raises(ValidationError):
            Product(name="Widget", stock_quantity=1)


class TestDecreaseStock:
    def test_decreases_by_quantity(self):
        product = _product(stock_quantity=10)
        product.decrease_stock(3)
        assert product.stock_quantity == 7

    def test_can_take_all_stock(self):
        product = _product(stock_quantity=4)
        product.decrease_stock(4)
        assert product.stock_quantity == 0

    def test_insufficient_stock_raises(self):
        product = _product(stock_quantity=2)
        with pytest.raises(InsufficientStock):
            product.decrease_stock(3)
        assert product.stock_quantity == 2

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_raises(self, quantity):
        product = _product(stock_quantity=2)
        with pytest.raises(InvalidQuantity):
            product.decrease_stock(quantity)
        assert product.stock_quantity == 2

    def test_raises_stock_decreased_event(self):
        product = _product(stock_quantity=5)
        product.decrease_stock(2)

        event = product._events[-1]
        assert isinstance(event, StockDecreased)
        assert event.previous_quantity == 5
        assert event.new_quantity == 3
        assert event.quantity == 2

    def test_has_stock(self):
        product = _product(stock_quantity=2)
        assert product.has_stock(2)
        assert not product.has_stock(3)
