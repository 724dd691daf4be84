# Overview: Pytest coverage for the stock ledger (guarded movements and manual adjustments).

"""
Stock Ledger Tests

- Decreases never drive stock below zero
- Increases are accepted for any positive quantity
- Reversals are unguarded (undoing a purchase may go negative)
- Manual adjustments lock, audit and respect the same guard
"""

import pytest

from backoffice.errors import InsufficientStockError, NotFoundError
from backoffice.models import LedgerEvent, Product, SecurityEvent
from backoffice.services import stock_service
from backoffice.services.stock_service import StockDirection
from backoffice.validation import ValidationError

from conftest import stock_of


def _product(stock):
    return Product(id=42, name="Widget", sku="W-1", current_stock=stock)


class TestComputeNewStock:
    """Pure stock arithmetic."""

    def test_increase_adds_quantity(self):
        assert stock_service.compute_new_stock(
            product=_product(3), quantity=7, direction=StockDirection.INCREASE
        ) == 10

    def test_increase_accepts_large_quantities(self):
        assert stock_service.compute_new_stock(
            product=_product(0), quantity=5_000_000, direction=StockDirection.INCREASE
        ) == 5_000_000

    def test_decrease_to_exactly_zero_is_allowed(self):
        assert stock_service.compute_new_stock(
            product=_product(5), quantity=5, direction=StockDirection.DECREASE
        ) == 0

    def test_decrease_below_zero_raises_with_details(self):
        with pytest.raises(InsufficientStockError) as exc_info:
            stock_service.compute_new_stock(
                product=_product(2), quantity=3, direction=StockDirection.DECREASE
            )

        exc = exc_info.value
        assert exc.status_code == 422
        assert exc.details["product_id"] == 42
        assert exc.details["required"] == 3
        assert exc.details["available"] == 2
        assert "Insufficient stock for product: Widget (ID: 42)" in exc.message

    @pytest.mark.parametrize("quantity", [0, -1, True, 1.5, "3"])
    def test_rejects_non_positive_or_non_integer_quantity(self, quantity):
        with pytest.raises(ValidationError):
            stock_service.compute_new_stock(
                product=_product(10), quantity=quantity, direction=StockDirection.INCREASE
            )

    def test_direction_for_transaction_types(self):
        assert stock_service.direction_for("SALE") == StockDirection.DECREASE
        assert stock_service.direction_for("PURCHASE") == StockDirection.INCREASE
        with pytest.raises(ValidationError):
            stock_service.direction_for("TRANSFER")


class TestMovements:
    """In-memory application and reversal."""

    def test_apply_mutates_product(self):
        product = _product(4)
        assert stock_service.apply_stock_movement(product, 4, StockDirection.DECREASE) == 0
        assert product.current_stock == 0

    def test_failed_apply_leaves_product_untouched(self):
        product = _product(1)
        with pytest.raises(InsufficientStockError):
            stock_service.apply_stock_movement(product, 2, StockDirection.DECREASE)
        assert product.current_stock == 1

    def test_reverse_decrease_adds_back(self):
        product = _product(6)
        stock_service.reverse_stock_movement(product, 4, StockDirection.DECREASE)
        assert product.current_stock == 10

    def test_reverse_increase_may_go_negative(self):
        product = _product(2)
        stock_service.reverse_stock_movement(product, 5, StockDirection.INCREASE)
        assert product.current_stock == -3


class TestAdjustStock:
    """Manual adjustments through the service."""

    def test_positive_adjustment(self, db_session, ctx_a, product_a):
        result = stock_service.adjust_stock(ctx_a, product_a.id, 5, "Recount")

        assert result["current_stock"] == 15
        assert stock_of(product_a.id) == 15

        event = db_session.query(LedgerEvent).filter_by(
            event_type="product.stock_adjusted", entity_id=product_a.id
        ).one()
        assert event.note == "Recount"
        assert event.payload == {"before": 10, "after": 15, "adjustment": 5}

    def test_negative_adjustment_is_guarded(self, db_session, ctx_a, product_a):
        with pytest.raises(InsufficientStockError):
            stock_service.adjust_stock(ctx_a, product_a.id, -11)

        assert stock_of(product_a.id) == 10
        assert db_session.query(LedgerEvent).filter_by(event_type="product.stock_adjusted").count() == 0

    def test_negative_adjustment_within_stock(self, db_session, ctx_a, product_a):
        result = stock_service.adjust_stock(ctx_a, product_a.id, "-10")
        assert result["current_stock"] == 0

    def test_zero_adjustment_rejected(self, db_session, ctx_a, product_a):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(ctx_a, product_a.id, 0)

    def test_oversized_adjustment_rejected(self, db_session, ctx_a, product_a):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(ctx_a, product_a.id, 2 ** 63)
        assert stock_of(product_a.id) == 10

    def test_adjusting_foreign_product_looks_like_missing(self, db_session, ctx_a, product_b):
        with pytest.raises(NotFoundError) as exc_info:
            stock_service.adjust_stock(ctx_a, product_b.id, 5)

        assert exc_info.value.message == "Product not found"
        assert stock_of(product_b.id) == 10
        assert db_session.query(SecurityEvent).filter_by(
            event_type="CROSS_TENANT_ACCESS_DENIED"
        ).count() == 1

    def test_sub_user_adjusts_parent_stock(self, db_session, ctx_sub_a, sub_a, product_a):
        stock_service.adjust_stock(ctx_sub_a, product_a.id, 1)

        event = db_session.query(LedgerEvent).filter_by(event_type="product.stock_adjusted").one()
        assert event.actor_user_id == sub_a.id
        assert stock_of(product_a.id) == 11


class TestStockLevels:

    def test_foreign_ids_are_omitted(self, db_session, ctx_a, product_a, product_b):
        levels = stock_service.get_stock_levels(ctx_a, [product_a.id, product_b.id, 99999])

        assert levels == [{
            "product_id": product_a.id,
            "sku": "PROD-A-001",
            "name": "Product A",
            "current_stock": 10,
        }]

    def test_empty_ids(self, db_session, ctx_a):
        assert stock_service.get_stock_levels(ctx_a, []) == []
