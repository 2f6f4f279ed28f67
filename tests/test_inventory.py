"""Ajustes de estoque por pedido (InventoryLedger)."""

import pytest

from orders.exceptions import InsufficientStock
from orders.inventory import Direction, InventoryLedger
from orders.models import Order, OrderItem, Product


def _order_with(lines):
    order = Order.objects.create(delivery_address="Rua A, 1", guest_email="x@example.com")
    for product, qty in lines:
        OrderItem.objects.create(
            order=order,
            product=product,
            quantity=qty,
            unit_price_cents=product.price_cents,
            original_price_cents=product.price_cents,
            subtotal_cents=product.price_cents * qty,
        )
    return order


@pytest.mark.django_db
class TestAdjust:
    def test_decrease_and_increase_round_trip(self, stocked_product):
        order = _order_with([(stocked_product, 4)])
        ledger = InventoryLedger()

        ledger.decrease(order.pk)
        stocked_product.refresh_from_db()
        assert stocked_product.stock == 96

        ledger.increase(order.pk)
        stocked_product.refresh_from_db()
        assert stocked_product.stock == 100

    def test_best_effort_decrease_floors_at_zero(self, product_b):
        order = _order_with([(product_b, 1)])
        Product.objects.filter(pk=product_b.pk).update(stock=0)

        InventoryLedger().adjust(order.pk, Direction.DECREASE)

        product_b.refresh_from_db()
        assert product_b.stock == 0

    def test_strict_decrease_rejects_shortage(self, product_b):
        order = _order_with([(product_b, 1)])
        Product.objects.filter(pk=product_b.pk).update(stock=0)

        with pytest.raises(InsufficientStock):
            InventoryLedger().decrease(order.pk, strict=True)

    def test_missing_product_is_skipped(self, product_a, stocked_product):
        order = _order_with([(product_a, 1), (stocked_product, 2)])
        product_a.delete()  # item fica com product=NULL

        InventoryLedger().increase(order.pk)

        stocked_product.refresh_from_db()
        assert stocked_product.stock == 102

    def test_order_without_items_is_noop(self, stocked_product):
        order = Order.objects.create(delivery_address="Rua A, 1", guest_email="x@example.com")

        InventoryLedger().decrease(order.pk)

        stocked_product.refresh_from_db()
        assert stocked_product.stock == 100

    def test_string_direction_is_accepted(self, stocked_product):
        order = _order_with([(stocked_product, 3)])
        InventoryLedger().adjust(order.pk, "decrease")
        stocked_product.refresh_from_db()
        assert stocked_product.stock == 97
