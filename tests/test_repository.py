"""Leituras do OrderRepository."""

import pytest
from django.db import transaction

from orders.exceptions import NotFound
from orders.models import Order, OrderStatus
from orders.repository import OrderRepository
from orders.status import OrderStateMachine


@pytest.mark.django_db
class TestRepository:
    def test_find_by_identifier_accepts_id_and_number(self, stocked_product, guest_checkout):
        order = guest_checkout([(stocked_product, 1)])
        repo = OrderRepository()

        assert repo.find_by_identifier(order.pk).pk == order.pk
        assert repo.find_by_identifier(f" {order.order_number} ").pk == order.pk
        assert repo.find_by_number(order.order_number).pk == order.pk

    @pytest.mark.parametrize("identifier", ["424242", "ORD-42424242", "abc"])
    def test_missing_order(self, identifier):
        with pytest.raises(NotFound):
            OrderRepository().find_by_identifier(identifier)

    def test_order_without_items_has_empty_list(self):
        order = Order.objects.create(delivery_address="Rua A, 1", guest_email="x@example.com")
        loaded = OrderRepository().find_by_id(order.pk)
        assert list(loaded.items.all()) == []

    def test_items_and_customer_are_preloaded(self, stocked_product, guest_checkout, django_assert_num_queries):
        order = guest_checkout([(stocked_product, 1), (stocked_product, 2)])

        with django_assert_num_queries(2):
            loaded = OrderRepository().find_by_id(order.pk)
            names = [it.product.name for it in loaded.items.all()]

        assert names == ["Meia", "Meia"]

    def test_pending_approval_queue(self, stocked_product, guest_checkout):
        first = guest_checkout([(stocked_product, 1)])
        second = guest_checkout([(stocked_product, 1)], email="b@example.com")
        OrderStateMachine().transition(first.pk, OrderStatus.CANCELLED)

        assert [o.pk for o in OrderRepository().find_pending_approval()] == [second.pk]

    def test_lock_unknown_order(self):
        with transaction.atomic(), pytest.raises(NotFound):
            OrderRepository().lock(999999)
