"""Admin: estoque e status nunca são gravados direto pelo formulário."""

import pytest
from django.contrib.auth import get_user_model
from django.test import Client

from orders.models import OrderStatus, Product


@pytest.fixture
def admin_client_logged(db, settings):
    settings.STORAGES = {
        **settings.STORAGES,
        "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
    }
    user = get_user_model().objects.create_superuser(
        username="root", password="s3nha-forte", email="root@example.com"
    )
    client = Client()
    client.force_login(user)
    return client, user


@pytest.mark.django_db
class TestProductAdmin:
    def test_stock_is_not_editable(self, admin_client_logged, stocked_product):
        client, _ = admin_client_logged

        resp = client.post(
            f"/admin/orders/product/{stocked_product.pk}/change/",
            {"name": "Meia nova", "sku": stocked_product.sku, "price_cents": 1500, "stock": 9999},
        )

        assert resp.status_code == 302
        stocked_product.refresh_from_db()
        assert stocked_product.name == "Meia nova"
        assert stocked_product.stock == 100

    def test_products_cannot_be_added_or_deleted(self, admin_client_logged, stocked_product):
        client, _ = admin_client_logged

        added = client.post("/admin/orders/product/add/", {"name": "X", "sku": "X-1", "price_cents": 1})
        deleted = client.post(f"/admin/orders/product/{stocked_product.pk}/delete/", {"post": "yes"})

        assert added.status_code == 403
        assert deleted.status_code == 403
        assert Product.objects.count() == 1


@pytest.mark.django_db
class TestOrderAdmin:
    def test_approve_action_goes_through_state_machine(self, admin_client_logged, stocked_product, guest_checkout):
        client, user = admin_client_logged
        order = guest_checkout([(stocked_product, 2)])
        stocked_product.refresh_from_db()
        before = stocked_product.stock

        resp = client.post(
            "/admin/orders/order/",
            {"action": "approve_orders", "_selected_action": [order.pk]},
        )

        assert resp.status_code == 302
        order.refresh_from_db()
        stocked_product.refresh_from_db()
        assert order.status == OrderStatus.APPROVED
        assert order.approved_by == user.pk
        assert stocked_product.stock == before - 2
