"""Fixtures comuns: banco, cache, usuários e produtos para os testes de pedidos."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import caches
from rest_framework.test import APIClient

from orders.checkout import CheckoutRequest, CheckoutTransaction, LineRequest, Purchaser
from orders.models import Customer, Product


@pytest.fixture(autouse=True)
def _test_settings(settings):
    settings.SECURE_SSL_REDIRECT = False
    settings.ORDER_NUMBER_PREFIX = "ORD"
    settings.NOTIFY_NEW_ORDER_TO = []
    settings.TRUSTED_PROXY_COUNT = 0
    caches["default"].clear()
    yield
    caches["default"].clear()


class FakeClock:
    """Relógio controlável para TTL de código e janela de rate limit."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=dt_timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def product_a(db):
    return Product.objects.create(name="Camiseta", sku="CAM-001", price_cents=5000, stock=5)


@pytest.fixture
def product_b(db):
    return Product.objects.create(name="Boné", sku="BON-001", price_cents=3000, stock=1)


@pytest.fixture
def stocked_product(db):
    return Product.objects.create(name="Meia", sku="MEI-001", price_cents=1500, stock=100)


@pytest.fixture
def customer_user(db):
    return get_user_model().objects.create_user(username="maria", password="s3nha-forte", email="maria@example.com")


@pytest.fixture
def customer(customer_user):
    return Customer.objects.create(
        name="Maria Silva", email="maria@example.com", phone="+5511988887777", user=customer_user
    )


@pytest.fixture
def staff_user(db):
    return get_user_model().objects.create_user(
        username="equipe", password="s3nha-forte", email="equipe@example.com", is_staff=True
    )


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def guest_checkout():
    """Fábrica: checkout de convidado com [(produto, quantidade), ...]."""

    def _make(lines, email="convidado@example.com", **kwargs):
        request = CheckoutRequest(
            purchaser=Purchaser(guest_name="João Convidado", guest_email=email, guest_phone="+5511911112222"),
            lines=[LineRequest(product_id=p.id, quantity=q) for p, q in lines],
            delivery_address="Rua das Flores, 100 - São Paulo/SP",
            **kwargs,
        )
        return CheckoutTransaction().checkout(request)

    return _make
