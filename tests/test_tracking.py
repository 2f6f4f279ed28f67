"""Autorização de rastreamento: dono/staff, código de uso único, rate limit."""

import itertools
import threading

import pytest
from django.core.cache import caches
from django.test import RequestFactory

from orders.exceptions import EmailMismatch, NotFound, RateLimited
from orders.models import Order, OrderStatus
from orders.status import OrderStateMachine
from orders.tracking import (
    AccessLevel,
    CallerIdentity,
    CodeRequestLimiter,
    TrackingAuthorization,
    _client_ip,
    build_activities,
    mask_email,
)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def __call__(self, email, code, order_number, ttl_minutes):
        self.sent.append((email, code, order_number, ttl_minutes))
        return True


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def tracking(clock, notifier):
    return TrackingAuthorization(cache=caches["default"], clock=clock, notifier=notifier)


@pytest.fixture
def order(stocked_product, guest_checkout):
    return guest_checkout([(stocked_product, 2)], email="cliente@example.com")


@pytest.mark.django_db
class TestCheckAccess:
    def test_owner_and_staff_get_full(self, tracking, customer, stocked_product):
        from orders.checkout import CheckoutRequest, CheckoutTransaction, LineRequest, Purchaser

        owned = CheckoutTransaction().checkout(CheckoutRequest(
            purchaser=Purchaser(customer_id=customer.id),
            lines=[LineRequest(product_id=stocked_product.id, quantity=1)],
            delivery_address="Av. Brasil, 10",
        ))

        assert tracking.check_access(owned, CallerIdentity(customer_id=customer.id)) is AccessLevel.FULL
        assert tracking.check_access(owned, CallerIdentity(is_staff=True)) is AccessLevel.FULL
        assert tracking.check_access(owned, CallerIdentity(customer_id=customer.id + 1)) is AccessLevel.NONE
        assert tracking.check_access(owned, CallerIdentity()) is AccessLevel.NONE
        assert tracking.check_access(owned, None) is AccessLevel.NONE

    def test_guest_order_is_never_owned(self, tracking, order):
        assert tracking.check_access(order, CallerIdentity(customer_id=1)) is AccessLevel.NONE


@pytest.mark.django_db
class TestTrackingCode:
    def test_code_is_sent_and_accepted_once(self, tracking, notifier, order):
        code = tracking.request_code(order.order_number, "cliente@example.com", client_id="1.2.3.4")

        assert notifier.sent == [("cliente@example.com", code, order.order_number, 15)]
        assert len(code) == 6 and code.isdigit()
        assert tracking.verify_code(order.order_number, "cliente@example.com", code) is True
        assert tracking.verify_code(order.order_number, "cliente@example.com", code) is False

    def test_numeric_id_and_number_share_the_code(self, tracking, order):
        code = tracking.request_code(str(order.pk), "Cliente@Example.com")
        assert tracking.verify_code(order.order_number, "cliente@example.com", code) is True

    def test_code_expires(self, tracking, clock, order):
        code = tracking.request_code(order.order_number, "cliente@example.com")

        clock.advance(minutes=15, seconds=1)

        assert tracking.verify_code(order.order_number, "cliente@example.com", code) is False
        assert tracking.codes.get(order.order_number, "cliente@example.com") is None

    def test_wrong_code_keeps_pending_entry(self, tracking, order, monkeypatch):
        monkeypatch.setattr("orders.tracking.secrets.randbelow", lambda _n: 123456)
        tracking.request_code(order.order_number, "cliente@example.com")

        assert tracking.verify_code(order.order_number, "cliente@example.com", "654321") is False
        assert tracking.verify_code(order.order_number, "cliente@example.com", "123456") is True

    def test_new_code_replaces_previous(self, tracking, order, monkeypatch):
        codes = itertools.cycle([111111, 222222])
        monkeypatch.setattr("orders.tracking.secrets.randbelow", lambda _n: next(codes))

        tracking.request_code(order.order_number, "cliente@example.com")
        tracking.request_code(order.order_number, "cliente@example.com")

        assert tracking.verify_code(order.order_number, "cliente@example.com", "111111") is False
        assert tracking.verify_code(order.order_number, "cliente@example.com", "222222") is True

    def test_email_mismatch_stores_nothing(self, tracking, notifier, order):
        with pytest.raises(EmailMismatch):
            tracking.request_code(order.order_number, "intruso@example.com")

        assert notifier.sent == []
        assert tracking.codes.get(order.order_number, "intruso@example.com") is None
        assert tracking.codes.get(order.order_number, "cliente@example.com") is None

    def test_unknown_order(self, tracking):
        with pytest.raises(NotFound):
            tracking.request_code("ORD-99999999", "cliente@example.com")

    def test_verify_fails_closed_for_unknown_order(self, tracking):
        assert tracking.verify_code("ORD-99999999", "cliente@example.com", "123456") is False
        assert tracking.verify_code("", "", "") is False

    def test_notifier_failure_does_not_break_request(self, clock, order):
        def broken(*args):
            raise RuntimeError("smtp")

        tracking = TrackingAuthorization(cache=caches["default"], clock=clock, notifier=broken)
        code = tracking.request_code(order.order_number, "cliente@example.com")
        assert tracking.verify_code(order.order_number, "cliente@example.com", code) is True


@pytest.mark.django_db
class TestRateLimit:
    def test_fourth_request_in_window_is_rejected(self, tracking, notifier, order, clock):
        for _ in range(3):
            tracking.request_code(order.order_number, "cliente@example.com", client_id="10.0.0.1")
            clock.advance(minutes=1)

        with pytest.raises(RateLimited):
            tracking.request_code(order.order_number, "cliente@example.com", client_id="10.0.0.1")
        assert len(notifier.sent) == 3

        # outro cliente tem a própria janela
        tracking.request_code(order.order_number, "cliente@example.com", client_id="10.0.0.2")

    def test_window_is_rolling(self, tracking, order, clock):
        for _ in range(3):
            tracking.request_code(order.order_number, "cliente@example.com", client_id="10.0.0.1")
        clock.advance(hours=1, seconds=1)

        tracking.request_code(order.order_number, "cliente@example.com", client_id="10.0.0.1")

    def test_id_and_number_count_together(self, tracking, order):
        tracking.request_code(order.order_number, "cliente@example.com", client_id="c")
        tracking.request_code(str(order.pk), "cliente@example.com", client_id="c")
        tracking.request_code(order.order_number, "cliente@example.com", client_id="c")

        with pytest.raises(RateLimited):
            tracking.request_code(str(order.pk), "cliente@example.com", client_id="c")

    def test_failed_requests_also_count(self, tracking, order):
        for _ in range(3):
            with pytest.raises(EmailMismatch):
                tracking.request_code(order.order_number, "intruso@example.com", client_id="c")

        with pytest.raises(RateLimited):
            tracking.request_code(order.order_number, "intruso@example.com", client_id="c")


@pytest.mark.django_db
class TestKnownFact:
    def test_email_or_phone(self, tracking, order):
        assert tracking.verify_known_fact(order.pk, "CLIENTE@example.com ") is True
        assert tracking.verify_known_fact(order.order_number, "+5511911112222") is True

    def test_wrong_fact_or_order(self, tracking, order):
        assert tracking.verify_known_fact(order.pk, "outro@example.com") is False
        assert tracking.verify_known_fact(order.pk, "") is False
        assert tracking.verify_known_fact(999999, "cliente@example.com") is False


@pytest.mark.django_db
class TestProjection:
    def test_limited_projection(self, tracking, order):
        info = tracking.tracking_info(order, AccessLevel.NONE)
        assert set(info) == {"id", "order_number", "order_date", "status"}

    def test_full_projection(self, tracking, order):
        info = tracking.tracking_info(order, AccessLevel.FULL)

        assert info["email"] == "cliente@example.com"
        assert info["shipping_address"]["address"] == "Rua das Flores, 100 - São Paulo/SP"
        assert [it["quantity"] for it in info["items"]] == [2]
        assert info["total_cents"] == order.total_cents
        assert info["estimated_delivery_date"] > order.created_at
        assert info["activities"][0]["status"] == OrderStatus.PENDING_APPROVAL

    def test_activities_for_cancelled_after_approval(self, order, staff_user):
        machine = OrderStateMachine()
        machine.transition(order.pk, OrderStatus.APPROVED, staff_id=staff_user.pk)
        machine.transition(order.pk, OrderStatus.CANCELLED)
        order = Order.objects.get(pk=order.pk)

        activities = build_activities(order)
        statuses = [a["status"] for a in activities]

        assert statuses[:3] == ["pending_approval", "approved", "cancelled"]
        assert [a["is_completed"] for a in activities[:3]] == [True, True, True]
        assert not any(a["is_completed"] for a in activities[3:])

    def test_activities_for_new_order(self, order):
        activities = build_activities(order)
        assert activities[0]["is_completed"] is True
        assert activities[0]["timestamp"] == order.created_at
        assert all(not a["is_completed"] for a in activities[1:])


@pytest.mark.parametrize(
    "trusted,forwarded,expected",
    [
        (0, "6.6.6.6", "10.0.0.9"),
        (1, "6.6.6.6, 200.1.1.1", "200.1.1.1"),
        (2, "6.6.6.6, 200.1.1.1, 10.1.1.1", "200.1.1.1"),
        (1, "", "10.0.0.9"),
        (3, "200.1.1.1", "10.0.0.9"),
    ],
)
def test_client_ip_ignores_client_supplied_hops(settings, trusted, forwarded, expected):
    settings.TRUSTED_PROXY_COUNT = trusted
    request = RequestFactory().get("/", REMOTE_ADDR="10.0.0.9", HTTP_X_FORWARDED_FOR=forwarded)
    assert _client_ip(request) == expected


def test_limiter_admits_at_most_max_under_concurrency(clock):
    limiter = CodeRequestLimiter(caches["default"], max_requests=3, window_seconds=3600, clock=clock)
    barrier = threading.Barrier(10)
    results = []

    def attempt():
        barrier.wait()
        results.append(limiter.hit("1.2.3.4", "cliente@example.com", "ORD-00000001"))

    threads = [threading.Thread(target=attempt) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 10
    assert results.count(True) <= 3


@pytest.mark.parametrize(
    "email,expected",
    [
        ("johnathan@example.com", "jo****an@example.com"),
        ("ana@example.com", "a****@example.com"),
        ("", None),
        ("sem-arroba", None),
    ],
)
def test_mask_email(email, expected):
    assert mask_email(email) == expected
