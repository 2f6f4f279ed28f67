# orders/urls.py: checkout, pedidos, rastreamento e Mercado Pago
from django.urls import path

from . import views

urlpatterns = [
    # Checkout
    path("checkout/", views.checkout, name="checkout"),

    # Pedidos (staff / dono)
    path("orders/",                       views.OrderListView.as_view(), name="order-list"),
    path("orders/<int:pk>/",              views.order_detail,            name="order-detail"),
    path("orders/<int:pk>/status/",       views.change_status,           name="order-status"),
    path("orders/<int:pk>/payment-link/", views.payment_link,            name="order-payment-link"),

    # Rastreamento (rotas fixas antes de <identifier>)
    path("orders/track/send-otp/",    views.send_tracking_code,   name="track-send-otp"),
    path("orders/track/verify-otp/",  views.verify_tracking_code, name="track-verify-otp"),
    path("orders/track/verify/",      views.verify_known_fact,    name="track-verify"),
    path("orders/track/<str:identifier>/", views.track_order,     name="track-order"),

    # Mercado Pago
    path("payments/mp/webhook/", views.mp_webhook, name="mp-webhook"),
]
