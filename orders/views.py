# orders/views.py: adaptador HTTP fino sobre o núcleo de pedidos
from __future__ import annotations

import logging

from django.views.decorators.csrf import csrf_exempt
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, generics, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response

from .checkout import CheckoutTransaction
from .exceptions import InvalidOrExpiredCode, OrderError, PermissionDenied
from .payments import PaymentGateway
from .repository import OrderRepository
from .serializers import (
    CheckoutSerializer,
    KnownFactSerializer,
    OrderReadSerializer,
    StatusChangeSerializer,
    TrackingCodeRequestSerializer,
    TrackingCodeVerifySerializer,
)
from .status import OrderStateMachine
from .tracking import AccessLevel, CallerIdentity, TrackingAuthorization, mask_email

logger = logging.getLogger(__name__)

UNIFORM_CODE_MESSAGE = "Se o pedido existir e o e-mail estiver correto, um código de verificação foi enviado."


# -------------------------------------------------
# Checkout
# -------------------------------------------------
@api_view(["POST"])
@permission_classes([AllowAny])
def checkout(request):
    """
    POST /api/checkout/
    Body: { customer?: {name, email, phone}, items: [{product_id, quantity, ...}],
            delivery_address, payment_method, shipping_fee_cents, ... }
    Cliente logado compra como ele mesmo; sem login, "customer" é obrigatório.
    """
    ser = CheckoutSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    caller = CallerIdentity.from_request(request)
    order = CheckoutTransaction().checkout(ser.to_checkout_request(caller.customer_id))
    return Response(OrderReadSerializer(order).data, status=status.HTTP_201_CREATED)


# -------------------------------------------------
# Pedidos (staff / dono)
# -------------------------------------------------
class OrderListView(generics.ListAPIView):
    """GET /api/orders/?status=pending_approval: fila da equipe."""

    permission_classes = [IsAdminUser]
    serializer_class = OrderReadSerializer
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ["status", "payment_method"]
    ordering_fields = ["created_at", "total_cents", "status"]

    def get_queryset(self):
        return OrderRepository().all_orders()


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def order_detail(request, pk: int):
    order = OrderRepository().find_by_id(pk)
    caller = CallerIdentity.from_request(request)
    if TrackingAuthorization().check_access(order, caller) is not AccessLevel.FULL:
        raise PermissionDenied()
    return Response(OrderReadSerializer(order).data)


@api_view(["POST"])
@permission_classes([IsAdminUser])
def change_status(request, pk: int):
    """POST /api/orders/<id>/status/  Body: { "status": "approved" }"""
    ser = StatusChangeSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    order = OrderStateMachine().transition(pk, ser.validated_data["status"], staff_id=request.user.pk)
    return Response(OrderReadSerializer(order).data)


# -------------------------------------------------
# Rastreamento
# -------------------------------------------------
@api_view(["GET"])
@permission_classes([AllowAny])
def track_order(request, identifier: str):
    """
    GET /api/orders/track/<id ou número>/
    Dono/staff recebem tudo; demais recebem o resumo + dica do e-mail.
    """
    tracking = TrackingAuthorization()
    order = tracking.repository.find_by_identifier(identifier)
    level = tracking.check_access(order, CallerIdentity.from_request(request))
    requires_verification = level is not AccessLevel.FULL
    return Response({
        "success": True,
        "order": tracking.tracking_info(order, level),
        "requires_verification": requires_verification,
        "customer_email": mask_email(order.contact_email) if requires_verification else None,
    })


@api_view(["POST"])
@permission_classes([AllowAny])
def send_tracking_code(request):
    """
    POST /api/orders/track/send-otp/  Body: { order_id, email }
    Resposta sempre igual: não revela se o pedido existe ou se o e-mail confere.
    """
    ser = TrackingCodeRequestSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    caller = CallerIdentity.from_request(request)
    try:
        TrackingAuthorization().request_code(
            ser.validated_data["order_id"], ser.validated_data["email"], client_id=caller.client_id
        )
    except OrderError as e:
        logger.info("Pedido de código recusado (%s)", e.code)
    return Response({"success": True, "message": UNIFORM_CODE_MESSAGE})


@api_view(["POST"])
@permission_classes([AllowAny])
def verify_tracking_code(request):
    """POST /api/orders/track/verify-otp/  Body: { order_id, email, otp }"""
    ser = TrackingCodeVerifySerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    data = ser.validated_data
    tracking = TrackingAuthorization()
    if not tracking.verify_code(data["order_id"], data["email"], data["otp"]):
        raise InvalidOrExpiredCode()
    order = tracking.repository.find_by_identifier(data["order_id"])
    return Response({"success": True, "order": tracking.tracking_info(order, AccessLevel.FULL)})


@api_view(["POST"])
@permission_classes([AllowAny])
def verify_known_fact(request):
    """POST /api/orders/track/verify/  Body: { order_id, verification_data (e-mail ou telefone) }"""
    ser = KnownFactSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    data = ser.validated_data
    tracking = TrackingAuthorization()
    if not tracking.verify_known_fact(data["order_id"], data["verification_data"]):
        raise PermissionDenied("Dados de verificação incorretos.")
    order = tracking.repository.find_by_identifier(data["order_id"])
    return Response({"success": True, "order": tracking.tracking_info(order, AccessLevel.FULL)})


# -------------------------------------------------
# Pagamento (Mercado Pago)
# -------------------------------------------------
@api_view(["POST"])
@permission_classes([IsAuthenticated])
def payment_link(request, pk: int):
    order = OrderRepository().find_by_id(pk)
    if TrackingAuthorization().check_access(order, CallerIdentity.from_request(request)) is not AccessLevel.FULL:
        raise PermissionDenied()
    return Response(PaymentGateway().create_payment_link(order.pk))


@csrf_exempt
@api_view(["POST"])
@permission_classes([AllowAny])
def mp_webhook(request):
    """
    POST /api/payments/mp/webhook/
    Em DEV (MP_WEBHOOK_TEST_MODE=1):
      { "external_reference": "<número ou id>", "test_status": "approved|rejected|cancelled" }
    Produção: { "type": "payment", "data": { "id": "..." } }
    """
    data = request.data or {}
    gateway = PaymentGateway()

    if gateway.test_mode and data.get("test_status"):
        order = gateway.apply_payment_result(
            str(data.get("external_reference") or "").strip(),
            str(data.get("test_status")),
            f"TEST-{str(data.get('test_status')).upper()}",
        )
        return Response({"ok": True, "test_mode": True, "status": order.status if order else None})

    typ = (data.get("type") or "").lower()
    data_id = str((data.get("data") or {}).get("id") or "").strip()
    if typ != "payment" or not data_id:
        return Response({"ok": True})  # ignorado

    ext_ref, mp_status = gateway.fetch_payment(data_id)
    if not ext_ref:
        return Response({"ok": True})
    gateway.apply_payment_result(ext_ref, mp_status, data_id)
    return Response({"ok": True})
