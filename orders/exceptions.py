# orders/exceptions.py: erros do núcleo de pedidos + handler do DRF
"""
Erros levantados pelo núcleo (checkout, máquina de estados, rastreamento).

As views não tratam caso a caso: o handler registrado em
REST_FRAMEWORK["EXCEPTION_HANDLER"] converte qualquer OrderError em
{"error": <code>, "detail": <mensagem>} com o status HTTP da classe.
"""
from __future__ import annotations

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class OrderError(Exception):
    """Base de todos os erros do núcleo de pedidos."""

    code = "order_error"
    http_status = status.HTTP_400_BAD_REQUEST
    default_detail = "Falha ao processar o pedido."

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidCheckout(OrderError):
    code = "invalid_checkout"
    default_detail = "Dados de checkout inválidos."


class NotFound(OrderError):
    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND
    default_detail = "Pedido não encontrado."


class ProductNotFound(NotFound):
    code = "product_not_found"
    default_detail = "Produto não encontrado."

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__(f"Produto {product_id} não encontrado.")


class InsufficientStock(OrderError):
    code = "insufficient_stock"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, product_id, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Estoque insuficiente para o produto {product_id}: "
            f"pedido {requested}, disponível {available}."
        )


class IllegalTransition(OrderError):
    code = "illegal_transition"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, current: str, new: str):
        self.current = current
        self.new = new
        super().__init__(f"Não é possível mudar de {current} para {new}.")


class MissingAuthorization(OrderError):
    code = "missing_authorization"
    http_status = status.HTTP_403_FORBIDDEN
    default_detail = "Aprovação exige um membro da equipe identificado."


class PermissionDenied(OrderError):
    code = "permission_denied"
    http_status = status.HTTP_403_FORBIDDEN
    default_detail = "Sem permissão para acessar este pedido."


class EmailMismatch(OrderError):
    code = "email_mismatch"
    http_status = status.HTTP_401_UNAUTHORIZED
    default_detail = "E-mail não associado a este pedido."


class InvalidOrExpiredCode(OrderError):
    code = "invalid_or_expired_code"
    http_status = status.HTTP_401_UNAUTHORIZED
    default_detail = "Código inválido ou expirado."


class RateLimited(OrderError):
    code = "rate_limited"
    http_status = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Muitas solicitações de código. Tente novamente mais tarde."


class PaymentNotAllowed(OrderError):
    code = "payment_not_allowed"
    http_status = status.HTTP_409_CONFLICT
    default_detail = "Pagamento só pode ser iniciado para pedidos aprovados."


class PaymentError(OrderError):
    code = "payment_error"
    http_status = status.HTTP_502_BAD_GATEWAY
    default_detail = "Falha ao comunicar com o provedor de pagamento."


def order_exception_handler(exc, context):
    if isinstance(exc, OrderError):
        view = context.get("view")
        logger.info("OrderError em %s: %s (%s)", getattr(view, "__name__", view), exc.code, exc.detail)
        return Response({"error": exc.code, "detail": exc.detail}, status=exc.http_status)
    return exception_handler(exc, context)
