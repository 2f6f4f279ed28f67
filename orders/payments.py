# orders/payments.py: link de pagamento (Mercado Pago) e resultado do webhook
from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP

import mercadopago
from django.conf import settings

from .exceptions import IllegalTransition, PaymentError, PaymentNotAllowed
from .models import Order, OrderStatus
from .repository import OrderRepository
from .status import OrderStateMachine

logger = logging.getLogger(__name__)

# status do Mercado Pago -> status do pedido
MP_STATUS_MAP = {
    "approved": OrderStatus.PAYMENT_SUCCESS,
    "rejected": OrderStatus.PAYMENT_FAILURE,
    "cancelled": OrderStatus.PAYMENT_FAILURE,
    "canceled": OrderStatus.PAYMENT_FAILURE,
    "failed": OrderStatus.PAYMENT_FAILURE,
}


# ======================================================================
# Utils
# ======================================================================
def _sdk():
    token = getattr(settings, "MP_ACCESS_TOKEN", "")
    if not token:
        raise PaymentError("MP_ACCESS_TOKEN ausente no ambiente.")
    return mercadopago.SDK(token)


def _cents_to_amount(cents: int) -> float:
    v = (Decimal(int(cents)) / Decimal(100)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return float(v)


class PaymentGateway:
    """
    Ponte entre o pedido e o Mercado Pago.

    - link de pagamento só para pedidos "approved";
    - o resultado do pagamento (webhook) vira uma transição normal da
      máquina de estados: approved -> payment_success | payment_failure.
    """

    def __init__(self, repository: OrderRepository | None = None, state_machine: OrderStateMachine | None = None):
        self.repository = repository or OrderRepository()
        self.state_machine = state_machine or OrderStateMachine(self.repository)

    @property
    def test_mode(self) -> bool:
        return bool(getattr(settings, "MP_WEBHOOK_TEST_MODE", False))

    def create_payment_link(self, order_id) -> dict:
        order = self.repository.find_by_id(order_id)
        if order.status != OrderStatus.APPROVED:
            raise PaymentNotAllowed(
                f"Pedido {order.order_number} está em {order.status}; pagamento exige approved."
            )

        if self.test_mode:
            return {
                "order_id": order.id,
                "preference_id": f"TEST-PREF-{order.order_number}",
                "init_point": f"https://sandbox.mercadopago.test/checkout/{order.order_number}",
                "test_mode": True,
            }

        body = {
            "items": [
                {
                    "id": str(it.product_id or ""),
                    "title": it.product.name if it.product else f"Item {it.id}",
                    "quantity": it.quantity,
                    "unit_price": _cents_to_amount(it.unit_price_cents),
                    "currency_id": "BRL",
                }
                for it in order.items.all()
            ],
            "payer": {"email": order.contact_email},
            "external_reference": order.order_number,
        }
        if order.shipping_fee_cents:
            body["shipments"] = {"cost": _cents_to_amount(order.shipping_fee_cents), "mode": "not_specified"}

        try:
            result = _sdk().preference().create(body)
        except PaymentError:
            raise
        except Exception as e:
            logger.error("Falha ao criar preferência do pedido %s: %s", order.order_number, e)
            raise PaymentError(f"Falha ao criar link de pagamento: {e}")

        resp = (result or {}).get("response") or {}
        if not resp.get("id"):
            logger.error("Resposta inesperada do Mercado Pago para %s: %s", order.order_number, result)
            raise PaymentError("Mercado Pago não devolveu a preferência.")

        return {
            "order_id": order.id,
            "preference_id": resp["id"],
            "init_point": resp.get("init_point", ""),
            "test_mode": False,
        }

    def apply_payment_result(self, external_reference: str, mp_status: str, payment_id: str = "") -> Order | None:
        """
        Aplica o status do pagamento ao pedido. Webhooks chegam repetidos
        e fora de ordem: transição ilegal é logada e ignorada.
        """
        target = MP_STATUS_MAP.get((mp_status or "").lower())
        order = self.repository.find_by_identifier(external_reference)
        if payment_id and order.payment_reference != str(payment_id):
            order.payment_reference = str(payment_id)
            self.repository.save(order, ["payment_reference"])

        if target is None:
            logger.info("Pagamento %s do pedido %s ainda em %s", payment_id, order.order_number, mp_status)
            return order
        try:
            return self.state_machine.transition(order.id, target)
        except IllegalTransition as e:
            logger.warning("Webhook ignorado para %s: %s", order.order_number, e.detail)
            return order

    def fetch_payment(self, payment_id: str) -> tuple[str, str]:
        """(external_reference, status) de um pagamento real."""
        try:
            pay = _sdk().payment().get(payment_id)
        except PaymentError:
            raise
        except Exception as e:
            raise PaymentError(f"Falha ao consultar pagamento {payment_id}: {e}")
        presp = (pay or {}).get("response") or {}
        return str(presp.get("external_reference") or "").strip(), (presp.get("status") or "").lower()
