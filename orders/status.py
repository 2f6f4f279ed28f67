# orders/status.py: máquina de estados do pedido
from __future__ import annotations

import logging
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .exceptions import IllegalTransition, MissingAuthorization
from .inventory import InventoryLedger
from .models import Order, OrderStatus
from .notifications import send_order_approval_email
from .repository import OrderRepository

logger = logging.getLogger(__name__)

S = OrderStatus

VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    S.PENDING_APPROVAL: frozenset({S.APPROVED, S.CANCELLED}),
    S.APPROVED: frozenset({S.PAYMENT_SUCCESS, S.PAYMENT_FAILURE, S.CANCELLED}),
    S.PAYMENT_SUCCESS: frozenset({S.PROCESSING}),
    S.PAYMENT_FAILURE: frozenset({S.APPROVED, S.CANCELLED}),
    S.PROCESSING: frozenset({S.SHIPPING, S.CANCELLED}),
    S.SHIPPING: frozenset({S.DELIVERED}),
    S.DELIVERED: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL_STATES = frozenset({S.DELIVERED, S.CANCELLED})

# cancelar a partir destes estados devolve o estoque já comprometido.
# O estoque baixa duas vezes (checkout e aprovação) e o cancelamento só
# devolve a baixa da aprovação: pending -> cancelled não devolve nada e
# approved -> cancelled devolve uma das duas. A perda é aceita e coberta
# em tests/test_status.py.
RESTOCK_ON_CANCEL_FROM = frozenset({S.APPROVED, S.PAYMENT_SUCCESS})


def is_allowed(current: str, new: str) -> bool:
    return new in VALID_TRANSITIONS.get(current, frozenset())


class OrderStateMachine:
    def __init__(self, repository: OrderRepository | None = None, ledger: InventoryLedger | None = None):
        self.repository = repository or OrderRepository()
        self.ledger = ledger or InventoryLedger()

    def validate(self, current: str, new: str, staff_id=None) -> None:
        if not is_allowed(current, new):
            logger.error("Transição inválida de %s para %s", current, new)
            raise IllegalTransition(current, new)
        if new == S.APPROVED and not staff_id:
            logger.error("Aprovação sem staff identificado")
            raise MissingAuthorization()

    def transition(self, order_id, new_status: str, staff_id=None) -> Order:
        """
        Valida e aplica a mudança de status na mesma transação dos efeitos
        colaterais de estoque. A linha do pedido fica travada até o commit,
        então duas chamadas concorrentes sobre o mesmo pedido se serializam
        e a segunda enxerga o status já gravado pela primeira.
        """
        with transaction.atomic():
            order = self.repository.lock(order_id)
            previous = order.status
            self.validate(previous, new_status, staff_id)
            self._apply(order, new_status, staff_id)

            if new_status == S.APPROVED:
                transaction.on_commit(lambda: self._notify_approved(order.pk))

        logger.info("Pedido %s: %s -> %s (staff=%s)", order_id, previous, new_status, staff_id)
        return self.repository.find_by_id(order_id)

    def _apply(self, order: Order, new_status: str, staff_id=None) -> None:
        previous = order.status
        now = timezone.now()
        fields = ["status"]

        if previous == S.PENDING_APPROVAL and new_status == S.APPROVED:
            self.ledger.decrease(order.pk)
        elif new_status == S.CANCELLED and previous in RESTOCK_ON_CANCEL_FROM:
            self.ledger.increase(order.pk)

        order.status = new_status
        if new_status == S.APPROVED and staff_id:
            order.approved_by = int(staff_id)
            order.approval_date = now
            fields += ["approved_by", "approval_date"]
        elif new_status == S.SHIPPING:
            order.shipped_at = now
            fields.append("shipped_at")
        elif new_status == S.DELIVERED:
            order.delivered_at = now
            fields.append("delivered_at")

        self.repository.save(order, fields)

    def _notify_approved(self, order_id) -> None:
        try:
            send_order_approval_email(self.repository.find_by_id(order_id))
        except Exception:
            logger.exception("Falha ao notificar aprovação do pedido %s", order_id)

    def run_delivery_sweep(self, days_in_transit: int | None = None) -> list[int]:
        """
        Marca como entregue todo pedido parado em "shipping" há mais de N dias.
        Cada pedido é travado e reavaliado individualmente; um pedido que
        mudou de status no meio do caminho é deixado como está.
        """
        if days_in_transit is None:
            days_in_transit = getattr(settings, "DELIVERY_SWEEP_DAYS", 3)
        cutoff = timezone.now() - timedelta(days=days_in_transit)

        delivered: list[int] = []
        for order_id in self.repository.stale_shipping_ids(cutoff):
            with transaction.atomic():
                order = self.repository.lock(order_id)
                if order.status != S.SHIPPING:
                    continue
                self._apply(order, S.DELIVERED)
            delivered.append(order_id)

        logger.info("Varredura de entregas: %s pedido(s) marcados como entregues", len(delivered))
        return delivered
