# orders/repository.py: leitura/gravação de pedidos (Order + itens + cliente)
from __future__ import annotations

import re

from django.db.models import Prefetch, Q

from .exceptions import NotFound
from .models import Order, OrderItem, OrderStatus

_NUMERIC_ID = re.compile(r"^\d+$")


class OrderRepository:
    """
    Fronteira de persistência do núcleo.

    Toda leitura de detalhe passa por `_hydrated()`: um único select com o
    cliente + um prefetch dos itens com seus produtos. Pedido sem itens
    devolve `order.items.all()` vazio, sem item "fantasma".
    """

    def _hydrated(self):
        items = OrderItem.objects.select_related("product", "discount").order_by("id")
        return Order.objects.select_related("customer").prefetch_related(
            Prefetch("items", queryset=items)
        )

    def find_by_id(self, order_id) -> Order:
        try:
            return self._hydrated().get(pk=int(order_id))
        except (Order.DoesNotExist, TypeError, ValueError):
            raise NotFound(f"Pedido {order_id} não encontrado.")

    def find_by_number(self, order_number: str) -> Order:
        try:
            return self._hydrated().get(order_number=str(order_number).strip())
        except Order.DoesNotExist:
            raise NotFound(f"Pedido {order_number} não encontrado.")

    def find_by_identifier(self, identifier) -> Order:
        """Aceita o id numérico ou o número do pedido (ex.: "ORD-00000042")."""
        raw = str(identifier).strip()
        if _NUMERIC_ID.match(raw):
            return self.find_by_id(raw)
        return self.find_by_number(raw)

    def lock(self, order_id) -> Order:
        """
        Trava a linha do pedido até o fim da transação atual.
        Precisa ser chamado dentro de transaction.atomic().
        """
        try:
            return Order.objects.select_for_update().get(pk=int(order_id))
        except (Order.DoesNotExist, TypeError, ValueError):
            raise NotFound(f"Pedido {order_id} não encontrado.")

    def save(self, order: Order, fields: list[str] | None = None) -> Order:
        if fields:
            order.save(update_fields=[*fields, "updated_at"])
        else:
            order.save()
        return order

    def all_orders(self):
        return self._hydrated().order_by("-created_at")

    def find_pending_approval(self):
        return self._hydrated().filter(status=OrderStatus.PENDING_APPROVAL).order_by("-created_at")

    def stale_shipping_ids(self, cutoff) -> list[int]:
        return list(
            Order.objects.filter(status=OrderStatus.SHIPPING)
            .filter(Q(shipped_at__lt=cutoff) | Q(shipped_at__isnull=True, updated_at__lt=cutoff))
            .order_by("id")
            .values_list("id", flat=True)
        )
