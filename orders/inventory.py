# orders/inventory.py: único ponto que escreve Product.stock
from __future__ import annotations

import enum
import logging

from django.db import transaction

from .exceptions import InsufficientStock, ProductNotFound
from .models import OrderItem, Product

logger = logging.getLogger(__name__)


class Direction(str, enum.Enum):
    INCREASE = "increase"
    DECREASE = "decrease"


class InventoryLedger:
    """
    Aplica os deltas de estoque de um pedido inteiro.

    - Sempre roda dentro da transação de quem chamou (checkout ou mudança
      de status); nunca grava estoque fora de uma transação.
    - Produtos são relidos com SELECT ... FOR UPDATE, em ordem de id, para
      serializar pedidos concorrentes sobre o mesmo produto.
    - stock = max(0, stock ± quantidade).
    - Modo padrão é "melhor esforço": item sem produto ou produto sumido é
      logado e pulado. Com strict=True (checkout) a anomalia aborta.
    """

    def adjust(self, order_id, direction: Direction | str, strict: bool = False) -> None:
        direction = Direction(direction)
        with transaction.atomic():
            items = list(OrderItem.objects.filter(order_id=order_id).order_by("id"))
            if not items:
                logger.error("Pedido %s sem itens - ajuste de estoque ignorado", order_id)
                return

            product_ids = sorted({it.product_id for it in items if it.product_id})
            products = {
                p.id: p
                for p in Product.objects.select_for_update().filter(id__in=product_ids).order_by("id")
            }

            for item in items:
                if not item.product_id:
                    if strict:
                        raise ProductNotFound(None)
                    logger.error("Item %s do pedido %s sem produto - ajuste ignorado", item.id, order_id)
                    continue

                product = products.get(item.product_id)
                if product is None:
                    if strict:
                        raise ProductNotFound(item.product_id)
                    logger.error("Produto %s não encontrado - ajuste ignorado", item.product_id)
                    continue

                old_stock = product.stock
                if direction is Direction.DECREASE:
                    if strict and item.quantity > old_stock:
                        raise InsufficientStock(product.id, item.quantity, old_stock)
                    product.stock = max(0, old_stock - item.quantity)
                else:
                    product.stock = old_stock + item.quantity
                product.save(update_fields=["stock"])

                logger.info(
                    "Produto %s (%s) estoque %s -> %s (%s, pedido %s)",
                    product.id, product.name, old_stock, product.stock, direction.value, order_id,
                )

    def increase(self, order_id) -> None:
        self.adjust(order_id, Direction.INCREASE)

    def decrease(self, order_id, strict: bool = False) -> None:
        self.adjust(order_id, Direction.DECREASE, strict=strict)
