# orders/discounts.py: contabiliza o uso de descontos depois do checkout
from __future__ import annotations

import logging
from collections import defaultdict

from django.db import transaction
from django.db.models import F

from .models import Discount, Order, OrderItem

logger = logging.getLogger(__name__)


def record_discount_usage(order_id) -> bool:
    """
    Soma em Discount.usage_count as quantidades vendidas com cada desconto.

    - desconto manual: conta todas as unidades do pedido;
    - descontos automáticos: conta as unidades dos itens ligados a cada id
      listado em order.applied_discount_ids.

    A flag discount_usage_recorded impede contagem dupla. Roda fora da
    transação do checkout (via on_commit) e nunca levanta: um pedido válido
    não pode ser desfeito por causa desta contabilidade.
    """
    try:
        with transaction.atomic():
            order = Order.objects.select_for_update().filter(pk=order_id).first()
            if order is None:
                logger.error("Pedido %s não encontrado - uso de desconto não registrado", order_id)
                return False
            if order.discount_usage_recorded:
                logger.info("Uso de desconto do pedido %s já registrado", order_id)
                return False

            items = list(OrderItem.objects.filter(order_id=order_id))
            usage: dict[int, int] = defaultdict(int)

            if order.manual_discount_id:
                usage[order.manual_discount_id] += sum(it.quantity for it in items)

            auto_ids = {int(d) for d in (order.applied_discount_ids or [])}
            for it in items:
                if it.discount_id and it.discount_id in auto_ids:
                    usage[it.discount_id] += it.quantity

            for discount_id, count in usage.items():
                if count <= 0:
                    continue
                updated = Discount.objects.filter(pk=discount_id).update(usage_count=F("usage_count") + count)
                if updated:
                    logger.info("Desconto %s: +%s uso(s) pelo pedido %s", discount_id, count, order_id)
                else:
                    logger.warning("Desconto %s não existe mais (pedido %s)", discount_id, order_id)

            order.discount_usage_recorded = True
            order.save(update_fields=["discount_usage_recorded", "updated_at"])
        return True
    except Exception:
        logger.exception("Erro ao registrar uso de desconto do pedido %s", order_id)
        return False
