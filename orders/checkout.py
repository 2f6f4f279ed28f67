# orders/checkout.py: transação atômica carrinho -> pedido + itens + estoque
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from django.conf import settings
from django.db import transaction

from .discounts import record_discount_usage
from .exceptions import InsufficientStock, InvalidCheckout, NotFound, ProductNotFound
from .inventory import InventoryLedger
from .models import Customer, Discount, Order, OrderItem, OrderStatus, Product
from .notifications import send_new_order_staff_email
from .repository import OrderRepository

logger = logging.getLogger(__name__)


@dataclass
class Purchaser:
    """Cliente cadastrado (customer_id) OU contato de convidado."""

    customer_id: int | None = None
    guest_name: str = ""
    guest_email: str = ""
    guest_phone: str = ""


@dataclass
class LineRequest:
    product_id: int
    quantity: int
    # preço final já com desconto vindo do carrinho (opcional)
    unit_price_cents: int | None = None
    discount_id: int | None = None
    discount_type: str = ""


@dataclass
class CheckoutRequest:
    purchaser: Purchaser
    lines: list[LineRequest]
    delivery_address: str
    payment_method: str = "cod"
    shipping_fee_cents: int = 0
    discount_amount_cents: int = 0
    manual_discount_id: int | None = None
    applied_discount_ids: list[int] = field(default_factory=list)


def assign_order_number(order: Order) -> str:
    """Número legível derivado do id; chamar de novo não muda nada."""
    if not order.order_number:
        prefix = getattr(settings, "ORDER_NUMBER_PREFIX", "ORD")
        order.order_number = f"{prefix}-{order.pk:08d}"
        order.save(update_fields=["order_number"])
    return order.order_number


class CheckoutTransaction:
    def __init__(self, repository: OrderRepository | None = None, ledger: InventoryLedger | None = None):
        self.repository = repository or OrderRepository()
        self.ledger = ledger or InventoryLedger()

    def checkout(self, request: CheckoutRequest) -> Order:
        """
        Estratégia: valida tudo -> grava pedido e itens -> baixa estoque,
        tudo na mesma transação. Qualquer erro antes do commit desfaz tudo:
        nem pedido, nem itens, nem estoque alterado.
        """
        self._validate_shape(request)

        with transaction.atomic():
            customer = self._resolve_customer(request.purchaser)
            products = self._lock_products(request.lines)
            known_discounts = self._known_discounts(request.lines)

            # 1) Resolver itens (sem gravar nada ainda)
            resolved = []
            wanted: dict[int, int] = defaultdict(int)
            for line in request.lines:
                product = products.get(line.product_id)
                if product is None:
                    raise ProductNotFound(line.product_id)
                wanted[product.id] += line.quantity
                if wanted[product.id] > product.stock:
                    raise InsufficientStock(product.id, wanted[product.id], product.stock)
                resolved.append(self._build_item(product, line, known_discounts))

            subtotal = sum(it.subtotal_cents for it in resolved)
            total = max(0, subtotal + request.shipping_fee_cents - request.discount_amount_cents)

            # 2) Persistir pedido e itens
            order = Order.objects.create(
                status=OrderStatus.PENDING_APPROVAL,
                customer=customer,
                guest_name="" if customer else request.purchaser.guest_name.strip(),
                guest_email="" if customer else request.purchaser.guest_email.strip().lower(),
                guest_phone="" if customer else request.purchaser.guest_phone.strip(),
                delivery_address=request.delivery_address.strip(),
                payment_method=request.payment_method,
                subtotal_cents=subtotal,
                shipping_fee_cents=request.shipping_fee_cents,
                discount_amount_cents=request.discount_amount_cents,
                total_cents=total,
                manual_discount=self._discount_or_none(request.manual_discount_id),
                applied_discount_ids=[int(d) for d in request.applied_discount_ids],
            )
            assign_order_number(order)

            for it in resolved:
                it.order = order
            OrderItem.objects.bulk_create(resolved)

            # 3) Baixar estoque (linhas de produto já travadas acima)
            self.ledger.decrease(order.pk, strict=True)

            if order.manual_discount_id or order.applied_discount_ids:
                transaction.on_commit(lambda: record_discount_usage(order.pk))
            if getattr(settings, "NOTIFY_NEW_ORDER_TO", None):
                transaction.on_commit(lambda: self._notify_staff(order.pk))

        logger.info(
            "Pedido %s criado: %s item(ns), total %s centavos",
            order.order_number, len(resolved), total,
        )
        return self.repository.find_by_id(order.pk)

    def _notify_staff(self, order_id) -> None:
        try:
            send_new_order_staff_email(self.repository.find_by_id(order_id))
        except Exception:
            logger.exception("Falha ao avisar a equipe sobre o pedido %s", order_id)

    # ---------- helpers ----------
    def _validate_shape(self, request: CheckoutRequest) -> None:
        if not request.lines:
            raise InvalidCheckout("O pedido precisa de pelo menos um item.")
        for idx, line in enumerate(request.lines, start=1):
            if int(line.quantity) < 1:
                raise InvalidCheckout(f"Item {idx}: quantidade deve ser >= 1.")
        if not (request.delivery_address or "").strip():
            raise InvalidCheckout("Endereço de entrega obrigatório.")
        if request.shipping_fee_cents < 0 or request.discount_amount_cents < 0:
            raise InvalidCheckout("Frete e desconto não podem ser negativos.")

        p = request.purchaser
        if p.customer_id is None and not (p.guest_email or "").strip():
            raise InvalidCheckout("Informe o cliente ou o e-mail do convidado.")

    def _resolve_customer(self, purchaser: Purchaser) -> Customer | None:
        if purchaser.customer_id is None:
            return None
        try:
            return Customer.objects.get(pk=purchaser.customer_id)
        except Customer.DoesNotExist:
            raise NotFound(f"Cliente {purchaser.customer_id} não encontrado.")

    def _lock_products(self, lines: list[LineRequest]) -> dict[int, Product]:
        ids = sorted({int(line.product_id) for line in lines})
        # ordem fixa de travamento evita deadlock entre checkouts concorrentes
        return {p.id: p for p in Product.objects.select_for_update().filter(id__in=ids).order_by("id")}

    def _discount_or_none(self, discount_id) -> Discount | None:
        if not discount_id:
            return None
        return Discount.objects.filter(pk=discount_id).first()

    def _known_discounts(self, lines: list[LineRequest]) -> set[int]:
        ids = {int(line.discount_id) for line in lines if line.discount_id}
        if not ids:
            return set()
        return set(Discount.objects.filter(id__in=ids).values_list("id", flat=True))

    def _build_item(self, product: Product, line: LineRequest, known_discounts: set[int]) -> OrderItem:
        original = int(product.price_cents or 0)
        unit = original
        # preço com desconto só vale se o desconto existir e não passar do original
        if line.discount_id in known_discounts and line.unit_price_cents is not None:
            unit = max(0, min(int(line.unit_price_cents), original))
        return OrderItem(
            product=product,
            quantity=int(line.quantity),
            unit_price_cents=unit,
            original_price_cents=original,
            discount_id=line.discount_id if unit < original else None,
            discount_amount_cents=(original - unit) * int(line.quantity),
            discount_type=line.discount_type if unit < original else "",
            subtotal_cents=unit * int(line.quantity),
        )
