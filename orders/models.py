# orders/models.py: Product, Customer, Discount, Order e OrderItem do núcleo de pedidos
from django.conf import settings
from django.db import models
from django.utils import timezone


# --------- Produtos ---------
class Product(models.Model):
    """
    Produto do catálogo. O núcleo só lê o preço e ajusta o estoque
    (sempre via InventoryLedger); nunca cria nem apaga produtos.
    """
    name = models.CharField(max_length=255)
    sku = models.CharField(max_length=40, unique=True)

    # preço armazenado em centavos (inteiro)
    price_cents = models.PositiveIntegerField(default=0)
    stock = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-id"]

    def __str__(self):
        return f"{self.name} ({self.sku})"


# --------- Clientes ---------
class Customer(models.Model):
    name = models.CharField(max_length=255)
    email = models.EmailField(max_length=255, unique=True, db_index=True)
    # Telefone em E.164 (ex.: +5511999999999)
    phone = models.CharField(max_length=20, blank=True, default="", db_index=True)
    # conta de login (opcional) usada para reconhecer o dono do pedido
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        related_name="customer",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.name} <{self.email}>"


# --------- Descontos ---------
class Discount(models.Model):
    TYPE_CHOICES = (
        ("percentage", "Percentual"),
        ("fixed", "Valor fixo"),
    )

    name = models.CharField(max_length=120)
    discount_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default="percentage")
    # quantas unidades já foram vendidas com este desconto
    usage_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


# --------- Pedidos ---------
class OrderStatus(models.TextChoices):
    PENDING_APPROVAL = "pending_approval", "Aguardando aprovação"
    APPROVED = "approved", "Aprovado"
    PAYMENT_SUCCESS = "payment_success", "Pago"
    PAYMENT_FAILURE = "payment_failure", "Falha no pagamento"
    PROCESSING = "processing", "Processando"
    SHIPPING = "shipping", "Enviado"
    DELIVERED = "delivered", "Entregue"
    CANCELLED = "cancelled", "Cancelado"


class Order(models.Model):
    PAYMENT_METHOD_CHOICES = [
        ("cod", "Na entrega"),
        ("pix", "PIX"),
        ("card", "Cartão"),
        ("mercadopago", "Mercado Pago"),
    ]

    # preenchido dentro da transação de checkout, a partir do próprio id
    order_number = models.CharField(max_length=32, unique=True, null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING_APPROVAL,
        db_index=True,
    )

    # valores monetários em centavos, gravados literalmente no checkout
    subtotal_cents = models.PositiveIntegerField(default=0)
    shipping_fee_cents = models.PositiveIntegerField(default=0)
    discount_amount_cents = models.PositiveIntegerField(default=0)
    total_cents = models.PositiveIntegerField(default=0)

    delivery_address = models.CharField(max_length=500)
    payment_method = models.CharField(max_length=30, choices=PAYMENT_METHOD_CHOICES, default="cod")
    payment_reference = models.CharField(max_length=120, blank=True, default="")

    # cliente cadastrado OU contato de convidado
    customer = models.ForeignKey(
        Customer, related_name="orders", on_delete=models.PROTECT, null=True, blank=True
    )
    guest_name = models.CharField(max_length=255, blank=True, default="")
    guest_phone = models.CharField(max_length=20, blank=True, default="")
    guest_email = models.EmailField(max_length=255, blank=True, default="")

    # descontos: manual (um id) ou automáticos (lista de ids)
    manual_discount = models.ForeignKey(
        Discount, related_name="+", on_delete=models.SET_NULL, null=True, blank=True
    )
    applied_discount_ids = models.JSONField(default=list, blank=True)
    discount_usage_recorded = models.BooleanField(default=False)

    # staff responsável pela aprovação
    approved_by = models.PositiveIntegerField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)
    approval_date = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(customer__isnull=False) | ~models.Q(guest_email=""),
                name="order_has_customer_or_guest_email",
            ),
        ]

    def __str__(self):
        return f"Pedido {self.order_number or self.pk}"

    @property
    def contact_name(self) -> str:
        if self.customer_id:
            return self.customer.name
        return self.guest_name

    @property
    def contact_email(self) -> str:
        if self.customer_id:
            return self.customer.email
        return self.guest_email

    @property
    def contact_phone(self) -> str:
        if self.customer_id:
            return self.customer.phone or self.guest_phone
        return self.guest_phone


class OrderItem(models.Model):
    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    # produto pode sumir do catálogo; o item continua como registro histórico
    product = models.ForeignKey(
        Product, related_name="order_items", on_delete=models.SET_NULL, null=True
    )
    quantity = models.PositiveIntegerField()
    # preços no momento do pedido (em centavos); nunca espelham o preço atual
    unit_price_cents = models.PositiveIntegerField()
    original_price_cents = models.PositiveIntegerField()
    discount = models.ForeignKey(
        Discount, related_name="order_items", on_delete=models.SET_NULL, null=True, blank=True
    )
    discount_amount_cents = models.PositiveIntegerField(default=0)
    discount_type = models.CharField(max_length=20, blank=True, default="")
    subtotal_cents = models.PositiveIntegerField()

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(condition=models.Q(quantity__gt=0), name="order_item_quantity_positive"),
        ]

    def __str__(self):
        return f"{self.quantity}x produto #{self.product_id} no pedido #{self.order_id}"
