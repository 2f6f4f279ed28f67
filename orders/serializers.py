# orders/serializers.py: formatos de entrada/saída da API de pedidos
# Entrada vira os dataclasses de orders.checkout; saída é só leitura.

from rest_framework import serializers

from .checkout import CheckoutRequest, LineRequest, Purchaser
from .models import Order, OrderItem, OrderStatus


def _format_brl(cents) -> str:
    cents = int(cents or 0)
    reais = f"{cents // 100:,}".replace(",", ".")
    return f"R$ {reais},{cents % 100:02d}"


# ===========================
#  CHECKOUT (WRITE)
# ===========================
class GuestContactSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    email = serializers.EmailField(max_length=255)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")


class CheckoutLineSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)
    unit_price_cents = serializers.IntegerField(min_value=0, required=False, allow_null=True, default=None)
    discount_id = serializers.IntegerField(min_value=1, required=False, allow_null=True, default=None)
    discount_type = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")


class CheckoutSerializer(serializers.Serializer):
    customer = GuestContactSerializer(required=False)
    items = CheckoutLineSerializer(many=True, allow_empty=False)
    delivery_address = serializers.CharField(max_length=500)
    payment_method = serializers.ChoiceField(choices=Order.PAYMENT_METHOD_CHOICES, default="cod")
    shipping_fee_cents = serializers.IntegerField(min_value=0, default=0)
    discount_amount_cents = serializers.IntegerField(min_value=0, default=0)
    manual_discount_id = serializers.IntegerField(min_value=1, required=False, allow_null=True, default=None)
    applied_discount_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1), required=False, default=list
    )

    def to_checkout_request(self, customer_id=None) -> CheckoutRequest:
        data = self.validated_data
        if customer_id is not None:
            purchaser = Purchaser(customer_id=customer_id)
        else:
            guest = data.get("customer")
            if not guest:
                raise serializers.ValidationError({"customer": "Obrigatório para compra sem login."})
            purchaser = Purchaser(
                guest_name=guest["name"],
                guest_email=guest["email"],
                guest_phone=guest.get("phone", ""),
            )
        return CheckoutRequest(
            purchaser=purchaser,
            lines=[LineRequest(**line) for line in data["items"]],
            delivery_address=data["delivery_address"],
            payment_method=data["payment_method"],
            shipping_fee_cents=data["shipping_fee_cents"],
            discount_amount_cents=data["discount_amount_cents"],
            manual_discount_id=data.get("manual_discount_id"),
            applied_discount_ids=list(data.get("applied_discount_ids") or []),
        )


# ===========================
#  PEDIDO / ITENS (READ)
# ===========================
class OrderItemReadSerializer(serializers.ModelSerializer):
    product_name = serializers.SerializerMethodField()

    class Meta:
        model = OrderItem
        fields = (
            "id",
            "product_id",
            "product_name",
            "quantity",
            "unit_price_cents",
            "original_price_cents",
            "discount_id",
            "discount_amount_cents",
            "discount_type",
            "subtotal_cents",
        )

    def get_product_name(self, obj):
        return obj.product.name if obj.product else ""


class OrderReadSerializer(serializers.ModelSerializer):
    items = OrderItemReadSerializer(many=True, read_only=True)
    total_formatted = serializers.SerializerMethodField()
    contact_name = serializers.CharField(read_only=True)
    contact_email = serializers.CharField(read_only=True)
    contact_phone = serializers.CharField(read_only=True)

    class Meta:
        model = Order
        fields = (
            "id",
            "order_number",
            "status",
            "customer_id",
            "contact_name",
            "contact_email",
            "contact_phone",
            "delivery_address",
            "payment_method",
            "subtotal_cents",
            "shipping_fee_cents",
            "discount_amount_cents",
            "total_cents",
            "total_formatted",
            "items",
            "approved_by",
            "created_at",
            "updated_at",
            "approval_date",
            "shipped_at",
            "delivered_at",
        )

    def get_total_formatted(self, obj):
        return _format_brl(obj.total_cents)


# ===========================
#  STATUS / RASTREAMENTO
# ===========================
class StatusChangeSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)


class TrackingCodeRequestSerializer(serializers.Serializer):
    order_id = serializers.CharField(max_length=64)
    email = serializers.EmailField(max_length=255)


class TrackingCodeVerifySerializer(TrackingCodeRequestSerializer):
    otp = serializers.CharField(max_length=12)


class KnownFactSerializer(serializers.Serializer):
    order_id = serializers.CharField(max_length=64)
    verification_data = serializers.CharField(max_length=255)
