# orders/admin.py
from django.contrib import admin, messages

from .exceptions import OrderError
from .models import Customer, Discount, Order, OrderItem, OrderStatus, Product
from .serializers import _format_brl
from .status import OrderStateMachine


# ===============================
# Product
# ===============================
@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "sku", "price_fmt", "stock")
    search_fields = ("name", "sku")
    # estoque só muda pelo InventoryLedger (checkout / mudança de status)
    readonly_fields = ("stock",)

    # catálogo é mantido fora do núcleo de pedidos
    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def price_fmt(self, obj):
        return _format_brl(obj.price_cents)
    price_fmt.short_description = "Preço"


# ===============================
# Customer / Discount
# ===============================
@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "email", "phone", "user", "created_at")
    search_fields = ("name", "email", "phone")
    raw_id_fields = ("user",)


@admin.register(Discount)
class DiscountAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "discount_type", "usage_count", "created_at")
    list_filter = ("discount_type",)
    readonly_fields = ("usage_count",)


# ===============================
# Order / OrderItem
# ===============================
class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    can_delete = False
    # preços são históricos: ficam congelados após o checkout
    readonly_fields = (
        "product",
        "quantity",
        "unit_price_cents",
        "original_price_cents",
        "discount",
        "discount_amount_cents",
        "subtotal_cents",
    )
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False


def _run_transition(modeladmin, request, queryset, new_status):
    machine = OrderStateMachine()
    done = 0
    for order in queryset.order_by("id"):
        try:
            machine.transition(order.pk, new_status, staff_id=request.user.pk)
            done += 1
        except OrderError as e:
            modeladmin.message_user(request, f"{order}: {e.detail}", level=messages.WARNING)
    if done:
        modeladmin.message_user(request, f"{done} pedido(s) movidos para {OrderStatus(new_status).label}.")


@admin.action(description="Aprovar pedidos selecionados")
def approve_orders(modeladmin, request, queryset):
    _run_transition(modeladmin, request, queryset, OrderStatus.APPROVED)


@admin.action(description="Cancelar pedidos selecionados")
def cancel_orders(modeladmin, request, queryset):
    _run_transition(modeladmin, request, queryset, OrderStatus.CANCELLED)


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "order_number", "contact", "status", "total_fmt", "created_at")
    list_filter = ("status", "payment_method")
    search_fields = ("order_number", "guest_email", "guest_name", "customer__email", "customer__name")
    inlines = [OrderItemInline]
    actions = [approve_orders, cancel_orders]
    # status só muda pela máquina de estados (ações acima / API)
    readonly_fields = (
        "order_number",
        "status",
        "subtotal_cents",
        "shipping_fee_cents",
        "discount_amount_cents",
        "total_cents",
        "approved_by",
        "approval_date",
        "shipped_at",
        "delivered_at",
        "discount_usage_recorded",
    )

    def contact(self, obj):
        return obj.contact_email or obj.contact_name
    contact.short_description = "Contato"

    def total_fmt(self, obj):
        return _format_brl(obj.total_cents)
    total_fmt.short_description = "Total"
