# orders/management/commands/deliver_shipped_orders.py: varredura periódica (cron)
from django.conf import settings
from django.core.management.base import BaseCommand

from orders.status import OrderStateMachine


class Command(BaseCommand):
    help = "Marca como entregues os pedidos em 'shipping' há mais de N dias."

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=getattr(settings, "DELIVERY_SWEEP_DAYS", 3),
            help="Dias em trânsito antes de considerar entregue (padrão: DELIVERY_SWEEP_DAYS).",
        )

    def handle(self, *args, **options):
        delivered = OrderStateMachine().run_delivery_sweep(options["days"])
        self.stdout.write(self.style.SUCCESS(f"{len(delivered)} pedido(s) marcados como entregues."))
        for order_id in delivered:
            self.stdout.write(f"  - pedido #{order_id}")
