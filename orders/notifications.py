# orders/notifications.py: e-mails de aprovação e de código de rastreamento
from __future__ import annotations

import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives, get_connection
from django.template import TemplateDoesNotExist
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


def _render(template: str, ctx: dict, fallback: str) -> str:
    try:
        return render_to_string(template, ctx)
    except TemplateDoesNotExist:
        return fallback


def _send(subject: str, to: list[str], txt: str, html: str) -> bool:
    """
    Dispara e esquece: nunca deixa o chamador quebrar.
    Devolve False se o backend de e-mail falhar.
    """
    to = [e for e in to if e]
    if not to:
        return False
    from_email = getattr(settings, "DEFAULT_FROM_EMAIL", "no-reply@storefront.local")
    try:
        with get_connection() as conn:
            msg = EmailMultiAlternatives(subject, txt, from_email, to, connection=conn)
            msg.attach_alternative(html, "text/html")
            msg.send(fail_silently=False)
        return True
    except Exception:
        logger.exception("Falha ao enviar e-mail '%s' para %s", subject, to)
        return False


def send_order_approval_email(order) -> bool:
    number = order.order_number or order.pk
    front = getattr(settings, "PUBLIC_FRONT_BASE", "").rstrip("/")
    ctx = {
        "order": order,
        "name": order.contact_name,
        "track_url": f"{front}/track/{number}",
    }
    txt = _render(
        "emails/order_approved.txt", ctx,
        f"Olá {order.contact_name},\n\nSeu pedido {number} foi aprovado.\n"
        f"Acompanhe em: {ctx['track_url']}\n",
    )
    html = _render(
        "emails/order_approved.html", ctx,
        f"<p>Olá {order.contact_name},</p><p>Seu pedido <b>{number}</b> foi aprovado.</p>"
        f"<p><a href='{ctx['track_url']}'>Acompanhar pedido</a></p>",
    )
    return _send(f"Pedido {number} aprovado", [order.contact_email], txt, html)


def send_new_order_staff_email(order) -> bool:
    """Aviso interno: pedido novo na fila de aprovação (NOTIFY_NEW_ORDER_TO)."""
    to = list(getattr(settings, "NOTIFY_NEW_ORDER_TO", []) or [])
    number = order.order_number or order.pk
    lines = [
        f"- {it.quantity}x {it.product.name if it.product else f'produto #{it.product_id}'}"
        for it in order.items.all()
    ]
    txt = (
        f"Novo pedido {number} aguardando aprovação.\n"
        f"Cliente: {order.contact_name} <{order.contact_email}>\n"
        f"Total: {order.total_cents / 100:.2f}\n\n" + "\n".join(lines)
    )
    html = "<br>".join(txt.splitlines())
    return _send(f"Novo pedido {number}", to, txt, html)


def send_order_tracking_otp(email: str, code: str, order_number: str, ttl_minutes: int) -> bool:
    ctx = {"code": code, "order_number": order_number, "ttl_minutes": ttl_minutes}
    txt = _render(
        "emails/tracking_code.txt", ctx,
        f"Seu código para acompanhar o pedido {order_number}: {code}\n"
        f"Válido por {ttl_minutes} minutos.\n",
    )
    html = _render(
        "emails/tracking_code.html", ctx,
        f"<p>Seu código para acompanhar o pedido {order_number}:</p>"
        f"<h2>{code}</h2><p>Válido por {ttl_minutes} minutos.</p>",
    )
    return _send(f"Código de acompanhamento do pedido {order_number}", [email], txt, html)
