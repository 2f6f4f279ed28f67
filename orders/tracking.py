# orders/tracking.py: quem pode ver o quê de um pedido (dono/staff/OTP)
"""
Autorização de rastreamento.

Níveis de acesso (do maior para o menor):
  - dono do pedido ou staff ............ detalhe completo
  - anônimo verificado por código/e-mail  detalhe completo
  - anônimo não verificado ............. id, número, data e status

Códigos de uso único e contadores de rate limit vivem num cache do Django
injetado no construtor (LocMem em dev, Redis com várias instâncias). Nada
disso é gravado no banco.
"""
from __future__ import annotations

import enum
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings
from django.core.cache import caches
from django.utils import timezone

from .exceptions import EmailMismatch, NotFound, RateLimited
from .models import Order, OrderStatus
from .notifications import send_order_tracking_otp
from .repository import OrderRepository

logger = logging.getLogger(__name__)


class AccessLevel(str, enum.Enum):
    FULL = "full"
    NONE = "none"


@dataclass(frozen=True)
class CallerIdentity:
    customer_id: int | None = None
    is_staff: bool = False
    client_id: str = "unknown"

    @classmethod
    def from_request(cls, request) -> "CallerIdentity":
        user = getattr(request, "user", None)
        client_id = _client_ip(request)
        if not user or not user.is_authenticated:
            return cls(client_id=client_id)
        customer = getattr(user, "customer", None)
        return cls(
            customer_id=customer.pk if customer else None,
            is_staff=bool(user.is_staff or user.is_superuser),
            client_id=client_id,
        )


def _client_ip(request) -> str:
    """
    Endereço de transporte. Atrás de N proxies confiáveis (TRUSTED_PROXY_COUNT)
    vale o N-ésimo hop da direita no X-Forwarded-For; os hops à esquerda
    vêm do próprio cliente e são ignorados.
    """
    meta = getattr(request, "META", {}) or {}
    remote = meta.get("REMOTE_ADDR", "") or "unknown"
    trusted = int(getattr(settings, "TRUSTED_PROXY_COUNT", 0) or 0)
    if trusted <= 0:
        return remote
    hops = [h.strip() for h in meta.get("HTTP_X_FORWARDED_FOR", "").split(",") if h.strip()]
    if len(hops) < trusted:
        return remote
    return hops[-trusted]


def _norm_email(email: str) -> str:
    return (email or "").strip().lower()


def mask_email(email: str) -> str | None:
    """jo****hn@example.com: dica para o front sem expor o endereço."""
    if not email or "@" not in email:
        return None
    username, domain = email.split("@", 1)
    if len(username) > 4:
        masked = f"{username[:2]}****{username[-2:]}"
    else:
        masked = username[:1] + "****"
    return f"{masked}@{domain}"


# ======================================================================
# Stores (cache com expiração)
# ======================================================================
class TrackingCodeStore:
    """(número do pedido, e-mail) -> {code, expires_at}."""

    def __init__(self, cache, ttl: timedelta, clock):
        self.cache = cache
        self.ttl = ttl
        self.clock = clock

    def _key(self, order_number: str, email: str) -> str:
        return f"orders:tracking:code:{order_number}:{_norm_email(email)}"

    def put(self, order_number: str, email: str, code: str) -> None:
        expires_at = self.clock() + self.ttl
        self.cache.set(
            self._key(order_number, email),
            {"code": code, "expires_at": expires_at.timestamp()},
            timeout=int(self.ttl.total_seconds()),
        )

    def get(self, order_number: str, email: str) -> dict | None:
        return self.cache.get(self._key(order_number, email))

    def delete(self, order_number: str, email: str) -> None:
        self.cache.delete(self._key(order_number, email))

    def is_expired(self, entry: dict) -> bool:
        return entry.get("expires_at", 0) <= self.clock().timestamp()


class CodeRequestLimiter:
    """
    No máximo N pedidos de código por (cliente, e-mail, pedido) numa janela móvel.

    A janela é dividida em fatias (BUCKETS); cada tentativa faz add/incr
    atômico no contador da fatia atual e depois soma as fatias da janela.
    Tentativa recusada devolve o próprio incremento.
    """

    BUCKETS = 60

    def __init__(self, cache, max_requests: int, window_seconds: int, clock):
        self.cache = cache
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.bucket_seconds = max(1, window_seconds // self.BUCKETS)
        self.clock = clock

    def _key(self, client_id: str, email: str, order_ref: str) -> str:
        return f"orders:tracking:rate:{client_id}:{_norm_email(email)}:{order_ref}"

    def _incr(self, key: str) -> None:
        timeout = self.window_seconds + self.bucket_seconds
        self.cache.add(key, 0, timeout=timeout)
        try:
            self.cache.incr(key)
        except ValueError:
            # fatia expirou entre o add e o incr
            self.cache.set(key, 1, timeout=timeout)

    def hit(self, client_id: str, email: str, order_ref: str) -> bool:
        """Registra a tentativa; False se a janela já estiver cheia."""
        base = self._key(client_id, email, order_ref)
        current = int(self.clock().timestamp() // self.bucket_seconds)
        span = self.window_seconds // self.bucket_seconds
        keys = [f"{base}:{b}" for b in range(current - span + 1, current + 1)]

        self._incr(keys[-1])
        total = sum(int(v or 0) for v in self.cache.get_many(keys).values())
        if total > self.max_requests:
            self.cache.decr(keys[-1])
            return False
        return True


# ======================================================================
# Autorização
# ======================================================================
class TrackingAuthorization:
    def __init__(
        self,
        repository: OrderRepository | None = None,
        cache=None,
        clock=None,
        notifier=None,
        ttl_minutes: int | None = None,
        code_length: int | None = None,
        max_requests: int | None = None,
        window_seconds: int | None = None,
    ):
        self.repository = repository or OrderRepository()
        self.clock = clock or timezone.now
        self.notifier = notifier or send_order_tracking_otp
        cache = cache if cache is not None else caches[getattr(settings, "TRACKING_CACHE_ALIAS", "default")]

        self.ttl_minutes = ttl_minutes or getattr(settings, "TRACKING_CODE_TTL_MINUTES", 15)
        self.code_length = code_length or getattr(settings, "TRACKING_CODE_LENGTH", 6)
        self.codes = TrackingCodeStore(cache, timedelta(minutes=self.ttl_minutes), self.clock)
        self.limiter = CodeRequestLimiter(
            cache,
            max_requests or getattr(settings, "TRACKING_CODE_MAX_REQUESTS", 3),
            window_seconds or getattr(settings, "TRACKING_CODE_WINDOW_SECONDS", 3600),
            self.clock,
        )

    # ---------- dono / staff ----------
    def check_access(self, order: Order, caller: CallerIdentity | None) -> AccessLevel:
        if caller is None:
            return AccessLevel.NONE
        if caller.is_staff:
            return AccessLevel.FULL
        if caller.customer_id is not None and order.customer_id == caller.customer_id:
            return AccessLevel.FULL
        return AccessLevel.NONE

    # ---------- código de uso único ----------
    def request_code(self, identifier, email: str, client_id: str = "unknown") -> str:
        """
        Gera e envia um código para (pedido, e-mail).
        Levanta RateLimited / NotFound / EmailMismatch; quem expõe isso via
        HTTP deve responder sempre a mesma mensagem genérica.
        """
        try:
            order = self.repository.find_by_identifier(identifier)
        except NotFound:
            order = None

        # id e número do mesmo pedido contam na mesma janela
        order_ref = order.order_number if order else str(identifier).strip()
        if not self.limiter.hit(client_id, email, order_ref):
            logger.warning("Rate limit de código atingido para pedido %s", order_ref)
            raise RateLimited()
        if order is None:
            raise NotFound(f"Pedido {identifier} não encontrado.")

        if not self._email_matches(order, email):
            logger.warning("E-mail não confere para o pedido %s", order.pk)
            raise EmailMismatch()

        code = f"{secrets.randbelow(10 ** self.code_length):0{self.code_length}d}"
        self.codes.put(order.order_number, email, code)
        logger.info("Código de rastreamento gerado para o pedido %s", order.order_number)

        try:
            self.notifier(_norm_email(email), code, order.order_number, self.ttl_minutes)
        except Exception:
            logger.exception("Falha ao enviar código do pedido %s", order.order_number)
        return code

    def verify_code(self, identifier, email: str, code: str) -> bool:
        """Falha fechada: qualquer problema vira False."""
        try:
            order = self.repository.find_by_identifier(identifier)
            entry = self.codes.get(order.order_number, email)
            if not entry:
                logger.warning("Nenhum código pendente para o pedido %s", order.order_number)
                return False
            if self.codes.is_expired(entry):
                logger.warning("Código do pedido %s expirado", order.order_number)
                self.codes.delete(order.order_number, email)
                return False
            if not hmac.compare_digest(str(entry.get("code", "")), str(code or "").strip()):
                logger.warning("Código incorreto para o pedido %s", order.order_number)
                return False
            self.codes.delete(order.order_number, email)
            return True
        except Exception:
            logger.exception("Erro ao verificar código do pedido %s", identifier)
            return False

    def verify_known_fact(self, order_id, fact: str) -> bool:
        """Verificação leve: e-mail ou telefone gravados no pedido."""
        try:
            order = self.repository.find_by_identifier(order_id)
            given = (fact or "").strip().lower()
            if not given:
                return False
            candidates = {
                (order.customer.email if order.customer_id else "") or "",
                (order.customer.phone if order.customer_id else "") or "",
                order.guest_email or "",
                order.guest_phone or "",
            }
            return given in {c.strip().lower() for c in candidates if c}
        except Exception:
            logger.exception("Erro ao verificar acesso ao pedido %s", order_id)
            return False

    def _email_matches(self, order: Order, email: str) -> bool:
        given = _norm_email(email)
        if not given:
            return False
        customer_email = _norm_email(order.customer.email) if order.customer_id else ""
        return given in {customer_email, _norm_email(order.guest_email)} - {""}

    # ---------- projeção ----------
    def tracking_info(self, order: Order, level: AccessLevel) -> dict:
        base = {
            "id": order.id,
            "order_number": order.order_number,
            "order_date": order.created_at,
            "status": order.status,
        }
        if level is not AccessLevel.FULL:
            return base

        return {
            **base,
            "estimated_delivery_date": self.estimated_delivery(order),
            "activities": build_activities(order),
            "items": [
                {
                    "product_id": it.product_id,
                    "name": it.product.name if it.product else "",
                    "quantity": it.quantity,
                    "unit_price_cents": it.unit_price_cents,
                    "original_price_cents": it.original_price_cents,
                    "discount_amount_cents": it.discount_amount_cents,
                    "subtotal_cents": it.subtotal_cents,
                }
                for it in order.items.all()
            ],
            "shipping_address": {
                "full_name": order.contact_name,
                "address": order.delivery_address,
                "phone": order.contact_phone,
            },
            "email": order.contact_email,
            "payment_method": order.payment_method,
            "subtotal_cents": order.subtotal_cents,
            "shipping_fee_cents": order.shipping_fee_cents,
            "discount_amount_cents": order.discount_amount_cents,
            "total_cents": order.total_cents,
        }

    def estimated_delivery(self, order: Order):
        if order.status == OrderStatus.DELIVERED and order.delivered_at:
            return order.delivered_at
        days = getattr(settings, "ESTIMATED_DELIVERY_DAYS", 5)
        return order.created_at + timedelta(days=days)


# sequência "feliz" exibida na linha do tempo
MILESTONES = [
    OrderStatus.PENDING_APPROVAL,
    OrderStatus.APPROVED,
    OrderStatus.PAYMENT_SUCCESS,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPING,
    OrderStatus.DELIVERED,
]


def _milestone_timestamp(order: Order, status: str):
    return {
        OrderStatus.PENDING_APPROVAL: order.created_at,
        OrderStatus.APPROVED: order.approval_date,
        OrderStatus.SHIPPING: order.shipped_at,
        OrderStatus.DELIVERED: order.delivered_at,
    }.get(status)


def build_activities(order: Order) -> list[dict]:
    """
    Linha do tempo: marcos concluídos até o status atual + marcos futuros.
    Estados fora da sequência (falha de pagamento, cancelado) entram como
    um último evento depois do último marco alcançado.
    """
    if order.status in MILESTONES:
        reached = MILESTONES.index(order.status)
    elif order.status == OrderStatus.PAYMENT_FAILURE or order.approval_date:
        reached = MILESTONES.index(OrderStatus.APPROVED)
    else:
        reached = 0

    activities = []
    for idx, status in enumerate(MILESTONES):
        done = idx <= reached
        ts = _milestone_timestamp(order, status) if done else None
        if done and ts is None and status == order.status:
            ts = order.updated_at
        activities.append({
            "id": str(idx),
            "status": status.value,
            "label": status.label,
            "timestamp": ts,
            "is_completed": done,
        })

    if order.status not in MILESTONES:
        current = OrderStatus(order.status)
        activities.insert(reached + 1, {
            "id": str(len(MILESTONES)),
            "status": current.value,
            "label": current.label,
            "timestamp": order.updated_at,
            "is_completed": True,
        })
    return activities
