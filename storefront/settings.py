# storefront/settings.py: perfil prod/dev do núcleo de pedidos
import os
from pathlib import Path
import dj_database_url
from dotenv import load_dotenv

# -------------------------
# .env opcional (instance/.env)
# -------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / "instance" / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH)


def _env_bool(var_name: str, default: str = "False") -> bool:
    return os.getenv(var_name, default).lower() == "true"


def _env_list(var_name: str, fallback: list[str]) -> list[str]:
    raw = os.getenv(var_name, "")
    if raw.strip():
        return [u.strip() for u in raw.split(",") if u.strip()]
    return fallback


# -------------------------
# Segurança / modo
# -------------------------
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-fallback-key-for-dev")
DEBUG = _env_bool("DEBUG")

ALLOWED_HOSTS: list[str] = _env_list("ALLOWED_HOSTS", ["127.0.0.1", "localhost"])
RENDER_EXTERNAL_HOSTNAME = os.getenv("RENDER_EXTERNAL_HOSTNAME")
if RENDER_EXTERNAL_HOSTNAME:
    ALLOWED_HOSTS.append(RENDER_EXTERNAL_HOSTNAME)

# -------------------------
# Apps
# -------------------------
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    # Desativa o staticfiles embutido do runserver para o WhiteNoise assumir no dev
    "whitenoise.runserver_nostatic",
    "django.contrib.staticfiles",

    # terceiros
    "rest_framework",
    "django_filters",
    "corsheaders",

    # app local
    "orders.apps.OrdersConfig",
]

# -------------------------
# Middlewares
# -------------------------
MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",          # antes de CommonMiddleware
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",     # WhiteNoise logo após Security
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "storefront.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        # Templates de e-mail ficam em orders/templates/emails/*
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "storefront.wsgi.application"

# -------------------------
# Banco de dados (prod/dev)
# -------------------------
DATABASES = {
    "default": dj_database_url.config(
        default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}",
        conn_max_age=600,
        ssl_require=bool(os.getenv("RENDER", "")),
    )
}
# Transações longas nunca ficam penduradas: timeout tratado como rollback
DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "0"))
if DB_STATEMENT_TIMEOUT_MS and DATABASES["default"]["ENGINE"].endswith("postgresql"):
    DATABASES["default"].setdefault("OPTIONS", {})["options"] = (
        f"-c statement_timeout={DB_STATEMENT_TIMEOUT_MS}"
    )

# -------------------------
# Cache (códigos de rastreamento + rate limit)
# -------------------------
REDIS_URL = os.getenv("REDIS_URL", "")
if REDIS_URL:
    # Várias instâncias precisam enxergar os mesmos códigos
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": REDIS_URL,
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "storefront-orders",
        }
    }

# -------------------------
# Validações de senha (padrão)
# -------------------------
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# -------------------------
# Locale / Fuso horário
# -------------------------
LANGUAGE_CODE = "pt-br"
TIME_ZONE = "America/Sao_Paulo"
USE_I18N = True
USE_TZ = True

# -------------------------
# Arquivos estáticos
# -------------------------
STATIC_URL = "/static/"
STATIC_ROOT = os.path.join(BASE_DIR, "staticfiles")
STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    # Em produção use Manifest (compress + hash). Em dev, deixe default.
    "staticfiles": {
        "BACKEND": (
            "django.contrib.staticfiles.storage.StaticFilesStorage"
            if DEBUG
            else "whitenoise.storage.CompressedManifestStaticFilesStorage"
        )
    },
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -------------------------
# DRF (paginação + filtros + erros estruturados)
# -------------------------
REST_FRAMEWORK = {
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.PageNumberPagination",
    "PAGE_SIZE": 20,
    "DEFAULT_FILTER_BACKENDS": [
        "django_filters.rest_framework.DjangoFilterBackend",
        "rest_framework.filters.OrderingFilter",
    ],
    "EXCEPTION_HANDLER": "orders.exceptions.order_exception_handler",
}

# -------------------------
# CORS / CSRF
# -------------------------
_DEV_ORIGINS = [
    "http://localhost:5173", "http://127.0.0.1:5173",
]
_PROD_ORIGINS = _env_list("PUBLIC_ORIGINS", [])

CORS_ALLOWED_ORIGINS = _env_list("CORS_ALLOWED_ORIGINS", _PROD_ORIGINS + _DEV_ORIGINS)
CSRF_TRUSTED_ORIGINS = _env_list("CSRF_TRUSTED_ORIGINS", _PROD_ORIGINS + _DEV_ORIGINS)
CORS_ALLOW_CREDENTIALS = True  # necessário para enviar cookies de sessão/CSRF

# -------------------------
# Segurança (produção)
# -------------------------
if not DEBUG:
    SECURE_SSL_REDIRECT = _env_bool("SECURE_SSL_REDIRECT", "True")
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True
    SECURE_HSTS_SECONDS = 31536000
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_PRELOAD = True
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

# -------------------------
# E-mail (ENV)
# -------------------------
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend")
EMAIL_HOST = os.getenv("EMAIL_HOST", "localhost")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "25"))
EMAIL_HOST_USER = os.getenv("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = os.getenv("EMAIL_HOST_PASSWORD", "")
EMAIL_USE_SSL = _env_bool("EMAIL_USE_SSL")
EMAIL_USE_TLS = _env_bool("EMAIL_USE_TLS")
EMAIL_TIMEOUT = int(os.getenv("EMAIL_TIMEOUT", "30"))
DEFAULT_FROM_EMAIL = os.getenv("DEFAULT_FROM_EMAIL", "no-reply@storefront.local")

_notify = os.getenv("NOTIFY_NEW_ORDER_TO", "")
NOTIFY_NEW_ORDER_TO = [e.strip() for e in _notify.split(",") if e.strip()]

PUBLIC_FRONT_BASE = os.getenv("PUBLIC_FRONT_BASE", "http://127.0.0.1:5173")

# -------------------------
# Pedidos / rastreamento
# -------------------------
ORDER_NUMBER_PREFIX = os.getenv("ORDER_NUMBER_PREFIX", "ORD")
TRACKING_CODE_TTL_MINUTES = int(os.getenv("TRACKING_CODE_TTL_MINUTES", "15"))
TRACKING_CODE_LENGTH = int(os.getenv("TRACKING_CODE_LENGTH", "6"))
TRACKING_CODE_MAX_REQUESTS = int(os.getenv("TRACKING_CODE_MAX_REQUESTS", "3"))
TRACKING_CODE_WINDOW_SECONDS = int(os.getenv("TRACKING_CODE_WINDOW_SECONDS", "3600"))
TRACKING_CACHE_ALIAS = os.getenv("TRACKING_CACHE_ALIAS", "default")
# proxies na frente da app (Render = 1); 0 usa só REMOTE_ADDR
TRUSTED_PROXY_COUNT = int(os.getenv("TRUSTED_PROXY_COUNT", "0"))
DELIVERY_SWEEP_DAYS = int(os.getenv("DELIVERY_SWEEP_DAYS", "3"))
ESTIMATED_DELIVERY_DAYS = int(os.getenv("ESTIMATED_DELIVERY_DAYS", "5"))

# -------------------------
# Mercado Pago
# -------------------------
MP_ACCESS_TOKEN = os.getenv("MP_ACCESS_TOKEN", "")
MP_WEBHOOK_TEST_MODE = os.getenv("MP_WEBHOOK_TEST_MODE", "0") == "1"

# -------------------------
# Logging
# -------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "orders": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "django": {"handlers": ["console"], "level": os.getenv("DJANGO_LOG_LEVEL", "WARNING")},
    },
}
