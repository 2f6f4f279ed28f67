# storefront/urls.py: admin + API de pedidos
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse


def health(_request):
    return JsonResponse({"service": "Storefront Orders", "status": "healthy"})


urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/health", health),
    path("api/health/", health),
    path("api/", include("orders.urls")),
]
