from django.contrib import admin
from django.urls import path, include


def health_check(request):
    from django.http import JsonResponse

    return JsonResponse({"status": "ok"})


urlpatterns = [
    path("admin/", admin.site.urls),
    path("healthz", health_check),
    path("pool/", include("stakepool.apps.pool.urls")),
    path("sync/", include("stakepool.apps.sync.urls")),
]
