from django.contrib import admin
from django.urls import include, path
from compression import views

urlpatterns = [
    path("admin/", admin.site.urls),

    # Healthcheck (no auth)
    path("healthz", views.healthz, name="healthz"),

    # API
    path("api/v1/", include("compression.urls")),
]
