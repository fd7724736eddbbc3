from django.contrib import admin
from django.urls import include, path

from ballots import views_auth, views_health

urlpatterns = [
    path("healthz", views_health.healthz, name="healthz"),
    path("readyz", views_health.readyz, name="readyz"),
    path("auth/csrf/", views_auth.csrf_token, name="auth-csrf"),
    path("auth/login/", views_auth.login, name="auth-login"),
    path("auth/logout/", views_auth.logout, name="auth-logout"),
    path("admin/", admin.site.urls),
    path("ballots/", include("ballots.urls")),
]
