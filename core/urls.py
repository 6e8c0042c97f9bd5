from django.urls import path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenRefreshView

from core.views import (
    AdminProfileView,
    AdminSignupView,
    AuditLogViewSet,
    EmailOrUsernameTokenObtainPairView,
    email_health,
    healthz,
    readyz,
)

router = DefaultRouter()
router.register(r"admin/audit-logs", AuditLogViewSet, basename="audit-log")

urlpatterns = router.urls + [
    path("admin/auth/signup/", AdminSignupView.as_view(), name="admin_signup"),
    path("admin/auth/login/", EmailOrUsernameTokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("admin/auth/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("admin/auth/me/", AdminProfileView.as_view(), name="admin_profile"),
    path("healthz/", healthz, name="healthz"),
    path("readyz/", readyz, name="readyz"),
    path("health/email/", email_health, name="email_health"),
]
