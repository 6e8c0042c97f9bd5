from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/v1/", include("core.urls")),
    path("api/v1/", include("quotes.urls")),
    path("api/v1/", include("customers.urls")),
    path("api/v1/", include("contact.urls")),
]
