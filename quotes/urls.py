from django.urls import path
from rest_framework.routers import DefaultRouter

from quotes.views import PaymentDetailView, PaymentProcessView, QuoteViewSet

router = DefaultRouter()
router.register(r"quotes", QuoteViewSet, basename="quote")

urlpatterns = router.urls + [
    path("payments/process/", PaymentProcessView.as_view(), name="payment_process"),
    path("payments/quote/<str:quote_id>/", PaymentDetailView.as_view(), name="payment_detail"),
]
