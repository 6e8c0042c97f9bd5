from rest_framework.routers import DefaultRouter

from contact.views import ContactMessageViewSet

router = DefaultRouter()
router.register(r"contact", ContactMessageViewSet, basename="contact-message")

urlpatterns = router.urls
