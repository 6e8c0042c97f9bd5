from django.db.models import Q
from rest_framework import status, viewsets
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from common.permissions import RoleCapabilityPermission
from contact.models import ContactMessage
from contact.serializers import ContactMessageCreateSerializer, ContactMessageSerializer
from contact.services import submit_contact_message


def _request_meta(request):
    return {
        "ip": request.headers.get("X-Forwarded-For") or request.META.get("REMOTE_ADDR", ""),
        "user_agent": request.headers.get("User-Agent", ""),
        "referrer": request.headers.get("Referer", ""),
    }


class ContactMessageViewSet(viewsets.ModelViewSet):
    queryset = ContactMessage.objects.all()
    serializer_class = ContactMessageSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "messages.manage",
        "retrieve": "messages.manage",
        "partial_update": "messages.manage",
        "destroy": "messages.manage",
    }
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]

    def get_permissions(self):
        if self.action == "create":
            return [AllowAny()]
        return super().get_permissions()

    def get_queryset(self):
        qs = self.queryset.order_by("-created_at")
        message_status = self.request.query_params.get("status")
        search = (self.request.query_params.get("q") or self.request.query_params.get("search") or "").strip()

        if message_status:
            qs = qs.filter(status=message_status)
        if search:
            qs = qs.filter(
                Q(name__icontains=search)
                | Q(email__icontains=search)
                | Q(phone__icontains=search)
                | Q(message__icontains=search)
            )
        return qs

    def create(self, request, *args, **kwargs):
        serializer = ContactMessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        message = submit_contact_message(serializer.validated_data, meta=_request_meta(request))
        return Response(
            {"message": "Message saved successfully", "id": str(message.id)},
            status=status.HTTP_201_CREATED,
        )
