from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from quotes.serializers import (
    PaymentDetailSerializer,
    PaymentProcessSerializer,
    QuotePaymentStatusSerializer,
    QuoteSerializer,
    QuoteStatusSerializer,
    QuoteSubmitSerializer,
    QuoteUpdateSerializer,
)
from quotes.services import default_lifecycle_manager, page_window


def _quote_snapshot(quote):
    return {
        "reference": quote.reference,
        "status": quote.status,
        "payment_status": quote.payment_status,
        "total_amount": quote.total_amount,
        "event_date": quote.event_date,
    }


class QuoteViewSet(viewsets.GenericViewSet):
    serializer_class = QuoteSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "quotes.view",
        "retrieve": "quotes.view",
        "update": "quotes.manage",
        "partial_update": "quotes.manage",
        "destroy": "quotes.manage",
        "update_status": "quotes.manage",
        "update_payment_status": "quotes.manage",
    }

    def get_permissions(self):
        if self.action == "create":
            return [AllowAny()]
        return super().get_permissions()

    @property
    def lifecycle(self):
        return default_lifecycle_manager()

    def get_queryset(self):
        return self.lifecycle.query_quotes()

    def list(self, request):
        params = request.query_params
        page, limit = page_window(params.get("page"), params.get("page_size") or params.get("limit"))
        quotes, total = self.lifecycle.list_quotes(
            {
                "status": params.get("status"),
                "payment_status": params.get("payment_status"),
                "start_date": params.get("start_date"),
                "end_date": params.get("end_date"),
                "search": params.get("search") or params.get("q"),
            },
            page=page,
            limit=limit,
            sort_by=params.get("sort_by"),
            sort_order=params.get("sort_order"),
        )
        return self.paginator.get_window_response(
            request,
            QuoteSerializer(quotes, many=True).data,
            total=total,
            page=page,
            page_size=limit,
        )

    def create(self, request):
        serializer = QuoteSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        quote = self.lifecycle.submit_quote(serializer.validated_data)
        return Response(QuoteSerializer(quote).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        return Response(QuoteSerializer(self.lifecycle.get_quote(pk)).data)

    def update(self, request, pk=None, partial=False):
        serializer = QuoteUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        before = _quote_snapshot(self.lifecycle.get_quote(pk))
        quote = self.lifecycle.update_quote_fields(pk, serializer.validated_data)
        create_audit_log_from_request(
            request,
            action="quote.update",
            entity="quote",
            entity_id=quote.id,
            before_snapshot=before,
            after_snapshot=_quote_snapshot(quote),
        )
        return Response(QuoteSerializer(self.lifecycle.get_quote(quote.id)).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk, partial=True)

    def destroy(self, request, pk=None):
        quote = self.lifecycle.get_quote(pk)
        before = _quote_snapshot(quote)
        self.lifecycle.delete_quote(quote.id)
        create_audit_log_from_request(
            request,
            action="quote.delete",
            entity="quote",
            entity_id=quote.id,
            before_snapshot=before,
        )
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["patch"], url_path="status")
    def update_status(self, request, pk=None):
        serializer = QuoteStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        before = _quote_snapshot(self.lifecycle.get_quote(pk))
        quote = self.lifecycle.update_quote_status(pk, serializer.validated_data["status"])
        create_audit_log_from_request(
            request,
            action="quote.status_update",
            entity="quote",
            entity_id=quote.id,
            before_snapshot=before,
            after_snapshot=_quote_snapshot(quote),
        )
        return Response(QuoteSerializer(self.lifecycle.get_quote(quote.id)).data)

    @action(detail=True, methods=["patch"], url_path="payment-status")
    def update_payment_status(self, request, pk=None):
        serializer = QuotePaymentStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        before = _quote_snapshot(self.lifecycle.get_quote(pk))
        quote = self.lifecycle.update_payment_status(pk, serializer.validated_data["payment_status"])
        create_audit_log_from_request(
            request,
            action="quote.payment_status_update",
            entity="quote",
            entity_id=quote.id,
            before_snapshot=before,
            after_snapshot=_quote_snapshot(quote),
        )
        return Response(QuoteSerializer(self.lifecycle.get_quote(quote.id)).data)


class PaymentProcessView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = PaymentProcessSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        quote, payment = default_lifecycle_manager().process_payment(
            data["quote_id"],
            data["payment_method"],
            data["amount"],
            reference=data.get("reference") or None,
        )
        return Response(
            {
                "message": "Payment processed successfully",
                "quote_id": str(quote.id),
                "payment_status": payment.status,
                "transaction_id": payment.transaction_id,
                "receipt_url": payment.receipt_url or None,
            }
        )


class PaymentDetailView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, quote_id):
        manager = default_lifecycle_manager()
        manager.get_payment_details(quote_id)
        return Response(PaymentDetailSerializer(manager.get_quote(quote_id)).data)
