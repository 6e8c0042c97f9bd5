from django.db.models import Q
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission
from customers.models import Customer
from customers.serializers import ApprovedQuoteCustomerSerializer, CustomerSerializer
from customers.services import approved_quote_customers, create_customer, update_customer


class CustomerViewSet(viewsets.ModelViewSet):
    queryset = Customer.objects.all()
    serializer_class = CustomerSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "customers.view",
        "retrieve": "customers.view",
        "approved_quotes": "customers.view",
        "create": "customers.manage",
        "update": "customers.manage",
        "partial_update": "customers.manage",
        "destroy": "customers.delete",
    }

    def get_queryset(self):
        qs = self.queryset.order_by("-created_at")
        customer_status = self.request.query_params.get("status")
        search = (self.request.query_params.get("search") or self.request.query_params.get("q") or "").strip()

        if customer_status:
            qs = qs.filter(status=customer_status.strip().lower())
        if search:
            qs = qs.filter(
                Q(name__icontains=search)
                | Q(email__icontains=search)
                | Q(phone__icontains=search)
                | Q(company__icontains=search)
            )
        return qs

    def perform_create(self, serializer):
        serializer.instance = create_customer(serializer.validated_data)
        create_audit_log_from_request(
            self.request,
            action="customer.create",
            entity="customer",
            entity_id=serializer.instance.id,
            after_snapshot=CustomerSerializer(serializer.instance).data,
        )

    def perform_update(self, serializer):
        before = CustomerSerializer(serializer.instance).data
        update_customer(serializer.instance, serializer.validated_data)
        create_audit_log_from_request(
            self.request,
            action="customer.update",
            entity="customer",
            entity_id=serializer.instance.id,
            before_snapshot=before,
            after_snapshot=CustomerSerializer(serializer.instance).data,
        )

    def perform_destroy(self, instance):
        before = CustomerSerializer(instance).data
        entity_id = instance.id
        instance.delete()
        create_audit_log_from_request(
            self.request,
            action="customer.delete",
            entity="customer",
            entity_id=entity_id,
            before_snapshot=before,
        )

    @action(detail=False, methods=["get"], url_path="approved-quotes")
    def approved_quotes(self, request):
        rows = approved_quote_customers(search=request.query_params.get("search"))
        page = self.paginate_queryset(rows)
        if page is not None:
            return self.get_paginated_response(ApprovedQuoteCustomerSerializer(page, many=True).data)
        return Response(ApprovedQuoteCustomerSerializer(rows, many=True).data, status=status.HTTP_200_OK)
