from rest_framework import serializers

from quotes.models import Quote, QuoteItem, QuotePayment

EVENT_DATE_INPUT_FORMATS = ["iso-8601", "%Y-%m-%d"]


class QuoteItemInputSerializer(serializers.Serializer):
    # Quantity and price are coerced by the lifecycle manager, never rejected here.
    name = serializers.CharField(max_length=255, allow_blank=True, required=False, default="")
    quantity = serializers.JSONField(required=False, allow_null=True)
    price = serializers.JSONField(required=False, allow_null=True)


class QuoteSubmitSerializer(serializers.Serializer):
    customer_name = serializers.CharField(max_length=100)
    company = serializers.CharField(max_length=150, required=False, allow_blank=True, default="")
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=32)
    event_date = serializers.DateTimeField(input_formats=EVENT_DATE_INPUT_FORMATS)
    event_type = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")
    event_type_other = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    services = serializers.JSONField(required=False, allow_null=True)
    guest_count = serializers.JSONField(required=False, allow_null=True)
    location = serializers.CharField(max_length=255)
    items = QuoteItemInputSerializer(many=True, required=False, allow_empty=True, default=list)
    payment_method = serializers.CharField(max_length=8)
    notes = serializers.CharField(required=False, allow_blank=True, default="", trim_whitespace=False)


class QuoteUpdateSerializer(serializers.Serializer):
    customer_name = serializers.CharField(max_length=100, required=False)
    company = serializers.CharField(max_length=150, required=False, allow_blank=True)
    email = serializers.EmailField(required=False)
    phone = serializers.CharField(max_length=32, required=False)
    event_date = serializers.DateTimeField(input_formats=EVENT_DATE_INPUT_FORMATS, required=False)
    event_type = serializers.CharField(max_length=50, required=False, allow_blank=True)
    event_type_other = serializers.CharField(max_length=100, required=False, allow_blank=True)
    services = serializers.JSONField(required=False, allow_null=True)
    guest_count = serializers.JSONField(required=False, allow_null=True)
    location = serializers.CharField(max_length=255, required=False)
    items = QuoteItemInputSerializer(many=True, required=False, allow_empty=True)
    payment_method = serializers.CharField(max_length=8, required=False)
    payment_status = serializers.CharField(max_length=16, required=False)
    status = serializers.CharField(max_length=16, required=False)
    notes = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)


class QuoteStatusSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=32)


class QuotePaymentStatusSerializer(serializers.Serializer):
    payment_status = serializers.CharField(max_length=32)


class PaymentProcessSerializer(serializers.Serializer):
    quote_id = serializers.UUIDField()
    payment_method = serializers.CharField(max_length=8)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    reference = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")


class QuoteItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = QuoteItem
        fields = ["id", "name", "quantity", "price", "total"]
        read_only_fields = fields


class QuotePaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = QuotePayment
        fields = [
            "method",
            "status",
            "amount",
            "currency",
            "reference",
            "transaction_id",
            "receipt_url",
            "paid_at",
        ]
        read_only_fields = fields


class QuoteSerializer(serializers.ModelSerializer):
    items = QuoteItemSerializer(many=True, read_only=True)
    payment = serializers.SerializerMethodField()

    class Meta:
        model = Quote
        fields = [
            "id",
            "reference",
            "customer_name",
            "company",
            "email",
            "phone",
            "event_date",
            "event_type",
            "event_type_other",
            "services",
            "guest_count",
            "location",
            "items",
            "total_amount",
            "payment_method",
            "payment_status",
            "payment",
            "status",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_payment(self, obj):
        try:
            payment = obj.payment
        except QuotePayment.DoesNotExist:
            return None
        return QuotePaymentSerializer(payment).data


class PaymentDetailSerializer(serializers.Serializer):
    quote_id = serializers.UUIDField(source="id")
    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    status = serializers.CharField()
    payment_status = serializers.CharField()
    payment = serializers.SerializerMethodField()

    def get_payment(self, obj):
        return QuotePaymentSerializer(obj.payment).data
