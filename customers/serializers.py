from rest_framework import serializers

from customers.models import Customer


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = [
            "id",
            "name",
            "email",
            "phone",
            "address",
            "company",
            "notes",
            "status",
            "booking_date",
            "total_bookings",
            "total_spent",
            "last_event_date",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "total_bookings", "total_spent", "last_event_date", "created_at", "updated_at"]
        extra_kwargs = {"email": {"required": True, "allow_blank": False}}

    def validate_email(self, value):
        return value.strip().lower()


class ApprovedQuoteCustomerSerializer(serializers.Serializer):
    email = serializers.EmailField()
    name = serializers.CharField()
    phone = serializers.CharField()
    company = serializers.CharField()
    total_quotes = serializers.IntegerField()
    total_spent = serializers.DecimalField(max_digits=14, decimal_places=2)
    first_quote_at = serializers.DateTimeField()
    last_event_date = serializers.DateTimeField()
