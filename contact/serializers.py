from rest_framework import serializers

from contact.models import ContactMessage


class ContactMessageCreateSerializer(serializers.ModelSerializer):
    name = serializers.CharField(min_length=2, max_length=100)
    message = serializers.CharField(min_length=10, max_length=5000)

    class Meta:
        model = ContactMessage
        fields = ["name", "email", "phone", "message"]


class ContactMessageSerializer(serializers.ModelSerializer):
    class Meta:
        model = ContactMessage
        fields = ["id", "name", "email", "phone", "message", "status", "source", "meta", "created_at", "updated_at"]
        read_only_fields = ["id", "name", "email", "phone", "message", "source", "meta", "created_at", "updated_at"]
