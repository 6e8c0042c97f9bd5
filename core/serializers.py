from rest_framework import serializers
from django.contrib.auth import get_user_model
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.tokens import RefreshToken

from core.models import AuditLog

User = get_user_model()

BLOCKED_SIGNUP_EMAIL_MARKERS = ("demo", "test")


class AdminSignupSerializer(serializers.ModelSerializer):
    name = serializers.CharField(write_only=True, max_length=150)
    password = serializers.CharField(write_only=True, min_length=8)

    class Meta:
        model = User
        fields = ["name", "email", "password"]
        extra_kwargs = {"email": {"required": True, "allow_blank": False}}

    def validate_email(self, value):
        normalized_email = value.strip().lower()
        if any(marker in normalized_email for marker in BLOCKED_SIGNUP_EMAIL_MARKERS):
            raise serializers.ValidationError("Demo/Test admin accounts are not allowed.")
        if User.objects.filter(email__iexact=normalized_email).exists():
            raise serializers.ValidationError("Admin already exists with this email.")
        return normalized_email

    def create(self, validated_data):
        first_name, _, last_name = validated_data["name"].strip().partition(" ")
        return User.objects.create_user(
            username=validated_data["email"],
            email=validated_data["email"],
            password=validated_data["password"],
            first_name=first_name,
            last_name=last_name,
            role=User.Role.ADMIN,
        )


class AdminProfileSerializer(serializers.ModelSerializer):
    name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ["id", "name", "email", "role"]
        read_only_fields = fields

    def get_name(self, obj):
        return obj.get_full_name() or obj.get_username()


def issue_tokens_for(user):
    refresh = EmailOrUsernameTokenObtainPairSerializer.get_token(user)
    return {"refresh": str(refresh), "access": str(refresh.access_token)}


class EmailOrUsernameTokenObtainPairSerializer(TokenObtainPairSerializer):
    @classmethod
    def get_token(cls, user) -> RefreshToken:
        token = super().get_token(user)
        token["role"] = getattr(user, "role", None)
        token["is_superuser"] = user.is_superuser
        token["is_staff"] = user.is_staff
        return token

    def validate(self, attrs):
        username = attrs.get("username", "")
        if username and "@" in username:
            user = User.objects.filter(email__iexact=username.strip()).first()
            if user is not None:
                attrs["username"] = user.get_username()
        data = super().validate(attrs)
        data["admin"] = AdminProfileSerializer(self.user).data
        return data


class AuditLogSerializer(serializers.ModelSerializer):
    actor_username = serializers.CharField(source="actor.username", read_only=True)

    class Meta:
        model = AuditLog
        fields = [
            "id",
            "actor",
            "actor_username",
            "action",
            "entity",
            "entity_id",
            "before_snapshot",
            "after_snapshot",
            "request_id",
            "created_at",
        ]
        read_only_fields = fields
