from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework import serializers

from .models import Booking, Car
from .permissions import ROLE_ADMIN, ROLE_USER, role_of

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    name = serializers.CharField(source="first_name", read_only=True)
    role = serializers.SerializerMethodField()
    createdAt = serializers.DateTimeField(source="date_joined", read_only=True)

    class Meta:
        model = User
        fields = ["id", "name", "email", "role", "createdAt"]

    def get_role(self, obj):
        return role_of(obj)


class UserSummarySerializer(serializers.ModelSerializer):
    name = serializers.CharField(source="first_name", read_only=True)

    class Meta:
        model = User
        fields = ["id", "name", "email"]


class RegisterSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    password = serializers.CharField(min_length=6, write_only=True)

    def validate_email(self, value):
        value = value.lower()
        if User.objects.filter(username=value).exists():
            raise serializers.ValidationError("Email already exists")
        return value

    def create(self, validated):
        return User.objects.create_user(
            username=validated["email"],
            email=validated["email"],
            password=validated["password"],
            first_name=validated["name"],
        )


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)


class RoleSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=[ROLE_USER, ROLE_ADMIN])


class CarSerializer(serializers.ModelSerializer):
    pricePerDay = serializers.IntegerField(source="price_per_day", min_value=0)
    fuelType = serializers.ChoiceField(source="fuel_type", choices=Car.FuelType.choices, required=False)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = Car
        fields = [
            "id", "brand", "model", "category", "year", "pricePerDay", "features",
            "fuelType", "transmission", "seats", "availability", "location",
            "description", "createdAt",
        ]

    def validate_year(self, value):
        if value > timezone.localdate().year + 1:
            raise serializers.ValidationError("Year cannot be in the future")
        return value

    def validate_features(self, value):
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise serializers.ValidationError("Features must be a list of strings")
        return value


class CarSummarySerializer(serializers.ModelSerializer):
    pricePerDay = serializers.IntegerField(source="price_per_day", read_only=True)

    class Meta:
        model = Car
        fields = ["id", "brand", "model", "category", "pricePerDay", "location"]


class BookingSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)
    car = CarSummarySerializer(read_only=True)
    pickupLocation = serializers.CharField(source="pickup_location")
    pickupDate = serializers.DateField(source="pickup_date")
    returnDate = serializers.DateField(source="return_date")
    totalPrice = serializers.IntegerField(source="total_price")
    paymentStatus = serializers.CharField(source="payment_status")
    createdAt = serializers.DateTimeField(source="created_at")
    updatedAt = serializers.DateTimeField(source="updated_at")

    class Meta:
        model = Booking
        fields = [
            "id", "user", "car", "pickupLocation", "pickupDate", "returnDate",
            "totalPrice", "status", "paymentStatus", "notes", "createdAt", "updatedAt",
        ]
        read_only_fields = fields


class BookingCreateSerializer(serializers.Serializer):
    """Input for a new booking.

    Dates stay strings here; the lifecycle service parses them after it has
    checked the car, so a missing car is reported before a bad date.
    """
    car = serializers.IntegerField()
    pickupLocation = serializers.CharField(max_length=150)
    pickupDate = serializers.CharField()
    returnDate = serializers.CharField()
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class BookingUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Booking.Status.choices, required=False)
    paymentStatus = serializers.ChoiceField(choices=Booking.PaymentStatus.choices, required=False)
    pickupLocation = serializers.CharField(max_length=150, required=False)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True)

    def validate(self, data):
        if not data:
            raise serializers.ValidationError("Provide at least one of status, paymentStatus, pickupLocation, notes")
        return data

    def to_service_kwargs(self):
        data = self.validated_data
        return {
            "status": data.get("status"),
            "payment_status": data.get("paymentStatus"),
            "pickup_location": data.get("pickupLocation"),
            "notes": data.get("notes"),
        }
