import logging

from django.contrib.auth import authenticate, get_user_model
from django.db.models import ProtectedError, Q
from django.http import JsonResponse
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import AuthenticationFailed, ValidationError
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from . import services
from .authentication import issue_token
from .exceptions import NotFound
from .models import Car
from .permissions import ROLE_ADMIN, IsAdmin, IsAdminOrReadOnly
from .serializers import (
    BookingCreateSerializer,
    BookingSerializer,
    BookingUpdateSerializer,
    CarSerializer,
    LoginSerializer,
    RegisterSerializer,
    RoleSerializer,
    UserSerializer,
)

logger = logging.getLogger(__name__)
User = get_user_model()


def envelope(data=None, message=None, status_code=status.HTTP_200_OK, **extra):
    body = {"success": True}
    if message:
        body["message"] = message
    body.update(extra)
    body["data"] = data
    return Response(body, status=status_code)


def failure(message, status_code=status.HTTP_400_BAD_REQUEST):
    return Response({"success": False, "message": message}, status=status_code)


def welcome(request):
    return JsonResponse({"message": "Welcome to the Car Rental API"})


def health_check(request):
    return JsonResponse({"status": "ok"})


class CarViewSet(viewsets.ModelViewSet):
    queryset = Car.objects.all()
    serializer_class = CarSerializer
    permission_classes = [IsAdminOrReadOnly]
    lookup_value_regex = "[0-9]+"

    def get_object(self):
        car = Car.objects.find_by_id(self.kwargs["pk"])
        if car is None:
            raise NotFound("Car not found")
        self.check_object_permissions(self.request, car)
        return car

    def list(self, request):
        """Catalog search with optional filters"""
        params = request.query_params
        cars = Car.objects.all()

        if params.get("category"):
            cars = cars.filter(category=params["category"])
        try:
            if params.get("minPrice"):
                cars = cars.filter(price_per_day__gte=int(params["minPrice"]))
            if params.get("maxPrice"):
                cars = cars.filter(price_per_day__lte=int(params["maxPrice"]))
        except ValueError:
            return failure("minPrice and maxPrice must be whole numbers")
        if params.get("location"):
            cars = cars.filter(location__icontains=params["location"])
        if params.get("availability") in ("true", "false"):
            cars = cars.filter(availability=params["availability"] == "true")
        if params.get("search"):
            term = params["search"]
            cars = cars.filter(
                Q(brand__icontains=term) | Q(model__icontains=term) | Q(description__icontains=term)
            )

        cars = cars.order_by("-created_at", "-pk")
        serializer = self.get_serializer(cars, many=True)
        return envelope(serializer.data, count=len(serializer.data))

    def retrieve(self, request, pk=None):
        return envelope(self.get_serializer(self.get_object()).data)

    def create(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        car = serializer.save()
        logger.info("Car %s created by admin %s", car.pk, request.user.pk)
        return envelope(serializer.data, "Car created successfully", status.HTTP_201_CREATED)

    def update(self, request, pk=None, partial=False):
        car = self.get_object()
        serializer = self.get_serializer(car, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        if "availability" in serializer.validated_data:
            # administrative override of the booking-maintained flag
            logger.warning("Admin %s set availability of car %s to %s",
                           request.user.pk, car.pk, serializer.validated_data["availability"])
        serializer.save()
        return envelope(serializer.data, "Car updated successfully")

    def partial_update(self, request, pk=None):
        return self.update(request, pk, partial=True)

    def destroy(self, request, pk=None):
        car = self.get_object()
        try:
            car.delete()
        except ProtectedError:
            return failure("Car has bookings and cannot be deleted")
        logger.info("Car %s deleted by admin %s", pk, request.user.pk)
        return envelope({}, "Car deleted successfully")

    @action(detail=False, methods=["get"], url_path="categories/all")
    def categories(self, request):
        return envelope(list(Car.Category.values))


class BookingViewSet(viewsets.ViewSet):
    lookup_value_regex = "[0-9]+"

    def create(self, request):
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        booking = services.create_booking(
            request.user,
            car_id=data["car"],
            pickup_date=data["pickupDate"],
            return_date=data["returnDate"],
            pickup_location=data["pickupLocation"],
            notes=data["notes"],
        )
        return envelope(BookingSerializer(booking).data, "Booking created successfully", status.HTTP_201_CREATED)

    def list(self, request):
        """Current user's bookings, newest first"""
        bookings = services.get_user_bookings(request.user)
        return envelope(BookingSerializer(bookings, many=True).data, count=len(bookings))

    def retrieve(self, request, pk=None):
        booking = services.get_booking(pk, request.user)
        return envelope(BookingSerializer(booking).data)

    def update(self, request, pk=None):
        serializer = BookingUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = services.update_booking_status(pk, request.user, **serializer.to_service_kwargs())
        return envelope(BookingSerializer(booking).data, "Booking updated successfully")

    def partial_update(self, request, pk=None):
        return self.update(request, pk)

    def destroy(self, request, pk=None):
        booking = services.cancel_booking(pk, request.user)
        return envelope(BookingSerializer(booking).data, "Booking cancelled successfully")


class AuthViewSet(viewsets.ViewSet):

    @action(detail=False, methods=["post"], permission_classes=[AllowAny])
    def register(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        logger.info("User %s registered", user.pk)
        return envelope(
            {"token": issue_token(user), "user": UserSerializer(user).data},
            "User registered successfully",
            status.HTTP_201_CREATED,
        )

    @action(detail=False, methods=["post"], permission_classes=[AllowAny])
    def login(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = authenticate(
            request,
            username=serializer.validated_data["email"].lower(),
            password=serializer.validated_data["password"],
        )
        if user is None:
            raise AuthenticationFailed("Invalid credentials")
        return envelope({"token": issue_token(user), "user": UserSerializer(user).data})

    @action(detail=False, methods=["get"])
    def me(self, request):
        return envelope(UserSerializer(request.user).data)


class AdminUserViewSet(viewsets.ViewSet):
    permission_classes = [IsAdmin]
    lookup_value_regex = "[0-9]+"

    def _get_user(self, pk):
        user = User.objects.filter(pk=pk).first()
        if user is None:
            raise NotFound("User not found")
        return user

    def list(self, request):
        users = User.objects.order_by("-date_joined", "-pk")
        data = UserSerializer(users, many=True).data
        return envelope(data, count=len(data))

    def destroy(self, request, pk=None):
        user = self._get_user(pk)
        if user.pk == request.user.pk:
            return failure("You cannot delete your own account")
        try:
            user.delete()
        except ProtectedError:
            return failure("User has bookings and cannot be deleted")
        logger.info("User %s deleted by admin %s", pk, request.user.pk)
        return envelope({}, "User deleted successfully")

    @action(detail=True, methods=["put"])
    def role(self, request, pk=None):
        serializer = RoleSerializer(data=request.data)
        if not serializer.is_valid():
            raise ValidationError("Invalid role")
        user = self._get_user(pk)
        user.is_staff = serializer.validated_data["role"] == ROLE_ADMIN
        user.save(update_fields=["is_staff"])
        logger.info("User %s role set to %s by admin %s", user.pk, serializer.validated_data["role"], request.user.pk)
        return envelope(UserSerializer(user).data, "User role updated successfully")


class AdminBookingViewSet(viewsets.ViewSet):
    permission_classes = [IsAdmin]

    def list(self, request):
        bookings = services.list_all_bookings()
        return envelope(BookingSerializer(bookings, many=True).data, count=len(bookings))
