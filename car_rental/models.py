from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q


class CarQuerySet(models.QuerySet):
    def find_by_id(self, car_id):
        return self.filter(pk=car_id).first()

    def conditional_update(self, car_id, expected=None, **fields):
        """Apply ``fields`` to the car only while it still matches ``expected``.

        Runs as a single ``UPDATE ... WHERE`` statement, so two callers racing
        on the same expectation cannot both win. Returns True when a row was
        updated.
        """
        lookup = {"pk": car_id}
        lookup.update(expected or {})
        return self.filter(**lookup).update(**fields) == 1


class Car(models.Model):
    class Category(models.TextChoices):
        SEDAN = "Sedan"
        SUV = "SUV"
        HATCHBACK = "Hatchback"
        LUXURY = "Luxury"
        SPORTS = "Sports"
        ELECTRIC = "Electric"
        VAN = "Van"

    class FuelType(models.TextChoices):
        PETROL = "Petrol"
        DIESEL = "Diesel"
        ELECTRIC = "Electric"
        HYBRID = "Hybrid"

    class Transmission(models.TextChoices):
        MANUAL = "Manual"
        AUTOMATIC = "Automatic"

    brand = models.CharField(max_length=100)
    model = models.CharField(max_length=100)
    category = models.CharField(max_length=20, choices=Category.choices, default=Category.SEDAN)
    year = models.PositiveIntegerField(validators=[MinValueValidator(2000)])
    price_per_day = models.PositiveIntegerField(validators=[MinValueValidator(0)])
    features = models.JSONField(default=list, blank=True)
    fuel_type = models.CharField(max_length=20, choices=FuelType.choices, default=FuelType.PETROL)
    transmission = models.CharField(max_length=20, choices=Transmission.choices, default=Transmission.MANUAL)
    seats = models.PositiveIntegerField(validators=[MinValueValidator(2), MaxValueValidator(12)])
    availability = models.BooleanField(default=True)
    location = models.CharField(max_length=150)
    description = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = CarQuerySet.as_manager()

    def __str__(self):
        return f"{self.brand} {self.model}"


class BookingQuerySet(models.QuerySet):
    def active(self):
        return self.filter(status__in=Booking.ACTIVE_STATUSES)

    def overlapping(self, car, start, end, exclude=None):
        # closed intervals: a return on day N conflicts with a pickup on day N
        qs = self.active().filter(car=car, pickup_date__lte=end, return_date__gte=start)
        if exclude is not None:
            qs = qs.exclude(pk=exclude.pk)
        return qs

    def for_user(self, user):
        return self.filter(user=user)

    def with_related(self):
        return self.select_related("car", "user")

    def newest_first(self):
        return self.order_by("-created_at", "-pk")


class Booking(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending"
        CONFIRMED = "confirmed"
        COMPLETED = "completed"
        CANCELLED = "cancelled"

    class PaymentStatus(models.TextChoices):
        PENDING = "pending"
        PAID = "paid"
        REFUNDED = "refunded"

    ACTIVE_STATUSES = (Status.PENDING, Status.CONFIRMED)

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="bookings")
    car = models.ForeignKey(Car, on_delete=models.PROTECT, related_name="bookings")
    pickup_location = models.CharField(max_length=150)
    pickup_date = models.DateField()
    return_date = models.DateField()  # inclusive
    total_price = models.PositiveIntegerField(validators=[MinValueValidator(0)])
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    payment_status = models.CharField(max_length=10, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    notes = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BookingQuerySet.as_manager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["car"],
                condition=Q(status__in=["pending", "confirmed"]),
                name="one_active_booking_per_car",
            ),
        ]

    @property
    def is_active(self):
        return self.status in self.ACTIVE_STATUSES

    def __str__(self):
        return f"Booking {self.pk} ({self.status})"
