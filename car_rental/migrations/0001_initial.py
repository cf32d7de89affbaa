import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Car",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("brand", models.CharField(max_length=100)),
                ("model", models.CharField(max_length=100)),
                (
                    "category",
                    models.CharField(
                        choices=[
                            ("Sedan", "Sedan"),
                            ("SUV", "Suv"),
                            ("Hatchback", "Hatchback"),
                            ("Luxury", "Luxury"),
                            ("Sports", "Sports"),
                            ("Electric", "Electric"),
                            ("Van", "Van"),
                        ],
                        default="Sedan",
                        max_length=20,
                    ),
                ),
                ("year", models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(2000)])),
                ("price_per_day", models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(0)])),
                ("features", models.JSONField(blank=True, default=list)),
                (
                    "fuel_type",
                    models.CharField(
                        choices=[("Petrol", "Petrol"), ("Diesel", "Diesel"), ("Electric", "Electric"), ("Hybrid", "Hybrid")],
                        default="Petrol",
                        max_length=20,
                    ),
                ),
                (
                    "transmission",
                    models.CharField(
                        choices=[("Manual", "Manual"), ("Automatic", "Automatic")],
                        default="Manual",
                        max_length=20,
                    ),
                ),
                (
                    "seats",
                    models.PositiveIntegerField(
                        validators=[
                            django.core.validators.MinValueValidator(2),
                            django.core.validators.MaxValueValidator(12),
                        ]
                    ),
                ),
                ("availability", models.BooleanField(default=True)),
                ("location", models.CharField(max_length=150)),
                ("description", models.CharField(blank=True, max_length=500)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("pickup_location", models.CharField(max_length=150)),
                ("pickup_date", models.DateField()),
                ("return_date", models.DateField()),
                ("total_price", models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(0)])),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("confirmed", "Confirmed"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="pending",
                        max_length=10,
                    ),
                ),
                (
                    "payment_status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("paid", "Paid"), ("refunded", "Refunded")],
                        default="pending",
                        max_length=10,
                    ),
                ),
                ("notes", models.CharField(blank=True, max_length=500)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "car",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="car_rental.car",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ["pending", "confirmed"])),
                        fields=("car",),
                        name="one_active_booking_per_car",
                    )
                ],
            },
        ),
    ]
