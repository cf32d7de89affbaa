from django.contrib import admin

from .models import Booking, Car


@admin.register(Car)
class CarAdmin(admin.ModelAdmin):
    list_display = ("id", "brand", "model", "category", "price_per_day", "availability", "location")
    list_filter = ("category", "availability", "fuel_type", "transmission")
    search_fields = ("brand", "model", "location")


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "car", "pickup_date", "return_date", "total_price", "status", "payment_status")
    list_filter = ("status", "payment_status")
    readonly_fields = ("user", "car", "status", "pickup_date", "return_date", "total_price", "created_at", "updated_at")

    def has_delete_permission(self, request, obj=None):
        return False
