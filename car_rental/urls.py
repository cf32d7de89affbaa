from rest_framework.routers import DefaultRouter
from car_rental.views import (
    AdminBookingViewSet,
    AdminUserViewSet,
    AuthViewSet,
    BookingViewSet,
    CarViewSet,
)

router = DefaultRouter(trailing_slash=False)
router.register(r'cars', CarViewSet)
router.register(r'bookings', BookingViewSet, basename='booking')
router.register(r'auth', AuthViewSet, basename='auth')
router.register(r'admin/users', AdminUserViewSet, basename='admin-user')
router.register(r'admin/bookings', AdminBookingViewSet, basename='admin-booking')

urlpatterns = router.urls
