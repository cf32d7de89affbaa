import os
import subprocess
import sys
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, timedelta
from itertools import combinations
from unittest import mock

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import OperationalError, connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from . import services
from .authentication import issue_token
from .exceptions import (
    Forbidden, InvalidDateRange, NotFound, SlotConflict, Transient, Unavailable, envelope_exception_handler,
)
from .models import Booking, Car

User = get_user_model()


def make_user(name, staff=False, password=None):
    email = f"{name}@example.com"
    return User.objects.create_user(
        username=email, email=email, password=password, first_name=name.title(), is_staff=staff
    )


def make_car(**overrides):
    data = dict(
        brand="Toyota",
        model="Prius",
        category=Car.Category.SEDAN,
        year=2023,
        price_per_day=5000,
        seats=5,
        location="Colombo",
    )
    data.update(overrides)
    return Car.objects.create(**data)


def assert_active_intervals_disjoint(test, car):
    active = list(Booking.objects.active().filter(car=car))
    for a, b in combinations(active, 2):
        overlaps = a.pickup_date <= b.return_date and a.return_date >= b.pickup_date
        test.assertFalse(overlaps, f"Bookings {a.pk} and {b.pk} overlap on car {car.pk}")


class RaceConditionTestCase(TransactionTestCase):
    """Concurrent booking attempts against one car"""

    def setUp(self):
        self.car = make_car()
        self.users = [make_user(f"racer{i}") for i in range(5)]
        self.pickup = timezone.localdate() + timedelta(days=1)
        self.return_date = timezone.localdate() + timedelta(days=3)

    def _attempt(self, user, car=None):
        try:
            booking = services.create_booking(
                user,
                car_id=(car or self.car).pk,
                pickup_date=self.pickup.isoformat(),
                return_date=self.return_date.isoformat(),
                pickup_location="Colombo",
            )
            return {'success': True, 'booking_id': booking.pk}
        except Exception as e:
            return {'success': False, 'error': type(e).__name__}
        finally:
            connection.close()

    def test_concurrent_booking_attempts_race_condition(self):
        """Only one of several simultaneous requests for the same dates wins"""
        results = []
        with ThreadPoolExecutor(max_workers=len(self.users)) as executor:
            futures = [executor.submit(self._attempt, user) for user in self.users]
            for future in as_completed(futures):
                results.append(future.result())

        successful = [r for r in results if r['success']]
        self.assertEqual(len(successful), 1, f"Expected exactly 1 successful booking, got {results}")

        self.assertEqual(Booking.objects.active().filter(car=self.car).count(), 1)
        self.car.refresh_from_db()
        self.assertFalse(self.car.availability)
        assert_active_intervals_disjoint(self, self.car)

    def test_concurrent_create_and_cancel_rounds(self):
        """After rounds of racing creates and cancels, active bookings never overlap"""
        admin = make_user("admin", staff=True)

        for _ in range(3):
            with ThreadPoolExecutor(max_workers=len(self.users)) as executor:
                results = list(executor.map(self._attempt, self.users))

            winners = [r for r in results if r['success']]
            self.assertLessEqual(len(winners), 1)
            assert_active_intervals_disjoint(self, self.car)
            self.assertLessEqual(Booking.objects.active().filter(car=self.car).count(), 1)

            for winner in winners:
                services.cancel_booking(winner['booking_id'], admin)

        self.car.refresh_from_db()
        self.assertTrue(self.car.availability)
        self.assertEqual(Booking.objects.active().filter(car=self.car).count(), 0)


@mock.patch("django.utils.timezone.localdate", return_value=date(2024, 6, 1))
class BookingScenarioTestCase(TestCase):
    """The car X walkthrough: book, conflict, cancel, rebook"""

    def setUp(self):
        self.car = make_car(brand="Honda", model="Vezel", price_per_day=5000)
        self.first = make_user("first")
        self.second = make_user("second")

    def _book(self, user, pickup, ret):
        return services.create_booking(
            user, car_id=self.car.pk, pickup_date=pickup, return_date=ret, pickup_location="Galle"
        )

    def test_full_scenario(self, _today):
        booking = self._book(self.first, "2024-06-10", "2024-06-12")
        self.assertEqual(booking.total_price, 10000)
        self.assertEqual(booking.status, Booking.Status.PENDING)
        self.assertEqual(booking.payment_status, Booking.PaymentStatus.PENDING)
        self.car.refresh_from_db()
        self.assertFalse(self.car.availability)

        with self.assertRaises(SlotConflict):
            self._book(self.second, "2024-06-11", "2024-06-13")

        services.cancel_booking(booking.pk, self.first)
        self.car.refresh_from_db()
        self.assertTrue(self.car.availability)

        rebooked = self._book(self.second, "2024-06-11", "2024-06-13")
        self.assertEqual(rebooked.user, self.second)
        self.assertEqual(rebooked.total_price, 10000)

    def test_admin_moves_pending_straight_to_completed(self, _today):
        admin = make_user("admin", staff=True)
        booking = self._book(self.first, "2024-06-10", "2024-06-12")

        updated = services.update_booking_status(booking.pk, admin, status=Booking.Status.COMPLETED)

        self.assertEqual(updated.status, Booking.Status.COMPLETED)
        self.assertEqual(updated.total_price, 10000)


class BookingCreationTestCase(TestCase):
    """Validation order, pricing and overlap rules of create_booking"""

    def setUp(self):
        self.car = make_car(price_per_day=4500)
        self.user = make_user("renter")
        self.today = timezone.localdate()

    def _book(self, pickup, ret, car_id=None, user=None):
        return services.create_booking(
            user or self.user,
            car_id=car_id if car_id is not None else self.car.pk,
            pickup_date=pickup,
            return_date=ret,
            pickup_location="Kandy",
            notes="Child seat please",
        )

    def _days(self, n):
        return (self.today + timedelta(days=n)).isoformat()

    def test_total_price_matches_days_times_rate(self):
        """totalPrice == days * pricePerDay for a range of durations"""
        for days in (0, 1, 2, 7, 30):
            with self.subTest(days=days):
                car = make_car(price_per_day=4500)
                booking = self._book(self._days(1), self._days(1 + days), car_id=car.pk)
                self.assertEqual(booking.total_price, days * 4500)

    def test_missing_car_is_reported_before_bad_dates(self):
        with self.assertRaises(NotFound):
            self._book("not-a-date", "also-not", car_id=999999)

    def test_unavailable_car_without_bookings(self):
        self.car.availability = False
        self.car.save()
        with self.assertRaises(Unavailable):
            self._book(self._days(1), self._days(2))

    def test_invalid_date_ranges(self):
        scenarios = [
            (self._days(-1), self._days(2), 'pickup in the past'),
            (self._days(3), self._days(2), 'return before pickup'),
            ("2024-13-40", self._days(2), 'malformed pickup'),
            (self._days(1), "", 'empty return'),
        ]
        for pickup, ret, description in scenarios:
            with self.subTest(scenario=description):
                with self.assertRaises(InvalidDateRange):
                    self._book(pickup, ret)
        self.car.refresh_from_db()
        self.assertTrue(self.car.availability)
        self.assertFalse(Booking.objects.exists())

    def test_pickup_today_is_allowed(self):
        booking = self._book(self._days(0), self._days(0))
        self.assertEqual(booking.pickup_date, self.today)
        self.assertEqual(booking.total_price, 0)

    def test_iso_datetime_keeps_calendar_date(self):
        pickup = self.today + timedelta(days=2)
        booking = self._book(f"{pickup.isoformat()}T00:00:00.000Z", f"{pickup.isoformat()}T23:30:00-05:00")
        self.assertEqual(booking.pickup_date, pickup)
        self.assertEqual(booking.return_date, pickup)

    def test_touching_endpoints_conflict(self):
        """A return on day N and a pickup on day N overlap"""
        existing = self._book(self._days(1), self._days(3))
        Car.objects.conditional_update(self.car.pk, availability=True)  # admin override

        with self.assertRaises(SlotConflict) as ctx:
            self._book(self._days(3), self._days(5), user=make_user("other"))
        self.assertEqual(str(ctx.exception.detail), "Car is already booked for the selected dates")
        self.assertEqual(Booking.objects.active().filter(car=self.car).get(), existing)

    def test_overlap_query_uses_closed_intervals(self):
        self._book(self._days(1), self._days(3))
        day = self.today + timedelta(days=3)
        scenarios = [
            (day, day + timedelta(days=2), True, 'pickup on the return day'),
            (day - timedelta(days=4), day - timedelta(days=2), True, 'return on the pickup day'),
            (day + timedelta(days=1), day + timedelta(days=3), False, 'pickup the day after return'),
            (day - timedelta(days=5), day - timedelta(days=3), False, 'return the day before pickup'),
        ]
        for start, end, expected, description in scenarios:
            with self.subTest(scenario=description):
                self.assertEqual(Booking.objects.overlapping(self.car, start, end).exists(), expected)

    def test_unavailable_car_with_invalid_dates(self):
        """Past or reversed dates on a held car are not reported as a slot conflict"""
        self._book(self._days(1), self._days(3))
        for pickup, ret in ((self._days(-1), self._days(2)), (self._days(3), self._days(1))):
            with self.subTest(pickup=pickup, ret=ret):
                with self.assertRaises(Unavailable):
                    self._book(pickup, ret, user=make_user(f"late{pickup}"))

    def test_one_active_booking_per_car_even_without_overlap(self):
        self._book(self._days(1), self._days(3))
        Car.objects.conditional_update(self.car.pk, availability=True)

        with self.assertRaises(SlotConflict):
            self._book(self._days(10), self._days(12), user=make_user("other"))
        self.assertEqual(Booking.objects.active().filter(car=self.car).count(), 1)

    def test_cancelled_booking_does_not_block(self):
        Booking.objects.create(
            user=make_user("old"),
            car=self.car,
            pickup_location="Kandy",
            pickup_date=self.today + timedelta(days=1),
            return_date=self.today + timedelta(days=5),
            total_price=18000,
            status=Booking.Status.CANCELLED,
        )
        booking = self._book(self._days(2), self._days(4))
        self.assertEqual(booking.status, Booking.Status.PENDING)

    def test_user_bookings_newest_first(self):
        cars = [make_car() for _ in range(3)]
        created = [self._book(self._days(1), self._days(2), car_id=car.pk) for car in cars]
        foreign = self._book(
            self._days(1), self._days(2), car_id=make_car().pk, user=make_user("someone")
        )

        bookings = services.get_user_bookings(self.user)

        self.assertEqual([b.pk for b in bookings], [b.pk for b in reversed(created)])
        self.assertNotIn(foreign.pk, [b.pk for b in bookings])


class BookingStatusTestCase(TestCase):
    """Status changes, cancellation and the access policy"""

    def setUp(self):
        self.car = make_car(price_per_day=8500)
        self.owner = make_user("owner")
        self.stranger = make_user("stranger")
        self.admin = make_user("admin", staff=True)
        today = timezone.localdate()
        self.booking = services.create_booking(
            self.owner,
            car_id=self.car.pk,
            pickup_date=today + timedelta(days=1),
            return_date=today + timedelta(days=4),
            pickup_location="Colombo",
        )

    def test_cancel_releases_car(self):
        cancelled = services.cancel_booking(self.booking.pk, self.owner)
        self.assertEqual(cancelled.status, Booking.Status.CANCELLED)
        self.car.refresh_from_db()
        self.assertTrue(self.car.availability)

    def test_cancel_is_idempotent(self):
        services.cancel_booking(self.booking.pk, self.owner)
        again = services.cancel_booking(self.booking.pk, self.admin)
        self.assertEqual(again.status, Booking.Status.CANCELLED)
        self.car.refresh_from_db()
        self.assertTrue(self.car.availability)

    def test_stranger_is_forbidden(self):
        operations = {
            'get': lambda: services.get_booking(self.booking.pk, self.stranger),
            'update': lambda: services.update_booking_status(
                self.booking.pk, self.stranger, status=Booking.Status.CONFIRMED
            ),
            'cancel': lambda: services.cancel_booking(self.booking.pk, self.stranger),
        }
        for name, operation in operations.items():
            with self.subTest(operation=name):
                with self.assertRaises(Forbidden):
                    operation()
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.PENDING)

    def test_owner_and_admin_can_read(self):
        for actor in (self.owner, self.admin):
            with self.subTest(actor=actor.username):
                self.assertEqual(services.get_booking(self.booking.pk, actor).pk, self.booking.pk)

    def test_missing_booking(self):
        for operation in (services.get_booking, services.update_booking_status, services.cancel_booking):
            with self.subTest(operation=operation.__name__):
                with self.assertRaises(NotFound):
                    operation(424242, self.admin)

    def test_any_status_order_is_accepted(self):
        """No transition order is enforced"""
        for new_status in (Booking.Status.CONFIRMED, Booking.Status.PENDING, Booking.Status.COMPLETED):
            with self.subTest(status=new_status):
                updated = services.update_booking_status(self.booking.pk, self.admin, status=new_status)
                self.assertEqual(updated.status, new_status)

    def test_total_price_frozen_across_updates(self):
        Car.objects.filter(pk=self.car.pk).update(price_per_day=99999)
        updated = services.update_booking_status(
            self.booking.pk, self.admin, status=Booking.Status.CONFIRMED,
            payment_status=Booking.PaymentStatus.PAID,
        )
        self.assertEqual(updated.total_price, 3 * 8500)
        self.assertEqual(updated.payment_status, Booking.PaymentStatus.PAID)

    def test_completing_releases_and_reopening_reclaims(self):
        services.update_booking_status(self.booking.pk, self.admin, status=Booking.Status.COMPLETED)
        self.car.refresh_from_db()
        self.assertTrue(self.car.availability)

        services.update_booking_status(self.booking.pk, self.admin, status=Booking.Status.PENDING)
        self.car.refresh_from_db()
        self.assertFalse(self.car.availability)

    def test_reactivation_conflicts_with_new_active_booking(self):
        services.cancel_booking(self.booking.pk, self.owner)
        today = timezone.localdate()
        services.create_booking(
            self.stranger,
            car_id=self.car.pk,
            pickup_date=today + timedelta(days=2),
            return_date=today + timedelta(days=6),
            pickup_location="Colombo",
        )

        with self.assertRaises(SlotConflict):
            services.update_booking_status(self.booking.pk, self.owner, status=Booking.Status.PENDING)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.Status.CANCELLED)
        assert_active_intervals_disjoint(self, self.car)

    def test_immutable_fields_untouched_by_update(self):
        updated = services.update_booking_status(
            self.booking.pk, self.owner, pickup_location="Airport", notes="Late arrival"
        )
        self.assertEqual(updated.pickup_location, "Airport")
        self.assertEqual(updated.notes, "Late arrival")
        self.assertEqual(updated.pickup_date, self.booking.pickup_date)
        self.assertEqual(updated.car_id, self.car.pk)
        self.assertEqual(updated.user_id, self.owner.pk)


class BookingApiTestCase(APITestCase):
    """HTTP surface of /api/bookings"""

    def setUp(self):
        self.car = make_car(price_per_day=5000)
        self.user = make_user("alice")
        self.other = make_user("bob")
        self.admin = make_user("admin", staff=True)
        today = timezone.localdate()
        self.pickup = (today + timedelta(days=1)).isoformat()
        self.return_date = (today + timedelta(days=3)).isoformat()
        self.client.force_authenticate(self.user)

    def _create(self, **overrides):
        payload = {
            'car': self.car.pk,
            'pickupLocation': 'Colombo',
            'pickupDate': self.pickup,
            'returnDate': self.return_date,
            'notes': 'GPS needed',
        }
        payload.update(overrides)
        return self.client.post('/api/bookings', payload, format='json')

    def test_create_booking(self):
        response = self._create()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['message'], 'Booking created successfully')
        data = response.data['data']
        self.assertEqual(data['totalPrice'], 10000)
        self.assertEqual(data['status'], 'pending')
        self.assertEqual(data['paymentStatus'], 'pending')
        self.assertEqual(data['car']['id'], self.car.pk)
        self.assertEqual(data['car']['pricePerDay'], 5000)
        self.assertEqual(data['user']['email'], 'alice@example.com')
        self.assertEqual(data['pickupDate'], self.pickup)

    def test_create_errors(self):
        self.assertEqual(self._create().status_code, status.HTTP_201_CREATED)
        spare = make_car()
        scenarios = [
            ({'car': 999999}, status.HTTP_404_NOT_FOUND, 'Car not found'),
            ({}, status.HTTP_400_BAD_REQUEST, 'Car is already booked for the selected dates'),
            ({'car': spare.pk, 'returnDate': '2000-01-01'}, status.HTTP_400_BAD_REQUEST,
             'Return date must be equal to or after pickup date'),
            ({'car': spare.pk, 'pickupLocation': ''}, status.HTTP_400_BAD_REQUEST, None),
        ]
        for overrides, expected_status, message in scenarios:
            with self.subTest(overrides=overrides):
                response = self._create(**overrides)
                self.assertEqual(response.status_code, expected_status)
                self.assertFalse(response.data['success'])
                if message:
                    self.assertEqual(response.data['message'], message)

    def test_unavailable_car(self):
        self.car.availability = False
        self.car.save()
        response = self._create()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Car is not available for booking')

    def test_list_only_own_bookings(self):
        self._create()
        self.client.force_authenticate(self.other)
        self._create(car=make_car().pk)

        response = self.client.get('/api/bookings')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['data'][0]['user']['email'], 'bob@example.com')

    def test_get_booking_access(self):
        booking_id = self._create().data['data']['id']
        url = f'/api/bookings/{booking_id}'

        self.client.force_authenticate(self.other)
        response = self.client.get(url)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(response.data['success'])

        self.client.force_authenticate(self.admin)
        self.assertEqual(self.client.get(url).status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.get('/api/bookings/999999').status_code, status.HTTP_404_NOT_FOUND)

    def test_stranger_cannot_change_or_cancel(self):
        booking_id = self._create().data['data']['id']
        url = f'/api/bookings/{booking_id}'
        self.client.force_authenticate(self.other)

        requests = {
            'put': lambda: self.client.put(url, {'status': 'confirmed'}, format='json'),
            'delete': lambda: self.client.delete(url),
        }
        for method, send in requests.items():
            with self.subTest(method=method):
                response = send()
                self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
                self.assertFalse(response.data['success'])
        self.assertEqual(Booking.objects.get(pk=booking_id).status, Booking.Status.PENDING)

        self.client.force_authenticate(self.admin)
        response = self.client.put('/api/bookings/999999', {'status': 'confirmed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_update_status(self):
        booking_id = self._create().data['data']['id']
        response = self.client.put(f'/api/bookings/{booking_id}', {'status': 'confirmed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['status'], 'confirmed')

        response = self.client.put(f'/api/bookings/{booking_id}', {'status': 'teleported'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.put(f'/api/bookings/{booking_id}', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancel_via_delete(self):
        booking_id = self._create().data['data']['id']
        response = self.client.delete(f'/api/bookings/{booking_id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Booking cancelled successfully')
        self.assertEqual(response.data['data']['status'], 'cancelled')
        self.assertTrue(Booking.objects.filter(pk=booking_id).exists())
        self.car.refresh_from_db()
        self.assertTrue(self.car.availability)

    def test_requires_authentication(self):
        self.client.force_authenticate(None)
        response = self.client.get('/api/bookings')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])

    def test_store_failure_is_transient(self):
        with mock.patch.object(Booking.objects, 'create', side_effect=OperationalError('database is locked')):
            response = self._create()
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertFalse(response.data['success'])
        self.car.refresh_from_db()
        self.assertTrue(self.car.availability)


class CarCatalogTestCase(APITestCase):

    def setUp(self):
        self.sedan = make_car(brand="Toyota", model="Prius", price_per_day=8500, location="Colombo")
        self.suv = make_car(brand="Honda", model="Vezel", category=Car.Category.SUV,
                            price_per_day=15000, location="Galle", description="Hybrid crossover")
        self.van = make_car(brand="Toyota", model="KDH", category=Car.Category.VAN,
                            price_per_day=18000, location="Negombo", availability=False)
        self.admin = make_user("admin", staff=True)
        self.user = make_user("viewer")

    def _ids(self, query=''):
        response = self.client.get(f'/api/cars{query}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return {car['id'] for car in response.data['data']}

    def test_public_listing_filters(self):
        scenarios = [
            ('', {self.sedan.pk, self.suv.pk, self.van.pk}),
            ('?category=SUV', {self.suv.pk}),
            ('?minPrice=10000&maxPrice=16000', {self.suv.pk}),
            ('?availability=true', {self.sedan.pk, self.suv.pk}),
            ('?availability=false', {self.van.pk}),
            ('?availability=', {self.sedan.pk, self.suv.pk, self.van.pk}),
            ('?availability=maybe', {self.sedan.pk, self.suv.pk, self.van.pk}),
            ('?location=gal', {self.suv.pk}),
            ('?search=toyota', {self.sedan.pk, self.van.pk}),
            ('?search=crossover', {self.suv.pk}),
        ]
        for query, expected in scenarios:
            with self.subTest(query=query):
                self.assertEqual(self._ids(query), expected)

    def test_bad_price_filter(self):
        response = self.client.get('/api/cars?minPrice=cheap')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_get_car_and_categories(self):
        response = self.client.get(f'/api/cars/{self.suv.pk}')
        self.assertEqual(response.data['data']['pricePerDay'], 15000)
        self.assertEqual(self.client.get('/api/cars/999999').status_code, status.HTTP_404_NOT_FOUND)
        response = self.client.get('/api/cars/categories/all')
        self.assertIn('Electric', response.data['data'])

    def test_only_admin_mutates_catalog(self):
        payload = {
            'brand': 'Nissan', 'model': 'Leaf', 'category': 'Electric', 'year': 2023,
            'pricePerDay': 12000, 'seats': 5, 'location': 'Colombo', 'fuelType': 'Electric',
            'transmission': 'Automatic', 'features': ['Eco Mode'],
        }
        self.client.force_authenticate(self.user)
        self.assertEqual(self.client.post('/api/cars', payload, format='json').status_code,
                         status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        response = self.client.post('/api/cars', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['data']['availability'])

        bad = dict(payload, seats=20)
        self.assertEqual(self.client.post('/api/cars', bad, format='json').status_code,
                         status.HTTP_400_BAD_REQUEST)

    def test_admin_availability_override(self):
        self.client.force_authenticate(self.admin)
        response = self.client.patch(f'/api/cars/{self.van.pk}', {'availability': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.van.refresh_from_db()
        self.assertTrue(self.van.availability)

    def test_delete_car(self):
        Booking.objects.create(
            user=self.user, car=self.sedan, pickup_location="Colombo",
            pickup_date=timezone.localdate(), return_date=timezone.localdate(), total_price=0,
        )
        self.client.force_authenticate(self.admin)
        response = self.client.delete(f'/api/cars/{self.sedan.pk}')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(Car.objects.filter(pk=self.sedan.pk).exists())

        response = self.client.delete(f'/api/cars/{self.suv.pk}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Car.objects.filter(pk=self.suv.pk).exists())


class AuthTestCase(APITestCase):

    def test_register_login_and_me(self):
        response = self.client.post('/api/auth/register', {
            'name': 'Nimal Perera', 'email': 'Nimal@Example.com', 'password': 'secret123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['user']['role'], 'user')

        response = self.client.post('/api/auth/login', {
            'email': 'nimal@example.com', 'password': 'secret123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        token = response.data['data']['token']

        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        response = self.client.get('/api/auth/me')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['email'], 'nimal@example.com')

    def test_duplicate_registration(self):
        make_user("taken")
        response = self.client.post('/api/auth/register', {
            'name': 'Taken', 'email': 'taken@example.com', 'password': 'secret123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_wrong_password(self):
        make_user("kamal", password="right-password")
        response = self.client.post('/api/auth/login', {
            'email': 'kamal@example.com', 'password': 'wrong-password',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_bad_token_rejected(self):
        self.client.credentials(HTTP_AUTHORIZATION='Bearer not.a.token')
        response = self.client.get('/api/bookings')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['message'], 'Invalid or expired token')

    def test_token_for_deleted_user(self):
        user = make_user("ghost")
        token = issue_token(user)
        user.delete()
        self.client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        self.assertEqual(self.client.get('/api/bookings').status_code, status.HTTP_401_UNAUTHORIZED)

    def test_request_id_header(self):
        response = self.client.get('/health', HTTP_X_REQUEST_ID='abc-123')
        self.assertEqual(response['X-Request-Id'], 'abc-123')

    def test_malformed_request_id_is_replaced(self):
        for bad in ('x' * 65, 'abc 123', 'id\ninjected'):
            with self.subTest(request_id=bad):
                response = self.client.get('/health', HTTP_X_REQUEST_ID=bad)
                self.assertNotEqual(response['X-Request-Id'], bad)
                self.assertEqual(len(response['X-Request-Id']), 36)


class AdminBackOfficeTestCase(APITestCase):

    def setUp(self):
        self.admin = make_user("admin", staff=True)
        self.user = make_user("customer")
        self.car = make_car()
        self.booking = services.create_booking(
            self.user,
            car_id=self.car.pk,
            pickup_date=timezone.localdate() + timedelta(days=1),
            return_date=timezone.localdate() + timedelta(days=2),
            pickup_location="Colombo",
        )
        self.client.force_authenticate(self.admin)

    def test_user_cannot_reach_admin_routes(self):
        self.client.force_authenticate(self.user)
        for url in ('/api/admin/users', '/api/admin/bookings'):
            with self.subTest(url=url):
                self.assertEqual(self.client.get(url).status_code, status.HTTP_403_FORBIDDEN)

    def test_list_users_and_bookings(self):
        response = self.client.get('/api/admin/users')
        self.assertEqual(response.data['count'], 2)

        response = self.client.get('/api/admin/bookings')
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['data'][0]['user']['email'], 'customer@example.com')

    def test_update_role(self):
        response = self.client.put(f'/api/admin/users/{self.user.pk}/role', {'role': 'admin'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['role'], 'admin')
        self.user.refresh_from_db()
        self.assertTrue(self.user.is_staff)

        response = self.client.put(f'/api/admin/users/{self.user.pk}/role', {'role': 'owner'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Invalid role')

    def test_delete_user_guards(self):
        response = self.client.delete(f'/api/admin/users/{self.admin.pk}')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.delete(f'/api/admin/users/{self.user.pk}')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        idle = make_user("idle")
        response = self.client.delete(f'/api/admin/users/{idle.pk}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(User.objects.filter(pk=idle.pk).exists())

class ImportOrderTestCase(SimpleTestCase):
    """App modules load in a fresh interpreter whichever is imported first"""

    def test_modules_import_cleanly(self):
        for module in ('car_rental.exceptions', 'car_rental.authentication', 'rest_framework.views'):
            with self.subTest(module=module):
                code = (
                    "import django; django.setup(); "
                    f"import {module}; "
                    "from rest_framework.settings import api_settings; "
                    "api_settings.DEFAULT_AUTHENTICATION_CLASSES; api_settings.EXCEPTION_HANDLER"
                )
                env = dict(os.environ, DJANGO_SETTINGS_MODULE='car_rental_backend.settings')
                result = subprocess.run(
                    [sys.executable, '-c', code], cwd=settings.BASE_DIR, env=env,
                    capture_output=True, text=True,
                )
                self.assertEqual(result.returncode, 0, result.stderr)

    def test_database_error_renders_transient_envelope(self):
        response = envelope_exception_handler(OperationalError('disk I/O error'), {'view': None})
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data, {'success': False, 'message': Transient.default_detail})
