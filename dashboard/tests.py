from datetime import timedelta

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from reservation.models import Booking
from rooms.models import Room

User = get_user_model()


class DashboardAPITest(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.staff = User.objects.create_user(email='staff@example.com', password='testpass',
                                              first_name='Kofi', role=User.STAFF)
        self.tenant = User.objects.create_user(email='tenant@example.com', password='testpass', first_name='Ama')
        self.client.force_authenticate(self.staff)
        self.now = timezone.now()

    def book(self, room, check_out, state=Booking.CHECKED_IN):
        return Booking.objects.create(user=self.tenant, room=room, status=state,
                                      check_in=self.now - timedelta(days=5), check_out=check_out)

    def test_checkout_status_counts(self):
        rooms = [Room.objects.create(number=str(n), price_per_night=100) for n in range(1, 6)]
        self.book(rooms[0], self.now - timedelta(hours=3))
        self.book(rooms[1], self.now + timedelta(hours=1), state=Booking.CONFIRMED)
        self.book(rooms[2], self.now + timedelta(days=4))
        self.book(rooms[3], self.now - timedelta(hours=1), state=Booking.CHECKED_OUT)
        self.book(rooms[4], self.now + timedelta(hours=1), state=Booking.PENDING)

        resp = self.client.get(reverse('dashboard:checkout-status'))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data['overdue_count'], 1)
        self.assertEqual(resp.data['upcoming_count'], 1)
        self.assertEqual(resp.data['total_critical'], 2)

    def test_occupancy_summary_reports_drift(self):
        occupied = Room.objects.create(number='1', price_per_night=100, status=Room.OCCUPIED)
        stale = Room.objects.create(number='2', price_per_night=100, status=Room.OCCUPIED)
        Room.objects.create(number='3', price_per_night=100)
        Room.objects.create(number='4', price_per_night=100, status=Room.MAINTENANCE)
        self.book(occupied, self.now + timedelta(days=2))

        resp = self.client.get(reverse('dashboard:occupancy'))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data['total_rooms'], 4)
        self.assertEqual(resp.data['status_counts'][Room.OCCUPIED], 2)
        self.assertEqual(resp.data['status_counts'][Room.MAINTENANCE], 1)
        self.assertEqual(resp.data['occupancy_rate'], 50.0)
        self.assertEqual(resp.data['drifted_rooms'], [stale.pk])

    def test_tenant_is_forbidden(self):
        self.client.force_authenticate(self.tenant)
        resp = self.client.get(reverse('dashboard:checkout-status'))
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)
