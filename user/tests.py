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


class UserModelTests(TestCase):

    def test_create_user_normalizes_email(self):
        user = User.objects.create_user(email='ama@EXAMPLE.com', password='testpass', first_name='Ama')
        self.assertEqual(user.email, 'ama@example.com')
        self.assertTrue(user.check_password('testpass'))
        self.assertEqual(user.role, User.TENANT)
        self.assertFalse(user.is_staff_member)

    def test_create_user_requires_email(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(email='', password='testpass')

    def test_create_superuser(self):
        user = User.objects.create_superuser('admin@example.com', 'testpass')
        self.assertTrue(user.is_superuser)
        self.assertEqual(user.role, User.ADMIN)
        self.assertTrue(user.is_staff_member)


class UserAPITest(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(email='admin@example.com', password='testpass',
                                              first_name='Efua', role=User.ADMIN)
        self.manager = User.objects.create_user(email='manager@example.com', password='testpass',
                                                first_name='Kojo', role=User.MANAGER)
        self.tenant = User.objects.create_user(email='tenant@example.com', password='testpass', first_name='Ama')

    def test_login_returns_role(self):
        resp = self.client.post(reverse('user:token_obtain'),
                                {'email': 'tenant@example.com', 'password': 'testpass'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertIn('access', resp.data)
        self.assertEqual(resp.data['role'], User.TENANT)

    def test_profile_cannot_change_role(self):
        self.client.force_authenticate(self.tenant)
        resp = self.client.patch(reverse('user:user-profile'),
                                 {'phone': '0241234567', 'role': User.ADMIN}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.tenant.refresh_from_db()
        self.assertEqual(self.tenant.phone, '0241234567')
        self.assertEqual(self.tenant.role, User.TENANT)

    def test_tenant_cannot_list_users(self):
        self.client.force_authenticate(self.tenant)
        resp = self.client.get(reverse('user:users-list'))
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)

    def test_manager_creates_tenant_but_not_staff(self):
        self.client.force_authenticate(self.manager)
        resp = self.client.post(reverse('user:users-list'),
                                {'email': 'new@example.com', 'first_name': 'Yaw'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)

        resp = self.client.post(reverse('user:users-list'),
                                {'email': 'clerk@example.com', 'first_name': 'Abena', 'role': User.STAFF},
                                format='json')
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_admin_creates_staff(self):
        self.client.force_authenticate(self.admin)
        resp = self.client.post(reverse('user:users-list'),
                                {'email': 'clerk@example.com', 'first_name': 'Abena', 'role': User.STAFF,
                                 'password': 'secret1'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertTrue(User.objects.get(email='clerk@example.com').is_staff_member)

    def test_user_with_bookings_is_not_deleted(self):
        room = Room.objects.create(number='101', price_per_night='150.00')
        now = timezone.now()
        Booking.objects.create(user=self.tenant, room=room, check_in=now + timedelta(days=1),
                               check_out=now + timedelta(days=3), total_amount='300.00')
        self.client.force_authenticate(self.admin)

        resp = self.client.delete(reverse('user:users-detail', args=[self.tenant.pk]))
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Deactivate', resp.data['error'])
        self.assertTrue(User.objects.filter(pk=self.tenant.pk).exists())

    def test_user_without_bookings_is_deleted(self):
        self.client.force_authenticate(self.admin)
        resp = self.client.delete(reverse('user:users-detail', args=[self.tenant.pk]))
        self.assertEqual(resp.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(User.objects.filter(pk=self.tenant.pk).exists())
