from datetime import timedelta
from unittest.mock import patch, MagicMock

import requests
from django.contrib.auth import get_user_model
from django.core import mail
from django.test import TestCase, SimpleTestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from notifications.dispatcher import NotificationDispatcher
from notifications.exceptions import SMSDeliveryError
from notifications.models import Notification
from notifications.sms import MNotifyService
from reservation.models import Booking
from rooms.models import Room

User = get_user_model()


def gateway_response(body):
    response = MagicMock()
    response.json.return_value = body
    response.raise_for_status.return_value = None
    return response


class MNotifyServiceTests(SimpleTestCase):

    def setUp(self):
        self.service = MNotifyService(api_key='test-key', sender_id='Platinum', url='https://sms.example.com/quick')

    def test_clean_phone(self):
        self.assertEqual(MNotifyService.clean_phone('(024) 123-4567'), '0241234567')
        self.assertEqual(MNotifyService.clean_phone(None), '')

    @patch('notifications.sms.requests.post')
    def test_send_sms_posts_to_gateway(self, mock_post):
        mock_post.return_value = gateway_response({'status': 'success', 'code': '2000'})

        data = self.service.send_sms('024 123 4567', 'Hello')

        self.assertEqual(data['code'], '2000')
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], 'https://sms.example.com/quick')
        self.assertEqual(kwargs['params'], {'key': 'test-key'})
        self.assertEqual(kwargs['json']['recipient'], ['0241234567'])
        self.assertEqual(kwargs['json']['sender'], 'Platinum')
        self.assertEqual(kwargs['timeout'], 30)

    @patch('notifications.sms.requests.post')
    def test_gateway_rejection_raises(self, mock_post):
        mock_post.return_value = gateway_response({'status': 'error', 'code': '4003', 'message': 'Bad sender'})
        with self.assertRaisesMessage(SMSDeliveryError, 'Bad sender'):
            self.service.send_sms('0241234567', 'Hello')

    @patch('notifications.sms.requests.post')
    def test_transport_failure_raises(self, mock_post):
        mock_post.side_effect = requests.ConnectionError('down')
        with self.assertRaises(SMSDeliveryError):
            self.service.send_sms('0241234567', 'Hello')

    @patch('notifications.sms.requests.post')
    def test_missing_key_never_calls_gateway(self, mock_post):
        service = MNotifyService(api_key='')
        self.assertFalse(service.enabled)
        with self.assertRaises(SMSDeliveryError):
            service.send_sms('0241234567', 'Hello')
        mock_post.assert_not_called()


class FailingSMS:
    enabled = True

    def send_sms(self, recipient, message, sender_id=None):
        raise SMSDeliveryError('gateway down')


class DispatcherTests(TestCase):
    def setUp(self):
        self.tenant = User.objects.create_user(email='ama@example.com', password='testpass',
                                               first_name='Ama', last_name='Mensah', phone='0241234567')
        self.room = Room.objects.create(number='12', price_per_night=100)
        now = timezone.now()
        self.booking = Booking.objects.create(
            user=self.tenant, room=self.room, status=Booking.CHECKED_IN,
            check_in=now - timedelta(days=8), check_out=now + timedelta(days=2, hours=1),
        )

    def test_booking_created_sends_email_and_records(self):
        NotificationDispatcher(sms=FailingSMS()).notify_booking_created(self.booking)

        self.assertEqual(len(mail.outbox), 1)
        self.assertIn('Booking Confirmation', mail.outbox[0].subject)
        self.assertTrue(Notification.objects.filter(
            user=self.tenant, booking=self.booking, type=Notification.BOOKING_CONFIRMATION).exists())

    def test_stay_progress_collects_sms_errors(self):
        emails, sms, errors = NotificationDispatcher(sms=FailingSMS()).notify_stay_progress(
            self.booking, timezone.now())

        self.assertEqual((emails, sms), (1, 0))
        self.assertEqual(len(errors), 1)
        self.assertIn('2 days', mail.outbox[0].body)
        notification = Notification.objects.get(type=Notification.SEVENTY_FIVE_PERCENT_STAY)
        self.assertEqual(notification.status, Notification.SENT)

    @override_settings(ADMIN_PHONE='0200000000')
    def test_extension_sms_failures_are_logged(self):
        with self.assertLogs('notifications.dispatcher', level='ERROR') as logs:
            NotificationDispatcher(sms=FailingSMS()).notify_extension(self.booking, 1, 100, 'CASH')
        self.assertEqual(len(logs.output), 2)


@override_settings(CRON_SECRET_TOKEN='cron-secret')
class NotificationAPITest(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user = User.objects.create_user(email='ama@example.com', password='testpass', first_name='Ama')
        self.other = User.objects.create_user(email='yaw@example.com', password='testpass', first_name='Yaw')
        self.mine = Notification.objects.create(user=self.user, type=Notification.GENERAL_ANNOUNCEMENT,
                                                title='Water', message='Water off at noon')
        Notification.objects.create(user=self.user, type=Notification.GENERAL_ANNOUNCEMENT,
                                    title='Power', message='Power back')
        self.theirs = Notification.objects.create(user=self.other, type=Notification.GENERAL_ANNOUNCEMENT,
                                                  title='Other', message='Not yours')
        self.client.force_authenticate(self.user)

    def test_lists_only_own_notifications(self):
        resp = self.client.get(reverse('notification-list'))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        results = resp.data.get('results', resp.data)
        self.assertEqual(len(results), 2)

    def test_mark_read(self):
        resp = self.client.post(reverse('notification-mark-read', args=[self.mine.pk]))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertTrue(resp.data['is_read'])

        resp = self.client.post(reverse('notification-mark-read', args=[self.theirs.pk]))
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_mark_all_read(self):
        resp = self.client.post(reverse('notification-mark-all-read'))
        self.assertEqual(resp.data['updated'], 2)
        self.theirs.refresh_from_db()
        self.assertFalse(self.theirs.is_read)

    def test_stay_reminders_cron_requires_token(self):
        client = APIClient()
        url = reverse('cron-stay-reminders')
        self.assertEqual(client.post(url).status_code, status.HTTP_403_FORBIDDEN)
        resp = client.post(url, HTTP_AUTHORIZATION='Bearer wrong')
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)

        resp = client.post(url, HTTP_AUTHORIZATION='Bearer cron-secret')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertTrue(resp.data['success'])
        self.assertEqual(resp.data['results']['reminded'], 0)
