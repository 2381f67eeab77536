from datetime import timedelta
from decimal import Decimal

from dateutil.relativedelta import relativedelta
from django.contrib.auth import get_user_model
from django.core import mail
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from rest_framework.test import APIClient
from rest_framework import status

from notifications.dispatcher import NotificationDispatcher
from notifications.models import Notification
from reservation.extension import BookingExtensionError, extend_booking
from reservation.models import Booking, Payment
from reservation.periods import add_periods, checkout_for
from reservation.scheduler import send_stay_reminders
from rooms.models import Block, Room
from rooms.reconciler import reconcile_room

User = get_user_model()


class FakeSMS:
    enabled = True

    def __init__(self):
        self.sent = []

    def send_sms(self, recipient, message, sender_id=None):
        self.sent.append((recipient, message))
        return {'status': 'success', 'code': '2000'}


class RecordingDispatcher(NotificationDispatcher):
    def __init__(self):
        super().__init__(sms=FakeSMS())
        self.extensions = []

    def notify_extension(self, booking, periods, additional_amount, payment_method):
        self.extensions.append((booking.pk, periods, additional_amount, payment_method))


class PeriodTests(TestCase):

    def test_add_periods_by_pricing_period(self):
        start = timezone.now()
        self.assertEqual(add_periods(start, 3, Room.NIGHT), start + timedelta(days=3))
        self.assertEqual(add_periods(start, 2, Room.WEEK), start + timedelta(weeks=2))
        self.assertEqual(add_periods(start, 1, Room.MONTH), start + relativedelta(months=1))
        self.assertEqual(add_periods(start, 1, Room.YEAR), start + relativedelta(years=1))
        self.assertEqual(add_periods(start, 2, 'FORTNIGHT'), start + timedelta(days=2))

    def test_checkout_is_at_standard_hour(self):
        check_in = timezone.now()
        check_out = timezone.localtime(checkout_for(check_in, 2, Room.NIGHT))
        self.assertEqual(check_out.date(), timezone.localtime(check_in + timedelta(days=2)).date())
        self.assertEqual((check_out.hour, check_out.minute), (11, 0))


class BookingAPITest(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.staff = User.objects.create_user(email='staff@example.com', password='testpass',
                                              first_name='Kofi', role=User.STAFF)
        self.tenant = User.objects.create_user(email='tenant@example.com', password='testpass',
                                               first_name='Ama', last_name='Mensah')
        self.other = User.objects.create_user(email='other@example.com', password='testpass', first_name='Yaw')
        self.block = Block.objects.create(name='A')
        self.room = Room.objects.create(number='101', block=self.block, capacity=2,
                                        price_per_night=Decimal('150.00'), pricing_period=Room.NIGHT)
        self.client.force_authenticate(self.staff)

    def create_booking(self, check_in, periods=2, room=None, user=None):
        return self.client.post(reverse('booking-list'), {
            'user': (user or self.tenant).pk,
            'room': (room or self.room).pk,
            'check_in': check_in.isoformat(),
            'number_of_periods': periods,
            'guests': 1,
        }, format='json')

    def test_create_booking_computes_stay_and_occupies_room(self):
        check_in = timezone.now() - timedelta(hours=1)
        resp = self.create_booking(check_in, periods=2)
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED, resp.data)
        self.assertEqual(resp.data['status'], Booking.PENDING)
        self.assertEqual(Decimal(resp.data['total_amount']), Decimal('300.00'))

        booking = Booking.objects.get(pk=resp.data['id'])
        self.assertEqual(booking.check_out, checkout_for(check_in, 2, Room.NIGHT))
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.OCCUPIED)

    def test_create_booking_sends_confirmation_on_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            resp = self.create_booking(timezone.now() + timedelta(days=1))
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn('tenant@example.com', mail.outbox[0].to)
        self.assertTrue(Notification.objects.filter(
            booking_id=resp.data['id'], type=Notification.BOOKING_CONFIRMATION).exists())

    def test_future_booking_leaves_room_available(self):
        resp = self.create_booking(timezone.now() + timedelta(days=3))
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.AVAILABLE)

    def test_overlapping_booking_is_rejected(self):
        start = timezone.now() + timedelta(days=1)
        self.assertEqual(self.create_booking(start, periods=3).status_code, status.HTTP_201_CREATED)
        resp = self.create_booking(start + timedelta(days=1), user=self.other)
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_back_to_back_booking_is_allowed(self):
        first = self.create_booking(timezone.now() + timedelta(days=1), periods=2)
        check_out = Booking.objects.get(pk=first.data['id']).check_out
        resp = self.create_booking(check_out, user=self.other)
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED, resp.data)

    def test_overstaying_guest_blocks_new_booking(self):
        now = timezone.now()
        Booking.objects.create(user=self.other, room=self.room, status=Booking.CHECKED_IN,
                               check_in=now - timedelta(days=5), check_out=now - timedelta(days=1))
        self.assertEqual(reconcile_room(self.room.pk), Room.OCCUPIED)

        resp = self.create_booking(now + timedelta(hours=1))
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Booking.objects.filter(user=self.tenant).count(), 0)

    def test_checked_out_guest_frees_dates(self):
        now = timezone.now()
        Booking.objects.create(user=self.other, room=self.room, status=Booking.CHECKED_OUT,
                               check_in=now - timedelta(days=5), check_out=now - timedelta(days=1))
        self.assertEqual(self.create_booking(now + timedelta(hours=1)).status_code, status.HTTP_201_CREATED)

    def test_cancelled_booking_does_not_block_dates(self):
        start = timezone.now() + timedelta(days=1)
        first = self.create_booking(start)
        Booking.objects.filter(pk=first.data['id']).update(status=Booking.CANCELLED)
        self.assertEqual(self.create_booking(start, user=self.other).status_code, status.HTTP_201_CREATED)

    def test_room_under_maintenance_cannot_be_booked(self):
        Room.objects.filter(pk=self.room.pk).update(status=Room.MAINTENANCE)
        resp = self.create_booking(timezone.now() + timedelta(days=1))
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_tenant_cannot_create_and_sees_only_own(self):
        self.create_booking(timezone.now() + timedelta(days=1))
        self.create_booking(timezone.now() + timedelta(days=10), user=self.other)

        self.client.force_authenticate(self.tenant)
        resp = self.create_booking(timezone.now() + timedelta(days=20))
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)

        resp = self.client.get(reverse('booking-list'))
        results = resp.data.get('results', resp.data)
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0]['tenant_details']['email'], 'tenant@example.com')

    def test_lifecycle_transitions_reconcile_room(self):
        resp = self.create_booking(timezone.now() + timedelta(days=3))
        pk = resp.data['id']

        resp = self.client.post(reverse('booking-confirm', args=[pk]))
        self.assertEqual(resp.data['booking']['status'], Booking.CONFIRMED)
        self.assertEqual(resp.data['room_status'], Room.AVAILABLE)

        # an early arrival occupies the room even before the planned check-in
        resp = self.client.post(reverse('booking-check-in', args=[pk]))
        self.assertEqual(resp.data['booking']['status'], Booking.CHECKED_IN)
        self.assertEqual(resp.data['room_status'], Room.OCCUPIED)
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.OCCUPIED)

        resp = self.client.post(reverse('booking-check-out', args=[pk]))
        self.assertEqual(resp.data['room_status'], Room.AVAILABLE)
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.AVAILABLE)

    def test_invalid_transition_is_rejected(self):
        resp = self.create_booking(timezone.now() + timedelta(days=3))
        resp = self.client.post(reverse('booking-check-out', args=[resp.data['id']]))
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancel_frees_room(self):
        resp = self.create_booking(timezone.now() - timedelta(hours=1))
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.OCCUPIED)
        self.client.post(reverse('booking-cancel', args=[resp.data['id']]))
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.AVAILABLE)

    def test_moving_booking_reconciles_both_rooms(self):
        other_room = Room.objects.create(number='102', block=self.block, capacity=2, price_per_night=100)
        resp = self.create_booking(timezone.now() - timedelta(hours=1))
        resp = self.client.patch(reverse('booking-detail', args=[resp.data['id']]),
                                 {'room': other_room.pk}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.data)
        self.room.refresh_from_db()
        other_room.refresh_from_db()
        self.assertEqual(self.room.status, Room.AVAILABLE)
        self.assertEqual(other_room.status, Room.OCCUPIED)

    def test_delete_only_pending_or_cancelled(self):
        resp = self.create_booking(timezone.now() - timedelta(hours=1))
        pk = resp.data['id']
        self.client.post(reverse('booking-check-in', args=[pk]))
        self.assertEqual(self.client.delete(reverse('booking-detail', args=[pk])).status_code,
                         status.HTTP_400_BAD_REQUEST)

        resp = self.create_booking(timezone.now() + timedelta(days=5), user=self.other)
        self.assertEqual(self.client.delete(reverse('booking-detail', args=[resp.data['id']])).status_code,
                         status.HTTP_204_NO_CONTENT)

    def test_extend_endpoint(self):
        resp = self.create_booking(timezone.now() - timedelta(hours=1), periods=2)
        pk = resp.data['id']
        self.client.post(reverse('booking-check-in', args=[pk]))
        old_checkout = Booking.objects.get(pk=pk).check_out

        resp = self.client.post(reverse('booking-extend', args=[pk]),
                                {'extension_periods': 1, 'payment_method': 'MOBILE_MONEY'}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_200_OK, resp.data)
        self.assertEqual(resp.data['additional_amount'], '150.00')
        booking = Booking.objects.get(pk=pk)
        self.assertEqual(booking.check_out, old_checkout + timedelta(days=1))
        self.assertEqual(booking.payment.method, 'MOBILE_MONEY')


class BookingExtensionTest(TestCase):
    def setUp(self):
        self.tenant = User.objects.create_user(email='tenant@example.com', password='testpass', first_name='Ama')
        self.room = Room.objects.create(number='201', price_per_night=Decimal('1000.00'),
                                        pricing_period=Room.MONTH)
        now = timezone.now()
        self.booking = Booking.objects.create(
            user=self.tenant, room=self.room, check_in=now - timedelta(days=10),
            check_out=now + timedelta(days=20), total_amount=Decimal('1000.00'),
            status=Booking.CHECKED_IN, special_requests='Ground floor please',
        )
        self.dispatcher = RecordingDispatcher()

    def test_extension_moves_checkout_and_accumulates_payment(self):
        original_checkout = self.booking.check_out
        booking, amount = extend_booking(self.booking, 2, reason='Contract renewed', dispatcher=self.dispatcher)

        self.assertEqual(amount, Decimal('2000.00'))
        self.assertEqual(booking.check_out, original_checkout + relativedelta(months=2))
        self.assertEqual(booking.total_amount, Decimal('3000.00'))
        self.assertIn('Ground floor please', booking.special_requests)
        self.assertIn('[EXTENSION]', booking.special_requests)
        self.assertIn('Contract renewed', booking.special_requests)
        self.assertEqual(Payment.objects.get(booking=booking).amount, Decimal('2000.00'))

        extend_booking(booking, 1, payment_method='BANK_TRANSFER', payment_account='GCB-001',
                       dispatcher=self.dispatcher)
        payment = Payment.objects.get(booking=booking)
        self.assertEqual(payment.amount, Decimal('3000.00'))
        self.assertEqual(payment.method, 'BANK_TRANSFER')
        self.assertIn('GCB-001', payment.notes)

        self.assertEqual(Notification.objects.filter(booking=booking, type=Notification.PAYMENT_RECEIVED).count(), 2)
        self.assertEqual(len(self.dispatcher.extensions), 2)

    def test_extension_keeps_room_occupied(self):
        extend_booking(self.booking, 1, dispatcher=self.dispatcher)
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.OCCUPIED)

    def test_only_confirmed_or_checked_in(self):
        for state in (Booking.PENDING, Booking.CANCELLED, Booking.CHECKED_OUT):
            Booking.objects.filter(pk=self.booking.pk).update(status=state)
            self.booking.refresh_from_db()
            with self.subTest(status=state), self.assertRaises(BookingExtensionError):
                extend_booking(self.booking, 1, dispatcher=self.dispatcher)
        self.assertFalse(Payment.objects.exists())

    def test_periods_must_be_positive(self):
        with self.assertRaises(BookingExtensionError):
            extend_booking(self.booking, 0, dispatcher=self.dispatcher)

    def test_booking_cancelled_after_loading_is_not_extended(self):
        loaded = Booking.objects.get(pk=self.booking.pk)
        original_checkout = loaded.check_out
        Booking.objects.filter(pk=self.booking.pk).update(status=Booking.CANCELLED)

        with self.assertRaises(BookingExtensionError):
            extend_booking(loaded, 1, dispatcher=self.dispatcher)

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.check_out, original_checkout)
        self.assertEqual(self.booking.total_amount, Decimal('1000.00'))
        self.assertFalse(Payment.objects.exists())
        self.assertEqual(self.dispatcher.extensions, [])


class PaymentRecordTest(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.staff = User.objects.create_user(email='staff@example.com', password='testpass',
                                              first_name='Kofi', role=User.STAFF)
        self.tenant = User.objects.create_user(email='tenant@example.com', password='testpass', first_name='Ama')
        self.room = Room.objects.create(number='401', price_per_night=Decimal('200.00'))
        now = timezone.now()
        self.booking = Booking.objects.create(
            user=self.tenant, room=self.room, check_in=now + timedelta(days=2),
            check_out=now + timedelta(days=4), total_amount=Decimal('400.00'),
        )
        self.client.force_authenticate(self.staff)

    def pay(self, amount='400.00', **extra):
        return self.client.post(reverse('booking-payment', args=[self.booking.pk]),
                                {'amount': amount, **extra}, format='json')

    def test_payment_completes_and_confirms_booking(self):
        resp = self.pay(method='MOBILE_MONEY', transaction_id='MM-123')
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED, resp.data)
        self.assertEqual(resp.data['status'], Payment.COMPLETED)
        self.assertEqual(resp.data['method'], 'MOBILE_MONEY')
        self.assertIsNotNone(resp.data['paid_at'])

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.status, Booking.CONFIRMED)
        self.assertTrue(Notification.objects.filter(
            booking=self.booking, type=Notification.PAYMENT_RECEIVED).exists())
        # confirmed but not yet started
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.AVAILABLE)

    def test_completed_payment_is_not_recorded_twice(self):
        self.pay()
        resp = self.pay()
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Payment.objects.get(booking=self.booking).amount, Decimal('400.00'))

    def test_pending_extension_payment_is_settled(self):
        pending = Payment.objects.create(booking=self.booking, amount=Decimal('200.00'),
                                         notes='Rent extension - 1 night(s)')
        resp = self.pay(amount='200.00')
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resp.data['id'], pending.pk)
        pending.refresh_from_db()
        self.assertEqual(pending.status, Payment.COMPLETED)
        self.assertIn('Rent extension', pending.notes)

    def test_cancelled_booking_cannot_be_paid(self):
        Booking.objects.filter(pk=self.booking.pk).update(status=Booking.CANCELLED)
        self.assertEqual(self.pay().status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Payment.objects.exists())

    def test_amount_must_be_positive(self):
        self.assertEqual(self.pay(amount='0').status_code, status.HTTP_400_BAD_REQUEST)

    def test_tenant_cannot_record_payment(self):
        self.client.force_authenticate(self.tenant)
        self.assertEqual(self.pay().status_code, status.HTTP_403_FORBIDDEN)


class StayReminderTest(TestCase):
    def setUp(self):
        self.now = timezone.now()
        self.staff = User.objects.create_user(email='manager@example.com', password='testpass',
                                              first_name='Esi', role=User.MANAGER)
        self.room = Room.objects.create(number='301', price_per_night=100)
        self.other_room = Room.objects.create(number='302', price_per_night=100)
        self.dispatcher = NotificationDispatcher(sms=FakeSMS())

    def make_booking(self, email, phone, days_in, days_left, state=Booking.CHECKED_IN, room=None):
        tenant = User.objects.create_user(email=email, password='testpass', first_name=email.split('@')[0],
                                          phone=phone)
        return Booking.objects.create(
            user=tenant, room=room or self.room, status=state,
            check_in=self.now - timedelta(days=days_in), check_out=self.now + timedelta(days=days_left),
        )

    def test_reminds_bookings_past_threshold_once(self):
        late = self.make_booking('late@example.com', '024 123 4567', days_in=8, days_left=2)
        self.make_booking('early@example.com', None, days_in=1, days_left=3, room=self.other_room)

        results = send_stay_reminders(now=self.now, dispatcher=self.dispatcher)
        self.assertEqual(results['processed'], 2)
        self.assertEqual(results['reminded'], 1)
        self.assertEqual(results['emails_sent'], 1)
        self.assertEqual(results['sms_sent'], 1)
        self.assertEqual(results['errors'], [])
        self.assertEqual(mail.outbox[0].to, ['late@example.com'])
        self.assertEqual(self.dispatcher.sms.sent[0][0], '024 123 4567')

        reminder = Notification.objects.get(booking=late, type=Notification.SEVENTY_FIVE_PERCENT_STAY)
        self.assertEqual(reminder.channel, Notification.EMAIL_SMS)
        summary = Notification.objects.get(user=self.staff, type=Notification.GENERAL_ANNOUNCEMENT)
        self.assertIn('Room 301', summary.message)

        again = send_stay_reminders(now=self.now, dispatcher=self.dispatcher)
        self.assertEqual(again['reminded'], 0)
        self.assertEqual(Notification.objects.filter(type=Notification.SEVENTY_FIVE_PERCENT_STAY).count(), 1)

    def test_ignores_cancelled_and_finished_stays(self):
        self.make_booking('gone@example.com', None, days_in=5, days_left=-1)
        self.make_booking('cancel@example.com', None, days_in=8, days_left=2, state=Booking.CANCELLED,
                          room=self.other_room)
        results = send_stay_reminders(now=self.now, dispatcher=self.dispatcher)
        self.assertEqual(results['reminded'], 0)
        self.assertFalse(Notification.objects.exists())

    def test_confirmed_stay_in_progress_is_reminded(self):
        self.make_booking('conf@example.com', None, days_in=9, days_left=1, state=Booking.CONFIRMED)
        results = send_stay_reminders(now=self.now, dispatcher=self.dispatcher)
        self.assertEqual(results['reminded'], 1)
        self.assertEqual(results['sms_sent'], 0)
