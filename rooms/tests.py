from datetime import datetime, timedelta, timezone as dt_timezone
from types import SimpleNamespace
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from rest_framework.test import APIClient
from rest_framework import status

from reservation.models import Booking
from rooms.exceptions import StoreError
from rooms.models import Block, MaintenanceLog, Room
from rooms.occupancy import (
    blocks_stay,
    compute_status,
    intervals_overlap,
    is_booking_active,
    is_checkout_overdue,
    is_checkout_upcoming,
    occupied_span,
    stay_progress,
)
from rooms.reconciler import RoomOccupancyReconciler
from rooms.stores import BookingStore, RoomStore
from rooms.views import RoomViewSet


def utc(*args):
    return datetime(*args, tzinfo=dt_timezone.utc)


def booking(status, check_in, check_out):
    return SimpleNamespace(status=status, check_in=check_in, check_out=check_out)


T0 = utc(2024, 1, 1, 14, 0)
T1 = utc(2024, 1, 5, 11, 0)
EPS = timedelta(microseconds=1)


class ComputeStatusTests(SimpleTestCase):

    def test_no_bookings_is_available(self):
        self.assertEqual(compute_status(1, [], T0), Room.AVAILABLE)

    def test_confirmed_half_open_boundaries(self):
        bookings = [booking(Booking.CONFIRMED, T0, T1)]
        self.assertEqual(compute_status(1, bookings, T0), Room.OCCUPIED)
        self.assertEqual(compute_status(1, bookings, T1), Room.AVAILABLE)
        self.assertEqual(compute_status(1, bookings, T0 - EPS), Room.AVAILABLE)
        self.assertEqual(compute_status(1, bookings, T1 - EPS), Room.OCCUPIED)

    def test_pending_behaves_like_confirmed(self):
        bookings = [booking(Booking.PENDING, T0, T1)]
        self.assertEqual(compute_status(1, bookings, utc(2024, 1, 3)), Room.OCCUPIED)
        self.assertEqual(compute_status(1, bookings, T1), Room.AVAILABLE)

    def test_worked_example(self):
        bookings = [booking(Booking.CONFIRMED, T0, T1)]
        self.assertEqual(compute_status(1, bookings, utc(2024, 1, 3, 0, 0)), Room.OCCUPIED)
        self.assertEqual(compute_status(1, bookings, utc(2024, 1, 5, 11, 0)), Room.AVAILABLE)
        self.assertEqual(compute_status(1, bookings, utc(2023, 12, 31, 23, 59)), Room.AVAILABLE)

    def test_checked_in_ignores_interval(self):
        now = utc(2024, 3, 1)
        for check_in, check_out in [
            (T0, T1),                            # checkout long past
            (now + timedelta(days=1), now + timedelta(days=2)),  # interval in the future
            (T1, T0),                            # malformed interval
        ]:
            with self.subTest(check_in=check_in, check_out=check_out):
                bookings = [booking(Booking.CHECKED_IN, check_in, check_out)]
                self.assertEqual(compute_status(1, bookings, now), Room.OCCUPIED)

    def test_cancelled_never_counts(self):
        for now in (T0, T1 - EPS, utc(2024, 1, 3)):
            with self.subTest(now=now):
                bookings = [booking(Booking.CANCELLED, T0, T1)]
                self.assertEqual(compute_status(1, bookings, now), Room.AVAILABLE)

    def test_terminal_statuses_never_count(self):
        for state in (Booking.CHECKED_OUT, Booking.NO_SHOW):
            bookings = [booking(state, T0, T1)]
            self.assertEqual(compute_status(1, bookings, utc(2024, 1, 3)), Room.AVAILABLE)

    def test_checked_in_drift_with_cancelled_overlap(self):
        now = utc(2024, 2, 1)
        bookings = [
            booking(Booking.CHECKED_IN, T0, T1),
            booking(Booking.CANCELLED, now - timedelta(days=1), now + timedelta(days=1)),
        ]
        self.assertEqual(compute_status(1, bookings, now), Room.OCCUPIED)

    def test_malformed_planned_booking_is_inactive(self):
        bookings = [booking(Booking.CONFIRMED, T1, T0)]
        self.assertEqual(compute_status(1, bookings, utc(2024, 1, 3)), Room.AVAILABLE)
        zero_length = [booking(Booking.CONFIRMED, T0, T0)]
        self.assertEqual(compute_status(1, zero_length, T0), Room.AVAILABLE)

    def test_idempotent(self):
        bookings = [booking(Booking.CONFIRMED, T0, T1), booking(Booking.CANCELLED, T0, T1)]
        now = utc(2024, 1, 2)
        self.assertEqual(compute_status(1, bookings, now), compute_status(1, bookings, now))


class IntervalPredicateTests(SimpleTestCase):

    def test_touching_intervals_do_not_overlap(self):
        self.assertFalse(intervals_overlap(T0, T1, T1, T1 + timedelta(days=1)))
        self.assertTrue(intervals_overlap(T0, T1, T1 - EPS, T1 + timedelta(days=1)))

    def test_is_booking_active(self):
        self.assertTrue(is_booking_active(booking(Booking.CONFIRMED, T0, T1), T0))
        self.assertFalse(is_booking_active(booking(Booking.CONFIRMED, T0, T1), T1))

    def test_stay_progress(self):
        b = booking(Booking.CHECKED_IN, utc(2024, 1, 1), utc(2024, 1, 5))
        self.assertEqual(stay_progress(b, utc(2024, 1, 4)), 0.75)
        self.assertEqual(stay_progress(b, utc(2023, 12, 1)), 0.0)
        self.assertEqual(stay_progress(b, utc(2024, 2, 1)), 1.0)
        self.assertIsNone(stay_progress(booking(Booking.CHECKED_IN, T1, T0), T0))

    def test_checkout_buckets(self):
        b = booking(Booking.CHECKED_IN, T0, T1)
        self.assertTrue(is_checkout_overdue(b, T1))
        self.assertFalse(is_checkout_overdue(b, T1 - EPS))
        self.assertTrue(is_checkout_upcoming(b, T1 - timedelta(hours=1), timedelta(hours=2)))
        self.assertFalse(is_checkout_upcoming(b, T1, timedelta(hours=2)))
        self.assertFalse(is_checkout_overdue(booking(Booking.PENDING, T0, T1), T1))

    def test_occupied_span(self):
        now = utc(2024, 1, 3)
        self.assertEqual(occupied_span(booking(Booking.CONFIRMED, T0, T1), now), (T0, T1))
        self.assertIsNone(occupied_span(booking(Booking.CONFIRMED, T1, T0), now))
        self.assertIsNone(occupied_span(booking(Booking.CANCELLED, T0, T1), now))
        self.assertEqual(occupied_span(booking(Booking.CHECKED_IN, T0, T1), now), (T0, T1))
        # overstayed guest holds the room until checked out
        self.assertEqual(occupied_span(booking(Booking.CHECKED_IN, T0, T1), T1), (T0, None))
        # early arrival holds the room from now
        self.assertEqual(occupied_span(booking(Booking.CHECKED_IN, T1, T1 + timedelta(days=2)), now),
                         (now, T1 + timedelta(days=2)))

    def test_blocks_stay(self):
        later = T1 + timedelta(days=10)
        planned = booking(Booking.CONFIRMED, T0, T1)
        self.assertFalse(blocks_stay(planned, T1, later, T0))
        self.assertTrue(blocks_stay(planned, T1 - EPS, later, T0))

        overstayed = booking(Booking.CHECKED_IN, T0, T1)
        now = T1 + timedelta(days=1)
        self.assertTrue(blocks_stay(overstayed, now + timedelta(hours=1), later, now))
        self.assertFalse(blocks_stay(booking(Booking.CHECKED_OUT, T0, T1), now + timedelta(hours=1), later, now))


class FakeBookingStore:

    def __init__(self, bookings, rooms, failing=()):
        self.bookings = bookings
        self.rooms = rooms
        self.failing = set(failing)
        self.loaded = []

    def find_active_bookings_for_room(self, room_id):
        self.loaded.append(room_id)
        if room_id in self.failing:
            raise StoreError(f"boom on {room_id}", room_id=room_id)
        return list(self.bookings.get(room_id, []))

    def find_all_non_maintenance_rooms(self):
        return [room_id for room_id, state in self.rooms.statuses.items() if state != Room.MAINTENANCE]


class FakeRoomStore:

    def __init__(self, statuses):
        self.statuses = dict(statuses)
        self.writes = []

    def get_status(self, room_id):
        if room_id not in self.statuses:
            raise StoreError(f"Room {room_id} does not exist", room_id=room_id)
        return self.statuses[room_id]

    def set_status(self, room_id, state):
        self.writes.append((room_id, state))
        self.statuses[room_id] = state


class ReconcilerTests(SimpleTestCase):
    now = utc(2024, 1, 3)

    def make(self, statuses, bookings, failing=()):
        rooms = FakeRoomStore(statuses)
        store = FakeBookingStore(bookings, rooms, failing)
        return RoomOccupancyReconciler(bookings=store, rooms=rooms, clock=lambda: self.now), rooms, store

    def test_reconcile_room_writes_drifted_status(self):
        reconciler, rooms, _ = self.make({1: Room.AVAILABLE}, {1: [booking(Booking.CONFIRMED, T0, T1)]})
        self.assertEqual(reconciler.reconcile_room(1), Room.OCCUPIED)
        self.assertEqual(rooms.statuses[1], Room.OCCUPIED)

    def test_reconcile_room_twice_leaves_state_unchanged(self):
        reconciler, rooms, _ = self.make({1: Room.OCCUPIED}, {})
        reconciler.reconcile_room(1)
        after_first = dict(rooms.statuses)
        reconciler.reconcile_room(1)
        self.assertEqual(rooms.statuses, after_first)
        self.assertEqual(rooms.writes, [(1, Room.AVAILABLE)])

    def test_maintenance_room_is_never_written(self):
        for bookings in ({}, {1: [booking(Booking.CHECKED_IN, T0, T1)]}):
            with self.subTest(bookings=bookings):
                reconciler, rooms, _ = self.make({1: Room.MAINTENANCE}, bookings)
                computed = reconciler.reconcile_room(1)
                self.assertIn(computed, (Room.AVAILABLE, Room.OCCUPIED))
                self.assertEqual(rooms.statuses[1], Room.MAINTENANCE)
                self.assertEqual(rooms.writes, [])

    def test_reconcile_room_propagates_store_error(self):
        reconciler, _, _ = self.make({1: Room.AVAILABLE}, {}, failing={1})
        with self.assertRaises(StoreError):
            reconciler.reconcile_room(1)

    def test_preview_does_not_write(self):
        reconciler, rooms, _ = self.make({1: Room.AVAILABLE}, {1: [booking(Booking.CHECKED_IN, T0, T1)]})
        self.assertEqual(reconciler.preview_status(1), Room.OCCUPIED)
        self.assertEqual(rooms.writes, [])

    def test_malformed_booking_is_logged(self):
        reconciler, _, _ = self.make({1: Room.AVAILABLE}, {1: [booking(Booking.CONFIRMED, T1, T0)]})
        with self.assertLogs('rooms.reconciler', level='WARNING'):
            self.assertEqual(reconciler.reconcile_room(1), Room.AVAILABLE)

    def test_reconcile_all_visits_each_non_maintenance_room_once(self):
        reconciler, rooms, store = self.make(
            {1: Room.AVAILABLE, 2: Room.OCCUPIED, 3: Room.MAINTENANCE},
            {1: [booking(Booking.CONFIRMED, T0, T1)], 3: [booking(Booking.CHECKED_IN, T0, T1)]},
        )
        report = reconciler.reconcile_all()
        self.assertEqual(sorted(store.loaded), [1, 2])
        self.assertEqual(report.statuses, {1: Room.OCCUPIED, 2: Room.AVAILABLE})
        self.assertEqual(report.failures, {})
        self.assertEqual(rooms.statuses[3], Room.MAINTENANCE)

    def test_reconcile_all_continues_after_failure(self):
        reconciler, rooms, _ = self.make(
            {1: Room.OCCUPIED, 2: Room.AVAILABLE},
            {2: [booking(Booking.CONFIRMED, T0, T1)]},
            failing={1},
        )
        report = reconciler.reconcile_all()
        self.assertIn(1, report.failures)
        self.assertEqual(report.statuses, {2: Room.OCCUPIED})
        self.assertEqual(rooms.statuses[2], Room.OCCUPIED)
        self.assertEqual(report.as_dict()['failed'], 1)


class DjangoStoreTests(TestCase):

    def setUp(self):
        User = get_user_model()
        self.tenant = User.objects.create_user(email='tenant@example.com', password='testpass', first_name='Ama')
        self.block = Block.objects.create(name='A')
        self.room = Room.objects.create(number='101', block=self.block, price_per_night=100)
        self.broken = Room.objects.create(number='102', block=self.block, status=Room.MAINTENANCE)
        now = timezone.now()
        Booking.objects.create(user=self.tenant, room=self.room, check_in=now - timedelta(days=1),
                               check_out=now + timedelta(days=1), status=Booking.CONFIRMED)
        Booking.objects.create(user=self.tenant, room=self.room, check_in=now - timedelta(days=1),
                               check_out=now + timedelta(days=1), status=Booking.CANCELLED)

    def test_booking_store_filters_occupancy_relevant(self):
        bookings = BookingStore().find_active_bookings_for_room(self.room.pk)
        self.assertEqual([b.status for b in bookings], [Booking.CONFIRMED])

    def test_booking_store_lists_non_maintenance_rooms(self):
        self.assertEqual(BookingStore().find_all_non_maintenance_rooms(), [self.room.pk])

    def test_room_store_round_trip(self):
        store = RoomStore()
        store.set_status(self.room.pk, Room.OCCUPIED)
        self.assertEqual(store.get_status(self.room.pk), Room.OCCUPIED)

    def test_room_store_missing_room(self):
        with self.assertRaises(StoreError):
            RoomStore().get_status(999999)
        with self.assertRaises(StoreError):
            RoomStore().set_status(999999, Room.AVAILABLE)

    def test_reconcile_with_orm_stores(self):
        self.assertEqual(RoomOccupancyReconciler().reconcile_room(self.room.pk), Room.OCCUPIED)
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.OCCUPIED)


@override_settings(CRON_SECRET_TOKEN='cron-secret')
class RoomsAPITest(TestCase):
    def setUp(self):
        self.client = APIClient()
        User = get_user_model()
        self.staff = User.objects.create_user(email='staff@example.com', password='testpass',
                                              first_name='Kofi', role=User.STAFF)
        self.tenant = User.objects.create_user(email='tenant@example.com', password='testpass', first_name='Ama')

        self.block = Block.objects.create(name='A')
        self.room1 = Room.objects.create(number='101', block=self.block, capacity=2, price_per_night=150)
        self.room2 = Room.objects.create(number='102', block=self.block, capacity=1, price_per_night=100)

        now = timezone.now()
        Booking.objects.create(user=self.tenant, room=self.room1, check_in=now - timedelta(days=2),
                               check_out=now - timedelta(days=1), status=Booking.CHECKED_IN)

    def test_list_rooms(self):
        url = reverse('room-list')
        self.client.force_authenticate(self.tenant)
        resp = self.client.get(url)
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        results = resp.data.get('results', resp.data)
        self.assertEqual(len(results), 2)
        for key in ('id', 'number', 'block_name', 'status', 'actions'):
            self.assertIn(key, results[0])

    def test_anonymous_cannot_list(self):
        resp = self.client.get(reverse('room-list'))
        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_create_room_requires_staff(self):
        url = reverse('room-list')
        payload = {'number': '103', 'block': self.block.pk, 'capacity': 2, 'price_per_night': '120.00'}
        self.client.force_authenticate(self.tenant)
        self.assertEqual(self.client.post(url, payload, format='json').status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.staff)
        resp = self.client.post(url, payload, format='json')
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resp.data['status'], Room.AVAILABLE)

    def test_status_is_read_only(self):
        url = reverse('room-detail', args=[self.room2.pk])
        self.client.force_authenticate(self.staff)
        resp = self.client.patch(url, {'status': Room.OCCUPIED}, format='json')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.room2.refresh_from_db()
        self.assertEqual(self.room2.status, Room.AVAILABLE)

    def test_occupancy_preview_reports_drift(self):
        url = reverse('room-occupancy', args=[self.room1.pk])
        self.client.force_authenticate(self.staff)
        resp = self.client.get(url)
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data['stored_status'], Room.AVAILABLE)
        self.assertEqual(resp.data['computed_status'], Room.OCCUPIED)
        self.assertTrue(resp.data['drifted'])
        self.room1.refresh_from_db()
        self.assertEqual(self.room1.status, Room.AVAILABLE)

    def test_reconcile_room(self):
        url = reverse('room-reconcile', args=[self.room1.pk])
        self.client.force_authenticate(self.staff)
        resp = self.client.post(url)
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data['status'], Room.OCCUPIED)

    def test_maintenance_toggle(self):
        url = reverse('room-maintenance', args=[self.room1.pk])
        self.client.force_authenticate(self.staff)
        resp = self.client.post(url, {'enabled': True}, format='json')
        self.assertEqual(resp.data['status'], Room.MAINTENANCE)

        # reconciling a room under maintenance leaves it alone
        self.client.post(reverse('room-reconcile', args=[self.room1.pk]))
        self.room1.refresh_from_db()
        self.assertEqual(self.room1.status, Room.MAINTENANCE)

        resp = self.client.post(url, {'enabled': False}, format='json')
        self.assertEqual(resp.data['status'], Room.OCCUPIED)

    def test_reconcile_all(self):
        Room.objects.filter(pk=self.room2.pk).update(status=Room.OCCUPIED)
        self.client.force_authenticate(self.staff)
        resp = self.client.post(reverse('room-reconcile-all'))
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data['reconciled'], 2)
        self.room1.refresh_from_db()
        self.room2.refresh_from_db()
        self.assertEqual(self.room1.status, Room.OCCUPIED)
        self.assertEqual(self.room2.status, Room.AVAILABLE)

    def test_cron_requires_token(self):
        url = reverse('cron-reconcile-rooms')
        self.assertEqual(self.client.post(url).status_code, status.HTTP_403_FORBIDDEN)
        resp = self.client.post(url, HTTP_AUTHORIZATION='Bearer wrong')
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)

        resp = self.client.post(url, HTTP_AUTHORIZATION='Bearer cron-secret')
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertTrue(resp.data['success'])
        self.room1.refresh_from_db()
        self.assertEqual(self.room1.status, Room.OCCUPIED)

    def test_store_failure_returns_error_response(self):
        broken = RoomOccupancyReconciler(bookings=BrokenBookingStore())
        self.client.force_authenticate(self.staff)
        with patch.object(RoomViewSet, 'get_reconciler', return_value=broken):
            resp = self.client.get(reverse('room-occupancy', args=[self.room1.pk]))
            self.assertEqual(resp.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
            self.assertIn('error', resp.data)

            resp = self.client.post(reverse('room-reconcile-all'))
            self.assertEqual(resp.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
            self.assertIn('error', resp.data)


class BrokenBookingStore:

    def find_active_bookings_for_room(self, room_id):
        raise StoreError("database is down", room_id=room_id)

    def find_all_non_maintenance_rooms(self):
        raise StoreError("database is down")


class MaintenanceLogAPITest(TestCase):
    def setUp(self):
        self.client = APIClient()
        User = get_user_model()
        self.staff = User.objects.create_user(email='staff@example.com', password='testpass',
                                              first_name='Kofi', role=User.STAFF)
        self.tenant = User.objects.create_user(email='tenant@example.com', password='testpass', first_name='Ama')
        self.room = Room.objects.create(number='201', price_per_night=100)
        self.spare = Room.objects.create(number='202', price_per_night=100)

        now = timezone.now()
        Booking.objects.create(user=self.tenant, room=self.room, check_in=now - timedelta(days=1),
                               check_out=now + timedelta(days=3), status=Booking.CHECKED_IN)
        self.client.force_authenticate(self.staff)

    def report(self, room, priority, kind=MaintenanceLog.REPAIR):
        return self.client.post(reverse('maintenance-log-list'), {
            'room': room.pk,
            'type': kind,
            'description': 'Leaking pipe under the sink',
            'priority': priority,
        }, format='json')

    def change_status(self, log_id, new_status):
        return self.client.post(reverse('maintenance-log-change-status', args=[log_id]),
                                {'status': new_status}, format='json')

    def test_critical_issue_takes_room_out_of_service(self):
        resp = self.report(self.room, MaintenanceLog.CRITICAL)
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED, resp.data)
        self.assertEqual(resp.data['reported_by'], 'Kofi')
        self.assertTrue(resp.data['is_blocking'])
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.MAINTENANCE)

    def test_low_priority_issue_keeps_room_in_service(self):
        self.report(self.spare, MaintenanceLog.LOW, kind=MaintenanceLog.CLEANING)
        self.spare.refresh_from_db()
        self.assertEqual(self.spare.status, Room.AVAILABLE)

    def test_completing_issue_hands_room_back_to_bookings(self):
        log_id = self.report(self.room, MaintenanceLog.HIGH).data['id']

        resp = self.change_status(log_id, MaintenanceLog.IN_PROGRESS)
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertIsNotNone(resp.data['start_date'])
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.MAINTENANCE)

        resp = self.change_status(log_id, MaintenanceLog.COMPLETED)
        self.assertIsNotNone(resp.data['end_date'])
        self.room.refresh_from_db()
        self.assertEqual(self.room.status, Room.OCCUPIED)

    def test_room_stays_flagged_while_another_issue_is_open(self):
        first = self.report(self.spare, MaintenanceLog.CRITICAL).data['id']
        second = self.report(self.spare, MaintenanceLog.HIGH).data['id']

        self.change_status(first, MaintenanceLog.COMPLETED)
        self.spare.refresh_from_db()
        self.assertEqual(self.spare.status, Room.MAINTENANCE)

        self.change_status(second, MaintenanceLog.CANCELLED)
        self.spare.refresh_from_db()
        self.assertEqual(self.spare.status, Room.AVAILABLE)

    def test_closed_issue_cannot_reopen(self):
        log_id = self.report(self.spare, MaintenanceLog.MEDIUM).data['id']
        self.change_status(log_id, MaintenanceLog.COMPLETED)
        resp = self.change_status(log_id, MaintenanceLog.IN_PROGRESS)
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_logs_are_staff_only_and_never_deleted(self):
        log_id = self.report(self.spare, MaintenanceLog.LOW).data['id']
        resp = self.client.delete(reverse('maintenance-log-detail', args=[log_id]))
        self.assertEqual(resp.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)

        self.client.force_authenticate(self.tenant)
        resp = self.client.get(reverse('maintenance-log-list'))
        self.assertEqual(resp.status_code, status.HTTP_403_FORBIDDEN)
