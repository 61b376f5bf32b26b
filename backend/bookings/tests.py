import threading
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
from io import StringIO
from unittest import mock
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.management import call_command
from django.db import DatabaseError, connection
from django.test import TestCase, TransactionTestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient

from drivers.models import DriverProfile, Vehicle
from drivers.services import get_driver_availability
from services.booking_management import BookingLifecycleManager
from services.cache import VersionedCache
from services.matching import DriverMatchingQueue
from services.pricing import PricingEngine

from .models import Booking, TrackingHistory

User = get_user_model()

TSIM_SHA_TSUI = {
	'address': 'Tsim Sha Tsui, Hong Kong',
	'latitude': 22.3193,
	'longitude': 114.1694,
	'jurisdiction': 'HK',
}
FUTIAN = {
	'address': 'Futian, Shenzhen',
	'latitude': 22.5431,
	'longitude': 114.0579,
	'jurisdiction': 'CN',
}


def booking_payload(client, **overrides):
	payload = {
		'client_id': client.pk,
		'pickup_location': dict(TSIM_SHA_TSUI),
		'dropoff_location': dict(FUTIAN),
		'scheduled_date': timezone.now() + timedelta(days=2),
		'vehicle_class': 'BUSINESS',
		'passenger_count': 2,
		'luggage': '2 suitcases',
	}
	payload.update(overrides)
	return payload


def make_driver(username, vehicle_class='BUSINESS', plate=None, **profile_fields):
	user = User.objects.create_user(username=username, password='driver1234')
	profile_fields.setdefault('is_approved', True)
	profile = DriverProfile.objects.create(user=user, license_number=f'LIC-{username}', **profile_fields)
	vehicle = Vehicle.objects.create(
		driver=profile,
		make='Toyota',
		model='Alphard',
		year=2022,
		color='Black',
		plate_number=plate or f'PL-{username}',
		vehicle_class=vehicle_class,
	)
	return profile, vehicle


class BookingManagerTestCase(TestCase):
	def setUp(self):
		cache.clear()
		self.queue = mock.Mock(spec=DriverMatchingQueue)
		self.manager = BookingLifecycleManager(
			pricing=PricingEngine(),
			cache=VersionedCache(),
			matching_queue=self.queue,
		)
		self.client_user = User.objects.create_user(username='client', password='pass1234')
		self.driver, self.vehicle = make_driver('driver_one', plate='HK-1001')

	def create_booking(self, **overrides):
		result = self.manager.create_booking(booking_payload(self.client_user, **overrides))
		self.assertTrue(result.success, result.to_dict())
		return result.data

	def assign(self, booking_id):
		result = self.manager.assign_driver(booking_id, self.driver.id, self.vehicle.id)
		self.assertTrue(result.success, result.to_dict())
		return result.data


class CreateBookingTests(BookingManagerTestCase):
	def test_create_prices_and_records_booking(self):
		data = self.create_booking()

		self.assertEqual(data['status'], 'pending')
		self.assertEqual(data['client_id'], self.client_user.pk)
		self.assertIsNone(data['driver'])
		self.assertEqual(data['currency'], 'HKD')
		self.assertEqual([s['name'] for s in data['surcharges']][0], 'border_fee')
		self.assertGreater(data['estimated_duration_minutes'], 60)

		booking = Booking.objects.get(id=data['id'])
		self.assertEqual(booking.total_price, (booking.base_price + booking.surcharge_total).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

	def test_create_records_tracking_and_queues_matching(self):
		data = self.create_booking()

		entries = list(TrackingHistory.objects.filter(booking_id=data['id']))
		self.assertEqual(len(entries), 1)
		self.assertEqual(entries[0].status, 'BOOKING_CREATED')
		self.assertEqual(entries[0].location['address'], TSIM_SHA_TSUI['address'])
		self.assertEqual(data['tracking_history'][0]['status'], 'BOOKING_CREATED')
		self.queue.enqueue.assert_called_once_with(data['id'])

	def test_past_schedule_is_rejected(self):
		result = self.manager.create_booking(
			booking_payload(self.client_user, scheduled_date=timezone.now() - timedelta(minutes=1))
		)

		self.assertFalse(result.success)
		self.assertEqual(result.error_code, 'VALIDATION_ERROR')
		self.assertIn('scheduled_date', result.details)
		self.assertFalse(Booking.objects.exists())
		self.queue.enqueue.assert_not_called()

	def test_passenger_count_bounds(self):
		for count in (0, 9):
			result = self.manager.create_booking(booking_payload(self.client_user, passenger_count=count))
			self.assertEqual(result.error_code, 'VALIDATION_ERROR')
			self.assertIn('passenger_count', result.details)

		self.create_booking(passenger_count=8)

	def test_invalid_location_is_rejected(self):
		bad_pickup = dict(TSIM_SHA_TSUI, latitude=123)
		result = self.manager.create_booking(booking_payload(self.client_user, pickup_location=bad_pickup))

		self.assertEqual(result.error_code, 'VALIDATION_ERROR')
		self.assertIn('pickup_location', result.details)

	@patch('bookings.tasks.match_drivers_for_booking')
	def test_matching_is_sent_after_commit(self, mock_task):
		manager = BookingLifecycleManager(matching_queue=DriverMatchingQueue())

		with self.captureOnCommitCallbacks(execute=True) as callbacks:
			result = manager.create_booking(booking_payload(self.client_user))

		self.assertEqual(len(callbacks), 1)
		mock_task.apply_async.assert_called_once_with((result.data['id'],), countdown=0)

	@patch('bookings.tasks.match_drivers_for_booking')
	def test_broker_failure_does_not_fail_create(self, mock_task):
		mock_task.apply_async.side_effect = ConnectionError('broker down')
		manager = BookingLifecycleManager(matching_queue=DriverMatchingQueue())

		with self.captureOnCommitCallbacks(execute=True):
			result = manager.create_booking(booking_payload(self.client_user))

		self.assertTrue(result.success)
		self.assertTrue(Booking.objects.filter(id=result.data['id']).exists())


class GetBookingTests(BookingManagerTestCase):
	def test_cache_hit_matches_database_read(self):
		booking_id = self.create_booking()['id']
		cache.clear()

		miss = self.manager.get_booking_by_id(booking_id)
		hit = self.manager.get_booking_by_id(booking_id)

		self.assertFalse(miss.cached)
		self.assertTrue(hit.cached)
		self.assertEqual(miss.data, hit.data)

	def test_cache_failure_falls_back_to_database(self):
		booking_id = self.create_booking()['id']

		with patch('services.cache.caches') as mock_caches:
			mock_caches.__getitem__.return_value.get.side_effect = ConnectionError('redis down')
			result = self.manager.get_booking_by_id(booking_id)

		self.assertTrue(result.success)
		self.assertFalse(result.cached)
		self.assertEqual(result.data['id'], booking_id)

	def test_missing_booking(self):
		result = self.manager.get_booking_by_id(99999)
		self.assertEqual(result.error_code, 'BOOKING_NOT_FOUND')

	def test_cancel_during_load_does_not_cache_stale_booking(self):
		booking_id = self.create_booking()['id']
		cache.clear()
		rival = BookingLifecycleManager(matching_queue=mock.Mock(spec=DriverMatchingQueue))
		load = self.manager._serialize

		def load_then_cancel(pk):
			data = load(pk)
			rival.cancel_booking(pk, 'Plans changed')
			return data

		with patch.object(self.manager, '_serialize', side_effect=load_then_cancel):
			in_flight = self.manager.get_booking_by_id(booking_id)
		self.assertEqual(in_flight.data['status'], 'pending')

		result = self.manager.get_booking_by_id(booking_id)

		self.assertFalse(result.cached)
		self.assertEqual(result.data['status'], 'cancelled')
		self.assertEqual(self.manager.get_booking_by_id(booking_id).data['status'], 'cancelled')

	def test_tracking_history_is_newest_first_and_capped(self):
		booking_id = self.create_booking()['id']
		booking = Booking.objects.get(id=booking_id)
		for i in range(12):
			TrackingHistory.objects.create(booking=booking, location={}, status=f'NOTE_{i}')
		cache.clear()

		history = self.manager.get_booking_by_id(booking_id).data['tracking_history']

		self.assertEqual(len(history), 10)
		self.assertEqual(history[0]['status'], 'NOTE_11')


class UpdateBookingTests(BookingManagerTestCase):
	def test_update_fields_and_invalidate_cache(self):
		booking_id = self.create_booking()['id']
		self.manager.get_booking_by_id(booking_id)

		result = self.manager.update_booking(booking_id, {'passenger_count': 3, 'special_requests': 'Child seat'})

		self.assertTrue(result.success)
		self.assertEqual(result.data['passenger_count'], 3)
		fresh = self.manager.get_booking_by_id(booking_id)
		self.assertEqual(fresh.data['special_requests'], 'Child seat')

	def test_empty_patch_is_rejected(self):
		booking_id = self.create_booking()['id']
		result = self.manager.update_booking(booking_id, {})
		self.assertEqual(result.error_code, 'VALIDATION_ERROR')

	def test_illegal_transition_is_rejected(self):
		booking_id = self.create_booking()['id']

		result = self.manager.update_booking(booking_id, {'status': 'completed'})

		self.assertEqual(result.error_code, 'INVALID_STATUS_TRANSITION')
		self.assertEqual(Booking.objects.get(id=booking_id).status, 'pending')
		self.assertEqual(TrackingHistory.objects.filter(booking_id=booking_id).count(), 1)

	def test_cancel_through_update_sets_default_reason(self):
		booking_id = self.create_booking()['id']
		self.assign(booking_id)

		result = self.manager.update_booking(booking_id, {'status': 'cancelled'})

		self.assertTrue(result.success)
		self.assertEqual(result.data['cancellation_reason'], 'No reason provided')
		self.assertIsNone(result.data['driver_id'])
		self.driver.refresh_from_db()
		self.assertTrue(self.driver.is_available)

	def test_terminal_booking_is_not_updatable(self):
		booking_id = self.create_booking()['id']
		self.manager.cancel_booking(booking_id)

		result = self.manager.update_booking(booking_id, {'passenger_count': 4})

		self.assertEqual(result.error_code, 'BOOKING_NOT_UPDATABLE')

	def test_trip_progression_stamps_times_and_releases_driver(self):
		booking_id = self.create_booking()['id']
		self.assign(booking_id)

		started = self.manager.update_booking(booking_id, {'status': 'in_progress'})
		self.assertTrue(started.success)
		self.assertIsNotNone(started.data['actual_pickup_time'])

		finished = self.manager.update_booking(booking_id, {'status': 'completed'})
		self.assertTrue(finished.success)
		self.assertIsNotNone(finished.data['actual_dropoff_time'])
		self.assertEqual(finished.data['driver_id'], self.driver.id)

		self.driver.refresh_from_db()
		self.assertTrue(self.driver.is_available)

		labels = list(
			TrackingHistory.objects.filter(booking_id=booking_id).for_replay().values_list('status', flat=True)
		)
		self.assertEqual(labels, [
			'BOOKING_CREATED',
			'DRIVER_ASSIGNED',
			'STATUS_CHANGED_TO_IN_PROGRESS',
			'STATUS_CHANGED_TO_COMPLETED',
		])

	def test_database_error_maps_to_service_error(self):
		booking_id = self.create_booking()['id']

		with patch.object(Booking.objects, 'select_for_update', side_effect=DatabaseError('connection lost')):
			result = self.manager.update_booking(booking_id, {'passenger_count': 3})

		self.assertEqual(result.error_code, 'SERVICE_ERROR')


class AssignDriverTests(BookingManagerTestCase):
	def test_assign_confirms_booking_and_claims_driver(self):
		booking_id = self.create_booking()['id']

		data = self.assign(booking_id)

		self.assertEqual(data['status'], 'confirmed')
		self.assertEqual(data['driver_id'], self.driver.id)
		self.assertEqual(data['vehicle']['plate_number'], 'HK-1001')
		self.assertEqual(data['tracking_history'][0]['status'], 'DRIVER_ASSIGNED')
		self.driver.refresh_from_db()
		self.assertFalse(self.driver.is_available)

	def test_busy_driver_cannot_take_second_booking(self):
		first = self.create_booking()['id']
		second = self.create_booking()['id']
		self.assign(first)

		result = self.manager.assign_driver(second, self.driver.id, self.vehicle.id)

		self.assertEqual(result.error_code, 'DRIVER_NOT_AVAILABLE')
		booking = Booking.objects.get(id=second)
		self.assertEqual(booking.status, 'pending')
		self.assertIsNone(booking.driver_id)

	def test_confirmed_booking_is_not_assignable(self):
		booking_id = self.create_booking()['id']
		self.assign(booking_id)
		other, other_vehicle = make_driver('driver_two')

		result = self.manager.assign_driver(booking_id, other.id, other_vehicle.id)

		self.assertEqual(result.error_code, 'BOOKING_NOT_ASSIGNABLE')
		other.refresh_from_db()
		self.assertTrue(other.is_available)

	def test_vehicle_must_belong_to_driver(self):
		booking_id = self.create_booking()['id']
		_, foreign_vehicle = make_driver('driver_two')

		result = self.manager.assign_driver(booking_id, self.driver.id, foreign_vehicle.id)

		self.assertEqual(result.error_code, 'VALIDATION_ERROR')
		self.assertIn('vehicle_id', result.details)
		self.driver.refresh_from_db()
		self.assertTrue(self.driver.is_available)

	def test_unknown_driver_is_not_available(self):
		booking_id = self.create_booking()['id']

		result = self.manager.assign_driver(booking_id, 999999, self.vehicle.id)

		self.assertEqual(result.error_code, 'DRIVER_NOT_AVAILABLE')
		self.assertEqual(Booking.objects.get(id=booking_id).status, 'pending')

	def test_vehicle_class_must_match_booking(self):
		booking_id = self.create_booking(vehicle_class='LUXURY')['id']

		result = self.manager.assign_driver(booking_id, self.driver.id, self.vehicle.id)

		self.assertEqual(result.error_code, 'VALIDATION_ERROR')
		self.assertIn('vehicle_id', result.details)
		self.driver.refresh_from_db()
		self.assertTrue(self.driver.is_available)

	def test_unapproved_driver_is_not_available(self):
		booking_id = self.create_booking()['id']
		pending_driver, pending_vehicle = make_driver('driver_new', is_approved=False)

		result = self.manager.assign_driver(booking_id, pending_driver.id, pending_vehicle.id)

		self.assertEqual(result.error_code, 'DRIVER_NOT_AVAILABLE')

	def test_assignment_invalidates_driver_availability(self):
		booking_id = self.create_booking()['id']
		self.assertTrue(get_driver_availability(self.driver.id)['is_available'])

		self.assign(booking_id)

		self.assertFalse(get_driver_availability(self.driver.id)['is_available'])


class CancelBookingTests(BookingManagerTestCase):
	def test_cancel_pending_booking(self):
		booking_id = self.create_booking()['id']

		result = self.manager.cancel_booking(booking_id, 'Flight changed')

		self.assertEqual(result.data['status'], 'cancelled')
		self.assertEqual(result.data['cancellation_reason'], 'Flight changed')
		self.assertEqual(result.data['tracking_history'][0]['status'], 'BOOKING_CANCELLED')

	def test_default_reason(self):
		booking_id = self.create_booking()['id']
		result = self.manager.cancel_booking(booking_id)
		self.assertEqual(result.data['cancellation_reason'], 'No reason provided')

	def test_cancel_restores_driver_availability(self):
		booking_id = self.create_booking()['id']
		self.assign(booking_id)

		result = self.manager.cancel_booking(booking_id, 'Client request')

		self.assertTrue(result.success)
		self.assertIsNone(result.data['driver_id'])
		self.driver.refresh_from_db()
		self.assertTrue(self.driver.is_available)

		# the released driver can take another booking
		self.assign(self.create_booking()['id'])

	def test_cancelled_booking_is_not_cancellable(self):
		booking_id = self.create_booking()['id']
		self.manager.cancel_booking(booking_id)

		result = self.manager.cancel_booking(booking_id)

		self.assertEqual(result.error_code, 'BOOKING_NOT_CANCELLABLE')

	def test_in_progress_booking_is_not_cancellable(self):
		booking_id = self.create_booking()['id']
		self.assign(booking_id)
		self.manager.update_booking(booking_id, {'status': 'in_progress'})

		result = self.manager.cancel_booking(booking_id)

		self.assertEqual(result.error_code, 'BOOKING_NOT_CANCELLABLE')
		self.driver.refresh_from_db()
		self.assertFalse(self.driver.is_available)

	def test_missing_booking(self):
		self.assertEqual(self.manager.cancel_booking(99999).error_code, 'BOOKING_NOT_FOUND')


class PriceEstimateTests(BookingManagerTestCase):
	def test_estimate_matches_booking_price(self):
		scheduled = timezone.now() + timedelta(days=3)
		estimate = self.manager.calculate_price_estimate(TSIM_SHA_TSUI, FUTIAN, 'BUSINESS', scheduled)
		booking = self.create_booking(scheduled_date=scheduled)

		self.assertTrue(estimate.success)
		self.assertEqual(estimate.data['total_price'], booking['total_price'].split('.')[0])
		self.assertFalse(Booking.objects.exclude(id=booking['id']).exists())

	def test_estimate_requires_locations(self):
		result = self.manager.calculate_price_estimate(None, FUTIAN, 'BUSINESS', timezone.now())
		self.assertEqual(result.error_code, 'VALIDATION_ERROR')

	def test_price_range(self):
		result = self.manager.estimate_price_range(TSIM_SHA_TSUI, FUTIAN, 'LUXURY')

		self.assertTrue(result.success)
		self.assertLess(int(result.data['min_price']), int(result.data['max_price']))


class TrackingHistoryTests(BookingManagerTestCase):
	def test_entries_are_immutable(self):
		booking_id = self.create_booking()['id']
		entry = TrackingHistory.objects.get(booking_id=booking_id)

		entry.notes = 'edited'
		with self.assertRaises(ValueError):
			entry.save()
		with self.assertRaises(ValueError):
			entry.delete()


class BookingApiTests(TestCase):
	def setUp(self):
		cache.clear()
		self.api = APIClient()
		self.client_user = User.objects.create_user(username='client', password='pass1234')
		self.stranger = User.objects.create_user(username='stranger', password='pass1234')
		self.dispatcher = User.objects.create_user(username='dispatcher', password='pass1234', is_staff=True)
		self.driver, self.vehicle = make_driver('driver_one', plate='HK-1001')

	def payload(self, **overrides):
		data = booking_payload(self.client_user, **overrides)
		data.pop('client_id')
		data['scheduled_date'] = data['scheduled_date'].isoformat()
		return data

	def create(self):
		self.api.force_authenticate(user=self.client_user)
		response = self.api.post(reverse('bookings:create-booking'), self.payload(), format='json')
		self.assertEqual(response.status_code, 201, response.data)
		return response.data['data']['id']

	def test_create_uses_requesting_user_as_client(self):
		self.api.force_authenticate(user=self.client_user)
		response = self.api.post(
			reverse('bookings:create-booking'),
			dict(self.payload(), client_id=self.stranger.pk),
			format='json',
		)

		self.assertEqual(response.status_code, 201)
		self.assertTrue(response.data['success'])
		self.assertEqual(response.data['data']['client_id'], self.client_user.pk)

	def test_create_validation_error(self):
		self.api.force_authenticate(user=self.client_user)
		response = self.api.post(reverse('bookings:create-booking'), self.payload(passenger_count=20), format='json')

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error']['code'], 'VALIDATION_ERROR')

	def test_requires_authentication(self):
		response = self.api.post(reverse('bookings:create-booking'), self.payload(), format='json')
		self.assertIn(response.status_code, (401, 403))

	def test_detail_visibility(self):
		booking_id = self.create()
		url = reverse('bookings:booking-detail', args=[booking_id])

		self.assertEqual(self.api.get(url).status_code, 200)

		self.api.force_authenticate(user=self.stranger)
		self.assertEqual(self.api.get(url).status_code, 403)

		self.api.force_authenticate(user=self.dispatcher)
		self.assertEqual(self.api.get(url).status_code, 200)

	def test_missing_booking_is_404(self):
		self.api.force_authenticate(user=self.client_user)
		response = self.api.get(reverse('bookings:booking-detail', args=[99999]))

		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data['error']['code'], 'BOOKING_NOT_FOUND')

	def test_patch_invalid_transition_is_409(self):
		booking_id = self.create()
		response = self.api.patch(
			reverse('bookings:booking-detail', args=[booking_id]), {'status': 'completed'}, format='json'
		)

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error']['code'], 'INVALID_STATUS_TRANSITION')

	def test_only_dispatchers_assign(self):
		booking_id = self.create()
		url = reverse('bookings:assign-driver', args=[booking_id])
		body = {'driver_id': self.driver.id, 'vehicle_id': self.vehicle.id}

		self.assertEqual(self.api.post(url, body, format='json').status_code, 403)

		self.api.force_authenticate(user=self.dispatcher)
		response = self.api.post(url, body, format='json')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['data']['status'], 'confirmed')

		response = self.api.post(url, body, format='json')
		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error']['code'], 'BOOKING_NOT_ASSIGNABLE')

	def test_assigned_driver_can_view_booking(self):
		booking_id = self.create()
		self.api.force_authenticate(user=self.dispatcher)
		self.api.post(
			reverse('bookings:assign-driver', args=[booking_id]),
			{'driver_id': self.driver.id, 'vehicle_id': self.vehicle.id},
			format='json',
		)

		self.api.force_authenticate(user=self.driver.user)
		response = self.api.get(reverse('bookings:booking-detail', args=[booking_id]))
		self.assertEqual(response.status_code, 200)

	def test_cancel_twice(self):
		booking_id = self.create()
		url = reverse('bookings:cancel-booking', args=[booking_id])

		response = self.api.post(url, {'reason': 'Meeting moved'}, format='json')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['data']['cancellation_reason'], 'Meeting moved')

		response = self.api.post(url, {}, format='json')
		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error']['code'], 'BOOKING_NOT_CANCELLABLE')

	def test_price_estimate(self):
		self.api.force_authenticate(user=self.client_user)
		body = self.payload()
		body.pop('passenger_count')

		response = self.api.post(reverse('bookings:price-estimate'), body, format='json')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['data']['currency'], 'HKD')

		body.pop('scheduled_date')
		response = self.api.post(reverse('bookings:price-estimate'), body, format='json')
		self.assertEqual(response.status_code, 400)

	def test_price_range(self):
		self.api.force_authenticate(user=self.client_user)
		response = self.api.post(
			reverse('bookings:price-range'),
			{'pickup_location': TSIM_SHA_TSUI, 'dropoff_location': FUTIAN, 'vehicle_class': 'VAN'},
			format='json',
		)

		self.assertEqual(response.status_code, 200)
		self.assertIn('max_price', response.data['data'])


class HealthCheckTests(TestCase):
	@patch('app_backend.views.celery_app.connection_for_write')
	@patch('app_backend.views.redis.Redis.from_url')
	def test_healthy(self, mock_redis, mock_broker):
		response = self.client.get('/health/')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.json()['services']['database'], 'healthy')
		mock_redis.return_value.ping.assert_called_once()
		mock_broker.return_value.__enter__.return_value.ensure_connection.assert_called_once_with(max_retries=1)

	@patch('app_backend.views.celery_app.connection_for_write')
	@patch('app_backend.views.redis.Redis.from_url')
	def test_broker_down(self, mock_redis, mock_broker):
		mock_broker.return_value.__enter__.return_value.ensure_connection.side_effect = OSError('broker unreachable')

		response = self.client.get('/health/')

		self.assertEqual(response.status_code, 503)
		self.assertTrue(response.json()['services']['celery'].startswith('unhealthy'))
		self.assertEqual(response.json()['services']['redis'], 'healthy')

	@patch('app_backend.views.celery_app.connection_for_write')
	@patch('app_backend.views.redis.Redis.from_url')
	def test_redis_down(self, mock_redis, mock_broker):
		mock_redis.return_value.ping.side_effect = ConnectionError('refused')

		response = self.client.get('/health/')

		self.assertEqual(response.status_code, 503)
		self.assertEqual(response.json()['status'], 'unhealthy')


class RematchCommandTests(TestCase):
	def setUp(self):
		cache.clear()
		self.manager = BookingLifecycleManager(matching_queue=mock.Mock(spec=DriverMatchingQueue))
		self.client_user = User.objects.create_user(username='client', password='pass1234')

	@patch('bookings.management.commands.rematch_pending_bookings.match_drivers_for_booking')
	def test_requeues_old_unassigned_bookings(self, mock_task):
		old_id = self.manager.create_booking(booking_payload(self.client_user)).data['id']
		self.manager.create_booking(booking_payload(self.client_user))
		cancelled_id = self.manager.create_booking(booking_payload(self.client_user)).data['id']
		self.manager.cancel_booking(cancelled_id)
		Booking.objects.filter(id__in=[old_id, cancelled_id]).update(
			created_at=timezone.now() - timedelta(hours=1)
		)

		out = StringIO()
		call_command('rematch_pending_bookings', '--older-than', '30', stdout=out)

		mock_task.delay.assert_called_once_with(old_id)
		self.assertIn('1 pending bookings', out.getvalue())

	@patch('bookings.management.commands.rematch_pending_bookings.match_drivers_for_booking')
	def test_dry_run_queues_nothing(self, mock_task):
		booking_id = self.manager.create_booking(booking_payload(self.client_user)).data['id']
		Booking.objects.filter(id=booking_id).update(created_at=timezone.now() - timedelta(hours=1))

		call_command('rematch_pending_bookings', '--dry-run', stdout=StringIO())

		mock_task.delay.assert_not_called()


class ConcurrentAssignmentTests(TransactionTestCase):
	def test_driver_is_claimed_by_exactly_one_booking(self):
		cache.clear()
		manager = BookingLifecycleManager(matching_queue=mock.Mock(spec=DriverMatchingQueue))
		client_user = User.objects.create_user(username='client', password='pass1234')
		driver, vehicle = make_driver('driver_one')
		booking_ids = [
			manager.create_booking(booking_payload(client_user)).data['id']
			for _ in range(2)
		]

		barrier = threading.Barrier(2)
		results = {}

		def assign(booking_id):
			try:
				barrier.wait()
				results[booking_id] = manager.assign_driver(booking_id, driver.id, vehicle.id)
			finally:
				connection.close()

		threads = [threading.Thread(target=assign, args=(b,)) for b in booking_ids]
		for t in threads:
			t.start()
		for t in threads:
			t.join()

		outcomes = sorted(r.error_code or 'OK' for r in results.values())
		self.assertEqual(outcomes, ['DRIVER_NOT_AVAILABLE', 'OK'])
		self.assertEqual(Booking.objects.filter(driver=driver).count(), 1)
		driver.refresh_from_db()
		self.assertFalse(driver.is_available)
