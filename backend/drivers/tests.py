from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import OperationalError
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework.test import APIClient

from bookings.models import Booking
from bookings.tasks import match_drivers_for_booking
from services.cache import CacheKeys, VersionedCache
from services.matching import MatchCriteria, find_candidates, match_drivers

from .models import DriverProfile, Vehicle
from .services import claim_driver, get_driver_availability, release_driver

User = get_user_model()

PICKUP = {'address': 'Central, Hong Kong', 'latitude': 22.2819, 'longitude': 114.1582, 'jurisdiction': 'HK'}
DROPOFF = {'address': 'Sha Tin, Hong Kong', 'latitude': 22.3817, 'longitude': 114.1889, 'jurisdiction': 'HK'}


def make_driver(username, vehicle_class='BUSINESS', vehicle_active=True, **profile_fields):
	user = User.objects.create_user(username=username, password='driver1234')
	profile_fields.setdefault('is_approved', True)
	profile = DriverProfile.objects.create(user=user, license_number=f'LIC-{username}', **profile_fields)
	Vehicle.objects.create(
		driver=profile,
		make='Mercedes',
		model='V-Class',
		year=2021,
		color='Silver',
		plate_number=f'PL-{username}',
		vehicle_class=vehicle_class,
		is_active=vehicle_active,
	)
	return profile


def make_booking(client, **fields):
	values = dict(
		client=client,
		pickup_location=PICKUP,
		dropoff_location=DROPOFF,
		scheduled_date=timezone.now() + timedelta(days=1),
		vehicle_class='BUSINESS',
		distance_km=11.5,
		estimated_duration_minutes=17,
		base_price=Decimal('138.00'),
		total_price=Decimal('138.00'),
	)
	values.update(fields)
	return Booking.objects.create(**values)


class DriverMatchingTests(TestCase):
	def setUp(self):
		self.criteria = MatchCriteria(
			vehicle_class='BUSINESS',
			origin_location=PICKUP,
			scheduled_at=timezone.now() + timedelta(days=1),
		)

	def test_only_approved_available_drivers_of_the_class(self):
		good = make_driver('good', rating=4.5)
		best = make_driver('best', rating=4.9)
		make_driver('unapproved', is_approved=False, rating=5.0)
		make_driver('busy', is_available=False, rating=5.0)
		make_driver('van_only', vehicle_class='VAN', rating=5.0)
		make_driver('retired_car', vehicle_active=False, rating=5.0)

		candidates = match_drivers(self.criteria)

		self.assertEqual([c.driver_id for c in candidates], [best.id, good.id])
		self.assertEqual(candidates[0].user_id, best.user_id)
		self.assertEqual(len(candidates[0].vehicle_ids), 1)

	def test_driver_with_several_matching_vehicles_is_listed_once(self):
		driver = make_driver('fleet')
		Vehicle.objects.create(
			driver=driver, make='Toyota', model='Crown', year=2020, color='White',
			plate_number='PL-fleet-2', vehicle_class='BUSINESS',
		)

		candidates = match_drivers(self.criteria)

		self.assertEqual(len(candidates), 1)
		self.assertEqual(len(candidates[0].vehicle_ids), 2)

	def test_results_are_capped(self):
		for i in range(12):
			make_driver(f'driver_{i}', rating=float(i))

		self.assertEqual(len(match_drivers(self.criteria)), 10)
		self.criteria.limit = 3
		self.assertEqual(len(match_drivers(self.criteria)), 3)

	@override_settings(DRIVER_MATCH_LIMIT=5)
	def test_cap_follows_settings(self):
		for i in range(7):
			make_driver(f'driver_{i}')

		self.assertEqual(len(match_drivers(self.criteria)), 5)

	def test_errors_yield_no_candidates(self):
		make_driver('good')

		with patch.object(DriverProfile.objects, 'filter', side_effect=RuntimeError('db gone')):
			self.assertEqual(match_drivers(self.criteria), [])

	def test_find_candidates_raises_database_errors(self):
		make_driver('good')

		with patch.object(DriverProfile.objects, 'filter', side_effect=OperationalError('db gone')):
			with self.assertRaises(OperationalError):
				find_candidates(self.criteria)


class MatchDriversTaskTests(TestCase):
	def setUp(self):
		self.client_user = User.objects.create_user(username='client', password='pass1234')
		self.driver = make_driver('good')

	def test_pending_booking_returns_candidates(self):
		booking = make_booking(self.client_user)

		result = match_drivers_for_booking.apply(args=(booking.id,)).get()

		self.assertEqual(result, [self.driver.id])

	@patch('services.matching.find_candidates')
	def test_cancelled_booking_is_skipped(self, mock_match):
		booking = make_booking(self.client_user, status='cancelled')

		self.assertEqual(match_drivers_for_booking.apply(args=(booking.id,)).get(), [])
		mock_match.assert_not_called()

	def test_missing_booking_is_skipped(self):
		self.assertEqual(match_drivers_for_booking.apply(args=(99999,)).get(), [])

	@patch('services.matching.find_candidates', side_effect=OperationalError('db gone'))
	def test_database_errors_are_retried(self, mock_find):
		booking = make_booking(self.client_user)

		with self.assertRaises(OperationalError):
			match_drivers_for_booking.apply(args=(booking.id,))

		# First attempt plus every retry
		self.assertEqual(mock_find.call_count, match_drivers_for_booking.max_retries + 1)


class DriverAvailabilityTests(TestCase):
	def setUp(self):
		cache.clear()
		self.driver = make_driver('good')
		Vehicle.objects.create(
			driver=self.driver, make='Toyota', model='Hiace', year=2019, color='White',
			plate_number='PL-van', vehicle_class='VAN',
		)

	def test_claim_and_release(self):
		self.assertTrue(claim_driver(self.driver.id))
		self.assertFalse(claim_driver(self.driver.id))

		self.assertTrue(release_driver(self.driver.id))
		self.assertFalse(release_driver(self.driver.id))
		self.assertFalse(release_driver(None))

		self.driver.refresh_from_db()
		self.assertTrue(self.driver.is_available)

	def test_unapproved_driver_cannot_be_claimed(self):
		DriverProfile.objects.filter(id=self.driver.id).update(is_approved=False)
		self.assertFalse(claim_driver(self.driver.id))

	def test_availability_snapshot_is_cached_until_invalidated(self):
		snapshot = get_driver_availability(self.driver.id)
		self.assertEqual(snapshot, {
			'driver_id': self.driver.id,
			'is_available': True,
			'is_approved': True,
			'vehicle_classes': ['BUSINESS', 'VAN'],
		})

		DriverProfile.objects.filter(id=self.driver.id).update(is_available=False)
		self.assertTrue(get_driver_availability(self.driver.id)['is_available'])

		VersionedCache().invalidate(CacheKeys.DRIVER, self.driver.id)
		self.assertFalse(get_driver_availability(self.driver.id)['is_available'])

	def test_unknown_driver(self):
		self.assertIsNone(get_driver_availability(99999))

	def test_availability_endpoint(self):
		api = APIClient()
		api.force_authenticate(user=self.driver.user)

		response = api.get(reverse('driver-availability', args=[self.driver.id]))
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['data']['vehicle_classes'], ['BUSINESS', 'VAN'])

		response = api.get(reverse('driver-availability', args=[99999]))
		self.assertEqual(response.status_code, 404)
