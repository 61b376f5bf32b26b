from datetime import datetime, timezone as dt_timezone
from decimal import Decimal, ROUND_HALF_UP
from unittest.mock import ANY, patch
from zoneinfo import ZoneInfo

from django.core.cache import cache
from django.test import SimpleTestCase

from services.booking_management import state_machine
from services.booking_management.exceptions import BookingNotFoundError, InvalidStatusTransitionError
from services.booking_management.results import ServiceResult
from services.cache import CacheKeys, VersionedCache
from services.pricing import PricingConfig, PricingEngine

HONG_KONG = ZoneInfo("Asia/Hong_Kong")

TSIM_SHA_TSUI = {
	"address": "Tsim Sha Tsui, Hong Kong",
	"latitude": 22.3193,
	"longitude": 114.1694,
	"jurisdiction": "HK",
}
FUTIAN = {
	"address": "Futian, Shenzhen",
	"latitude": 22.5431,
	"longitude": 114.0579,
	"jurisdiction": "CN",
}

# 2030-01-07 is a Monday, 2030-01-05 a Saturday
MONDAY_8AM = datetime(2030, 1, 7, 8, 0, tzinfo=HONG_KONG)
MONDAY_NOON = datetime(2030, 1, 7, 12, 0, tzinfo=HONG_KONG)
SATURDAY_2330 = datetime(2030, 1, 5, 23, 30, tzinfo=HONG_KONG)


def _names(breakdown):
	return [s.name for s in breakdown.surcharges]


def _amount(breakdown, name):
	return next(s.amount for s in breakdown.surcharges if s.name == name)


class DistanceAndDurationTests(SimpleTestCase):
	def setUp(self):
		self.engine = PricingEngine()

	def test_distance_is_symmetric(self):
		self.assertAlmostEqual(
			self.engine.distance(TSIM_SHA_TSUI, FUTIAN),
			self.engine.distance(FUTIAN, TSIM_SHA_TSUI),
			places=9,
		)

	def test_distance_to_same_point_is_zero(self):
		self.assertEqual(self.engine.distance(TSIM_SHA_TSUI, dict(TSIM_SHA_TSUI)), 0.0)

	def test_distance_is_in_kilometres(self):
		km = self.engine.distance(TSIM_SHA_TSUI, FUTIAN)
		self.assertGreater(km, 25)
		self.assertLess(km, 30)

	def test_duration_adds_border_overhead(self):
		self.assertEqual(self.engine.estimated_duration(40.0, False), 60)
		self.assertEqual(self.engine.estimated_duration(40.0, True), 120)

	def test_cross_border_compares_jurisdictions(self):
		self.assertTrue(PricingEngine.is_cross_border(TSIM_SHA_TSUI, FUTIAN))
		self.assertFalse(PricingEngine.is_cross_border(TSIM_SHA_TSUI, dict(TSIM_SHA_TSUI, latitude=22.3)))


class PricingTests(SimpleTestCase):
	def setUp(self):
		self.engine = PricingEngine()

	def test_weekday_peak_cross_border_trip(self):
		breakdown = self.engine.quote(TSIM_SHA_TSUI, FUTIAN, "BUSINESS", MONDAY_8AM)

		self.assertEqual(_names(breakdown), ["border_fee", "peak_hour"])
		self.assertEqual(_amount(breakdown, "border_fee"), Decimal("200.00"))
		peak = _amount(breakdown, "peak_hour")
		self.assertEqual(peak, (breakdown.base_price * Decimal("0.30")).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
		self.assertEqual(
			breakdown.total_price,
			(breakdown.base_price + Decimal("200") + peak).quantize(Decimal("1"), rounding=ROUND_HALF_UP),
		)
		self.assertEqual(breakdown.currency, "HKD")

	def test_saturday_night_applies_night_and_weekend_fees(self):
		breakdown = self.engine.quote(TSIM_SHA_TSUI, FUTIAN, "BUSINESS", SATURDAY_2330)

		self.assertEqual(_names(breakdown), ["border_fee", "time_surcharge"])
		self.assertEqual(_amount(breakdown, "time_surcharge"), Decimal("150.00"))
		time_line = breakdown.surcharges[-1]
		self.assertEqual(time_line.description, "Night and weekend surcharge")
		self.assertEqual(
			breakdown.total_price,
			(breakdown.base_price + Decimal("350")).quantize(Decimal("1"), rounding=ROUND_HALF_UP),
		)

	def test_weekend_daytime_has_no_peak_surcharge(self):
		saturday_8am = datetime(2030, 1, 5, 8, 0, tzinfo=HONG_KONG)
		breakdown = self.engine.price(10.0, "BUSINESS", saturday_8am, False)

		self.assertEqual(_names(breakdown), ["time_surcharge"])
		self.assertEqual(breakdown.surcharges[0].description, "Weekend surcharge")
		self.assertEqual(breakdown.surcharges[0].amount, Decimal("50.00"))

	def test_long_distance_discount(self):
		breakdown = self.engine.price(60.0, "BUSINESS", MONDAY_NOON, False)

		self.assertEqual(breakdown.base_price, Decimal("720.00"))
		self.assertEqual(_names(breakdown), ["long_distance_discount"])
		self.assertEqual(_amount(breakdown, "long_distance_discount"), Decimal("-144.00"))
		self.assertEqual(breakdown.total_price, Decimal("576"))

	def test_unknown_vehicle_class_uses_default_rate(self):
		self.assertEqual(self.engine.base_price(10.0, "TUKTUK"), Decimal("120.00"))
		self.assertEqual(self.engine.base_price(10.0, "luxury"), Decimal("250.00"))

	def test_scheduled_time_is_evaluated_in_pricing_timezone(self):
		# 00:30 UTC is 08:30 in Hong Kong
		utc_time = datetime(2030, 1, 7, 0, 30, tzinfo=dt_timezone.utc)
		breakdown = self.engine.price(10.0, "BUSINESS", utc_time, False)
		self.assertEqual(_names(breakdown), ["peak_hour"])

	def test_breakdown_as_dict(self):
		data = self.engine.price(10.0, "VAN", MONDAY_NOON, False).as_dict()
		self.assertEqual(data["base_price"], "150.00")
		self.assertEqual(data["total_price"], "150")
		self.assertEqual(data["surcharges"], [])
		self.assertEqual(data["distance_km"], 10.0)
		self.assertEqual(data["estimated_duration_minutes"], 15)

	def test_estimate_range_is_base_and_markup(self):
		base = self.engine.base_price(self.engine.distance(TSIM_SHA_TSUI, FUTIAN), "BUSINESS")
		envelope = self.engine.estimate_range(TSIM_SHA_TSUI, FUTIAN, "BUSINESS")

		self.assertEqual(envelope["min_price"], str(base.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))
		self.assertEqual(envelope["max_price"], str((base * Decimal("1.5")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)))
		self.assertEqual(envelope["currency"], "HKD")


class PricingConfigTests(SimpleTestCase):
	def test_overrides_are_converted_to_decimal(self):
		config = PricingConfig.from_settings({"peak_hour_uplift": "0.25", "vehicle_rates": {"van": 16}})
		self.assertEqual(config.peak_hour_uplift, Decimal("0.25"))
		self.assertEqual(config.rate_for("VAN"), Decimal("16"))

	def test_unknown_setting_is_rejected(self):
		with self.assertRaises(ValueError):
			PricingConfig.from_settings({"surge_multiplier": 2})

	def test_empty_overrides_give_defaults(self):
		self.assertEqual(PricingConfig.from_settings(None), PricingConfig())


class StateMachineTests(SimpleTestCase):
	def test_allowed_transitions(self):
		self.assertTrue(state_machine.can_transition("pending", "confirmed"))
		self.assertTrue(state_machine.can_transition("pending", "cancelled"))
		self.assertTrue(state_machine.can_transition("confirmed", "in_progress"))
		self.assertTrue(state_machine.can_transition("confirmed", "cancelled"))
		self.assertTrue(state_machine.can_transition("in_progress", "completed"))

	def test_rejected_transitions(self):
		self.assertFalse(state_machine.can_transition("pending", "completed"))
		self.assertFalse(state_machine.can_transition("in_progress", "cancelled"))
		self.assertFalse(state_machine.can_transition("completed", "pending"))
		self.assertFalse(state_machine.can_transition("unknown", "pending"))

	def test_terminal_states(self):
		self.assertEqual(state_machine.TERMINAL_STATES, {"completed", "cancelled"})
		self.assertTrue(state_machine.is_terminal("cancelled"))
		self.assertFalse(state_machine.is_terminal("in_progress"))

	def test_assert_transition_raises_with_field_details(self):
		with self.assertRaises(InvalidStatusTransitionError) as ctx:
			state_machine.assert_transition("cancelled", "confirmed")
		self.assertEqual(ctx.exception.code, "INVALID_STATUS_TRANSITION")
		self.assertIn("status", ctx.exception.details)


class ServiceResultTests(SimpleTestCase):
	def test_success_shape(self):
		self.assertEqual(ServiceResult.ok({"id": 1}).to_dict(), {"success": True, "data": {"id": 1}})

	def test_error_shape_omits_empty_details(self):
		result = ServiceResult.from_error(BookingNotFoundError())
		self.assertEqual(
			result.to_dict(),
			{"success": False, "error": {"code": "BOOKING_NOT_FOUND", "message": "Booking not found"}},
		)


class VersionedCacheTests(SimpleTestCase):
	def setUp(self):
		cache.clear()
		self.cache = VersionedCache(default_ttl=60)

	def test_set_then_get(self):
		self.assertTrue(self.cache.set(CacheKeys.BOOKING, 1, {"id": 1}))
		self.assertEqual(self.cache.get(CacheKeys.BOOKING, 1), {"id": 1})

	def test_miss_returns_default(self):
		self.assertIsNone(self.cache.get(CacheKeys.BOOKING, 404))
		self.assertEqual(self.cache.get(CacheKeys.BOOKING, 404, default="x"), "x")

	def test_invalidate_orphans_every_suffix(self):
		self.cache.set(CacheKeys.DRIVER, 7, "a", suffix="detail")
		self.cache.set(CacheKeys.DRIVER, 7, "b", suffix="availability")
		self.cache.set(CacheKeys.DRIVER, 8, "c")

		self.assertTrue(self.cache.invalidate(CacheKeys.DRIVER, 7))

		self.assertIsNone(self.cache.get(CacheKeys.DRIVER, 7, suffix="detail"))
		self.assertIsNone(self.cache.get(CacheKeys.DRIVER, 7, suffix="availability"))
		self.assertEqual(self.cache.get(CacheKeys.DRIVER, 8), "c")

		self.cache.set(CacheKeys.DRIVER, 7, "fresh")
		self.assertEqual(self.cache.get(CacheKeys.DRIVER, 7), "fresh")

	def test_get_or_set_loads_once(self):
		calls = []

		def loader():
			calls.append(1)
			return {"loaded": True}

		self.assertEqual(self.cache.get_or_set(CacheKeys.BOOKING, 3, loader), {"loaded": True})
		self.assertEqual(self.cache.get_or_set(CacheKeys.BOOKING, 3, loader), {"loaded": True})
		self.assertEqual(len(calls), 1)

	def test_get_or_set_does_not_cache_none(self):
		calls = []

		def loader():
			calls.append(1)
			return None

		self.cache.get_or_set(CacheKeys.BOOKING, 4, loader)
		self.cache.get_or_set(CacheKeys.BOOKING, 4, loader)
		self.assertEqual(len(calls), 2)

	@patch("services.cache.caches")
	def test_backend_errors_fail_open(self, mock_caches):
		backend = mock_caches.__getitem__.return_value
		backend.get.side_effect = ConnectionError("redis down")
		backend.set.side_effect = ConnectionError("redis down")

		self.assertIsNone(self.cache.get(CacheKeys.BOOKING, 1))
		self.assertFalse(self.cache.set(CacheKeys.BOOKING, 1, {"id": 1}))
		self.assertFalse(self.cache.invalidate(CacheKeys.BOOKING, 1))
		self.assertEqual(self.cache.get_or_set(CacheKeys.BOOKING, 1, lambda: "db"), "db")

	@patch("services.cache.caches")
	def test_version_tokens_expire(self, mock_caches):
		backend = mock_caches.__getitem__.return_value
		backend.get.return_value = None

		self.cache.set(CacheKeys.BOOKING, 1, {"id": 1})
		backend.add.assert_called_once_with("booking:1:ver", ANY, 120)

		self.cache.invalidate(CacheKeys.BOOKING, 1)
		backend.set.assert_called_once_with("booking:1:ver", ANY, 120)

	def test_invalidation_during_load_is_not_overwritten(self):
		def loader():
			value = {"status": "pending"}
			self.cache.invalidate(CacheKeys.BOOKING, 1)
			return value

		self.assertEqual(self.cache.get_or_set(CacheKeys.BOOKING, 1, loader), {"status": "pending"})
		self.assertIsNone(self.cache.get(CacheKeys.BOOKING, 1))
