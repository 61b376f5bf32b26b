"""
Trip pricing.

Computes distance, duration and an itemised price for a point-to-point trip.
Everything here is pure: no database, no cache, no clock. Callers pass the
scheduled time explicitly, which keeps quotes reproducible and safe to run
from any thread.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo

from common.utils.geo import distance_km

CENTS = Decimal("0.01")
WHOLE_UNIT = Decimal("1")

PEAK_HOURS = frozenset({7, 8, 9, 17, 18, 19})
WEEKEND_DAYS = frozenset({5, 6})  # datetime.weekday(): Saturday, Sunday

DEFAULT_VEHICLE_RATES = {
    "BUSINESS": Decimal("12"),
    "EXECUTIVE": Decimal("18"),
    "LUXURY": Decimal("25"),
    "SUV": Decimal("20"),
    "VAN": Decimal("15"),
}


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingConfig:
    """Tariff used by :class:`PricingEngine`. Rates are per kilometre."""

    vehicle_rates: Mapping[str, Decimal] = field(default_factory=lambda: dict(DEFAULT_VEHICLE_RATES))
    default_rate: Decimal = Decimal("12")
    currency: str = "HKD"
    border_fee: Decimal = Decimal("200")
    peak_hour_uplift: Decimal = Decimal("0.30")
    long_distance_threshold_km: float = 50.0
    long_distance_discount: Decimal = Decimal("0.20")
    night_fee: Decimal = Decimal("100")
    weekend_fee: Decimal = Decimal("50")
    average_speed_kmh: float = 40.0
    border_crossing_minutes: int = 60
    quote_markup: Decimal = Decimal("1.5")
    timezone: str = "Asia/Hong_Kong"

    @classmethod
    def from_settings(cls, overrides: Optional[Mapping[str, Any]] = None) -> "PricingConfig":
        """Build a config from a ``BOOKING_PRICING``-style mapping."""
        config = cls()
        if not overrides:
            return config

        values: Dict[str, Any] = {}
        for name, value in overrides.items():
            if not hasattr(config, name):
                raise ValueError(f"Unknown pricing setting: {name}")
            if name == "vehicle_rates":
                value = {str(k).upper(): Decimal(str(v)) for k, v in value.items()}
            elif isinstance(getattr(config, name), Decimal):
                value = Decimal(str(value))
            values[name] = value
        return replace(config, **values)

    def rate_for(self, vehicle_class: str) -> Decimal:
        return self.vehicle_rates.get((vehicle_class or "").upper(), self.default_rate)


@dataclass(frozen=True)
class Surcharge:
    name: str
    description: str
    amount: Decimal

    def as_dict(self) -> Dict[str, str]:
        return {"name": self.name, "description": self.description, "amount": str(self.amount)}


@dataclass(frozen=True)
class PriceBreakdown:
    """Itemised price for one trip. Embedded into a booking at creation."""

    base_price: Decimal
    surcharges: List[Surcharge]
    total_price: Decimal
    currency: str
    distance_km: float
    estimated_duration_minutes: int

    @property
    def surcharge_total(self) -> Decimal:
        return sum((s.amount for s in self.surcharges), Decimal("0"))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "base_price": str(self.base_price),
            "surcharges": [s.as_dict() for s in self.surcharges],
            "total_price": str(self.total_price),
            "currency": self.currency,
            "distance_km": self.distance_km,
            "estimated_duration_minutes": self.estimated_duration_minutes,
        }


class PricingEngine:
    """
    Distance, duration and price computation.

    Surcharges are independent of each other and all apply when their
    condition holds:

    * ``border_fee``: pickup and dropoff in different jurisdictions
    * ``peak_hour``: weekday departures at 7-9h or 17-19h, a share of base
    * ``long_distance_discount``: trips over the threshold, a negative share of base
    * ``time_surcharge``: night (22h-6h) and weekend fees, merged into one line
    """

    def __init__(self, config: Optional[PricingConfig] = None):
        self.config = config or PricingConfig()

    # ---------------------- Distance & duration ----------------------

    def distance(self, origin: Mapping[str, Any], destination: Mapping[str, Any]) -> float:
        """Great-circle distance in kilometres."""
        return distance_km(origin, destination)

    @staticmethod
    def is_cross_border(pickup: Mapping[str, Any], dropoff: Mapping[str, Any]) -> bool:
        return (pickup.get("jurisdiction") or "") != (dropoff.get("jurisdiction") or "")

    def estimated_duration(self, distance_km_value: float, cross_border: bool) -> int:
        minutes = distance_km_value / self.config.average_speed_kmh * 60
        if cross_border:
            minutes += self.config.border_crossing_minutes
        return int(round(minutes))

    # ---------------------- Price ----------------------

    def _local(self, scheduled_at: datetime) -> datetime:
        if scheduled_at.tzinfo is None:
            return scheduled_at
        return scheduled_at.astimezone(ZoneInfo(self.config.timezone))

    def base_price(self, distance_km_value: float, vehicle_class: str) -> Decimal:
        return _money(Decimal(str(distance_km_value)) * self.config.rate_for(vehicle_class))

    def surcharges(
        self,
        base_price: Decimal,
        distance_km_value: float,
        scheduled_at: datetime,
        cross_border: bool,
    ) -> List[Surcharge]:
        cfg = self.config
        local = self._local(scheduled_at)
        hour, weekday = local.hour, local.weekday()
        is_weekend = weekday in WEEKEND_DAYS
        items: List[Surcharge] = []

        if cross_border:
            items.append(Surcharge("border_fee", "Cross-border service fee", _money(cfg.border_fee)))

        if not is_weekend and hour in PEAK_HOURS:
            items.append(Surcharge(
                "peak_hour",
                "Peak hour surcharge",
                _money(base_price * cfg.peak_hour_uplift),
            ))

        if distance_km_value > cfg.long_distance_threshold_km:
            items.append(Surcharge(
                "long_distance_discount",
                f"Long distance discount (over {cfg.long_distance_threshold_km:g}km)",
                -_money(base_price * cfg.long_distance_discount),
            ))

        time_fee = Decimal("0")
        reasons = []
        if hour >= 22 or hour <= 6:
            time_fee += cfg.night_fee
            reasons.append("night")
        if is_weekend:
            time_fee += cfg.weekend_fee
            reasons.append("weekend")
        if reasons:
            items.append(Surcharge(
                "time_surcharge",
                f"{' and '.join(reasons).capitalize()} surcharge",
                _money(time_fee),
            ))

        return items

    def price(
        self,
        distance_km_value: float,
        vehicle_class: str,
        scheduled_at: datetime,
        cross_border: bool,
    ) -> PriceBreakdown:
        base = self.base_price(distance_km_value, vehicle_class)
        items = self.surcharges(base, distance_km_value, scheduled_at, cross_border)
        total = (base + sum((s.amount for s in items), Decimal("0"))).quantize(
            WHOLE_UNIT, rounding=ROUND_HALF_UP
        )
        return PriceBreakdown(
            base_price=base,
            surcharges=items,
            total_price=total,
            currency=self.config.currency,
            distance_km=round(distance_km_value, 1),
            estimated_duration_minutes=self.estimated_duration(distance_km_value, cross_border),
        )

    def quote(
        self,
        pickup: Mapping[str, Any],
        dropoff: Mapping[str, Any],
        vehicle_class: str,
        scheduled_at: datetime,
    ) -> PriceBreakdown:
        """Full breakdown for a trip between two locations."""
        return self.price(
            self.distance(pickup, dropoff),
            vehicle_class,
            scheduled_at,
            self.is_cross_border(pickup, dropoff),
        )

    def estimate_range(
        self,
        pickup: Mapping[str, Any],
        dropoff: Mapping[str, Any],
        vehicle_class: str,
    ) -> Dict[str, Any]:
        """
        Cheap min/max envelope shown before a booking exists.

        Uses the base price only; the upper bound is a flat markup rather than
        a surcharge evaluation.
        """
        km = self.distance(pickup, dropoff)
        base = self.base_price(km, vehicle_class)
        return {
            "min_price": str(base.quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)),
            "max_price": str((base * self.config.quote_markup).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)),
            "distance_km": round(km, 1),
            "currency": self.config.currency,
        }
