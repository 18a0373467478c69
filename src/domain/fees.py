"""
Delivery Fee Engine  (Strategy Pattern)
=======================================

Per-km schedule (DELIVERY, SHOPPING)
------------------------------------
subtotal = Base_Fee + Distance x Rate_Per_KM + Package_Fee
total    = clamp(subtotal + subtotal x 2.5 %, MIN_FEE, MAX_FEE)

Errand schedule
---------------
subtotal = Errand_Base + Distance x Errand_Rate + Package_Fee
total    = clamp(subtotal + Errand_Service_Fee, ERRAND_MIN, ERRAND_MAX)

Flat shopping schedule (beyond the distance ceiling)
----------------------------------------------------
total = Items_Total + Base_Fee + Fragile_Surcharge      (no clamp)

* **Package_Fee** = express 15 + fragile 10 + 2 / kg above 5 kg
* The clamp is applied *after* the transaction fee is added.
* Commission: platform 20 %, rider 80 % of the clamped total.

All money is rounded half-up to 2 decimals, distance to 1 decimal.
Arithmetic is done in ``Decimal`` so that e.g. 1.125 rounds to 1.13.

Complexity: O(items) per calculation.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from .enums import OrderType
from .errors import DistanceExceededError, InvalidInputError

BASE_FEE = 15.0
PER_KM_RATE = 3.0
MIN_FEE = 15.0
MAX_FEE = 100.0
TRANSACTION_FEE_PCT = 0.025

ERRAND_BASE = 30.0
ERRAND_PER_KM = 2.5
ERRAND_MIN = 15.0
ERRAND_MAX = 100.0
ERRAND_SERVICE_FEE = 30.0

MAX_DELIVERY_DISTANCE_KM = 50.0
SHOPPING_MAX_DISTANCE_KM = 100.0

EXPRESS_SURCHARGE = 15.0
FRAGILE_SURCHARGE = 10.0
FREE_WEIGHT_KG = 5.0
OVERWEIGHT_RATE_PER_KG = 2.0

PLATFORM_COMMISSION_PCT = 0.20
RIDER_FEE_PCT = 0.80

_CENT = Decimal("0.01")
_TENTH = Decimal("0.1")


def _d(value: float) -> Decimal:
    return Decimal(str(value))


def money(value: Decimal | float) -> float:
    """Round half-up to 2 decimals."""
    if not isinstance(value, Decimal):
        value = _d(value)
    return float(value.quantize(_CENT, rounding=ROUND_HALF_UP))


def _clamp(value: Decimal, low: float, high: float) -> Decimal:
    return max(_d(low), min(value, _d(high)))


# ── Value objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class LineItem:
    name: str
    price: float
    quantity: int = 1


@dataclass(frozen=True)
class PackageAttributes:
    weight_kg: float = 0.0
    fragile: bool = False
    express: bool = False
    items: tuple[LineItem, ...] = ()

    def validate(self) -> None:
        if not math.isfinite(self.weight_kg) or self.weight_kg < 0:
            raise InvalidInputError(
                f"Package weight must be >= 0, got {self.weight_kg!r}"
            )
        for item in self.items:
            if not math.isfinite(item.price) or item.price < 0:
                raise InvalidInputError(f"Item {item.name!r} has a negative price")
            if item.quantity < 0:
                raise InvalidInputError(
                    f"Item {item.name!r} has a negative quantity"
                )

    @property
    def items_total(self) -> Decimal:
        return sum((_d(i.price) * i.quantity for i in self.items), Decimal(0))


@dataclass(frozen=True)
class FeeBreakdown:
    order_type: OrderType
    base_fee: float
    distance_fee: float
    package_fee: float
    transaction_fee: float
    distance: float
    subtotal: float
    total: float
    platform_commission: float = 0.0
    rider_fee: float = 0.0
    tier_bonus: float = 0.0
    rider_fee_with_bonus: float = 0.0
    items_total: float = 0.0
    flat_rate: bool = False

    def with_commission(
        self,
        platform_pct: float = PLATFORM_COMMISSION_PCT,
        rider_pct: float = RIDER_FEE_PCT,
    ) -> FeeBreakdown:
        """Split the total between platform and rider."""
        total = _d(self.total)
        rider_fee = money(total * _d(rider_pct))
        return replace(
            self,
            platform_commission=money(total * _d(platform_pct)),
            rider_fee=rider_fee,
            tier_bonus=0.0,
            rider_fee_with_bonus=rider_fee,
        )

    def with_tier_bonus(self, bonus_amount: float, total_amount: float) -> FeeBreakdown:
        """Amend the rider payout; every other field stays as quoted."""
        return replace(
            self,
            tier_bonus=money(bonus_amount),
            rider_fee_with_bonus=money(total_amount),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "baseFee": self.base_fee,
            "distanceFee": self.distance_fee,
            "packageFee": self.package_fee,
            "transactionFee": self.transaction_fee,
            "distance": self.distance,
            "subtotal": self.subtotal,
            "total": self.total,
            "platformCommission": self.platform_commission,
            "riderFee": self.rider_fee,
            "tierBonus": self.tier_bonus,
            "riderFeeWithBonus": self.rider_fee_with_bonus,
            "itemsTotal": self.items_total,
            "flatRate": self.flat_rate,
            "orderType": self.order_type.value,
        }
        if self.order_type is OrderType.ERRAND:
            data["serviceFee"] = self.transaction_fee
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FeeBreakdown:
        return cls(
            order_type=OrderType(data["orderType"]),
            base_fee=data["baseFee"],
            distance_fee=data["distanceFee"],
            package_fee=data["packageFee"],
            transaction_fee=data["transactionFee"],
            distance=data["distance"],
            subtotal=data["subtotal"],
            total=data["total"],
            platform_commission=data.get("platformCommission", 0.0),
            rider_fee=data.get("riderFee", 0.0),
            tier_bonus=data.get("tierBonus", 0.0),
            rider_fee_with_bonus=data.get("riderFeeWithBonus", 0.0),
            items_total=data.get("itemsTotal", 0.0),
            flat_rate=data.get("flatRate", False),
        )


@dataclass(frozen=True)
class FeeSchedule:
    """One named set of fee constants."""

    base_fee: float
    per_km_rate: float
    min_fee: float
    max_fee: float


@dataclass(frozen=True)
class Surcharges:
    express: float = EXPRESS_SURCHARGE
    fragile: float = FRAGILE_SURCHARGE
    free_weight_kg: float = FREE_WEIGHT_KG
    overweight_rate_per_kg: float = OVERWEIGHT_RATE_PER_KG

    def package_fee(self, package: PackageAttributes) -> Decimal:
        fee = Decimal(0)
        if package.express:
            fee += _d(self.express)
        if package.fragile:
            fee += _d(self.fragile)
        if package.weight_kg > self.free_weight_kg:
            fee += (_d(package.weight_kg) - _d(self.free_weight_kg)) * _d(
                self.overweight_rate_per_kg
            )
        return fee


DELIVERY_SCHEDULE = FeeSchedule(BASE_FEE, PER_KM_RATE, MIN_FEE, MAX_FEE)
ERRAND_SCHEDULE = FeeSchedule(ERRAND_BASE, ERRAND_PER_KM, ERRAND_MIN, ERRAND_MAX)


# ── Strategy hierarchy ────────────────────────────────────────────────


class FeeStrategy(ABC):
    order_type: OrderType

    @abstractmethod
    def calculate(
        self, distance_km: float, package: PackageAttributes
    ) -> FeeBreakdown: ...


class PerKmFee(FeeStrategy):
    """Base + per-km + surcharges, plus a percentage transaction fee."""

    def __init__(
        self,
        order_type: OrderType,
        schedule: FeeSchedule = DELIVERY_SCHEDULE,
        surcharges: Surcharges = Surcharges(),
        transaction_fee_pct: float = TRANSACTION_FEE_PCT,
    ):
        self.order_type = order_type
        self.schedule = schedule
        self.surcharges = surcharges
        self.transaction_fee_pct = transaction_fee_pct

    def transaction_fee(self, subtotal: Decimal) -> Decimal:
        return subtotal * _d(self.transaction_fee_pct)

    def calculate(
        self, distance_km: float, package: PackageAttributes
    ) -> FeeBreakdown:
        base_fee = _d(self.schedule.base_fee)
        distance_fee = _d(distance_km) * _d(self.schedule.per_km_rate)
        package_fee = self.surcharges.package_fee(package)
        subtotal = base_fee + distance_fee + package_fee
        transaction_fee = self.transaction_fee(subtotal)
        total = _clamp(
            subtotal + transaction_fee, self.schedule.min_fee, self.schedule.max_fee
        )
        return FeeBreakdown(
            order_type=self.order_type,
            base_fee=money(base_fee),
            distance_fee=money(distance_fee),
            package_fee=money(package_fee),
            transaction_fee=money(transaction_fee),
            distance=float(_d(distance_km).quantize(_TENTH, rounding=ROUND_HALF_UP)),
            subtotal=money(subtotal),
            total=money(total),
        )


class ErrandFee(PerKmFee):
    """Errand schedule: own base/rate/clamp and a flat service fee."""

    def __init__(
        self,
        schedule: FeeSchedule = ERRAND_SCHEDULE,
        surcharges: Surcharges = Surcharges(),
        service_fee: float = ERRAND_SERVICE_FEE,
    ):
        super().__init__(OrderType.ERRAND, schedule, surcharges)
        self.service_fee = service_fee

    def transaction_fee(self, subtotal: Decimal) -> Decimal:
        return _d(self.service_fee)


class FlatShoppingFee(FeeStrategy):
    """Shopping orders beyond the distance ceiling: no distance component."""

    order_type = OrderType.SHOPPING

    def __init__(
        self,
        base_fee: float = BASE_FEE,
        fragile_surcharge: float = FRAGILE_SURCHARGE,
        transaction_fee_pct: float = TRANSACTION_FEE_PCT,
    ):
        self.base_fee = base_fee
        self.fragile_surcharge = fragile_surcharge
        self.transaction_fee_pct = transaction_fee_pct

    def calculate(
        self, distance_km: float, package: PackageAttributes
    ) -> FeeBreakdown:
        items_total = package.items_total
        package_fee = _d(self.fragile_surcharge) if package.fragile else Decimal(0)
        total = items_total + _d(self.base_fee) + package_fee
        return FeeBreakdown(
            order_type=self.order_type,
            base_fee=money(_d(self.base_fee)),
            distance_fee=0.0,
            package_fee=money(package_fee),
            transaction_fee=money(total * _d(self.transaction_fee_pct)),
            distance=float(_d(distance_km).quantize(_TENTH, rounding=ROUND_HALF_UP)),
            subtotal=money(items_total),
            total=money(total),
            items_total=money(items_total),
            flat_rate=True,
        )


# ── Engine facade ─────────────────────────────────────────────────────


def parse_order_type(value: Any) -> OrderType:
    try:
        return OrderType(value)
    except ValueError:
        raise InvalidInputError(f"Unknown order type: {value!r}") from None


class FeeEngine:
    """High-level API used by the order lifecycle and the API layer."""

    def __init__(
        self,
        delivery: FeeSchedule = DELIVERY_SCHEDULE,
        errand: FeeSchedule = ERRAND_SCHEDULE,
        surcharges: Surcharges = Surcharges(),
        transaction_fee_pct: float = TRANSACTION_FEE_PCT,
        errand_service_fee: float = ERRAND_SERVICE_FEE,
        max_distance_km: float = MAX_DELIVERY_DISTANCE_KM,
        platform_commission_pct: float = PLATFORM_COMMISSION_PCT,
        rider_fee_pct: float = RIDER_FEE_PCT,
    ):
        self.max_distance_km = max_distance_km
        self.platform_commission_pct = platform_commission_pct
        self.rider_fee_pct = rider_fee_pct
        self._strategies: dict[OrderType, FeeStrategy] = {
            OrderType.DELIVERY: PerKmFee(
                OrderType.DELIVERY, delivery, surcharges, transaction_fee_pct
            ),
            OrderType.SHOPPING: PerKmFee(
                OrderType.SHOPPING, delivery, surcharges, transaction_fee_pct
            ),
            OrderType.ERRAND: ErrandFee(errand, surcharges, errand_service_fee),
        }
        self._flat_shopping = FlatShoppingFee(
            delivery.base_fee, surcharges.fragile, transaction_fee_pct
        )

    @classmethod
    def from_settings(cls, settings) -> FeeEngine:
        return cls(
            delivery=FeeSchedule(
                settings.base_fee,
                settings.per_km_rate,
                settings.min_fee,
                settings.max_fee,
            ),
            errand=FeeSchedule(
                settings.errand_base,
                settings.errand_per_km,
                settings.errand_min,
                settings.errand_max,
            ),
            surcharges=Surcharges(
                settings.express_surcharge,
                settings.fragile_surcharge,
                settings.free_weight_kg,
                settings.overweight_rate_per_kg,
            ),
            transaction_fee_pct=settings.transaction_fee_pct,
            errand_service_fee=settings.errand_service_fee,
            max_distance_km=settings.max_delivery_distance_km,
            platform_commission_pct=settings.platform_commission_pct,
            rider_fee_pct=settings.rider_fee_pct,
        )

    def compute_fees(
        self,
        distance_km: float,
        package: Optional[PackageAttributes] = None,
        order_type: OrderType | str = OrderType.DELIVERY,
        max_distance_km: Optional[float] = None,
    ) -> FeeBreakdown:
        """Return the full breakdown, commission split included.

        ``max_distance_km`` lets callers pick the ceiling per order type;
        it defaults to the engine-wide maximum delivery distance.
        """
        order_type = parse_order_type(order_type)
        package = package or PackageAttributes()
        if (
            isinstance(distance_km, bool)
            or not isinstance(distance_km, (int, float))
            or not math.isfinite(distance_km)
            or distance_km < 0
        ):
            raise InvalidInputError(f"Distance must be >= 0, got {distance_km!r}")
        package.validate()

        ceiling = self.max_distance_km if max_distance_km is None else max_distance_km
        strategy = self._strategies[order_type]
        if distance_km > ceiling:
            if order_type is not OrderType.SHOPPING:
                raise DistanceExceededError(distance_km, ceiling)
            strategy = self._flat_shopping

        breakdown = strategy.calculate(distance_km, package)
        return breakdown.with_commission(
            self.platform_commission_pct, self.rider_fee_pct
        )


_default_engine = FeeEngine()


def compute_fees(
    distance_km: float,
    package: Optional[PackageAttributes] = None,
    order_type: OrderType | str = OrderType.DELIVERY,
    max_distance_km: Optional[float] = None,
) -> FeeBreakdown:
    """Module-level shortcut using the default fee constants."""
    return _default_engine.compute_fees(
        distance_km, package, order_type, max_distance_km
    )
