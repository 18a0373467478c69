"""
Rider Incentive / Tier Engine
=============================

Points
------
* 10 per completed delivery
* +15 express, +5 weekend (Sat/Sun), +5 peak hour [17:00, 21:00)
* +5 for a five-star rating

Weekend and peak hour are evaluated on the *local* calendar of the
delivered timestamp.

Tiers (by lifetime points, never by spendable points)
-----------------------------------------------------
BRONZE [0, 500) · SILVER [500, 1500) · GOLD [1500, 5000) · PLATINUM [5000, ∞)

Tier bonus on the rider fee: 0 / 5 / 10 / 15 %.

Redemption: 100 points = 1 currency unit, minimum 100 points.

Everything here is pure; persistence and atomicity live in
``src.services.incentives``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Optional

from .enums import Tier
from .errors import InsufficientBalanceError, InsufficientPointsError, InvalidInputError
from .fees import money

INCENTIVE_POINTS = {
    "DELIVERY": 10,
    "EXPRESS": 15,
    "FIVE_STAR": 5,
    "WEEKEND": 5,
    "PEAK_HOUR": 5,
}

TIER_THRESHOLDS: dict[Tier, int] = {
    Tier.BRONZE: 0,
    Tier.SILVER: 500,
    Tier.GOLD: 1500,
    Tier.PLATINUM: 5000,
}

TIER_BONUS_PCT: dict[Tier, int] = {
    Tier.BRONZE: 0,
    Tier.SILVER: 5,
    Tier.GOLD: 10,
    Tier.PLATINUM: 15,
}

PEAK_HOURS = range(17, 21)
POINTS_PER_CURRENCY_UNIT = 100
MIN_REDEMPTION_POINTS = 100

# Ledger reason prefix for delivery awards; one such entry per order.
DELIVERY_REASON = "Delivery completed"


@dataclass(frozen=True)
class DeliveryPoints:
    points: int
    reasons: tuple[str, ...] = ()


@dataclass(frozen=True)
class TierBonus:
    bonus_percentage: int
    bonus_amount: float
    total_amount: float


@dataclass(frozen=True)
class Redemption:
    points_redeemed: int
    cash_value: float
    remaining_points: int


@dataclass(frozen=True)
class LedgerEntry:
    amount: int
    reason: str
    awarded_at: datetime
    order_id: Optional[int] = None


@dataclass(frozen=True)
class Achievement:
    name: str
    description: str
    awarded_at: datetime
    points_awarded: int = 0
    icon: str = "trophy"


# ── Pure rules ────────────────────────────────────────────────────────


def points_for_delivery(
    express: bool, delivered_at: datetime, tz: Optional[tzinfo] = None
) -> DeliveryPoints:
    """Base points plus every bonus that applies; bonuses stack."""
    local = delivered_at.astimezone(tz) if tz is not None else delivered_at
    points = INCENTIVE_POINTS["DELIVERY"]
    reasons: list[str] = []

    if express:
        points += INCENTIVE_POINTS["EXPRESS"]
        reasons.append("Express delivery")
    if local.weekday() >= 5:
        points += INCENTIVE_POINTS["WEEKEND"]
        reasons.append("Weekend delivery")
    if local.hour in PEAK_HOURS:
        points += INCENTIVE_POINTS["PEAK_HOUR"]
        reasons.append("Peak hour delivery")

    return DeliveryPoints(points, tuple(reasons))


def evaluate_tier(lifetime_points: int) -> Tier:
    """Step function over lifetime points."""
    tier = Tier.BRONZE
    for candidate, threshold in TIER_THRESHOLDS.items():
        if lifetime_points >= threshold:
            tier = candidate
    return tier


def tier_bonus(base_amount: float, tier: Tier) -> TierBonus:
    pct = TIER_BONUS_PCT.get(tier, 0)
    bonus = Decimal(str(base_amount)) * pct / 100
    return TierBonus(
        bonus_percentage=pct,
        bonus_amount=money(bonus),
        total_amount=money(Decimal(str(base_amount)) + bonus),
    )


def next_tier(tier: Tier) -> Optional[Tier]:
    tiers = list(Tier)
    idx = tiers.index(tier)
    return tiers[idx + 1] if idx + 1 < len(tiers) else None


# ── Rider incentive state ─────────────────────────────────────────────


@dataclass
class RiderIncentives:
    current_points: int = 0
    lifetime_points: int = 0
    tier: Tier = Tier.BRONZE
    bonus_history: list[LedgerEntry] = field(default_factory=list)
    achievements: list[Achievement] = field(default_factory=list)

    def award(
        self,
        points: int,
        reason: str,
        at: datetime,
        order_id: Optional[int] = None,
    ) -> Optional[Achievement]:
        """Credit points and re-evaluate tier.

        Returns the achievement recorded if the award crossed a tier
        threshold, else ``None``.
        """
        if points <= 0:
            raise InvalidInputError(f"Points to award must be positive, got {points}")
        self.current_points += points
        self.lifetime_points += points
        self.bonus_history.append(LedgerEntry(points, reason, at, order_id))
        return self._reevaluate_tier(at)

    def delivery_award(self, order_id: int) -> Optional[LedgerEntry]:
        """The ledger entry that rewarded delivery of *order_id*, if any."""
        for entry in self.bonus_history:
            if entry.order_id == order_id and entry.reason.startswith(DELIVERY_REASON):
                return entry
        return None

    def redeem(self, points: int, at: datetime) -> Redemption:
        """Spend points; lifetime points and tier are untouched."""
        if points < MIN_REDEMPTION_POINTS:
            raise InsufficientPointsError(
                f"Minimum redemption is {MIN_REDEMPTION_POINTS} points"
            )
        if points > self.current_points:
            raise InsufficientBalanceError(
                f"Cannot redeem {points} points; balance is {self.current_points}"
            )
        cash_value = money(Decimal(points) / POINTS_PER_CURRENCY_UNIT)
        self.current_points -= points
        self.bonus_history.append(
            LedgerEntry(-points, f"Redeemed for {cash_value:.2f} cash", at)
        )
        return Redemption(points, cash_value, self.current_points)

    def _reevaluate_tier(self, at: datetime) -> Optional[Achievement]:
        evaluated = evaluate_tier(self.lifetime_points)
        if evaluated.rank <= self.tier.rank:
            return None
        self.tier = evaluated
        achievement = Achievement(
            name=f"{evaluated.value} Tier Achieved",
            description=f"Congratulations on reaching {evaluated.value} tier!",
            awarded_at=at,
        )
        self.achievements.append(achievement)
        return achievement

    def summary(self, recent: int = 10) -> dict:
        """Progress towards the next tier plus the latest ledger entries."""
        upcoming = next_tier(self.tier)
        if upcoming is None:
            points_to_next, progress = 0, 100
        else:
            floor = TIER_THRESHOLDS[self.tier]
            ceiling = TIER_THRESHOLDS[upcoming]
            points_to_next = max(0, ceiling - self.lifetime_points)
            progress = min(
                round((self.lifetime_points - floor) / (ceiling - floor) * 100), 100
            )
        history = sorted(self.bonus_history, key=lambda e: e.awarded_at, reverse=True)
        return {
            "current_points": self.current_points,
            "lifetime_points": self.lifetime_points,
            "tier": self.tier,
            "tier_benefit": f"{TIER_BONUS_PCT[self.tier]}% bonus on delivery fees",
            "next_tier": upcoming,
            "points_to_next_tier": points_to_next,
            "next_tier_progress": progress,
            "recent_bonuses": history[:recent],
            "achievements": list(self.achievements),
        }
