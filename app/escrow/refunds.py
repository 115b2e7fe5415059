"""
Split calculators for cancellation refunds, settlement and payouts.

Everything here is pure: no database access, no clock reads. The caller
passes ``now`` explicitly so identical inputs always give identical output.

Types:
    Split: How one fee is divided between customer, realtor and platform
    RefundTier / RefundPolicy: Tier table for cancellations
    RefundBreakdown: Itemized result of compute_refund
    PayoutBreakdown: Itemized result of compute_realtor_payout
    ResolutionPlan: Per-bucket result of resolution_splits for disputes

Rounding:
    Percentages are applied with Decimal and ROUND_HALF_UP to the customer
    and realtor shares; the platform receives the remainder, so the three
    parts always sum to the input exactly.

Usage:
    from escrow.refunds import RefundPolicy, compute_refund

    breakdown = compute_refund(
        check_in=booking.check_in,
        now=timezone.now(),
        room_fee_cents=9_000_000,
        cleaning_fee_cents=500_000,
        service_fee_cents=300_000,
        security_deposit_cents=2_000_000,
        policy=RefundPolicy.from_settings(),
    )
    breakdown.tier                   # "EARLY"
    breakdown.room_fee.customer_cents  # 8_100_000
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings

HUNDRED = Decimal(100)

# Tier used once check-in has passed
NONE_TIER = "NONE"


def percent_of(amount_cents: int, percent: Decimal | int | float) -> int:
    """``amount * percent / 100`` rounded half-up to a whole minor unit."""
    value = Decimal(amount_cents) * Decimal(str(percent)) / HUNDRED
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class Split:
    """One amount divided between the three parties."""

    customer_cents: int = 0
    realtor_cents: int = 0
    platform_cents: int = 0

    @property
    def total_cents(self) -> int:
        return self.customer_cents + self.realtor_cents + self.platform_cents

    @classmethod
    def by_percent(
        cls,
        amount_cents: int,
        customer_percent: Decimal | int | float,
        realtor_percent: Decimal | int | float,
    ) -> Split:
        """
        Split by percentages; the platform gets whatever is left.

        The realtor share is capped so rounding can never push the
        platform share below zero.
        """
        customer = min(percent_of(amount_cents, customer_percent), amount_cents)
        realtor = min(percent_of(amount_cents, realtor_percent), amount_cents - customer)
        return cls(
            customer_cents=customer,
            realtor_cents=realtor,
            platform_cents=amount_cents - customer - realtor,
        )

    def as_dict(self) -> dict[str, int]:
        return {
            "customer_cents": self.customer_cents,
            "realtor_cents": self.realtor_cents,
            "platform_cents": self.platform_cents,
        }


def settlement_split(amount_cents: int, commission_rate: float | None = None) -> Split:
    """
    Normal (undisputed) split of a released amount: realtor and platform only.

    ``commission_rate`` defaults to ESCROW_PLATFORM_COMMISSION_RATE (0.10),
    so 100_000 becomes 90_000 for the realtor and 10_000 for the platform.
    """
    if commission_rate is None:
        commission_rate = settings.ESCROW_PLATFORM_COMMISSION_RATE
    realtor_percent = HUNDRED - Decimal(str(commission_rate)) * HUNDRED
    return Split.by_percent(amount_cents, 0, realtor_percent)


# =============================================================================
# Cancellation tiers
# =============================================================================


@dataclass(frozen=True)
class RefundTier:
    """
    Room-fee split applied when cancelling at least ``min_hours`` before check-in.
    """

    name: str
    min_hours: Decimal
    customer_percent: Decimal
    realtor_percent: Decimal
    platform_percent: Decimal

    def __post_init__(self) -> None:
        total = self.customer_percent + self.realtor_percent + self.platform_percent
        if total != HUNDRED:
            raise ValueError(f"Refund tier {self.name} percentages sum to {total}, not 100")


@dataclass(frozen=True)
class RefundPolicy:
    """
    Ordered tier table plus the split used after check-in.

    Tiers are evaluated from the largest ``min_hours`` down; the first tier
    whose threshold is met wins, so a boundary value belongs to the more
    generous tier.
    """

    tiers: tuple[RefundTier, ...]
    commission_rate: Decimal = Decimal("0.10")

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.tiers, key=lambda t: t.min_hours, reverse=True))
        object.__setattr__(self, "tiers", ordered)

    @classmethod
    def from_settings(cls) -> RefundPolicy:
        tiers = tuple(
            RefundTier(
                name=row["name"],
                min_hours=Decimal(str(row["min_hours"])),
                customer_percent=Decimal(str(row["customer"])),
                realtor_percent=Decimal(str(row["realtor"])),
                platform_percent=Decimal(str(row["platform"])),
            )
            for row in settings.ESCROW_REFUND_TIERS
        )
        return cls(
            tiers=tiers,
            commission_rate=Decimal(str(settings.ESCROW_PLATFORM_COMMISSION_RATE)),
        )

    def after_check_in(self) -> RefundTier:
        platform = self.commission_rate * HUNDRED
        return RefundTier(
            name=NONE_TIER,
            min_hours=Decimal("-Infinity"),
            customer_percent=Decimal(0),
            realtor_percent=HUNDRED - platform,
            platform_percent=platform,
        )

    def tier_for(self, hours_until_check_in: Decimal) -> RefundTier:
        if hours_until_check_in >= 0:
            for tier in self.tiers:
                if hours_until_check_in >= tier.min_hours:
                    return tier
        return self.after_check_in()


@dataclass(frozen=True)
class RefundBreakdown:
    """
    Itemized cancellation result.

    Per-fee splits plus aggregate totals, suitable for both executing the
    movements and rendering a receipt.
    """

    tier: str
    hours_until_check_in: Decimal
    room_fee: Split
    cleaning_fee: Split
    service_fee: Split
    security_deposit: Split

    @property
    def room_fee_refund_cents(self) -> int:
        return self.room_fee.customer_cents

    @property
    def deposit_refund_cents(self) -> int:
        return self.security_deposit.customer_cents

    @property
    def customer_total_cents(self) -> int:
        return sum(s.customer_cents for s in self._splits())

    @property
    def realtor_total_cents(self) -> int:
        return sum(s.realtor_cents for s in self._splits())

    @property
    def platform_total_cents(self) -> int:
        return sum(s.platform_cents for s in self._splits())

    @property
    def total_cents(self) -> int:
        return sum(s.total_cents for s in self._splits())

    def _splits(self) -> tuple[Split, ...]:
        return (self.room_fee, self.cleaning_fee, self.service_fee, self.security_deposit)

    def as_dict(self) -> dict:
        return {
            "tier": self.tier,
            "hours_until_check_in": str(self.hours_until_check_in),
            "room_fee": self.room_fee.as_dict(),
            "cleaning_fee": self.cleaning_fee.as_dict(),
            "service_fee": self.service_fee.as_dict(),
            "security_deposit": self.security_deposit.as_dict(),
            "customer_total_cents": self.customer_total_cents,
            "realtor_total_cents": self.realtor_total_cents,
            "platform_total_cents": self.platform_total_cents,
        }


def hours_between(start: datetime, end: datetime) -> Decimal:
    """Exact hours from ``start`` to ``end`` (negative when end is earlier)."""
    delta = end - start
    seconds = Decimal(delta.days * 86400 + delta.seconds) + Decimal(delta.microseconds) / Decimal(
        1_000_000
    )
    return seconds / Decimal(3600)


def compute_refund(
    check_in: datetime,
    now: datetime,
    room_fee_cents: int,
    cleaning_fee_cents: int = 0,
    service_fee_cents: int = 0,
    security_deposit_cents: int = 0,
    policy: RefundPolicy | None = None,
) -> RefundBreakdown:
    """
    Split a cancelled booking's fees between customer, realtor and platform.

    - Room fee: split by the tier for the hours left until check-in.
    - Security deposit: always fully refunded to the customer.
    - Service fee: always retained by the platform.
    - Cleaning fee: always retained by the realtor.

    Args:
        check_in: Booking check-in time
        now: Cancellation time
        room_fee_cents / cleaning_fee_cents / service_fee_cents /
        security_deposit_cents: Fee composition in minor units
        policy: Tier table (defaults to RefundPolicy.from_settings())
    """
    for name, value in (
        ("room_fee_cents", room_fee_cents),
        ("cleaning_fee_cents", cleaning_fee_cents),
        ("service_fee_cents", service_fee_cents),
        ("security_deposit_cents", security_deposit_cents),
    ):
        if value < 0:
            raise ValueError(f"{name} must not be negative")

    policy = policy or RefundPolicy.from_settings()
    hours = hours_between(now, check_in)
    tier = policy.tier_for(hours)

    return RefundBreakdown(
        tier=tier.name,
        hours_until_check_in=hours,
        room_fee=Split.by_percent(room_fee_cents, tier.customer_percent, tier.realtor_percent),
        cleaning_fee=Split(realtor_cents=cleaning_fee_cents),
        service_fee=Split(platform_cents=service_fee_cents),
        security_deposit=Split(customer_cents=security_deposit_cents),
    )


# =============================================================================
# Realtor payout
# =============================================================================


@dataclass(frozen=True)
class PayoutBreakdown:
    """
    Realtor earnings for one booking.

    total = base - commission + service + cleaning + deposit
    """

    base_cents: int
    commission_cents: int
    service_fee_cents: int
    cleaning_fee_cents: int
    security_deposit_cents: int

    @property
    def total_cents(self) -> int:
        return (
            self.base_cents
            - self.commission_cents
            + self.service_fee_cents
            + self.cleaning_fee_cents
            + self.security_deposit_cents
        )

    def as_dict(self) -> dict[str, int]:
        return {
            "base_cents": self.base_cents,
            "commission_cents": self.commission_cents,
            "service_fee_cents": self.service_fee_cents,
            "cleaning_fee_cents": self.cleaning_fee_cents,
            "security_deposit_cents": self.security_deposit_cents,
            "total_cents": self.total_cents,
        }


def compute_realtor_payout(
    price_per_night_cents: int,
    nights: int,
    service_fee_cents: int = 0,
    cleaning_fee_cents: int = 0,
    security_deposit_cents: int = 0,
    commission_rate: float | None = None,
) -> PayoutBreakdown:
    """Base price times nights, less platform commission, plus pass-through fees."""
    if nights < 1:
        raise ValueError("nights must be at least 1")
    if commission_rate is None:
        commission_rate = settings.ESCROW_PLATFORM_COMMISSION_RATE

    base = price_per_night_cents * nights
    commission = percent_of(base, Decimal(str(commission_rate)) * HUNDRED)
    return PayoutBreakdown(
        base_cents=base,
        commission_cents=commission,
        service_fee_cents=service_fee_cents,
        cleaning_fee_cents=cleaning_fee_cents,
        security_deposit_cents=security_deposit_cents,
    )


# =============================================================================
# Dispute resolution
# =============================================================================

# Decision values mirror escrow.states.DisputeDecision
FULL_REFUND = "FULL_REFUND"
FULL_PAYOUT = "FULL_PAYOUT"
PARTIAL_REFUND = "PARTIAL_REFUND"
REJECTED = "REJECTED"


@dataclass(frozen=True)
class ResolutionPlan:
    """
    How a dispute decision divides the contested buckets.

    ``cleaning_fee`` and ``service_fee`` stay empty unless the decision
    cancels the booking, in which case they carry the fee legs that close
    out the rest of the payment.
    """

    decision: str
    room_fee: Split
    security_deposit: Split
    used_fallback: bool = False
    cleaning_fee: Split = Split()
    service_fee: Split = Split()

    @classmethod
    def empty(cls, decision: str) -> ResolutionPlan:
        """A plan that moves nothing."""
        return cls(decision=decision, room_fee=Split(), security_deposit=Split())

    @property
    def customer_cents(self) -> int:
        return sum(split.customer_cents for split in self._splits())

    @property
    def realtor_cents(self) -> int:
        return sum(split.realtor_cents for split in self._splits())

    @property
    def platform_cents(self) -> int:
        return sum(split.platform_cents for split in self._splits())

    @property
    def total_cents(self) -> int:
        return sum(split.total_cents for split in self._splits())

    def _splits(self) -> tuple[Split, ...]:
        return (self.room_fee, self.security_deposit, self.cleaning_fee, self.service_fee)

    def as_dict(self) -> dict:
        return {
            "decision": self.decision,
            "room_fee": self.room_fee.as_dict(),
            "security_deposit": self.security_deposit.as_dict(),
            "cleaning_fee": self.cleaning_fee.as_dict(),
            "service_fee": self.service_fee.as_dict(),
            "customer_cents": self.customer_cents,
            "realtor_cents": self.realtor_cents,
            "platform_cents": self.platform_cents,
            "total_cents": self.total_cents,
            "used_fallback": self.used_fallback,
        }


def resolution_splits(
    decision: str,
    room_fee_cents: int,
    security_deposit_cents: int,
    amount_cents: int | None = None,
    commission_rate: float | None = None,
    fallback_customer_share: float | None = None,
) -> ResolutionPlan:
    """
    Divide the contested amounts according to a dispute decision.

    ``room_fee_cents`` and ``security_deposit_cents`` are what remains held
    in each contested bucket (zero for a bucket outside the dispute).

    - FULL_REFUND: everything to the customer.
    - FULL_PAYOUT: room fee on the normal settlement split, deposit to the
      realtor.
    - PARTIAL_REFUND with ``amount_cents``: the customer receives that
      amount, drawn from the room fee first and then the deposit; the rest
      of the room fee is settled normally and the rest of the deposit goes
      to the realtor.
    - PARTIAL_REFUND without an amount: each bucket is split between
      customer and realtor by ``fallback_customer_share``
      (ESCROW_DISPUTE_FALLBACK_CUSTOMER_SHARE, 50/50 by default). The
      customer receives the odd minor unit.
    - REJECTED: nothing moves.

    Raises:
        ValueError: Unknown decision, negative input, or an amount larger
            than what remains held
    """
    if room_fee_cents < 0 or security_deposit_cents < 0:
        raise ValueError("held amounts must not be negative")

    if decision == REJECTED:
        return ResolutionPlan.empty(decision)

    if decision == FULL_REFUND:
        return ResolutionPlan(
            decision=decision,
            room_fee=Split(customer_cents=room_fee_cents),
            security_deposit=Split(customer_cents=security_deposit_cents),
        )

    if decision == FULL_PAYOUT:
        return ResolutionPlan(
            decision=decision,
            room_fee=settlement_split(room_fee_cents, commission_rate),
            security_deposit=Split(realtor_cents=security_deposit_cents),
        )

    if decision != PARTIAL_REFUND:
        raise ValueError(f"Unknown dispute decision: {decision}")

    if amount_cents is None:
        if fallback_customer_share is None:
            fallback_customer_share = settings.ESCROW_DISPUTE_FALLBACK_CUSTOMER_SHARE
        customer_percent = Decimal(str(fallback_customer_share)) * HUNDRED
        realtor_percent = HUNDRED - customer_percent
        return ResolutionPlan(
            decision=decision,
            room_fee=Split.by_percent(room_fee_cents, customer_percent, realtor_percent),
            security_deposit=Split.by_percent(
                security_deposit_cents, customer_percent, realtor_percent
            ),
            used_fallback=True,
        )

    if amount_cents < 0:
        raise ValueError("amount_cents must not be negative")
    if amount_cents > room_fee_cents + security_deposit_cents:
        raise ValueError(
            f"amount_cents {amount_cents} exceeds the "
            f"{room_fee_cents + security_deposit_cents} held"
        )

    from_room = min(amount_cents, room_fee_cents)
    from_deposit = amount_cents - from_room
    room_rest = settlement_split(room_fee_cents - from_room, commission_rate)
    return ResolutionPlan(
        decision=decision,
        room_fee=Split(
            customer_cents=from_room,
            realtor_cents=room_rest.realtor_cents,
            platform_cents=room_rest.platform_cents,
        ),
        security_deposit=Split(
            customer_cents=from_deposit,
            realtor_cents=security_deposit_cents - from_deposit,
        ),
    )
