"""
Fine policies.

The three schemes are a closed set, so each is a plain function and the
scheme tag selects one from a dispatch table. All amounts come from a
FineSchedule so the facility can tune them through settings.
"""

from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal

from parkflow.domain.models import ZERO, FineKind, FineScheme


@dataclass(frozen=True)
class FineSchedule:
    """
    Amounts and thresholds shared by all fine policies.

    Attributes:
        overstay_threshold_hours: Hours before overstay fines apply.
        fixed_amount: Flat fine (fixed scheme, and misuse outside progressive).
        hourly_rate: Fine per hour beyond the threshold (hourly scheme).
        progressive_tiers: Cumulative amounts for the four progressive tiers.
    """

    overstay_threshold_hours: int = 24
    fixed_amount: Decimal = Decimal("50.00")
    hourly_rate: Decimal = Decimal("20.00")
    progressive_tiers: tuple[Decimal, Decimal, Decimal, Decimal] = (
        Decimal("50.00"),
        Decimal("150.00"),
        Decimal("300.00"),
        Decimal("500.00"),
    )


FinePolicy = Callable[[int, FineKind, FineSchedule], Decimal]


def fixed_fine(hours_parked: int, kind: FineKind, schedule: FineSchedule) -> Decimal:
    """Flat amount once the threshold is exceeded; misuse always pays it."""
    if kind == FineKind.RESERVED_MISUSE:
        return schedule.fixed_amount
    if hours_parked > schedule.overstay_threshold_hours:
        return schedule.fixed_amount
    return ZERO


def progressive_fine(hours_parked: int, kind: FineKind, schedule: FineSchedule) -> Decimal:
    """
    Tiered overstay fine.

    With threshold T the tiers are (T, 2T], (2T, 3T], (3T, 4T] and beyond,
    each amount already including the tiers below it. Misuse is charged at
    the first tier.
    """
    tiers = schedule.progressive_tiers
    if kind == FineKind.RESERVED_MISUSE:
        return tiers[0]

    threshold = schedule.overstay_threshold_hours
    if hours_parked <= threshold:
        return ZERO
    for multiple, amount in enumerate(tiers[:-1], start=2):
        if hours_parked <= threshold * multiple:
            return amount
    return tiers[-1]


def hourly_fine(hours_parked: int, kind: FineKind, schedule: FineSchedule) -> Decimal:
    """Per-hour fine for every hour beyond the threshold; misuse is flat."""
    if kind == FineKind.RESERVED_MISUSE:
        return schedule.fixed_amount
    overstay_hours = hours_parked - schedule.overstay_threshold_hours
    if overstay_hours <= 0:
        return ZERO
    return overstay_hours * schedule.hourly_rate


FINE_POLICIES: dict[FineScheme, FinePolicy] = {
    FineScheme.FIXED: fixed_fine,
    FineScheme.PROGRESSIVE: progressive_fine,
    FineScheme.HOURLY: hourly_fine,
}


def calculate_fine(
    scheme: FineScheme,
    hours_parked: int,
    kind: FineKind,
    schedule: FineSchedule | None = None,
) -> Decimal:
    """
    Compute a fine amount under the given scheme.

    Args:
        scheme: Scheme locked into the ticket.
        hours_parked: Ceiling-rounded duration.
        kind: Overstay or reserved misuse.
        schedule: Amounts to use; defaults to the standard schedule.

    Returns:
        Decimal: Fine amount, zero when no fine applies.

    Raises:
        ValueError: If hours_parked is negative.
    """
    if hours_parked < 0:
        raise ValueError(f"hours_parked must be non-negative, got {hours_parked}")
    return FINE_POLICIES[scheme](hours_parked, kind, schedule or FineSchedule())
