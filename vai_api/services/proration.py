"""Pro-rata pricing for mid-cycle upgrades, and billing-cycle bounds.

Everything here is pure: no database, no clock unless one is passed in.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple, Union

CENT = Decimal("0.01")
SECONDS_PER_DAY = 24 * 60 * 60

DateLike = Union[date, datetime]


def round2(value) -> Decimal:
    """Round half-up to 2 decimals."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def _as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _ceil_days(delta: timedelta) -> int:
    return max(math.ceil(delta.total_seconds() / SECONDS_PER_DAY), 0)


@dataclass(frozen=True)
class Proration:
    days_in_cycle: int
    days_remaining: int
    factor: Decimal
    delta_net: Decimal
    tax: Decimal
    total: Decimal


def prorate(
    cycle_start: DateLike,
    cycle_end: DateLike,
    old_price,
    new_price,
    tax_rate,
    now: Optional[datetime] = None,
) -> Proration:
    """Charge for moving from ``old_price`` to ``new_price`` for the rest of the cycle.

    A cheaper target yields a zero charge; downgrades are scheduled for the
    next cycle instead of being credited here.
    """
    start = _as_datetime(cycle_start)
    end = _as_datetime(cycle_end)
    now = now or datetime.utcnow()

    days_in_cycle = _ceil_days(end - start)
    # Asked before the cycle starts: the whole cycle remains.
    days_remaining = min(_ceil_days(end - now), days_in_cycle)

    if days_in_cycle > 0:
        factor = Decimal(days_remaining) / Decimal(days_in_cycle)
    else:
        factor = Decimal(0)

    delta_base = max(Decimal(str(new_price)) - Decimal(str(old_price)), Decimal(0))
    delta_net = delta_base * factor
    tax = delta_net * Decimal(str(tax_rate))
    total = delta_net + tax

    return Proration(
        days_in_cycle=days_in_cycle,
        days_remaining=days_remaining,
        factor=factor,
        delta_net=round2(delta_net),
        tax=round2(tax),
        total=round2(total),
    )


def current_cycle(
    start_date: date,
    cycle_days: int,
    today: date,
    end_date: Optional[date] = None,
) -> Tuple[date, date]:
    """Bounds of the billing cycle containing ``today``.

    Cycles of ``cycle_days`` are chained from ``start_date``. A fixed
    ``end_date`` caps the last cycle.
    """
    cycle_days = cycle_days if cycle_days and cycle_days > 0 else 30
    if end_date is not None and today > end_date:
        today = end_date
    if today <= start_date:
        cycle_start = start_date
    else:
        elapsed = (today - start_date).days
        cycle_start = start_date + timedelta(days=(elapsed // cycle_days) * cycle_days)
    cycle_end = cycle_start + timedelta(days=cycle_days)
    if end_date is not None and end_date < cycle_end:
        cycle_end = max(end_date, cycle_start)
    return cycle_start, cycle_end
