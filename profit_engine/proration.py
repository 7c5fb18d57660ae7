"""
Cost proration.

Allocates a cost record's value onto a reporting window. The record's mode
is resolved once when the record is built (see `CostMode.resolve`); this
module only dispatches on it.

Usage:
    context = ProrationContext(order_count=12, units_sold=30, revenue=1500.0)
    amount = prorate(cost, window.start, window.end_exclusive, context)
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from profit_engine.models import CostFrequency, CostMode, CostRecord, CostType
from profit_engine.safe import to_utc_datetime
from profit_engine.windows import ReportingWindow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProrationContext:
    """Activity in the reporting window that per-order/per-unit/percentage costs scale with."""
    order_count: float = 0.0
    units_sold: float = 0.0
    revenue: float = 0.0


def frequency_duration(frequency: Any) -> Optional[timedelta]:
    """
    Length of one recurrence period.

    Accepts a CostFrequency or a loose string (``"month"``, ``"annual"``,
    ``"fortnight"``...). Returns None for frequencies that are not time
    periods (one_time, per_order, percentage) or are unknown.
    """
    if not isinstance(frequency, CostFrequency):
        frequency = CostFrequency.parse(frequency)
    return frequency.duration


def compute_overlap(
    effective_from: Optional[datetime],
    effective_to: Optional[datetime],
    window_start: datetime,
    window_end: datetime,
) -> timedelta:
    """
    Overlap of [effective_from, effective_to) with [window_start, window_end).

    A missing effective_from starts at the window start; a missing
    effective_to is open-ended. Naive datetimes are taken as UTC. Never
    negative; zero when a window bound is missing or unparseable.
    """
    window_start = to_utc_datetime(window_start)
    window_end = to_utc_datetime(window_end)
    if window_start is None or window_end is None:
        return timedelta(0)
    effective_from = to_utc_datetime(effective_from)
    effective_to = to_utc_datetime(effective_to)

    start = max(window_start, effective_from) if effective_from else window_start
    end = min(window_end, effective_to) if effective_to else window_end
    overlap = end - start
    return overlap if overlap > timedelta(0) else timedelta(0)


def prorate(
    cost: CostRecord,
    window_start: datetime,
    window_end: datetime,
    context: ProrationContext,
) -> float:
    """
    Prorate one cost record onto a window.

    Args:
        cost: Canonical cost record (mode already resolved)
        window_start: Window start (inclusive, UTC)
        window_end: Window end (exclusive, UTC)
        context: Order count, units and revenue of the window

    Returns:
        Amount allocated to the window (never raises)
    """
    if not cost.value:
        return 0.0

    overlap = compute_overlap(cost.effective_from, cost.effective_to, window_start, window_end)
    if overlap <= timedelta(0):
        return 0.0

    if cost.mode == CostMode.PER_ORDER:
        return cost.value * context.order_count

    if cost.mode == CostMode.PER_UNIT:
        return cost.value * context.units_sold

    if cost.mode == CostMode.PERCENTAGE_REVENUE:
        return cost.value / 100 * context.revenue if context.revenue > 0 else 0.0

    # Fixed, time-bound cost
    effective_from = to_utc_datetime(cost.effective_from)
    effective_to = to_utc_datetime(cost.effective_to)
    if effective_from and effective_to and effective_to > effective_from:
        return cost.value * (overlap / (effective_to - effective_from))

    duration = cost.frequency.duration
    if duration:
        return cost.value * (overlap / duration)

    return cost.value


def prorate_costs(
    costs: Iterable[CostRecord],
    window: ReportingWindow,
    context: ProrationContext,
    types: Iterable[CostType],
) -> float:
    """
    Sum prorated amounts of the active cost records of the given types.

    Records explicitly marked inactive are skipped.
    """
    wanted = set(types)
    total = 0.0
    for cost in costs:
        if not cost.is_active or cost.type not in wanted:
            continue
        amount = prorate(cost, window.start, window.end_exclusive, context)
        if amount:
            logger.debug(
                f"Prorated {cost.type.value} cost {cost.id or cost.name!r} "
                f"({cost.mode.value}): {amount:.2f}"
            )
        total += amount
    return total
