"""
Period-bucketed P&L.

Activity is bucketed by UTC day, Monday-aligned week or UTC month. Every
bucket, and the full range once more, is computed independently with the
base overview computation and then restated on a net revenue basis: the
Total row is never the sum of the bucket rows, because retention factors
and cost proration are not linear.
"""
import calendar
import logging
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from profit_engine.config import DEFAULT_CONFIG, EngineConfig
from profit_engine.models import Dataset, Order
from profit_engine.normalizer import normalize_dataset
from profit_engine.observability import Timer, timed
from profit_engine.overview import CostBreakdown, activity_window, compute_breakdown, resolve_report_window
from profit_engine.safe import percentage_change, round_money, safe_divide
from profit_engine.schemas import (
    PnLExportRow,
    PnLKPIChanges,
    PnLKPIs,
    PnLMetrics,
    PnLPeriod,
    PnLResult,
)
from profit_engine.validators import validate_granularity
from profit_engine.windows import ReportingWindow, resolve_window

logger = logging.getLogger(__name__)

TOTAL_LABEL = "Total"
EXPORT_TOTAL_LABEL = "TOTAL"


# ═══════════════════════════════════════════════════════════════════════════════
# BUCKETS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class Bucket:
    """One calendar period and the orders created in it."""
    key: str
    label: str
    start_date: date
    end_date: date
    orders: List[Order] = field(default_factory=list)

    @property
    def window(self) -> ReportingWindow:
        return ReportingWindow.from_dates(self.start_date, self.end_date)


def period_for(day: date, granularity: str) -> Bucket:
    """
    Calendar period containing a UTC day.

    Examples:
        >>> period_for(date(2026, 1, 14), "weekly").label
        '2026-01-12 – 2026-01-18'
        >>> period_for(date(2026, 2, 9), "monthly").key
        '2026-02'
    """
    if granularity == "weekly":
        monday = day - timedelta(days=day.weekday())
        sunday = monday + timedelta(days=6)
        return Bucket(
            key=f"{monday.isoformat()}_{sunday.isoformat()}",
            label=f"{monday.isoformat()} – {sunday.isoformat()}",
            start_date=monday,
            end_date=sunday,
        )

    if granularity == "monthly":
        first = day.replace(day=1)
        last = day.replace(day=calendar.monthrange(day.year, day.month)[1])
        key = first.strftime("%Y-%m")
        return Bucket(key=key, label=key, start_date=first, end_date=last)

    return Bucket(key=day.isoformat(), label=day.isoformat(), start_date=day, end_date=day)


def assign_buckets(
    dataset: Dataset,
    granularity: str,
    window: Optional[ReportingWindow] = None,
) -> List[Bucket]:
    """
    Bucket orders by creation time; ad insight dates open buckets too.

    Orders without a creation time, and activity outside the window (when
    one is given), are left out. Buckets are returned in chronological order.
    """
    buckets: Dict[str, Bucket] = {}

    def ensure(day: date) -> Bucket:
        period = period_for(day, granularity)
        return buckets.setdefault(period.key, period)

    skipped = 0
    for order in dataset.orders:
        if order.created_at is None:
            skipped += 1
            continue
        if window is not None and not window.contains(order.created_at):
            continue
        ensure(order.created_at.date()).orders.append(order)

    for insight in dataset.ad_insights:
        if insight.date is None or (window is not None and not window.contains(insight.date)):
            continue
        ensure(insight.date.date())

    if skipped:
        logger.debug(f"Skipped {skipped} orders without a creation time")

    return sorted(buckets.values(), key=lambda bucket: bucket.start_date)


def slice_dataset(dataset: Dataset, orders: List[Order], window: ReportingWindow) -> Dataset:
    """
    Restrict a dataset to some orders and a window.

    Transactions and refunds follow their order; refunds of orders not in the
    snapshot fall in the window of their creation time. Ad insights and
    traffic are kept by date.
    """
    order_ids = {order.id for order in orders}
    known_ids = {order.id for order in dataset.orders}
    return replace(
        dataset,
        window=window,
        orders=orders,
        transactions=[tx for tx in dataset.transactions if tx.order_id in order_ids],
        refunds=[
            refund for refund in dataset.refunds
            if refund.order_id in order_ids
            or (refund.order_id not in known_ids and window.contains(refund.created_at))
        ],
        ad_insights=[insight for insight in dataset.ad_insights if insight.date and window.contains(insight.date)],
        traffic=[entry for entry in dataset.traffic if entry.date and window.contains(entry.date)],
    )


# ═══════════════════════════════════════════════════════════════════════════════
# NET BASIS
# ═══════════════════════════════════════════════════════════════════════════════

def retention_factor(revenue: float, net_revenue: float) -> float:
    """Share of recognized revenue that was kept; 1 when there is no revenue."""
    return max(net_revenue, 0.0) / revenue if revenue > 0 else 1.0


def net_basis(b: CostBreakdown) -> Dict[str, float]:
    """Restate a breakdown on net revenue, scaling COGS, handling and taxes by retention."""
    net_revenue = max(b.revenue - b.refunds - b.rto_revenue_lost, 0.0)
    retention = retention_factor(b.revenue, net_revenue)
    cogs = b.cogs * retention
    handling = b.handling * retention
    taxes = b.taxes * retention
    gross_profit = net_revenue - cogs
    net_profit = gross_profit - (
        b.shipping + b.transaction_fees + handling + taxes + b.custom_costs + b.ad_spend
    )

    return {
        "grossSales": b.gross_sales,
        "discounts": b.discounts,
        "refunds": b.refunds,
        "rtoRevenueLost": b.rto_revenue_lost,
        "cancelledRevenue": b.cancelled_revenue,
        "grossRevenue": b.gross_revenue,
        "revenue": net_revenue,
        "cogs": cogs,
        "shippingCosts": b.shipping,
        "transactionFees": b.transaction_fees,
        "handlingFees": handling,
        "grossProfit": gross_profit,
        "taxesCollected": taxes,
        "customCosts": b.custom_costs,
        "totalAdSpend": b.ad_spend,
        "netProfit": net_profit,
        "netProfitMargin": safe_divide(net_profit, net_revenue) * 100 if net_revenue > 0 else 0.0,
    }


def _rounded_metrics(values: Dict[str, float]) -> PnLMetrics:
    return PnLMetrics(**{name: round_money(value) for name, value in values.items()})


def kpi_values(totals: Dict[str, float]) -> Dict[str, float]:
    """Headline KPIs from the full-range figures."""
    marketing = totals["totalAdSpend"]
    return {
        "grossSales": totals["grossSales"],
        "grossRevenue": totals["grossRevenue"],
        "discountsReturns": totals["discounts"] + totals["refunds"],
        "netRevenue": totals["revenue"],
        "grossProfit": totals["grossProfit"],
        "operatingExpenses": totals["customCosts"],
        "ebitda": totals["netProfit"] + marketing + totals["customCosts"],
        "netProfit": totals["netProfit"],
        "netMargin": totals["netProfitMargin"],
        "marketingCost": marketing,
        "marketingROAS": safe_divide(totals["revenue"], marketing),
        "marketingROI": safe_divide(totals["netProfit"], marketing) * 100,
    }


# ═══════════════════════════════════════════════════════════════════════════════
# COMPUTATION
# ═══════════════════════════════════════════════════════════════════════════════

def _range_values(
    dataset: Dataset,
    window: Optional[ReportingWindow],
    config: EngineConfig,
) -> Dict[str, float]:
    """
    Net-basis figures for the whole range, computed directly.

    Without a window every order counts, and costs are prorated onto the
    span of the dataset's activity.
    """
    if window is None:
        total_window = resolve_report_window(None, dataset)
        orders = list(dataset.orders)
    else:
        total_window = window
        orders = [order for order in dataset.orders if order.created_at and window.contains(order.created_at)]

    breakdown = compute_breakdown(
        slice_dataset(dataset, orders, total_window),
        total_window,
        config,
        use_refund_records=bool(dataset.refunds),
    )
    return net_basis(breakdown)


@timed("compute_pnl")
def compute_pnl(
    dataset: Any,
    granularity: str,
    window: Any = None,
    previous_dataset: Any = None,
    config: Optional[EngineConfig] = None,
) -> PnLResult:
    """
    Compute the period P&L table.

    Args:
        dataset: Raw snapshot mapping or canonical Dataset (None means no data)
        granularity: daily, weekly or monthly
        window: Optional reporting window; bucket ranges are clipped to it
            (defaults to the snapshot's date range)
        previous_dataset: Optional snapshot of the comparison period for KPI changes
        config: Engine configuration

    Returns:
        PnLResult with KPIs, chronological periods plus a Total period,
        full-range totals and export rows

    Raises:
        ValidationError: If granularity is invalid or a window is malformed
    """
    granularity = validate_granularity(granularity)
    config = config or DEFAULT_CONFIG
    data = normalize_dataset(dataset, window, config)
    requested = resolve_window(window) or data.window
    use_refund_records = bool(data.refunds)

    periods: List[PnLPeriod] = []
    export_rows: List[PnLExportRow] = []

    with Timer(f"pnl_{granularity}_buckets", logger, config.logging.slow_operation_ms):
        for bucket in assign_buckets(data, granularity, requested):
            bucket_window = bucket.window
            if requested is not None:
                bucket_window = requested.clip(bucket_window)
            breakdown = compute_breakdown(
                slice_dataset(data, bucket.orders, bucket_window),
                bucket_window,
                config,
                use_refund_records=use_refund_records,
            )
            metrics = _rounded_metrics(net_basis(breakdown))
            start, end = bucket_window.as_str_tuple()
            periods.append(
                PnLPeriod(label=bucket.label, date=bucket.start_date.isoformat(), startDate=start, endDate=end, metrics=metrics)
            )
            export_rows.append(PnLExportRow(period=bucket.label, **metrics.model_dump()))

    total_values = _range_values(data, requested, config)
    totals = _rounded_metrics(total_values)

    if periods:
        total_window = requested or activity_window(data)
        start, end = total_window.as_str_tuple()
        periods.append(
            PnLPeriod(label=TOTAL_LABEL, date=end, startDate=start, endDate=end, metrics=totals, isTotal=True)
        )
        export_rows.append(PnLExportRow(period=EXPORT_TOTAL_LABEL, isTotal=True, **totals.model_dump()))

    kpis = kpi_values(total_values)
    changes = PnLKPIChanges()
    if previous_dataset is not None:
        previous_data = normalize_dataset(previous_dataset, config=config)
        previous_window = previous_data.window or (requested.previous() if requested else None)
        previous_kpis = kpi_values(_range_values(previous_data, previous_window, config))
        changes = PnLKPIChanges(**{
            name: round_money(percentage_change(value, previous_kpis[name])) for name, value in kpis.items()
        })

    logger.debug(f"P&L ({granularity}): {len(periods)} periods")

    return PnLResult(
        granularity=granularity,
        metrics=PnLKPIs(**{name: round_money(value) for name, value in kpis.items()}, changes=changes),
        periods=periods,
        totals=totals,
        exportRows=export_rows,
        currency=data.currency,
    )
