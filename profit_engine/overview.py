"""
Overview aggregation.

`compute_breakdown` is the base P&L computation for one slice of activity:
cancellation exclusion, COGS from variant cost components, cost proration,
refunds, return-rate losses, ad spend and customer counts. The overview
summary is derived from it here; the P&L engine runs it per bucket.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from profit_engine.config import DEFAULT_CONFIG, EngineConfig
from profit_engine.models import CostType, Dataset, ManualReturnRateEntry
from profit_engine.normalizer import normalize_dataset
from profit_engine.observability import timed
from profit_engine.proration import ProrationContext, prorate_costs
from profit_engine.safe import percentage_change, round_money, safe_divide
from profit_engine.schemas import (
    DateRange,
    MetricValue,
    OverviewExtras,
    OverviewResult,
    OverviewSummary,
)
from profit_engine.windows import ReportingWindow, resolve_window

logger = logging.getLogger(__name__)

SHIPPING_COST_TYPES = (CostType.SHIPPING,)
TRANSACTION_COST_TYPES = (CostType.PAYMENT, CostType.TRANSACTION)
HANDLING_COST_TYPES = (CostType.HANDLING,)
CUSTOM_COST_TYPES = (CostType.OPERATIONAL, CostType.CUSTOM)

# Summary fields mirrored into the compact dashboard metric map
DASHBOARD_METRICS = {
    "revenue": "revenue",
    "profit": "profit",
    "orders": "orders",
    "avgOrderValue": "avgOrderValue",
    "roas": "roas",
    "poas": "poas",
    "contributionMargin": "contributionMargin",
    "blendedMarketingCost": "blendedMarketingCost",
    "customerAcquisitionCost": "customerAcquisitionCost",
    "profitPerOrder": "profitPerOrder",
    "rtoRevenueLost": "rtoRevenueLost",
    "manualReturnRate": "manualReturnRate",
}


# ═══════════════════════════════════════════════════════════════════════════════
# WINDOW & RETURN RATE RESOLUTION
# ═══════════════════════════════════════════════════════════════════════════════

def activity_window(dataset: Dataset) -> Optional[ReportingWindow]:
    """Window spanning the first to the last day with dated orders or ad insights."""
    moments = [order.created_at for order in dataset.orders if order.created_at]
    moments.extend(insight.date for insight in dataset.ad_insights if insight.date)
    if not moments:
        return None
    return ReportingWindow.from_dates(min(moments).date(), max(moments).date())


def resolve_report_window(window: Any, dataset: Dataset) -> ReportingWindow:
    """
    Pick the window a report is computed over.

    Order of precedence: the caller's window, the snapshot's own date range,
    the span of the snapshot's activity, today (UTC).
    """
    resolved = resolve_window(window) or dataset.window or activity_window(dataset)
    if resolved is None:
        today = datetime.now(timezone.utc).date()
        resolved = ReportingWindow.from_dates(today, today)
    return resolved


def resolve_manual_return_rate(
    entries: Iterable[ManualReturnRateEntry],
    window: Optional[ReportingWindow] = None,
) -> float:
    """
    Manual return rate (0-100) in effect for a window.

    Among active entries whose effective span overlaps the window, the most
    recently updated wins. Returns 0 when none applies.
    """
    candidates = [
        entry for entry in entries
        if entry.is_active and (window is None or window.overlaps(entry.effective_from, entry.effective_to))
    ]
    if not candidates:
        return 0.0
    return max(candidates, key=lambda entry: entry.updated_at).percent


def rto_revenue_lost(revenue: float, rate_percent: float) -> float:
    """Revenue lost to returns, never negative and never above revenue."""
    if rate_percent <= 0:
        return 0.0
    return min(max(revenue * rate_percent / 100, 0.0), max(revenue, 0.0))


# ═══════════════════════════════════════════════════════════════════════════════
# BASE COMPUTATION
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class CostBreakdown:
    """Raw (unrounded) economics of one slice of activity."""
    window: ReportingWindow
    orders: int = 0
    units_sold: float = 0.0
    gross_revenue: float = 0.0
    revenue: float = 0.0
    gross_sales: float = 0.0
    discounts: float = 0.0
    refunds: float = 0.0
    refund_count: int = 0
    manual_return_rate: float = 0.0
    rto_revenue_lost: float = 0.0
    cogs: float = 0.0
    handling: float = 0.0
    taxes: float = 0.0
    shipping: float = 0.0
    transaction_fees: float = 0.0
    custom_costs: float = 0.0
    ad_spend: float = 0.0
    customers: int = 0
    unique_customers: int = 0
    new_customers: int = 0
    returning_customers: int = 0
    sessions: float = 0.0
    conversions: float = 0.0
    visitors: float = 0.0
    debug: Dict[str, float] = field(default_factory=dict)

    @property
    def cancelled_revenue(self) -> float:
        return max(self.gross_revenue - self.revenue, 0.0)

    @property
    def costs_without_ads(self) -> float:
        return self.cogs + self.shipping + self.transaction_fees + self.handling + self.custom_costs + self.taxes

    @property
    def return_impact(self) -> float:
        return self.refunds + self.rto_revenue_lost

    @property
    def gross_profit(self) -> float:
        return self.revenue - self.cogs

    @property
    def contribution_profit(self) -> float:
        return self.revenue - (self.cogs + self.shipping + self.transaction_fees + self.handling + self.custom_costs)

    @property
    def operating_profit(self) -> float:
        return self.revenue - self.costs_without_ads - self.return_impact

    @property
    def net_profit(self) -> float:
        return self.operating_profit - self.ad_spend


def compute_breakdown(
    dataset: Dataset,
    window: ReportingWindow,
    config: EngineConfig = DEFAULT_CONFIG,
    use_refund_records: Optional[bool] = None,
) -> CostBreakdown:
    """
    Run the base P&L computation over every order in the dataset.

    Args:
        dataset: Canonical dataset (already limited to the slice of interest)
        window: Window that costs are prorated onto and ad insights limited to
        config: Engine configuration
        use_refund_records: Take refunds from refund records rather than
            order totals (default: whenever the dataset has refund records)

    Returns:
        CostBreakdown with raw, unrounded values
    """
    active_orders = dataset.active_orders
    cancelled_ids = dataset.cancelled_order_ids
    breakdown = CostBreakdown(window=window, orders=len(active_orders))

    breakdown.gross_revenue = sum(order.total_price for order in dataset.orders)
    breakdown.revenue = sum(order.total_price for order in active_orders)
    breakdown.gross_sales = sum(order.gross_sales for order in active_orders)
    breakdown.discounts = sum(order.total_discounts for order in active_orders)

    # COGS, units, handling and component tax from line items
    cogs = units = handling = component_tax = 0.0
    for order in active_orders:
        for item in order.items:
            if item.quantity <= 0:
                continue
            units += item.quantity
            component = dataset.variant_costs.get(item.variant_id)
            item_cogs = component.cogs_per_unit * item.quantity if component else 0.0
            if item_cogs <= 0 and item.line_cost > 0:
                item_cogs = item.line_cost
            cogs += item_cogs
            if component:
                handling += component.handling_per_unit * item.quantity
                if component.tax_rate > 0:
                    component_tax += item.price * item.quantity * component.tax_rate

    if units == 0:
        units = sum(order.total_quantity for order in active_orders)

    breakdown.cogs = cogs
    breakdown.units_sold = units
    order_tax = sum(order.total_tax for order in active_orders)
    breakdown.taxes = component_tax if component_tax > 0 else order_tax

    # Organization costs, falling back to order/transaction sums
    context = ProrationContext(order_count=len(active_orders), units_sold=units, revenue=breakdown.revenue)
    costs = dataset.cost_records
    prorated_shipping = prorate_costs(costs, window, context, SHIPPING_COST_TYPES)
    prorated_fees = prorate_costs(costs, window, context, TRANSACTION_COST_TYPES)
    prorated_handling = prorate_costs(costs, window, context, HANDLING_COST_TYPES)
    order_shipping = sum(order.shipping_cost for order in active_orders)
    transaction_fees = sum(tx.fee for tx in dataset.transactions)

    breakdown.shipping = prorated_shipping if prorated_shipping > 0 else order_shipping
    breakdown.transaction_fees = prorated_fees if prorated_fees > 0 else transaction_fees
    breakdown.handling = handling + prorated_handling
    breakdown.custom_costs = prorate_costs(costs, window, context, CUSTOM_COST_TYPES)

    # Refunds: explicit records win over order-level totals
    if use_refund_records is None:
        use_refund_records = bool(dataset.refunds)
    if use_refund_records:
        counted = [refund for refund in dataset.refunds if refund.order_id not in cancelled_ids]
        breakdown.refunds = sum(refund.amount for refund in counted)
        breakdown.refund_count = len(counted)
    else:
        breakdown.refunds = sum(order.total_refunded for order in active_orders)
        breakdown.refund_count = sum(1 for order in active_orders if order.total_refunded > 0)

    breakdown.manual_return_rate = resolve_manual_return_rate(dataset.manual_return_rates, window)
    breakdown.rto_revenue_lost = rto_revenue_lost(breakdown.revenue, breakdown.manual_return_rate)

    breakdown.ad_spend = sum(
        insight.spend for insight in dataset.account_ad_insights
        if insight.date is None or window.contains(insight.date)
    )

    _count_customers(dataset, breakdown)

    traffic = [entry for entry in dataset.traffic if entry.date is None or window.contains(entry.date)]
    breakdown.sessions = sum(entry.sessions for entry in traffic)
    breakdown.conversions = sum(entry.conversions for entry in traffic)
    breakdown.visitors = sum(entry.visitors for entry in traffic)

    if config.debug_costs:
        breakdown.debug = {
            "activeOrderCount": len(active_orders),
            "unitsSold": units,
            "shippingFromOrders": order_shipping,
            "shippingFromCosts": prorated_shipping,
            "feesFromTransactions": transaction_fees,
            "feesFromCosts": prorated_fees,
            "handlingFromComponents": handling,
            "handlingFromCosts": prorated_handling,
            "taxFromComponents": component_tax,
            "taxFromOrders": order_tax,
            "componentCount": len(dataset.variant_costs),
        }
        logger.debug(
            f"Cost breakdown {window.start_date} to {window.end_date}",
            extra={"cost_breakdown": breakdown.debug},
        )

    return breakdown


def _count_customers(dataset: Dataset, breakdown: CostBreakdown) -> None:
    orders_per_customer: Dict[str, int] = {}
    for order in dataset.active_orders:
        if order.customer_id:
            orders_per_customer[order.customer_id] = orders_per_customer.get(order.customer_id, 0) + 1

    for customer_id, in_window_count in orders_per_customer.items():
        customer = dataset.customers.get(customer_id)
        lifetime = customer.orders_count if customer and customer.orders_count is not None else in_window_count
        if lifetime > 1:
            breakdown.returning_customers += 1
        else:
            breakdown.new_customers += 1

    breakdown.unique_customers = len(orders_per_customer)
    breakdown.customers = len(dataset.customers) or breakdown.unique_customers


# ═══════════════════════════════════════════════════════════════════════════════
# SUMMARY
# ═══════════════════════════════════════════════════════════════════════════════

def build_summary_values(b: CostBreakdown) -> Dict[str, float]:
    """Derive the flat overview figures (unrounded, no changes) from a breakdown."""
    revenue = b.revenue
    orders = b.orders
    net_profit = b.net_profit
    avg_order_value = safe_divide(revenue, orders)
    roas = safe_divide(revenue, b.ad_spend)
    cac = safe_divide(b.ad_spend, b.new_customers)

    return {
        "revenue": revenue,
        "grossSales": b.gross_sales,
        "discounts": b.discounts,
        "discountRate": safe_divide(b.discounts, revenue) * 100,
        "refunds": b.refunds,
        "rtoRevenueLost": b.rto_revenue_lost,
        "manualReturnRate": b.manual_return_rate,
        "profit": net_profit,
        "profitMargin": safe_divide(net_profit, revenue) * 100,
        "grossProfit": b.gross_profit,
        "grossProfitMargin": safe_divide(b.gross_profit, revenue) * 100,
        "contributionMargin": b.contribution_profit,
        "contributionMarginPercentage": safe_divide(b.contribution_profit, revenue) * 100,
        "operatingMargin": safe_divide(b.operating_profit, revenue) * 100,
        "blendedMarketingCost": b.ad_spend,
        "adSpend": b.ad_spend,
        "marketingPercentageOfGross": safe_divide(b.ad_spend, b.gross_sales) * 100,
        "marketingPercentageOfNet": safe_divide(b.ad_spend, revenue) * 100,
        "roas": roas,
        "ncROAS": roas,
        "poas": safe_divide(net_profit, b.ad_spend),
        "orders": orders,
        "unitsSold": b.units_sold,
        "avgOrderValue": avg_order_value,
        "avgOrderCost": safe_divide(b.costs_without_ads + b.ad_spend, orders),
        "avgOrderProfit": safe_divide(net_profit, orders),
        "adSpendPerOrder": safe_divide(b.ad_spend, orders),
        "profitPerOrder": safe_divide(net_profit, orders),
        "profitPerUnit": safe_divide(net_profit, b.units_sold),
        "fulfillmentCostPerOrder": safe_divide(b.handling, orders),
        "cogs": b.cogs,
        "cogsPercentageOfGross": safe_divide(b.cogs, b.gross_sales) * 100,
        "cogsPercentageOfNet": safe_divide(b.cogs, revenue) * 100,
        "shippingCosts": b.shipping,
        "shippingPercentageOfNet": safe_divide(b.shipping, revenue) * 100,
        "transactionFees": b.transaction_fees,
        "handlingFees": b.handling,
        "taxesCollected": b.taxes,
        "taxesPercentageOfRevenue": safe_divide(b.taxes, revenue) * 100,
        "customCosts": b.custom_costs,
        "customCostsPercentage": safe_divide(b.custom_costs, revenue) * 100,
        "customers": b.customers,
        "newCustomers": b.new_customers,
        "returningCustomers": b.returning_customers,
        "repeatCustomerRate": safe_divide(b.returning_customers, b.unique_customers) * 100,
        "customerAcquisitionCost": cac,
        "cacPercentageOfAOV": safe_divide(cac, avg_order_value) * 100,
        "returnRate": safe_divide(b.refund_count, orders) * 100,
    }


def _session_conversion_rate(b: CostBreakdown) -> float:
    return safe_divide(b.conversions, b.sessions) * 100


def build_overview_result(
    current: CostBreakdown,
    previous: Optional[CostBreakdown] = None,
) -> OverviewResult:
    """Assemble the rounded overview result, with changes when a previous breakdown is given."""
    values = build_summary_values(current)
    previous_values = build_summary_values(previous) if previous else None

    summary_fields: Dict[str, float] = {}
    for name, value in values.items():
        summary_fields[name] = round_money(value)
        change = percentage_change(value, previous_values[name]) if previous_values else 0.0
        summary_fields[f"{name}Change"] = round_money(change)
    summary = OverviewSummary(**summary_fields)

    metrics = {
        key: MetricValue(value=summary_fields[name], change=summary_fields[f"{name}Change"])
        for key, name in DASHBOARD_METRICS.items()
    }

    conversion_rate = _session_conversion_rate(current)
    extras = OverviewExtras(
        blendedSessionConversionRate=round_money(conversion_rate),
        blendedSessionConversionRateChange=round_money(
            percentage_change(conversion_rate, _session_conversion_rate(previous)) if previous else 0.0
        ),
        uniqueVisitors=round_money(current.visitors),
    )

    start, end = current.window.as_str_tuple()
    return OverviewResult(
        summary=summary,
        metrics=metrics,
        extras=extras,
        dateRange=DateRange(startDate=start, endDate=end),
    )


@timed("compute_overview")
def compute_overview(
    dataset: Any,
    window: Any = None,
    previous_dataset: Any = None,
    previous_window: Any = None,
    config: Optional[EngineConfig] = None,
) -> OverviewResult:
    """
    Compute the organization-wide P&L summary for one window.

    Args:
        dataset: Raw snapshot mapping or canonical Dataset (None means no data)
        window: Reporting window (defaults to the snapshot's date range)
        previous_dataset: Optional snapshot of the comparison period
        previous_window: Window of the comparison period (defaults to the
            previous snapshot's date range, then the window just before)
        config: Engine configuration

    Returns:
        OverviewResult with summary, dashboard metrics and traffic extras

    Raises:
        ValidationError: If a window is malformed
    """
    config = config or DEFAULT_CONFIG
    current_data = normalize_dataset(dataset, window, config)
    current_window = resolve_report_window(window, current_data)
    current = compute_breakdown(current_data, current_window, config)

    previous = None
    if previous_dataset is not None:
        previous_data = normalize_dataset(previous_dataset, previous_window, config)
        resolved_previous = resolve_window(previous_window) or previous_data.window or current_window.previous()
        previous = compute_breakdown(previous_data, resolved_previous, config)

    logger.debug(
        f"Overview {current_window.start_date} to {current_window.end_date}: "
        f"{current.orders} orders, revenue {current.revenue:.2f}"
    )
    return build_overview_result(current, previous)
