"""
Orders analytics.

Per-order economics for the orders table: cost and profit of every order,
status/search filtering, sorting, pagination, fulfillment and return
rollups and an unpaginated export projection.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from profit_engine.config import DEFAULT_CONFIG, EngineConfig
from profit_engine.models import Dataset, Order, OrderItem
from profit_engine.normalizer import normalize_dataset
from profit_engine.observability import timed
from profit_engine.overview import resolve_manual_return_rate, rto_revenue_lost
from profit_engine.pagination import Paginator
from profit_engine.safe import as_record, first_present, percentage_change, round_money, safe_divide
from profit_engine.schemas import (
    FulfillmentMetrics,
    OrderCustomer,
    OrderExportRow,
    OrderLine,
    OrderRow,
    OrdersChanges,
    OrderShippingAddress,
    OrdersOverview,
    OrdersPage,
    OrdersResult,
    PaginationInfo,
    StatusBreakdown,
)
from profit_engine.validators import (
    validate_sort_by,
    validate_sort_order,
    validate_status_filter,
)

logger = logging.getLogger(__name__)

CASH_ON_DELIVERY_MARKERS = ("cod", "cash on delivery", "cash_on_delivery")


# ═══════════════════════════════════════════════════════════════════════════════
# OPTIONS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class OrdersOptions:
    """Filtering, sorting and paging options for the orders table."""
    status: str = "all"
    search: str = ""
    sort_by: str = "createdAt"
    sort_order: str = "desc"
    page: Optional[int] = None
    page_size: Optional[int] = None

    @classmethod
    def from_raw(cls, options: Any) -> "OrdersOptions":
        """
        Build validated options from an OrdersOptions, a mapping or None.

        Mapping keys may be camelCase (searchTerm, sortBy, pageSize) or
        snake_case.

        Raises:
            ValidationError: If status, sort field or sort order is unknown
        """
        if isinstance(options, OrdersOptions):
            data: Mapping[str, Any] = {
                "status": options.status,
                "search": options.search,
                "sort_by": options.sort_by,
                "sort_order": options.sort_order,
                "page": options.page,
                "page_size": options.page_size,
            }
        else:
            data = as_record(options)

        search = first_present(data, "search", "searchTerm", "search_term")
        return cls(
            status=validate_status_filter(data.get("status")),
            search=search.strip() if isinstance(search, str) else "",
            sort_by=validate_sort_by(first_present(data, "sortBy", "sort_by")),
            sort_order=validate_sort_order(first_present(data, "sortOrder", "sort_order")),
            page=first_present(data, "page"),
            page_size=first_present(data, "pageSize", "page_size"),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# STATUS CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

def _normalise(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def is_fulfilled_status(status: Optional[str]) -> bool:
    """Fulfilled, delivered or complete (but never unfulfilled)."""
    normalized = _normalise(status)
    if not normalized or "unfulfilled" in normalized:
        return False
    return "fulfilled" in normalized or "delivered" in normalized or "complete" in normalized


def is_partial_status(status: Optional[str]) -> bool:
    return _normalise(status).startswith("partial")


def matches_status(order: Order, status: str) -> bool:
    """Check an order against a status filter (all, unfulfilled, partial, fulfilled, cancelled, refunded)."""
    if status == "all":
        return True

    fulfillment = _normalise(order.fulfillment_status)
    financial = _normalise(order.financial_status)
    overall = _normalise(order.status)

    if status == "unfulfilled":
        return fulfillment in ("", "unfulfilled")
    if status == "partial":
        return is_partial_status(order.fulfillment_status) or is_partial_status(order.status)
    if status == "fulfilled":
        return is_fulfilled_status(order.fulfillment_status) or is_fulfilled_status(order.status)
    if status == "cancelled":
        return "cancel" in overall or "void" in financial
    if status == "refunded":
        return "refund" in financial
    return True


def matches_search(order: Order, term: str) -> bool:
    """Case-insensitive substring match on order number, customer name or email."""
    value = term.strip().lower()
    if not value:
        return True
    return (
        value in order.order_number.lower()
        or value in order.customer_name.lower()
        or value in order.customer_email.lower()
    )


def is_prepaid(order: Order) -> bool:
    """Paid up front: financial status says paid and the method is not cash on delivery."""
    financial = _normalise(order.financial_status)
    if "paid" not in financial or "unpaid" in financial:
        return False
    method = _normalise(order.payment_method)
    return not any(marker in method for marker in CASH_ON_DELIVERY_MARKERS)


# ═══════════════════════════════════════════════════════════════════════════════
# PER-ORDER ECONOMICS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class OrderEconomics:
    """Cost and profit of one order."""
    order: Order
    line_costs: List[Tuple[OrderItem, float]] = field(default_factory=list)
    transaction_fees: float = 0.0

    @property
    def cogs(self) -> float:
        return sum(cost for _, cost in self.line_costs)

    @property
    def total_cost(self) -> float:
        return self.cogs + self.order.shipping_cost + self.order.total_tax + self.transaction_fees

    @property
    def revenue(self) -> float:
        return self.order.total_price

    @property
    def profit(self) -> float:
        return self.revenue - self.total_cost

    @property
    def margin(self) -> float:
        return safe_divide(self.profit, self.revenue) * 100 if self.revenue > 0 else 0.0

    @property
    def items(self) -> float:
        return self.order.item_count if self.order.items else self.order.total_quantity


def compute_order_economics(dataset: Dataset) -> List[OrderEconomics]:
    """Per-order cost (COGS + shipping + tax + linked transaction fees) and profit."""
    fees_by_order: Dict[str, float] = {}
    for tx in dataset.transactions:
        fees_by_order[tx.order_id] = fees_by_order.get(tx.order_id, 0.0) + tx.fee

    economics = []
    for order in dataset.orders:
        line_costs = []
        for item in order.items:
            component = dataset.variant_costs.get(item.variant_id)
            cost = component.cogs_per_unit * item.quantity if component else 0.0
            if cost <= 0 and item.line_cost > 0:
                cost = item.line_cost
            line_costs.append((item, cost))
        economics.append(
            OrderEconomics(
                order=order,
                line_costs=line_costs,
                transaction_fees=fees_by_order.get(order.id, 0.0),
            )
        )
    return economics


SORT_KEYS = {
    "revenue": lambda e: e.revenue,
    "profit": lambda e: e.profit,
    "items": lambda e: e.items,
    "status": lambda e: e.order.status.lower(),
    "createdAt": lambda e: e.order.created_at.timestamp() if e.order.created_at else float("-inf"),
}


def sort_orders(rows: List[OrderEconomics], sort_by: str, sort_order: str) -> List[OrderEconomics]:
    """Stable sort; ties keep their input order in both directions."""
    return sorted(rows, key=SORT_KEYS[sort_by], reverse=sort_order == "desc")


# ═══════════════════════════════════════════════════════════════════════════════
# ROLLUPS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class OrdersAggregate:
    """Raw rollups over a set of orders."""
    total_orders: int = 0
    total_revenue: float = 0.0
    total_costs: float = 0.0
    net_profit: float = 0.0
    total_tax: float = 0.0
    gross_margin: float = 0.0
    avg_order_value: float = 0.0
    fulfillment_rate: float = 0.0
    avg_fulfillment_cost: float = 0.0
    return_rate: float = 0.0
    prepaid_rate: float = 0.0
    repeat_rate: float = 0.0
    customer_acquisition_cost: float = 0.0
    rto_revenue_loss: float = 0.0


def _refunded_order_ids(dataset: Dataset) -> Set[str]:
    refunded = {refund.order_id for refund in dataset.refunds if refund.order_id}
    refunded.update(order.id for order in dataset.orders if order.total_refunded > 0)
    return refunded


def aggregate_orders(rows: List[OrderEconomics], dataset: Dataset) -> OrdersAggregate:
    """Rollups over the given (filtered) orders."""
    total = len(rows)
    revenue = sum(row.revenue for row in rows)
    cogs = sum(row.cogs for row in rows)
    refunded_ids = _refunded_order_ids(dataset)

    orders_per_customer: Dict[str, int] = {}
    for row in rows:
        if row.order.customer_id and not row.order.is_cancelled:
            orders_per_customer[row.order.customer_id] = orders_per_customer.get(row.order.customer_id, 0) + 1
    returning = new = 0
    for customer_id, in_window_count in orders_per_customer.items():
        customer = dataset.customers.get(customer_id)
        lifetime = customer.orders_count if customer and customer.orders_count is not None else in_window_count
        if lifetime > 1:
            returning += 1
        else:
            new += 1

    ad_spend = sum(insight.spend for insight in dataset.account_ad_insights)
    active_revenue = sum(row.revenue for row in rows if not row.order.is_cancelled)
    return_rate = resolve_manual_return_rate(dataset.manual_return_rates, dataset.window)

    return OrdersAggregate(
        total_orders=total,
        total_revenue=revenue,
        total_costs=sum(row.total_cost for row in rows),
        net_profit=sum(row.profit for row in rows),
        total_tax=sum(row.order.total_tax for row in rows),
        gross_margin=safe_divide(revenue - cogs, revenue) * 100 if revenue > 0 else 0.0,
        avg_order_value=safe_divide(revenue, total),
        fulfillment_rate=safe_divide(sum(1 for row in rows if is_fulfilled_status(row.order.fulfillment_status)), total) * 100,
        avg_fulfillment_cost=safe_divide(sum(row.order.shipping_cost for row in rows), total),
        return_rate=safe_divide(sum(1 for row in rows if row.order.id in refunded_ids), total) * 100,
        prepaid_rate=safe_divide(sum(1 for row in rows if is_prepaid(row.order)), total) * 100,
        repeat_rate=safe_divide(returning, len(orders_per_customer)) * 100,
        customer_acquisition_cost=safe_divide(ad_spend, new),
        rto_revenue_loss=rto_revenue_lost(active_revenue, return_rate),
    )


def _status_breakdown(rows: List[OrderEconomics]) -> StatusBreakdown:
    counts = {
        status: sum(1 for row in rows if matches_status(row.order, status))
        for status in ("unfulfilled", "partial", "fulfilled", "cancelled", "refunded")
    }
    return StatusBreakdown(**counts)


def _build_changes(current: OrdersAggregate, previous: Optional[OrdersAggregate]) -> OrdersChanges:
    if previous is None:
        return OrdersChanges()
    pairs = {
        "totalOrders": (current.total_orders, previous.total_orders),
        "revenue": (current.total_revenue, previous.total_revenue),
        "netProfit": (current.net_profit, previous.net_profit),
        "avgOrderValue": (current.avg_order_value, previous.avg_order_value),
        "cac": (current.customer_acquisition_cost, previous.customer_acquisition_cost),
        "margin": (current.gross_margin, previous.gross_margin),
        "fulfillmentRate": (current.fulfillment_rate, previous.fulfillment_rate),
        "prepaidRate": (current.prepaid_rate, previous.prepaid_rate),
        "repeatRate": (current.repeat_rate, previous.repeat_rate),
        "rtoRevenueLoss": (current.rto_revenue_loss, previous.rto_revenue_loss),
    }
    return OrdersChanges(**{
        name: round_money(percentage_change(cur, prev)) for name, (cur, prev) in pairs.items()
    })


# ═══════════════════════════════════════════════════════════════════════════════
# PROJECTIONS
# ═══════════════════════════════════════════════════════════════════════════════

def _iso(moment: Optional[datetime]) -> Optional[str]:
    if moment is None:
        return None
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_order_row(row: OrderEconomics) -> OrderRow:
    order = row.order
    return OrderRow(
        id=order.id,
        orderNumber=order.order_number,
        customer=OrderCustomer(name=order.customer_name, email=order.customer_email),
        status=order.status,
        fulfillmentStatus=order.fulfillment_status,
        financialStatus=order.financial_status,
        items=round_money(row.items),
        totalPrice=round_money(row.revenue),
        totalCost=round_money(row.total_cost),
        profit=round_money(row.profit),
        profitMargin=round_money(row.margin),
        taxAmount=round_money(order.total_tax),
        shippingCost=round_money(order.shipping_cost),
        paymentMethod=order.payment_method,
        tags=list(order.tags),
        shippingAddress=OrderShippingAddress(city=order.shipping_city, country=order.shipping_country),
        createdAt=_iso(order.created_at),
        updatedAt=_iso(order.updated_at),
        lineItems=[
            OrderLine(
                id=item.id,
                name=item.title,
                quantity=item.quantity,
                price=round_money(item.price),
                cost=round_money(cost),
            )
            for item, cost in row.line_costs
        ],
    )


def to_export_row(row: OrderEconomics) -> OrderExportRow:
    order = row.order
    return OrderExportRow(
        orderNumber=order.order_number,
        customerName=order.customer_name,
        customerEmail=order.customer_email,
        status=order.status,
        fulfillmentStatus=order.fulfillment_status,
        financialStatus=order.financial_status,
        items=round_money(row.items),
        revenue=round_money(row.revenue),
        costs=round_money(row.total_cost),
        profit=round_money(row.profit),
        profitMargin=round_money(row.margin),
        shipping=round_money(order.shipping_cost),
        tax=round_money(order.total_tax),
        payment=order.payment_method,
        shipTo=order.ship_to,
        createdAt=_iso(order.created_at),
        updatedAt=_iso(order.updated_at),
    )


def _select(dataset: Dataset, options: OrdersOptions) -> Tuple[List[OrderEconomics], List[OrderEconomics]]:
    """Return (search-matched rows, status- and search-matched rows)."""
    searched = [row for row in compute_order_economics(dataset) if matches_search(row.order, options.search)]
    return searched, [row for row in searched if matches_status(row.order, options.status)]


@timed("compute_orders_analytics")
def compute_orders_analytics(
    dataset: Any,
    options: Any = None,
    previous_dataset: Any = None,
    config: Optional[EngineConfig] = None,
) -> OrdersResult:
    """
    Compute the orders table, its rollups and export rows.

    Args:
        dataset: Raw snapshot mapping or canonical Dataset (None means no data)
        options: OrdersOptions or mapping (status, searchTerm, sortBy,
            sortOrder, page, pageSize)
        previous_dataset: Optional snapshot of the comparison period
        config: Engine configuration

    Returns:
        OrdersResult with overview rollups, the requested page, fulfillment
        metrics and all export rows

    Raises:
        ValidationError: On unknown status/sort options, a negative page size
            or non-integer paging values
    """
    config = config or DEFAULT_CONFIG
    options = OrdersOptions.from_raw(options)
    paginator = Paginator(config.pagination)
    # Validate paging before doing any work
    paginator.resolve_page_size(options.page_size)

    data = normalize_dataset(dataset, config=config)
    searched, filtered = _select(data, options)
    rows = sort_orders(filtered, options.sort_by, options.sort_order)
    page = paginator.paginate(rows, page=options.page, page_size=options.page_size)

    current = aggregate_orders(rows, data)
    previous = None
    if previous_dataset is not None:
        previous_data = normalize_dataset(previous_dataset, config=config)
        previous = aggregate_orders(_select(previous_data, options)[1], previous_data)

    overview = OrdersOverview(
        totalOrders=current.total_orders,
        totalRevenue=round_money(current.total_revenue),
        totalCosts=round_money(current.total_costs),
        netProfit=round_money(current.net_profit),
        totalTax=round_money(current.total_tax),
        avgOrderValue=round_money(current.avg_order_value),
        customerAcquisitionCost=round_money(current.customer_acquisition_cost),
        grossMargin=round_money(current.gross_margin),
        fulfillmentRate=round_money(current.fulfillment_rate),
        prepaidRate=round_money(current.prepaid_rate),
        repeatRate=round_money(current.repeat_rate),
        rtoRevenueLoss=round_money(current.rto_revenue_loss),
        statusBreakdown=_status_breakdown(searched),
        changes=_build_changes(current, previous),
    )

    fulfillment = FulfillmentMetrics(
        fulfillmentRate=round_money(current.fulfillment_rate),
        returnRate=round_money(current.return_rate),
        avgFulfillmentCost=round_money(current.avg_fulfillment_cost),
        totalOrders=current.total_orders,
    )

    logger.debug(f"Orders analytics: {len(rows)} of {len(data.orders)} orders match, page {page.page}/{page.total_pages}")

    return OrdersResult(
        overview=overview,
        orders=OrdersPage(
            data=[to_order_row(row) for row in page.items],
            pagination=PaginationInfo(
                page=page.page,
                pageSize=page.page_size,
                total=page.total,
                totalPages=page.total_pages,
            ),
        ),
        fulfillment=fulfillment,
        exportRows=[to_export_row(row) for row in rows],
    )
