"""
Record normalization.

Raw snapshots come from several sources and revisions of the storefront
API: the same fact can live in a flat field, a nested totals object, a money
set or an edge/node collection. Every fallback-chain read happens here, once,
and produces the canonical models in `profit_engine.models`.
"""
import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from profit_engine.config import DEFAULT_CONFIG, EngineConfig, NormalizationConfig
from profit_engine.models import (
    AdInsight,
    CostRecord,
    Customer,
    Dataset,
    ManualReturnRateEntry,
    Order,
    OrderItem,
    Refund,
    TrafficSnapshot,
    Transaction,
    Variant,
    VariantCostComponent,
)
from profit_engine.safe import (
    as_list,
    as_record,
    first_present,
    first_text,
    safe_number,
    to_string_id,
    to_utc_datetime,
)
from profit_engine.windows import ReportingWindow, resolve_window

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# FIELD CHAINS
# ═══════════════════════════════════════════════════════════════════════════════

DIRECT_FULFILLMENT_FIELDS = (
    "fulfillmentStatus",
    "displayFulfillmentStatus",
    "display_fulfillment_status",
    "fulfillment_status",
    "status",
)

FULFILLMENT_COLLECTIONS = ("fulfillments", "fulfillmentOrders", "fulfillment_orders")

ENTRY_STATUS_FIELDS = (
    "status",
    "displayStatus",
    "display_status",
    "state",
    "fulfillmentStatus",
    "fulfillment_status",
)

# Checked in order after the all-fulfilled and cancelled rules
FULFILLMENT_STATUS_RULES = (
    ("partial", "partially_fulfilled"),
    ("out_for_delivery", "out_for_delivery"),
    ("in_transit", "in_transit"),
    ("ready_for_pickup", "ready_for_pickup"),
    ("label_printed", "label_printed"),
    ("label_purchased", "label_purchased"),
    ("pending", "pending"),
    ("scheduled", "scheduled"),
    ("on_hold", "on_hold"),
    ("shipped", "shipped"),
    ("delivered", "delivered"),
    ("returned", "returned"),
    ("not_delivered", "not_delivered"),
    ("unfulfilled", "unfulfilled"),
)

SHIPPING_COST_FIELDS = (
    "shippingCosts",
    "totalShippingCost",
    "totalShipping",
    "shippingCost",
    "shipping_cost",
    "shippingTotal",
    "total_shipping",
    "totalShippingPrice",
    "totalShippingAmount",
)

SHIPPING_LINE_AMOUNT_FIELDS = (
    "price",
    "discountedPrice",
    "discounted_price",
    "originalPrice",
    "original_price",
    "amount",
    "value",
    "cost",
)

CANCELLATION_FIELDS = (
    "status",
    "financialStatus",
    "fulfillmentStatus",
    "financial_status",
    "fulfillment_status",
)

CHANNEL_FIELDS = ("utmSource", "utm_source", "sessionSource", "referringSite", "referring_site", "source")

LINE_COST_FIELDS = ("totalCostOfGoods", "totalCost", "cost", "cogs")

# Collection names accepted for each dataset section
DATASET_SECTIONS = {
    "orders": ("orders",),
    "order_items": ("orderItems", "order_items"),
    "transactions": ("transactions",),
    "refunds": ("refunds",),
    "ad_insights": ("adInsights", "ad_insights", "metaInsights"),
    "cost_records": ("costs", "costRecords", "cost_records", "globalCosts"),
    "variant_costs": ("variantCosts", "variant_costs"),
    "variants": ("variants",),
    "manual_return_rates": ("manualReturnRates", "manual_return_rates"),
    "customers": ("customers",),
    "traffic": ("analytics", "traffic", "sessions"),
}


def _slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", value.strip().lower()).strip("_")


def _records(value: Any) -> List[Dict[str, Any]]:
    """Mappings in a list, ignoring anything else."""
    return [entry for entry in as_list(value) if isinstance(entry, Mapping)]


def _edge_nodes(container: Any) -> List[Dict[str, Any]]:
    """Nodes of an ``{"edges": [{"node": {...}}]}`` container."""
    nodes = []
    for edge in _records(as_record(container).get("edges")):
        node = edge.get("node")
        if isinstance(node, Mapping):
            nodes.append(node)
    return nodes


def _pick_amount(candidates: Iterable[Any]) -> Optional[float]:
    """First clearly non-zero candidate, else the first present one, else None."""
    present = [safe_number(value) for value in candidates if value is not None]
    for value in present:
        if value != 0:
            return value
    return present[0] if present else None


def _section(data: Mapping[str, Any], name: str) -> list:
    return as_list(first_present(data, *DATASET_SECTIONS[name]))


# ═══════════════════════════════════════════════════════════════════════════════
# FIELD RESOLVERS
# ═══════════════════════════════════════════════════════════════════════════════

def resolve_fulfillment_status(order: Mapping[str, Any]) -> str:
    """
    Resolve one fulfillment status for a raw order.

    Direct string fields win. Otherwise statuses are collected from the
    fulfillment collections (lists or edge containers), then from line
    items, and classified by ordered substring rules.

    Examples:
        >>> resolve_fulfillment_status({"fulfillments": [{"status": "SUCCESS"}]})
        'fulfilled'
        >>> resolve_fulfillment_status({"fulfillmentOrders": {"edges": [
        ...     {"node": {"status": "IN_TRANSIT"}}, {"node": {"status": "OPEN"}}]}})
        'in_transit'
    """
    order = as_record(order)

    direct = first_text(*(order.get(key) for key in DIRECT_FULFILLMENT_FIELDS))
    if direct:
        return direct

    def entry_status(entry: Mapping[str, Any]) -> str:
        return first_text(first_present(entry, *ENTRY_STATUS_FIELDS))

    statuses: List[str] = []
    for key in FULFILLMENT_COLLECTIONS:
        statuses.extend(entry_status(entry) for entry in _records(order.get(key)))
    for key in FULFILLMENT_COLLECTIONS:
        statuses.extend(entry_status(node) for node in _edge_nodes(order.get(key)))
    statuses = [status for status in statuses if status]

    if not statuses:
        line_items = first_present(order, "lineItems", "line_items")
        statuses = [status for status in (entry_status(item) for item in _records(line_items)) if status]

    slugs = [slug for slug in (_slugify(status) for status in statuses) if slug]
    if not slugs:
        return ""

    def has(match: str) -> bool:
        return any(match in slug for slug in slugs)

    # "unfulfilled" contains "fulfilled"; it must not count towards all-fulfilled
    all_fulfilled = all("fulfilled" in slug and "unfulfilled" not in slug for slug in slugs)
    if all_fulfilled or (has("success") and not has("open") and not has("pending")):
        return "fulfilled"

    if has("cancel"):
        return "cancelled"

    for match, status in FULFILLMENT_STATUS_RULES:
        if has(match):
            return status

    return statuses[0]


def resolve_shipping_cost(order: Mapping[str, Any]) -> float:
    """
    Resolve the shipping amount charged on a raw order.

    Candidates are tried in order: flat fields, the ``totals`` object, the
    shipping price money set (shop then presentment), shipping-line
    collections and shipping adjustments. The first clearly non-zero value
    wins; otherwise the first present one; otherwise 0.
    """
    order = as_record(order)
    candidates: List[Any] = [order.get(key) for key in SHIPPING_COST_FIELDS]

    totals = as_record(order.get("totals"))
    candidates.extend(totals.get(key) for key in ("shipping", "shippingPrice", "shipping_price"))

    price_set = as_record(first_present(order, "total_shipping_price_set", "totalShippingPriceSet"))
    for keys in (("shop_money", "shopMoney"), ("presentment_money", "presentmentMoney")):
        candidates.append(as_record(first_present(price_set, *keys)).get("amount"))

    collections = [
        _records(first_present(order, "shippingLines", "shipping_lines")),
        _edge_nodes(order.get("shippingLines")),
        _edge_nodes(order.get("shipping_lines")),
        _records(first_present(order, "shippingAdjustments", "shipping_adjustments")),
    ]
    for lines in collections:
        if lines:
            candidates.append(
                sum(_pick_amount(line.get(key) for key in SHIPPING_LINE_AMOUNT_FIELDS) or 0.0 for line in lines)
            )

    resolved = _pick_amount(candidates)
    return resolved if resolved is not None else 0.0


def _person_name(record: Any) -> str:
    record = as_record(record)
    full_name = " ".join([
        first_text(record.get("firstName"), record.get("first_name")),
        first_text(record.get("lastName"), record.get("last_name")),
    ])
    return first_text(record.get("name"), record.get("displayName"), record.get("display_name"), full_name)


def resolve_customer_identity(
    order: Mapping[str, Any],
    guest_name: str = NormalizationConfig.guest_customer_name,
) -> Dict[str, str]:
    """
    Resolve display name and email for a raw order.

    Returns:
        Dict with "name" (guest_name when nothing usable) and "email" ("" default)
    """
    order = as_record(order)
    customer = as_record(order.get("customer"))
    shipping = as_record(first_present(order, "shippingAddress", "shipping_address"))
    billing = as_record(first_present(order, "billingAddress", "billing_address"))

    customer_full_name = " ".join([
        first_text(customer.get("firstName"), customer.get("first_name")),
        first_text(customer.get("lastName"), customer.get("last_name")),
    ])
    name = first_text(
        order.get("customerName"),
        customer.get("displayName"),
        customer.get("display_name"),
        customer.get("name"),
        customer_full_name,
        _person_name(shipping),
        _person_name(billing),
        order.get("contactName"),
        order.get("contact_name"),
    )

    email = first_present(order, "email")
    if email is None:
        email = first_present(customer, "email")
    if email is None:
        email = first_present(shipping, "email")
    if email is None:
        email = first_present(billing, "email")
    if email is None:
        email = first_present(order, "contactEmail", "contact_email")

    return {
        "name": name or guest_name,
        "email": email if isinstance(email, str) else "",
    }


def is_cancelled_order(
    order: Mapping[str, Any],
    markers: Iterable[str] = NormalizationConfig.cancellation_markers,
) -> bool:
    """Check status, financial status and fulfillment status for cancellation markers."""
    order = as_record(order)
    markers = tuple(markers)
    for key in CANCELLATION_FIELDS:
        value = order.get(key)
        if not value:
            continue
        text = str(value).lower()
        if any(marker in text for marker in markers):
            return True
    return False


def _parse_tags(value: Any) -> List[str]:
    if isinstance(value, str):
        return [tag.strip() for tag in value.split(",") if tag.strip()]
    return [str(tag) for tag in as_list(value) if tag is not None and str(tag).strip()]


# ═══════════════════════════════════════════════════════════════════════════════
# VARIANTS
# ═══════════════════════════════════════════════════════════════════════════════

def index_variant_costs(components: Iterable[Any]) -> Dict[str, VariantCostComponent]:
    """Index cost components by variant id; the most recently updated one wins."""
    indexed: Dict[str, VariantCostComponent] = {}
    for raw in components:
        component = VariantCostComponent.from_raw(raw)
        if not component.variant_id:
            continue
        current = indexed.get(component.variant_id)
        if current is None or component.updated_at > current.updated_at:
            indexed[component.variant_id] = component
    return indexed


class VariantResolver:
    """
    Resolves a line item's variant reference to an internal variant id.

    The direct id is used when it is a known variant or has a cost
    component; otherwise the item's platform variant id is looked up in an
    index of variants by platform id; otherwise the raw direct id is kept.
    """

    def __init__(self, variants: Iterable[Any], components: Mapping[str, VariantCostComponent]):
        self._known_ids = set(components)
        self._by_platform_id: Dict[str, str] = {}
        for raw in variants:
            variant = Variant.from_raw(raw)
            if variant.id:
                self._known_ids.add(variant.id)
            if variant.platform_id:
                self._by_platform_id[variant.platform_id] = variant.id

    def resolve(self, item: Mapping[str, Any]) -> str:
        item = as_record(item)
        direct = to_string_id(first_present(item, "variantId", "variant_id"))
        if direct and direct in self._known_ids:
            return direct

        platform_id = first_present(item, "shopifyVariantId", "shopify_variant_id", "variantShopifyId")
        if isinstance(platform_id, str) and platform_id.strip():
            resolved = self._by_platform_id.get(platform_id.strip())
            if resolved:
                return resolved

        return direct


# ═══════════════════════════════════════════════════════════════════════════════
# ORDERS
# ═══════════════════════════════════════════════════════════════════════════════

def _order_key(order: Mapping[str, Any]) -> str:
    return to_string_id(first_present(order, "_id", "id", "orderId", "shopifyId", "order_id"))


def _item_order_key(item: Mapping[str, Any]) -> str:
    return to_string_id(first_present(item, "orderId", "order_id", "order", "shopifyOrderId"))


def normalize_item(item: Mapping[str, Any], order_id: str, resolver: VariantResolver) -> OrderItem:
    """Build a canonical OrderItem from a raw line item."""
    item = as_record(item)
    title = first_text(item.get("title"), item.get("productTitle"), item.get("name")) or "Item"
    sku = first_text(item.get("sku"))
    return OrderItem(
        id=to_string_id(first_present(item, "_id", "id")) or f"{order_id}-{sku or title}",
        order_id=order_id,
        variant_id=resolver.resolve(item),
        quantity=safe_number(item.get("quantity")),
        price=safe_number(item.get("price")),
        line_cost=safe_number(first_present(item, *LINE_COST_FIELDS)),
        title=title,
        sku=sku,
    )


def normalize_order(
    raw: Mapping[str, Any],
    items: Optional[List[OrderItem]] = None,
    transactions: Optional[List[Transaction]] = None,
    config: NormalizationConfig = NormalizationConfig(),
) -> Order:
    """
    Build a canonical Order from a raw order record.

    Args:
        raw: Raw order record
        items: Normalized line items of this order
        transactions: Normalized transactions of this order (payment method)
        config: Normalization defaults

    Returns:
        Order with every fallback chain resolved
    """
    raw = as_record(raw)
    order_id = _order_key(raw)
    identity = resolve_customer_identity(raw, config.guest_customer_name)
    shipping_address = as_record(first_present(raw, "shippingAddress", "shipping_address"))
    customer = raw.get("customer")

    created_at = to_utc_datetime(first_present(raw, "shopifyCreatedAt", "createdAt", "created_at"))
    updated_at = to_utc_datetime(first_present(raw, "shopifyUpdatedAt", "updatedAt", "updated_at")) or created_at

    subtotal = first_present(raw, "subtotalPrice", "subtotal_price")
    payment_fallback = first_present(raw, "paymentMethod", "paymentGateway", "gateway", "payment_methods")
    if isinstance(payment_fallback, (list, tuple)):
        payment_fallback = next((entry for entry in payment_fallback if isinstance(entry, str)), "")
    payment_method = first_text(
        *(tx.gateway for tx in (transactions or [])[:1]),
        payment_fallback,
    )

    customer_id = to_string_id(first_present(raw, "customerId", "customer_id"))
    if not customer_id and isinstance(customer, Mapping):
        customer_id = to_string_id(customer)

    return Order(
        id=order_id,
        order_number=str(first_present(raw, "orderNumber", "order_number", "name", "shopifyId", default=order_id)),
        created_at=created_at,
        updated_at=updated_at,
        status=str(raw.get("status") or ""),
        financial_status=str(first_present(raw, "financialStatus", "financial_status", default="")),
        fulfillment_status=resolve_fulfillment_status(raw),
        raw_fulfillment_status=str(first_present(raw, "fulfillmentStatus", "fulfillment_status", default="")),
        total_price=safe_number(first_present(raw, "totalPrice", "total_price")),
        subtotal_price=safe_number(subtotal) if subtotal is not None else None,
        total_discounts=safe_number(first_present(raw, "totalDiscounts", "total_discounts")),
        total_tax=safe_number(first_present(raw, "taxesCollected", "totalTax", "total_tax")),
        total_refunded=safe_number(first_present(raw, "totalRefunded", "totalRefunds", "total_refunded")),
        shipping_cost=resolve_shipping_cost(raw),
        total_quantity=safe_number(
            first_present(raw, "totalQuantity", "totalQuantityOrdered", "totalItems", "total_quantity")
        ),
        customer_id=customer_id,
        customer_name=identity["name"],
        customer_email=identity["email"],
        payment_method=payment_method,
        channel=first_text(*(raw.get(key) for key in CHANNEL_FIELDS)) or config.default_channel,
        tags=_parse_tags(raw.get("tags")),
        shipping_city=first_text(shipping_address.get("city"), shipping_address.get("province")),
        shipping_country=first_text(shipping_address.get("country"), shipping_address.get("countryCode")),
        is_cancelled=is_cancelled_order(raw, config.cancellation_markers),
        items=list(items or []),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# DATASET
# ═══════════════════════════════════════════════════════════════════════════════

def normalize_dataset(
    raw: Any,
    window: Any = None,
    config: Optional[EngineConfig] = None,
) -> Dataset:
    """
    Convert a raw snapshot into a canonical Dataset.

    Accepts None, empty or partial mappings (missing sections are empty), a
    mapping wrapping the sections in ``data``, or an existing Dataset (which
    is returned unchanged). When no window is passed, ``dateRange``
    (startDate/endDate) of the snapshot is used if present.

    Args:
        raw: Raw snapshot mapping or Dataset
        window: Optional reporting window (see `resolve_window`)
        config: Engine configuration

    Returns:
        Canonical Dataset

    Raises:
        ValidationError: If the window (or the snapshot's dateRange) is malformed
    """
    if isinstance(raw, Dataset):
        return raw

    config = config or DEFAULT_CONFIG
    response = as_record(raw)
    data = as_record(response.get("data")) if isinstance(response.get("data"), Mapping) else response

    resolved_window: Optional[ReportingWindow] = resolve_window(window)
    if resolved_window is None:
        date_range = as_record(first_present(response, "dateRange", "date_range"))
        if first_present(date_range, "startDate", "start_date") and first_present(date_range, "endDate", "end_date"):
            resolved_window = resolve_window(date_range)

    variant_costs = index_variant_costs(_section(data, "variant_costs"))
    resolver = VariantResolver(_section(data, "variants"), variant_costs)

    transactions = [Transaction.from_raw(tx) for tx in _records(_section(data, "transactions"))]
    transactions_by_order: Dict[str, List[Transaction]] = {}
    for tx in transactions:
        if tx.order_id:
            transactions_by_order.setdefault(tx.order_id, []).append(tx)

    items_by_order: Dict[str, List[OrderItem]] = {}
    for item in _records(_section(data, "order_items")):
        order_id = _item_order_key(item)
        if not order_id:
            continue
        items_by_order.setdefault(order_id, []).append(normalize_item(item, order_id, resolver))

    orders: List[Order] = []
    for raw_order in _records(_section(data, "orders")):
        order_id = _order_key(raw_order)
        items = items_by_order.pop(order_id, None)
        if items is None:
            embedded = first_present(raw_order, "lineItems", "line_items")
            items = [normalize_item(item, order_id, resolver) for item in _records(embedded)]
        orders.append(
            normalize_order(
                raw_order,
                items=items,
                transactions=transactions_by_order.get(order_id),
                config=config.normalization,
            )
        )

    if items_by_order:
        logger.debug(f"Dropped line items of {len(items_by_order)} orders not in snapshot")

    customers: Dict[str, Customer] = {}
    for raw_customer in _records(_section(data, "customers")):
        customer = Customer.from_raw(raw_customer)
        if customer.id:
            customers[customer.id] = customer

    dataset = Dataset(
        window=resolved_window,
        orders=orders,
        transactions=transactions,
        refunds=[Refund.from_raw(refund) for refund in _records(_section(data, "refunds"))],
        ad_insights=[AdInsight.from_raw(insight) for insight in _records(_section(data, "ad_insights"))],
        cost_records=[CostRecord.from_raw(cost) for cost in _records(_section(data, "cost_records"))],
        variant_costs=variant_costs,
        manual_return_rates=[
            ManualReturnRateEntry.from_raw(entry) for entry in _records(_section(data, "manual_return_rates"))
        ],
        customers=customers,
        traffic=[TrafficSnapshot.from_raw(entry) for entry in _records(_section(data, "traffic"))],
        currency=first_text(response.get("currency"), data.get("currency")) or None,
    )

    logger.debug(
        f"Normalized dataset: {len(dataset.orders)} orders, "
        f"{len(dataset.cost_records)} costs, {len(dataset.ad_insights)} ad insights"
    )
    return dataset
