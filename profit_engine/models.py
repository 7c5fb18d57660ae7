"""
Canonical domain models for the profit engine.

Raw snapshot records arrive in many shapes (camelCase, snake_case, platform
money sets, edge/node containers). The adapter stage in
`profit_engine.normalizer` and the `from_raw` constructors below turn them
into these dataclasses once, so aggregation code never reads raw records.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from profit_engine.safe import (
    as_record,
    clamp_percentage,
    first_present,
    first_text,
    safe_number,
    to_string_id,
    to_utc_datetime,
)

DAY = timedelta(days=1)


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class CostType(str, Enum):
    """Cost record categories."""
    COGS = "cogs"
    SHIPPING = "shipping"
    HANDLING = "handling"
    TRANSACTION = "transaction"
    TAX = "tax"
    MARKETING = "marketing"
    OPERATIONAL = "operational"
    CUSTOM = "custom"
    PRODUCT = "product"
    PAYMENT = "payment"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "CostType":
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.UNKNOWN


class CostCalculation(str, Enum):
    """How a cost record's value is applied."""
    FIXED = "fixed"
    PERCENTAGE = "percentage"
    PER_UNIT = "per_unit"
    PER_ORDER = "per_order"
    TIERED = "tiered"
    WEIGHT_BASED = "weight_based"
    FORMULA = "formula"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "CostCalculation":
        text = str(value or "fixed").strip().lower()
        try:
            return cls(text)
        except ValueError:
            return cls.UNKNOWN


class CostFrequency(str, Enum):
    """Recurrence of a cost record."""
    ONE_TIME = "one_time"
    PER_ORDER = "per_order"
    PER_ITEM = "per_item"
    PER_UNIT = "per_unit"
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    BIMONTHLY = "bimonthly"
    QUARTERLY = "quarterly"
    SEMIANNUAL = "semiannual"
    YEARLY = "yearly"
    PERCENTAGE = "percentage"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "CostFrequency":
        text = str(value or "").strip().lower()
        if not text:
            return cls.UNKNOWN
        text = FREQUENCY_ALIASES.get(text, text)
        try:
            return cls(text)
        except ValueError:
            return cls.UNKNOWN

    @property
    def duration(self) -> Optional[timedelta]:
        """Length of one period, or None when the frequency is not a time period."""
        return FREQUENCY_DURATIONS.get(self)


FREQUENCY_ALIASES = {
    "day": "daily",
    "week": "weekly",
    "fortnight": "biweekly",
    "fortnightly": "biweekly",
    "month": "monthly",
    "quarter": "quarterly",
    "semiannually": "semiannual",
    "biannual": "semiannual",
    "year": "yearly",
    "annual": "yearly",
    "annually": "yearly",
}

FREQUENCY_DURATIONS = {
    CostFrequency.DAILY: DAY,
    CostFrequency.WEEKLY: 7 * DAY,
    CostFrequency.BIWEEKLY: 14 * DAY,
    CostFrequency.MONTHLY: 30 * DAY,
    CostFrequency.BIMONTHLY: 60 * DAY,
    CostFrequency.QUARTERLY: 91 * DAY,
    CostFrequency.SEMIANNUAL: 182 * DAY,
    CostFrequency.YEARLY: 365 * DAY,
}


class CostMode(str, Enum):
    """Resolved proration mode of a cost record."""
    PER_ORDER = "perOrder"
    PER_UNIT = "perUnit"
    PERCENTAGE_REVENUE = "percentageRevenue"
    FIXED = "fixed"

    @classmethod
    def resolve(cls, frequency: CostFrequency, calculation: CostCalculation) -> "CostMode":
        """Frequency wins over calculation; anything unrecognised is fixed."""
        if frequency == CostFrequency.PER_ORDER:
            return cls.PER_ORDER
        if frequency in (CostFrequency.PER_UNIT, CostFrequency.PER_ITEM):
            return cls.PER_UNIT
        if calculation == CostCalculation.PERCENTAGE:
            return cls.PERCENTAGE_REVENUE
        if calculation == CostCalculation.PER_UNIT:
            return cls.PER_UNIT
        return cls.FIXED


# ═══════════════════════════════════════════════════════════════════════════════
# COST DEFINITIONS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class CostRecord:
    """Organization-level cost definition."""
    id: str
    type: CostType
    value: float
    calculation: CostCalculation = CostCalculation.FIXED
    frequency: CostFrequency = CostFrequency.UNKNOWN
    mode: CostMode = CostMode.FIXED
    name: str = ""
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None
    is_active: bool = True

    @classmethod
    def from_raw(cls, data: Mapping[str, Any]) -> "CostRecord":
        """Create CostRecord from a raw snapshot record."""
        data = as_record(data)
        calculation = CostCalculation.parse(data.get("calculation"))
        frequency = CostFrequency.parse(
            first_present(data, "frequency", "recurrence", "intervalUnit", "interval")
        )
        return cls(
            id=to_string_id(first_present(data, "_id", "id")),
            type=CostType.parse(data.get("type")),
            value=safe_number(first_present(data, "value", "amount", "total")),
            calculation=calculation,
            frequency=frequency,
            mode=CostMode.resolve(frequency, calculation),
            name=first_text(data.get("name")),
            effective_from=to_utc_datetime(first_present(data, "effectiveFrom", "effective_from")),
            effective_to=to_utc_datetime(first_present(data, "effectiveTo", "effective_to")),
            is_active=data.get("isActive", data.get("is_active", True)) is not False,
        )


@dataclass
class VariantCostComponent:
    """Per-variant COGS/handling/tax override."""
    variant_id: str
    cogs_per_unit: float = 0.0
    handling_per_unit: float = 0.0
    shipping_per_unit: float = 0.0
    tax_percent: float = 0.0
    updated_at: float = 0.0

    @classmethod
    def from_raw(cls, data: Mapping[str, Any]) -> "VariantCostComponent":
        data = as_record(data)
        updated = to_utc_datetime(first_present(data, "updatedAt", "updated_at", "createdAt", "created_at"))
        return cls(
            variant_id=to_string_id(first_present(data, "variantId", "variant_id")),
            cogs_per_unit=safe_number(first_present(data, "cogsPerUnit", "cogs_per_unit")),
            handling_per_unit=safe_number(first_present(data, "handlingPerUnit", "handling_per_unit")),
            shipping_per_unit=safe_number(first_present(data, "shippingPerUnit", "shipping_per_unit")),
            tax_percent=safe_number(first_present(data, "taxPercent", "tax_percent")),
            updated_at=updated.timestamp() if updated else 0.0,
        )

    @property
    def tax_rate(self) -> float:
        """Tax as a fraction: values above 1 are percentages, others already fractions."""
        return self.tax_percent / 100 if self.tax_percent > 1 else self.tax_percent


@dataclass
class ManualReturnRateEntry:
    """Organization-entered estimate of revenue lost to returns."""
    percent: float
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None
    is_active: bool = True
    updated_at: float = 0.0

    @classmethod
    def from_raw(cls, data: Mapping[str, Any]) -> "ManualReturnRateEntry":
        data = as_record(data)
        effective_from = to_utc_datetime(
            first_present(data, "effectiveFrom", "effective_from", "createdAt", "created_at")
        )
        updated = to_utc_datetime(
            first_present(data, "updatedAt", "updated_at", "effectiveFrom", "createdAt")
        )
        return cls(
            percent=clamp_percentage(safe_number(first_present(data, "ratePercent", "rate", "percent", "value"))),
            effective_from=effective_from,
            effective_to=to_utc_datetime(first_present(data, "effectiveTo", "effective_to")),
            is_active=data.get("isActive", data.get("is_active", True)) is not False,
            updated_at=updated.timestamp() if updated else 0.0,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# ACTIVITY RECORDS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class Transaction:
    """Payment transaction linked to an order."""
    order_id: str
    fee: float = 0.0
    gateway: str = ""

    @classmethod
    def from_raw(cls, data: Mapping[str, Any]) -> "Transaction":
        data = as_record(data)
        return cls(
            order_id=to_string_id(first_present(data, "orderId", "order_id")),
            fee=abs(safe_number(first_present(data, "fee", "applicationFee", "totalFees"))),
            gateway=first_text(data.get("gateway"), data.get("paymentMethod"), data.get("payment_method")),
        )


@dataclass
class Refund:
    """Refund issued against an order."""
    order_id: str
    amount: float = 0.0
    created_at: Optional[datetime] = None

    @classmethod
    def from_raw(cls, data: Mapping[str, Any]) -> "Refund":
        data = as_record(data)
        return cls(
            order_id=to_string_id(first_present(data, "orderId", "order_id")),
            amount=safe_number(first_present(data, "totalRefunded", "amount")),
            created_at=to_utc_datetime(
                first_present(data, "shopifyCreatedAt", "createdAt", "created_at", "processedAt")
            ),
        )


@dataclass
class AdInsight:
    """Daily advertising performance row."""
    date: Optional[datetime]
    entity_type: Optional[str] = None
    spend: float = 0.0
    impressions: float = 0.0
    clicks: float = 0.0
    unique_clicks: float = 0.0
    reach: float = 0.0
    conversions: float = 0.0
    conversion_value: float = 0.0
    add_to_cart: float = 0.0
    initiate_checkout: float = 0.0
    page_views: float = 0.0
    view_content: float = 0.0
    link_clicks: float = 0.0
    outbound_clicks: float = 0.0
    landing_page_views: float = 0.0
    video_views: float = 0.0
    video_3sec_views: float = 0.0
    cost_per_thru_play: float = 0.0

    @classmethod
    def from_raw(cls, data: Mapping[str, Any]) -> "AdInsight":
        data = as_record(data)
        entity_type = data.get("entityType", data.get("entity_type"))
        return cls(
            date=to_utc_datetime(data.get("date")),
            entity_type=entity_type.strip().lower() if isinstance(entity_type, str) else None,
            spend=safe_number(data.get("spend")),
            impressions=safe_number(data.get("impressions")),
            clicks=safe_number(data.get("clicks")),
            unique_clicks=safe_number(first_present(data, "uniqueClicks", "unique_clicks")),
            reach=safe_number(data.get("reach")),
            conversions=safe_number(data.get("conversions")),
            conversion_value=safe_number(first_present(data, "conversionValue", "conversion_value")),
            add_to_cart=safe_number(first_present(data, "addToCart", "add_to_cart")),
            initiate_checkout=safe_number(first_present(data, "initiateCheckout", "initiate_checkout")),
            page_views=safe_number(first_present(data, "pageViews", "page_views")),
            view_content=safe_number(first_present(data, "viewContent", "view_content")),
            link_clicks=safe_number(first_present(data, "linkClicks", "link_clicks")),
            outbound_clicks=safe_number(first_present(data, "outboundClicks", "outbound_clicks")),
            landing_page_views=safe_number(first_present(data, "landingPageViews", "landing_page_views")),
            video_views=safe_number(first_present(data, "videoViews", "video_views")),
            video_3sec_views=safe_number(first_present(data, "video3SecViews", "video_3sec_views")),
            cost_per_thru_play=safe_number(first_present(data, "costPerThruPlay", "cost_per_thru_play")),
        )

    @property
    def is_account_level(self) -> bool:
        """Only account-level rows count as canonical ad spend."""
        return self.entity_type is None or self.entity_type == "account"


@dataclass
class TrafficSnapshot:
    """Storefront sessions and conversions for one day."""
    date: Optional[datetime] = None
    sessions: float = 0.0
    visitors: float = 0.0
    conversions: float = 0.0

    @classmethod
    def from_raw(cls, data: Mapping[str, Any]) -> "TrafficSnapshot":
        data = as_record(data)
        return cls(
            date=to_utc_datetime(data.get("date")),
            sessions=safe_number(first_present(data, "sessions", "visitors", "visits")),
            visitors=safe_number(first_present(data, "visitors", "sessions", "visits")),
            conversions=safe_number(first_present(data, "conversions", "orders", "conversion")),
        )


@dataclass
class Customer:
    """Store customer."""
    id: str
    orders_count: Optional[float] = None

    @classmethod
    def from_raw(cls, data: Mapping[str, Any]) -> "Customer":
        data = as_record(data)
        count = first_present(data, "ordersCount", "orders_count")
        return cls(
            id=to_string_id(first_present(data, "_id", "id", "customerId")),
            orders_count=safe_number(count) if count is not None else None,
        )


@dataclass
class Variant:
    """Product variant with its internal and platform identifiers."""
    id: str
    platform_id: Optional[str] = None

    @classmethod
    def from_raw(cls, data: Mapping[str, Any]) -> "Variant":
        data = as_record(data)
        platform_id = first_present(
            data,
            "shopifyVariantId", "shopifyVariantID", "shopify_variant_id",
            "shopifyVariant", "shopifyId", "shopify_id",
        )
        platform_id = platform_id.strip() if isinstance(platform_id, str) else ""
        return cls(
            id=to_string_id(first_present(data, "_id", "id", "variantId")),
            platform_id=platform_id or None,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# ORDERS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class OrderItem:
    """Order line item with its resolved variant."""
    id: str
    order_id: str
    variant_id: str = ""
    quantity: float = 0.0
    price: float = 0.0
    line_cost: float = 0.0
    title: str = "Item"
    sku: str = ""

    @property
    def total(self) -> float:
        """Line revenue."""
        return self.price * self.quantity


@dataclass
class Order:
    """Canonical order view produced by the normalizer."""
    id: str
    order_number: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    status: str = ""
    financial_status: str = ""
    fulfillment_status: str = ""
    raw_fulfillment_status: str = ""
    total_price: float = 0.0
    subtotal_price: Optional[float] = None
    total_discounts: float = 0.0
    total_tax: float = 0.0
    total_refunded: float = 0.0
    shipping_cost: float = 0.0
    total_quantity: float = 0.0
    customer_id: str = ""
    customer_name: str = ""
    customer_email: str = ""
    payment_method: str = ""
    channel: str = ""
    tags: List[str] = field(default_factory=list)
    shipping_city: str = ""
    shipping_country: str = ""
    is_cancelled: bool = False
    items: List[OrderItem] = field(default_factory=list)

    @property
    def gross_sales(self) -> float:
        """Subtotal when known, else the order total."""
        return self.subtotal_price if self.subtotal_price is not None else self.total_price

    @property
    def item_count(self) -> float:
        return sum(item.quantity for item in self.items)

    @property
    def ship_to(self) -> str:
        parts = [part for part in (self.shipping_city, self.shipping_country) if part]
        return ", ".join(parts)


@dataclass
class Dataset:
    """Canonical, per-organization snapshot consumed by the aggregators."""
    window: Optional[Any] = None
    orders: List[Order] = field(default_factory=list)
    transactions: List[Transaction] = field(default_factory=list)
    refunds: List[Refund] = field(default_factory=list)
    ad_insights: List[AdInsight] = field(default_factory=list)
    cost_records: List[CostRecord] = field(default_factory=list)
    variant_costs: Dict[str, VariantCostComponent] = field(default_factory=dict)
    manual_return_rates: List[ManualReturnRateEntry] = field(default_factory=list)
    customers: Dict[str, Customer] = field(default_factory=dict)
    traffic: List[TrafficSnapshot] = field(default_factory=list)
    currency: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.orders or self.ad_insights or self.traffic or self.refunds)

    @property
    def account_ad_insights(self) -> List[AdInsight]:
        return [insight for insight in self.ad_insights if insight.is_account_level]

    @property
    def active_orders(self) -> List[Order]:
        return [order for order in self.orders if not order.is_cancelled]

    @property
    def cancelled_order_ids(self) -> set:
        return {order.id for order in self.orders if order.is_cancelled}
