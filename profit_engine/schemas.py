"""
Pydantic result models for the public computations.

Field names are camelCase to match the dashboard contract. Every field has a
zero default so an empty dataset still produces the complete shape.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# ═══════════════════════════════════════════════════════════════════════════════
# COMMON MODELS
# ═══════════════════════════════════════════════════════════════════════════════

class MetricValue(BaseModel):
    """Metric value with its change versus the previous period."""
    value: float = 0.0
    change: float = Field(0.0, description="Percent change vs previous period")


class DateRange(BaseModel):
    """Resolved reporting window."""
    startDate: str = Field(description="First day (YYYY-MM-DD, UTC)")
    endDate: str = Field(description="Last day (YYYY-MM-DD, UTC)")


# ═══════════════════════════════════════════════════════════════════════════════
# OVERVIEW
# ═══════════════════════════════════════════════════════════════════════════════

class OverviewSummary(BaseModel):
    """Organization-wide P&L summary for one window."""
    # Revenue
    revenue: float = Field(0.0, description="Recognized revenue of active orders")
    revenueChange: float = 0.0
    grossSales: float = Field(0.0, description="Sum of subtotals (total when missing)")
    grossSalesChange: float = 0.0
    discounts: float = 0.0
    discountsChange: float = 0.0
    discountRate: float = Field(0.0, description="Discounts as % of revenue")
    discountRateChange: float = 0.0
    refunds: float = 0.0
    refundsChange: float = 0.0
    rtoRevenueLost: float = Field(0.0, description="Revenue lost to returns, from the manual return rate")
    rtoRevenueLostChange: float = 0.0
    manualReturnRate: float = Field(0.0, description="Manual return rate in effect (0-100)")
    manualReturnRateChange: float = 0.0

    # Profit
    profit: float = Field(0.0, description="Net profit")
    profitChange: float = 0.0
    profitMargin: float = Field(0.0, description="Net profit as % of revenue")
    profitMarginChange: float = 0.0
    grossProfit: float = Field(0.0, description="Revenue minus COGS")
    grossProfitChange: float = 0.0
    grossProfitMargin: float = 0.0
    grossProfitMarginChange: float = 0.0
    contributionMargin: float = Field(0.0, description="Revenue minus variable costs, before ads")
    contributionMarginChange: float = 0.0
    contributionMarginPercentage: float = 0.0
    contributionMarginPercentageChange: float = 0.0
    operatingMargin: float = Field(0.0, description="Profit before ad spend as % of revenue")
    operatingMarginChange: float = 0.0

    # Marketing
    blendedMarketingCost: float = 0.0
    blendedMarketingCostChange: float = 0.0
    adSpend: float = Field(0.0, description="Account-level ad spend in the window")
    adSpendChange: float = 0.0
    marketingPercentageOfGross: float = 0.0
    marketingPercentageOfGrossChange: float = 0.0
    marketingPercentageOfNet: float = 0.0
    marketingPercentageOfNetChange: float = 0.0
    roas: float = Field(0.0, description="Revenue / ad spend")
    roasChange: float = 0.0
    ncROAS: float = 0.0
    ncROASChange: float = 0.0
    poas: float = Field(0.0, description="Net profit / ad spend")
    poasChange: float = 0.0

    # Orders
    orders: float = Field(0.0, description="Active (non-cancelled) order count")
    ordersChange: float = 0.0
    unitsSold: float = 0.0
    unitsSoldChange: float = 0.0
    avgOrderValue: float = 0.0
    avgOrderValueChange: float = 0.0
    avgOrderCost: float = 0.0
    avgOrderCostChange: float = 0.0
    avgOrderProfit: float = 0.0
    avgOrderProfitChange: float = 0.0
    adSpendPerOrder: float = 0.0
    adSpendPerOrderChange: float = 0.0
    profitPerOrder: float = 0.0
    profitPerOrderChange: float = 0.0
    profitPerUnit: float = 0.0
    profitPerUnitChange: float = 0.0
    fulfillmentCostPerOrder: float = 0.0
    fulfillmentCostPerOrderChange: float = 0.0

    # Costs
    cogs: float = 0.0
    cogsChange: float = 0.0
    cogsPercentageOfGross: float = 0.0
    cogsPercentageOfGrossChange: float = 0.0
    cogsPercentageOfNet: float = 0.0
    cogsPercentageOfNetChange: float = 0.0
    shippingCosts: float = 0.0
    shippingCostsChange: float = 0.0
    shippingPercentageOfNet: float = 0.0
    shippingPercentageOfNetChange: float = 0.0
    transactionFees: float = 0.0
    transactionFeesChange: float = 0.0
    handlingFees: float = 0.0
    handlingFeesChange: float = 0.0
    taxesCollected: float = 0.0
    taxesCollectedChange: float = 0.0
    taxesPercentageOfRevenue: float = 0.0
    taxesPercentageOfRevenueChange: float = 0.0
    customCosts: float = Field(0.0, description="Operational and custom costs")
    customCostsChange: float = 0.0
    customCostsPercentage: float = 0.0
    customCostsPercentageChange: float = 0.0

    # Customers
    customers: float = 0.0
    customersChange: float = 0.0
    newCustomers: float = 0.0
    newCustomersChange: float = 0.0
    returningCustomers: float = 0.0
    returningCustomersChange: float = 0.0
    repeatCustomerRate: float = 0.0
    repeatCustomerRateChange: float = 0.0
    customerAcquisitionCost: float = Field(0.0, description="Ad spend / new customers")
    customerAcquisitionCostChange: float = 0.0
    cacPercentageOfAOV: float = 0.0
    cacPercentageOfAOVChange: float = 0.0
    returnRate: float = Field(0.0, description="Refund records as % of active orders")
    returnRateChange: float = 0.0


class OverviewExtras(BaseModel):
    """Storefront traffic figures shown next to the summary."""
    blendedSessionConversionRate: float = 0.0
    blendedSessionConversionRateChange: float = 0.0
    uniqueVisitors: float = 0.0


class OverviewResult(BaseModel):
    """Overview computation result."""
    summary: OverviewSummary = Field(default_factory=OverviewSummary)
    metrics: Dict[str, MetricValue] = Field(default_factory=dict, description="Compact dashboard metrics")
    extras: OverviewExtras = Field(default_factory=OverviewExtras)
    dateRange: Optional[DateRange] = None


# ═══════════════════════════════════════════════════════════════════════════════
# ORDERS
# ═══════════════════════════════════════════════════════════════════════════════

class OrderCustomer(BaseModel):
    """Resolved customer identity."""
    name: str
    email: str = ""


class OrderShippingAddress(BaseModel):
    city: str = ""
    country: str = ""


class OrderLine(BaseModel):
    """Line item economics."""
    id: str
    name: str
    quantity: float = 0.0
    price: float = 0.0
    cost: float = 0.0


class OrderRow(BaseModel):
    """Per-order economics row."""
    id: str
    orderNumber: str
    customer: OrderCustomer
    status: str = ""
    fulfillmentStatus: str = ""
    financialStatus: str = ""
    items: float = Field(0.0, description="Units across line items")
    totalPrice: float = 0.0
    totalCost: float = Field(0.0, description="COGS + shipping + tax + transaction fees")
    profit: float = 0.0
    profitMargin: float = 0.0
    taxAmount: float = 0.0
    shippingCost: float = 0.0
    paymentMethod: str = ""
    tags: List[str] = Field(default_factory=list)
    shippingAddress: OrderShippingAddress = Field(default_factory=OrderShippingAddress)
    createdAt: Optional[str] = Field(None, description="Creation time (ISO format, UTC)")
    updatedAt: Optional[str] = None
    lineItems: List[OrderLine] = Field(default_factory=list)


class PaginationInfo(BaseModel):
    """Pagination metadata."""
    page: int = 1
    pageSize: int = 50
    total: int = 0
    totalPages: int = 1


class OrdersPage(BaseModel):
    data: List[OrderRow] = Field(default_factory=list)
    pagination: PaginationInfo = Field(default_factory=PaginationInfo)


class OrdersChanges(BaseModel):
    """Percent changes vs the previous dataset."""
    totalOrders: float = 0.0
    revenue: float = 0.0
    netProfit: float = 0.0
    avgOrderValue: float = 0.0
    cac: float = 0.0
    margin: float = 0.0
    fulfillmentRate: float = 0.0
    prepaidRate: float = 0.0
    repeatRate: float = 0.0
    rtoRevenueLoss: float = 0.0


class StatusBreakdown(BaseModel):
    """Order counts per status filter."""
    unfulfilled: int = 0
    partial: int = 0
    fulfilled: int = 0
    cancelled: int = 0
    refunded: int = 0


class OrdersOverview(BaseModel):
    """Rollups over the filtered orders."""
    totalOrders: int = 0
    totalRevenue: float = 0.0
    totalCosts: float = 0.0
    netProfit: float = 0.0
    totalTax: float = 0.0
    avgOrderValue: float = 0.0
    customerAcquisitionCost: float = 0.0
    grossMargin: float = Field(0.0, description="(revenue - COGS) as % of revenue")
    fulfillmentRate: float = 0.0
    prepaidRate: float = Field(0.0, description="Paid, non-COD orders as % of orders")
    repeatRate: float = 0.0
    rtoRevenueLoss: float = 0.0
    statusBreakdown: StatusBreakdown = Field(default_factory=StatusBreakdown)
    changes: OrdersChanges = Field(default_factory=OrdersChanges)


class FulfillmentMetrics(BaseModel):
    """Fulfillment and return rollups."""
    fulfillmentRate: float = 0.0
    returnRate: float = Field(0.0, description="Orders with any refund as % of orders")
    avgFulfillmentCost: float = Field(0.0, description="Mean shipping cost per order")
    totalOrders: int = 0


class OrderExportRow(BaseModel):
    """Flat order row for CSV download."""
    orderNumber: str
    customerName: str = ""
    customerEmail: str = ""
    status: str = ""
    fulfillmentStatus: str = ""
    financialStatus: str = ""
    items: float = 0.0
    revenue: float = 0.0
    costs: float = 0.0
    profit: float = 0.0
    profitMargin: float = 0.0
    shipping: float = 0.0
    tax: float = 0.0
    payment: str = ""
    shipTo: str = ""
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class OrdersResult(BaseModel):
    """Orders analytics result."""
    overview: OrdersOverview = Field(default_factory=OrdersOverview)
    orders: OrdersPage = Field(default_factory=OrdersPage)
    fulfillment: FulfillmentMetrics = Field(default_factory=FulfillmentMetrics)
    exportRows: List[OrderExportRow] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════════════
# P&L
# ═══════════════════════════════════════════════════════════════════════════════

class PnLMetrics(BaseModel):
    """P&L figures on a net revenue basis."""
    grossSales: float = 0.0
    discounts: float = 0.0
    refunds: float = 0.0
    rtoRevenueLost: float = 0.0
    cancelledRevenue: float = 0.0
    grossRevenue: float = Field(0.0, description="Revenue of all orders, cancelled included")
    revenue: float = Field(0.0, description="Net revenue after refunds and returns")
    cogs: float = 0.0
    shippingCosts: float = 0.0
    transactionFees: float = 0.0
    handlingFees: float = 0.0
    grossProfit: float = 0.0
    taxesCollected: float = 0.0
    customCosts: float = 0.0
    totalAdSpend: float = 0.0
    netProfit: float = 0.0
    netProfitMargin: float = Field(0.0, description="Net profit as % of net revenue")


class PnLPeriod(BaseModel):
    """One row of the period table."""
    label: str
    date: str = Field(description="First day of the period (YYYY-MM-DD)")
    startDate: str
    endDate: str
    metrics: PnLMetrics = Field(default_factory=PnLMetrics)
    isTotal: bool = False


class PnLKPIChanges(BaseModel):
    grossSales: float = 0.0
    grossRevenue: float = 0.0
    discountsReturns: float = 0.0
    netRevenue: float = 0.0
    grossProfit: float = 0.0
    operatingExpenses: float = 0.0
    ebitda: float = 0.0
    netProfit: float = 0.0
    netMargin: float = 0.0
    marketingCost: float = 0.0
    marketingROAS: float = 0.0
    marketingROI: float = 0.0


class PnLKPIs(BaseModel):
    """Headline KPIs for the whole range."""
    grossSales: float = 0.0
    grossRevenue: float = 0.0
    discountsReturns: float = 0.0
    netRevenue: float = 0.0
    grossProfit: float = 0.0
    operatingExpenses: float = Field(0.0, description="Operational and custom costs")
    ebitda: float = Field(0.0, description="Net profit + ad spend + operating expenses")
    netProfit: float = 0.0
    netMargin: float = 0.0
    marketingCost: float = 0.0
    marketingROAS: float = Field(0.0, description="Net revenue / marketing cost")
    marketingROI: float = Field(0.0, description="Net profit / marketing cost * 100")
    changes: PnLKPIChanges = Field(default_factory=PnLKPIChanges)


class PnLExportRow(PnLMetrics):
    """Flat P&L row for CSV download."""
    period: str
    isTotal: bool = False


class PnLResult(BaseModel):
    """P&L computation result."""
    granularity: str
    metrics: PnLKPIs = Field(default_factory=PnLKPIs)
    periods: List[PnLPeriod] = Field(default_factory=list)
    totals: PnLMetrics = Field(default_factory=PnLMetrics)
    exportRows: List[PnLExportRow] = Field(default_factory=list)
    currency: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════════
# PLATFORM & CHANNELS
# ═══════════════════════════════════════════════════════════════════════════════

class PlatformMetrics(BaseModel):
    """Storefront and advertising platform metrics."""
    storeConversionRate: float = 0.0
    storeAbandonedCarts: float = 0.0
    storeCheckoutRate: float = 0.0
    adSessions: float = Field(0.0, description="Ad clicks (unique clicks when clicks are missing)")
    adClicks: float = 0.0
    adUniqueClicks: float = 0.0
    adImpressions: float = 0.0
    adReach: float = 0.0
    adSpend: float = 0.0
    adConversions: float = 0.0
    adConversionRate: float = 0.0
    adCTR: float = 0.0
    adCPM: float = 0.0
    adCPC: float = 0.0
    adFrequency: float = 0.0
    adCostPerConversion: float = 0.0
    adAddToCart: float = 0.0
    adInitiateCheckout: float = 0.0
    adPageViews: float = 0.0
    adViewContent: float = 0.0
    adLinkClicks: float = 0.0
    adOutboundClicks: float = 0.0
    adLandingPageViews: float = 0.0
    adVideoViews: float = 0.0
    adVideo3SecViews: float = 0.0
    adCostPerThruPlay: float = 0.0
    blendedCPM: float = 0.0
    blendedCPC: float = 0.0
    blendedCTR: float = 0.0


class ChannelRevenue(BaseModel):
    """Revenue attributed to one acquisition channel."""
    channel: str
    revenue: float = 0.0
    orders: int = 0
    percentage: float = Field(0.0, description="Share of total revenue")
    change: float = Field(0.0, description="Revenue change vs previous period")


class ChannelBreakdown(BaseModel):
    """Revenue by acquisition channel."""
    channels: List[ChannelRevenue] = Field(default_factory=list)
    totalRevenue: float = 0.0
    totalOrders: int = 0
