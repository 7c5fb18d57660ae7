"""
Platform metrics and revenue by acquisition channel.
"""
import logging
from typing import Any, Dict, Optional

from profit_engine.config import DEFAULT_CONFIG, EngineConfig
from profit_engine.models import Dataset
from profit_engine.normalizer import normalize_dataset
from profit_engine.observability import timed
from profit_engine.safe import percentage_change, round_money, safe_divide
from profit_engine.schemas import ChannelBreakdown, ChannelRevenue, PlatformMetrics

logger = logging.getLogger(__name__)

# Ad insight attribute summed for each platform metric field
AD_FUNNEL_FIELDS = {
    "adClicks": "clicks",
    "adUniqueClicks": "unique_clicks",
    "adImpressions": "impressions",
    "adReach": "reach",
    "adSpend": "spend",
    "adConversions": "conversions",
    "adAddToCart": "add_to_cart",
    "adInitiateCheckout": "initiate_checkout",
    "adPageViews": "page_views",
    "adViewContent": "view_content",
    "adLinkClicks": "link_clicks",
    "adOutboundClicks": "outbound_clicks",
    "adLandingPageViews": "landing_page_views",
    "adVideoViews": "video_views",
    "adVideo3SecViews": "video_3sec_views",
    "adCostPerThruPlay": "cost_per_thru_play",
}


@timed("compute_platform_metrics")
def compute_platform_metrics(dataset: Any, config: Optional[EngineConfig] = None) -> PlatformMetrics:
    """
    Storefront conversion figures and advertising platform metrics.

    Storefront rates come from traffic snapshots; ad metrics from
    account-level ad insights only, so campaign and ad rows are not counted
    twice.
    """
    data = normalize_dataset(dataset, config=config or DEFAULT_CONFIG)
    insights = data.account_ad_insights

    sessions = sum(entry.sessions for entry in data.traffic)
    store_conversions = sum(entry.conversions for entry in data.traffic)
    store_rate = safe_divide(store_conversions, sessions) * 100

    sums: Dict[str, float] = {
        name: sum(getattr(insight, attribute) for insight in insights)
        for name, attribute in AD_FUNNEL_FIELDS.items()
    }
    clicks = sums["adClicks"]
    impressions = sums["adImpressions"]
    spend = sums["adSpend"]
    conversions = sums["adConversions"]

    ctr = safe_divide(clicks, impressions) * 100
    cpm = safe_divide(spend, impressions) * 1000
    cpc = safe_divide(spend, clicks)

    values = {
        **sums,
        "storeConversionRate": store_rate,
        "storeAbandonedCarts": max(sessions - store_conversions, 0.0),
        "storeCheckoutRate": store_rate,
        "adSessions": clicks or sums["adUniqueClicks"],
        "adConversionRate": safe_divide(conversions, clicks) * 100,
        "adCTR": ctr,
        "adCPM": cpm,
        "adCPC": cpc,
        "adFrequency": safe_divide(impressions, sums["adReach"]),
        "adCostPerConversion": safe_divide(spend, conversions),
        "blendedCPM": cpm,
        "blendedCPC": cpc,
        "blendedCTR": ctr,
    }
    return PlatformMetrics(**{name: round_money(value) for name, value in values.items()})


def _channel_totals(dataset: Dataset) -> Dict[str, Dict[str, float]]:
    totals: Dict[str, Dict[str, float]] = {}
    for order in dataset.active_orders:
        entry = totals.setdefault(order.channel, {"revenue": 0.0, "orders": 0})
        entry["revenue"] += order.total_price
        entry["orders"] += 1
    return totals


@timed("compute_channel_revenue")
def compute_channel_revenue(
    dataset: Any,
    previous_dataset: Any = None,
    config: Optional[EngineConfig] = None,
) -> ChannelBreakdown:
    """
    Revenue and order counts per acquisition channel.

    Channels are sorted by revenue (highest first, ties by name). Orders
    without attribution count towards the default channel ("Direct").
    """
    config = config or DEFAULT_CONFIG
    current = _channel_totals(normalize_dataset(dataset, config=config))
    previous = None
    if previous_dataset is not None:
        previous = _channel_totals(normalize_dataset(previous_dataset, config=config))

    total_revenue = sum(entry["revenue"] for entry in current.values())
    total_orders = int(sum(entry["orders"] for entry in current.values()))

    channels = []
    for name, entry in sorted(current.items(), key=lambda item: (-item[1]["revenue"], item[0])):
        change = 0.0
        if previous is not None:
            change = percentage_change(entry["revenue"], previous.get(name, {}).get("revenue", 0.0))
        channels.append(
            ChannelRevenue(
                channel=name,
                revenue=round_money(entry["revenue"]),
                orders=int(entry["orders"]),
                percentage=round_money(safe_divide(entry["revenue"], total_revenue) * 100),
                change=round_money(change),
            )
        )

    logger.debug(f"Channel revenue: {len(channels)} channels")
    return ChannelBreakdown(
        channels=channels,
        totalRevenue=round_money(total_revenue),
        totalOrders=total_orders,
    )
