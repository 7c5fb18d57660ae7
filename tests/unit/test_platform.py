"""
Tests for profit_engine.platform module.
"""
from profit_engine.platform import compute_channel_revenue, compute_platform_metrics


class TestPlatformMetrics:
    """Tests for compute_platform_metrics function."""

    def test_store_metrics(self, sample_snapshot):
        """Conversion rate and abandoned carts from traffic snapshots."""
        metrics = compute_platform_metrics(sample_snapshot)
        assert metrics.storeConversionRate == 2.0
        assert metrics.storeCheckoutRate == 2.0
        assert metrics.storeAbandonedCarts == 196.0

    def test_account_level_ad_metrics(self, sample_snapshot):
        """Campaign rows are excluded from ad sums and ratios."""
        metrics = compute_platform_metrics(sample_snapshot)
        assert metrics.adSpend == 30.0
        assert metrics.adImpressions == 1000.0
        assert metrics.adClicks == 50.0
        assert metrics.adSessions == 50.0
        assert metrics.adAddToCart == 6.0
        assert metrics.adCTR == 5.0
        assert metrics.adCPM == 30.0
        assert metrics.adCPC == 0.6
        assert metrics.adFrequency == 2.0
        assert metrics.adConversionRate == 4.0
        assert metrics.adCostPerConversion == 15.0

    def test_blended_metrics(self, sample_snapshot):
        """Blended metrics mirror the ad metrics."""
        metrics = compute_platform_metrics(sample_snapshot)
        assert metrics.blendedCPM == metrics.adCPM
        assert metrics.blendedCPC == metrics.adCPC
        assert metrics.blendedCTR == metrics.adCTR

    def test_sessions_fall_back_to_unique_clicks(self):
        """Ad sessions are unique clicks when clicks are missing."""
        metrics = compute_platform_metrics({"adInsights": [{"uniqueClicks": 12}]})
        assert metrics.adSessions == 12.0
        assert metrics.adCPC == 0.0

    def test_empty(self):
        """No data gives zeros everywhere."""
        metrics = compute_platform_metrics(None)
        assert all(value == 0.0 for value in metrics.model_dump().values())


class TestChannelRevenue:
    """Tests for compute_channel_revenue function."""

    def test_channels_sorted_by_revenue(self, sample_snapshot):
        """Active orders grouped by channel, highest revenue first."""
        breakdown = compute_channel_revenue(sample_snapshot)
        assert [channel.channel for channel in breakdown.channels] == ["google", "facebook"]
        assert breakdown.channels[0].revenue == 200.0
        assert breakdown.channels[0].percentage == 66.67
        assert breakdown.channels[1].percentage == 33.33
        assert breakdown.totalRevenue == 300.0
        assert breakdown.totalOrders == 2

    def test_default_channel(self):
        """Orders without attribution are Direct."""
        breakdown = compute_channel_revenue({"orders": [{"_id": "a", "totalPrice": 10}]})
        assert breakdown.channels[0].channel == "Direct"
        assert breakdown.channels[0].percentage == 100.0

    def test_changes(self, sample_snapshot, previous_snapshot):
        """Changes per channel versus the previous snapshot."""
        breakdown = compute_channel_revenue(sample_snapshot, previous_dataset=previous_snapshot)
        changes = {channel.channel: channel.change for channel in breakdown.channels}
        assert changes["google"] == 33.33
        assert changes["facebook"] == 100.0

    def test_empty(self):
        """No orders give no channels."""
        breakdown = compute_channel_revenue(None)
        assert breakdown.channels == []
        assert breakdown.totalRevenue == 0.0
