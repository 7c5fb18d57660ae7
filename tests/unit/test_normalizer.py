"""
Tests for profit_engine.normalizer module.
"""
import pytest
from datetime import datetime, timezone

from profit_engine.config import EngineConfig, NormalizationConfig
from profit_engine.models import Dataset
from profit_engine.normalizer import (
    VariantResolver,
    index_variant_costs,
    is_cancelled_order,
    normalize_dataset,
    normalize_order,
    resolve_customer_identity,
    resolve_fulfillment_status,
    resolve_shipping_cost,
)


class TestResolveFulfillmentStatus:
    """Tests for resolve_fulfillment_status function."""

    def test_direct_field_wins(self):
        """Direct string fields are returned as-is."""
        order = {"displayFulfillmentStatus": "FULFILLED", "fulfillments": [{"status": "OPEN"}]}
        assert resolve_fulfillment_status(order) == "FULFILLED"

    def test_all_fulfilled(self):
        """All fulfilled entries give fulfilled."""
        order = {"fulfillments": [{"status": "fulfilled"}, {"displayStatus": "Fulfilled"}]}
        assert resolve_fulfillment_status(order) == "fulfilled"

    def test_unfulfilled_not_counted_as_fulfilled(self):
        """An unfulfilled entry breaks the all-fulfilled rule."""
        order = {"fulfillments": [{"status": "fulfilled"}, {"status": "unfulfilled"}]}
        assert resolve_fulfillment_status(order) == "unfulfilled"

    def test_success_without_open(self):
        """Success without open or pending entries is fulfilled."""
        order = {"fulfillments": [{"status": "SUCCESS"}, {"status": "delivered"}]}
        assert resolve_fulfillment_status(order) == "fulfilled"

    def test_cancel_rule(self):
        """Any cancelled entry gives cancelled."""
        order = {"fulfillmentOrders": [{"status": "CANCELLED"}, {"status": "OPEN"}]}
        assert resolve_fulfillment_status(order) == "cancelled"

    def test_edges_container(self):
        """Edge/node containers are read."""
        order = {"fulfillmentOrders": {"edges": [
            {"node": {"status": "IN_TRANSIT"}},
            {"node": {"status": "OPEN"}},
        ]}}
        assert resolve_fulfillment_status(order) == "in_transit"

    def test_line_item_fallback(self):
        """Line item statuses are used when there are no fulfillments."""
        order = {"lineItems": [{"fulfillmentStatus": "partial"}, {"fulfillmentStatus": "fulfilled"}]}
        assert resolve_fulfillment_status(order) == "partially_fulfilled"

    def test_unmatched_keeps_raw(self):
        """Unknown statuses are returned raw."""
        assert resolve_fulfillment_status({"fulfillments": [{"status": "Weird State"}]}) == "Weird State"

    def test_nothing(self):
        """No status anywhere gives empty string."""
        assert resolve_fulfillment_status({}) == ""
        assert resolve_fulfillment_status(None) == ""


class TestResolveShippingCost:
    """Tests for resolve_shipping_cost function."""

    def test_flat_field(self):
        """Flat fields are read first."""
        assert resolve_shipping_cost({"shippingCost": "8.5"}) == 8.5

    def test_non_zero_beats_zero(self):
        """A clearly non-zero candidate beats an earlier zero."""
        assert resolve_shipping_cost({"shippingCost": 0, "totals": {"shipping": 7}}) == 7.0

    def test_money_set(self):
        """Shop money amount of the shipping price set."""
        order = {"totalShippingPriceSet": {"shopMoney": {"amount": "12.50", "currencyCode": "USD"}}}
        assert resolve_shipping_cost(order) == 12.5

    def test_shipping_line_edges(self):
        """Shipping line edges are summed with the per-line price chain."""
        order = {"shippingLines": {"edges": [
            {"node": {"price": "4.00"}},
            {"node": {"discountedPrice": 6}},
        ]}}
        assert resolve_shipping_cost(order) == 10.0

    def test_zero_present(self):
        """Only zeros present gives zero."""
        assert resolve_shipping_cost({"shippingCost": 0}) == 0.0

    def test_missing(self):
        """Nothing present gives zero."""
        assert resolve_shipping_cost({}) == 0.0


class TestResolveCustomerIdentity:
    """Tests for resolve_customer_identity function."""

    def test_customer_first_last(self):
        """First and last name of the customer object."""
        identity = resolve_customer_identity({
            "customer": {"firstName": "Jane", "lastName": "Doe", "email": "jane@example.com"},
        })
        assert identity == {"name": "Jane Doe", "email": "jane@example.com"}

    def test_shipping_address_name(self):
        """Shipping address name when the customer has none."""
        identity = resolve_customer_identity({"shippingAddress": {"name": "Bob", "email": "bob@example.com"}})
        assert identity == {"name": "Bob", "email": "bob@example.com"}

    def test_guest(self):
        """Nothing usable gives the guest name and empty email."""
        assert resolve_customer_identity({}) == {"name": "Guest Checkout", "email": ""}
        assert resolve_customer_identity({}, guest_name="Anonymous")["name"] == "Anonymous"


class TestCancellation:
    """Tests for is_cancelled_order function."""

    @pytest.mark.parametrize("order", [
        {"status": "Cancelled"},
        {"financialStatus": "VOIDED"},
        {"fulfillment_status": "declined"},
    ])
    def test_markers(self, order):
        """Cancel, void and decline markers in any status field."""
        assert is_cancelled_order(order) is True

    def test_active(self):
        """Regular orders are not cancelled."""
        assert is_cancelled_order({"status": "open", "financialStatus": "paid"}) is False


class TestVariants:
    """Tests for variant cost indexing and resolution."""

    def test_latest_component_wins(self):
        """Most recently updated component per variant wins."""
        indexed = index_variant_costs([
            {"variantId": "v1", "cogsPerUnit": 10, "updatedAt": "2026-01-01T00:00:00Z"},
            {"variantId": "v1", "cogsPerUnit": 12, "updatedAt": "2026-01-05T00:00:00Z"},
            {"variantId": "v1", "cogsPerUnit": 11, "updatedAt": "2026-01-03T00:00:00Z"},
            {"cogsPerUnit": 99},
        ])
        assert list(indexed) == ["v1"]
        assert indexed["v1"].cogs_per_unit == 12.0

    def test_resolver_direct_known(self):
        """Known direct ids are used."""
        resolver = VariantResolver([{"_id": "v1"}], {})
        assert resolver.resolve({"variantId": "v1", "shopifyVariantId": "gid://9"}) == "v1"

    def test_resolver_platform_id(self):
        """Unknown direct ids fall back to the platform id index."""
        resolver = VariantResolver([{"_id": "v1", "shopifyVariantId": "gid://1"}], {})
        assert resolver.resolve({"variantId": "unknown", "shopifyVariantId": "gid://1"}) == "v1"

    def test_resolver_raw_fallback(self):
        """Otherwise the raw direct id is kept."""
        resolver = VariantResolver([], {})
        assert resolver.resolve({"variantId": "v7"}) == "v7"
        assert resolver.resolve({}) == ""


class TestNormalizeOrder:
    """Tests for normalize_order function."""

    def test_fields(self):
        """Order fields are resolved through their fallback chains."""
        order = normalize_order({
            "id": 1001,
            "name": "#1001",
            "created_at": "2026-01-12T10:00:00Z",
            "total_price": "99.90",
            "financial_status": "paid",
            "tags": ["gift", None, ""],
            "payment_methods": ["paypal"],
            "sessionSource": "newsletter",
            "shipping_address": {"city": "Kyiv", "countryCode": "UA"},
        })
        assert order.id == "1001"
        assert order.order_number == "#1001"
        assert order.created_at == datetime(2026, 1, 12, 10, tzinfo=timezone.utc)
        assert order.updated_at == order.created_at
        assert order.total_price == 99.9
        assert order.subtotal_price is None
        assert order.tags == ["gift"]
        assert order.payment_method == "paypal"
        assert order.channel == "newsletter"
        assert order.ship_to == "Kyiv, UA"
        assert order.customer_name == "Guest Checkout"
        assert order.is_cancelled is False

    def test_default_channel(self):
        """Orders without attribution get the configured default channel."""
        order = normalize_order({"_id": "o1"}, config=NormalizationConfig(default_channel="Unknown"))
        assert order.channel == "Unknown"


class TestNormalizeDataset:
    """Tests for normalize_dataset function."""

    def test_none_is_empty(self):
        """None gives an empty dataset."""
        dataset = normalize_dataset(None)
        assert dataset.is_empty
        assert dataset.window is None

    def test_dataset_passes_through(self):
        """An existing Dataset is returned unchanged."""
        dataset = Dataset()
        assert normalize_dataset(dataset) is dataset

    def test_date_range_read(self):
        """dateRange becomes the dataset window."""
        dataset = normalize_dataset({"dateRange": {"startDate": "2026-01-12", "endDate": "2026-01-18"}})
        assert dataset.window.as_str_tuple() == ("2026-01-12", "2026-01-18")

    def test_explicit_window_wins(self):
        """An explicit window overrides dateRange."""
        dataset = normalize_dataset(
            {"dateRange": {"startDate": "2026-01-12", "endDate": "2026-01-18"}},
            window=("2026-01-01", "2026-01-02"),
        )
        assert dataset.window.as_str_tuple() == ("2026-01-01", "2026-01-02")

    def test_data_wrapper(self):
        """Sections wrapped in ``data`` are read."""
        dataset = normalize_dataset({"data": {"orders": [{"_id": "o1", "totalPrice": 10}]}})
        assert [order.id for order in dataset.orders] == ["o1"]

    def test_sample_snapshot(self, sample_snapshot):
        """Items, transactions and costs are attached to their orders."""
        dataset = normalize_dataset(sample_snapshot, config=EngineConfig())
        orders = {order.id: order for order in dataset.orders}

        assert set(orders) == {"o1", "o2", "o3"}
        assert [item.variant_id for item in orders["o1"].items] == ["v1"]
        assert orders["o1"].item_count == 2
        assert orders["o1"].customer_name == "Alice Smith"
        assert orders["o1"].payment_method == "shopify_payments"
        assert orders["o1"].tags == ["vip", "repeat"]
        assert orders["o3"].is_cancelled is True
        assert set(dataset.variant_costs) == {"v1", "v2"}
        assert len(dataset.account_ad_insights) == 1
        assert dataset.currency == "USD"

    def test_embedded_line_items(self):
        """Embedded lineItems are used when the order has no collection items."""
        dataset = normalize_dataset({
            "orders": [{"_id": "o1", "lineItems": [{"variantId": "v1", "quantity": 3, "price": 5}]}],
        })
        assert dataset.orders[0].item_count == 3

    def test_garbage_sections(self):
        """Garbage sections degrade to empty."""
        dataset = normalize_dataset({"orders": "nope", "refunds": [None, 5], "costs": {"a": 1}})
        assert dataset.orders == []
        assert dataset.refunds == []
        assert dataset.cost_records == []
