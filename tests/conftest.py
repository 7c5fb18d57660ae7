"""
Pytest configuration and shared fixtures.
"""
import pytest
from datetime import date
from typing import Dict, List, Any

from profit_engine.windows import ReportingWindow


@pytest.fixture
def sample_window() -> ReportingWindow:
    """Monday 2026-01-12 to Sunday 2026-01-18."""
    return ReportingWindow.from_dates(date(2026, 1, 12), date(2026, 1, 18))


@pytest.fixture
def sample_orders() -> List[Dict[str, Any]]:
    """Raw storefront orders: one fulfilled, one unfulfilled, one cancelled."""
    return [
        {
            "_id": "o1",
            "orderNumber": "#1001",
            "createdAt": "2026-01-12T10:00:00Z",
            "totalPrice": 100.00,
            "subtotalPrice": 110.00,
            "totalDiscounts": 10.00,
            "financialStatus": "paid",
            "fulfillmentStatus": "FULFILLED",
            "shippingCost": 5.00,
            "utmSource": "facebook",
            "tags": "vip, repeat",
            "customer": {
                "id": "c1",
                "firstName": "Alice",
                "lastName": "Smith",
                "email": "alice@example.com",
            },
            "shippingAddress": {"city": "Austin", "country": "US"},
        },
        {
            "_id": "o2",
            "orderNumber": "#1002",
            "createdAt": "2026-01-14T09:30:00Z",
            "totalPrice": 200.00,
            "financialStatus": "pending",
            "fulfillmentStatus": "unfulfilled",
            "shippingCost": 10.00,
            "utmSource": "google",
            "customer": {"id": "c2", "displayName": "Bob Jones", "email": "bob@example.com"},
        },
        # Cancelled order (excluded from revenue)
        {
            "_id": "o3",
            "orderNumber": "#1003",
            "createdAt": "2026-01-15T12:00:00Z",
            "totalPrice": 50.00,
            "status": "cancelled",
            "financialStatus": "voided",
            "customer": {"id": "c3"},
        },
    ]


@pytest.fixture
def sample_order_items() -> List[Dict[str, Any]]:
    """Line items of the sample orders."""
    return [
        {"_id": "li1", "orderId": "o1", "variantId": "v1", "quantity": 2, "price": 50.00,
         "title": "Vitamin C Serum", "sku": "SER-1"},
        {"_id": "li2", "orderId": "o2", "variantId": "v2", "quantity": 1, "price": 200.00,
         "title": "Night Cream", "sku": "CRM-2"},
    ]


@pytest.fixture
def sample_snapshot(sample_orders, sample_order_items) -> Dict[str, Any]:
    """
    Complete raw snapshot for the sample week.

    Expected overview figures: revenue 300, COGS 120, handling 2,
    shipping 15, transaction fees 9, ad spend 30, net profit 124.
    """
    return {
        "dateRange": {"startDate": "2026-01-12", "endDate": "2026-01-18"},
        "currency": "USD",
        "orders": sample_orders,
        "orderItems": sample_order_items,
        "transactions": [
            {"orderId": "o1", "fee": 3.00, "gateway": "shopify_payments"},
            {"orderId": "o2", "fee": -6.00, "gateway": "Cash on Delivery (COD)"},
        ],
        "variantCosts": [
            {"variantId": "v1", "cogsPerUnit": 20.00},
            {"variantId": "v2", "cogsPerUnit": 80.00, "handlingPerUnit": 2.00},
        ],
        "adInsights": [
            {"date": "2026-01-12", "entityType": "account", "spend": 30.00, "impressions": 1000,
             "clicks": 50, "uniqueClicks": 40, "reach": 500, "conversions": 2, "addToCart": 6},
            # Campaign rows never count towards canonical spend
            {"date": "2026-01-12", "entityType": "campaign", "spend": 999.00, "impressions": 9999},
        ],
        "customers": [
            {"_id": "c1", "ordersCount": 3},
            {"_id": "c2", "ordersCount": 1},
        ],
        "analytics": [
            {"date": "2026-01-12", "sessions": 120, "visitors": 100, "conversions": 2},
            {"date": "2026-01-13", "sessions": 80, "visitors": 60, "conversions": 2},
        ],
    }


@pytest.fixture
def previous_snapshot() -> Dict[str, Any]:
    """Snapshot of the week before the sample week: one order of 150."""
    return {
        "dateRange": {"startDate": "2026-01-05", "endDate": "2026-01-11"},
        "orders": [
            {
                "_id": "p1",
                "orderNumber": "#0990",
                "createdAt": "2026-01-06T10:00:00Z",
                "totalPrice": 150.00,
                "financialStatus": "paid",
                "fulfillmentStatus": "fulfilled",
                "utmSource": "google",
                "customer": {"id": "c9"},
            },
        ],
    }


@pytest.fixture
def two_day_refund_snapshot() -> Dict[str, Any]:
    """
    Two days of activity where a refund on day one makes the P&L
    non-additive: buckets sum to gross profit 80, the full range gives 90.
    """
    return {
        "dateRange": {"startDate": "2026-01-01", "endDate": "2026-01-02"},
        "orders": [
            {"_id": "a", "createdAt": "2026-01-01T08:00:00Z", "totalPrice": 100, "totalRefunded": 50},
            {"_id": "b", "createdAt": "2026-01-02T08:00:00Z", "totalPrice": 100},
        ],
        "orderItems": [
            {"orderId": "a", "variantId": "va", "quantity": 1, "price": 100},
            {"orderId": "b", "variantId": "vb", "quantity": 1, "price": 100},
        ],
        "variantCosts": [
            {"variantId": "va", "cogsPerUnit": 20},
            {"variantId": "vb", "cogsPerUnit": 60},
        ],
    }
