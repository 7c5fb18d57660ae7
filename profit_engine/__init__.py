"""
Cost proration and financial aggregation engine.

This package turns raw commerce snapshots (orders, line items, transactions,
refunds, ad insights, cost records) into report-ready figures:
- normalizer: Raw snapshot to canonical Dataset
- proration: Window-aware cost proration
- overview: Dashboard summary with period-over-period changes
- orders: Per-order economics, filtering, sorting and pagination
- pnl: Period-bucketed P&L with independently computed totals
- platform: Storefront/ad platform metrics and channel revenue
"""

# Import in dependency order
from profit_engine.exceptions import (
    ProfitEngineError,
    ValidationError,
)

from profit_engine.config import (
    EngineConfig,
    LoggingConfig,
    NormalizationConfig,
    PaginationConfig,
    DEFAULT_CONFIG,
    load_config,
)

from profit_engine.windows import (
    ReportingWindow,
    parse_period,
    resolve_window,
)

from profit_engine.models import (
    CostCalculation,
    CostFrequency,
    CostMode,
    CostRecord,
    CostType,
    Dataset,
)

from profit_engine.normalizer import normalize_dataset
from profit_engine.proration import ProrationContext, prorate, prorate_costs
from profit_engine.overview import compute_overview
from profit_engine.orders import OrdersOptions, compute_orders_analytics
from profit_engine.pnl import compute_pnl
from profit_engine.platform import compute_channel_revenue, compute_platform_metrics
from profit_engine.observability import configure_logging, setup_logging

__all__ = [
    # Exceptions
    "ProfitEngineError",
    "ValidationError",
    # Config
    "EngineConfig",
    "LoggingConfig",
    "NormalizationConfig",
    "PaginationConfig",
    "DEFAULT_CONFIG",
    "load_config",
    # Windows
    "ReportingWindow",
    "parse_period",
    "resolve_window",
    # Models
    "CostCalculation",
    "CostFrequency",
    "CostMode",
    "CostRecord",
    "CostType",
    "Dataset",
    # Computations
    "normalize_dataset",
    "ProrationContext",
    "prorate",
    "prorate_costs",
    "compute_overview",
    "OrdersOptions",
    "compute_orders_analytics",
    "compute_pnl",
    "compute_channel_revenue",
    "compute_platform_metrics",
    # Logging
    "configure_logging",
    "setup_logging",
]
