"""Engine Layer - Aggregation Pipeline

This module provides the core engine layer, implementing:
- AggregationEngine: Main entry point (cache check → fan-out → cache write)
- CategoryAggregator: Concurrent provider fan-out, merge/dedup/rank, backfill
- RetryExecutor: Bounded attempts with backoff under one overall timeout
- BudgetManager: Time budget and phase checkpoints
- ProviderRegistry: Per-category provider registration
- CategoryPolicy: TTL class and aggregation mode per category
"""

from .aggregator import CategoryAggregator
from .budget import BudgetConfig, BudgetManager
from .categories import DEFAULT_POLICIES, AggregationMode, CategoryPolicy, TTLClass, load_policies
from .orchestrator import AggregationEngine
from .providers import ProviderRegistry, ProviderSpec
from .ranking import NoJitter, ScoreJitter, compute_weight_score, merge_outcomes, paginate
from .result import (
    AggregationResult,
    CachedResultSet,
    CategoryFailure,
    EngineResult,
    ProviderOutcome,
    RequestPhase,
    SearchStatus,
)
from .retry import RetryExecutor, RetryPolicy
from .strategy import RetryStrategy

__all__ = [
    "AggregationEngine",
    "CategoryAggregator",
    "RetryExecutor",
    "RetryPolicy",
    "RetryStrategy",
    "BudgetManager",
    "BudgetConfig",
    "ProviderRegistry",
    "ProviderSpec",
    "CategoryPolicy",
    "AggregationMode",
    "TTLClass",
    "DEFAULT_POLICIES",
    "load_policies",
    "ScoreJitter",
    "NoJitter",
    "compute_weight_score",
    "merge_outcomes",
    "paginate",
    # Results
    "AggregationResult",
    "CachedResultSet",
    "CategoryFailure",
    "EngineResult",
    "ProviderOutcome",
    "RequestPhase",
    "SearchStatus",
]
