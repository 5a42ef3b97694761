# src/rainier/workload/__init__.py
"""Chain execution components."""

from .arguments import (
    ArgumentResolver,
    BindingMap,
    load_argument_list,
    load_argument_lists,
)
from .rate_limit import (
    RateLimiter,
    LeakyBucketRateLimiter,
    TokenBucketRateLimiter,
    SlidingWindowRateLimiter,
    RATE_LIMITERS,
    create_rate_limiter,
)
from .chain import (
    Chain,
    ChainLine,
    ChainExecutor,
    StatementTemplate,
    read_chain_file,
    find_named_markers,
    prepare_chain,
    ABORT_ITERATION,
    SKIP_BRANCH,
)
from .scheduler import (
    IterationScheduler,
    IterationPlan,
    IterationOutcome,
    IterationStatus,
    ScheduleResult,
)
from .base import RunSummary

__all__ = [
    # Arguments
    "ArgumentResolver",
    "BindingMap",
    "load_argument_list",
    "load_argument_lists",

    # Rate limiting
    "RateLimiter",
    "LeakyBucketRateLimiter",
    "TokenBucketRateLimiter",
    "SlidingWindowRateLimiter",
    "RATE_LIMITERS",
    "create_rate_limiter",

    # Chains
    "Chain",
    "ChainLine",
    "ChainExecutor",
    "StatementTemplate",
    "read_chain_file",
    "find_named_markers",
    "prepare_chain",
    "ABORT_ITERATION",
    "SKIP_BRANCH",

    # Scheduling
    "IterationScheduler",
    "IterationPlan",
    "IterationOutcome",
    "IterationStatus",
    "ScheduleResult",

    # Reporting
    "RunSummary",
]
