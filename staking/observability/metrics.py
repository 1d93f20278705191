# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports reward pool metrics in Prometheus format.

Metrics:
- Operation counts and failures by error type
- Rewards claimed and burned
- Reward rate, reward-per-share index, period end
- Share distribution (total, allocated, unallocated)
"""

from prometheus_client import Counter, Gauge, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# OPERATION METRICS
# ═══════════════════════════════════════════════════════════════════

operations_total = Counter(
    'rewardstream_operations_total',
    'Total number of committed pool operations',
    ['pool', 'operation'],
    registry=metrics_registry
)

operation_failures_total = Counter(
    'rewardstream_operation_failures_total',
    'Total number of rejected pool operations',
    ['pool', 'operation', 'error'],
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# ECONOMIC METRICS
# ═══════════════════════════════════════════════════════════════════

rewards_claimed_total = Counter(
    'rewardstream_rewards_claimed_total',
    'Total reward units paid out to holders',
    ['pool'],
    registry=metrics_registry
)

rewards_burned_total = Counter(
    'rewardstream_rewards_burned_total',
    'Total reward units burned from unallocated shares',
    ['pool'],
    registry=metrics_registry
)

reward_rate = Gauge(
    'rewardstream_reward_rate',
    'Current reward rate (units per second)',
    ['pool'],
    registry=metrics_registry
)

reward_per_share = Gauge(
    'rewardstream_reward_per_share',
    'Stored reward-per-share index (unscaled to 1e18)',
    ['pool'],
    registry=metrics_registry
)

period_finish_at = Gauge(
    'rewardstream_period_finish_at',
    'Unix timestamp at which the current period ends',
    ['pool'],
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# SHARE METRICS
# ═══════════════════════════════════════════════════════════════════

total_shares = Gauge(
    'rewardstream_total_shares',
    'Total shares in the pool',
    ['pool'],
    registry=metrics_registry
)

allocated_shares = Gauge(
    'rewardstream_allocated_shares',
    'Shares held by real holders',
    ['pool'],
    registry=metrics_registry
)

unallocated_shares = Gauge(
    'rewardstream_unallocated_shares',
    'Shares held by the sink',
    ['pool'],
    registry=metrics_registry
)


# ═══════════════════════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

def record_operation(pool_id: str, operation: str):
    operations_total.labels(pool=pool_id, operation=operation).inc()


def record_failure(pool_id: str, operation: str, error: Exception):
    operation_failures_total.labels(
        pool=pool_id, operation=operation, error=type(error).__name__
    ).inc()


def record_claim(pool_id: str, amount: int):
    rewards_claimed_total.labels(pool=pool_id).inc(amount)


def record_burn(pool_id: str, amount: int):
    rewards_burned_total.labels(pool=pool_id).inc(amount)


def update_metrics(state):
    """
    Update all Gauges from committed engine state.

    Args:
        state: EngineState instance
    """
    from protocol.config.params import SCALE
    from protocol.types.account import AccountKey
    from protocol.types.common import PoolVariant

    pool = state.pool_id
    reward = state.reward

    reward_rate.labels(pool=pool).set(reward.reward_rate)
    reward_per_share.labels(pool=pool).set(reward.reward_per_share_stored / SCALE)
    period_finish_at.labels(pool=pool).set(reward.period_finish_at)

    unallocated = state.balance_of(AccountKey.SINK) if state.variant == PoolVariant.FIXED else 0
    total_shares.labels(pool=pool).set(state.total_shares)
    unallocated_shares.labels(pool=pool).set(unallocated)
    allocated_shares.labels(pool=pool).set(state.total_shares - unallocated)
