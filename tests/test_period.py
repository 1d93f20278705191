# MIT License
# Copyright (c) 2025 Hashborn

import pytest

from protocol.types.common import (
    PeriodStatus,
    InvalidAmount,
    DurationActive,
    DurationUnset,
    ZeroRate,
    InsufficientFunding,
)
from protocol.types.state import EngineState
from staking.core.period import PeriodController

NOW = 50_000


@pytest.fixture
def state():
    return EngineState(pool_id="period-test", total_shares=1000)


def test_status_lifecycle(state):
    assert PeriodController(state, NOW).status() == PeriodStatus.UNSET

    PeriodController(state, NOW).set_duration(100)
    assert PeriodController(state, NOW).status() == PeriodStatus.CONFIGURED

    PeriodController(state, NOW).start_period(10_000, available_balance=10_000)
    assert PeriodController(state, NOW).status() == PeriodStatus.ACTIVE
    assert PeriodController(state, NOW + 99).status() == PeriodStatus.ACTIVE
    assert PeriodController(state, NOW + 100).status() == PeriodStatus.EXPIRED

    # Restart from expired
    PeriodController(state, NOW + 150).start_period(5_000, available_balance=5_000)
    assert PeriodController(state, NOW + 150).status() == PeriodStatus.ACTIVE


def test_start_fresh_period(state):
    PeriodController(state, NOW).set_duration(100)

    rate = PeriodController(state, NOW).start_period(10_050, available_balance=20_000)

    assert rate == 100
    assert state.reward.reward_rate == 100
    assert state.reward.period_finish_at == NOW + 100
    assert state.reward.last_update_at == NOW


def test_top_up_rolls_remaining_into_new_rate(state):
    """Restarting mid-period: new_rate == (amount + remaining * old_rate) // duration."""
    duration = 100
    PeriodController(state, NOW).set_duration(duration)
    PeriodController(state, NOW).start_period(10_000, available_balance=17_777)
    old_rate = state.reward.reward_rate

    half = NOW + duration // 2
    rate = PeriodController(state, half).start_period(7_777, available_balance=17_777)

    assert rate == (7_777 + old_rate * (duration // 2)) // duration
    assert rate == 127
    assert state.reward.period_finish_at == half + duration
    assert state.reward.last_update_at == half


def test_top_up_at_exact_finish_has_no_remainder(state):
    PeriodController(state, NOW).set_duration(10)
    PeriodController(state, NOW).start_period(1_000, available_balance=1_000)

    rate = PeriodController(state, NOW + 10).start_period(500, available_balance=1_000)

    assert rate == 50


def test_start_without_duration_fails(state):
    """No rate or finish time is modified."""
    with pytest.raises(DurationUnset):
        PeriodController(state, NOW).start_period(1_000, available_balance=1_000)

    assert state.reward.reward_rate == 0
    assert state.reward.period_finish_at == 0
    assert state.reward.last_update_at == 0


def test_zero_rate_rejected(state):
    PeriodController(state, NOW).set_duration(1_000)

    with pytest.raises(ZeroRate, match="truncates to zero"):
        PeriodController(state, NOW).start_period(999, available_balance=10_000)

    assert state.reward.reward_rate == 0


def test_insufficient_funding_rejected(state):
    PeriodController(state, NOW).set_duration(100)

    with pytest.raises(InsufficientFunding, match="have 9999, period commits 10000"):
        PeriodController(state, NOW).start_period(10_000, available_balance=9_999)

    assert state.reward.period_finish_at == 0


def test_negative_amount_rejected(state):
    PeriodController(state, NOW).set_duration(100)

    with pytest.raises(InvalidAmount):
        PeriodController(state, NOW).start_period(-1, available_balance=10_000)


def test_set_duration_blocked_while_active(state):
    PeriodController(state, NOW).set_duration(100)
    PeriodController(state, NOW).start_period(10_000, available_balance=10_000)

    with pytest.raises(DurationActive):
        PeriodController(state, NOW + 99).set_duration(50)

    PeriodController(state, NOW + 100).set_duration(50)
    assert state.reward.period_duration == 50


def test_set_negative_duration_rejected(state):
    with pytest.raises(InvalidAmount):
        PeriodController(state, NOW).set_duration(-1)


def test_reward_for_duration_and_remaining(state):
    PeriodController(state, NOW).set_duration(100)
    PeriodController(state, NOW).start_period(10_000, available_balance=10_000)

    assert PeriodController(state, NOW).reward_for_duration() == 10_000
    assert PeriodController(state, NOW + 30).remaining_reward() == 7_000
    assert PeriodController(state, NOW + 100).remaining_reward() == 0


def test_restart_rolls_exactly_the_remaining_reward(state):
    PeriodController(state, NOW).set_duration(100)
    PeriodController(state, NOW).start_period(10_000, available_balance=10_000)

    mid = PeriodController(state, NOW + 40)
    remaining = mid.remaining_reward()
    assert remaining == 6_000
    assert mid.start_period(4_000, available_balance=10_000) == (4_000 + remaining) // 100

    expired = PeriodController(state, NOW + 40 + 100 + 5)
    assert expired.remaining_reward() == 0
    assert expired.start_period(1_000, available_balance=10_000) == 10
