# MIT License
# Copyright (c) 2025 Hashborn

"""
Engine Tests

End-to-end behaviour of StakingEngine on a fixed share pool: reference
scenarios, claim payouts, burns, owner gating, events and all-or-nothing
application of failed calls.
"""

import pytest

from protocol.config.params import PoolConfig, SCALE, DECIMALS, DAY, YEAR
from protocol.types.account import AccountKey
from protocol.types.common import (
    EventType,
    PeriodStatus,
    InvalidAmount,
    InsufficientBalance,
    InsufficientUnallocatedShares,
    InvalidAccount,
    DurationActive,
    DurationUnset,
    InsufficientFunding,
    NothingToBurn,
    NothingToClaim,
    Unauthorized,
    InsufficientTokenBalance,
)
from staking.core.clock import ManualClock
from staking.core.engine import StakingEngine
from staking.core.token import InMemoryTokenLedger

TOTAL_SHARES = 2353
START = 1_700_000_000


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def reward_token():
    return InMemoryTokenLedger(symbol="pec")


@pytest.fixture
def stake_token():
    return InMemoryTokenLedger(symbol="spass")


def make_engine(clock, reward_token, stake_token, total_shares=TOTAL_SHARES, owner=None, pool_id="engine-test"):
    config = PoolConfig(network_id="test", pool_id=pool_id, total_shares=total_shares, owner=owner)
    return StakingEngine(reward_token, stake_token=stake_token, config=config, clock=clock)


@pytest.fixture
def engine(clock, reward_token, stake_token):
    return make_engine(clock, reward_token, stake_token)


def stake(engine, stake_token, account, amount):
    stake_token.mint(account, amount)
    return engine.stake(account, amount)


def test_initial_state(engine):
    assert engine.total_shares() == TOTAL_SHARES
    assert engine.unallocated_shares() == TOTAL_SHARES
    assert engine.current_reward_per_share() == 0
    assert engine.period_status() == PeriodStatus.UNSET
    assert engine.check_invariants()


def test_stake_and_withdraw_move_tokens_and_shares(engine, stake_token):
    assert stake(engine, stake_token, "alice", 1000) == 1000

    assert engine.staked_balance("alice") == 1000
    assert engine.unallocated_shares() == 1353
    assert stake_token.balance_of("alice") == 0
    assert stake_token.balance_of_self() == 1000

    assert engine.withdraw("alice", 400) == 600

    assert engine.staked_balance("alice") == 600
    assert engine.unallocated_shares() == 1753
    assert stake_token.balance_of("alice") == 400
    assert engine.check_invariants()


def test_scenario_a_split_between_holder_and_sink(engine, clock, reward_token, stake_token):
    """1000 of 2353 shares allocated, 100/s for 10s."""
    stake(engine, stake_token, "x", 1000)
    assert engine.unallocated_shares() == 1353

    reward_token.fund(1000)
    engine.set_duration(10)
    assert engine.start_period(1000) == 100

    clock.advance(10)

    earned_x = engine.earned("x")
    earned_sink = engine.earned(AccountKey.SINK)

    assert earned_x == 1000 * 1000 // 2353
    assert earned_sink == 1353 * 1000 // 2353
    assert earned_x + earned_sink <= 1000
    assert 1000 - (earned_x + earned_sink) <= 1


def test_scenario_b_top_up_mid_period(engine, clock, reward_token):
    duration = 1_000
    reward_token.fund(300_000)
    engine.set_duration(duration)
    old_rate = engine.start_period(100_000)
    assert old_rate == 100

    clock.advance(duration // 2)
    new_rate = engine.start_period(150_000)

    assert new_rate == (150_000 + old_rate * (duration // 2)) // duration
    assert engine.reward_rate() == 200
    assert engine.period_finish_at() == START + duration // 2 + duration


def test_scenario_c_failed_withdraw_leaves_state_unchanged(engine, clock, reward_token, stake_token):
    stake(engine, stake_token, "alice", 500)
    reward_token.fund(10_000)
    engine.set_duration(100)
    engine.start_period(10_000)
    clock.advance(37)

    before = engine.snapshot()
    tokens_before = stake_token.model_copy(deep=True)

    with pytest.raises(InsufficientBalance):
        engine.withdraw("alice", 501)

    assert engine.snapshot().model_dump_json() == before.model_dump_json()
    assert stake_token == tokens_before


def test_scenario_d_start_without_duration(engine, reward_token):
    reward_token.fund(1000)
    before = engine.snapshot()

    with pytest.raises(DurationUnset):
        engine.start_period(1000)

    assert engine.reward_rate() == 0
    assert engine.period_finish_at() == 0
    assert engine.snapshot() == before


def test_scenario_e_double_burn(engine, clock, reward_token, stake_token):
    stake(engine, stake_token, "alice", 1000)
    reward_token.fund(1000)
    engine.set_duration(10)
    engine.start_period(1000)
    clock.advance(10)

    expected = engine.earned(AccountKey.SINK)
    assert expected > 0

    assert engine.burn_sink_rewards() == expected
    assert reward_token.total_burned == expected
    assert reward_token.balance_of_self() == 1000 - expected
    assert engine.earned(AccountKey.SINK) == 0

    with pytest.raises(NothingToBurn):
        engine.burn_sink_rewards()


def test_claim_pays_expected_reward(clock, reward_token, stake_token):
    """Realistic sizes: 100 of 1M shares, 7.5M reward tokens over four years, claim after a week."""
    e = 10**DECIMALS
    total_shares = 1_000_000 * e
    staked = 100 * e
    supply = 7_500_000 * e
    engine = make_engine(clock, reward_token, stake_token, total_shares=total_shares, pool_id="engine-claim")

    stake(engine, stake_token, "user", staked)
    reward_token.fund(supply)
    engine.set_duration(4 * YEAR)
    rate = engine.start_period(supply)
    assert rate == supply // (4 * YEAR)

    elapsed = 7 * DAY
    clock.advance(elapsed)

    expected = (rate * elapsed * SCALE // total_shares) * staked // SCALE
    assert engine.claim("user") == expected
    assert reward_token.balance_of("user") == expected
    assert engine.earned("user") == 0


def test_claim_with_nothing_is_silent_noop(engine, reward_token):
    events = []
    engine.events.subscribe(None, events.append)

    assert engine.claim("nobody") == 0
    assert reward_token.balance_of("nobody") == 0
    assert events == []

    with pytest.raises(NothingToClaim):
        engine.claim("nobody", require_reward=True)


def test_rewards_survive_withdraw(engine, clock, reward_token, stake_token):
    """Accrual before a withdraw is settled against the old balance."""
    stake(engine, stake_token, "alice", 1000)
    reward_token.fund(2353 * 10)
    engine.set_duration(10)
    engine.start_period(2353 * 10)       # rate 2353/s -> 1 unit per share per second

    clock.advance(4)
    engine.withdraw("alice", 1000)
    assert engine.earned("alice") == 4000

    clock.advance(6)
    assert engine.earned("alice") == 4000
    assert engine.claim("alice") == 4000


def test_late_staker_earns_only_from_stake_time(engine, clock, reward_token, stake_token):
    reward_token.fund(2353 * 10)
    engine.set_duration(10)
    engine.start_period(2353 * 10)

    clock.advance(6)
    stake(engine, stake_token, "bob", 100)
    clock.advance(4)

    assert engine.earned("bob") == 400
    # Sink accrued everything before bob arrived and its remaining shares after
    assert engine.earned(AccountKey.SINK) == 2353 * 6 + 2253 * 4


def test_stake_errors(engine, stake_token):
    with pytest.raises(InvalidAmount):
        engine.stake("alice", 0)

    stake_token.mint("alice", TOTAL_SHARES + 1)
    with pytest.raises(InsufficientUnallocatedShares):
        engine.stake("alice", TOTAL_SHARES + 1)

    # Token ledger rejects, shares stay with the sink
    with pytest.raises(InsufficientTokenBalance):
        engine.stake("carol", 10)
    assert engine.staked_balance("carol") == 0
    assert engine.unallocated_shares() == TOTAL_SHARES


def test_failed_claim_transfer_rolls_back(engine, clock, reward_token, stake_token):
    stake(engine, stake_token, "alice", 1000)
    reward_token.fund(1000)
    engine.set_duration(10)
    engine.start_period(1000)
    clock.advance(5)

    owed = engine.earned("alice")
    reward_token.engine_balance = 0

    with pytest.raises(InsufficientTokenBalance):
        engine.claim("alice")

    assert engine.earned("alice") == owed
    assert engine.account_state("alice").pending_reward == 0


def test_insufficient_funding(engine, reward_token):
    reward_token.fund(999)
    engine.set_duration(10)

    with pytest.raises(InsufficientFunding):
        engine.start_period(1000)

    assert engine.period_status() == PeriodStatus.CONFIGURED


def test_shared_token_excludes_staked_principal_from_funding(clock):
    token = InMemoryTokenLedger(symbol="pec")
    engine = make_engine(clock, token, None, pool_id="engine-shared")
    token.mint("alice", 1000)
    engine.stake("alice", 1000)
    token.fund(500)
    engine.set_duration(10)

    with pytest.raises(InsufficientFunding, match="have 500"):
        engine.start_period(1000)

    assert engine.start_period(500) == 50


def test_set_duration_blocked_mid_period(engine, clock, reward_token):
    reward_token.fund(1000)
    engine.set_duration(10)
    engine.start_period(1000)

    with pytest.raises(DurationActive):
        engine.set_duration(20)

    clock.advance(10)
    engine.set_duration(20)
    assert engine.period_duration() == 20
    assert engine.period_status() == PeriodStatus.EXPIRED


def test_owner_gating(clock, reward_token, stake_token):
    engine = make_engine(clock, reward_token, stake_token, owner="admin", pool_id="engine-owned")
    reward_token.fund(1000)

    with pytest.raises(Unauthorized):
        engine.set_duration(10)
    with pytest.raises(Unauthorized):
        engine.set_duration(10, caller="mallory")

    engine.set_duration(10, caller="admin")
    with pytest.raises(Unauthorized):
        engine.start_period(1000, caller="mallory")
    assert engine.start_period(1000, caller="admin") == 100

    clock.advance(10)
    with pytest.raises(Unauthorized):
        engine.burn_sink_rewards()
    owed = engine.earned(AccountKey.SINK)
    assert 0 < owed <= 1000
    assert engine.burn_sink_rewards(caller="admin") == owed


def test_events_emitted_after_commit(engine, clock, reward_token, stake_token):
    events = []
    engine.events.subscribe(None, events.append)

    stake(engine, stake_token, "alice", 1000)
    reward_token.fund(1000)
    engine.set_duration(10)
    engine.start_period(1000)
    clock.advance(10)
    engine.claim("alice")
    engine.burn_sink_rewards()

    assert [e.event_type for e in events] == [
        EventType.STAKED,
        EventType.BALANCE_CHANGED,
        EventType.DURATION_UPDATED,
        EventType.PERIOD_STARTED,
        EventType.REWARD_CLAIMED,
        EventType.SINK_REWARDS_BURNED,
    ]

    balance_changed = events[1]
    assert balance_changed.data == {"account": "alice", "new_balance": 1000, "total_allocated": 1000}
    assert balance_changed.pool_id == "engine-test"
    assert balance_changed.timestamp == START

    started = events[3]
    assert started.data["reward_rate"] == 100
    assert started.data["period_finish_at"] == START + 10

    assert events[4].data == {"account": "alice", "amount": 424}
    assert events[5].data == {"amount": 575}


def test_failed_operation_emits_nothing(engine):
    events = []
    engine.events.subscribe(EventType.WITHDRAWN, events.append)
    engine.events.subscribe(EventType.BALANCE_CHANGED, events.append)

    with pytest.raises(InsufficientBalance):
        engine.withdraw("alice", 1)

    assert events == []


def test_failing_subscriber_does_not_undo_operation(engine, stake_token):
    def explode(event):
        raise RuntimeError("subscriber bug")

    engine.events.subscribe(EventType.STAKED, explode)

    stake(engine, stake_token, "alice", 10)

    assert engine.staked_balance("alice") == 10


def test_sink_key_never_collides_with_holder_named_sink(engine, clock, reward_token, stake_token):
    stake(engine, stake_token, "sink", 1000)
    reward_token.fund(1000)
    engine.set_duration(10)
    engine.start_period(1000)
    clock.advance(10)

    assert engine.staked_balance("sink") == 1000
    assert engine.staked_balance(AccountKey.SINK) == 1353
    assert engine.earned("sink") == 424
    assert engine.earned(AccountKey.SINK) == 575


def test_empty_account_id_is_a_validation_error(engine, stake_token):
    for call in (lambda: engine.stake("", 10), lambda: engine.withdraw("", 10), lambda: engine.claim("")):
        with pytest.raises(InvalidAccount):
            call()

    assert engine.unallocated_shares() == TOTAL_SHARES
    assert engine.check_invariants()
