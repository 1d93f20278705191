# MIT License
# Copyright (c) 2025 Hashborn

"""
Reward streaming engine.

Public surface of a reward pool. Every mutating call:
1. takes the engine lock and reads the clock once,
2. clones the committed state,
3. settles the affected account(s) on the clone,
4. applies its own effect and at most one token-ledger call,
5. swaps the clone in, then updates metrics and emits events.

Any exception before step 5 discards the clone, so a failed call leaves the
pool exactly as it was.
"""
from typing import Any, Callable, List, Optional
import logging
import threading

from protocol.config.params import CURRENT_POOL, PoolConfig
from protocol.types.account import AccountKey, AccountLike, AccountRewardState, as_key
from protocol.types.common import (
    EventType,
    PeriodStatus,
    PoolVariant,
    ProtocolError,
    NothingToClaim,
    Unauthorized,
)
from protocol.types.state import EngineState
from .accumulator import RewardAccumulator
from .clock import SystemClock
from .events import EventBus, PoolEvent
from .ledger import ShareLedger
from .period import PeriodController
from .sink import SinkController
from .token import TokenLedger
from ..observability import metrics

logger = logging.getLogger(__name__)


class _Operation:
    """Components bound to one state object and one clock reading."""

    def __init__(self, state: EngineState, now: int):
        self.state = state
        self.now = now
        self.ledger = ShareLedger(state)
        self.accumulator = RewardAccumulator(state, now)
        self.period = PeriodController(state, now)
        self.sink = SinkController(state, self.accumulator)
        self.events: List[PoolEvent] = []

    def emit(self, event_type: EventType, **data: Any):
        self.events.append(PoolEvent(event_type, self.state.pool_id, self.now, data))

    def settle_holder(self, key: AccountKey):
        """Settlement before a share transfer: the holder and, in a fixed pool, the sink on the other side."""
        self.accumulator.settle(key)
        if self.state.variant == PoolVariant.FIXED:
            self.accumulator.settle(AccountKey.SINK)

    def settle_global(self):
        """Settlement before a rate change or burn: the sink in a fixed pool, index only otherwise."""
        if self.state.variant == PoolVariant.FIXED:
            self.accumulator.settle(AccountKey.SINK)
        else:
            self.accumulator.settle(None)


class StakingEngine:
    def __init__(self,
                 reward_token: TokenLedger,
                 stake_token: Optional[TokenLedger] = None,
                 config: Optional[PoolConfig] = None,
                 clock=None,
                 event_bus: Optional[EventBus] = None,
                 state: Optional[EngineState] = None,
                 owner: Optional[str] = None):
        """
        Args:
            reward_token: Ledger of the streamed reward token (claims, burns, funding)
            stake_token: Ledger of the token locked by stake/withdraw (defaults to reward_token)
            config: Pool parameters (defaults to CURRENT_POOL); ignored for shares if state is given
            clock: Object with now() -> int (defaults to SystemClock)
            event_bus: Bus receiving committed events (defaults to a private bus)
            state: Previously persisted EngineState to resume from
            owner: Single admin principal; None leaves admin calls ungated
        """
        self.config = config or CURRENT_POOL
        self.reward_token = reward_token
        self.stake_token = stake_token if stake_token is not None else reward_token
        self.clock = clock or SystemClock()
        self.events = event_bus or EventBus()
        self.owner = owner if owner is not None else self.config.owner
        self._lock = threading.RLock()

        if state is None:
            state = EngineState(
                pool_id=self.config.pool_id,
                variant=self.config.variant,
                total_shares=self.config.total_shares,
            )
            if state.variant == PoolVariant.FIXED:
                state.set_balance(AccountKey.SINK, state.total_shares)
        self._state = state

        metrics.update_metrics(self._state)
        logger.info(
            f"Reward pool {self.pool_id} initialized ({self._state.variant.value}, "
            f"total_shares={self._state.total_shares})"
        )

    @classmethod
    def from_snapshot(cls, state: EngineState, reward_token: TokenLedger, **kwargs) -> 'StakingEngine':
        return cls(reward_token, state=state.clone(), **kwargs)

    @property
    def pool_id(self) -> str:
        return self._state.pool_id

    @property
    def variant(self) -> PoolVariant:
        return self._state.variant

    def snapshot(self) -> EngineState:
        """Returns a copy of the committed state."""
        with self._lock:
            return self._state.clone()

    # --- Plumbing ---

    def _apply(self, operation: str, fn: Callable[[_Operation], Any]) -> Any:
        with self._lock:
            working = self._state.clone()
            op = _Operation(working, self.clock.now())
            try:
                result = fn(op)
            except ProtocolError as e:
                logger.warning(f"{operation} rejected on pool {self.pool_id}: {e}")
                metrics.record_failure(self.pool_id, operation, e)
                raise
            except Exception as e:
                logger.error(f"{operation} failed on pool {self.pool_id}: {e}", exc_info=True)
                metrics.record_failure(self.pool_id, operation, e)
                raise

            self._state = working
            metrics.record_operation(self.pool_id, operation)
            metrics.update_metrics(working)

            for event in op.events:
                self.events.emit(event)
            return result

    def _view(self, fn: Callable[[_Operation], Any]) -> Any:
        with self._lock:
            return fn(_Operation(self._state, self.clock.now()))

    def _authorize(self, caller: Optional[str]):
        if self.owner is not None and caller != self.owner:
            raise Unauthorized(f"Caller {caller!r} is not the pool owner")

    def _available_reward_balance(self, op: _Operation) -> int:
        balance = self.reward_token.balance_of_self()
        if self.stake_token is self.reward_token:
            # Staked principal shares the account with rewards and is not funding
            balance -= op.ledger.total_allocated()
        return balance

    # --- Holder operations ---

    def stake(self, account: str, amount: int) -> int:
        """
        Lock `amount` stake tokens from `account` and allocate as many shares.

        Returns:
            The account's new share balance
        """
        def _stake(op: _Operation) -> int:
            key = AccountKey.holder(account)
            op.settle_holder(key)
            new_balance, total_allocated = op.ledger.allocate(key, amount)
            self.stake_token.transfer_in(account, amount)

            op.emit(EventType.STAKED, account=account, amount=amount)
            op.emit(EventType.BALANCE_CHANGED, account=account,
                    new_balance=new_balance, total_allocated=total_allocated)
            logger.info(f"{account} staked {amount} in {self.pool_id} (balance={new_balance})")
            return new_balance

        return self._apply("stake", _stake)

    def withdraw(self, account: str, amount: int) -> int:
        """
        Return `amount` shares from `account` and release as many stake tokens.

        Returns:
            The account's new share balance
        """
        def _withdraw(op: _Operation) -> int:
            key = AccountKey.holder(account)
            op.settle_holder(key)
            new_balance, total_allocated = op.ledger.deallocate(key, amount)
            self.stake_token.transfer_out(account, amount)

            op.emit(EventType.WITHDRAWN, account=account, amount=amount)
            op.emit(EventType.BALANCE_CHANGED, account=account,
                    new_balance=new_balance, total_allocated=total_allocated)
            logger.info(f"{account} withdrew {amount} from {self.pool_id} (balance={new_balance})")
            return new_balance

        return self._apply("withdraw", _withdraw)

    def claim(self, account: str, require_reward: bool = False) -> int:
        """
        Pay out everything `account` has earned so far.

        A zero reward is a silent no-op unless require_reward is set, in which
        case NothingToClaim is raised.

        Returns:
            Amount paid out
        """
        def _claim(op: _Operation) -> int:
            key = AccountKey.holder(account)
            op.accumulator.settle(key)
            amount = op.accumulator.take_pending(key)
            if amount == 0:
                if require_reward:
                    raise NothingToClaim(f"{account} has no reward to claim")
                return 0

            self.reward_token.transfer_out(account, amount)
            op.emit(EventType.REWARD_CLAIMED, account=account, amount=amount)
            logger.info(f"{account} claimed {amount} from {self.pool_id}")
            return amount

        amount = self._apply("claim", _claim)
        if amount:
            metrics.record_claim(self.pool_id, amount)
        return amount

    # --- Admin operations ---

    def set_duration(self, seconds: int, caller: Optional[str] = None):
        def _set_duration(op: _Operation):
            self._authorize(caller)
            op.period.set_duration(seconds)
            op.emit(EventType.DURATION_UPDATED, duration=seconds)

        self._apply("set_duration", _set_duration)

    def start_period(self, amount: int, caller: Optional[str] = None) -> int:
        """
        Start a new period streaming `amount` reward units, rolling any
        undistributed remainder of an active period into the new rate.

        Returns:
            The new reward rate
        """
        def _start_period(op: _Operation) -> int:
            self._authorize(caller)
            op.settle_global()
            rate = op.period.start_period(amount, self._available_reward_balance(op))
            op.emit(EventType.PERIOD_STARTED, reward_rate=rate, amount=amount,
                    period_finish_at=op.state.reward.period_finish_at)
            return rate

        return self._apply("start_period", _start_period)

    def burn_sink_rewards(self, caller: Optional[str] = None) -> int:
        """
        Burn the reward accrued by unallocated shares.

        Returns:
            Amount burned
        """
        def _burn(op: _Operation) -> int:
            self._authorize(caller)
            op.settle_global()
            amount = op.sink.take_burnable()
            self.reward_token.burn(amount)
            op.emit(EventType.SINK_REWARDS_BURNED, amount=amount)
            logger.info(f"Burned {amount} unallocated-share rewards from {self.pool_id}")
            return amount

        amount = self._apply("burn_sink_rewards", _burn)
        metrics.record_burn(self.pool_id, amount)
        return amount

    # --- Queries ---

    def earned(self, account: AccountLike) -> int:
        """Reward `account` could claim now. Pass AccountKey.SINK for the sink."""
        return self._view(lambda op: op.accumulator.earned(as_key(account)))

    def current_reward_per_share(self) -> int:
        return self._view(lambda op: op.accumulator.current_reward_per_share())

    def staked_balance(self, account: AccountLike) -> int:
        return self._view(lambda op: op.ledger.balance_of(as_key(account)))

    def unallocated_shares(self) -> int:
        return self._view(lambda op: op.ledger.unallocated())

    def total_shares(self) -> int:
        return self._view(lambda op: op.ledger.total_shares())

    def total_allocated(self) -> int:
        return self._view(lambda op: op.ledger.total_allocated())

    def reward_rate(self) -> int:
        return self._view(lambda op: op.state.reward.reward_rate)

    def period_duration(self) -> int:
        return self._view(lambda op: op.state.reward.period_duration)

    def period_finish_at(self) -> int:
        return self._view(lambda op: op.state.reward.period_finish_at)

    def period_status(self) -> PeriodStatus:
        return self._view(lambda op: op.period.status())

    def reward_for_duration(self) -> int:
        return self._view(lambda op: op.period.reward_for_duration())

    def last_time_reward_applicable(self) -> int:
        return self._view(lambda op: op.accumulator.last_time_reward_applicable())

    def burnable_rewards(self) -> int:
        return self._view(lambda op: op.sink.burnable())

    def account_state(self, account: AccountLike) -> AccountRewardState:
        return self._view(lambda op: op.state.get_account(as_key(account)).model_copy())

    def check_invariants(self) -> bool:
        return self._view(lambda op: op.ledger.check_invariant())
