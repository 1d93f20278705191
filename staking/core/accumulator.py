# MIT License
# Copyright (c) 2025 Hashborn

"""
Reward Accumulator

Maintains the global reward-per-share index and lazily settles accounts
against it.

    reward_per_share = stored + rate * (min(now, finish) - last_update) * SCALE // total_shares
    earned(account)  = balance * (reward_per_share - checkpoint) // SCALE + pending

Settlement must run for an account strictly before its balance, the rate, or
the period end changes. Otherwise accrual for the elapsed interval would be
computed against the post-change state.

Floor division under-pays each account by less than one reward unit per
settlement; the residual stays in the engine's reward balance.
"""
import logging
from typing import Optional

from protocol.config.params import SCALE
from protocol.types.account import AccountKey
from protocol.types.state import EngineState

logger = logging.getLogger(__name__)


class RewardAccumulator:
    def __init__(self, state: EngineState, now: int):
        self.state = state
        self.now = now

    def last_time_reward_applicable(self) -> int:
        return min(self.now, self.state.reward.period_finish_at)

    def _elapsed(self) -> int:
        return self.last_time_reward_applicable() - self.state.reward.last_update_at

    def current_reward_per_share(self) -> int:
        reward = self.state.reward
        total_shares = self.state.total_shares
        elapsed = self._elapsed()

        if total_shares == 0 or elapsed <= 0 or reward.reward_rate == 0:
            return reward.reward_per_share_stored

        return reward.reward_per_share_stored + reward.reward_rate * elapsed * SCALE // total_shares

    def idle_reward(self) -> int:
        """Reward streamed while total shares was zero, including the unsettled interval."""
        reward = self.state.reward
        elapsed = self._elapsed()
        if self.state.total_shares == 0 and elapsed > 0:
            return reward.idle_reward + reward.reward_rate * elapsed
        return reward.idle_reward

    def earned(self, key: AccountKey) -> int:
        account = self.state.get_account(key)
        balance = self.state.balance_of(key)
        accrued = balance * (self.current_reward_per_share() - account.reward_per_share_checkpoint) // SCALE
        return accrued + account.pending_reward

    def settle(self, key: Optional[AccountKey]):
        """
        Advance the global index, then fold accrual into `key`'s pending reward.

        key=None only advances the global index (rate updates in the dynamic pool).
        """
        reward = self.state.reward

        # An interval streamed with zero total shares accrues to idle_reward, not the index
        reward.idle_reward = self.idle_reward()
        reward.reward_per_share_stored = self.current_reward_per_share()
        # last_update never moves backwards
        reward.last_update_at = max(reward.last_update_at, self.last_time_reward_applicable())

        if key is None:
            return

        account = self.state.get_account(key)
        account.pending_reward = self.earned(key)
        account.reward_per_share_checkpoint = reward.reward_per_share_stored
        self.state.set_account(key, account)

        logger.debug(
            f"Settled {key}: pending={account.pending_reward}, "
            f"checkpoint={account.reward_per_share_checkpoint}"
        )

    def take_pending(self, key: AccountKey) -> int:
        """Return and zero the settled reward of `key`. Call after settle(key)."""
        account = self.state.get_account(key)
        amount = account.pending_reward
        if amount:
            account.pending_reward = 0
            self.state.set_account(key, account)
        return amount
