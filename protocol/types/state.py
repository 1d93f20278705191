# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict

from pydantic import BaseModel, Field

from .common import PoolVariant
from .account import AccountKey, AccountRewardState


class RewardState(BaseModel):
    """Global distribution state. Mutated only by settlement and the period controller."""
    reward_per_share_stored: int = 0    # Fixed-point, SCALE = 1e18
    reward_rate: int = 0                # Reward units per second
    period_duration: int = 0            # Seconds
    period_finish_at: int = 0           # Unix timestamp
    last_update_at: int = 0             # Unix timestamp

    # Dynamic variant only: reward streamed while total shares was zero
    idle_reward: int = 0


class EngineState(BaseModel):
    """
    Complete state of one reward pool.

    Balances and reward states are keyed by the storage encoding of
    AccountKey (see AccountKey.__str__) so the model serializes to plain JSON.
    """
    pool_id: str
    variant: PoolVariant = PoolVariant.FIXED
    total_shares: int = 0

    reward: RewardState = Field(default_factory=RewardState)
    balances: Dict[str, int] = Field(default_factory=dict)
    accounts: Dict[str, AccountRewardState] = Field(default_factory=dict)

    def clone(self) -> 'EngineState':
        """Creates an independent copy (for all-or-nothing application)."""
        return self.model_copy(deep=True)

    def balance_of(self, key: AccountKey) -> int:
        return self.balances.get(str(key), 0)

    def set_balance(self, key: AccountKey, amount: int):
        if amount == 0 and not key.is_sink:
            self.balances.pop(str(key), None)
        else:
            self.balances[str(key)] = amount

    def get_account(self, key: AccountKey) -> AccountRewardState:
        """Returns the stored reward state, or a fresh default (not inserted)."""
        acc = self.accounts.get(str(key))
        if acc is None:
            return AccountRewardState()
        return acc

    def set_account(self, key: AccountKey, account: AccountRewardState):
        self.accounts[str(key)] = account
