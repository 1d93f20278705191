# MIT License
# Copyright (c) 2025 Hashborn

"""
Sink / Burn Control

In a fixed pool every unallocated share belongs to AccountKey.SINK and keeps
accruing reward. Burning that accrual removes it from circulation instead of
leaving it stranded in the engine.

A dynamic pool has no sink. The equivalent burnable amount is the idle reward
streamed while nobody was staked.
"""
import logging

from protocol.types.account import AccountKey
from protocol.types.common import PoolVariant, NothingToBurn
from protocol.types.state import EngineState
from .accumulator import RewardAccumulator

logger = logging.getLogger(__name__)


class SinkController:
    def __init__(self, state: EngineState, accumulator: RewardAccumulator):
        self.state = state
        self.accumulator = accumulator

    def burnable(self) -> int:
        if self.state.variant == PoolVariant.DYNAMIC:
            return self.accumulator.idle_reward()
        return self.accumulator.earned(AccountKey.SINK)

    def take_burnable(self) -> int:
        """
        Remove the burnable amount from engine state and return it.

        The caller must have settled the sink (fixed) or the global index
        (dynamic) at the current timestamp, and must hand the amount to the
        token ledger's burn.
        """
        if self.state.variant == PoolVariant.DYNAMIC:
            amount = self.state.reward.idle_reward
            self.state.reward.idle_reward = 0
        else:
            amount = self.accumulator.take_pending(AccountKey.SINK)

        if amount == 0:
            raise NothingToBurn("No unallocated-share rewards to burn")

        logger.debug(f"Taking {amount} sink rewards for burn")
        return amount
