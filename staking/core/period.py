# MIT License
# Copyright (c) 2025 Hashborn

"""
Period Controller

Owns the reward rate, the period duration and the period end.

    UNSET -> CONFIGURED -> ACTIVE -> EXPIRED -> ACTIVE (restart)

Status is derived from the clock on every read; nothing is stored for it.
Restarting an in-flight period rolls the undistributed remainder of the old
rate into the new one.
"""
import logging

from protocol.types.common import (
    PeriodStatus,
    InvalidAmount,
    DurationActive,
    DurationUnset,
    ZeroRate,
    InsufficientFunding,
)
from protocol.types.state import EngineState

logger = logging.getLogger(__name__)


class PeriodController:
    def __init__(self, state: EngineState, now: int):
        self.state = state
        self.now = now

    def status(self) -> PeriodStatus:
        reward = self.state.reward
        if reward.period_finish_at > self.now:
            return PeriodStatus.ACTIVE
        if reward.period_duration == 0:
            return PeriodStatus.UNSET
        if reward.period_finish_at == 0:
            return PeriodStatus.CONFIGURED
        return PeriodStatus.EXPIRED

    def reward_for_duration(self) -> int:
        return self.state.reward.reward_rate * self.state.reward.period_duration

    def remaining_reward(self) -> int:
        """Reward committed by the current rate but not yet streamed."""
        reward = self.state.reward
        if self.now >= reward.period_finish_at:
            return 0
        return (reward.period_finish_at - self.now) * reward.reward_rate

    def set_duration(self, duration: int):
        reward = self.state.reward
        if self.now < reward.period_finish_at:
            raise DurationActive(
                f"Cannot change duration while period is active (finishes at {reward.period_finish_at}, now {self.now})"
            )
        if duration < 0:
            raise InvalidAmount(f"Duration must be non-negative, got {duration}")

        reward.period_duration = duration
        logger.info(f"Period duration set to {duration}s")

    def start_period(self, amount: int, available_balance: int) -> int:
        """
        Start (or top up) a distribution period of `amount` reward units.

        The caller must have settled the sink (fixed pool) or the global index
        (dynamic pool) at the same timestamp before calling this.

        Args:
            amount: New reward units to stream over one period_duration
            available_balance: Reward tokens currently held by the engine

        Returns:
            The new reward rate
        """
        reward = self.state.reward

        if reward.period_duration == 0:
            raise DurationUnset("Period duration is not set")
        if amount < 0:
            raise InvalidAmount(f"Reward amount must be non-negative, got {amount}")

        # Undistributed reward of an in-flight period rolls into the new rate
        new_rate = (amount + self.remaining_reward()) // reward.period_duration

        if new_rate == 0:
            raise ZeroRate(
                f"Reward rate truncates to zero: amount {amount} over {reward.period_duration}s"
            )

        committed = new_rate * reward.period_duration
        if available_balance < committed:
            raise InsufficientFunding(
                f"Insufficient reward funding: have {available_balance}, period commits {committed}"
            )

        reward.reward_rate = new_rate
        reward.period_finish_at = self.now + reward.period_duration
        reward.last_update_at = self.now

        logger.info(
            f"Reward period started: rate={new_rate}/s until {reward.period_finish_at} "
            f"(amount={amount}, duration={reward.period_duration}s)"
        )
        return new_rate
