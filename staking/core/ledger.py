# MIT License
# Copyright (c) 2025 Hashborn

"""
Share Ledger

Tracks how many shares each account holds.

Fixed pool: total_shares is constant; the sink holds every share not allocated
to a holder, so sum(balances) == total_shares at all times.
Dynamic pool: there is no sink; total_shares is the exact sum of holder stakes.

The ledger never touches reward state. Callers must settle the account first.
"""
import logging
from typing import Tuple

from protocol.types.account import AccountKey
from protocol.types.common import (
    PoolVariant,
    InvalidAmount,
    InsufficientBalance,
    InsufficientUnallocatedShares,
)
from protocol.types.state import EngineState

logger = logging.getLogger(__name__)


class ShareLedger:
    def __init__(self, state: EngineState):
        self.state = state

    @property
    def is_fixed(self) -> bool:
        return self.state.variant == PoolVariant.FIXED

    def balance_of(self, key: AccountKey) -> int:
        return self.state.balance_of(key)

    def total_shares(self) -> int:
        return self.state.total_shares

    def unallocated(self) -> int:
        if not self.is_fixed:
            return 0
        return self.state.balance_of(AccountKey.SINK)

    def total_allocated(self) -> int:
        return self.total_shares() - self.unallocated()

    def _check(self, key: AccountKey, amount: int):
        if key.is_sink:
            raise ValueError("Sink balance can only change through holder allocation")
        if amount <= 0:
            raise InvalidAmount(f"Share amount must be positive, got {amount}")

    def allocate(self, key: AccountKey, amount: int) -> Tuple[int, int]:
        """
        Give `amount` shares to `key`.

        Returns:
            (new_balance, total_allocated)
        """
        self._check(key, amount)

        if self.is_fixed:
            available = self.unallocated()
            if available < amount:
                raise InsufficientUnallocatedShares(
                    f"Insufficient unallocated shares: have {available}, need {amount}"
                )
            self.state.set_balance(AccountKey.SINK, available - amount)
        else:
            self.state.total_shares += amount

        new_balance = self.balance_of(key) + amount
        self.state.set_balance(key, new_balance)

        logger.debug(f"Allocated {amount} shares to {key} (balance={new_balance})")
        return new_balance, self.total_allocated()

    def deallocate(self, key: AccountKey, amount: int) -> Tuple[int, int]:
        """
        Take `amount` shares back from `key`.

        Returns:
            (new_balance, total_allocated)
        """
        self._check(key, amount)

        balance = self.balance_of(key)
        if balance < amount:
            raise InsufficientBalance(f"Insufficient balance: have {balance}, trying to withdraw {amount}")

        new_balance = balance - amount
        self.state.set_balance(key, new_balance)

        if self.is_fixed:
            self.state.set_balance(AccountKey.SINK, self.unallocated() + amount)
        else:
            self.state.total_shares -= amount

        logger.debug(f"Deallocated {amount} shares from {key} (balance={new_balance})")
        return new_balance, self.total_allocated()

    def check_invariant(self) -> bool:
        """sum(balances) == total_shares."""
        return sum(self.state.balances.values()) == self.state.total_shares
