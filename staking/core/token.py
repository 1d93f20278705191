# MIT License
# Copyright (c) 2025 Hashborn

"""
Token ledger capability consumed by the engine.

The engine never keeps token balances itself. It calls a TokenLedger that
moves value between holders and the engine's own account and burns from the
engine's account. Every call must either fully apply or raise
TokenTransferError without side effects.

InMemoryTokenLedger is the reference implementation used by tests and by the
CLI; production hosts plug in their own ledger.
"""
import logging
from typing import Dict, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from protocol.types.common import InsufficientTokenBalance, TokenTransferError

logger = logging.getLogger(__name__)


@runtime_checkable
class TokenLedger(Protocol):
    def transfer_in(self, sender: str, amount: int) -> None:
        ...

    def transfer_out(self, recipient: str, amount: int) -> None:
        ...

    def burn(self, amount: int) -> None:
        ...

    def balance_of_self(self) -> int:
        ...


class InMemoryTokenLedger(BaseModel):
    symbol: str
    balances: Dict[str, int] = Field(default_factory=dict)
    engine_balance: int = 0         # Tokens held by the engine itself
    total_supply: int = 0
    total_burned: int = 0

    def balance_of(self, holder: str) -> int:
        return self.balances.get(holder, 0)

    def balance_of_self(self) -> int:
        return self.engine_balance

    def mint(self, holder: str, amount: int):
        if amount <= 0:
            raise TokenTransferError(f"Mint amount must be positive, got {amount}")
        self.balances[holder] = self.balance_of(holder) + amount
        self.total_supply += amount

    def fund(self, amount: int):
        """Mint directly into the engine's account (reward funding)."""
        if amount <= 0:
            raise TokenTransferError(f"Funding amount must be positive, got {amount}")
        self.engine_balance += amount
        self.total_supply += amount
        logger.info(f"Funded engine with {amount} {self.symbol}")

    def transfer_in(self, sender: str, amount: int) -> None:
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientTokenBalance(
                f"Insufficient {self.symbol} balance: {sender} has {balance}, need {amount}"
            )
        self.balances[sender] = balance - amount
        self.engine_balance += amount

    def transfer_out(self, recipient: str, amount: int) -> None:
        if self.engine_balance < amount:
            raise InsufficientTokenBalance(
                f"Insufficient engine {self.symbol} balance: have {self.engine_balance}, need {amount}"
            )
        self.engine_balance -= amount
        self.balances[recipient] = self.balance_of(recipient) + amount

    def burn(self, amount: int) -> None:
        if self.engine_balance < amount:
            raise InsufficientTokenBalance(
                f"Cannot burn {amount} {self.symbol}: engine holds {self.engine_balance}"
            )
        self.engine_balance -= amount
        self.total_supply -= amount
        self.total_burned += amount
        logger.info(f"Burned {amount} {self.symbol}")
