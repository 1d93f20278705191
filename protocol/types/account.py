# MIT License
# Copyright (c) 2025 Hashborn

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union

from pydantic import BaseModel

from .common import InvalidAccount


class AccountKind(str, Enum):
    HOLDER = "holder"
    SINK = "sink"


@dataclass(frozen=True)
class AccountKey:
    """
    Identifies a share-holding account.

    Real principals are HOLDER keys carrying an opaque id. Unallocated shares
    belong to the single SINK key, which is distinguished by its kind rather
    than by a reserved id, so no holder id can ever collide with it.
    """
    kind: AccountKind
    id: str = ""

    SINK: ClassVar['AccountKey']

    def __post_init__(self):
        if self.kind == AccountKind.HOLDER and not self.id:
            raise InvalidAccount("Holder account requires a non-empty id")
        if self.kind == AccountKind.SINK and self.id:
            raise ValueError("Sink account does not take an id")

    @classmethod
    def holder(cls, account_id: str) -> 'AccountKey':
        return cls(kind=AccountKind.HOLDER, id=account_id)

    @property
    def is_sink(self) -> bool:
        return self.kind == AccountKind.SINK

    def __str__(self) -> str:
        """Storage encoding: 'holder:<id>' or 'sink'."""
        if self.is_sink:
            return AccountKind.SINK.value
        return f"{AccountKind.HOLDER.value}:{self.id}"

    @classmethod
    def parse(cls, raw: str) -> 'AccountKey':
        if raw == AccountKind.SINK.value:
            return cls.SINK
        prefix, sep, account_id = raw.partition(":")
        if prefix != AccountKind.HOLDER.value or not sep:
            raise ValueError(f"Invalid account key encoding: {raw!r}")
        return cls.holder(account_id)


AccountKey.SINK = AccountKey(kind=AccountKind.SINK)

AccountLike = Union[str, AccountKey]


def as_key(account: AccountLike) -> AccountKey:
    """Plain strings always name holders; the sink must be passed as AccountKey.SINK."""
    if isinstance(account, AccountKey):
        return account
    return AccountKey.holder(account)


class AccountRewardState(BaseModel):
    # reward_per_share_stored value observed at the last settlement
    reward_per_share_checkpoint: int = 0
    # Settled, claimable reward not yet paid out
    pending_reward: int = 0
