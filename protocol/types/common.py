# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum


class PoolVariant(str, Enum):
    FIXED = "FIXED"         # Constant share supply, unallocated shares held by the sink
    DYNAMIC = "DYNAMIC"     # Total shares == total staked, no sink


class PeriodStatus(str, Enum):
    UNSET = "UNSET"             # duration == 0
    CONFIGURED = "CONFIGURED"   # duration set, no period has run yet
    ACTIVE = "ACTIVE"           # now < period_finish_at
    EXPIRED = "EXPIRED"         # now >= period_finish_at


class EventType(str, Enum):
    STAKED = "STAKED"
    WITHDRAWN = "WITHDRAWN"
    REWARD_CLAIMED = "REWARD_CLAIMED"
    BALANCE_CHANGED = "BALANCE_CHANGED"
    DURATION_UPDATED = "DURATION_UPDATED"
    PERIOD_STARTED = "PERIOD_STARTED"
    SINK_REWARDS_BURNED = "SINK_REWARDS_BURNED"


class ProtocolError(Exception):
    pass


class ValidationError(ProtocolError):
    """Caller precondition violation. Never retried by the engine."""
    pass


class InvalidAmount(ValidationError):
    pass


class InvalidAccount(ValidationError):
    pass


class InsufficientUnallocatedShares(ValidationError):
    pass


class InsufficientBalance(ValidationError):
    pass


class DurationActive(ValidationError):
    pass


class DurationUnset(ValidationError):
    pass


class ZeroRate(ValidationError):
    pass


class InsufficientFunding(ValidationError):
    pass


class NothingToClaim(ValidationError):
    pass


class NothingToBurn(ValidationError):
    pass


class Unauthorized(ValidationError):
    pass


class TokenTransferError(ProtocolError):
    pass


class InsufficientTokenBalance(TokenTransferError):
    pass


class StorageError(ProtocolError):
    pass
