# MIT License
# Copyright (c) 2025 Hashborn

import os
from typing import Dict

from ..types.common import PoolVariant

# Global Constants
DECIMALS = 18
SCALE = 10**DECIMALS            # Fixed-point precision of reward_per_share

REWARD_DENOM = "pec"
STAKE_DENOM = "spass"

DAY = 24 * 60 * 60
YEAR = 365 * DAY


class PoolConfig:
    def __init__(self,
                 network_id: str,
                 pool_id: str,
                 total_shares: int,
                 variant: PoolVariant = PoolVariant.FIXED,
                 # Distribution params
                 default_duration: int = 0,
                 reward_supply: int = 0,
                 # Admin
                 owner: str = None):
        self.network_id = network_id
        self.pool_id = pool_id
        self.total_shares = total_shares
        self.variant = variant
        self.default_duration = default_duration
        self.reward_supply = reward_supply
        self.owner = owner
        self.validate()

    def validate(self):
        if self.variant == PoolVariant.FIXED and self.total_shares <= 0:
            raise ValueError(f"Fixed pool {self.pool_id} needs positive total_shares, got {self.total_shares}")
        if self.variant == PoolVariant.DYNAMIC and self.total_shares != 0:
            raise ValueError(f"Dynamic pool {self.pool_id} derives total_shares from stake, got {self.total_shares}")
        if self.default_duration < 0:
            raise ValueError(f"default_duration must be non-negative, got {self.default_duration}")

    def __repr__(self) -> str:
        return (f"PoolConfig(network_id={self.network_id!r}, pool_id={self.pool_id!r}, "
                f"variant={self.variant.value}, total_shares={self.total_shares})")


POOL_CONFIGS: Dict[str, PoolConfig] = {
    "devnet": PoolConfig(
        network_id="devnet",
        pool_id="pec-devnet-1",
        total_shares=10_000 * 10**DECIMALS,
        default_duration=7 * DAY,
        reward_supply=100_000 * 10**DECIMALS,
    ),
    "testnet": PoolConfig(
        network_id="testnet",
        pool_id="pec-testnet-1",
        total_shares=1_000_000 * 10**DECIMALS,
        default_duration=30 * DAY,
        reward_supply=750_000 * 10**DECIMALS,
    ),
    "mainnet": PoolConfig(
        network_id="mainnet",
        pool_id="pec-mainnet-1",
        total_shares=1_000_000 * 10**DECIMALS,
        default_duration=4 * YEAR,
        reward_supply=7_500_000 * 10**DECIMALS,   # 30% of the 25M max supply
    ),
    # Stake-weighted pool without a sink
    "devnet-dynamic": PoolConfig(
        network_id="devnet",
        pool_id="pec-devnet-dyn-1",
        total_shares=0,
        variant=PoolVariant.DYNAMIC,
        default_duration=7 * DAY,
        reward_supply=100_000 * 10**DECIMALS,
    ),
}

# Default to devnet, can be changed via RSTREAM_NETWORK or the CLI
CURRENT_POOL = POOL_CONFIGS.get(os.environ.get("RSTREAM_NETWORK", "devnet"), POOL_CONFIGS["devnet"])
