# src/flexvault/ledger/constants.py
from __future__ import annotations

"""Fixed-point and capability constants.

Rates are scaled integers:
- SCALE = 1e18 represents 100%
- YEAR is 365.25 days in seconds
- target rate <= 100%, loss floor <= 50%
"""

SCALE: int = 10**18
YEAR: int = 31_557_600  # 365.25 days

MAX_TARGET_RATE: int = SCALE
MAX_LOSS_FLOOR: int = SCALE // 2

# Allowance value treated as "unlimited" (never decremented).
MAX_UINT256: int = 2**256 - 1

ZERO_ADDRESS: str = "0x" + "0" * 40

# Capabilities
DEFAULT_ADMIN: str = "DEFAULT_ADMIN"
SAFE_MANAGER: str = "SAFE_MANAGER"
REWARDS_PROCESSOR: str = "REWARDS_PROCESSOR"
LOSS_PROCESSOR: str = "LOSS_PROCESSOR"
ALLOCATOR: str = "ALLOCATOR"
PAUSER: str = "PAUSER"
UNPAUSER: str = "UNPAUSER"
ASSET_MANAGER: str = "ASSET_MANAGER"
REWARDS_SWEEPER: str = "REWARDS_SWEEPER"
TOKEN_ADMIN: str = "TOKEN_ADMIN"

# Engine defaults
DEFAULT_COOLDOWN_SECONDS: int = 60 * 60
DEFAULT_MIN_REWARDABLE_SUPPLY: int = 1
