from __future__ import annotations

"""Pydantic response/request schemas for the HTTP API.

All token amounts are raw integer units of the base asset (or ledger token,
which shares its decimals). Rates are scaled by 10**18.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    ok: bool = True
    service: str = "flexvault"
    time: int = Field(..., description="Vault clock (unix seconds)")


class CheckpointOut(BaseModel):
    index: int
    timestamp: int
    supply: int
    price_per_unit: int


class CheckpointsResponse(BaseModel):
    total: int
    offset: int
    items: List[CheckpointOut]


class EngineResponse(BaseModel):
    address: str
    strategy: str
    accounting_token: str
    custodian: str
    target_rate: int
    loss_floor: int
    cooldown_seconds: int
    next_update_window: int
    min_rewardable_supply: int
    cooldown_state: str
    total_supply: int
    reward_bound: Optional[int] = Field(default=None, description="None while supply is below the minimum")
    loss_bound: int
    checkpoint_count: int


class RealizedRateResponse(BaseModel):
    from_index: int
    to_index: int
    rate: int


class StrategyResponse(BaseModel):
    address: str
    name: str
    symbol: str
    asset: str
    accounting_module: str
    total_assets: int
    total_supply: int
    ledger_balance: int
    idle_base_balance: int
    paused: bool


class SweeperResponse(BaseModel):
    address: str
    accounting_module: str
    held_balance: int
    can_sweep: bool
    preview_amount: int


class SweepRequest(BaseModel):
    sender: str = Field(..., min_length=1, description="Caller principal")

    model_config = {"extra": "ignore"}


class SweepResponse(BaseModel):
    ok: bool = True
    amount: int
    checkpoint: CheckpointOut
