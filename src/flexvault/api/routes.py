from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Query, Request

from flexvault.api.errors import ApiError
from flexvault.api.schemas import (
    CheckpointOut,
    CheckpointsResponse,
    EngineResponse,
    HealthResponse,
    RealizedRateResponse,
    StrategyResponse,
    SweepRequest,
    SweepResponse,
    SweeperResponse,
)
from flexvault.ledger.checkpoints import Checkpoint
from flexvault.runtime.errors import TvlTooLow

# Handlers are async so every call into the world runs on the event loop thread.
router = APIRouter()


def _system(request: Request) -> Any:
    sys = getattr(request.app.state, "system", None)
    if sys is None:
        raise ApiError.internal("not_ready", "vault system not attached to app.state", {})
    return sys


def _cp(cp: Checkpoint) -> CheckpointOut:
    return CheckpointOut(index=cp.index, timestamp=cp.timestamp, supply=cp.supply, price_per_unit=cp.price_per_unit)


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    return HealthResponse(time=_system(request).world.now())


@router.get("/engine", response_model=EngineResponse)
async def engine_info(request: Request) -> EngineResponse:
    engine = _system(request).engine
    try:
        bound: Optional[int] = engine.reward_bound()
    except TvlTooLow:
        bound = None
    return EngineResponse(
        address=engine.address,
        strategy=engine.strategy(),
        accounting_token=engine.accounting_token(),
        custodian=engine.custodian(),
        target_rate=engine.target_rate(),
        loss_floor=engine.loss_floor(),
        cooldown_seconds=engine.cooldown_seconds(),
        next_update_window=engine.next_update_window(),
        min_rewardable_supply=engine.min_rewardable_supply(),
        cooldown_state=engine.cooldown_state().value,
        total_supply=engine.token().total_supply(),
        reward_bound=bound,
        loss_bound=engine.loss_bound(),
        checkpoint_count=engine.checkpoint_count(),
    )


@router.get("/engine/checkpoints", response_model=CheckpointsResponse)
async def engine_checkpoints(
    request: Request,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
) -> CheckpointsResponse:
    engine = _system(request).engine
    items = [_cp(cp) for cp in engine.checkpoints(offset, limit)]
    return CheckpointsResponse(total=engine.checkpoint_count(), offset=offset, items=items)


@router.get("/engine/checkpoints/{index}", response_model=CheckpointOut)
async def engine_checkpoint(request: Request, index: int) -> CheckpointOut:
    return _cp(_system(request).engine.checkpoint(index))


@router.get("/engine/realized-rate", response_model=RealizedRateResponse)
async def engine_realized_rate(
    request: Request,
    from_index: int = Query(..., ge=0),
    to_index: int = Query(..., ge=0),
) -> RealizedRateResponse:
    rate = _system(request).engine.realized_rate(from_index, to_index)
    return RealizedRateResponse(from_index=from_index, to_index=to_index, rate=rate)


@router.get("/strategy", response_model=StrategyResponse)
async def strategy_info(request: Request) -> StrategyResponse:
    strat = _system(request).strategy
    return StrategyResponse(
        address=strat.address,
        name=strat.name(),
        symbol=strat.symbol(),
        asset=strat.asset(),
        accounting_module=strat.accounting_module(),
        total_assets=strat.total_assets(),
        total_supply=strat.total_supply(),
        ledger_balance=strat.ledger_balance(),
        idle_base_balance=strat.idle_base_balance(),
        paused=strat.paused(),
    )


@router.get("/sweeper", response_model=SweeperResponse)
async def sweeper_info(request: Request) -> SweeperResponse:
    sw = _system(request).sweeper
    return SweeperResponse(
        address=sw.address,
        accounting_module=sw.accounting_module(),
        held_balance=sw.held_balance(),
        can_sweep=sw.can_sweep_rewards(),
        preview_amount=sw.preview_sweep_up_to_apr_max(),
    )


@router.post("/sweeper/sweep", response_model=SweepResponse)
async def sweeper_sweep(request: Request, body: SweepRequest) -> SweepResponse:
    sys = _system(request)
    amount = sys.sweeper.sweep_rewards_up_to_apr_max(body.sender)
    return SweepResponse(amount=amount, checkpoint=_cp(sys.engine.latest_checkpoint()))
