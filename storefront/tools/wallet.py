from fastapi import APIRouter, Depends, HTTPException

from storefront.dependencies.services import (
    get_actor,
    get_settlement_engine,
    get_wallet_service,
    require_admin,
)
from storefront.schemas.billing import (
    ConsumptionRequest,
    RechargeRequest,
    SettlementRequest,
    SettlementResult,
    TransactionListResponse,
    Wallet,
    WalletRequest,
    WalletResult,
)
from storefront.schemas.common import Actor
from storefront.services import SettlementEngine, WalletService
from storefront.services.exceptions import ServiceError

router = APIRouter()


def _ensure_own_wallet(actor: Actor, customer_id: str) -> None:
    if not actor.is_admin and actor.actor_id != customer_id:
        raise HTTPException(status_code=403, detail="Customers may only access their own wallet")


@router.post("/get", response_model=WalletResult)
async def get_wallet(
    req: WalletRequest,
    actor: Actor = Depends(get_actor),
    service: WalletService = Depends(get_wallet_service),
):
    _ensure_own_wallet(actor, req.customer_id)
    return await service.get_wallet(req.customer_id)


@router.post("/open", response_model=Wallet)
async def open_wallet(
    req: WalletRequest,
    actor: Actor = Depends(require_admin),
    service: WalletService = Depends(get_wallet_service),
):
    try:
        return await service.open_wallet(req.customer_id)
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@router.post("/recharge", response_model=WalletResult)
async def recharge_wallet(
    req: RechargeRequest,
    actor: Actor = Depends(get_actor),
    service: WalletService = Depends(get_wallet_service),
):
    _ensure_own_wallet(actor, req.customer_id)
    return await service.recharge(req)


@router.post("/consume", response_model=WalletResult)
async def record_consumption(
    req: ConsumptionRequest,
    actor: Actor = Depends(require_admin),
    service: WalletService = Depends(get_wallet_service),
):
    return await service.consume(req)


@router.post("/settle", response_model=SettlementResult)
async def settle_appointment(
    req: SettlementRequest,
    actor: Actor = Depends(require_admin),
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    return await engine.settle_request(req)


@router.post("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    req: WalletRequest,
    actor: Actor = Depends(get_actor),
    service: WalletService = Depends(get_wallet_service),
):
    _ensure_own_wallet(actor, req.customer_id)
    try:
        items = await service.list_transactions(req.customer_id)
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return TransactionListResponse(total=len(items), items=items)
