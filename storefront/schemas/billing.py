from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from storefront.schemas.common import OperationResult


class Wallet(BaseModel):
    customer_id: str
    balance: Decimal = Decimal("0")
    points: int = 0
    # Spend history, advanced by every consumption and settlement debit.
    total_spent: Decimal = Decimal("0")
    visit_count: int = 0
    last_visit: Optional[datetime] = None


class Transaction(BaseModel):
    id: str
    customer_id: str
    service: str
    amount: Decimal
    created_at: datetime


class WalletRequest(BaseModel):
    customer_id: str


class RechargeRequest(BaseModel):
    customer_id: str
    amount: Decimal = Field(..., gt=0)


class ConsumptionRequest(BaseModel):
    customer_id: str
    service: str
    amount: Decimal = Field(..., gt=0)


class WalletResult(OperationResult):
    wallet: Optional[Wallet] = None
    transaction: Optional[Transaction] = None


class TransactionListResponse(BaseModel):
    total: int
    items: List[Transaction]


class SettlementRequest(BaseModel):
    appointment_id: str
    customer_id: Optional[str] = None
    service_name: Optional[str] = None
    amount: Optional[Decimal] = Field(default=None, ge=0)


class SettlementResult(OperationResult):
    appointment_id: Optional[str] = None
    current_status: Optional[str] = None
    required: Optional[Decimal] = None
    available: Optional[Decimal] = None
    transaction: Optional[Transaction] = None
    wallet: Optional[Wallet] = None


class ServiceOffering(BaseModel):
    name: str
    price: Decimal
