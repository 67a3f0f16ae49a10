from __future__ import annotations

import logging
import math
from decimal import Decimal
from typing import List

from storefront.clients.backend import BackendClient
from storefront.config import Settings, get_settings
from storefront.schemas.billing import (
    ConsumptionRequest,
    RechargeRequest,
    Transaction,
    Wallet,
    WalletResult,
)
from storefront.schemas.common import RETRY_HINT, FailureCode
from storefront.services.exceptions import (
    InsufficientBalanceError,
    ServiceError,
    WalletNotFoundError,
)
from storefront.services.ledger import WalletLedger, build_ledger
from storefront.services.notifications import NotificationDispatcher, build_dispatcher

logger = logging.getLogger(__name__)

RECHARGE_SERVICE = "Counter recharge"


def points_for(amount: Decimal) -> int:
    """Loyalty points earned for a recharge: one per whole currency unit."""

    return math.floor(amount)


class WalletService:
    def __init__(
        self,
        client: BackendClient,
        *,
        ledger: WalletLedger | None = None,
        dispatcher: NotificationDispatcher | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._client = client
        self._ledger = ledger or build_ledger(client)
        self._dispatcher = dispatcher or build_dispatcher(client)
        self._settings = settings or get_settings()

    async def get_wallet(self, customer_id: str) -> WalletResult:
        try:
            wallet = await self._ledger.get_wallet(customer_id)
        except ServiceError as exc:
            logger.warning("Wallet lookup for %s failed: %s", customer_id, exc)
            return WalletResult(status="failed", failure=FailureCode.UNKNOWN, message=RETRY_HINT)
        if wallet is None:
            return WalletResult(
                status="failed",
                failure=FailureCode.NOT_FOUND,
                message=f"No wallet found for customer {customer_id}.",
            )
        return WalletResult(wallet=wallet)

    async def open_wallet(self, customer_id: str) -> Wallet:
        return await self._ledger.open_wallet(customer_id)

    async def recharge(self, request: RechargeRequest) -> WalletResult:
        logger.info("Recharging %s for customer %s", request.amount, request.customer_id)
        try:
            wallet, transaction = await self._ledger.credit(
                request.customer_id,
                request.amount,
                points_for(request.amount),
                RECHARGE_SERVICE,
            )
        except WalletNotFoundError as exc:
            return WalletResult(status="failed", failure=FailureCode.NOT_FOUND, message=str(exc))
        except ServiceError as exc:
            logger.warning("Recharge for %s failed: %s", request.customer_id, exc)
            return WalletResult(status="failed", failure=FailureCode.UNKNOWN, message=RETRY_HINT)

        await self._dispatcher.dispatch(
            request.customer_id,
            "Recharge successful",
            f"Your account was recharged with {request.amount}. Current balance {wallet.balance}.",
            "success",
        )
        return WalletResult(wallet=wallet, transaction=transaction)

    async def consume(self, request: ConsumptionRequest) -> WalletResult:
        """Record an over-the-counter purchase against the customer's wallet.

        Whether the balance may go negative is governed by the
        ``enforce_consumption_balance`` setting.
        """

        require_funds = self._settings.enforce_consumption_balance
        logger.info(
            "Consumption of %s by %s for %s (require_funds=%s)",
            request.amount,
            request.customer_id,
            request.service,
            require_funds,
        )
        try:
            wallet, transaction = await self._ledger.debit(
                request.customer_id,
                request.amount,
                request.service,
                require_funds=require_funds,
            )
        except InsufficientBalanceError as exc:
            return WalletResult(
                status="failed",
                failure=FailureCode.INSUFFICIENT_BALANCE,
                message=f"Insufficient balance (requires {exc.required}, available {exc.available}).",
            )
        except WalletNotFoundError as exc:
            return WalletResult(status="failed", failure=FailureCode.NOT_FOUND, message=str(exc))
        except ServiceError as exc:
            logger.warning("Consumption for %s failed: %s", request.customer_id, exc)
            return WalletResult(status="failed", failure=FailureCode.UNKNOWN, message=RETRY_HINT)

        await self._dispatcher.dispatch(
            request.customer_id,
            "Purchase notice",
            f"You just spent {request.amount} on {request.service}.",
            "info",
        )
        return WalletResult(wallet=wallet, transaction=transaction)

    async def list_transactions(self, customer_id: str) -> List[Transaction]:
        return await self._ledger.list_transactions(customer_id)
