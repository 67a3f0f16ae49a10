from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from storefront.clients.backend import BackendClient
from storefront.schemas.appointment import AppointmentStatus
from storefront.schemas.billing import SettlementRequest, SettlementResult
from storefront.schemas.common import RETRY_HINT, FailureCode
from storefront.services.exceptions import (
    InsufficientBalanceError,
    ServiceError,
    WalletNotFoundError,
)
from storefront.services.ledger import WalletLedger, build_ledger
from storefront.services.lifecycle import AppointmentLifecycleManager
from storefront.services.mock_store import (
    AppointmentRepository,
    ServiceCatalogRepository,
    get_mock_store,
)
from storefront.services.notifications import NotificationDispatcher, build_dispatcher

logger = logging.getLogger(__name__)


def _insufficient(appointment_id: str, required: Decimal, available: Decimal) -> SettlementResult:
    return SettlementResult(
        status="failed",
        failure=FailureCode.INSUFFICIENT_BALANCE,
        appointment_id=appointment_id,
        current_status=AppointmentStatus.CONFIRMED.value,
        required=required,
        available=available,
        message=f"Insufficient balance (requires {required}, available {available}).",
    )


class SettlementEngine:
    """Charge a confirmed appointment to the customer's wallet and complete it.

    The appointment is claimed (confirmed -> completed) before the wallet is
    debited and handed back if the debit fails, so an appointment is charged
    at most once and a failed settlement leaves no partial effects.
    """

    def __init__(
        self,
        client: BackendClient,
        *,
        lifecycle: AppointmentLifecycleManager | None = None,
        repository: AppointmentRepository | None = None,
        ledger: WalletLedger | None = None,
        catalog: ServiceCatalogRepository | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self._client = client
        self._repository = repository or get_mock_store().appointments
        self._ledger = ledger or build_ledger(client)
        self._catalog = catalog or get_mock_store().catalog
        self._dispatcher = dispatcher or build_dispatcher(client)
        self._lifecycle = lifecycle or AppointmentLifecycleManager(
            client, repository=self._repository, dispatcher=self._dispatcher
        )

    async def settle_request(self, request: SettlementRequest) -> SettlementResult:
        return await self.settle(
            request.appointment_id,
            request.customer_id,
            request.service_name,
            request.amount,
        )

    async def settle(
        self,
        appointment_id: str,
        customer_id: Optional[str] = None,
        service_name: Optional[str] = None,
        amount: Optional[Decimal] = None,
    ) -> SettlementResult:
        logger.info("Settling appointment %s for %s", appointment_id, amount)
        appointment = await self._repository.get(appointment_id)
        if appointment is None or (customer_id and appointment.customer_id != customer_id):
            return SettlementResult(
                status="failed",
                failure=FailureCode.NOT_FOUND,
                appointment_id=appointment_id,
                message=f"Appointment {appointment_id} was not found for this customer.",
            )
        if appointment.status != AppointmentStatus.CONFIRMED:
            return SettlementResult(
                status="failed",
                failure=FailureCode.INVALID_TRANSITION,
                appointment_id=appointment_id,
                current_status=appointment.status.value,
                message=f"Only confirmed appointments can be settled; this one is {appointment.status.value}.",
            )

        customer_id = appointment.customer_id
        service_name = service_name or appointment.service_name
        if amount is None:
            offering = self._catalog.get(service_name)
            if offering is None:
                return SettlementResult(
                    status="failed",
                    failure=FailureCode.NOT_FOUND,
                    appointment_id=appointment_id,
                    current_status=appointment.status.value,
                    message=f"No price on file for '{service_name}'; provide an amount.",
                )
            amount = offering.price

        try:
            wallet = await self._ledger.get_wallet(customer_id)
        except ServiceError as exc:
            logger.warning("Wallet lookup for %s failed: %s", customer_id, exc)
            return SettlementResult(
                status="failed",
                failure=FailureCode.UNKNOWN,
                appointment_id=appointment_id,
                message=RETRY_HINT,
            )
        if wallet is None:
            return SettlementResult(
                status="failed",
                failure=FailureCode.NOT_FOUND,
                appointment_id=appointment_id,
                current_status=appointment.status.value,
                message=f"No wallet found for customer {customer_id}.",
            )
        if wallet.balance < amount:
            return _insufficient(appointment_id, amount, wallet.balance)

        claimed, current = await self._lifecycle.begin_settlement(appointment_id)
        if claimed is None:
            return SettlementResult(
                status="failed",
                failure=FailureCode.INVALID_TRANSITION if current else FailureCode.NOT_FOUND,
                appointment_id=appointment_id,
                current_status=current.status.value if current else None,
                message="The appointment changed while it was being settled.",
            )

        try:
            wallet, transaction = await self._ledger.debit(
                customer_id, amount, f"Appointment service: {service_name}", require_funds=True
            )
        except InsufficientBalanceError as exc:
            await self._lifecycle.abort_settlement(appointment_id)
            return _insufficient(appointment_id, exc.required, exc.available)
        except WalletNotFoundError:
            await self._lifecycle.abort_settlement(appointment_id)
            return SettlementResult(
                status="failed",
                failure=FailureCode.NOT_FOUND,
                appointment_id=appointment_id,
                current_status=AppointmentStatus.CONFIRMED.value,
                message=f"No wallet found for customer {customer_id}.",
            )
        except ServiceError as exc:
            logger.warning("Debit for %s failed: %s", appointment_id, exc)
            await self._lifecycle.abort_settlement(appointment_id)
            return SettlementResult(
                status="failed",
                failure=FailureCode.UNKNOWN,
                appointment_id=appointment_id,
                message=RETRY_HINT,
            )

        self._lifecycle.finish_settlement(appointment, claimed)
        await self._dispatcher.dispatch(
            customer_id,
            "Settlement complete",
            f"{amount} was charged for {service_name}. Remaining balance {wallet.balance}.",
            "success",
        )
        return SettlementResult(
            appointment_id=appointment_id,
            current_status=claimed.status.value,
            transaction=transaction,
            wallet=wallet,
            message=f"Settled; {amount} deducted.",
        )
