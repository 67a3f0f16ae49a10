"""Wallet ledger collaborators.

The ledger is authoritative for balances and is read on every call; nothing
in the core caches a wallet across operations.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, Tuple

from storefront.clients.backend import BackendClient
from storefront.schemas.billing import Transaction, Wallet
from storefront.services.exceptions import (
    DownstreamServiceError,
    InsufficientBalanceError,
    WalletNotFoundError,
)
from storefront.services.mock_store import get_mock_store

logger = logging.getLogger(__name__)


class WalletLedger(Protocol):
    async def get_wallet(self, customer_id: str) -> Optional[Wallet]: ...

    async def open_wallet(self, customer_id: str) -> Wallet: ...

    async def credit(
        self, customer_id: str, amount: Decimal, points: int, service: str
    ) -> Tuple[Wallet, Transaction]: ...

    async def debit(
        self,
        customer_id: str,
        amount: Decimal,
        service: str,
        *,
        require_funds: bool = True,
    ) -> Tuple[Wallet, Transaction]: ...

    async def list_transactions(self, customer_id: Optional[str] = None) -> List[Transaction]: ...


def _response_body(exc: DownstreamServiceError) -> Dict[str, Any]:
    response = getattr(exc.cause, "response", None)
    if response is None:
        return {}
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class HttpWalletLedger:
    """Wallet ledger backed by the hosted billing backend."""

    def __init__(self, client: BackendClient) -> None:
        self._client = client

    async def get_wallet(self, customer_id: str) -> Optional[Wallet]:
        try:
            data = await self._client.get(f"/wallets/{customer_id}")
        except DownstreamServiceError as exc:
            if exc.status_code == 404:
                return None
            raise
        return Wallet(**data)

    async def open_wallet(self, customer_id: str) -> Wallet:
        data = await self._client.post(f"/wallets/{customer_id}/open", {})
        return Wallet(**data)

    async def credit(
        self, customer_id: str, amount: Decimal, points: int, service: str
    ) -> Tuple[Wallet, Transaction]:
        payload = {"amount": str(amount), "points": points, "service": service}
        try:
            data = await self._client.post(f"/wallets/{customer_id}/credit", payload)
        except DownstreamServiceError as exc:
            if exc.status_code == 404:
                raise WalletNotFoundError(customer_id) from exc
            raise
        return Wallet(**data["wallet"]), Transaction(**data["transaction"])

    async def debit(
        self,
        customer_id: str,
        amount: Decimal,
        service: str,
        *,
        require_funds: bool = True,
    ) -> Tuple[Wallet, Transaction]:
        payload = {"amount": str(amount), "service": service, "require_funds": require_funds}
        try:
            data = await self._client.post(f"/wallets/{customer_id}/debit", payload)
        except DownstreamServiceError as exc:
            if exc.status_code == 404:
                raise WalletNotFoundError(customer_id) from exc
            if exc.status_code == 409:
                body = _response_body(exc)
                raise InsufficientBalanceError(
                    customer_id,
                    Decimal(str(body.get("required", amount))),
                    Decimal(str(body.get("available", "0"))),
                ) from exc
            raise
        return Wallet(**data["wallet"]), Transaction(**data["transaction"])

    async def list_transactions(self, customer_id: Optional[str] = None) -> List[Transaction]:
        params = {"customer_id": customer_id} if customer_id else None
        data = await self._client.get("/transactions", params)
        return [Transaction(**item) for item in data.get("items", [])]


def build_ledger(client: BackendClient) -> WalletLedger:
    if client.use_mock_data:
        return get_mock_store().wallets
    return HttpWalletLedger(client)
