import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from storefront.clients.backend import BackendClient
from storefront.schemas.billing import RechargeRequest
from storefront.schemas.common import FailureCode
from storefront.services.exceptions import (
    DownstreamServiceError,
    InsufficientBalanceError,
    ServiceError,
    WalletNotFoundError,
)
from storefront.services.ledger import HttpWalletLedger, build_ledger
from storefront.services.notifications import (
    HttpNotificationSink,
    NotificationDispatcher,
    NotificationInbox,
    build_dispatcher,
)
from storefront.services.wallet import WalletService

BASE_URL = "http://ledger.test"

TRANSACTION = {
    "id": "TXN-00001",
    "customer_id": "CUST-A",
    "service": "Counter recharge",
    "amount": "10",
    "created_at": "2026-10-19T01:00:00Z",
}


class RecordingBackend:
    """httpx handler that records requests and replies from a route table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"detail": "not found"})
        status, body = self.routes[key]
        return httpx.Response(status, json=body)


def _client(handler, token=None) -> BackendClient:
    return BackendClient(
        BASE_URL,
        use_mock_data=False,
        token=token,
        transport=httpx.MockTransport(handler),
    )


def test_live_client_selects_http_collaborators() -> None:
    client = _client(RecordingBackend({}))

    assert client.use_mock_data is False
    assert isinstance(build_ledger(client), HttpWalletLedger)
    assert BackendClient(None, use_mock_data=False).use_mock_data is True


def test_get_wallet_reads_backend_and_maps_missing_to_none() -> None:
    backend = RecordingBackend(
        {("GET", "/wallets/CUST-A"): (200, {"customer_id": "CUST-A", "balance": "80.50", "points": 12})}
    )
    client = _client(backend, token="secret")
    ledger = HttpWalletLedger(client)

    wallet = asyncio.run(ledger.get_wallet("CUST-A"))
    missing = asyncio.run(ledger.get_wallet("CUST-B"))

    assert wallet.balance == Decimal("80.50")
    assert wallet.points == 12
    assert missing is None
    assert backend.requests[0].headers["Authorization"] == "Bearer secret"


def test_debit_conflict_raises_insufficient_balance() -> None:
    backend = RecordingBackend(
        {("POST", "/wallets/CUST-A/debit"): (409, {"required": "50", "available": "12.5"})}
    )
    ledger = HttpWalletLedger(_client(backend))

    with pytest.raises(InsufficientBalanceError) as excinfo:
        asyncio.run(ledger.debit("CUST-A", Decimal("50"), "Appointment service: Beard Trim"))

    assert excinfo.value.required == Decimal("50")
    assert excinfo.value.available == Decimal("12.5")
    payload = json.loads(backend.requests[0].content)
    assert payload == {"amount": "50", "service": "Appointment service: Beard Trim", "require_funds": True}


def test_credit_for_unknown_wallet_raises_not_found() -> None:
    ledger = HttpWalletLedger(_client(RecordingBackend({})))

    with pytest.raises(WalletNotFoundError):
        asyncio.run(ledger.credit("CUST-GHOST", Decimal("10"), 10, "Counter recharge"))


def test_list_transactions_filters_by_customer() -> None:
    backend = RecordingBackend({("GET", "/transactions"): (200, {"items": [TRANSACTION]})})
    ledger = HttpWalletLedger(_client(backend))

    items = asyncio.run(ledger.list_transactions("CUST-A"))

    assert [item.id for item in items] == ["TXN-00001"]
    assert backend.requests[0].url.params["customer_id"] == "CUST-A"


def test_server_errors_surface_as_downstream_errors() -> None:
    backend = RecordingBackend({("GET", "/wallets/CUST-A"): (503, {"detail": "maintenance"})})
    ledger = HttpWalletLedger(_client(backend))

    with pytest.raises(DownstreamServiceError) as excinfo:
        asyncio.run(ledger.get_wallet("CUST-A"))

    assert excinfo.value.status_code == 503


def test_post_and_get_share_error_mapping() -> None:
    backend = RecordingBackend({("POST", "/wallets/CUST-A/open"): (500, {"detail": "boom"})})
    client = _client(backend)

    with pytest.raises(DownstreamServiceError) as posted:
        asyncio.run(client.post("/wallets/CUST-A/open", {}))
    with pytest.raises(DownstreamServiceError) as fetched:
        asyncio.run(client.get("/wallets/CUST-A", {"verbose": "1"}))

    assert posted.value.status_code == 500
    assert fetched.value.status_code == 404
    assert backend.requests[1].url.params["verbose"] == "1"


def test_mock_client_refuses_real_requests() -> None:
    client = BackendClient(BASE_URL, use_mock_data=True)

    with pytest.raises(RuntimeError):
        asyncio.run(client.get("/wallets/CUST-A"))


def test_unreachable_ledger_maps_to_unknown() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    service = WalletService(client, dispatcher=NotificationDispatcher(HttpNotificationSink(client)))

    result = asyncio.run(service.get_wallet("CUST-A"))

    assert result.failure == FailureCode.UNKNOWN


def test_recharge_notifies_in_background() -> None:
    backend = RecordingBackend(
        {
            ("POST", "/wallets/CUST-A/credit"): (
                200,
                {"wallet": {"customer_id": "CUST-A", "balance": "10", "points": 10}, "transaction": TRANSACTION},
            ),
            ("POST", "/notifications"): (201, {"id": 1}),
        }
    )
    client = _client(backend)
    dispatcher = build_dispatcher(client)
    service = WalletService(client, dispatcher=dispatcher)

    async def run():
        result = await service.recharge(RechargeRequest(customer_id="CUST-A", amount=Decimal("10")))
        await dispatcher.drain()
        return result

    result = asyncio.run(run())

    assert result.ok
    assert result.wallet.points == 10
    sent = [request for request in backend.requests if request.url.path == "/notifications"]
    assert len(sent) == 1
    notice = json.loads(sent[0].content)
    assert notice["customer_id"] == "CUST-A"
    assert notice["title"] == "Recharge successful"
    assert notice["type"] == "success"


def test_notification_failure_does_not_fail_the_operation() -> None:
    backend = RecordingBackend(
        {
            ("POST", "/wallets/CUST-A/credit"): (
                200,
                {"wallet": {"customer_id": "CUST-A", "balance": "10", "points": 10}, "transaction": TRANSACTION},
            ),
            ("POST", "/notifications"): (500, {"detail": "boom"}),
        }
    )
    client = _client(backend)
    dispatcher = NotificationDispatcher(HttpNotificationSink(client))
    service = WalletService(client, dispatcher=dispatcher)

    result = asyncio.run(service.recharge(RechargeRequest(customer_id="CUST-A", amount=Decimal("10"))))

    assert result.ok


def test_notification_inbox_is_unavailable_in_live_mode() -> None:
    inbox = NotificationInbox(_client(RecordingBackend({})))

    with pytest.raises(ServiceError):
        asyncio.run(inbox.list("CUST-A"))
