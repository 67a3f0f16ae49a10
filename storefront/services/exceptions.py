from decimal import Decimal


class ServiceError(Exception):
    """Base exception for service layer failures."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class DownstreamServiceError(ServiceError):
    """Raised when an external service returns an error response."""

    def __init__(self, message: str, status_code: int | None = None, *, cause: Exception | None = None):
        super().__init__(message, cause=cause)
        self.status_code = status_code


class WalletNotFoundError(ServiceError):
    """Raised by a wallet ledger when the customer has no wallet."""

    def __init__(self, customer_id: str):
        super().__init__(f"No wallet found for customer '{customer_id}'")
        self.customer_id = customer_id


class InsufficientBalanceError(ServiceError):
    """Raised by a wallet ledger when a funded debit exceeds the balance."""

    def __init__(self, customer_id: str, required: Decimal, available: Decimal):
        super().__init__(
            f"Insufficient balance (required {required}, available {available})"
        )
        self.customer_id = customer_id
        self.required = required
        self.available = available
