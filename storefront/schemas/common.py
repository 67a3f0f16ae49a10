from enum import Enum
from typing import Optional

from pydantic import BaseModel


class FailureCode(str, Enum):
    SLOT_CLOSED = "SLOT_CLOSED"
    SLOT_FULL = "SLOT_FULL"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    NOT_FOUND = "NOT_FOUND"
    UNKNOWN = "UNKNOWN"


class ActorRole(str, Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"


class Actor(BaseModel):
    actor_id: str
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


class OperationResult(BaseModel):
    status: str = "success"  # success | failed
    failure: Optional[FailureCode] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


RETRY_HINT = "Something went wrong on our side. Please try again."
