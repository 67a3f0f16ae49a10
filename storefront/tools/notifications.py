from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from storefront.dependencies.services import get_actor, get_notification_inbox
from storefront.schemas.common import Actor
from storefront.schemas.notification import NotificationListResponse
from storefront.services.exceptions import ServiceError
from storefront.services.notifications import NotificationInbox

router = APIRouter()


class NotificationListRequest(BaseModel):
    customer_id: Optional[str] = None


@router.post("/list", response_model=NotificationListResponse)
async def list_notifications(
    req: NotificationListRequest,
    actor: Actor = Depends(get_actor),
    inbox: NotificationInbox = Depends(get_notification_inbox),
):
    customer_id = req.customer_id if actor.is_admin else actor.actor_id
    try:
        items = await inbox.list(customer_id)
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return NotificationListResponse(total=len(items), items=items)
