# storefront/health.py
from fastapi import APIRouter

from storefront.services.events import get_change_feed

router = APIRouter()


@router.get("/mcp/info")
def mcp_info():
    return {"status": "ok", "transport": "streamable-http", "path": "/mcp"}


@router.get("/health")
def health():
    return {"ok": True, "change_subscribers": get_change_feed().subscriber_count}
