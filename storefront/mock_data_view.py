"""Routes for browsing data held by the in-memory repositories."""
from __future__ import annotations

import html
import json
from typing import Any, Dict, Iterable, List, Mapping

from fastapi import APIRouter, HTTPException
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from storefront.config import get_settings
from storefront.dependencies.services import get_backend_client_cached
from storefront.schemas.common import Actor, ActorRole
from storefront.services import AppointmentLifecycleManager, SlotCapacityRegistry
from storefront.services.mock_store import get_mock_store

router = APIRouter()

_MOCK_ADMIN = Actor(actor_id="mock-data-view", role=ActorRole.ADMIN)


def _stringify(value: Any) -> str:
    """Return a JSON-friendly string representation for table cells."""
    if value is None:
        return ""
    if isinstance(value, (str, int, float, bool)):
        return str(value)
    return json.dumps(value, default=str)


def _rows(models: Iterable[BaseModel]) -> List[Dict[str, Any]]:
    return [model.model_dump(mode="json") for model in models]


def _build_table(title: str, rows: Iterable[Mapping[str, Any]]) -> str:
    row_list: List[Dict[str, Any]] = [dict(row) for row in rows]
    section_parts = [f"<section><h2>{html.escape(title)}</h2>"]
    if not row_list:
        section_parts.append("<p>No records found.</p></section>")
        return "".join(section_parts)

    columns: List[str] = []
    for row in row_list:
        for key in row.keys():
            if key not in columns:
                columns.append(key)

    header = "".join(f"<th>{html.escape(column)}</th>" for column in columns)
    body_rows: List[str] = []
    for row in row_list:
        cells = []
        for column in columns:
            value = _stringify(row.get(column))
            cells.append(f"<td>{html.escape(value)}</td>")
        body_rows.append("<tr>" + "".join(cells) + "</tr>")
    table_html = (
        "<table><thead><tr>"
        + header
        + "</tr></thead><tbody>"
        + "".join(body_rows)
        + "</tbody></table>"
    )
    section_parts.append(table_html)
    section_parts.append("</section>")
    return "".join(section_parts)


@router.get("/mock-data", response_class=HTMLResponse)
async def view_mock_data() -> HTMLResponse:
    """Render the shared in-memory store as HTML tables."""
    store = get_mock_store()
    registry = SlotCapacityRegistry(get_backend_client_cached())
    capacities = await registry.list_capacities()

    sections = [
        _build_table(
            f"Slot Capacities ({get_settings().slot_timezone})",
            ({"slot_label": label, "capacity": capacity} for label, capacity in capacities.items()),
        ),
        _build_table("Service Catalog", _rows(store.catalog.list())),
        _build_table("Appointments", _rows(await store.appointments.list())),
        _build_table("Wallets", _rows(await store.wallets.list_wallets())),
        _build_table("Transactions", _rows(await store.wallets.list_transactions())),
        _build_table("Notifications", _rows(await store.notifications.list())),
    ]

    sections_html = "".join(sections)
    html_content = f"""
    <html>
        <head>
            <title>Mock Data Overview</title>
            <style>
                body {{ font-family: Arial, sans-serif; margin: 2rem; }}
                h1 {{ text-align: center; }}
                section {{ margin-bottom: 2rem; }}
                table {{ border-collapse: collapse; width: 100%; }}
                th, td {{ border: 1px solid #ccc; padding: 0.5rem; text-align: left; }}
                th {{ background-color: #f0f0f0; }}
                tbody tr:nth-child(even) {{ background-color: #fafafa; }}
            </style>
        </head>
        <body>
            <h1>Mock Data Overview</h1>
            {sections_html}
        </body>
    </html>
    """

    return HTMLResponse(content=html_content)


@router.delete("/mock-data/{collection}/{record_id}")
async def delete_mock_record(collection: str, record_id: str) -> Dict[str, str]:
    """Remove a record from one of the in-memory repositories."""

    store = get_mock_store()
    normalized = collection.strip().lower()

    if normalized in {"appointment", "appointments"}:
        manager = AppointmentLifecycleManager(get_backend_client_cached())
        result = await manager.delete(record_id, _MOCK_ADMIN)
        if not result.ok:
            raise HTTPException(status_code=404, detail="Record not found")
        return {"status": "deleted", "collection": "appointments", "record_id": record_id}

    if normalized in {"notification", "notifications"}:
        if not await store.notifications.delete(record_id):
            raise HTTPException(status_code=404, detail="Record not found")
        return {"status": "deleted", "collection": "notifications", "record_id": record_id}

    raise HTTPException(status_code=404, detail="Unsupported mock data collection")
