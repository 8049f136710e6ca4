"""JSON API endpoints for savings boxes.

The caller's family id arrives already resolved in the X-Family-Id header;
token verification happens upstream. Decimal values are serialized as
strings.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse, Response

from savings.boxes.schemas import BoxCreate, BoxUpdate, Movement
from savings.boxes.service import BoxService
from savings.models import transaction_to_document

log = structlog.get_logger(__name__)

router = APIRouter()


def get_service(request: Request) -> BoxService:
    return request.app.state.box_service


def family_scope(x_family_id: str = Header(...)) -> str:
    """Bind the tenant id to the log context for the rest of the request."""
    structlog.contextvars.bind_contextvars(family_id=x_family_id)
    return x_family_id


@router.get("")
async def list_boxes(
    family_id: str = Depends(family_scope),
    service: BoxService = Depends(get_service),
) -> JSONResponse:
    views = await service.list_boxes(family_id)
    return JSONResponse(content=[view.to_dict() for view in views])


@router.post("")
async def create_box(
    payload: BoxCreate,
    family_id: str = Depends(family_scope),
    service: BoxService = Depends(get_service),
) -> JSONResponse:
    view = await service.create_box(family_id, payload)
    return JSONResponse(content=view.to_dict(), status_code=201)


@router.get("/market/cdi")
async def market_cdi(
    refresh: bool = False,
    service: BoxService = Depends(get_service),
) -> JSONResponse:
    snapshot = await service.market_rate(force_refresh=refresh)
    return JSONResponse(content=snapshot.to_dict())


@router.get("/{box_id}")
async def get_box(
    box_id: str,
    family_id: str = Depends(family_scope),
    service: BoxService = Depends(get_service),
) -> JSONResponse:
    view = await service.get_box(family_id, box_id)
    return JSONResponse(content=view.to_dict())


@router.get("/{box_id}/transactions")
async def list_transactions(
    box_id: str,
    family_id: str = Depends(family_scope),
    service: BoxService = Depends(get_service),
) -> JSONResponse:
    entries = await service.ledger(family_id, box_id)
    content: list[dict[str, Any]] = [transaction_to_document(e) for e in entries]
    return JSONResponse(content=content)


@router.post("/{box_id}/move")
async def move(
    box_id: str,
    movement: Movement,
    family_id: str = Depends(family_scope),
    service: BoxService = Depends(get_service),
) -> JSONResponse:
    view = await service.move(family_id, box_id, movement)
    return JSONResponse(content=view.to_dict())


@router.put("/{box_id}")
async def update_box(
    box_id: str,
    payload: BoxUpdate,
    family_id: str = Depends(family_scope),
    service: BoxService = Depends(get_service),
) -> JSONResponse:
    view = await service.update_box(family_id, box_id, payload)
    return JSONResponse(content=view.to_dict())


@router.delete("/{box_id}")
async def delete_box(
    box_id: str,
    family_id: str = Depends(family_scope),
    service: BoxService = Depends(get_service),
) -> Response:
    await service.delete_box(family_id, box_id)
    return Response(status_code=204)
