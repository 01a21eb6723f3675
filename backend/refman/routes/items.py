"""
RefMan Backend — Flat-File Item Route Handlers
================================================

What:  CRUD over the JSON-per-item store at /api/v0/items.
Why:   The flat-file backend keeps client-chosen string ids and stores each
       item verbatim; it predates the relational /api/entries surface and
       remains available alongside it.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, Response

from refman.schemas.entry import ErrorResponse, ItemWriteResponse
from refman.services.json_store import JsonItemStore, get_item_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v0/items", tags=["Items"])


@router.get("", summary="Every item, each with its id")
async def list_items(store: JsonItemStore = Depends(get_item_store)) -> List[Dict[str, Any]]:
    return await store.list_items()


@router.post(
    "",
    status_code=201,
    response_model=ItemWriteResponse,
    responses={
        400: {"description": "Missing or unusable id", "model": ErrorResponse},
        409: {"description": "An item with that id exists", "model": ErrorResponse},
    },
    summary="Create an item; the file name comes from its `id`",
)
async def create_item(
    payload: Dict[str, Any] = Body(...),
    store: JsonItemStore = Depends(get_item_store),
) -> ItemWriteResponse:
    item_id = await store.create_item(payload)
    return ItemWriteResponse(message="item created", id=item_id)


@router.get("/dump", summary="Raw contents of every item file")
async def dump_items(store: JsonItemStore = Depends(get_item_store)) -> List[Any]:
    return await store.dump()


# Without this, PUT/DELETE /dump would be routed to /{item_id}
@router.api_route(
    "/dump",
    methods=["POST", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
async def dump_method_not_allowed():
    raise HTTPException(status_code=405, detail="Method Not Allowed", headers={"Allow": "GET"})


@router.get(
    "/{item_id}",
    responses={404: {"description": "Item not found", "model": ErrorResponse}},
    summary="Get one item",
)
async def get_item(item_id: str, store: JsonItemStore = Depends(get_item_store)) -> Any:
    return await store.get_item(item_id)


@router.put(
    "/{item_id}",
    response_model=ItemWriteResponse,
    responses={
        400: {"description": "Body id does not match the path", "model": ErrorResponse},
        404: {"description": "Item not found", "model": ErrorResponse},
    },
    summary="Replace an item",
)
async def replace_item(
    item_id: str,
    payload: Dict[str, Any] = Body(...),
    store: JsonItemStore = Depends(get_item_store),
) -> ItemWriteResponse:
    await store.replace_item(item_id, payload)
    return ItemWriteResponse(message="item replaced", id=item_id)


@router.delete(
    "/{item_id}",
    status_code=204,
    responses={404: {"description": "Item not found", "model": ErrorResponse}},
    summary="Move an item to the trash",
)
async def delete_item(item_id: str, store: JsonItemStore = Depends(get_item_store)) -> Response:
    await store.delete_item(item_id)
    return Response(status_code=204)
