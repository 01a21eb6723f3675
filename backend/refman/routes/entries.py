"""
RefMan Backend — Entry Route Handlers (Relational Backend)
============================================================

What:  CRUD and search over /api/entries, plus the /api/dump shortcut.
How:   Thin handlers: parse the request, call EntryService, pick the status.
       Each handler runs inside the request-scoped unit of work provided by
       get_db_session, except batch creation, which opens one unit of work
       per submitted entry from the session factory.

Status codes for POST /api/entries:
    201  every submitted entry was created
    207  some entries were created, the rest are listed in `failures`
    400  nothing was created
"""

import logging
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Body, Depends, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from refman.database import get_db_session, get_session_factory
from refman.exceptions import ValidationError
from refman.schemas.entry import BatchCreateResponse, EntryPayload, ErrorResponse
from refman.services.entry_service import EntryService, get_entry_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Entries"])


@router.get(
    "/entries",
    summary="Dump the collection, or fetch entries by id",
    description="Without `id`, returns every entry. With one or more `id` values, returns those entries; unknown ids are skipped.",
)
async def list_entries(
    entry_ids: Optional[List[int]] = Query(default=None, alias="id", description="Entry ids to fetch"),
    db: AsyncSession = Depends(get_db_session),
    service: EntryService = Depends(get_entry_service),
) -> List[Dict[str, Any]]:
    if entry_ids:
        return await service.get_entries(db, entry_ids)
    return await service.dump(db)


@router.post(
    "/entries",
    response_model=BatchCreateResponse,
    status_code=201,
    responses={
        207: {"description": "Some entries were created", "model": BatchCreateResponse},
        400: {"description": "No entry was created", "model": BatchCreateResponse},
    },
    summary="Create one entry or a batch of entries",
)
async def create_entries(
    payload: Union[List[EntryPayload], EntryPayload] = Body(...),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    service: EntryService = Depends(get_entry_service),
):
    payloads = payload if isinstance(payload, list) else [payload]
    if not payloads:
        raise ValidationError(message="no entries submitted")

    result = await service.create_entries(session_factory, [p.to_record() for p in payloads])

    if not result.failures:
        status_code = 201
    elif result.ids:
        status_code = 207
    else:
        status_code = 400
    logger.info(
        "Batch of %d entries: %d created, %d failed",
        len(payloads), len(result.ids), len(result.failures),
    )
    return JSONResponse(status_code=status_code, content=result.model_dump())


@router.get("/entries/heads", summary="Id and head fields of every entry")
async def list_heads(
    db: AsyncSession = Depends(get_db_session),
    service: EntryService = Depends(get_entry_service),
) -> List[Dict[str, Any]]:
    return await service.list_heads(db)


@router.get(
    "/entries/{entry_id}",
    responses={404: {"description": "Entry not found", "model": ErrorResponse}},
    summary="Get one entry",
)
async def get_entry(
    entry_id: int,
    db: AsyncSession = Depends(get_db_session),
    service: EntryService = Depends(get_entry_service),
) -> Dict[str, Any]:
    return await service.get_entry(db, entry_id)


@router.put(
    "/entries/{entry_id}",
    responses={404: {"description": "Entry not found", "model": ErrorResponse}},
    summary="Replace an entry",
    description="Head fields not sent are cleared, details are replaced and the keyword set becomes exactly the one sent.",
)
async def overwrite_entry(
    entry_id: int,
    payload: EntryPayload,
    db: AsyncSession = Depends(get_db_session),
    service: EntryService = Depends(get_entry_service),
) -> Dict[str, Any]:
    return await service.overwrite_entry(db, entry_id, payload.to_record())


@router.patch(
    "/entries/{entry_id}",
    responses={404: {"description": "Entry not found", "model": ErrorResponse}},
    summary="Partially update an entry",
    description="Only sent fields change. Detail keys are merged (null deletes a key); sent keywords are added.",
)
async def patch_entry(
    entry_id: int,
    payload: EntryPayload,
    db: AsyncSession = Depends(get_db_session),
    service: EntryService = Depends(get_entry_service),
) -> Dict[str, Any]:
    return await service.patch_entry(db, entry_id, payload.to_record())


@router.delete(
    "/entries/{entry_id}",
    status_code=204,
    responses={404: {"description": "Entry not found", "model": ErrorResponse}},
    summary="Delete an entry and its keyword associations",
)
async def delete_entry(
    entry_id: int,
    db: AsyncSession = Depends(get_db_session),
    service: EntryService = Depends(get_entry_service),
) -> Response:
    await service.delete_entry(db, entry_id)
    return Response(status_code=204)


@router.get("/dump", summary="Every entry, keywords included")
async def dump(
    db: AsyncSession = Depends(get_db_session),
    service: EntryService = Depends(get_entry_service),
) -> List[Dict[str, Any]]:
    return await service.dump(db)


@router.get(
    "/search",
    responses={400: {"description": "No search criterion given", "model": ErrorResponse}},
    summary="Find entries by keyword, author/publisher or title",
    description="Criteria are OR-ed; each entry appears once.",
)
async def search(
    keyword: Optional[List[str]] = Query(default=None, description="Keyword(s) to match exactly"),
    author: Optional[str] = Query(default=None, description="Substring of the author or publisher"),
    title: Optional[str] = Query(default=None, description="Substring of the title"),
    db: AsyncSession = Depends(get_db_session),
    service: EntryService = Depends(get_entry_service),
) -> List[Dict[str, Any]]:
    ids = await service.search(db, keywords=keyword or [], author=author, title=title)
    if not ids:
        return []
    return await service.get_entries(db, ids)
