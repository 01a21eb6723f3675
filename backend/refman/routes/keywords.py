"""
RefMan Backend — Keyword Route Handlers
=========================================

What:  The keyword vocabulary (/api/keywords) and per-entry keyword sets
       (/api/keywords/{entry_id}).
How:   Keywords travel as repeated `keyword` query parameters,
       e.g. PATCH /api/keywords/7?keyword=python&keyword=async

Verb semantics on /api/keywords/{entry_id}:
    PATCH   add the given keywords (201 when something was added, 204 when not)
    PUT     make the given keywords the entry's exact keyword set
    DELETE  remove the given keywords, or every keyword when none is given
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from refman.database import get_db_session
from refman.schemas.entry import ErrorResponse, KeywordInsertResponse, RenameResponse
from refman.services.entry_service import EntryService, get_entry_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/keywords", tags=["Keywords"])


@router.get("", summary="Every distinct keyword in use")
async def list_keywords(
    db: AsyncSession = Depends(get_db_session),
    service: EntryService = Depends(get_entry_service),
) -> List[str]:
    return await service.list_keywords(db)


@router.delete(
    "/prune",
    status_code=204,
    summary="Remove keyword associations whose entry no longer exists",
)
async def prune_keywords(
    db: AsyncSession = Depends(get_db_session),
    service: EntryService = Depends(get_entry_service),
) -> Response:
    pruned = await service.prune_keywords(db)
    logger.info("Pruned %d orphaned keyword associations", pruned)
    return Response(status_code=204)


@router.patch(
    "/rename",
    response_model=RenameResponse,
    responses={
        204: {"description": "No association needed an in-place update"},
        400: {"description": "Missing or identical names", "model": ErrorResponse},
    },
    summary="Rename a keyword across every entry",
    description=(
        "Entries that already carry the new name lose the old one; all others "
        "have it rewritten. `updated` counts the rewritten associations only."
    ),
)
async def rename_keyword(
    old: Optional[str] = Query(default=None, alias="from"),
    new: Optional[str] = Query(default=None, alias="to"),
    db: AsyncSession = Depends(get_db_session),
    service: EntryService = Depends(get_entry_service),
):
    updated = await service.rename_keyword(db, old, new)
    if not updated:
        return Response(status_code=204)
    return RenameResponse(updated=updated)


@router.get(
    "/{entry_id}",
    responses={404: {"description": "Entry not found", "model": ErrorResponse}},
    summary="Keywords of one entry",
)
async def keywords_for_entry(
    entry_id: int,
    db: AsyncSession = Depends(get_db_session),
    service: EntryService = Depends(get_entry_service),
) -> List[str]:
    return await service.keywords_for_entry(db, entry_id)


@router.patch(
    "/{entry_id}",
    status_code=201,
    response_model=KeywordInsertResponse,
    responses={
        204: {"description": "The entry already carried every keyword"},
        400: {"description": "No usable keyword given", "model": ErrorResponse},
        404: {"description": "Entry not found", "model": ErrorResponse},
    },
    summary="Add keywords to an entry",
)
async def add_keywords(
    entry_id: int,
    keyword: Optional[List[str]] = Query(default=None),
    db: AsyncSession = Depends(get_db_session),
    service: EntryService = Depends(get_entry_service),
):
    inserted = await service.add_keywords(db, entry_id, keyword or [])
    if not inserted:
        return Response(status_code=204)
    return JSONResponse(
        status_code=201,
        content=KeywordInsertResponse(entry_id=entry_id, inserted=inserted).model_dump(),
    )


@router.put(
    "/{entry_id}",
    responses={404: {"description": "Entry not found", "model": ErrorResponse}},
    summary="Replace the keyword set of an entry",
)
async def replace_keywords(
    entry_id: int,
    keyword: Optional[List[str]] = Query(default=None),
    db: AsyncSession = Depends(get_db_session),
    service: EntryService = Depends(get_entry_service),
) -> List[str]:
    return await service.replace_keywords(db, entry_id, keyword or [])


@router.delete(
    "/{entry_id}",
    status_code=204,
    responses={400: {"description": "Blank keyword given", "model": ErrorResponse}},
    summary="Remove some or all keywords from an entry",
)
async def remove_keywords(
    entry_id: int,
    keyword: Optional[List[str]] = Query(default=None),
    db: AsyncSession = Depends(get_db_session),
    service: EntryService = Depends(get_entry_service),
) -> Response:
    await service.remove_keywords(db, entry_id, keyword)
    return Response(status_code=204)
