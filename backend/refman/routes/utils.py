"""
RefMan Backend — Utility Route Handlers
=========================================

What:  Helpers around the collection that are not CRUD:
       GET /api/utils/metadata  scrape a web page into entry fields
       GET /api/utils/archive   download the flat-file store as .tar.gz
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Response

from refman.schemas.entry import ErrorResponse
from refman.services.archive_service import archive_filename, build_archive
from refman.services.json_store import JsonItemStore, get_item_store
from refman.services.metadata_service import MetadataService, get_metadata_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/utils", tags=["Utilities"])


@router.get(
    "/metadata",
    responses={
        400: {"description": "Missing or invalid URL", "model": ErrorResponse},
        502: {"description": "The page could not be fetched", "model": ErrorResponse},
    },
    summary="Scrape bibliographic metadata from a web page",
    description=(
        "Returns entry-shaped fields (title, author, publisher, date, keywords, ...) "
        "read from the page's meta tags. `fields` restricts the result to a "
        "comma-separated list of keys."
    ),
)
async def scrape_metadata(
    url: Optional[str] = Query(default=None, description="Absolute http(s) URL"),
    fields: Optional[str] = Query(default=None, description="e.g. title,author,date"),
    service: MetadataService = Depends(get_metadata_service),
) -> Dict[str, Any]:
    return await service.scrape(url, fields)


@router.get(
    "/archive",
    responses={
        200: {"content": {"application/gzip": {}}, "description": "tar.gz of every item file"},
        400: {"description": "Storage backend is not json", "model": ErrorResponse},
    },
    summary="Download the flat-file store as a tar.gz archive",
)
async def download_archive(store: JsonItemStore = Depends(get_item_store)) -> Response:
    data = await build_archive(store)
    return Response(
        content=data,
        media_type="application/gzip",
        headers={"Content-Disposition": f'attachment; filename="{archive_filename()}"'},
    )
