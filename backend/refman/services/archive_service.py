"""
RefMan Backend — Archive Export
=================================

What:  Packs the flat-file collection into a gzip-compressed tar archive.
Why:   One download gives a complete, restorable backup of every item file.
How:   tarfile into an in-memory buffer, run in a worker thread so the
       compression does not block the event loop.

Only the `json` storage backend has a directory of records to archive; the
relational backend is backed up with the database's own tooling.
"""

import asyncio
import io
import logging
import tarfile
from datetime import datetime, timezone
from typing import Optional

from refman.config import settings
from refman.exceptions import FileStorageError, NotFoundError, ValidationError
from refman.services.json_store import JsonItemStore

logger = logging.getLogger(__name__)


def archive_filename() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"refman-items-{stamp}.tar.gz"


def _pack(store: JsonItemStore) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for path in sorted(store.root.glob("*.json")):
            tar.add(path, arcname=path.name)
    return buffer.getvalue()


async def build_archive(store: JsonItemStore, storage_backend: Optional[str] = None) -> bytes:
    """
    Build the archive for the configured backend.

    Raises:
        ValidationError:  storage backend is not `json`
        NotFoundError:    the storage root does not exist
        FileStorageError: reading an item file failed
    """
    backend = storage_backend or settings.storage_backend
    if backend != "json":
        raise ValidationError(
            message=f"Archive export is only available for the json storage backend (configured: {backend})",
            context={"storage_backend": backend},
        )
    if not store.root.is_dir():
        raise NotFoundError(resource="item storage")

    try:
        data = await asyncio.to_thread(_pack, store)
    except OSError as e:
        raise FileStorageError(context={"root": str(store.root), "os_error": str(e)})

    logger.info("Built archive of %s (%d bytes)", store.root, len(data))
    return data
