"""
RefMan Backend — Flat-File JSON Item Store
============================================

What:  The flat-file storage backend: one `<id>.json` file per item.
Why:   The collection started life as a directory of JSON files, and it is
       still the simplest format to hand-edit, version and archive.
How:   Async file I/O with aiofiles. The item id is the file stem, chosen by
       the client (unlike the relational backend, which assigns ids).
Who:   Called by routes/items.py, the archive export and the seeder.

Directory Structure:
    storage/json/
    ├── items/
    │   ├── eloquent-javascript.json
    │   └── sicp.json
    └── trash/
        └── sicp-1700000000000.json      ← deleted items, suffixed with epoch ms

Security:
    Ids become file names, so they are validated before touching the disk:
    no path separators, no leading dot, nothing that would resolve outside
    the storage root.
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import aiofiles
import aiofiles.os

from refman.config import settings
from refman.exceptions import ConflictError, FileStorageError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ITEM_SUFFIX = ".json"


class JsonItemStore:
    """
    CRUD over a directory of JSON files.

    Lifecycle of an item:
        1. create_item() writes <id>.json exclusively (existing id → 409)
        2. replace_item() rewrites it (body id must match path id)
        3. delete_item() moves it to the trash directory with a timestamp suffix
    """

    def __init__(self, root: Optional[str] = None, trash: Optional[str] = None):
        self.root = Path(root or settings.json_storage_root).resolve()
        self.trash = Path(trash or settings.json_trash_root).resolve()

    def ensure_directories(self) -> None:
        """Idempotent; called at startup."""
        self.root.mkdir(parents=True, exist_ok=True)
        self.trash.mkdir(parents=True, exist_ok=True)

    def item_path(self, item_id: Any) -> Path:
        """
        Resolve an item id to its file path.

        Raises:
            ValidationError: id is not a usable file stem
        """
        if not isinstance(item_id, str) or not item_id.strip():
            raise ValidationError(message="Item id must be a non-empty string", field="id")
        if item_id.startswith(".") or "/" in item_id or "\\" in item_id or os.sep in item_id:
            raise ValidationError(message=f"Invalid item id '{item_id}'", field="id")

        path = (self.root / f"{item_id}{ITEM_SUFFIX}").resolve()
        if path.parent != self.root:
            raise ValidationError(message=f"Invalid item id '{item_id}'", field="id")
        return path

    async def _list_files(self) -> List[str]:
        try:
            names = await aiofiles.os.listdir(self.root)
        except FileNotFoundError:
            raise NotFoundError(resource="item storage")
        except OSError as e:
            raise FileStorageError(context={"root": str(self.root), "os_error": str(e)})
        return sorted(name for name in names if name.endswith(ITEM_SUFFIX))

    async def _read_json(self, path: Path) -> Any:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return json.loads(await f.read())

    async def _write_json(self, path: Path, payload: Mapping[str, Any], mode: str) -> None:
        async with aiofiles.open(path, mode, encoding="utf-8") as f:
            await f.write(json.dumps(dict(payload), ensure_ascii=False))

    async def list_items(self) -> List[Dict[str, Any]]:
        """
        Every parseable item as `{"id": <file stem>, **content}`.

        Files that cannot be read or parsed are logged and skipped, so one bad
        file does not hide the rest of the collection.
        """
        items = []
        for name in await self._list_files():
            path = self.root / name
            try:
                content = await self._read_json(path)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Skipping unreadable item file %s: %s", name, str(e))
                continue
            if not isinstance(content, dict):
                logger.warning("Skipping item file %s: not a JSON object", name)
                continue
            items.append({"id": Path(name).stem, **content})
        return items

    async def dump(self) -> List[Any]:
        """
        Raw contents of every item file.

        Raises:
            FileStorageError: a file in the storage root is not valid JSON
        """
        contents = []
        for name in await self._list_files():
            try:
                contents.append(await self._read_json(self.root / name))
            except json.JSONDecodeError as e:
                logger.error("Corrupt item file %s: %s", name, str(e))
                raise FileStorageError(message="bad file in db", context={"file": name})
            except OSError as e:
                raise FileStorageError(context={"file": name, "os_error": str(e)})
        return contents

    async def get_item(self, item_id: str) -> Any:
        path = self.item_path(item_id)
        try:
            return await self._read_json(path)
        except FileNotFoundError:
            raise NotFoundError(resource="item", resource_id=item_id)
        except json.JSONDecodeError:
            raise FileStorageError(message="bad file in db", context={"file": path.name})
        except OSError as e:
            raise FileStorageError(context={"file": path.name, "os_error": str(e)})

    async def create_item(self, payload: Mapping[str, Any]) -> str:
        """
        Write a new item file; the file name comes from payload["id"].

        Raises:
            ValidationError: missing or unusable id
            ConflictError:   an item with that id already exists
        """
        item_id = payload.get("id")
        path = self.item_path(item_id)
        try:
            # "x" = exclusive create, fails if the file exists
            await self._write_json(path, payload, "x")
        except FileExistsError:
            raise ConflictError(
                message=f"item with ID '{item_id}' already exists",
                context={"resource_id": item_id},
            )
        except OSError as e:
            raise FileStorageError(context={"file": path.name, "os_error": str(e)})

        logger.info("Item %s created", item_id)
        return item_id

    async def replace_item(self, item_id: str, payload: Mapping[str, Any]) -> None:
        path = self.item_path(item_id)
        if payload.get("id") != item_id:
            raise ValidationError(
                message="Item id in the body must match the id in the path",
                field="id",
            )
        if not await aiofiles.os.path.exists(path):
            raise NotFoundError(resource="item", resource_id=item_id)

        try:
            await self._write_json(path, payload, "w")
        except OSError as e:
            raise FileStorageError(context={"file": path.name, "os_error": str(e)})
        logger.info("Item %s replaced", item_id)

    async def delete_item(self, item_id: str) -> Path:
        """
        Move the item into the trash directory.

        Hard link then unlink, so the trashed copy exists before the original
        goes away. Falls back to a rename where the link is refused.

        Returns:
            Path of the trashed file (`<id>-<epoch ms>.json`).
        """
        path = self.item_path(item_id)
        trash_path = self.trash / f"{item_id}-{int(time.time() * 1000)}{ITEM_SUFFIX}"
        try:
            self.trash.mkdir(parents=True, exist_ok=True)
            try:
                await aiofiles.os.link(path, trash_path)
            except FileNotFoundError:
                raise
            except OSError as e:
                logger.debug("Hard link to trash failed for %s (%s), renaming", item_id, e)
                await aiofiles.os.rename(path, trash_path)
            else:
                await aiofiles.os.unlink(path)
        except FileNotFoundError:
            raise NotFoundError(resource="item", resource_id=item_id)
        except OSError as e:
            raise FileStorageError(context={"file": path.name, "os_error": str(e)})

        logger.info("Item %s moved to trash as %s", item_id, trash_path.name)
        return trash_path


# ── Singleton Instance ────────────────────────────────────────────────────
json_item_store = JsonItemStore()


def get_item_store() -> JsonItemStore:
    """FastAPI dependency; tests override it with a store rooted in tmp_path."""
    return json_item_store
