"""
RefMan Backend — Keyword Reconciler
=====================================

What:  Set-difference bookkeeping between an entry's stored keywords and a
       desired keyword set, plus global rename and orphan pruning.
Why:   Keywords live in association rows, one per (entry_id, keyword). Every
       write must move the stored set toward the desired one without ever
       tagging an entry twice with the same keyword.
How:   Read the current set from the KeywordStore, compute the difference,
       write only the delta. The reconciler holds no state of its own.
Who:   EntryService (create, overwrite, patch, keyword routes) and the seeder.

Operations:
    reconcile_entry_keywords   additive: insert desired − current
    remove_all_keywords_for_entry
    remove_specific_keywords
    replace_entry_keyword_set  delete current − desired, then reconcile
    prune_orphaned_keywords    delete associations whose entry is gone
    rename_keyword_globally    old → new everywhere, merging where an entry
                               already carries `new`

Atomicity & races:
    Every call runs inside the caller's unit of work (one session/transaction),
    so a failure part-way leaves nothing applied. The read-then-write on the
    current set is NOT isolated from a concurrent request mutating the same
    entry; if both insert the same keyword the UNIQUE(entry_id, keyword)
    constraint rejects the second one and the store raises ConflictError.
    Storage errors are never caught here.
"""

import logging
from typing import Iterable

from refman.services.store_base import KeywordStore, RecordStore

logger = logging.getLogger(__name__)


class KeywordReconciler:
    """
    Keyword set operations over explicit stores.

    Args:
        records:   RecordStore, consulted for live entry ids when pruning
        keywords:  KeywordStore holding the associations
    """

    def __init__(self, records: RecordStore, keywords: KeywordStore):
        self.records = records
        self.keywords = keywords

    async def reconcile_entry_keywords(self, entry_id: int, desired: Iterable[str]) -> int:
        """
        Insert the desired keywords the entry does not carry yet.

        Additive only: keywords outside `desired` are left alone.

        Returns:
            Number of associations inserted. 0 means nothing was written,
            which callers use to distinguish a no-op from an insert.
        """
        current = set(await self.keywords.list_by_entry(entry_id))
        # dict.fromkeys keeps submission order and drops duplicates in `desired`
        new = [keyword for keyword in dict.fromkeys(desired) if keyword not in current]

        if not new:
            return 0

        for keyword in new:
            await self.keywords.insert(entry_id, keyword)

        logger.debug("Entry %s: inserted keywords %s", entry_id, new)
        return len(new)

    async def remove_all_keywords_for_entry(self, entry_id: int) -> int:
        return await self.keywords.delete_by_entry(entry_id)

    async def remove_specific_keywords(self, entry_id: int, keywords: Iterable[str]) -> int:
        """Delete only the listed associations; unmatched keywords are ignored."""
        removed = 0
        for keyword in dict.fromkeys(keywords):
            removed += await self.keywords.delete_by_entry_and_keyword(entry_id, keyword)
        return removed

    async def replace_entry_keyword_set(self, entry_id: int, keywords: Iterable[str]) -> None:
        """Make the entry's keyword set exactly `keywords`."""
        desired = list(dict.fromkeys(keywords))
        current = await self.keywords.list_by_entry(entry_id)

        wanted = set(desired)
        extraneous = [keyword for keyword in current if keyword not in wanted]
        if extraneous:
            await self.remove_specific_keywords(entry_id, extraneous)

        await self.reconcile_entry_keywords(entry_id, desired)

    async def prune_orphaned_keywords(self) -> int:
        """
        Delete every association whose entry no longer exists.

        Idempotent: a second consecutive call finds no orphans and returns 0.

        Returns:
            Number of association rows deleted.
        """
        live = set(await self.records.all_ids())
        orphaned = [entry_id for entry_id in await self.keywords.list_entry_ids() if entry_id not in live]

        pruned = 0
        for entry_id in orphaned:
            pruned += await self.keywords.delete_by_entry(entry_id)

        if pruned:
            logger.info("Pruned %d orphaned keyword rows across %d entries", pruned, len(orphaned))
        return pruned

    async def rename_keyword_globally(self, old: str, new: str) -> int:
        """
        Rename `old` to `new` across the whole vocabulary.

        Per entry tagged `old`:
            - already tagged `new` → drop the `old` association (merge)
            - otherwise            → rewrite the association in place

        Returns:
            Number of associations rewritten in place. Merge deletions are not
            counted, so a rename that only merges returns 0.
        """
        if old == new:
            return 0

        tagged_old = await self.keywords.list_entry_ids_by_keyword(old)
        tagged_new = set(await self.keywords.list_entry_ids_by_keyword(new))

        updated = 0
        merged = 0
        for entry_id in tagged_old:
            if entry_id in tagged_new:
                merged += await self.keywords.delete_by_entry_and_keyword(entry_id, old)
            else:
                updated += await self.keywords.rename(entry_id, old, new)

        logger.info(
            "Renamed keyword %r → %r: %d updated, %d merged", old, new, updated, merged
        )
        return updated
