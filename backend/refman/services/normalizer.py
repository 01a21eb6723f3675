"""
RefMan Backend — Entry Normalizer
===================================

What:  Pure transforms between the wire shape of an entry and its storage shape.
Why:   The API speaks flat JSON objects; the relational store keeps four head
       columns, one JSON details blob, and separate keyword association rows.
How:   A declared set of head-field names is partitioned out of the record;
       everything else becomes the `details` side map.
Who:   Called by EntryService (create/overwrite/patch/read) and by the seeder.

Shapes:
    wire record                          storage shape
    ────────────────────────────         ─────────────────────────────────────
    {                                    head     = {"title": "X",
      "title": "X",                                  "author": "A,B"}
      "author": ["A", "B"],       ──▶    details  = {"year": 2020,
      "year": 2020,                                  "label": "x-2020"}
      "id": "x-2020",                    keywords = ["k1", "k2"]
      "keywords": ["k1", "k2"]
    }

    A caller-supplied `id` never reaches storage: it becomes `label` (unless a
    label is already present) and is dropped from details, so it can never
    shadow the store-assigned primary key. This substitution is one-way.

Known limitation:
    Authors are denormalized with a plain "," delimiter. An author name that
    itself contains "," would not round-trip; EntryService rejects such input
    before it gets here.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

HEAD_FIELDS = ("title", "author", "publisher", "url")
KEYWORDS_FIELD = "keywords"
AUTHOR_DELIMITER = ","
KEYWORD_DELIMITER = ","


@dataclass
class StorageShape:
    """
    A wire record split into its storage parts.

    Attributes:
        head:      Head-field name → value. With null_fill_missing every head
                   field is present (absent ones as None); otherwise only the
                   fields the caller actually sent.
        details:   Every non-head, non-keyword key of the record.
        keywords:  Raw keyword list as submitted, or None when not submitted.
                   Not reconciled against storage yet.
    """

    head: Dict[str, Any] = field(default_factory=dict)
    details: Dict[str, Any] = field(default_factory=dict)
    keywords: Optional[List[str]] = None

    @property
    def details_blob(self) -> str:
        """JSON text stored in `entries.details`."""
        return encode_details(self.details)


def join_authors(author: Any) -> Optional[str]:
    if author is None:
        return None
    if isinstance(author, str):
        return author
    return AUTHOR_DELIMITER.join(author)


def split_authors(author: Any) -> Optional[List[str]]:
    if author is None or author == "":
        return None
    if isinstance(author, str):
        return author.split(AUTHOR_DELIMITER)
    return list(author)


def split_keywords(keywords: Any) -> Optional[List[str]]:
    """Accepts an aggregate-joined keyword string or an already split list."""
    if keywords is None or keywords == "":
        return None
    if isinstance(keywords, str):
        return keywords.split(KEYWORD_DELIMITER)
    return list(keywords)


def encode_details(details: Mapping[str, Any]) -> str:
    return json.dumps(dict(details), ensure_ascii=False)


def decode_details(blob: Any) -> Dict[str, Any]:
    if blob is None or blob == "":
        return {}
    if isinstance(blob, Mapping):
        return dict(blob)
    decoded = json.loads(blob)
    return decoded if isinstance(decoded, dict) else {}


def to_storage_shape(record: Mapping[str, Any], null_fill_missing: bool) -> StorageShape:
    """
    Split a wire record into head fields, details and keywords.

    Args:
        record:            Any mapping; head fields and `keywords` are optional.
        null_fill_missing: True for a full overwrite (every absent head field
                           becomes an explicit None so old values are cleared).
                           False for create/patch (absent fields are omitted so
                           old values are preserved).

    Returns:
        StorageShape. No side effects and no type validation beyond
        destructuring; malformed input is the caller's concern.
    """
    shape = StorageShape()

    for key, value in record.items():
        if key == KEYWORDS_FIELD:
            shape.keywords = None if value is None else list(value)
        elif key in HEAD_FIELDS:
            shape.head[key] = value
        else:
            shape.details[key] = value

    if "id" in shape.details:
        shape.details.setdefault("label", shape.details["id"])
        del shape.details["id"]

    if "author" in shape.head:
        shape.head["author"] = join_authors(shape.head["author"])

    if null_fill_missing:
        for name in HEAD_FIELDS:
            shape.head.setdefault(name, None)

    return shape


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict)) and len(value) == 0:
        return True
    return False


def from_storage_shape(row: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Rebuild a wire record from a stored row.

    Steps:
        1. Parse the JSON details blob
        2. Overlay the head columns (head wins on key collision)
        3. Split `author` back into a list
        4. Split `keywords` if it arrived as a joined string
        5. Drop every empty/absent value (sparse output)

    Consumers should not distinguish "absent" from "empty": None, "" and empty
    containers are all dropped. False and 0 are values and are kept.
    """
    head = dict(row)
    details = decode_details(head.pop("details", None))
    keywords = head.pop(KEYWORDS_FIELD, None)

    record: Dict[str, Any] = {**details, **head}
    if "author" in record:
        record["author"] = split_authors(record["author"])
    record[KEYWORDS_FIELD] = split_keywords(keywords)

    return {key: value for key, value in record.items() if not _is_empty(value)}


def merge_details(current: Mapping[str, Any], changes: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Key-level merge used by partial updates; an explicit None deletes the key.
    """
    merged = dict(current)
    for key, value in changes.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged


def normalize_keywords(keywords: Iterable[Any]) -> List[str]:
    """Strip, drop blanks and de-duplicate while keeping first-seen order."""
    seen: Dict[str, None] = {}
    for keyword in keywords:
        text = str(keyword).strip()
        if text:
            seen.setdefault(text, None)
    return list(seen)
