"""
RefMan Backend — Pydantic Request/Response Schemas
====================================================

What:  Pydantic models defining the API contract.
Why:   Schema validation of request bodies, serialization of responses,
       and OpenAPI documentation generated by FastAPI.
How:   Entry payloads declare the head fields and keywords but allow any
       extra key; the extras become the entry's `details`.

Design Decision:
    Records are returned as plain JSON objects (Dict[str, Any]) rather than a
    fixed model: an entry carries arbitrary detail keys, and the sparse
    output rule drops empty fields entirely.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class EntryPayload(BaseModel):
    """
    What:  One submitted bibliographic record (wire shape).
    Who:   Body of POST/PUT/PATCH /api/entries.

    Head fields are typed; every other key is accepted as a detail field.
    On PATCH an explicit null clears a head field or deletes a detail key.
    """

    title: Optional[str] = Field(default=None, description="Title of the resource")
    author: Optional[List[str]] = Field(
        default=None,
        description="Ordered list of authors (names must not contain ',')",
    )
    publisher: Optional[str] = Field(default=None, description="Publisher or site name")
    url: Optional[str] = Field(default=None, description="Location of the resource")
    keywords: Optional[List[str]] = Field(default=None, description="Tags for the entry")

    model_config = {
        "extra": "allow",
        "json_schema_extra": {
            "example": {
                "title": "Eloquent JavaScript",
                "author": ["Marijn Haverbeke"],
                "publisher": "No Starch Press",
                "url": "https://eloquentjavascript.net/",
                "year": 2018,
                "keywords": ["javascript", "programming"],
            }
        },
    }

    def to_record(self) -> Dict[str, Any]:
        """Only the keys the client actually sent, including explicit nulls."""
        return self.model_dump(exclude_unset=True)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class EntryFailure(BaseModel):
    """Why one entry of a batch submission was not created."""

    index: int = Field(description="Position of the entry in the submitted batch")
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable description")


class BatchCreateResponse(BaseModel):
    """
    What:  Result of POST /api/entries.
    How:   Each submitted entry is its own unit of work; created ids keep the
           submission order, failures are reported per entry.
    """

    ids: List[int] = Field(description="Ids assigned to the created entries")
    failures: List[EntryFailure] = Field(
        default_factory=list,
        description="Entries that could not be created",
    )


class KeywordInsertResponse(BaseModel):
    entry_id: int
    inserted: int = Field(description="Number of keyword associations added")


class RenameResponse(BaseModel):
    """Associations rewritten in place; merge deletions are not counted."""

    updated: int


class ItemWriteResponse(BaseModel):
    """Acknowledgement for flat-file item writes."""

    message: str
    id: str


# ══════════════════════════════════════════════════════════════════════════
# Error / Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    What:  Standardized error response format for all API errors.

    Example:
        {
            "error": "not_found",
            "message": "entry with ID '42' was not found",
            "request_id": "a1b2c3d4"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    json_storage: str = Field(description="Flat-file storage root: available, missing")
    uptime_seconds: float = Field(description="Seconds since service started")
