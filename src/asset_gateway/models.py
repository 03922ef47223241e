"""Pydantic models for API responses."""

from typing import List, Optional

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    """Response to a successful upload."""

    ok: bool = True


class DeleteFailure(BaseModel):
    """One asset id that could not be deleted."""

    id: str
    reason: str


class DeleteOutcome(BaseModel):
    """Per-id results of a batch delete, in request order."""

    succeeded: List[str] = Field(default_factory=list)
    failed: List[DeleteFailure] = Field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return not self.succeeded and bool(self.failed)


class DeleteResponse(BaseModel):
    """Batch delete where at least one id succeeded (or none were given)."""

    ok: bool = True
    succeeded: List[str]
    failed: Optional[List[DeleteFailure]] = None


class DeleteErrorResponse(BaseModel):
    """Batch delete where every id failed."""

    ok: bool = False
    failed: List[DeleteFailure]
