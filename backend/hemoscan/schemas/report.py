"""Report archive and pipeline outcome schemas."""

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from hemoscan.schemas.cbc import CBCSample
from hemoscan.schemas.diagnosis import AugmentedResult


class ReportRecord(BaseModel):
    """An archived, immutable analysis.

    Created by the archive once augmentation has settled; never edited.
    """

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    created_at: datetime
    sample: CBCSample
    result: AugmentedResult


class PipelineState(str, Enum):
    """Lifecycle of a single analysis request."""

    PENDING = "pending"
    LOCAL_READY = "local_ready"
    AUGMENTED = "augmented"
    FALLBACK = "fallback"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.AUGMENTED, PipelineState.FALLBACK)


class PipelineSnapshot(BaseModel):
    """State published to observers at each pipeline transition."""

    model_config = ConfigDict(frozen=True)

    request_id: uuid.UUID
    state: PipelineState
    result: AugmentedResult


class AnalysisOutcome(BaseModel):
    """Terminal result of an analysis request.

    record is None when the archive write failed; the result still stands
    and the failure is reported in warnings.
    """

    request_id: uuid.UUID
    state: PipelineState
    result: AugmentedResult
    record: ReportRecord | None = None
    warnings: list[str] = Field(default_factory=list)


class ReportListResponse(BaseModel):
    """Archived reports, most recent first."""

    items: list[ReportRecord]
    total: int


class ClearReportsResponse(BaseModel):
    """Result of a bulk clear."""

    deleted: int
