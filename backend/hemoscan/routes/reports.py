"""Report history API routes.

History is append-only: reports are created by the analysis pipeline and
can only be removed all at once.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from hemoscan.dependencies import get_archive
from hemoscan.schemas import ClearReportsResponse, ReportListResponse
from hemoscan.services.archive import ArchiveReadError, ArchiveWriteError, ReportArchive

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("", response_model=ReportListResponse)
async def list_reports(
    archive: ReportArchive = Depends(get_archive),
) -> ReportListResponse:
    """List archived reports, most recent first.

    Raises:
        HTTPException: 500 if the archive could not be read.
    """
    try:
        records = await archive.list()
    except ArchiveReadError:
        logger.exception("Failed to load report archive")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load report history.",
        )
    return ReportListResponse(items=records, total=len(records))


@router.delete("", response_model=ClearReportsResponse)
async def clear_reports(
    archive: ReportArchive = Depends(get_archive),
) -> ClearReportsResponse:
    """Delete every archived report.

    Raises:
        HTTPException: 500 if the archive could not be cleared.
    """
    try:
        deleted = await archive.clear()
    except ArchiveWriteError:
        logger.exception("Failed to clear report archive")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to clear report history.",
        )
    return ClearReportsResponse(deleted=deleted)
