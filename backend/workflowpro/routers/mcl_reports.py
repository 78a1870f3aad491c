"""MCL report endpoints."""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ..auth import get_current_identity
from ..database import Database, get_db
from ..schemas import MCLRejectRequest, MCLReportCreate, MCLReportOut, MCLReportUpdate, ReportFilters
from ..security import Identity
from ..use_cases.mcl_reports import (
    approve_mcl_report_use_case,
    create_mcl_report_use_case,
    get_mcl_report_use_case,
    list_mcl_reports_use_case,
    reject_mcl_report_use_case,
    update_mcl_report_use_case,
)

router = APIRouter(prefix="/mcl-reports", tags=["mcl-reports"])


def report_filters(
    submitter_id: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    month: Optional[str] = Query(default=None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$"),
    status: Optional[str] = None,
) -> ReportFilters:
    """Query-string filters shared by the report list endpoints."""
    return ReportFilters(
        submitter_id=submitter_id,
        date_from=date_from,
        date_to=date_to,
        month=month,
        status=status,
    )


@router.get("", response_model=list[MCLReportOut])
async def list_reports(
    filters: ReportFilters = Depends(report_filters),
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await list_mcl_reports_use_case(db=db, filters=filters, viewer=identity)


@router.post("", response_model=MCLReportOut, status_code=status.HTTP_201_CREATED)
async def create_report(
    data: MCLReportCreate,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await create_mcl_report_use_case(db=db, data=data, submitter=identity)


@router.get("/{report_id}", response_model=MCLReportOut)
async def get_report(
    report_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await get_mcl_report_use_case(db=db, report_id=report_id)


@router.patch("/{report_id}", response_model=MCLReportOut)
async def update_report(
    report_id: str,
    data: MCLReportUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await update_mcl_report_use_case(db=db, report_id=report_id, data=data)


@router.post("/{report_id}/approve", response_model=MCLReportOut)
async def approve_report(
    report_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await approve_mcl_report_use_case(db=db, report_id=report_id, actor=identity)


@router.post("/{report_id}/reject", response_model=MCLReportOut)
async def reject_report(
    report_id: str,
    body: Optional[MCLRejectRequest] = None,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    reason = body.reason if body else None
    return await reject_mcl_report_use_case(db=db, report_id=report_id, actor=identity, reason=reason)
