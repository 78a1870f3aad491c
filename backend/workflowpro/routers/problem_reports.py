"""Problem report endpoints."""
from fastapi import APIRouter, Depends, status

from ..auth import get_current_identity
from ..database import Database, get_db
from ..schemas import (
    ProblemReportCreate,
    ProblemReportOut,
    ProblemReportUpdate,
    ProblemStatusChange,
    ReportFilters,
)
from ..security import Identity
from ..use_cases.problem_reports import (
    create_problem_report_use_case,
    get_problem_report_use_case,
    list_problem_reports_use_case,
    transition_problem_report_use_case,
    update_problem_report_use_case,
)
from .mcl_reports import report_filters

router = APIRouter(prefix="/problem-reports", tags=["problem-reports"])


@router.get("", response_model=list[ProblemReportOut])
async def list_reports(
    filters: ReportFilters = Depends(report_filters),
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await list_problem_reports_use_case(db=db, filters=filters, viewer=identity)


@router.post("", response_model=ProblemReportOut, status_code=status.HTTP_201_CREATED)
async def create_report(
    data: ProblemReportCreate,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await create_problem_report_use_case(db=db, data=data, submitter=identity)


@router.get("/{report_id}", response_model=ProblemReportOut)
async def get_report(
    report_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await get_problem_report_use_case(db=db, report_id=report_id)


@router.patch("/{report_id}", response_model=ProblemReportOut)
async def update_report(
    report_id: str,
    data: ProblemReportUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await update_problem_report_use_case(db=db, report_id=report_id, data=data)


@router.post("/{report_id}/status", response_model=ProblemReportOut)
async def change_status(
    report_id: str,
    change: ProblemStatusChange,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await transition_problem_report_use_case(db=db, report_id=report_id, change=change, actor=identity)
