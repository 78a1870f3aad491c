"""Report status state machines and write-time rules."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone

from ..domain_errors import InvalidTransition, ValidationFailed
from ..schemas import MCLReportStatus, ProblemReportStatus, ReportFilters
from ..security import Identity, Role

MCL_ID_PREFIX = "MCL"
PROBLEM_ID_PREFIX = "PRB"

_MCL_TRANSITIONS: dict[MCLReportStatus, set[MCLReportStatus]] = {
    MCLReportStatus.PENDING_APPROVAL: {MCLReportStatus.APPROVED, MCLReportStatus.REJECTED},
    MCLReportStatus.APPROVED: set(),
    MCLReportStatus.REJECTED: set(),
}
MCL_EDITABLE_STATUSES: tuple[MCLReportStatus, ...] = (
    MCLReportStatus.PENDING_APPROVAL,
    MCLReportStatus.REJECTED,
)

_PROBLEM_TRANSITIONS: dict[ProblemReportStatus, set[ProblemReportStatus]] = {
    ProblemReportStatus.OPEN: {ProblemReportStatus.IN_PROGRESS, ProblemReportStatus.CLOSED},
    ProblemReportStatus.IN_PROGRESS: {ProblemReportStatus.CLOSED},
    ProblemReportStatus.CLOSED: set(),
}
PROBLEM_EDITABLE_STATUSES: tuple[ProblemReportStatus, ...] = (
    ProblemReportStatus.OPEN,
    ProblemReportStatus.IN_PROGRESS,
)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def validate_mcl_transition(*, current: MCLReportStatus | str, target: MCLReportStatus | str) -> MCLReportStatus:
    cur = MCLReportStatus(current)
    nxt = MCLReportStatus(target)
    if nxt not in _MCL_TRANSITIONS[cur]:
        raise InvalidTransition(
            code="MCL_REPORT_INVALID_TRANSITION",
            message=f"Cannot move MCL report from {cur.value} to {nxt.value}",
            details={"current": cur.value, "target": nxt.value},
        )
    return nxt


def validate_problem_transition(
    *, current: ProblemReportStatus | str, target: ProblemReportStatus | str
) -> ProblemReportStatus:
    cur = ProblemReportStatus(current)
    nxt = ProblemReportStatus(target)
    if nxt not in _PROBLEM_TRANSITIONS[cur]:
        raise InvalidTransition(
            code="PROBLEM_REPORT_INVALID_TRANSITION",
            message=f"Cannot move problem report from {cur.value} to {nxt.value}",
            details={"current": cur.value, "target": nxt.value},
        )
    return nxt


def is_mcl_editable(status: MCLReportStatus | str) -> bool:
    return MCLReportStatus(status) in MCL_EDITABLE_STATUSES


def is_problem_editable(status: ProblemReportStatus | str) -> bool:
    return ProblemReportStatus(status) in PROBLEM_EDITABLE_STATUSES


def ensure_problem_transition_fields(
    *, target: ProblemReportStatus, rca: str | None, solution: str | None
) -> None:
    """Root cause before In Progress, solution before Closed."""
    if target is ProblemReportStatus.IN_PROGRESS and not (rca or "").strip():
        raise ValidationFailed(
            code="PROBLEM_REPORT_RCA_REQUIRED",
            message="Root cause analysis is required before work can start",
            details={"field": "rca"},
        )
    if target is ProblemReportStatus.CLOSED and not (solution or "").strip():
        raise ValidationFailed(
            code="PROBLEM_REPORT_SOLUTION_REQUIRED",
            message="A solution is required before the report can be closed",
            details={"field": "solution"},
        )


def ensure_visit_window(*, entry_at: datetime, exit_at: datetime) -> None:
    if as_utc(exit_at) < as_utc(entry_at):
        raise ValidationFailed(
            code="MCL_REPORT_INVALID_VISIT_WINDOW",
            message="Exit time must not be before entry time",
            details={"field": "exit_at"},
        )


def report_id_pattern(prefix: str, year: int) -> str:
    """SQL LIKE pattern matching every id issued for `year`."""
    return f"{prefix}-{year}-%"


_ID_RE = re.compile(r"^[A-Z]+-\d{4}-(\d+)$")


def next_report_id(prefix: str, year: int, existing_ids: list[str]) -> str:
    """`PREFIX-YEAR-NNN`, one past the highest sequence issued this year."""
    highest = 0
    for report_id in existing_ids:
        match = _ID_RE.match(report_id or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{prefix}-{year}-{highest + 1:03d}"


def month_bounds(month: str) -> tuple[datetime, datetime]:
    """Start of `YYYY-MM` and start of the following month, in UTC."""
    year, mon = (int(part) for part in month.split("-"))
    start = date(year, mon, 1)
    end = date(year + 1, 1, 1) if mon == 12 else date(year, mon + 1, 1)
    return (
        datetime(start.year, start.month, start.day, tzinfo=timezone.utc),
        datetime(end.year, end.month, end.day, tzinfo=timezone.utc),
    )


def as_utc(value: datetime) -> datetime:
    """Naive datetimes from clients are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def apply_report_filters(query, *, table, time_column, filters):
    """Submitter / date range / month / status filters shared by both report kinds."""
    if filters is None:
        return query
    if filters.submitter_id:
        query = query.where(table.c.user_id == filters.submitter_id)
    if filters.date_from:
        query = query.where(time_column >= as_utc(filters.date_from))
    if filters.date_to:
        query = query.where(time_column <= as_utc(filters.date_to))
    if filters.month:
        start, end = month_bounds(filters.month)
        query = query.where(time_column >= start, time_column < end)
    if filters.status:
        query = query.where(table.c.status == filters.status)
    return query


def scope_report_filters(filters: ReportFilters | None, viewer: Identity | None) -> ReportFilters | None:
    """Plain users only list their own reports, whatever submitter they ask for."""
    if viewer is None or viewer.role is not Role.USER:
        return filters
    return (filters or ReportFilters()).model_copy(update={"submitter_id": viewer.emp_id})
