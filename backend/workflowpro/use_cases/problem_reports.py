"""Problem report use-cases: incident records moving Open -> In Progress -> Closed."""
from __future__ import annotations

import logging

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection

from ..database import Database, is_unique_violation
from ..domain_errors import InvalidTransition, NotFound, ValidationFailed
from ..models import LookupListValue, ProblemReport, User
from ..schemas import (
    ProblemReportCreate,
    ProblemReportOut,
    ProblemReportStatus,
    ProblemReportUpdate,
    ProblemStatusChange,
    ReportFilters,
)
from ..security import Identity
from ..services.report_rules import (
    PROBLEM_EDITABLE_STATUSES,
    PROBLEM_ID_PREFIX,
    apply_report_filters,
    ensure_problem_transition_fields,
    is_problem_editable,
    next_report_id,
    now_utc,
    report_id_pattern,
    scope_report_filters,
    validate_problem_transition,
)
from ..services.retry import RetryableConflict
from .notifications import notify_problem_status_change

logger = logging.getLogger(__name__)

reports = ProblemReport.__table__
lookups = LookupListValue.__table__
users = User.__table__

_client = lookups.alias("client_lv")
_environment = lookups.alias("environment_lv")
_submitter = users.alias("submitter")
_attendee = users.alias("attendee")

_REPORT_SELECT = select(
    reports,
    _client.c.value.label("client_name"),
    _environment.c.value.label("environment"),
    _submitter.c.name.label("submitted_by"),
    _attendee.c.name.label("attended_by"),
).select_from(
    reports.outerjoin(_client, reports.c.client_name_id == _client.c.id)
    .outerjoin(_environment, reports.c.environment_id == _environment.c.id)
    .outerjoin(_submitter, reports.c.user_id == _submitter.c.emp_id)
    .outerjoin(_attendee, reports.c.attended_by_id == _attendee.c.emp_id)
)

_EDITABLE_VALUES = [status.value for status in PROBLEM_EDITABLE_STATUSES]


def _not_found(report_id: str) -> NotFound:
    return NotFound(
        code="PROBLEM_REPORT_NOT_FOUND",
        message="Problem report not found",
        details={"report_id": report_id},
    )


def _invalid_reference(exc: IntegrityError) -> ValidationFailed:
    return ValidationFailed(
        code="PROBLEM_REPORT_INVALID_REFERENCE",
        message="Report references an unknown lookup value or user",
        details={"error": exc.orig.__class__.__name__},
    )


async def _load_report(conn: AsyncConnection, report_id: str) -> ProblemReportOut:
    row = (await conn.execute(_REPORT_SELECT.where(reports.c.id == report_id))).first()
    if row is None:
        raise _not_found(report_id)
    return ProblemReportOut.model_validate(row)


async def _current_row(conn: AsyncConnection, report_id: str):
    row = (
        await conn.execute(
            select(reports.c.status, reports.c.user_id, reports.c.rca, reports.c.solution).where(
                reports.c.id == report_id
            )
        )
    ).first()
    if row is None:
        raise _not_found(report_id)
    return row


async def create_problem_report_use_case(
    *,
    db: Database,
    data: ProblemReportCreate,
    submitter: Identity,
) -> ProblemReportOut:
    async def _work(conn: AsyncConnection) -> ProblemReportOut:
        year = now_utc().year
        existing = (
            await conn.execute(
                select(reports.c.id).where(reports.c.id.like(report_id_pattern(PROBLEM_ID_PREFIX, year)))
            )
        ).scalars().all()
        report_id = next_report_id(PROBLEM_ID_PREFIX, year, list(existing))
        try:
            await conn.execute(
                insert(reports).values(
                    id=report_id,
                    user_id=submitter.emp_id,
                    status=ProblemReportStatus.OPEN.value,
                    **data.model_dump(),
                )
            )
        except IntegrityError as exc:
            if is_unique_violation(exc):
                raise RetryableConflict(f"Problem report id {report_id} already taken") from exc
            raise _invalid_reference(exc) from exc
        logger.info("Problem report %s opened by %s", report_id, submitter.emp_id)
        return await _load_report(conn, report_id)

    return await db.write("Create problem report", _work)


async def get_problem_report_use_case(*, db: Database, report_id: str) -> ProblemReportOut:
    async def _work(conn: AsyncConnection) -> ProblemReportOut:
        return await _load_report(conn, report_id)

    return await db.read("Get problem report", _work)


async def list_problem_reports_use_case(
    *,
    db: Database,
    filters: ReportFilters | None = None,
    viewer: Identity | None = None,
) -> list[ProblemReportOut]:
    query = apply_report_filters(
        _REPORT_SELECT,
        table=reports,
        time_column=reports.c.received_at,
        filters=scope_report_filters(filters, viewer),
    ).order_by(reports.c.created_at.desc(), reports.c.id.desc())

    async def _work(conn: AsyncConnection) -> list[ProblemReportOut]:
        rows = (await conn.execute(query)).all()
        return [ProblemReportOut.model_validate(row) for row in rows]

    return await db.read("Get problem reports", _work)


async def update_problem_report_use_case(
    *,
    db: Database,
    report_id: str,
    data: ProblemReportUpdate,
) -> ProblemReportOut:
    """Edit content of an Open or In Progress report. Status moves go through transition."""
    changes = data.model_dump(exclude_unset=True)
    for required in ("problem_statement", "received_at", "sla_hours"):
        if changes.get(required, ...) is None:
            changes.pop(required)

    async def _work(conn: AsyncConnection) -> ProblemReportOut:
        current = await _current_row(conn, report_id)
        if not is_problem_editable(current.status):
            raise InvalidTransition(
                code="PROBLEM_REPORT_NOT_EDITABLE",
                message="Closed problem reports cannot be edited",
                details={"report_id": report_id, "status": current.status},
            )
        if not changes:
            return await _load_report(conn, report_id)
        try:
            result = await conn.execute(
                update(reports)
                .where(reports.c.id == report_id, reports.c.status.in_(_EDITABLE_VALUES))
                .values(**changes)
            )
        except IntegrityError as exc:
            raise _invalid_reference(exc) from exc
        if result.rowcount == 0:
            raise InvalidTransition(
                code="PROBLEM_REPORT_NOT_EDITABLE",
                message="Problem report was closed concurrently",
                details={"report_id": report_id},
            )
        return await _load_report(conn, report_id)

    return await db.write("Update problem report", _work)


async def transition_problem_report_use_case(
    *,
    db: Database,
    report_id: str,
    change: ProblemStatusChange,
    actor: Identity,
) -> ProblemReportOut:
    """Move a report forward; In Progress needs an RCA and Closed needs a solution.

    RCA/solution supplied with the change are stored with it; otherwise the
    values already on the report are used for the check.
    """
    target = change.status

    async def _work(conn: AsyncConnection) -> ProblemReportOut:
        current = await _current_row(conn, report_id)
        validate_problem_transition(current=current.status, target=target)

        rca = change.rca if change.rca is not None else current.rca
        solution = change.solution if change.solution is not None else current.solution
        ensure_problem_transition_fields(target=target, rca=rca, solution=solution)

        values: dict = {"status": target.value, "rca": rca, "solution": solution}
        if target is ProblemReportStatus.CLOSED:
            values["closed_at"] = now_utc()

        moved = (
            await conn.execute(
                update(reports)
                .where(reports.c.id == report_id, reports.c.status == current.status)
                .values(**values)
                .returning(reports.c.user_id)
            )
        ).first()
        if moved is None:
            raise InvalidTransition(
                code="PROBLEM_REPORT_INVALID_TRANSITION",
                message="Problem report status changed concurrently",
                details={"report_id": report_id, "target": target.value},
            )

        await notify_problem_status_change(
            conn,
            report_id=report_id,
            submitter_id=moved.user_id,
            actor_id=actor.emp_id,
            status=target,
        )
        logger.info("Problem report %s moved to %s by %s", report_id, target.value, actor.emp_id)
        return await _load_report(conn, report_id)

    return await db.write("Update problem report status", _work)
