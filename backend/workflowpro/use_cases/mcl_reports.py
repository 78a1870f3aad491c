"""MCL (movement log) report use-cases: submission, edits, and manager decisions."""
from __future__ import annotations

import logging

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection

from ..database import Database, is_unique_violation
from ..domain_errors import InvalidTransition, NotFound, ValidationFailed
from ..models import LookupListValue, MCLReport, User
from ..schemas import MCLReportCreate, MCLReportOut, MCLReportStatus, MCLReportUpdate, ReportFilters
from ..security import Identity, Role, require_role
from ..services.report_rules import (
    MCL_EDITABLE_STATUSES,
    MCL_ID_PREFIX,
    apply_report_filters,
    ensure_visit_window,
    is_mcl_editable,
    next_report_id,
    now_utc,
    report_id_pattern,
    scope_report_filters,
    validate_mcl_transition,
)
from ..services.retry import RetryableConflict
from .notifications import notify_mcl_status_change

logger = logging.getLogger(__name__)

reports = MCLReport.__table__
lookups = LookupListValue.__table__
users = User.__table__

_client = lookups.alias("client_lv")
_visit_type = lookups.alias("visit_type_lv")
_purpose = lookups.alias("purpose_lv")
_shift = lookups.alias("shift_lv")
_submitter = users.alias("submitter")

_REPORT_SELECT = select(
    reports,
    _client.c.value.label("client_name"),
    _visit_type.c.value.label("visit_type"),
    _purpose.c.value.label("purpose"),
    _shift.c.value.label("shift"),
    _submitter.c.name.label("submitted_by"),
).select_from(
    reports.outerjoin(_client, reports.c.client_name_id == _client.c.id)
    .outerjoin(_visit_type, reports.c.visit_type_id == _visit_type.c.id)
    .outerjoin(_purpose, reports.c.purpose_id == _purpose.c.id)
    .outerjoin(_shift, reports.c.shift_id == _shift.c.id)
    .outerjoin(_submitter, reports.c.user_id == _submitter.c.emp_id)
)

_EDITABLE_VALUES = [status.value for status in MCL_EDITABLE_STATUSES]


def _not_found(report_id: str) -> NotFound:
    return NotFound(
        code="MCL_REPORT_NOT_FOUND",
        message="MCL report not found",
        details={"report_id": report_id},
    )


def _not_editable(report_id: str, status: str) -> InvalidTransition:
    return InvalidTransition(
        code="MCL_REPORT_NOT_EDITABLE",
        message=f"MCL report in status {status} cannot be edited",
        details={"report_id": report_id, "status": status},
    )


def _invalid_reference(exc: IntegrityError) -> ValidationFailed:
    return ValidationFailed(
        code="MCL_REPORT_INVALID_REFERENCE",
        message="Report references an unknown lookup value or user",
        details={"error": exc.orig.__class__.__name__},
    )


async def _load_report(conn: AsyncConnection, report_id: str) -> MCLReportOut:
    row = (await conn.execute(_REPORT_SELECT.where(reports.c.id == report_id))).first()
    if row is None:
        raise _not_found(report_id)
    return MCLReportOut.model_validate(row)


async def _current_row(conn: AsyncConnection, report_id: str):
    row = (
        await conn.execute(
            select(reports.c.status, reports.c.user_id, reports.c.entry_at, reports.c.exit_at).where(
                reports.c.id == report_id
            )
        )
    ).first()
    if row is None:
        raise _not_found(report_id)
    return row


async def create_mcl_report_use_case(
    *,
    db: Database,
    data: MCLReportCreate,
    submitter: Identity,
) -> MCLReportOut:
    ensure_visit_window(entry_at=data.entry_at, exit_at=data.exit_at)

    async def _work(conn: AsyncConnection) -> MCLReportOut:
        year = now_utc().year
        existing = (
            await conn.execute(
                select(reports.c.id).where(reports.c.id.like(report_id_pattern(MCL_ID_PREFIX, year)))
            )
        ).scalars().all()
        report_id = next_report_id(MCL_ID_PREFIX, year, list(existing))
        try:
            await conn.execute(
                insert(reports).values(
                    id=report_id,
                    user_id=submitter.emp_id,
                    status=MCLReportStatus.PENDING_APPROVAL.value,
                    **data.model_dump(),
                )
            )
        except IntegrityError as exc:
            if is_unique_violation(exc):
                raise RetryableConflict(f"MCL report id {report_id} already taken") from exc
            raise _invalid_reference(exc) from exc
        logger.info("MCL report %s submitted by %s", report_id, submitter.emp_id)
        return await _load_report(conn, report_id)

    return await db.write("Create MCL report", _work)


async def get_mcl_report_use_case(*, db: Database, report_id: str) -> MCLReportOut:
    async def _work(conn: AsyncConnection) -> MCLReportOut:
        return await _load_report(conn, report_id)

    return await db.read("Get MCL report", _work)


async def list_mcl_reports_use_case(
    *,
    db: Database,
    filters: ReportFilters | None = None,
    viewer: Identity | None = None,
) -> list[MCLReportOut]:
    """List reports newest first. Without a viewer the list is unscoped (internal callers)."""
    query = apply_report_filters(
        _REPORT_SELECT,
        table=reports,
        time_column=reports.c.entry_at,
        filters=scope_report_filters(filters, viewer),
    ).order_by(reports.c.created_at.desc(), reports.c.id.desc())

    async def _work(conn: AsyncConnection) -> list[MCLReportOut]:
        rows = (await conn.execute(query)).all()
        return [MCLReportOut.model_validate(row) for row in rows]

    return await db.read("Get MCL reports", _work)


async def update_mcl_report_use_case(
    *,
    db: Database,
    report_id: str,
    data: MCLReportUpdate,
) -> MCLReportOut:
    """Edit content while the report is Pending Approval or Rejected. Status is untouched."""
    changes = {key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None}

    async def _work(conn: AsyncConnection) -> MCLReportOut:
        current = await _current_row(conn, report_id)
        if not is_mcl_editable(current.status):
            raise _not_editable(report_id, current.status)
        if not changes:
            return await _load_report(conn, report_id)

        ensure_visit_window(
            entry_at=changes.get("entry_at", current.entry_at),
            exit_at=changes.get("exit_at", current.exit_at),
        )
        try:
            result = await conn.execute(
                update(reports)
                .where(reports.c.id == report_id, reports.c.status.in_(_EDITABLE_VALUES))
                .values(**changes)
            )
        except IntegrityError as exc:
            raise _invalid_reference(exc) from exc
        if result.rowcount == 0:
            raise _not_editable(report_id, current.status)
        return await _load_report(conn, report_id)

    return await db.write("Update MCL report", _work)


async def transition_mcl_report_use_case(
    *,
    db: Database,
    report_id: str,
    actor: Identity,
    target: MCLReportStatus,
    reason: str | None = None,
) -> MCLReportOut:
    """Decide a pending report. Managers and admins only; both outcomes are terminal."""
    target = MCLReportStatus(target)
    require_role(
        actor,
        Role.MANAGER,
        code="MCL_REPORT_APPROVAL_FORBIDDEN",
        message="Only managers and admins can approve or reject MCL reports",
        details={"report_id": report_id},
    )

    action = "approved" if target is MCLReportStatus.APPROVED else "rejected"

    async def _work(conn: AsyncConnection) -> MCLReportOut:
        current = await _current_row(conn, report_id)
        validate_mcl_transition(current=current.status, target=target)

        stamp = now_utc()
        if target is MCLReportStatus.APPROVED:
            values = {"approved_by": actor.emp_id, "approved_at": stamp}
        else:
            values = {"rejected_by": actor.emp_id, "rejected_at": stamp, "rejection_reason": reason}

        # The status guard in WHERE makes a concurrent decision lose cleanly.
        decided = (
            await conn.execute(
                update(reports)
                .where(
                    reports.c.id == report_id,
                    reports.c.status == MCLReportStatus.PENDING_APPROVAL.value,
                )
                .values(status=target.value, **values)
                .returning(reports.c.user_id)
            )
        ).first()
        if decided is None:
            raise InvalidTransition(
                code="MCL_REPORT_INVALID_TRANSITION",
                message="MCL report was decided by someone else",
                details={"report_id": report_id, "target": target.value},
            )

        await notify_mcl_status_change(
            conn,
            report_id=report_id,
            submitter_id=decided.user_id,
            actor_id=actor.emp_id,
            action=action,
        )
        logger.info("MCL report %s %s by %s", report_id, action, actor.emp_id)
        return await _load_report(conn, report_id)

    label = "Approve MCL report" if target is MCLReportStatus.APPROVED else "Reject MCL report"
    return await db.write(label, _work)


async def approve_mcl_report_use_case(*, db: Database, report_id: str, actor: Identity) -> MCLReportOut:
    return await transition_mcl_report_use_case(
        db=db,
        report_id=report_id,
        actor=actor,
        target=MCLReportStatus.APPROVED,
    )


async def reject_mcl_report_use_case(
    *,
    db: Database,
    report_id: str,
    actor: Identity,
    reason: str | None = None,
) -> MCLReportOut:
    return await transition_mcl_report_use_case(
        db=db,
        report_id=report_id,
        actor=actor,
        target=MCLReportStatus.REJECTED,
        reason=reason,
    )
