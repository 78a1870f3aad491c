from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from workflowpro.database import Database
from workflowpro.domain_errors import InvalidTransition, NotFound, ValidationFailed
from workflowpro.schemas import (
    ProblemReportCreate,
    ProblemReportStatus,
    ProblemReportUpdate,
    ProblemStatusChange,
    ReportFilters,
)
from workflowpro.services.report_rules import now_utc
from workflowpro.use_cases.notifications import get_notifications_use_case
from workflowpro.use_cases.problem_reports import (
    create_problem_report_use_case,
    get_problem_report_use_case,
    list_problem_reports_use_case,
    transition_problem_report_use_case,
    update_problem_report_use_case,
)

from tests.conftest import ALICE, MANAGER

RECEIVED = datetime(2025, 6, 14, 12, 0, tzinfo=timezone.utc)


async def _open_report(db: Database, **overrides):
    payload = {
        "problem_statement": "Backup system failing intermittently",
        "received_at": RECEIVED,
        "sla_hours": 8,
        "attended_by_id": MANAGER.emp_id,
    }
    payload.update(overrides)
    return await create_problem_report_use_case(db=db, data=ProblemReportCreate(**payload), submitter=ALICE)


async def test_create_opens_report_with_sla_clock(db: Database) -> None:
    report = await _open_report(db)

    assert report.id == f"PRB-{now_utc().year}-001"
    assert report.status == ProblemReportStatus.OPEN
    assert report.sla_due_at == RECEIVED + timedelta(hours=8)
    assert report.submitted_by == "Alice User"
    assert report.attended_by == "Bob Manager"


async def test_start_work_requires_root_cause(db: Database) -> None:
    report = await _open_report(db)

    with pytest.raises(ValidationFailed) as exc:
        await transition_problem_report_use_case(
            db=db,
            report_id=report.id,
            change=ProblemStatusChange(status="In Progress"),
            actor=MANAGER,
        )
    assert exc.value.code == "PROBLEM_REPORT_RCA_REQUIRED"
    assert (await get_problem_report_use_case(db=db, report_id=report.id)).status == "Open"


async def test_full_lifecycle_notifies_submitter(db: Database) -> None:
    report = await _open_report(db)

    started = await transition_problem_report_use_case(
        db=db,
        report_id=report.id,
        change=ProblemStatusChange(status="In Progress", rca="Disk space issues on backup server"),
        actor=MANAGER,
    )
    assert started.status == "In Progress"
    assert started.rca == "Disk space issues on backup server"
    assert started.closed_at is None

    closed = await transition_problem_report_use_case(
        db=db,
        report_id=report.id,
        change=ProblemStatusChange(status="Closed", solution="Increased storage capacity"),
        actor=MANAGER,
    )
    assert closed.status == "Closed"
    assert closed.rca == "Disk space issues on backup server"
    assert closed.closed_at is not None

    inbox = await get_notifications_use_case(db=db, user_id=ALICE.emp_id)
    assert inbox.unread_count == 2
    assert {notification.data["status"] for notification in inbox.notifications} == {"In Progress", "Closed"}


async def test_stored_solution_satisfies_close(db: Database) -> None:
    report = await _open_report(db)
    await update_problem_report_use_case(
        db=db, report_id=report.id, data=ProblemReportUpdate(solution="Restarted the backup agent")
    )

    closed = await transition_problem_report_use_case(
        db=db, report_id=report.id, change=ProblemStatusChange(status="Closed"), actor=ALICE
    )
    assert closed.status == "Closed"

    inbox = await get_notifications_use_case(db=db, user_id=ALICE.emp_id)
    assert inbox.notifications == []


async def test_closed_report_is_terminal_and_read_only(db: Database) -> None:
    report = await _open_report(db)
    await transition_problem_report_use_case(
        db=db, report_id=report.id, change=ProblemStatusChange(status="Closed", solution="Fixed"), actor=MANAGER
    )

    with pytest.raises(InvalidTransition) as exc:
        await transition_problem_report_use_case(
            db=db, report_id=report.id, change=ProblemStatusChange(status="Open"), actor=MANAGER
        )
    assert exc.value.code == "PROBLEM_REPORT_INVALID_TRANSITION"

    with pytest.raises(InvalidTransition) as exc:
        await update_problem_report_use_case(
            db=db, report_id=report.id, data=ProblemReportUpdate(problem_statement="Reworded")
        )
    assert exc.value.code == "PROBLEM_REPORT_NOT_EDITABLE"


async def test_update_ignores_nulls_for_required_fields(db: Database) -> None:
    report = await _open_report(db)

    updated = await update_problem_report_use_case(
        db=db,
        report_id=report.id,
        data=ProblemReportUpdate(problem_statement=None, sla_hours=4),
    )
    assert updated.problem_statement == "Backup system failing intermittently"
    assert updated.sla_hours == 4


async def test_missing_problem_report(db: Database) -> None:
    with pytest.raises(NotFound) as exc:
        await transition_problem_report_use_case(
            db=db, report_id="PRB-2025-404", change=ProblemStatusChange(status="Closed"), actor=MANAGER
        )
    assert exc.value.code == "PROBLEM_REPORT_NOT_FOUND"


async def test_list_filters_on_received_time(db: Database) -> None:
    await _open_report(db)
    await _open_report(db, received_at=datetime(2025, 5, 30, 23, 0, tzinfo=timezone.utc))

    assert len(await list_problem_reports_use_case(db=db)) == 2
    may = await list_problem_reports_use_case(db=db, filters=ReportFilters(month="2025-05"))
    assert [report.received_at.day for report in may] == [30]
    assert await list_problem_reports_use_case(db=db, filters=ReportFilters(status="Closed")) == []
