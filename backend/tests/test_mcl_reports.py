from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from workflowpro.database import Database
from workflowpro.domain_errors import InvalidTransition, NotFound, Unauthorized, ValidationFailed
from workflowpro.schemas import MCLReportCreate, MCLReportUpdate, ReportFilters
from workflowpro.services.report_rules import now_utc
from workflowpro.use_cases.mcl_reports import (
    approve_mcl_report_use_case,
    create_mcl_report_use_case,
    get_mcl_report_use_case,
    list_mcl_reports_use_case,
    reject_mcl_report_use_case,
    transition_mcl_report_use_case,
    update_mcl_report_use_case,
)
from workflowpro.use_cases.notifications import get_notifications_use_case

from tests.conftest import ADMIN, ALICE, MANAGER, OTHER_MANAGER

ENTRY = datetime(2025, 6, 14, 9, 0, tzinfo=timezone.utc)


def _report(**overrides) -> MCLReportCreate:
    payload = {
        "entry_at": ENTRY,
        "exit_at": ENTRY + timedelta(hours=8),
        "remark": "Performed routine system maintenance",
    }
    payload.update(overrides)
    return MCLReportCreate(**payload)


async def test_create_issues_sequential_ids_and_starts_pending(db: Database) -> None:
    first = await create_mcl_report_use_case(db=db, data=_report(), submitter=ALICE)
    second = await create_mcl_report_use_case(db=db, data=_report(), submitter=ALICE)

    year = now_utc().year
    assert first.id == f"MCL-{year}-001"
    assert second.id == f"MCL-{year}-002"
    assert first.status == "Pending Approval"
    assert first.user_id == ALICE.emp_id
    assert first.submitted_by == "Alice User"
    assert first.entry_at == ENTRY


async def test_concurrent_creates_get_distinct_ids(db: Database) -> None:
    created = await asyncio.gather(
        *(create_mcl_report_use_case(db=db, data=_report(), submitter=ALICE) for _ in range(3))
    )
    assert len({report.id for report in created}) == 3


async def test_create_rejects_exit_before_entry(db: Database) -> None:
    with pytest.raises(ValidationFailed) as exc:
        await create_mcl_report_use_case(db=db, data=_report(exit_at=ENTRY - timedelta(hours=1)), submitter=ALICE)
    assert exc.value.code == "MCL_REPORT_INVALID_VISIT_WINDOW"
    assert await list_mcl_reports_use_case(db=db) == []


async def test_create_with_unknown_lookup_value_is_a_validation_error(db: Database) -> None:
    with pytest.raises(ValidationFailed) as exc:
        await create_mcl_report_use_case(db=db, data=_report(client_name_id=9999), submitter=ALICE)
    assert exc.value.code == "MCL_REPORT_INVALID_REFERENCE"


async def test_manager_approval_stamps_report_and_notifies_submitter(db: Database) -> None:
    report = await create_mcl_report_use_case(db=db, data=_report(), submitter=ALICE)

    approved = await approve_mcl_report_use_case(db=db, report_id=report.id, actor=MANAGER)

    assert approved.status == "Approved"
    assert approved.approved_by == MANAGER.emp_id
    assert approved.approved_at is not None
    assert approved.rejected_by is None

    inbox = await get_notifications_use_case(db=db, user_id=ALICE.emp_id)
    assert inbox.unread_count == 1
    notification = inbox.notifications[0]
    assert notification.type == "mcl_report"
    assert notification.source_user_id == MANAGER.emp_id
    assert report.id in notification.message
    assert notification.action_url == f"/mcl-reports/{report.id}"


async def test_plain_user_cannot_approve(db: Database) -> None:
    report = await create_mcl_report_use_case(db=db, data=_report(), submitter=ALICE)

    with pytest.raises(Unauthorized) as exc:
        await approve_mcl_report_use_case(db=db, report_id=report.id, actor=ALICE)

    assert exc.value.code == "MCL_REPORT_APPROVAL_FORBIDDEN"
    assert (await get_mcl_report_use_case(db=db, report_id=report.id)).status == "Pending Approval"


async def test_decided_report_cannot_be_decided_again(db: Database) -> None:
    report = await create_mcl_report_use_case(db=db, data=_report(), submitter=ALICE)
    await reject_mcl_report_use_case(db=db, report_id=report.id, actor=MANAGER, reason="Missing visit purpose")

    with pytest.raises(InvalidTransition) as exc:
        await approve_mcl_report_use_case(db=db, report_id=report.id, actor=ADMIN)

    assert exc.value.code == "MCL_REPORT_INVALID_TRANSITION"
    stored = await get_mcl_report_use_case(db=db, report_id=report.id)
    assert stored.status == "Rejected"
    assert stored.rejected_by == MANAGER.emp_id
    assert stored.rejection_reason == "Missing visit purpose"
    assert stored.approved_by is None


async def test_transition_back_to_pending_is_rejected(db: Database) -> None:
    report = await create_mcl_report_use_case(db=db, data=_report(), submitter=ALICE)

    with pytest.raises(InvalidTransition):
        await transition_mcl_report_use_case(db=db, report_id=report.id, actor=MANAGER, target="Pending Approval")

    decided = await transition_mcl_report_use_case(db=db, report_id=report.id, actor=ADMIN, target="Approved")
    assert decided.status == "Approved"
    assert decided.approved_by == ADMIN.emp_id


async def test_concurrent_approvals_exactly_one_wins(db: Database) -> None:
    report = await create_mcl_report_use_case(db=db, data=_report(), submitter=ALICE)

    results = await asyncio.gather(
        approve_mcl_report_use_case(db=db, report_id=report.id, actor=MANAGER),
        approve_mcl_report_use_case(db=db, report_id=report.id, actor=OTHER_MANAGER),
        return_exceptions=True,
    )

    successes = [result for result in results if not isinstance(result, Exception)]
    failures = [result for result in results if isinstance(result, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], InvalidTransition)

    inbox = await get_notifications_use_case(db=db, user_id=ALICE.emp_id)
    assert inbox.unread_count == 1


async def test_self_approval_does_not_notify(db: Database) -> None:
    report = await create_mcl_report_use_case(db=db, data=_report(), submitter=MANAGER)
    await approve_mcl_report_use_case(db=db, report_id=report.id, actor=MANAGER)

    inbox = await get_notifications_use_case(db=db, user_id=MANAGER.emp_id)
    assert inbox.notifications == []


async def test_missing_report(db: Database) -> None:
    with pytest.raises(NotFound) as exc:
        await approve_mcl_report_use_case(db=db, report_id="MCL-2025-404", actor=MANAGER)
    assert exc.value.code == "MCL_REPORT_NOT_FOUND"

    with pytest.raises(NotFound):
        await get_mcl_report_use_case(db=db, report_id="MCL-2025-404")


async def test_rejected_report_stays_editable_but_approved_does_not(db: Database) -> None:
    rejected = await create_mcl_report_use_case(db=db, data=_report(), submitter=ALICE)
    await reject_mcl_report_use_case(db=db, report_id=rejected.id, actor=MANAGER)

    edited = await update_mcl_report_use_case(
        db=db, report_id=rejected.id, data=MCLReportUpdate(remark="Added the missing purpose")
    )
    assert edited.remark == "Added the missing purpose"
    assert edited.status == "Rejected"

    approved = await create_mcl_report_use_case(db=db, data=_report(), submitter=ALICE)
    await approve_mcl_report_use_case(db=db, report_id=approved.id, actor=MANAGER)
    with pytest.raises(InvalidTransition) as exc:
        await update_mcl_report_use_case(db=db, report_id=approved.id, data=MCLReportUpdate(remark="Too late"))
    assert exc.value.code == "MCL_REPORT_NOT_EDITABLE"


async def test_update_checks_visit_window_against_stored_times(db: Database) -> None:
    report = await create_mcl_report_use_case(db=db, data=_report(), submitter=ALICE)

    with pytest.raises(ValidationFailed):
        await update_mcl_report_use_case(
            db=db, report_id=report.id, data=MCLReportUpdate(exit_at=ENTRY - timedelta(minutes=5))
        )


async def test_list_filters_by_submitter_month_and_status(db: Database) -> None:
    june = await create_mcl_report_use_case(db=db, data=_report(), submitter=ALICE)
    july_entry = datetime(2025, 7, 2, 8, 0, tzinfo=timezone.utc)
    await create_mcl_report_use_case(
        db=db,
        data=_report(entry_at=july_entry, exit_at=july_entry + timedelta(hours=4)),
        submitter=ALICE,
    )
    await create_mcl_report_use_case(db=db, data=_report(), submitter=MANAGER)
    await approve_mcl_report_use_case(db=db, report_id=june.id, actor=MANAGER)

    by_alice = await list_mcl_reports_use_case(db=db, filters=ReportFilters(submitter_id=ALICE.emp_id))
    assert len(by_alice) == 2

    june_reports = await list_mcl_reports_use_case(db=db, filters=ReportFilters(month="2025-06"))
    assert len(june_reports) == 2

    approved = await list_mcl_reports_use_case(db=db, filters=ReportFilters(status="Approved"))
    assert [report.id for report in approved] == [june.id]

    window = await list_mcl_reports_use_case(
        db=db,
        filters=ReportFilters(date_from=datetime(2025, 7, 1, tzinfo=timezone.utc)),
    )
    assert len(window) == 1
