from __future__ import annotations

from seed_data import LOOKUP_LISTS, USERS, seed
from workflowpro.database import Database
from workflowpro.use_cases.directory import list_active_users_use_case
from workflowpro.use_cases.discussions import list_comments_use_case, list_discussions_use_case
from workflowpro.use_cases.lookup_values import list_lookup_lists_use_case
from workflowpro.use_cases.mcl_reports import get_mcl_report_use_case


async def test_seed_populates_an_empty_database_once(empty_db: Database) -> None:
    assert await seed(empty_db) is True
    assert await seed(empty_db) is False

    assert len(await list_active_users_use_case(db=empty_db)) == len(USERS)

    lists = {summary.list_name: summary.value_count for summary in await list_lookup_lists_use_case(db=empty_db)}
    assert lists == {name: len(values) for name, values in LOOKUP_LISTS.items()}

    report = await get_mcl_report_use_case(db=empty_db, report_id="MCL-2025-001")
    assert report.client_name == "TechCorp Solutions"
    assert report.submitted_by == "Alice User"

    [thread] = await list_discussions_use_case(db=empty_db)
    assert thread.comments_count == 1
    assert len(await list_comments_use_case(db=empty_db, thread_id=thread.id)) == 1
