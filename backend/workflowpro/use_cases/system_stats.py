"""Headline counts for the manager dashboard."""
from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncConnection

from ..database import Database
from ..models import DiscussionPost, MCLReport, ProblemReport, User
from ..schemas import (
    DiscussionStats,
    MCLReportStats,
    MCLReportStatus,
    ProblemReportStats,
    ProblemReportStatus,
    SystemStats,
    UserStats,
)
from ..security import Identity, Role, require_role

users = User.__table__
mcl_reports = MCLReport.__table__
problem_reports = ProblemReport.__table__
posts = DiscussionPost.__table__


def _status_counts(table, labels: dict[str, str]):
    """COUNT(*) plus one COUNT(*) FILTER (WHERE status = ...) per label."""
    return select(
        func.count().label("total_reports"),
        *(func.count().filter(table.c.status == status).label(label) for label, status in labels.items()),
    ).select_from(table)


_USER_STATS = select(
    func.count().label("total_users"),
    func.count().filter(users.c.is_active.is_(True)).label("active_users"),
    func.count().filter(users.c.role == Role.ADMIN.value).label("admin_count"),
    func.count().filter(users.c.role == Role.MANAGER.value).label("manager_count"),
    func.count().filter(users.c.role == Role.USER.value).label("user_count"),
).select_from(users)

_MCL_STATS = _status_counts(
    mcl_reports,
    {
        "pending_reports": MCLReportStatus.PENDING_APPROVAL.value,
        "approved_reports": MCLReportStatus.APPROVED.value,
        "rejected_reports": MCLReportStatus.REJECTED.value,
    },
)

_PROBLEM_STATS = _status_counts(
    problem_reports,
    {
        "open_reports": ProblemReportStatus.OPEN.value,
        "in_progress_reports": ProblemReportStatus.IN_PROGRESS.value,
        "closed_reports": ProblemReportStatus.CLOSED.value,
    },
)

_DISCUSSION_STATS = (
    select(
        func.count().label("total_discussions"),
        func.count().filter(posts.c.is_active.is_(True)).label("active_discussions"),
    )
    .select_from(posts)
    .where(posts.c.parent_post_id.is_(None))
)


async def get_system_stats_use_case(*, db: Database, actor: Identity) -> SystemStats:
    require_role(
        actor,
        Role.MANAGER,
        code="SYSTEM_STATS_FORBIDDEN",
        message="Only managers and admins can view system statistics",
    )

    async def _work(conn: AsyncConnection) -> SystemStats:
        return SystemStats(
            users=UserStats.model_validate((await conn.execute(_USER_STATS)).one()),
            mcl_reports=MCLReportStats.model_validate((await conn.execute(_MCL_STATS)).one()),
            problem_reports=ProblemReportStats.model_validate((await conn.execute(_PROBLEM_STATS)).one()),
            discussions=DiscussionStats.model_validate((await conn.execute(_DISCUSSION_STATS)).one()),
        )

    return await db.read("Get system stats", _work)
