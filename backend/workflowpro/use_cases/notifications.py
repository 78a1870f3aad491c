"""Notification use-cases: inbox queries, read/unread state, and event fan-out helpers."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from ..database import Database
from ..domain_errors import NotFoundOrUnauthorized
from ..models import Notification
from ..schemas import (
    NotificationCreate,
    NotificationFilters,
    NotificationList,
    NotificationOut,
    ProblemReportStatus,
)
from ..services.report_rules import now_utc

logger = logging.getLogger(__name__)

notifications = Notification.__table__

_MCL_TITLES = {
    "approved": ("MCL Report Approved", "Your MCL report {report_id} has been approved"),
    "rejected": ("MCL Report Rejected", "Your MCL report {report_id} has been rejected"),
}
_PROBLEM_TITLES = {
    ProblemReportStatus.IN_PROGRESS: ("Problem Report Updated", "Problem report {report_id} is now in progress"),
    ProblemReportStatus.CLOSED: ("Problem Report Closed", "Problem report {report_id} has been closed"),
}


def _not_expired(at: datetime):
    return or_(notifications.c.expires_at.is_(None), notifications.c.expires_at > at)


def _not_found() -> NotFoundOrUnauthorized:
    return NotFoundOrUnauthorized(
        code="NOTIFICATION_NOT_FOUND",
        message="Notification not found",
    )


async def insert_notification(conn: AsyncConnection, data: NotificationCreate) -> NotificationOut:
    """Insert on a caller-owned connection (joins the caller's transaction)."""
    row = (
        await conn.execute(
            insert(notifications)
            .values(**data.model_dump(), status="unread")
            .returning(*notifications.c)
        )
    ).one()
    return NotificationOut.model_validate(row)


async def notify_mcl_status_change(
    conn: AsyncConnection,
    *,
    report_id: str,
    submitter_id: str,
    actor_id: str,
    action: str,
) -> NotificationOut | None:
    if submitter_id == actor_id:
        return None
    title, message = _MCL_TITLES[action]
    return await insert_notification(
        conn,
        NotificationCreate(
            user_id=submitter_id,
            source_user_id=actor_id,
            title=title,
            message=message.format(report_id=report_id),
            type="mcl_report",
            priority="high" if action == "rejected" else "medium",
            data={"reportId": report_id, "action": action},
            action_url=f"/mcl-reports/{report_id}",
        ),
    )


async def notify_problem_status_change(
    conn: AsyncConnection,
    *,
    report_id: str,
    submitter_id: str,
    actor_id: str,
    status: ProblemReportStatus,
) -> NotificationOut | None:
    if submitter_id == actor_id or status not in _PROBLEM_TITLES:
        return None
    title, message = _PROBLEM_TITLES[status]
    return await insert_notification(
        conn,
        NotificationCreate(
            user_id=submitter_id,
            source_user_id=actor_id,
            title=title,
            message=message.format(report_id=report_id),
            type="problem_report",
            priority="medium",
            data={"reportId": report_id, "status": status.value},
            action_url=f"/problem-reports/{report_id}",
        ),
    )


async def create_notification_use_case(*, db: Database, data: NotificationCreate) -> NotificationOut:
    async def _work(conn: AsyncConnection) -> NotificationOut:
        return await insert_notification(conn, data)

    return await db.write("Create notification", _work)


async def get_notifications_use_case(
    *,
    db: Database,
    user_id: str,
    filters: NotificationFilters | None = None,
) -> NotificationList:
    """Newest-first inbox page plus the unread badge count; expired rows are hidden."""
    filters = filters or NotificationFilters()

    async def _work(conn: AsyncConnection) -> NotificationList:
        now = now_utc()
        query = select(notifications).where(notifications.c.user_id == user_id, _not_expired(now))
        if filters.status:
            query = query.where(notifications.c.status == filters.status)
        if filters.type:
            query = query.where(notifications.c.type == filters.type)
        if filters.priority:
            query = query.where(notifications.c.priority == filters.priority)
        query = (
            query.order_by(notifications.c.created_at.desc(), notifications.c.id)
            .limit(filters.limit)
            .offset(filters.offset)
        )
        rows = (await conn.execute(query)).all()
        unread = await _count_unread(conn, user_id=user_id, at=now)
        return NotificationList(
            notifications=[NotificationOut.model_validate(row) for row in rows],
            unread_count=unread,
        )

    return await db.read("Get notifications", _work)


async def _count_unread(conn: AsyncConnection, *, user_id: str, at: datetime) -> int:
    return (
        await conn.execute(
            select(func.count())
            .select_from(notifications)
            .where(
                notifications.c.user_id == user_id,
                notifications.c.status == "unread",
                _not_expired(at),
            )
        )
    ).scalar_one()


async def get_unread_count_use_case(*, db: Database, user_id: str) -> int:
    async def _work(conn: AsyncConnection) -> int:
        return await _count_unread(conn, user_id=user_id, at=now_utc())

    return await db.read("Get unread notification count", _work)


async def _get_owned(conn: AsyncConnection, *, notification_id: str, user_id: str) -> NotificationOut:
    row = (
        await conn.execute(
            select(notifications).where(
                notifications.c.id == notification_id,
                notifications.c.user_id == user_id,
            )
        )
    ).first()
    if row is None:
        raise _not_found()
    return NotificationOut.model_validate(row)


async def mark_as_read_use_case(*, db: Database, notification_id: str, user_id: str) -> NotificationOut:
    """Idempotent: read_at is stamped once, by the first call."""

    async def _work(conn: AsyncConnection) -> NotificationOut:
        await conn.execute(
            update(notifications)
            .where(
                notifications.c.id == notification_id,
                notifications.c.user_id == user_id,
                notifications.c.status == "unread",
            )
            .values(status="read", read_at=now_utc())
        )
        return await _get_owned(conn, notification_id=notification_id, user_id=user_id)

    return await db.write("Mark notification as read", _work)


async def mark_all_as_read_use_case(*, db: Database, user_id: str) -> int:
    async def _work(conn: AsyncConnection) -> int:
        result = await conn.execute(
            update(notifications)
            .where(notifications.c.user_id == user_id, notifications.c.status == "unread")
            .values(status="read", read_at=now_utc())
        )
        return result.rowcount or 0

    return await db.write("Mark all notifications as read", _work)


async def archive_notification_use_case(*, db: Database, notification_id: str, user_id: str) -> NotificationOut:
    async def _work(conn: AsyncConnection) -> NotificationOut:
        await conn.execute(
            update(notifications)
            .where(
                notifications.c.id == notification_id,
                notifications.c.user_id == user_id,
            )
            .values(
                status="archived",
                read_at=func.coalesce(notifications.c.read_at, now_utc()),
            )
        )
        return await _get_owned(conn, notification_id=notification_id, user_id=user_id)

    return await db.write("Archive notification", _work)


async def delete_notification_use_case(*, db: Database, notification_id: str, user_id: str) -> None:
    """Owner-scoped delete; someone else's notification looks like a missing one."""

    async def _work(conn: AsyncConnection) -> None:
        result = await conn.execute(
            delete(notifications).where(
                notifications.c.id == notification_id,
                notifications.c.user_id == user_id,
            )
        )
        if not result.rowcount:
            raise _not_found()

    await db.write("Delete notification", _work)


async def purge_expired_notifications_use_case(*, db: Database, now: datetime | None = None) -> int:
    async def _work(conn: AsyncConnection) -> int:
        at = now or now_utc()
        result = await conn.execute(
            delete(notifications).where(
                notifications.c.expires_at.is_not(None),
                notifications.c.expires_at <= at,
            )
        )
        return result.rowcount or 0

    purged = await db.write("Cleanup expired notifications", _work)
    logger.info("Purged %d expired notifications", purged)
    return purged
