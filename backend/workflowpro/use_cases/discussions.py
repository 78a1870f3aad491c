"""Discussion threads and comments; comments fan @mentions out as notifications."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection

from ..database import Database
from ..domain_errors import NotFound
from ..models import DiscussionPost, User
from ..schemas import (
    CommentOut,
    DiscussionCreate,
    DiscussionOut,
    NotificationCreate,
    NotificationOut,
    PostUpdate,
)
from ..security import Identity
from ..services.mentions import extract_mentions
from .directory import resolve_name_to_id
from .notifications import insert_notification

logger = logging.getLogger(__name__)

posts = DiscussionPost.__table__
users = User.__table__

MENTION_TITLE = "You were mentioned in a discussion"

_comments = posts.alias("comment")
_comment_count = (
    select(func.count())
    .select_from(_comments)
    .where(_comments.c.parent_post_id == posts.c.id, _comments.c.is_active.is_(True))
    .scalar_subquery()
)

_POST_SELECT = select(
    posts,
    users.c.name.label("author"),
    users.c.role.label("author_role"),
    _comment_count.label("comments_count"),
).select_from(posts.outerjoin(users, posts.c.user_id == users.c.emp_id))


@dataclass(frozen=True)
class CommentPipelineHooks:
    """Collaborators of the comment pipeline; both run on the caller's connection."""

    resolve_recipient: Callable[[AsyncConnection, str], Awaitable[str | None]] = resolve_name_to_id
    insert_notification: Callable[[AsyncConnection, NotificationCreate], Awaitable[NotificationOut]] = (
        insert_notification
    )


def _thread_not_found(thread_id: int) -> NotFound:
    return NotFound(
        code="DISCUSSION_NOT_FOUND",
        message="Discussion not found",
        details={"thread_id": thread_id},
    )


def _to_comment(row, *, notified: list[str] | None = None) -> CommentOut:
    return CommentOut(
        id=row.id,
        thread_id=row.parent_post_id,
        content=row.content,
        user_id=row.user_id,
        is_active=row.is_active,
        is_edited=row.is_edited,
        created_at=row.created_at,
        updated_at=row.updated_at,
        author=row.author,
        author_role=row.author_role,
        notified_user_ids=notified or [],
    )


async def _load_post(conn: AsyncConnection, post_id: int):
    return (await conn.execute(_POST_SELECT.where(posts.c.id == post_id))).first()


async def _ensure_open_thread(conn: AsyncConnection, thread_id: int) -> None:
    row = (
        await conn.execute(
            select(posts.c.id).where(
                posts.c.id == thread_id,
                posts.c.parent_post_id.is_(None),
                posts.c.is_active.is_(True),
            )
        )
    ).first()
    if row is None:
        raise _thread_not_found(thread_id)


async def create_discussion_use_case(*, db: Database, data: DiscussionCreate, author: Identity) -> DiscussionOut:
    async def _work(conn: AsyncConnection) -> DiscussionOut:
        post_id = (
            await conn.execute(
                insert(posts)
                .values(**data.model_dump(), user_id=author.emp_id, parent_post_id=None)
                .returning(posts.c.id)
            )
        ).scalar_one()
        return DiscussionOut.model_validate(await _load_post(conn, post_id))

    return await db.write("Create discussion", _work)


async def list_discussions_use_case(
    *,
    db: Database,
    report_type: str | None = None,
    report_id: str | None = None,
) -> list[DiscussionOut]:
    query = _POST_SELECT.where(posts.c.parent_post_id.is_(None), posts.c.is_active.is_(True))
    if report_type:
        query = query.where(posts.c.report_type == report_type)
    if report_id:
        query = query.where(posts.c.report_id == report_id)
    query = query.order_by(posts.c.created_at.desc(), posts.c.id.desc())

    async def _work(conn: AsyncConnection) -> list[DiscussionOut]:
        rows = (await conn.execute(query)).all()
        return [DiscussionOut.model_validate(row) for row in rows]

    return await db.read("Get discussions", _work)


async def get_discussion_use_case(*, db: Database, thread_id: int) -> DiscussionOut:
    async def _work(conn: AsyncConnection) -> DiscussionOut:
        row = await _load_post(conn, thread_id)
        if row is None or row.parent_post_id is not None:
            raise _thread_not_found(thread_id)
        return DiscussionOut.model_validate(row)

    return await db.read("Get discussion", _work)


async def list_comments_use_case(*, db: Database, thread_id: int) -> list[CommentOut]:
    async def _work(conn: AsyncConnection) -> list[CommentOut]:
        rows = (
            await conn.execute(
                _POST_SELECT.where(posts.c.parent_post_id == thread_id, posts.c.is_active.is_(True)).order_by(
                    posts.c.created_at, posts.c.id
                )
            )
        ).all()
        return [_to_comment(row) for row in rows]

    return await db.read("Get comments", _work)


async def create_comment_use_case(
    *,
    db: Database,
    thread_id: int,
    author: Identity,
    content: str,
    hooks: CommentPipelineHooks | None = None,
) -> CommentOut:
    """Insert a comment and notify everyone it @mentions, all in one transaction.

    Unknown or ambiguous names are skipped. Each recipient is notified once
    per comment, however many times they are mentioned.
    """
    hooks = hooks or CommentPipelineHooks()
    mentioned = extract_mentions(content)

    async def _work(conn: AsyncConnection) -> CommentOut:
        await _ensure_open_thread(conn, thread_id)
        comment_id = (
            await conn.execute(
                insert(posts)
                .values(title="", content=content, user_id=author.emp_id, parent_post_id=thread_id)
                .returning(posts.c.id)
            )
        ).scalar_one()

        recipients: list[str] = []
        for name in mentioned:
            recipient = await hooks.resolve_recipient(conn, name)
            if recipient is None:
                logger.warning("Mentioned user %r not found, skipping notification", name)
                continue
            if recipient not in recipients:
                recipients.append(recipient)

        for recipient in recipients:
            await hooks.insert_notification(
                conn,
                NotificationCreate(
                    user_id=recipient,
                    source_user_id=author.emp_id,
                    title=MENTION_TITLE,
                    message=content[:500],
                    type="discussion",
                    priority="high",
                    data={"threadId": thread_id, "commentId": comment_id},
                    action_url=f"/discussions/{thread_id}",
                ),
            )
        if recipients:
            logger.info("Comment %d on thread %d notified %d user(s)", comment_id, thread_id, len(recipients))

        return _to_comment(await _load_post(conn, comment_id), notified=recipients)

    return await db.write("Create comment", _work)


async def update_post_use_case(*, db: Database, post_id: int, data: PostUpdate) -> DiscussionOut | CommentOut:
    """Edit a thread or a comment. A content change marks the post as edited."""
    changes = {key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None}

    async def _work(conn: AsyncConnection):
        row = await _load_post(conn, post_id)
        if row is None:
            raise NotFound(code="POST_NOT_FOUND", message="Post not found", details={"post_id": post_id})
        values = dict(changes)
        if "content" in values and values["content"] != row.content:
            values["is_edited"] = True
        if row.parent_post_id is not None:
            # Comments have no title.
            values.pop("title", None)
        if values:
            await conn.execute(update(posts).where(posts.c.id == post_id).values(**values))
            row = await _load_post(conn, post_id)
        if row.parent_post_id is None:
            return DiscussionOut.model_validate(row)
        return _to_comment(row)

    return await db.write("Update post", _work)
