"""Discussion thread and comment endpoints."""
from typing import Optional, Union

from fastapi import APIRouter, Depends, status

from ..auth import get_current_identity
from ..database import Database, get_db
from ..schemas import CommentCreate, CommentOut, DiscussionCreate, DiscussionOut, PostUpdate, ReportType
from ..security import Identity
from ..use_cases.discussions import (
    create_comment_use_case,
    create_discussion_use_case,
    get_discussion_use_case,
    list_comments_use_case,
    list_discussions_use_case,
    update_post_use_case,
)

router = APIRouter(prefix="/discussions", tags=["discussions"])


@router.get("", response_model=list[DiscussionOut])
async def list_discussions(
    report_type: Optional[ReportType] = None,
    report_id: Optional[str] = None,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await list_discussions_use_case(db=db, report_type=report_type, report_id=report_id)


@router.post("", response_model=DiscussionOut, status_code=status.HTTP_201_CREATED)
async def create_discussion(
    data: DiscussionCreate,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await create_discussion_use_case(db=db, data=data, author=identity)


@router.get("/{thread_id}", response_model=DiscussionOut)
async def get_discussion(
    thread_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await get_discussion_use_case(db=db, thread_id=thread_id)


@router.patch("/{post_id}", response_model=Union[DiscussionOut, CommentOut])
async def update_post(
    post_id: int,
    data: PostUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await update_post_use_case(db=db, post_id=post_id, data=data)


@router.get("/{thread_id}/comments", response_model=list[CommentOut])
async def list_comments(
    thread_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await list_comments_use_case(db=db, thread_id=thread_id)


@router.post("/{thread_id}/comments", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
async def create_comment(
    thread_id: int,
    data: CommentCreate,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await create_comment_use_case(db=db, thread_id=thread_id, author=identity, content=data.content)
