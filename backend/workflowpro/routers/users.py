"""User maintenance endpoints (admins only)."""
from fastapi import APIRouter, Depends, status

from ..auth import get_current_identity
from ..database import Database, get_db
from ..schemas import UserCreate, UserResponse, UserUpdate
from ..security import Identity
from ..use_cases.directory import (
    create_user_use_case,
    deactivate_user_use_case,
    list_users_use_case,
    update_user_use_case,
)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserResponse])
async def list_users(
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await list_users_use_case(db=db, actor=identity)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    data: UserCreate,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await create_user_use_case(db=db, data=data, actor=identity)


@router.patch("/{emp_id}", response_model=UserResponse)
async def update_user(
    emp_id: str,
    data: UserUpdate,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await update_user_use_case(db=db, emp_id=emp_id, data=data, actor=identity)


@router.delete("/{emp_id}", response_model=UserResponse)
async def deactivate_user(
    emp_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await deactivate_user_use_case(db=db, emp_id=emp_id, actor=identity)
