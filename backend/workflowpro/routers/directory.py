"""Directory endpoints (safe, limited user listings).

These let the UI resolve employee ids to names and roles, and suggest names
for @mentions.
"""

from fastapi import APIRouter, Depends

from ..auth import get_current_identity
from ..database import Database, get_db
from ..schemas import DirectoryUser
from ..security import Identity
from ..use_cases.directory import get_user_use_case, list_active_users_use_case

router = APIRouter(prefix="/directory", tags=["directory"])


@router.get("/users", response_model=list[DirectoryUser])
async def list_users(
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await list_active_users_use_case(db=db)


@router.get("/users/{emp_id}", response_model=DirectoryUser)
async def get_user(
    emp_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await get_user_use_case(db=db, emp_id=emp_id)
