"""Lookup list endpoints (dropdown values for report forms)."""
from fastapi import APIRouter, Depends, status

from ..auth import get_current_identity
from ..database import Database, get_db
from ..schemas import LookupListSummary, LookupValueCreate, LookupValueMove, LookupValueOut, LookupValueRename
from ..security import Identity
from ..use_cases.lookup_values import (
    create_lookup_value_use_case,
    delete_lookup_value_use_case,
    list_lookup_lists_use_case,
    list_lookup_values_use_case,
    move_lookup_value_use_case,
    rename_lookup_value_use_case,
)

router = APIRouter(prefix="/lookup-lists", tags=["lookup-lists"])


@router.get("", response_model=list[LookupListSummary])
async def list_lists(
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await list_lookup_lists_use_case(db=db)


@router.get("/{list_name}/values", response_model=list[LookupValueOut])
async def list_values(
    list_name: str,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await list_lookup_values_use_case(db=db, list_name=list_name)


@router.post("/{list_name}/values", response_model=LookupValueOut, status_code=status.HTTP_201_CREATED)
async def create_value(
    list_name: str,
    data: LookupValueCreate,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await create_lookup_value_use_case(db=db, list_name=list_name, data=data, actor=identity)


@router.put("/{list_name}/values/{value_id}", response_model=LookupValueOut)
async def rename_value(
    list_name: str,
    value_id: int,
    data: LookupValueRename,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await rename_lookup_value_use_case(
        db=db, list_name=list_name, value_id=value_id, data=data, actor=identity
    )


@router.delete("/{list_name}/values/{value_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_value(
    list_name: str,
    value_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    await delete_lookup_value_use_case(db=db, list_name=list_name, value_id=value_id, actor=identity)


@router.post("/{list_name}/values/{value_id}/move", response_model=list[LookupValueOut])
async def move_value(
    list_name: str,
    value_id: int,
    data: LookupValueMove,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await move_lookup_value_use_case(
        db=db, list_name=list_name, value_id=value_id, direction=data.direction, actor=identity
    )
