"""System statistics endpoint."""
from fastapi import APIRouter, Depends

from ..auth import get_current_identity
from ..database import Database, get_db
from ..schemas import SystemStats
from ..security import Identity
from ..use_cases.system_stats import get_system_stats_use_case

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/stats", response_model=SystemStats)
async def get_stats(
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_db),
):
    return await get_system_stats_use_case(db=db, actor=identity)
