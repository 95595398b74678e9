from typing import Optional

from fastapi import APIRouter, Depends

from mealweek.api.routes.weeks import get_runtime
from mealweek.infra.Runtime import Runtime
from mealweek.utilities.validators import MigrationRunInput

router = APIRouter()


@router.post('/api/migration/run')
async def run_migration(payload: Optional[MigrationRunInput] = None, runtime: Runtime = Depends(get_runtime)):
    """Copy local data into the remote store. Always answers with the report."""
    options = payload or MigrationRunInput()
    report = await runtime.run_migration(use_current_state=options.use_current_state)
    return report.to_dict()


@router.get('/api/migration/status')
async def migration_status(runtime: Runtime = Depends(get_runtime)):
    status = await runtime.migration_status()
    return status.model_dump(by_alias=True, exclude_none=True)
