from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from mealweek.api.routes.weeks import get_runtime
from mealweek.infra.Runtime import Runtime
from mealweek.utilities.validators import DataModeInput

router = APIRouter()


@router.get('/api/sync/status')
def sync_status(runtime: Runtime = Depends(get_runtime)):
    return runtime.sync.status.to_dict()


@router.post('/api/sync/force')
async def force_sync(runtime: Runtime = Depends(get_runtime)):
    """Push the whole state now; 503 when the push did not reach the store."""
    result = await runtime.sync.force_sync()
    if not result.success:
        return JSONResponse(status_code=503, content=result.to_dict())
    return result.to_dict()


@router.post('/api/sync/reconnect')
async def reconnect(runtime: Runtime = Depends(get_runtime)):
    result = await runtime.sync.reconnect()
    return {"result": result.to_dict(), "status": runtime.sync.status.to_dict()}


@router.get('/api/sync/mode')
def get_mode(runtime: Runtime = Depends(get_runtime)):
    return {"mode": runtime.sync.status.data_mode}


@router.put('/api/sync/mode')
async def set_mode(payload: DataModeInput, runtime: Runtime = Depends(get_runtime)):
    result = await runtime.sync.set_data_mode(payload.mode)
    return {"mode": payload.mode, "result": result.to_dict(), "status": runtime.sync.status.to_dict()}
