"""Collection read/replace endpoints; a replace is what the sync engine persists."""
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import ValidationError

from mealweek.api.routes.weeks import READ_ONLY_DETAIL, get_runtime
from mealweek.domain.AppState import default_payload
from mealweek.infra.Runtime import Runtime
from mealweek.utilities.validators import CollectionUpdateInput

router = APIRouter()


@router.get('/api/data/{collection}')
def get_collection(collection: str, runtime: Runtime = Depends(get_runtime)):
    if collection not in default_payload():
        raise HTTPException(status_code=404, detail=f"Unknown collection '{collection}'")
    return {"collection": collection, "value": runtime.state.get(collection)}


@router.put('/api/data/{collection}')
def put_collection(collection: str, value: Any = Body(..., embed=True), runtime: Runtime = Depends(get_runtime)):
    try:
        update = CollectionUpdateInput(collection=collection, value=value)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if runtime.sync.status.is_read_only:
        raise HTTPException(status_code=409, detail=READ_ONLY_DETAIL)
    runtime.state.set(update.collection, update.value, reason="api")
    return {"collection": update.collection, "updated": True}
