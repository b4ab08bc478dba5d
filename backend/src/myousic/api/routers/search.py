from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from myousic.api.deps import get_search_index
from myousic.core.search_index import SearchIndex

router = APIRouter()


@router.get("")
async def search(
    q: str = Query(""),
    type: Optional[str] = None,
    limit: Optional[int] = None,
    index: SearchIndex = Depends(get_search_index),
):
    """Fuzzy search over songs, albums and artists.

    Returns matching ids per kind, best match first. ``type`` narrows the
    search to one kind; ``limit=0`` lifts the per-kind caps.
    """
    try:
        result = await index.query(q, type=type, limit=limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()
