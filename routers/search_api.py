from fastapi import APIRouter, HTTPException, Depends, Query
from services.metadata import GoogleBooksClient, MetadataLookupError
from dependencies import get_current_user_id, get_metadata_client

s_api = APIRouter()

@s_api.get("/search/google")
async def search(
    q: str,
    max_results: int = Query(10, alias="maxResults", ge=1, le=40),
    uid: str = Depends(get_current_user_id),
    lookup: GoogleBooksClient = Depends(get_metadata_client),
):
    # Check if the search term is empty
    if not q.strip():
        raise HTTPException(status_code=400, detail={"kind": "validation_error", "message": "Search query is required"})

    try:
        books, cached = await lookup.search(q.strip(), max_results)
    except MetadataLookupError as e:
        raise HTTPException(status_code=500, detail={"kind": "lookup_error", "message": e.message})

    return {"books": books, "cached": cached}
