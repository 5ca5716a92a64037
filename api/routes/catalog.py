from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from sutra_reader.reading import FilteredSutra, ReaderSession

from api.dependencies import get_reader

router = APIRouter(prefix="/catalog", tags=["catalog"])


def _sutra_payload(sutra: FilteredSutra, reader: ReaderSession) -> dict:
    return {
        "id": sutra.id,
        "title": sutra.title,
        "paragraphs": [
            {
                "index": idx,
                "key": key,
                "text": text,
                "read": reader.store.is_read(key),
                "annotation_count": len(reader.store.annotations_for(key)),
            }
            for (idx, text), key in zip(sutra.paragraphs, sutra.paragraph_keys())
        ],
    }


@router.get("")
def list_catalog(search: str = "", unread_only: bool = False, reader: ReaderSession = Depends(get_reader)):
    filtered = reader.visible_catalog(search, unread_only)
    return {
        "sutras": [_sutra_payload(s, reader) for s in filtered],
        "total": len(reader.catalog.texts),
        "loading_more": reader.catalog.loading_more,
        "syncing": reader.store.syncing,
    }


@router.post("/load-more")
async def load_more(reader: ReaderSession = Depends(get_reader)):
    batch = await reader.catalog.load_more()
    return {"loaded": [s.id for s in batch], "total": len(reader.catalog.texts)}


@router.post("/import")
async def import_catalog(file: UploadFile = File(...), reader: ReaderSession = Depends(get_reader)):
    payload = await file.read()
    reader.catalog.importing = True
    try:
        imported = reader.catalog.import_catalog(payload)
    finally:
        reader.catalog.importing = False
    if imported is None:
        raise HTTPException(status_code=400, detail="Catalog file must contain a JSON array")
    return {"imported": imported, "total": len(reader.catalog.texts)}


@router.get("/search")
def search_catalog(query: str, limit: int = 20, reader: ReaderSession = Depends(get_reader)):
    if not query or not query.strip():
        raise HTTPException(status_code=400, detail="Query must not be empty")
    return {"hits": reader.catalog.search(query, limit=limit)}


@router.get("/{sutra_id}")
def get_sutra(sutra_id: str, reader: ReaderSession = Depends(get_reader)):
    sutra = reader.catalog.get(sutra_id)
    if not sutra:
        raise HTTPException(status_code=404, detail=f"Sutra not found: {sutra_id}")
    return _sutra_payload(FilteredSutra(sutra.id, sutra.title, list(enumerate(sutra.content))), reader)
