from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response

from sutra_reader.reading import ReaderSession

from api.dependencies import get_reader
from api.schemas import AnnotationIn, ConfirmReadIn, FilterIn

router = APIRouter(tags=["reading"])


@router.post("/progress/read-visible")
async def mark_visible_read(payload: FilterIn, reader: ReaderSession = Depends(get_reader)):
    marked = await reader.mark_visible_read(payload.search, payload.unread_only)
    return {"marked": marked}


@router.post("/progress/{key}/read")
async def mark_read(key: str, reader: ReaderSession = Depends(get_reader)):
    await reader.store.mark_read(key)
    return {"key": key, "read": True}


@router.post("/progress/{key}/confirm")
async def confirm_read(key: str, payload: ConfirmReadIn, reader: ReaderSession = Depends(get_reader)):
    await reader.confirm_read(key, payload.typed)
    return {"key": key, "read": reader.store.is_read(key)}


@router.get("/progress")
def get_progress(reader: ReaderSession = Depends(get_reader)):
    return {"namespace": reader.store.namespace, "progress": reader.store.progress}


@router.get("/annotations/{key}")
def list_annotations(key: str, reader: ReaderSession = Depends(get_reader)):
    return {"annotations": [a.to_dict() for a in reader.store.annotations_for(key)]}


@router.post("/annotations/{key}")
async def add_annotation(key: str, payload: AnnotationIn, reader: ReaderSession = Depends(get_reader)):
    if not reader.auth.authenticated_and_confirmed:
        raise HTTPException(status_code=401, detail="Sign in with a confirmed account to save annotations")
    annotation = await reader.annotate(key, payload.content)
    if annotation is None:
        raise HTTPException(status_code=400, detail="Annotation must not be blank")
    return annotation.to_dict()


@router.get("/snapshot")
def export_snapshot(reader: ReaderSession = Depends(get_reader)):
    return Response(
        content=reader.store.export_snapshot(),
        media_type="application/json",
        headers={"Content-Disposition": 'attachment; filename="reading_data.json"'},
    )


@router.post("/snapshot")
async def import_snapshot(file: UploadFile = File(...), reader: ReaderSession = Depends(get_reader)):
    payload = await file.read()
    if not reader.store.import_snapshot(payload):
        raise HTTPException(status_code=400, detail="Snapshot must be a JSON object")
    return {
        "progress": len(reader.store.progress),
        "annotations": len(reader.store.annotations),
    }
