"""FastAPI routes for scene ingestion."""

from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile
from pydantic import BaseModel

from controllers.scene_controller import analyze_scene, get_pipeline, rejection, run_pipeline

router = APIRouter(prefix="/api", tags=["scene"])


class ScenePayload(BaseModel):
    # Every field is optional here so missing ones get the structured rejection.
    imageBase64: Optional[str] = None
    deviceId: Optional[str] = None
    mimeType: Optional[str] = None
    userId: Optional[str] = None
    timestamp: Optional[str] = None


@router.post("/scene/analyze", summary="Buffer a frame and generate music if the scene changed")
async def analyze_scene_route(request: Request, payload: ScenePayload):
    try:
        return await analyze_scene(request, payload.model_dump())
    except HTTPException:
        raise
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.post("/analyze-scene", summary="Legacy alias of /api/scene/analyze", deprecated=True)
async def legacy_analyze_scene_route(request: Request, payload: ScenePayload):
    return await analyze_scene_route(request, payload)


@router.post("/scene/upload", summary="Multipart variant of /api/scene/analyze")
async def upload_scene_route(
    request: Request,
    image: UploadFile = File(...),
    device_id: str = Form(...),
    user_id: Optional[str] = Form(None),
):
    """Handle a raw image upload from a device.

    Args:
        request: The FastAPI request containing application state.
        image: Uploaded frame.
        device_id: Capturing device id.
        user_id: Optional owner of the device.
    """
    try:
        image_bytes = await image.read()
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise HTTPException(status_code=400, detail="Unable to read uploaded image.") from exc

    if not image_bytes:
        return rejection("Uploaded image is empty")

    try:
        return await run_pipeline(get_pipeline(request), image_bytes, device_id, image.content_type, user_id)
    except HTTPException:
        raise
    except Exception as exc:  # pylint: disable=broad-exception-caught
        raise HTTPException(status_code=500, detail=str(exc)) from exc
