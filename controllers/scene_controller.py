"""Controller for inbound scene images."""

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from models.pipeline_models import PipelineOutcome, utc_now_iso
from services.errors import ValidationError
from services.pipeline import ScenePipeline
from utils.media_validation import decode_image_base64, normalize_mime_type

LOGGER = logging.getLogger(__name__)


def get_pipeline(request: Request) -> ScenePipeline:
    """Retrieve the shared pipeline from the app state."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(status_code=500, detail="Pipeline not initialized.")
    return pipeline


def rejection(message: str, status_code: int = 400) -> JSONResponse:
    """Structured rejection body used instead of running the pipeline."""
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, "timestamp": utc_now_iso()},
    )


async def run_pipeline(
    pipeline: ScenePipeline,
    image_bytes: bytes,
    device_id: Optional[str],
    mime_type: Optional[str],
    user_id: Optional[str],
) -> JSONResponse:
    """Validate ingestion fields, run the pipeline, and map the outcome to HTTP."""
    if not device_id or not device_id.strip():
        return rejection("Device ID is required")
    if not image_bytes:
        return rejection("No image data provided")
    try:
        mime = normalize_mime_type(mime_type)
        LOGGER.info("Processing image from device: %s", device_id)
        result = await pipeline.process(image_bytes, device_id.strip(), mime, user_id)
    except ValidationError as exc:
        return rejection(str(exc))

    status_code = 500 if result.outcome == PipelineOutcome.FAILED else 200
    return JSONResponse(status_code=status_code, content=result.to_response())


async def analyze_scene(request: Request, payload: Dict[str, Any]) -> JSONResponse:
    """Handle the JSON ingestion contract `{imageBase64, deviceId, mimeType?, userId?}`."""
    image_b64 = payload.get("imageBase64")
    device_id = payload.get("deviceId")
    if not image_b64:
        return rejection("No image data provided")
    if not device_id:
        return rejection("Device ID is required")

    try:
        image_bytes, data_url_mime = decode_image_base64(image_b64)
    except ValidationError as exc:
        return rejection(str(exc))

    mime_type = payload.get("mimeType") or data_url_mime
    return await run_pipeline(get_pipeline(request), image_bytes, device_id, mime_type, payload.get("userId"))
