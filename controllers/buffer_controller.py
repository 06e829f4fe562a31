"""Controllers for inspecting and clearing the image buffer."""

from __future__ import annotations

import asyncio
from typing import Any, Dict

from fastapi import HTTPException, Request
from fastapi.responses import Response

from controllers.scene_controller import get_pipeline
from models.pipeline_models import utc_now_iso
from services.errors import ImageProcessingError
from services.thumbnail_generator import ThumbnailGenerator


async def buffer_stats(request: Request) -> Dict[str, Any]:
	pipeline = get_pipeline(request)
	return {"success": True, "stats": pipeline.buffer.stats(), "timestamp": utc_now_iso()}


async def recent_images(request: Request, device_id: str, limit: int = 10) -> Dict[str, Any]:
	"""Return metadata for a device's newest buffered images."""
	pipeline = get_pipeline(request)
	images = [
		{**record.metadata(), "hasBuffer": bool(record.data), "hasBase64": bool(record.data)}
		for record in pipeline.buffer.recent(device_id, limit)
	]
	return {
		"success": True,
		"deviceId": device_id,
		"images": images,
		"count": len(images),
		"timestamp": utc_now_iso(),
	}


async def image_thumbnail(request: Request, device_id: str, image_id: str) -> Response:
	"""Return a PNG thumbnail of one buffered image.

	Raises:
		HTTPException(404) if the image is not buffered for this device.
	"""
	pipeline = get_pipeline(request)
	record = pipeline.buffer.get(image_id)
	if record is None or record.device_id != device_id:
		raise HTTPException(status_code=404, detail="Image not found in buffer")

	try:
		png = await asyncio.to_thread(ThumbnailGenerator().create_thumbnail, record.data)
	except ImageProcessingError as exc:
		raise HTTPException(status_code=422, detail=str(exc)) from exc
	return Response(content=png, media_type="image/png")


async def clear_buffer(request: Request, device_id: str) -> Dict[str, Any]:
	pipeline = get_pipeline(request)
	removed = pipeline.buffer.clear(device_id)
	return {
		"success": True,
		"removed": removed,
		"message": f"Buffer cleared for device: {device_id}",
		"timestamp": utc_now_iso(),
	}
