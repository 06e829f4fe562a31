from fastapi import APIRouter, HTTPException, Query, Request

from controllers.buffer_controller import buffer_stats, clear_buffer, image_thumbnail, recent_images

router = APIRouter(prefix="/api/buffer", tags=["buffer"])


@router.get("/stats")
async def buffer_stats_route(request: Request):
	"""Return counts, sizes and timestamps for the image buffer."""
	return await buffer_stats(request)


@router.get("/images/{device_id}")
async def recent_images_route(request: Request, device_id: str, limit: int = Query(10, ge=1, le=100)):
	"""Return metadata for a device's most recent buffered images."""
	return await recent_images(request, device_id, limit)


@router.get("/images/{device_id}/{image_id}/thumbnail")
async def image_thumbnail_route(request: Request, device_id: str, image_id: str):
	"""Return a PNG thumbnail of a buffered image."""
	try:
		return await image_thumbnail(request, device_id, image_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/clear/{device_id}")
async def clear_buffer_route(request: Request, device_id: str):
	"""Drop every buffered image for a device."""
	return await clear_buffer(request, device_id)
