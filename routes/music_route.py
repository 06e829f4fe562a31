"""FastAPI routes for stored music and pipeline state."""

from fastapi import APIRouter, HTTPException, Query, Request

from controllers.music_controller import (
	all_music,
	cancel_pipeline,
	clear_music,
	latest_music,
	music_history,
	music_stats,
	pipeline_state,
)

router = APIRouter(prefix="/api", tags=["music"])


@router.get("/music")
async def all_music_route(request: Request):
	return await all_music(request)


@router.get("/music/stats")
async def music_stats_route(request: Request):
	return await music_stats(request)


@router.get("/music/latest/{device_id}")
async def latest_music_route(request: Request, device_id: str):
	"""Return the most recent track generated for a device."""
	return await latest_music(request, device_id)


@router.get("/music/history/{device_id}")
async def music_history_route(request: Request, device_id: str, limit: int = Query(20, ge=1, le=200)):
	"""Return every recorded run for a device, newest first."""
	try:
		return await music_history(request, device_id, limit)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))


@router.delete("/music/{device_id}")
async def clear_music_route(request: Request, device_id: str):
	return await clear_music(request, device_id)


@router.get("/pipeline/{device_id}")
async def pipeline_state_route(request: Request, device_id: str):
	"""Return the device's current pipeline stage."""
	return await pipeline_state(request, device_id)


@router.post("/pipeline/{device_id}/cancel")
async def cancel_pipeline_route(request: Request, device_id: str):
	"""Stop waiting on the device's in-flight generation."""
	return await cancel_pipeline(request, device_id)
