"""Controllers for stored music, run history and pipeline state."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import Request
from fastapi.responses import JSONResponse

from controllers.scene_controller import get_pipeline, rejection
from models.pipeline_models import utc_now_iso


async def latest_music(request: Request, device_id: str) -> JSONResponse:
	"""Return the latest stored track for a device, or a 404 rejection."""
	entry = get_pipeline(request).store.latest(device_id)
	if entry is None:
		return rejection(f"No music found for device: {device_id}", status_code=404)
	return JSONResponse(content={"success": True, "data": entry.to_response(), "timestamp": utc_now_iso()})


async def all_music(request: Request) -> Dict[str, Any]:
	entries = get_pipeline(request).store.all()
	return {"success": True, "music": [e.to_response() for e in entries], "count": len(entries)}


async def music_stats(request: Request) -> Dict[str, Any]:
	return {"success": True, "stats": get_pipeline(request).store.stats(), "timestamp": utc_now_iso()}


async def clear_music(request: Request, device_id: str) -> Dict[str, Any]:
	removed = get_pipeline(request).store.clear(device_id)
	return {"success": True, "removed": removed, "deviceId": device_id, "timestamp": utc_now_iso()}


async def music_history(request: Request, device_id: str, limit: int = 20) -> JSONResponse:
	"""Return the device's run history, newest first."""
	history = get_pipeline(request).history
	if history is None:
		return rejection("Run history is not enabled", status_code=404)
	runs = await history.list_for_device(device_id, limit=limit)
	return JSONResponse(
		content={"success": True, "deviceId": device_id, "runs": [r.to_response() for r in runs], "count": len(runs)}
	)


async def pipeline_state(request: Request, device_id: str) -> Dict[str, Any]:
	pipeline = get_pipeline(request)
	return {
		"deviceId": device_id,
		"stage": pipeline.stage(device_id).value,
		"isProcessing": pipeline.is_processing(device_id),
		"hasMusic": pipeline.store.has(device_id),
		"timestamp": utc_now_iso(),
	}


async def cancel_pipeline(request: Request, device_id: str) -> Dict[str, Any]:
	cancelled = get_pipeline(request).cancel(device_id)
	return {"deviceId": device_id, "cancelled": cancelled, "timestamp": utc_now_iso()}
