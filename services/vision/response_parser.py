"""Helpers to pull text and usage out of Responses API results."""

from __future__ import annotations

from typing import Any, Dict, Optional


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def extract_text(response: Any) -> str:
    """Return the first output_text entry from the response, or an empty string."""
    output_text = _field(response, "output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text
    for item in _field(response, "output") or []:
        if _field(item, "type") != "message":
            continue
        for content in _field(item, "content") or []:
            if _field(content, "type") == "output_text":
                return _field(content, "text") or ""
    return ""


def extract_usage(response: Any) -> Dict[str, Optional[int]]:
    """Return token usage if present."""
    usage = _field(response, "usage")
    return {
        "input_tokens": _field(usage, "input_tokens") if usage else None,
        "output_tokens": _field(usage, "output_tokens") if usage else None,
    }
