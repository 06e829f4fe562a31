"""Scene-to-music analysis using OpenAI's Responses API with image input."""

import json
import logging
import random
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from openai import AsyncOpenAI

from models.music_models import SceneAnalysisResult
from services.errors import AnalysisError
from services.vision.prompts import (
    FALLBACK_PROMPTS,
    INSTRUMENTAL_KEYWORDS,
    VOCAL_KEYWORDS,
    scene_system_prompt,
    scene_user_prompt,
)
from services.vision.response_parser import extract_text, extract_usage

LOGGER = logging.getLogger(__name__)
DEFAULT_MODEL = "gpt-4o-mini"

SUCCESS_CONFIDENCE = 0.85
FALLBACK_CONFIDENCE = 0.1
TEXT_RESPONSE_DESCRIPTION = "Parsed from text response"

_WRAPPING_QUOTES = re.compile(r"^[\"']|[\"']$")
_WHITESPACE = re.compile(r"\s+")
_DURATION_FRAGMENT = re.compile(r",\s*15\s*seconds?", re.IGNORECASE)


def clean_music_prompt(raw_prompt: str) -> str:
    """Normalize a model-provided prompt into a single lowercase line."""
    text = _WRAPPING_QUOTES.sub("", raw_prompt)
    text = text.replace("\n", " ")
    text = _WHITESPACE.sub(" ", text)
    text = _DURATION_FRAGMENT.sub("", text)
    return text.strip().lower()


def infer_instrumental(prompt: str) -> bool:
    """Guess instrumental vs vocal from keywords, defaulting to instrumental."""
    lowered = prompt.lower()
    has_instrumental = any(keyword in lowered for keyword in INSTRUMENTAL_KEYWORDS)
    has_vocal = any(keyword in lowered for keyword in VOCAL_KEYWORDS)
    return has_instrumental or not has_vocal


def parse_scene_response(raw_response: str) -> Tuple[str, bool, str]:
    """Parse the model reply into `(prompt, make_instrumental, scene_description)`.

    Strict JSON is preferred; anything else is treated as a free-text prompt.
    """
    try:
        parsed = json.loads(raw_response)
    except json.JSONDecodeError:
        LOGGER.warning("Failed to parse scene JSON response, falling back to text parsing")
        parsed = None

    if isinstance(parsed, dict):
        prompt = parsed.get("prompt")
        make_instrumental = parsed.get("makeInstrumental")
        description = parsed.get("sceneDescription")
        if prompt and isinstance(prompt, str) and isinstance(make_instrumental, bool) and description:
            return clean_music_prompt(prompt), make_instrumental, str(description)

    prompt = clean_music_prompt(raw_response)
    return prompt, infer_instrumental(prompt), TEXT_RESPONSE_DESCRIPTION


class SceneAnalyzer:
    """Turn a photo of the wearer's surroundings into a music prompt."""

    def __init__(self, client: Optional[AsyncOpenAI], model: str = DEFAULT_MODEL, max_output_tokens: int = 250) -> None:
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        self.client = client
        self.model = model
        self.max_output_tokens = max_output_tokens

    def _build_input(self, image_base64: str, mime_type: str) -> List[Dict[str, Any]]:
        image_url = f"data:{mime_type};base64,{image_base64}"
        return [
            {"type": "message", "role": "system", "content": [{"type": "input_text", "text": scene_system_prompt()}]},
            {
                "type": "message",
                "role": "user",
                "content": [
                    {"type": "input_image", "image_url": image_url},
                    {"type": "input_text", "text": scene_user_prompt()},
                ],
            },
        ]

    async def analyze(self, image_base64: str, mime_type: str = "image/jpeg") -> SceneAnalysisResult:
        """Return a music prompt for the image; never raises.

        Any request or parsing failure yields one of the fixed fallback prompts
        with a low confidence score.
        """
        start = time.time()
        try:
            raw = await self._request(image_base64, mime_type)
            prompt, make_instrumental, description = parse_scene_response(raw)
            if not prompt:
                raise AnalysisError("Model reply did not contain a usable prompt.")
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("Scene analysis failed, using fallback prompt: %s", exc)
            return self._fallback(start)

        result = SceneAnalysisResult(
            prompt=prompt,
            scene_description=description,
            make_instrumental=make_instrumental,
            confidence=SUCCESS_CONFIDENCE,
            generated_at=datetime.now(timezone.utc).isoformat(),
            processing_time_ms=int((time.time() - start) * 1000),
        )
        LOGGER.info("Generated music analysis (%dms): %s", result.processing_time_ms, result.prompt)
        return result

    async def _request(self, image_base64: str, mime_type: str) -> str:
        if not image_base64:
            raise AnalysisError("Image payload is empty.")
        response = await self.client.responses.create(
            model=self.model,
            input=self._build_input(image_base64, mime_type),
            max_output_tokens=self.max_output_tokens,
        )
        LOGGER.debug("Scene analysis usage: %s", extract_usage(response))
        text = extract_text(response).strip()
        if not text:
            raise AnalysisError("Model reply was empty.")
        return text

    @staticmethod
    def _fallback(start: float) -> SceneAnalysisResult:
        prompt, make_instrumental, description = random.choice(FALLBACK_PROMPTS)
        return SceneAnalysisResult(
            prompt=prompt,
            scene_description=description,
            make_instrumental=make_instrumental,
            confidence=FALLBACK_CONFIDENCE,
            generated_at=datetime.now(timezone.utc).isoformat(),
            processing_time_ms=int((time.time() - start) * 1000),
        )
