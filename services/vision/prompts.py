"""Prompt text and fallback content for scene-to-music analysis."""

from __future__ import annotations

from typing import List, Tuple

INSTRUMENTAL_KEYWORDS = ("ambient", "classical", "electronic", "minimal", "study", "focus", "meditation", "calm", "peaceful")
VOCAL_KEYWORDS = ("pop", "rock", "jazz", "folk", "energetic", "upbeat", "social")

# (prompt, make_instrumental, scene_description)
FALLBACK_PROMPTS: List[Tuple[str, bool, str]] = [
    ("ambient instrumental, calm, medium tempo, soft piano", True, "Fallback - peaceful ambient setting"),
    ("smooth jazz, relaxed, slow tempo, piano and light drums", False, "Fallback - social jazz setting"),
    ("acoustic folk, peaceful, medium tempo, guitar and strings", True, "Fallback - natural peaceful setting"),
    ("minimal electronic, focused, medium tempo, soft synths", True, "Fallback - work/focus environment"),
]


def scene_system_prompt() -> str:
    """Return the system prompt for the scene analyzer."""
    return (
        "You are a music supervisor. You look at a photo taken from a pair of smart glasses "
        "and pick a soundtrack that fits the wearer's surroundings."
    )


def scene_user_prompt() -> str:
    """Return the fixed instructions sent alongside every image."""
    return """Analyze this image and create a music prompt for AI music generation.

Your task:
1. Analyze the scene/environment in the image
2. Create an appropriate music prompt for the context
3. Decide whether lyrics or instrumental music would be better

INSTRUMENTAL vs LYRICS DECISION:
- Use INSTRUMENTAL for: work/study environments, libraries, offices, meditation spaces, nature scenes, peaceful settings, background ambiance
- Use LYRICS for: social settings, cafes, restaurants, busy streets, entertainment venues, exercise/workout spaces, emotional/dramatic scenes

Format your response as JSON:
{
  "prompt": "[style/genre], [mood], [tempo], [key instruments]",
  "makeInstrumental": true/false,
  "sceneDescription": "brief description of what you see"
}

Examples:
- Coffee shop -> {"prompt": "smooth jazz, cozy, medium tempo, piano and light drums", "makeInstrumental": false, "sceneDescription": "social coffee shop setting"}
- Library/study -> {"prompt": "ambient classical, calm, slow tempo, soft piano and strings", "makeInstrumental": true, "sceneDescription": "quiet study environment"}
- Busy street -> {"prompt": "upbeat pop, energetic, fast tempo, synths and bass", "makeInstrumental": false, "sceneDescription": "dynamic urban environment"}
- Park/nature -> {"prompt": "acoustic folk, peaceful, medium tempo, guitar and birds", "makeInstrumental": true, "sceneDescription": "serene natural setting"}

Return ONLY the JSON, no extra text."""
