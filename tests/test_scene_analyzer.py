"""
Tests for the vision-model scene analyzer
"""

import asyncio
import json
from types import SimpleNamespace

import pytest

from services.vision.prompts import FALLBACK_PROMPTS
from services.vision.response_parser import extract_text
from services.vision.scene_analyzer import SceneAnalyzer, clean_music_prompt, infer_instrumental


class FakeResponses:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(output_text=self.reply, output=[], usage=None)


def make_analyzer(reply=None, error=None):
    responses = FakeResponses(reply, error)
    return SceneAnalyzer(SimpleNamespace(responses=responses), model="test-model"), responses


def test_json_reply_is_used_verbatim():
    reply = json.dumps(
        {
            "prompt": "Smooth Jazz, cozy, medium tempo, piano and light drums",
            "makeInstrumental": False,
            "sceneDescription": "social coffee shop setting",
        }
    )
    analyzer, responses = make_analyzer(reply)
    result = asyncio.run(analyzer.analyze("aGVsbG8=", "image/png"))

    assert result.prompt == "smooth jazz, cozy, medium tempo, piano and light drums"
    assert result.make_instrumental is False
    assert result.scene_description == "social coffee shop setting"
    assert result.confidence == 0.85

    call = responses.calls[0]
    assert call["model"] == "test-model"
    image_part = call["input"][1]["content"][0]
    assert image_part == {"type": "input_image", "image_url": "data:image/png;base64,aGVsbG8="}


def test_text_reply_infers_vocals_from_keywords():
    analyzer, _ = make_analyzer('"Upbeat Pop,\nenergetic, 15 seconds"')
    result = asyncio.run(analyzer.analyze("aGVsbG8="))

    assert result.prompt == "upbeat pop, energetic"
    assert result.make_instrumental is False
    assert result.scene_description == "Parsed from text response"
    assert result.confidence == 0.85


def test_json_missing_fields_falls_back_to_text_parsing():
    analyzer, _ = make_analyzer(json.dumps({"prompt": "calm ambient"}))
    result = asyncio.run(analyzer.analyze("aGVsbG8="))
    assert result.scene_description == "Parsed from text response"
    assert result.make_instrumental is True


@pytest.mark.parametrize("reply, error", [(None, RuntimeError("network down")), ("   ", None)])
def test_failures_use_a_fallback_prompt(reply, error):
    analyzer, _ = make_analyzer(reply, error)
    result = asyncio.run(analyzer.analyze("aGVsbG8="))

    assert (result.prompt, result.make_instrumental, result.scene_description) in FALLBACK_PROMPTS
    assert result.confidence == 0.1


def test_empty_image_skips_the_request():
    analyzer, responses = make_analyzer("ambient")
    result = asyncio.run(analyzer.analyze(""))
    assert result.confidence == 0.1
    assert responses.calls == []


def test_client_is_required():
    with pytest.raises(ValueError):
        SceneAnalyzer(None)


def test_clean_music_prompt():
    assert clean_music_prompt("'Lo-Fi   Beats,\nchill, 15 second'") == "lo-fi beats, chill"


@pytest.mark.parametrize(
    "prompt, expected",
    [
        ("ambient drones", True),
        ("upbeat rock anthem", False),
        ("calm jazz trio", True),
        ("harp and cello", True),
    ],
)
def test_infer_instrumental(prompt, expected):
    assert infer_instrumental(prompt) is expected


def test_extract_text_reads_output_items():
    response = {
        "output": [
            {"type": "reasoning", "content": []},
            {"type": "message", "content": [{"type": "output_text", "text": "hello"}]},
        ]
    }
    assert extract_text(response) == "hello"
