"""
Tests for the latest-track-per-device music store
"""

import pytest

from models.music_models import StoredMusicEntry
from services.music_store import MusicStore


def make_entry(device_id, timestamp, **overrides):
    fields = dict(
        device_id=device_id,
        music_url=f"https://cdn.example.com/{device_id}.mp3",
        scene_description="quiet study room",
        prompt="ambient piano",
        make_instrumental=True,
        clip_id=f"clip-{device_id}",
        image_id=f"{device_id}_img",
        processing_time_ms=10,
        timestamp=timestamp,
    )
    fields.update(overrides)
    return StoredMusicEntry(**fields)


def test_store_then_latest_returns_the_same_entry():
    store = MusicStore()
    entry = make_entry("glasses-1", "2024-01-01T00:00:00+00:00", title="Quiet Pages")
    store.store(entry)

    assert store.latest("glasses-1") is entry
    assert store.has("glasses-1")
    assert store.latest("glasses-2") is None


def test_new_entry_overwrites_previous():
    store = MusicStore()
    store.store(make_entry("glasses-1", "2024-01-01T00:00:00+00:00"))
    newer = make_entry("glasses-1", "2024-01-01T00:05:00+00:00", prompt="upbeat pop")
    store.store(newer)

    assert store.latest("glasses-1") is newer
    assert store.stats()["total_devices"] == 1


def test_oldest_device_is_evicted_over_capacity():
    store = MusicStore(max_entries=2)
    store.store(make_entry("a", "2024-01-01T00:00:00+00:00"))
    store.store(make_entry("b", "2024-01-01T00:01:00+00:00"))
    store.store(make_entry("c", "2024-01-01T00:02:00+00:00"))

    assert not store.has("a")
    assert [e.device_id for e in store.all()] == ["c", "b"]


def test_clear_reports_whether_an_entry_existed():
    store = MusicStore()
    store.store(make_entry("glasses-1", "2024-01-01T00:00:00+00:00"))
    assert store.clear("glasses-1") is True
    assert store.clear("glasses-1") is False


def test_stats_and_response_shape():
    store = MusicStore()
    store.store(make_entry("a", "2024-01-01T00:00:00+00:00"))
    store.store(make_entry("b", "2024-01-01T00:01:00+00:00"))

    stats = store.stats()
    assert stats["total_music"] == 2
    assert stats["oldest_music"] == "2024-01-01T00:00:00+00:00"
    assert stats["newest_music"] == "2024-01-01T00:01:00+00:00"

    body = store.latest("a").to_response()
    assert body["musicUrl"] == "https://cdn.example.com/a.mp3"
    assert body["makeInstrumental"] is True
    assert body["processingTime"] == 10


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        MusicStore(max_entries=0)
