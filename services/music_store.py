"""Simple in-memory store for the latest generated track per device."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from models.music_models import StoredMusicEntry

LOGGER = logging.getLogger(__name__)


class MusicStore:
	"""One slot per device; a new entry overwrites the previous one."""

	def __init__(self, max_entries: int = 100) -> None:
		if max_entries < 1:
			raise ValueError("max_entries must be at least 1.")
		self.max_entries = max_entries
		self._entries: Dict[str, StoredMusicEntry] = {}

	def store(self, entry: StoredMusicEntry) -> None:
		"""Save the entry as the device's latest track, evicting the oldest devices if full."""
		self._entries[entry.device_id] = entry
		self._evict_overflow()
		LOGGER.info("Stored music data for device: %s (title: %r)", entry.device_id, entry.title)

	def latest(self, device_id: str) -> Optional[StoredMusicEntry]:
		return self._entries.get(device_id)

	def has(self, device_id: str) -> bool:
		return device_id in self._entries

	def all(self) -> List[StoredMusicEntry]:
		"""Return every stored entry, newest first."""
		return sorted(self._entries.values(), key=lambda e: e.timestamp, reverse=True)

	def clear(self, device_id: str) -> bool:
		"""Remove a device's entry. Returns True if one existed."""
		if self._entries.pop(device_id, None) is None:
			return False
		LOGGER.info("Cleared music data for device: %s", device_id)
		return True

	def stats(self) -> Dict[str, object]:
		ordered = sorted(self._entries.values(), key=lambda e: e.timestamp)
		return {
			"total_devices": len(self._entries),
			"total_music": len(ordered),
			"devices": list(self._entries.keys()),
			"oldest_music": ordered[0].timestamp if ordered else None,
			"newest_music": ordered[-1].timestamp if ordered else None,
		}

	def _evict_overflow(self) -> None:
		overflow = len(self._entries) - self.max_entries
		if overflow <= 0:
			return
		for entry in sorted(self._entries.values(), key=lambda e: e.timestamp)[:overflow]:
			del self._entries[entry.device_id]
			LOGGER.debug("Removed old music data for device: %s", entry.device_id)
