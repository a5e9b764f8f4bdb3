"""
Duplicate suppression for relayed messages

The same logical mesh message reaches the broker several times (repeaters,
multiple gateway nodes, transport retries). The cache remembers when each
message identity was last seen and suppresses re-sightings inside a rolling
window.
"""

import logging
from typing import Dict, Optional, Union


MIN_WINDOW_MILLIS = 5000
MIN_SWEEP_INTERVAL_MILLIS = 10000
NO_HASH_MARKER = "no-hash"


def build_dedupe_key(message_hash: Optional[str], timestamp: Optional[Union[int, str]], channel_hash: str) -> str:
    """
    Build the identity of a relayed message.

    Falls back to the decrypted timestamp when the decoder reports no message
    hash, then to a fixed marker.
    """
    identity = message_hash or timestamp or NO_HASH_MARKER
    return f"{identity}:{channel_hash}"


class DedupeCache:
    """
    TTL-bounded map of message identity to last-seen time in milliseconds.

    Every sighting refreshes the timestamp, so a message that keeps arriving
    stays suppressed until it has been quiet for a full window.
    """

    def __init__(self, dedupe_seconds: float = 45, logger: Optional[logging.Logger] = None):
        self.window_millis = max(MIN_WINDOW_MILLIS, int(dedupe_seconds * 1000))
        self.sweep_interval_millis = max(MIN_SWEEP_INTERVAL_MILLIS, self.window_millis)
        self.logger = logger or logging.getLogger(__name__)
        self._entries: Dict[str, int] = {}

    def should_relay(self, key: str, now_millis: int) -> bool:
        """
        Record a sighting of ``key`` and decide whether to relay it.

        Returns:
            False if the key was already seen less than one window ago
        """
        prior = self._entries.get(key)
        suppressed = prior is not None and now_millis - prior < self.window_millis
        self._entries[key] = now_millis
        if suppressed:
            self.logger.debug(f"Suppressed duplicate {key} (seen {now_millis - prior} ms ago)")
        return not suppressed

    def sweep(self, now_millis: int) -> None:
        """Drop every entry last seen more than one window ago"""
        stale = [key for key, seen in self._entries.items() if now_millis - seen > self.window_millis]
        for key in stale:
            del self._entries[key]
        if stale:
            self.logger.debug(f"Dedupe sweep removed {len(stale)} entries, {len(self._entries)} remain")

    def last_seen(self, key: str) -> Optional[int]:
        return self._entries.get(key)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
