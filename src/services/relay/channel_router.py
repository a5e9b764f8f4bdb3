"""
Destination routing for decoded channel messages
"""

from typing import Dict, Mapping, Optional

from models.packet import ChannelMapping, RoutingDecision


class ChannelRouter:
    """
    Maps a mesh channel hash to a Discord channel id.

    Mapped channels go to their configured destination; anything else goes to
    the default channel when one is configured.
    """

    def __init__(
        self,
        channel_map: Mapping[str, ChannelMapping],
        default_channel_id: str = ""
    ):
        self._channel_map: Dict[str, ChannelMapping] = {
            channel_hash.lower(): mapping for channel_hash, mapping in channel_map.items()
        }
        self.default_channel_id = (default_channel_id or "").strip()

    def route(self, channel_hash: Optional[str]) -> RoutingDecision:
        normalized = (channel_hash or "").lower()
        mapping = self._channel_map.get(normalized)
        if mapping and mapping.destination_channel_id:
            return RoutingDecision(mapping.destination_channel_id, mapping)
        if self.default_channel_id:
            return RoutingDecision(self.default_channel_id, mapping)
        return RoutingDecision(None, mapping)

    @property
    def has_destinations(self) -> bool:
        """True when at least one message could ever be routed"""
        return bool(self.default_channel_id or self._channel_map)

    def __len__(self) -> int:
        return len(self._channel_map)
