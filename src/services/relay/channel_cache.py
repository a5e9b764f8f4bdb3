"""
Destination channel cache

Resolving a Discord channel costs an API round trip, so resolved channels are
kept for the lifetime of the relay. Failed resolutions are not cached and
are retried on the next message for that destination.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union


ChannelResolver = Callable[[str], Union[Optional[Any], Awaitable[Optional[Any]]]]


class DestinationChannelCache:
    """Caches resolved destination channels by channel id"""

    def __init__(self, resolver: ChannelResolver, logger: Optional[logging.Logger] = None):
        self._resolver = resolver
        self._channels: Dict[str, Any] = {}
        self.logger = logger or logging.getLogger(__name__)

    async def get(self, channel_id: str) -> Optional[Any]:
        """
        Return the channel for ``channel_id``, resolving it on first use.

        Returns:
            The channel object, or None when it cannot be resolved
        """
        cached = self._channels.get(channel_id)
        if cached is not None:
            return cached

        try:
            channel = self._resolver(channel_id)
            if inspect.isawaitable(channel):
                channel = await channel
        except Exception as e:
            self.logger.warning(f"Failed to fetch Discord channel {channel_id}: {e}")
            return None

        if channel is None:
            self.logger.warning(f"Discord channel {channel_id} is unavailable or not text based")
            return None

        self._channels[channel_id] = channel
        return channel

    def clear(self) -> None:
        self._channels.clear()

    def __len__(self) -> int:
        return len(self._channels)

    def __contains__(self, channel_id: str) -> bool:
        return channel_id in self._channels
