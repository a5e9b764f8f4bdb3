"""
Relay pipeline

Runs one MQTT delivery through extraction, decoding, filtering, duplicate
suppression, routing, formatting and delivery. Every stage may end the
message with a drop; nothing is retried and no error escapes ``handle``
except cancellation.

Stages:
    Received -> Extracted -> Decoded -> TypeFiltered -> ContentFiltered ->
    Deduped -> Routed -> Formatted -> Delivered
"""

import inspect
import time
from typing import Any, Callable, Optional

from models.meshcore import DecodedPacket, PayloadType
from models.packet import RawTransportMessage, RelayOutcome, RelayResult, RelayStatistics, PacketBlob
from core.logging import get_structured_logger
from services.meshcore import decode
from .blob_extractor import extract
from .channel_cache import DestinationChannelCache
from .channel_router import ChannelRouter
from .dedupe_cache import DedupeCache, NO_HASH_MARKER, build_dedupe_key
from .message_formatter import MessageFormatter


def _now_millis() -> int:
    return int(time.time() * 1000)


class RelayPipeline:
    """
    Per-message relay state machine.

    The pipeline owns no global state: the dedupe cache, channel cache and
    router are constructed by the caller and shared across invocations. All
    access happens on the event loop thread.
    """

    def __init__(
        self,
        router: ChannelRouter,
        dedupe_cache: DedupeCache,
        channel_cache: DestinationChannelCache,
        formatter: Optional[MessageFormatter] = None,
        decoder: Callable[..., Any] = decode,
        key_store: Optional[Any] = None,
        extractor: Callable[[str, bytes], Optional[PacketBlob]] = extract,
        clock: Callable[[], int] = _now_millis,
        logger=None
    ):
        self.router = router
        self.dedupe_cache = dedupe_cache
        self.channel_cache = channel_cache
        self.formatter = formatter or MessageFormatter()
        self.key_store = key_store
        self._decoder = decoder
        self._extractor = extractor
        self._clock = clock
        self.logger = logger or get_structured_logger('relay.pipeline')
        self.stats = RelayStatistics()

    def _finish(self, outcome: RelayOutcome, detail: str = "", **kwargs) -> RelayResult:
        self.stats.record(outcome)
        return RelayResult(outcome=outcome, detail=detail, **kwargs)

    async def _decode(self, hex_string: str) -> DecodedPacket:
        if self.key_store is not None:
            result = self._decoder(hex_string, self.key_store)
        else:
            result = self._decoder(hex_string)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def handle_message(self, message: RawTransportMessage) -> RelayResult:
        return await self.handle(message.topic, message.payload)

    async def handle(self, topic: str, payload: bytes) -> RelayResult:
        """
        Relay one transport delivery.

        Args:
            topic: MQTT topic
            payload: Raw MQTT payload

        Returns:
            RelayResult describing where the message ended
        """
        blob = self._extractor(topic, payload)
        if not blob:
            return self._finish(RelayOutcome.NO_PACKET)

        try:
            packet = await self._decode(blob.hex)
        except Exception as e:
            self.logger.debug("decode_failed", topic=topic, error=str(e))
            return self._finish(RelayOutcome.DECODE_FAILED, str(e))

        if packet.payload_type != PayloadType.GROUP_TEXT:
            return self._finish(RelayOutcome.NOT_GROUP_TEXT, packet.payload_type.name)

        group_text = packet.decoded
        decrypted = group_text.decrypted if group_text else None
        if not decrypted or not decrypted.message:
            message_hash = packet.message_hash or NO_HASH_MARKER
            self.logger.debug("encrypted_group_text", message_hash=message_hash)
            return self._finish(RelayOutcome.ENCRYPTED, message_hash)

        channel_hash = (group_text.channel_hash or "").lower()
        dedupe_key = build_dedupe_key(packet.message_hash, decrypted.timestamp, channel_hash)
        if not self.dedupe_cache.should_relay(dedupe_key, self._clock()):
            return self._finish(RelayOutcome.DUPLICATE, dedupe_key)

        decision = self.router.route(channel_hash)
        if not decision.routable:
            self.logger.debug("no_destination", channel_hash=channel_hash or "unknown")
            return self._finish(RelayOutcome.NO_ROUTE, channel_hash)

        destination_id = decision.destination_channel_id
        channel = await self.channel_cache.get(destination_id)
        if channel is None:
            return self._finish(RelayOutcome.CHANNEL_UNAVAILABLE, destination_id,
                                destination_channel_id=destination_id)

        text = self.formatter.format(decision.mapping, group_text)
        if not text:
            return self._finish(RelayOutcome.EMPTY_MESSAGE, destination_channel_id=destination_id)

        try:
            sent = channel.send(text)
            if inspect.isawaitable(sent):
                await sent
        except Exception as e:
            self.logger.warning("send_failed", channel_id=destination_id, error=str(e))
            return self._finish(RelayOutcome.SEND_FAILED, str(e),
                                destination_channel_id=destination_id, text=text)

        return self._finish(RelayOutcome.DELIVERED, destination_channel_id=destination_id, text=text)
