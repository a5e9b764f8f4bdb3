"""
MeshCore to Discord relay service

Builds the relay components from configuration and runs them: the Discord
client, the MQTT subscription feeding the pipeline, the periodic dedupe sweep
and the statistics reporter.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional, Set

from core.config import ConfigurationManager
from services.meshcore import create_key_store, decode
from .channel_cache import DestinationChannelCache
from .channel_config import ChannelConfig, load_channel_config
from .channel_router import ChannelRouter
from .dedupe_cache import DedupeCache
from .discord_client import DiscordRelayClient
from .message_formatter import MessageFormatter
from .mqtt_client import MQTTClient
from .pipeline import RelayPipeline


class RelayService:
    """
    Owns every piece of relay state for the lifetime of the process.

    Each MQTT delivery becomes its own task on the event loop; deliveries are
    independent and not rate limited. Shutdown does not wait for in-flight
    deliveries.
    """

    def __init__(
        self,
        config_manager: ConfigurationManager,
        discord_client: Optional[DiscordRelayClient] = None,
        mqtt_client_factory: Callable[..., MQTTClient] = MQTTClient,
        decoder: Callable[..., Any] = decode,
        channel_config: Optional[ChannelConfig] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.config_manager = config_manager
        self.logger = logger or logging.getLogger(__name__)
        self.discord = discord_client or DiscordRelayClient(config_manager.get_discord_token())
        self._mqtt_client_factory = mqtt_client_factory
        self.mqtt: Optional[MQTTClient] = None

        self.channel_config = channel_config or load_channel_config(
            config_manager.get_channels_file(),
            config_manager.get_default_channel_id()
        )
        self.key_store = create_key_store(self.channel_config.channel_secrets)
        self.router = ChannelRouter(self.channel_config.channel_map, self.channel_config.default_channel_id)
        self.dedupe_cache = DedupeCache(config_manager.get_dedupe_seconds())
        self.channel_cache = DestinationChannelCache(self.discord.resolve_channel)
        self.pipeline = RelayPipeline(
            router=self.router,
            dedupe_cache=self.dedupe_cache,
            channel_cache=self.channel_cache,
            formatter=MessageFormatter(),
            decoder=decoder,
            key_store=self.key_store,
        )

        self.running = False
        self._background_tasks: list = []
        self._inflight: Set[asyncio.Task] = set()

    async def start(self) -> None:
        """
        Log in to Discord, wait for the gateway, then start consuming MQTT.

        Raises:
            discord.LoginFailure: if the bot token is rejected
        """
        if not self.router.has_destinations:
            self.logger.warning("No default Discord channel and no channel mappings configured.")

        await self.discord.login()
        self.discord.start_gateway()
        await self.discord.wait_until_ready()

        self.running = True
        self.mqtt = self._mqtt_client_factory(
            self.config_manager.get_mqtt_config(),
            on_message=self.on_transport_message,
            logger=logging.getLogger('meshrelay.mqtt')
        )
        await self.mqtt.connect()

        self._background_tasks.append(asyncio.create_task(self._sweep_loop()))
        if self.config_manager.get_stats_interval() > 0:
            self._background_tasks.append(asyncio.create_task(self._stats_reporter_loop()))

        self.logger.info("MeshCore relay started")

    def on_transport_message(self, topic: str, payload: bytes) -> None:
        """Schedule one pipeline run; called on the event loop thread"""
        task = asyncio.create_task(self.process(topic, payload))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def process(self, topic: str, payload: bytes):
        try:
            return await self.pipeline.handle(topic, payload)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.debug(f"Handle packet error: {e}")
            return None

    async def _sweep_loop(self):
        """Sweep stale dedupe entries on a fixed period"""
        interval = self.dedupe_cache.sweep_interval_millis / 1000
        while self.running:
            try:
                await asyncio.sleep(interval)
                self.dedupe_cache.sweep(int(time.time() * 1000))
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in dedupe sweep: {e}")

    async def _stats_reporter_loop(self):
        """Report relay statistics periodically"""
        interval = self.config_manager.get_stats_interval()
        while self.running:
            try:
                await asyncio.sleep(interval)
                stats = self.pipeline.stats
                mqtt_stats = self.mqtt.get_stats() if self.mqtt else {}
                outcomes = ", ".join(f"{name}={count}" for name, count in stats.to_dict().items() if count)
                self.logger.info(
                    f"Relay Stats - "
                    f"received={mqtt_stats.get('messages_received', 0)}, "
                    f"delivered={stats.delivered}, "
                    f"dropped={stats.dropped}, "
                    f"dedupe_entries={len(self.dedupe_cache)}"
                    f"{' (' + outcomes + ')' if outcomes else ''}"
                )
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in stats reporter: {e}")

    async def stop(self) -> None:
        """Stop immediately: close MQTT and Discord without draining sends"""
        self.running = False

        for task in self._background_tasks:
            task.cancel()
        await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        if self.mqtt:
            await self.mqtt.disconnect()
        await self.discord.close()
