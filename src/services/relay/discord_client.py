"""
Discord client for the MeshCore relay

Thin wrapper around discord.py: login, gateway connection and resolution of
text-capable destination channels. The relay only sends, so the client
requests the guilds intent alone.
"""

import asyncio
import logging
from typing import Optional

import discord


class DiscordRelayClient:
    """
    Owns the discord.py client used to deliver relayed messages.

    Login and the gateway connection are separate steps so that an invalid
    token is reported before the relay starts consuming MQTT.
    """

    def __init__(self, token: str, client: Optional[discord.Client] = None,
                 logger: Optional[logging.Logger] = None):
        self.token = token
        self.logger = logger or logging.getLogger(__name__)
        self._client = client or discord.Client(intents=discord.Intents(guilds=True))
        self._connect_task: Optional[asyncio.Task] = None

        self._client.event(self.on_ready)
        self._client.event(self.on_disconnect)
        self._client.event(self.on_resumed)

    @property
    def user(self):
        return self._client.user

    async def on_ready(self):
        user = self._client.user
        self.logger.info(f"Discord logged in as {user if user else 'unknown'}")

    async def on_disconnect(self):
        self.logger.warning("Discord gateway disconnected")

    async def on_resumed(self):
        self.logger.info("Discord gateway session resumed")

    async def login(self) -> None:
        """
        Authenticate with the bot token.

        Raises:
            discord.LoginFailure: if the token is rejected
            discord.HTTPException: if Discord could not be reached
        """
        await self._client.login(self.token)

    def start_gateway(self) -> asyncio.Task:
        """Open the gateway connection in the background"""
        if self._connect_task is None or self._connect_task.done():
            self._connect_task = asyncio.create_task(self._client.connect(reconnect=True))
        return self._connect_task

    async def wait_until_ready(self) -> None:
        """
        Wait for the gateway to report ready.

        Raises:
            Exception: whatever ended the gateway connection before it was ready
        """
        ready = asyncio.create_task(self._client.wait_until_ready())
        waiters = {ready}
        if self._connect_task is not None:
            waiters.add(self._connect_task)
        done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        if ready not in done:
            ready.cancel()
            # Surfaces the exception that ended the gateway connection
            self._connect_task.result()
            raise RuntimeError("Discord gateway closed before becoming ready")

    async def resolve_channel(self, channel_id: str) -> Optional[discord.abc.Messageable]:
        """
        Look up a destination channel by id.

        Returns:
            The channel if it can receive messages, otherwise None

        Raises:
            ValueError: if the id is not a Discord snowflake
            discord.HTTPException: if the channel cannot be fetched
        """
        snowflake = int(channel_id)
        channel = self._client.get_channel(snowflake)
        if channel is None:
            channel = await self._client.fetch_channel(snowflake)
        if isinstance(channel, discord.abc.Messageable):
            return channel
        self.logger.warning(f"Discord channel {channel_id} is not text based")
        return None

    async def close(self) -> None:
        if not self._client.is_closed():
            await self._client.close()
        self.logger.info("Discord client closed")
