"""
MeshCore Relay Main Application Entry Point

Loads configuration, initializes logging and runs the MQTT to Discord relay
until a shutdown signal arrives.
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

# Add src to Python path
sys.path.insert(0, str(Path(__file__).parent))

import discord
from dotenv import load_dotenv

from core.config import ConfigurationManager, ConfigurationError
from core.logging import initialize_logging, get_logger
from services.relay.relay_service import RelayService


EXIT_OK = 0
EXIT_FAILURE = 1


class RelayApplication:
    """Main relay application class"""

    def __init__(self, config_dir: str = "config"):
        self.config_dir = config_dir
        self.config_manager: Optional[ConfigurationManager] = None
        self.service: Optional[RelayService] = None
        self.logger = None

        self.running = False
        self.shutdown_event = asyncio.Event()

    def initialize(self):
        """Load configuration and set up logging"""
        load_dotenv(Path.cwd() / ".env")

        self.config_manager = ConfigurationManager(self.config_dir)
        self.config_manager.load_config()

        initialize_logging(self.config_manager.config)
        self.logger = get_logger('main')
        self.logger.info(f"{self.config_manager.get('app.name', 'MeshCore Relay')} starting up...")

    async def start(self) -> int:
        """
        Start the relay and wait for a shutdown signal.

        Returns:
            Process exit code
        """
        try:
            self.initialize()
        except ConfigurationError as e:
            get_logger('main').error(str(e))
            return EXIT_FAILURE

        if not self.config_manager.get_discord_token():
            self.logger.error("DISCORD_TOKEN is required.")
            return EXIT_FAILURE

        self._install_signal_handlers()

        self.service = RelayService(self.config_manager)
        try:
            await self.service.start()
        except discord.LoginFailure as e:
            self.logger.error(f"Discord login failed: {e}")
            await self.service.stop()
            return EXIT_FAILURE
        except Exception as e:
            self.logger.error(f"Failed to start relay: {e}", exc_info=True)
            await self.service.stop()
            return EXIT_FAILURE

        self.running = True
        try:
            await self.shutdown_event.wait()
            self.logger.info("Shutting down...")
        finally:
            await self.shutdown()

        return EXIT_OK

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._signal_handler, signum)
            except NotImplementedError:
                signal.signal(signum, lambda s, frame: loop.call_soon_threadsafe(self._signal_handler, s))

    def _signal_handler(self, signum):
        """Handle shutdown signals"""
        self.logger.info(f"Received signal {signum}")
        self.shutdown_event.set()

    async def shutdown(self):
        """Close the transport and Discord connections without draining"""
        if not self.running:
            return
        self.running = False
        try:
            await self.service.stop()
        except Exception as e:
            self.logger.error(f"Error during shutdown: {e}")


async def run() -> int:
    app = RelayApplication()
    return await app.start()


def main():
    """Console script entry point"""
    try:
        exit_code = asyncio.run(run())
    except KeyboardInterrupt:
        exit_code = EXIT_OK
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
