"""
MQTT Client Wrapper for the MeshCore relay

Provides an asyncio-facing wrapper around paho-mqtt with TLS/SSL and
websockets support, subscription on every (re)connect and automatic
reconnection with exponential backoff. Messages received on paho's network
thread are handed to the event loop with ``call_soon_threadsafe``.
"""

import asyncio
import logging
import ssl
from enum import Enum
from pathlib import Path
from typing import Dict, Any, Optional, Callable
from datetime import datetime, timezone

import paho.mqtt.client as mqtt


MessageHandler = Callable[[str, bytes], None]


class ConnectionState(Enum):
    """MQTT connection states"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class MQTTClient:
    """
    Async MQTT client wrapper for paho-mqtt.

    Provides:
    - Connection management over TCP or websockets
    - TLS/SSL configuration with CA file or insecure mode
    - Topic subscription, renewed on every (re)connect
    - Automatic reconnection with exponential backoff (paho built-in)
    - Connection state tracking and statistics
    """

    def __init__(
        self,
        config: Dict[str, Any],
        on_message: Optional[MessageHandler] = None,
        logger: Optional[logging.Logger] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None
    ):
        """
        Initialize MQTT client.

        Args:
            config: Configuration dictionary containing:
                - host: MQTT broker hostname/IP (default: localhost)
                - port: MQTT broker port (default: 1883)
                - topic: Topic filter to subscribe to (default: meshcore/#)
                - transport: "tcp" or "websockets" (default: tcp)
                - ws_path: Websocket path (default: /mqtt)
                - tls: Enable TLS/SSL (default: False)
                - tls_insecure: Skip certificate verification (default: False)
                - ca_cert: Path to CA certificate (optional)
                - client_id: Client identifier (optional, random if empty)
                - username / password: Credentials (optional)
                - qos: Subscription QoS level (default: 0)
                - keepalive: Keepalive in seconds (default: 60)
                - reconnect_min_delay / reconnect_max_delay: Backoff bounds in seconds
            on_message: Called on the event loop with (topic, payload)
            logger: Logger instance (optional)
            loop: Event loop receiving messages (default: running loop at connect)
        """
        self.config = config
        self.on_message = on_message
        self.logger = logger or logging.getLogger(__name__)
        self._loop = loop

        self._state = ConnectionState.DISCONNECTED

        self.stats = {
            'connection_count': 0,
            'disconnection_count': 0,
            'messages_received': 0,
            'messages_published': 0,
            'publish_errors': 0,
            'subscribe_errors': 0,
            'last_connect_time': None,
            'last_disconnect_time': None,
        }

        self.transport = str(config.get('transport', 'tcp')).lower()
        self._client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=config.get('client_id') or "",
            clean_session=True,
            protocol=mqtt.MQTTv311,
            transport="websockets" if self.transport == "websockets" else "tcp"
        )

        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_subscribe = self._on_subscribe
        self._client.on_message = self._on_message

        self._configure_client()

    @property
    def url(self) -> str:
        """Broker URL for log messages"""
        tls = self.config.get('tls', False)
        if self.transport == "websockets":
            scheme = "wss" if tls else "ws"
        else:
            scheme = "mqtts" if tls else "mqtt"
        return f"{scheme}://{self.config.get('host', 'localhost')}:{self.config.get('port', 1883)}"

    def _configure_client(self):
        """
        Configure the MQTT client with credentials, transport and TLS settings.
        """
        username = self.config.get('username', '')
        password = self.config.get('password', '')
        if username:
            self._client.username_pw_set(username, password or None)
            self.logger.debug(f"Set MQTT credentials for user: {username}")

        if self.transport == "websockets":
            self._client.ws_set_options(path=self.config.get('ws_path') or '/mqtt')

        if self.config.get('tls', False):
            ca_cert = self._resolve_ca_cert(self.config.get('ca_cert', ''))
            insecure = self.config.get('tls_insecure', False)

            self._client.tls_set(
                ca_certs=ca_cert,
                cert_reqs=ssl.CERT_NONE if insecure else ssl.CERT_REQUIRED
            )
            if insecure:
                self._client.tls_insecure_set(True)

            self.logger.info("TLS/SSL enabled for MQTT connection")

        min_delay = self.config.get('reconnect_min_delay', 1)
        max_delay = self.config.get('reconnect_max_delay', 60)
        self._client.reconnect_delay_set(min_delay=min_delay, max_delay=max_delay)

    def _resolve_ca_cert(self, ca_cert: str) -> Optional[str]:
        if not ca_cert:
            return None
        path = Path(ca_cert)
        if not path.is_absolute():
            path = Path.cwd() / path
        if not path.exists():
            self.logger.warning(f"Failed to read MQTT CA cert at {path}: file not found")
            return None
        return str(path)

    async def connect(self) -> bool:
        """
        Start connecting to the MQTT broker.

        The network loop keeps retrying in the background, so a broker that
        is down at startup is picked up once it becomes reachable.

        Returns:
            True if the connection attempt was started, False otherwise
        """
        if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            self.logger.debug("MQTT connection already active")
            return True

        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        host = self.config.get('host', 'localhost')
        port = self.config.get('port', 1883)
        self._state = ConnectionState.CONNECTING
        self.logger.info(f"Connecting to MQTT broker at {self.url}")

        try:
            self._client.connect_async(host=host, port=port, keepalive=self.config.get('keepalive', 60))
            self._client.loop_start()
        except (ValueError, OSError) as e:
            self.logger.warning(f"MQTT connect error: {e}")
            self._state = ConnectionState.DISCONNECTED
            return False

        return True

    async def disconnect(self) -> None:
        """
        Disconnect from the MQTT broker immediately.
        """
        if self._state == ConnectionState.DISCONNECTED:
            self._client.loop_stop()
            return

        self._state = ConnectionState.DISCONNECTING
        try:
            self._client.disconnect()
        except Exception as e:
            self.logger.warning(f"Error during MQTT disconnect: {e}")
        finally:
            self._client.loop_stop()
            self._state = ConnectionState.DISCONNECTED
            self.logger.info("Disconnected from MQTT broker")

    def subscribe(self, topic: Optional[str] = None, qos: Optional[int] = None) -> bool:
        """Subscribe to a topic filter (default: the configured topic)"""
        topic = topic or self.config.get('topic', 'meshcore/#')
        qos = self.config.get('qos', 0) if qos is None else qos
        result, mid = self._client.subscribe(topic, qos=qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self.stats['subscribe_errors'] += 1
            self.logger.warning(f"MQTT subscribe error: {mqtt.error_string(result)} - topic={topic}")
            return False
        self.logger.debug(f"Subscribing to {topic} (qos={qos}, mid={mid})")
        return True

    def publish(self, topic: str, payload: bytes, qos: int = 0, retain: bool = False) -> bool:
        """
        Publish a message to an MQTT topic.

        Returns:
            True if the message was queued for sending, False otherwise
        """
        if not self.is_connected():
            self.logger.warning("Cannot publish: not connected to MQTT broker")
            return False

        try:
            result = self._client.publish(topic, payload, qos=qos, retain=retain)
        except (ValueError, OSError) as e:
            self.logger.warning(f"MQTT publish error: {e} - topic={topic}")
            self.stats['publish_errors'] += 1
            return False

        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.warning(f"MQTT publish failed: {mqtt.error_string(result.rc)} - topic={topic}")
            self.stats['publish_errors'] += 1
            return False

        self.stats['messages_published'] += 1
        return True

    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def get_state(self) -> ConnectionState:
        return self._state

    def get_stats(self) -> Dict[str, Any]:
        return self.stats.copy()

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Paho callback for a connection attempt completing"""
        if reason_code.is_failure:
            self.logger.warning(f"MQTT connection failed: {reason_code} - broker={self.url}")
            return

        self._state = ConnectionState.CONNECTED
        self.stats['connection_count'] += 1
        self.stats['last_connect_time'] = datetime.now(timezone.utc)
        self.logger.info(f"MQTT connected ({self.url}), subscribing to {self.config.get('topic', 'meshcore/#')}")
        self.subscribe()

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None):
        for reason_code in reason_code_list:
            if reason_code.is_failure:
                self.stats['subscribe_errors'] += 1
                self.logger.warning(f"MQTT subscribe error: {reason_code} (mid={mid})")

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        """Paho callback for disconnection"""
        self.stats['disconnection_count'] += 1
        self.stats['last_disconnect_time'] = datetime.now(timezone.utc)

        if self._state == ConnectionState.DISCONNECTING:
            return

        self._state = ConnectionState.CONNECTING
        self.logger.info(f"MQTT reconnecting... (reason: {reason_code})")

    def _on_message(self, client, userdata, message):
        """Paho callback for an inbound message, run on the network thread"""
        self.stats['messages_received'] += 1
        if self.on_message is None or self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(self.on_message, message.topic, bytes(message.payload))
        except RuntimeError:
            # Event loop already closed during shutdown
            self.logger.debug(f"Dropping MQTT message on {message.topic}: event loop closed")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
        return False
