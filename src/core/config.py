"""
Configuration Management System for the MeshCore relay

Handles loading configuration from environment variables and config files,
and validates the values the relay depends on. Configuration is read once at
startup.
"""

import os
import json
import yaml
import logging
from typing import Any, Callable, Dict, List, Optional
from pathlib import Path
from dataclasses import dataclass


TRUE_VALUES = ('1', 'true', 'yes', 'on')
VALID_TRANSPORTS = ('tcp', 'websockets')
VALID_LOG_LEVELS = ('debug', 'info', 'warn', 'warning', 'error')


@dataclass
class ConfigSource:
    """Configuration source definition"""
    name: str
    priority: int
    loader: Callable
    path: Optional[str] = None


class ConfigurationError(Exception):
    """Configuration-related errors"""
    pass


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Parse an environment flag; empty means default"""
    raw = (value or '').strip().lower()
    if not raw:
        return default
    return raw in TRUE_VALUES


def parse_int(value: Optional[str], default: Optional[int] = None) -> Optional[int]:
    """Parse an environment integer; empty or invalid means default"""
    raw = (value or '').strip()
    if not raw:
        return default
    try:
        return int(raw, 10)
    except ValueError:
        return default


def _parse_str(value: Optional[str], default: Optional[str] = None) -> Optional[str]:
    return value.strip() if value is not None else default


class ConfigurationManager:
    """
    Manages relay configuration with support for multiple sources
    and validation.
    """

    # Environment variable -> (config key, parser)
    ENV_MAPPINGS = {
        "MQTT_HOST": ("mqtt.host", _parse_str),
        "MQTT_PORT": ("mqtt.port", parse_int),
        "MQTT_TOPIC": ("mqtt.topic", _parse_str),
        "MQTT_TRANSPORT": ("mqtt.transport", _parse_str),
        "MQTT_WS_PATH": ("mqtt.ws_path", _parse_str),
        "MQTT_TLS": ("mqtt.tls", parse_bool),
        "MQTT_TLS_INSECURE": ("mqtt.tls_insecure", parse_bool),
        "MQTT_CA_CERT": ("mqtt.ca_cert", _parse_str),
        "MQTT_CLIENT_ID": ("mqtt.client_id", _parse_str),
        "MQTT_USERNAME": ("mqtt.username", _parse_str),
        "MQTT_PASSWORD": ("mqtt.password", _parse_str),
        "MQTT_QOS": ("mqtt.qos", parse_int),
        "RELAY_DEDUPE_SECONDS": ("relay.dedupe_seconds", parse_int),
        "RELAY_STATS_INTERVAL": ("relay.stats_interval", parse_int),
        "LOG_LEVEL": ("relay.log_level", _parse_str),
        "LOG_FILE": ("logging.file", _parse_str),
        "DISCORD_TOKEN": ("discord.token", _parse_str),
        "DISCORD_DEFAULT_CHANNEL_ID": ("discord.default_channel_id", _parse_str),
        "CHANNELS_FILE": ("channels.file", _parse_str),
    }

    def __init__(self, config_dir: str = "config", environ: Optional[Dict[str, str]] = None):
        self.config_dir = Path(config_dir)
        self.environ = environ if environ is not None else os.environ
        self.config: Dict[str, Any] = {}
        self.sources: List[ConfigSource] = []
        self.logger = logging.getLogger(__name__)

        # Default configuration values
        self.defaults = {
            "app": {
                "name": "MeshCore Relay",
                "version": "1.0.0"
            },
            "mqtt": {
                "host": "localhost",
                "port": 1883,
                "topic": "meshcore/#",
                "transport": "tcp",
                "ws_path": "/mqtt",
                "tls": False,
                "tls_insecure": False,
                "ca_cert": "",
                "client_id": "",
                "username": "",
                "password": "",
                "qos": 0,
                "keepalive": 60,
                "reconnect_min_delay": 1,
                "reconnect_max_delay": 60
            },
            "relay": {
                "dedupe_seconds": 45,
                "log_level": "info",
                "stats_interval": 300
            },
            "discord": {
                "token": "",
                "default_channel_id": ""
            },
            "channels": {
                "file": "channels.json"
            },
            "logging": {
                "file": "",
                "max_size": "10MB",
                "backup_count": 5,
                "console": True
            }
        }

        self._setup_sources()

    def _setup_sources(self):
        """Set up configuration sources in priority order"""
        # Environment variables (highest priority)
        self.sources.append(ConfigSource(
            name="environment",
            priority=4,
            loader=self._load_from_env
        ))

        local_config_path = str(self.config_dir / "config.yaml")
        self.sources.append(ConfigSource(
            name="local_config",
            priority=3,
            loader=lambda: self._load_from_file(local_config_path),
            path=local_config_path
        ))

        default_config_path = str(self.config_dir / "default.yaml")
        self.sources.append(ConfigSource(
            name="default_config",
            priority=2,
            loader=lambda: self._load_from_file(default_config_path),
            path=default_config_path
        ))

        # Built-in defaults (lowest priority)
        self.sources.append(ConfigSource(
            name="defaults",
            priority=1,
            loader=lambda: self.defaults
        ))

    def load_config(self) -> None:
        """Load configuration from all sources"""
        self.logger.debug("Loading configuration from all sources")

        merged_config = {}
        for source in sorted(self.sources, key=lambda x: x.priority):
            try:
                source_config = source.loader()
                if source_config:
                    merged_config = self._deep_merge(merged_config, source_config)
                    self.logger.debug(f"Loaded configuration from {source.name}")
            except Exception as e:
                self.logger.warning(f"Failed to load config from {source.name}: {e}")

        self.config = merged_config
        self._validate_config()

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables"""
        config = {}

        for env_var, (config_key, parser) in self.ENV_MAPPINGS.items():
            raw = self.environ.get(env_var)
            if raw is None:
                continue
            value = parser(raw)
            if value is None:
                self.logger.warning(f"Ignoring invalid value for {env_var}: {raw!r}")
                continue
            self._set_nested_value(config, config_key, value)

        return config

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file"""
        path = Path(file_path)

        if not path.exists():
            return {}

        try:
            with open(path, 'r', encoding='utf-8') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    return yaml.safe_load(f) or {}
                elif path.suffix.lower() == '.json':
                    return json.load(f)
                else:
                    self.logger.warning(f"Unsupported config file format: {path}")
                    return {}
        except Exception as e:
            self.logger.error(f"Error loading config file {path}: {e}")
            return {}

    def _deep_merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _set_nested_value(self, config: Dict, key_path: str, value: Any) -> None:
        """Set a nested configuration value using dot notation"""
        keys = key_path.split('.')
        current = config

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def _validate_config(self) -> None:
        """Validate configuration values"""
        errors = []

        port = self.get('mqtt.port')
        if not isinstance(port, int) or isinstance(port, bool) or port < 1 or port > 65535:
            errors.append(f"Invalid MQTT port: {port}")

        qos = self.get('mqtt.qos')
        if qos not in (0, 1, 2):
            errors.append(f"Invalid MQTT QoS level: {qos}")

        transport = str(self.get('mqtt.transport', 'tcp')).lower()
        if transport not in VALID_TRANSPORTS:
            errors.append(f"Invalid MQTT transport: {transport}")

        log_level = str(self.get('relay.log_level', 'info')).lower()
        if log_level not in VALID_LOG_LEVELS:
            errors.append(f"Invalid log level: {log_level}")

        dedupe_seconds = self.get('relay.dedupe_seconds')
        if not isinstance(dedupe_seconds, (int, float)) or isinstance(dedupe_seconds, bool):
            errors.append(f"Invalid dedupe window: {dedupe_seconds}")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation"""
        keys = key.split('.')
        current = self.config

        try:
            for k in keys:
                current = current[k]
            return current
        except (KeyError, TypeError):
            return default

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get entire configuration section"""
        return self.get(section, {})

    def get_mqtt_config(self) -> Dict[str, Any]:
        """Get MQTT transport settings with the transport name normalized"""
        mqtt_config = dict(self.get_section('mqtt'))
        mqtt_config['transport'] = str(mqtt_config.get('transport', 'tcp')).strip().lower()
        return mqtt_config

    def get_dedupe_seconds(self) -> int:
        return self.get('relay.dedupe_seconds', 45)

    def get_stats_interval(self) -> int:
        return self.get('relay.stats_interval', 300) or 0

    def get_log_level(self) -> str:
        return str(self.get('relay.log_level', 'info')).strip().lower()

    def get_discord_token(self) -> str:
        return (self.get('discord.token') or '').strip()

    def get_default_channel_id(self) -> str:
        return str(self.get('discord.default_channel_id') or '').strip()

    def get_channels_file(self) -> str:
        return self.get('channels.file', 'channels.json') or ''
