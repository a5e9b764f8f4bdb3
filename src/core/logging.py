"""
Logging Configuration for the MeshCore relay

Provides centralized logging setup with structured logging,
optional file rotation, and relay verbosity levels.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Dict, Optional
import structlog


LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}

LOGGER_PREFIX = 'meshrelay'


def resolve_log_level(level: Optional[str], default: int = logging.INFO) -> int:
    """Map a relay verbosity name (debug, info, warn, error) to a logging level"""
    if not level:
        return default
    return LOG_LEVELS.get(str(level).strip().lower(), default)


class RelayLogger:
    """
    Centralized logging configuration for the relay
    """

    def __init__(self, config: Dict):
        self.config = config
        self.loggers: Dict[str, logging.Logger] = {}
        self.level = logging.INFO
        self._setup_logging()

    def _setup_logging(self):
        """Set up logging configuration"""
        log_config = self.config.get('logging', {})
        relay_config = self.config.get('relay', {})
        self.level = resolve_log_level(relay_config.get('log_level', 'info'))
        log_file = log_config.get('file', '')
        max_size = log_config.get('max_size', '10MB')
        backup_count = log_config.get('backup_count', 5)
        console_enabled = log_config.get('console', True)

        # Configure structlog
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="ISO"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.processors.JSONRenderer()
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        root_logger = logging.getLogger()
        root_logger.setLevel(self.level)
        root_logger.handlers.clear()

        # File handler with rotation
        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=self._parse_size(max_size),
                backupCount=backup_count,
                encoding='utf-8'
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            file_handler.setLevel(self.level)
            root_logger.addHandler(file_handler)

        # Console handler
        if console_enabled:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%H:%M:%S'
            ))
            console_handler.setLevel(self.level)
            root_logger.addHandler(console_handler)

        self._configure_third_party_loggers()

    def _parse_size(self, size_str: str) -> int:
        """Parse size string like '10MB' to bytes"""
        size_str = str(size_str).upper()
        if size_str.endswith('KB'):
            return int(size_str[:-2]) * 1024
        elif size_str.endswith('MB'):
            return int(size_str[:-2]) * 1024 * 1024
        elif size_str.endswith('GB'):
            return int(size_str[:-2]) * 1024 * 1024 * 1024
        else:
            return int(size_str)

    def _configure_third_party_loggers(self):
        """Configure third-party library loggers to reduce noise"""
        noisy_loggers = [
            'asyncio',
            'discord',
            'discord.gateway',
            'discord.http',
            'paho',
            'paho.mqtt.client',
        ]

        for logger_name in noisy_loggers:
            logging.getLogger(logger_name).setLevel(max(logging.WARNING, self.level))

    def get_logger(self, name: str) -> logging.Logger:
        """Get a logger for a specific component"""
        if name not in self.loggers:
            full_name = f'{LOGGER_PREFIX}.{name}' if not name.startswith(LOGGER_PREFIX) else name
            self.loggers[name] = logging.getLogger(full_name)
        return self.loggers[name]


# Global logger instance
_logger_instance: Optional[RelayLogger] = None


def initialize_logging(config: Dict) -> RelayLogger:
    """Initialize the global logging system"""
    global _logger_instance
    _logger_instance = RelayLogger(config)
    return _logger_instance


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance"""
    if _logger_instance is None:
        # Fallback to basic logging if not initialized
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        return logging.getLogger(f'{LOGGER_PREFIX}.{name}')

    return _logger_instance.get_logger(name)


def get_structured_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance"""
    if _logger_instance is None and not structlog.is_configured():
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="ISO"),
                structlog.processors.JSONRenderer()
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    return structlog.get_logger(f'{LOGGER_PREFIX}.{name}')
