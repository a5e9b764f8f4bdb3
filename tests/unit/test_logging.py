"""
Unit tests for logging setup
"""

import logging

import pytest

from core.logging import RelayLogger, get_logger, get_structured_logger, initialize_logging, resolve_log_level


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestResolveLogLevel:
    """Tests for verbosity names"""

    @pytest.mark.parametrize("name,level", [
        ("debug", logging.DEBUG),
        ("INFO", logging.INFO),
        ("warn", logging.WARNING),
        ("warning", logging.WARNING),
        ("error", logging.ERROR),
    ])
    def test_known_levels(self, name, level):
        assert resolve_log_level(name) == level

    def test_unknown_level_uses_default(self):
        assert resolve_log_level("chatty") == logging.INFO
        assert resolve_log_level(None, logging.ERROR) == logging.ERROR


class TestRelayLogger:
    """Tests for handler configuration"""

    def test_sets_root_level(self):
        RelayLogger({'relay': {'log_level': 'debug'}, 'logging': {'console': True}})
        assert logging.getLogger().level == logging.DEBUG

    def test_file_handler(self, temp_dir):
        log_file = temp_dir / "logs" / "relay.log"
        relay_logger = RelayLogger({
            'relay': {'log_level': 'info'},
            'logging': {'file': str(log_file), 'max_size': '1MB', 'backup_count': 2, 'console': False}
        })

        relay_logger.get_logger('test').info("hello")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert log_file.exists()
        assert "hello" in log_file.read_text(encoding="utf-8")

    def test_noisy_loggers_are_capped(self):
        RelayLogger({'relay': {'log_level': 'debug'}, 'logging': {}})
        assert logging.getLogger('discord.gateway').level == logging.WARNING
        assert logging.getLogger('paho.mqtt.client').level == logging.WARNING

    def test_parse_size(self):
        relay_logger = RelayLogger({'logging': {'console': False}})
        assert relay_logger._parse_size('10KB') == 10 * 1024
        assert relay_logger._parse_size('2MB') == 2 * 1024 * 1024
        assert relay_logger._parse_size('1GB') == 1024 ** 3
        assert relay_logger._parse_size('512') == 512

    def test_logger_names_are_prefixed(self):
        relay_logger = initialize_logging({'logging': {'console': False}})
        assert relay_logger.get_logger('pipeline').name == 'meshrelay.pipeline'
        assert get_logger('mqtt').name == 'meshrelay.mqtt'


def test_structured_logger_accepts_key_values():
    logger = get_structured_logger('test')
    logger.info("packet_relayed", channel_id="123")
