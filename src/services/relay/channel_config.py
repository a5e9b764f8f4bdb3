"""
Channel mapping configuration

Loads the channels file (JSON or YAML) mapping MeshCore channels to Discord
channels. Each entry names a channel secret or an explicit channel hash, a
display name and a Discord channel id. Bad entries are skipped with a warning
and never abort startup.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from models.packet import ChannelMapping
from services.meshcore import calculate_channel_hash


logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r"[0-9a-f]+")


@dataclass
class ChannelFileData:
    """Raw contents of the channels file"""
    default_channel_id: str = ""
    channels: List[Any] = field(default_factory=list)


@dataclass
class ChannelConfig:
    """Validated channel mappings and the secrets used for decryption"""
    channel_map: Dict[str, ChannelMapping] = field(default_factory=dict)
    channel_secrets: List[str] = field(default_factory=list)
    default_channel_id: str = ""


def normalize_hex(value: Any) -> str:
    """
    Normalize a hex secret or hash.

    Returns:
        Lowercase hex with an even number of digits, or "" if invalid
    """
    if not value or not isinstance(value, str):
        return ""
    text = value.strip().lower()
    if not text or len(text) % 2 != 0:
        return ""
    if not _HEX_RE.fullmatch(text):
        return ""
    return text


def resolve_path(file_path: str, base_dir: Optional[Path] = None) -> Path:
    path = Path(file_path)
    if path.is_absolute():
        return path
    return (base_dir or Path.cwd()) / path


def load_channels_file(file_path: str, base_dir: Optional[Path] = None) -> ChannelFileData:
    """
    Read the channels file.

    A missing file yields no mappings; an unreadable one is logged and also
    yields no mappings.
    """
    if not file_path:
        return ChannelFileData()

    path = resolve_path(file_path, base_dir)
    if not path.exists():
        return ChannelFileData()

    try:
        with open(path, 'r', encoding='utf-8') as f:
            if path.suffix.lower() in ('.yaml', '.yml'):
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.warning(f"Failed to read channels file {path}: {e}")
        return ChannelFileData()

    if not isinstance(data, dict):
        logger.warning(f"Channels file {path} must contain an object")
        return ChannelFileData()

    default_channel_id = str(data.get('default_channel_id') or data.get('defaultChannelId') or '').strip()
    channels = data.get('channels')
    return ChannelFileData(
        default_channel_id=default_channel_id,
        channels=channels if isinstance(channels, list) else [],
    )


def build_channel_config(file_data: ChannelFileData, default_channel_id: str = "") -> ChannelConfig:
    """
    Validate channel entries into a channel map keyed by channel hash.

    A secret takes precedence over a hash override. The first entry for a
    hash wins.
    """
    config = ChannelConfig(default_channel_id=(default_channel_id or file_data.default_channel_id or '').strip())

    for entry in file_data.channels:
        if not isinstance(entry, dict):
            continue

        destination_id = str(entry.get('discord_channel_id') or entry.get('discordChannelId') or '').strip()
        if not destination_id:
            logger.warning("Channel entry missing discord_channel_id, skipping.")
            continue

        secret = normalize_hex(entry.get('secret') or '')
        hash_override = normalize_hex(entry.get('hash') or '')
        name = str(entry.get('name') or entry.get('label') or '').strip()

        channel_hash = ''
        if secret:
            channel_hash = calculate_channel_hash(secret)
        elif hash_override:
            channel_hash = hash_override

        if not channel_hash:
            logger.warning(f"Channel entry missing secret/hash for {destination_id}, skipping.")
            continue

        if secret and secret not in config.channel_secrets:
            config.channel_secrets.append(secret)

        if channel_hash in config.channel_map:
            logger.warning(f"Duplicate channel hash {channel_hash} detected, keeping first mapping.")
            continue

        config.channel_map[channel_hash] = ChannelMapping(
            name=name,
            channel_hash=channel_hash,
            destination_channel_id=destination_id,
            secret=secret,
        )

    return config


def load_channel_config(file_path: str, default_channel_id: str = "",
                        base_dir: Optional[Path] = None) -> ChannelConfig:
    """Load and validate the channels file in one step"""
    config = build_channel_config(load_channels_file(file_path, base_dir), default_channel_id)
    logger.info(f"Loaded {len(config.channel_map)} channel mappings, "
                f"{len(config.channel_secrets)} channel secrets")
    return config
