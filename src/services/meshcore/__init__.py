"""
MeshCore packet decoding

Header parsing for every payload type and channel decryption for GroupText.
"""

from .crypto import ChannelKeyStore, DecryptionError, calculate_channel_hash, create_key_store
from .decoder import PacketDecodeError, calculate_message_hash, decode

__all__ = [
    'ChannelKeyStore', 'DecryptionError', 'calculate_channel_hash', 'create_key_store',
    'PacketDecodeError', 'calculate_message_hash', 'decode'
]
