"""
MeshCore channel cryptography

Channel hash derivation, channel key store and GroupText decryption.
GroupText ciphertext is AES-128-ECB under the first 16 bytes of the channel
secret, authenticated by the first two bytes of an HMAC-SHA256 keyed with the
secret zero-padded to 32 bytes.
"""

import hashlib
import hmac
import logging
from typing import Dict, Iterable, List, Optional

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from models.meshcore import DecryptedGroupText


logger = logging.getLogger(__name__)

CIPHER_KEY_SIZE = 16
CIPHER_BLOCK_SIZE = 16
CIPHER_MAC_SIZE = 2
HMAC_KEY_SIZE = 32
MAX_SENDER_PREFIX = 50


class DecryptionError(Exception):
    """GroupText ciphertext could not be authenticated or decrypted"""
    pass


def calculate_channel_hash(secret_hex: str) -> str:
    """
    Derive the one-byte channel hash for a channel secret.

    Args:
        secret_hex: Channel secret as a hex string

    Returns:
        Channel hash as two lowercase hex digits
    """
    secret = bytes.fromhex(secret_hex)
    return hashlib.sha256(secret).digest()[:1].hex()


def _mac_matches(secret: bytes, ciphertext: bytes, mac: bytes) -> bool:
    key = secret.ljust(HMAC_KEY_SIZE, b"\x00")[:HMAC_KEY_SIZE]
    digest = hmac.new(key, ciphertext, hashlib.sha256).digest()
    return hmac.compare_digest(digest[:CIPHER_MAC_SIZE], mac)


def _split_sender(text: str):
    separator = text.find(": ")
    if 0 < separator < MAX_SENDER_PREFIX:
        return text[:separator], text[separator + 2:]
    return "", text


def decrypt_group_text(secret_hex: str, cipher_mac: bytes, ciphertext: bytes) -> DecryptedGroupText:
    """
    Authenticate and decrypt a GroupText ciphertext with one channel secret.

    Raises:
        DecryptionError: if the MAC does not match or the ciphertext is malformed
    """
    try:
        secret = bytes.fromhex(secret_hex)
    except ValueError as e:
        raise DecryptionError(f"Invalid channel secret: {e}") from e

    if len(secret) < CIPHER_KEY_SIZE:
        raise DecryptionError(f"Channel secret too short: {len(secret)} bytes")
    if not ciphertext or len(ciphertext) % CIPHER_BLOCK_SIZE != 0:
        raise DecryptionError(f"Ciphertext length {len(ciphertext)} is not a multiple of {CIPHER_BLOCK_SIZE}")
    if not _mac_matches(secret, ciphertext, cipher_mac):
        raise DecryptionError("Cipher MAC mismatch")

    decryptor = Cipher(algorithms.AES(secret[:CIPHER_KEY_SIZE]), modes.ECB()).decryptor()
    plaintext = decryptor.update(ciphertext) + decryptor.finalize()

    timestamp = int.from_bytes(plaintext[0:4], "little")
    flags = plaintext[4]
    text = plaintext[5:].split(b"\x00", 1)[0].decode("utf-8", errors="replace")
    sender, message = _split_sender(text)

    return DecryptedGroupText(timestamp=timestamp, flags=flags, sender=sender, message=message)


class ChannelKeyStore:
    """
    Channel secrets indexed by channel hash.

    Several secrets can share a one-byte hash; callers try each in turn and
    keep the one whose MAC verifies.
    """

    def __init__(self, channel_secrets: Iterable[str] = ()):
        self._by_hash: Dict[str, List[str]] = {}
        for secret in channel_secrets:
            self.add_secret(secret)

    def add_secret(self, secret_hex: str) -> str:
        """Register a channel secret and return its channel hash"""
        secret_hex = secret_hex.lower()
        channel_hash = calculate_channel_hash(secret_hex)
        secrets = self._by_hash.setdefault(channel_hash, [])
        if secret_hex not in secrets:
            secrets.append(secret_hex)
        return channel_hash

    def secrets_for(self, channel_hash: str) -> List[str]:
        return list(self._by_hash.get(channel_hash.lower(), []))

    def has_channel(self, channel_hash: str) -> bool:
        return channel_hash.lower() in self._by_hash

    def __len__(self) -> int:
        return sum(len(secrets) for secrets in self._by_hash.values())


def create_key_store(channel_secrets: Iterable[str]) -> Optional[ChannelKeyStore]:
    """Build a key store, or None when no secrets are configured"""
    secrets = [secret for secret in channel_secrets if secret]
    if not secrets:
        return None
    store = ChannelKeyStore(secrets)
    logger.debug(f"Created channel key store with {len(store)} secrets")
    return store
