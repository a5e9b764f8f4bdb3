"""
Packet blob extraction for the MeshCore relay

Locates the encoded MeshCore packet inside an MQTT payload. Gateways publish
packets in many shapes (JSON telemetry wrappers, bare hex, base64, raw
bytes), so the payload is sniffed with an ordered chain of independent
classifiers and the first match wins.
"""

import base64
import binascii
import json
import logging
import re
from typing import Any, Callable, Optional, Tuple

from models.packet import EncodingHint, PacketBlob


logger = logging.getLogger(__name__)

LIKELY_PACKET_KEYS = frozenset({
    "hex", "raw", "packet", "packet_hex", "frame", "data", "payload",
    "mesh_packet", "meshcore_packet", "rx_packet", "bytes", "packet_bytes",
})

MIN_HEX_LENGTH = 20
MIN_BASE64_LENGTH = 24
MIN_PACKET_BYTES = 10
INT_ARRAY_PROBE = 20
BINARY_SAMPLE_SIZE = 200
BINARY_PRINTABLE_THRESHOLD = 0.6

_HEX_RE = re.compile(r"[0-9a-fA-F]+")
_BASE64_MARKERS = frozenset("+/=")
_PRINTABLE_CONTROL = frozenset((9, 10, 13))


def looks_like_hex(value: str) -> bool:
    """Check for an even-length hex string of at least 20 characters"""
    text = value.strip()
    if len(text) < MIN_HEX_LENGTH or len(text) % 2 != 0:
        return False
    return _HEX_RE.fullmatch(text) is not None


def base64_to_hex(value: str) -> Optional[str]:
    """Decode a base64-looking string to hex, or None if it is not one"""
    text = value.strip()
    if len(text) < MIN_BASE64_LENGTH:
        return None
    if not any(c in _BASE64_MARKERS for c in text):
        return None
    try:
        raw = base64.b64decode(text + "=" * (-len(text) % 4), validate=False)
    except (binascii.Error, ValueError):
        return None
    if len(raw) < MIN_PACKET_BYTES:
        return None
    return raw.hex()


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def int_array_to_hex(value: list) -> Optional[str]:
    """Interpret a list of byte values as raw packet bytes"""
    if not value:
        return None
    if not all(_is_int(item) for item in value[:INT_ARRAY_PROBE]):
        return None
    try:
        raw = bytes(value)
    except (TypeError, ValueError):
        return None
    if len(raw) < MIN_PACKET_BYTES:
        return None
    return raw.hex()


def is_probably_binary(data: bytes) -> bool:
    """
    Sample the first 200 bytes and report whether less than 60% of them are
    printable ASCII (0x20-0x7E, tab, LF or CR).
    """
    if not data:
        return False
    sample = data[:BINARY_SAMPLE_SIZE]
    printable = sum(1 for b in sample if 32 <= b <= 126 or b in _PRINTABLE_CONTROL)
    return printable / len(sample) < BINARY_PRINTABLE_THRESHOLD


def _leaf_blob(value: Any, path: str) -> Optional[PacketBlob]:
    """Classify a single JSON value without descending into it"""
    if isinstance(value, str):
        if looks_like_hex(value):
            return PacketBlob(value.strip(), path, EncodingHint.HEX)
        decoded = base64_to_hex(value)
        if decoded:
            return PacketBlob(decoded, path, EncodingHint.BASE64)
        return None
    if isinstance(value, list):
        decoded = int_array_to_hex(value)
        if decoded:
            return PacketBlob(decoded, path, EncodingHint.INT_ARRAY)
    return None


def _key_priority(key: str) -> int:
    return 0 if key in LIKELY_PACKET_KEYS else 1


def find_packet_blob(value: Any, path: str = "root") -> Optional[PacketBlob]:
    """
    Depth-first search of a parsed JSON document for a packet blob.

    Object keys from LIKELY_PACKET_KEYS are visited first, otherwise document
    order is kept. Each child is classified as a leaf before it is descended
    into.
    """
    found = _leaf_blob(value, path)
    if found:
        return found

    if isinstance(value, list):
        for index, item in enumerate(value):
            found = find_packet_blob(item, f"{path}[{index}]")
            if found:
                return found
        return None

    if isinstance(value, dict):
        for key in sorted(value.keys(), key=_key_priority):
            child = value[key]
            child_path = f"{path}.{key}"
            found = _leaf_blob(child, child_path)
            if found:
                return found
            if isinstance(child, (dict, list)):
                found = find_packet_blob(child, child_path)
                if found:
                    return found

    return None


def _structured_candidate(text: str, payload: bytes) -> Optional[PacketBlob]:
    if not (text.startswith("{") and text.endswith("}")):
        return None
    try:
        document = json.loads(text)
    except (ValueError, RecursionError):
        return None
    return find_packet_blob(document)


def _hex_candidate(text: str, payload: bytes) -> Optional[PacketBlob]:
    if text and looks_like_hex(text):
        return PacketBlob(text.strip(), "text", EncodingHint.HEX)
    return None


def _base64_candidate(text: str, payload: bytes) -> Optional[PacketBlob]:
    if not text:
        return None
    decoded = base64_to_hex(text)
    if decoded:
        return PacketBlob(decoded, "text", EncodingHint.BASE64)
    return None


def _binary_candidate(text: str, payload: bytes) -> Optional[PacketBlob]:
    if len(payload) >= MIN_PACKET_BYTES and is_probably_binary(payload):
        return PacketBlob(payload.hex(), "bytes", EncodingHint.BINARY)
    return None


CLASSIFIERS: Tuple[Callable[[str, bytes], Optional[PacketBlob]], ...] = (
    _structured_candidate,
    _hex_candidate,
    _base64_candidate,
    _binary_candidate,
)


def extract(topic: str, payload: bytes) -> Optional[PacketBlob]:
    """
    Find the packet blob carried by an MQTT payload.

    Args:
        topic: MQTT topic the payload arrived on
        payload: Raw payload bytes

    Returns:
        PacketBlob, or None when no packet could be located
    """
    if not payload:
        return None

    text = bytes(payload).decode("utf-8", errors="replace").strip()
    for classifier in CLASSIFIERS:
        blob = classifier(text, payload)
        if blob:
            logger.debug(f"Packet found on {topic} at {blob.source_path} ({blob.encoding_hint.value})")
            return blob
    return None


def extract_packet_hex(topic: str, payload: bytes) -> Optional[str]:
    """Convenience wrapper returning only the hex string"""
    blob = extract(topic, payload)
    return blob.hex if blob else None
