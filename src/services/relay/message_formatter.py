"""
Message Formatter for the MeshCore relay

Renders decrypted GroupText messages as Discord message text.
"""

import logging
from typing import Optional

from models.meshcore import GroupTextPayload
from models.packet import ChannelMapping


MAX_MESSAGE_LENGTH = 1900
TRUNCATED_LENGTH = 1890
ELLIPSIS = "..."
MESSAGE_PREFIX = "MeshCore"


class MessageFormatter:
    """
    Formats relayed messages as ``[MeshCore <label>] <sender>: <body>``.

    The label is the mapped channel name, else the mapped channel hash, else
    ``unknown``. Output never exceeds Discord's limit with some headroom:
    longer text is cut to 1890 characters and marked with an ellipsis.
    """

    def __init__(
        self,
        max_length: int = MAX_MESSAGE_LENGTH,
        truncated_length: int = TRUNCATED_LENGTH,
        logger: Optional[logging.Logger] = None
    ):
        self.max_length = max_length
        self.truncated_length = truncated_length
        self.logger = logger or logging.getLogger(__name__)

    def channel_label(self, mapping: Optional[ChannelMapping]) -> str:
        return mapping.label if mapping else "unknown"

    def format(self, mapping: Optional[ChannelMapping], payload: Optional[GroupTextPayload]) -> str:
        """
        Build the outbound text for a decoded payload.

        Returns:
            Message text, or an empty string when there is no body to relay
        """
        decrypted = payload.decrypted if payload else None
        if decrypted is None:
            return ""

        body = (decrypted.message or "").strip()
        if not body:
            return ""

        sender = f"{decrypted.sender}: " if decrypted.sender else ""
        label = self.channel_label(mapping)
        text = f"[{MESSAGE_PREFIX} {label}] {sender}{body}".strip()

        if len(text) > self.max_length:
            self.logger.debug(f"Truncating relayed message from {len(text)} characters")
            text = f"{text[:self.truncated_length]}{ELLIPSIS}"
        return text
