"""Line-delimited JSON protocol spoken with plugin processes.

Every message is exactly one JSON object on a single line terminated by
``\\n``, in both directions:

    request   {"id": "<uuid>", "action": "<name>", "params": {...}}
    response  {"id": "<uuid>", "success": true, "data": {...}}
              {"id": "<uuid>", "success": false, "error": "<message>"}
    event     {"id": "<uuid>", "type": "<kind>", "data": {...}}

A native plugin announces readiness with the handshake response
``{"id": "init", "success": true, "data": {"status": "ready"}}``.
"""

import json
import logging
import uuid
from typing import Any

from .errors import ProtocolError

logger = logging.getLogger(__name__)

INIT_MESSAGE_ID = "init"
SHUTDOWN_MESSAGE_ID = "shutdown"
READY_STATUS = "ready"

# Largest partial line kept while waiting for its newline
DEFAULT_MAX_LINE_BYTES = 2 * 1024 * 1024


def new_correlation_id() -> str:
    """Generate a fresh request id."""
    return str(uuid.uuid4())


def encode_message(message: dict[str, Any]) -> str:
    """Serialize a message as a single framed line."""
    return json.dumps(message, separators=(",", ":"), ensure_ascii=False) + "\n"


def encode_request(correlation_id: str, action: str, params: dict[str, Any] | None = None) -> str:
    """Serialize a request frame.

    Args:
        correlation_id: Request id echoed back by the plugin
        action: Action name
        params: Action parameters

    Returns:
        Framed line including the trailing newline
    """
    return encode_message({"id": correlation_id, "action": action, "params": params or {}})


def encode_response(
    correlation_id: str,
    success: bool,
    data: Any = None,
    error: str | None = None,
) -> str:
    """Serialize a response frame (used by simulated transports)."""
    message: dict[str, Any] = {"id": correlation_id, "success": success}
    if data is not None:
        message["data"] = data
    if error is not None:
        message["error"] = error
    return encode_message(message)


def decode_line(line: str) -> dict[str, Any]:
    """Parse one frame.

    Raises:
        ProtocolError: If the line is not a JSON object
    """
    try:
        message = json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e

    if not isinstance(message, dict):
        raise ProtocolError(f"Expected JSON object, got {type(message).__name__}")

    return message


def is_response(message: dict[str, Any]) -> bool:
    """True for ``{id, success, ...}`` frames."""
    return "success" in message


def is_ready_signal(message: dict[str, Any]) -> bool:
    """True for the handshake frame a plugin prints once it is ready."""
    data = message.get("data")
    return (
        message.get("id") == INIT_MESSAGE_ID
        and message.get("success") is True
        and isinstance(data, dict)
        and data.get("status") == READY_STATUS
    )


class FrameDecoder:
    """Reassembles framed messages from arbitrarily split text chunks.

    Chunks may end mid-line or carry several lines at once. Complete lines
    are parsed and returned; the trailing partial line stays buffered until
    its newline arrives. A bad line is logged and dropped without affecting
    the lines around it.
    """

    def __init__(self, label: str = "plugin", max_line_bytes: int = DEFAULT_MAX_LINE_BYTES) -> None:
        self.label = label
        self.max_line_bytes = max_line_bytes
        self._buffer = ""

    @property
    def buffer(self) -> str:
        """Text received but not yet terminated by a newline."""
        return self._buffer

    def feed(self, chunk: str) -> list[dict[str, Any]]:
        """Append a chunk and return every message it completes.

        Args:
            chunk: Text as received from the transport

        Returns:
            Parsed messages in arrival order
        """
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")

        messages = []
        for line in lines:
            if not line.strip():
                continue
            try:
                messages.append(decode_line(line))
            except ProtocolError as e:
                logger.error("[%s] Dropping malformed frame (%s): %.200s", self.label, e, line)

        if len(self._buffer.encode("utf-8")) > self.max_line_bytes:
            logger.error(
                "[%s] Discarding partial frame larger than %d bytes",
                self.label,
                self.max_line_bytes,
            )
            self._buffer = ""

        return messages

    def reset(self) -> None:
        """Drop any buffered partial line."""
        self._buffer = ""
