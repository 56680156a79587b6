"""
Bridge wire protocol

Every message is one JSON object prefixed by its byte length
(4 bytes, big-endian). A request names a command ("event" or "status");
a response carries "status": "ok" or "error".
"""

import contextlib
import json
import logging
import os
import socket
import struct
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

LENGTH_PREFIX = struct.Struct(">I")
MAX_MESSAGE_SIZE = 1024 * 1024


def listen_unix(socket_path: Path, backlog: int = 5) -> socket.socket:
    """Bind a listening socket at socket_path, replacing a stale socket file"""
    with contextlib.suppress(FileNotFoundError):
        socket_path.unlink()

    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.bind(str(socket_path))
    os.chmod(socket_path, 0o600)
    sock.listen(backlog)
    return sock


def connect_unix(socket_path: Path) -> socket.socket:
    """
    Raises:
        ConnectionError: If no bridge is listening at socket_path
    """
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.connect(str(socket_path))
    except (FileNotFoundError, ConnectionRefusedError) as e:
        sock.close()
        raise ConnectionError(f"No bridge listening at {socket_path}") from e
    return sock


def encode_message(message: Dict[str, Any]) -> bytes:
    payload = json.dumps(message).encode("utf-8")
    if len(payload) > MAX_MESSAGE_SIZE:
        raise ValueError(f"Message too large: {len(payload)} bytes")
    return LENGTH_PREFIX.pack(len(payload)) + payload


def decode_payload(payload: bytes) -> Dict[str, Any]:
    if not payload:
        raise ValueError("Empty message")
    message = json.loads(payload.decode("utf-8"))
    if not isinstance(message, dict):
        raise ValueError("Message must be a JSON object")
    return message


def send_message(sock: socket.socket, message: Dict[str, Any]) -> None:
    sock.sendall(encode_message(message))


def recv_message(sock: socket.socket) -> Optional[Dict[str, Any]]:
    """
    Read one message

    Returns:
        The decoded message, or None if the peer closed the connection
        between messages

    Raises:
        ConnectionError: If the peer closed the connection mid-message
        ValueError: If the message is oversized, empty or not a JSON object
    """
    header = _read_exactly(sock, LENGTH_PREFIX.size)
    if header is None:
        return None

    (length,) = LENGTH_PREFIX.unpack(header)
    if length > MAX_MESSAGE_SIZE:
        raise ValueError(f"Message too large: {length} bytes")

    payload = _read_exactly(sock, length)
    if payload is None:
        raise ConnectionError(f"Connection closed before {length} byte message arrived")
    return decode_payload(payload)


def _read_exactly(sock: socket.socket, size: int) -> Optional[bytes]:
    """size bytes from sock, or None on EOF before the first of them"""
    buffer = bytearray()
    while len(buffer) < size:
        chunk = sock.recv(size - len(buffer))
        if not chunk:
            if buffer:
                raise ConnectionError("Connection closed mid-message")
            return None
        buffer.extend(chunk)
    return bytes(buffer)


def make_event_request(event: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"command": "event", "event": event, "data": data or {}}


def make_status_request() -> Dict[str, Any]:
    return {"command": "status"}


def make_ok_response(**fields: Any) -> Dict[str, Any]:
    return {"status": "ok", **fields}


def make_error_response(message: str) -> Dict[str, Any]:
    return {"status": "error", "message": message}
