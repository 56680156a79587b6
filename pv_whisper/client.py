"""
pv-whisper client

CLI client for talking to a running pv-whisper bridge.
"""

import json
import logging
from typing import Any, Dict, Optional

from pv_whisper.config import Config
from pv_whisper.ipc import (
    connect_unix,
    make_event_request,
    make_status_request,
    recv_message,
    send_message,
)

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_USAGE = 2


def _request(config: Config, request: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Send one request and return the ok response, or None on failure"""
    socket_path = config.get_socket_path()

    try:
        sock = connect_unix(socket_path)
    except OSError as e:
        logger.error(f"Cannot connect to bridge: {e}")
        return None

    try:
        send_message(sock, request)
        response = recv_message(sock)
    except (OSError, ValueError) as e:
        logger.error(f"Communication error: {e}")
        return None
    finally:
        sock.close()

    if not response:
        logger.error("No response from bridge")
        return None

    if response.get("status") != "ok":
        logger.error(f"Bridge error: {response.get('message', 'unknown')}")
        return None

    return response


def client_status(config: Config) -> int:
    """
    Print whisper channel and registration status

    Returns:
        Exit code
    """
    response = _request(config, make_status_request())
    if response is None:
        return EXIT_ERROR

    response.pop("status", None)
    print(json.dumps(response, indent=2))
    return EXIT_SUCCESS


def client_event(config: Config, event: str, data: Optional[str] = None) -> int:
    """
    Send a host event to the bridge and print the resulting actions

    Args:
        config: Configuration
        event: Event name, e.g. 'voice_start'
        data: Event data as a JSON object string

    Returns:
        Exit code
    """
    try:
        payload = json.loads(data) if data else {}
    except json.JSONDecodeError as e:
        logger.error(f"Invalid event data: {e}")
        return EXIT_USAGE
    if not isinstance(payload, dict):
        logger.error("Event data must be a JSON object")
        return EXIT_USAGE

    response = _request(config, make_event_request(event, payload))
    if response is None:
        return EXIT_ERROR

    for action in response.get("actions", []):
        print(json.dumps(action))
    return EXIT_SUCCESS
