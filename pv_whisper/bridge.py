"""
pv-whisper bridge

Runs the whisper addon out of process. The voice server forwards its events
over a Unix socket and gets back the actions the addon took:
- Mirrors channels the voice server announces (proximity radius limits)
- Dispatches channel, frame, distance and disconnect events to the addon
- Answers each event with the registrations, relays and visualizations
  it caused, for the voice server to carry out
"""

import base64
import logging
import signal
import socket
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Optional

from pv_whisper.addon import WhisperAddon
from pv_whisper.config import ConfigError
from pv_whisper.host import (
    PROXIMITY_CHANNEL,
    UNSET_DISTANCE,
    ChannelContext,
    ChannelEvent,
    ChannelInfo,
    ChannelRegistration,
    DisconnectEvent,
    DistanceChangedEvent,
    FrameHooks,
    SourceLineRegistration,
    VoiceStartFrame,
    VoiceStopFrame,
    channel_id,
)
from pv_whisper.ipc import (
    listen_unix,
    make_error_response,
    make_ok_response,
    recv_message,
    send_message,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ListenerSnapshot:
    """Listener state as sent along with an event"""
    id: str
    distances: Dict[str, int] = field(default_factory=dict)
    permissions: FrozenSet[str] = frozenset()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListenerSnapshot":
        """
        Raises:
            ValueError: If the listener or its distances are not mappings,
                        or permissions is not a list
        """
        if not isinstance(data, dict):
            raise ValueError("listener must be an object")
        distances = data.get("distances") or {}
        if not isinstance(distances, dict):
            raise ValueError("listener distances must be an object")
        permissions = data.get("permissions") or []
        if not isinstance(permissions, list):
            raise ValueError("listener permissions must be a list")

        return cls(
            id=str(data["id"]),
            distances={str(k): int(v) for k, v in distances.items()},
            permissions=frozenset(str(p) for p in permissions),
        )

    def get_distance_override(self, channel_name: str) -> int:
        return self.distances.get(channel_name, UNSET_DISTANCE)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


class BridgeHost:
    """
    VoiceHost backed by the remote voice server

    Host calls made while handling a request are recorded as actions for
    that request only (thread local), since requests run concurrently.
    """

    def __init__(self):
        self._channels: Dict[str, ChannelContext] = {}
        self._registrations: Dict[str, ChannelRegistration] = {}
        self._source_lines: Dict[str, SourceLineRegistration] = {}
        self._hooks: Dict[uuid.UUID, FrameHooks] = {}
        self._lock = threading.RLock()
        self._local = threading.local()

    @contextmanager
    def collect(self) -> Iterator[List[Dict[str, Any]]]:
        """Record actions emitted by the current thread"""
        actions: List[Dict[str, Any]] = []
        self._local.actions = actions
        try:
            yield actions
        finally:
            self._local.actions = None

    def _emit(self, action_type: str, **fields: Any) -> None:
        actions = getattr(self._local, "actions", None)
        if actions is not None:
            actions.append({"type": action_type, **fields})

    # Channels owned by the voice server

    def announce_channel(self, channel: ChannelContext) -> None:
        with self._lock:
            self._channels[channel.name] = channel

    def withdraw_channel(self, name: str) -> Optional[ChannelContext]:
        with self._lock:
            return self._channels.pop(name, None)

    def hooks_for(self, channel: uuid.UUID) -> Optional[FrameHooks]:
        with self._lock:
            return self._hooks.get(channel)

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "channels": sorted(self._channels),
                "registrations": sorted(self._registrations),
                "source_lines": sorted(self._source_lines),
            }

    # VoiceHost

    def get_channel(self, name: str) -> Optional[ChannelContext]:
        with self._lock:
            return self._channels.get(name)

    def register_channel(self, registration: ChannelRegistration) -> None:
        with self._lock:
            self._registrations[registration.name] = registration
        self._emit(
            "register_channel",
            name=registration.name,
            id=str(registration.id),
            permission=registration.permission,
            icon=registration.icon,
            weight=registration.weight,
            proximity=registration.proximity,
            transitive=registration.transitive,
            stereo_supported=registration.stereo_supported,
        )

    def unregister_channel(self, name: str) -> None:
        with self._lock:
            self._registrations.pop(name, None)
        self._emit("unregister_channel", name=name)

    def register_source_line(self, registration: SourceLineRegistration) -> None:
        with self._lock:
            self._source_lines[registration.name] = registration
        self._emit(
            "register_source_line",
            name=registration.name,
            id=str(registration.id),
            permission=registration.permission,
            icon=registration.icon,
            weight=registration.weight,
        )

    def unregister_source_line(self, name: str) -> None:
        with self._lock:
            self._source_lines.pop(name, None)
        self._emit("unregister_source_line", name=name)

    def add_frame_hooks(self, channel: uuid.UUID, hooks: FrameHooks) -> None:
        with self._lock:
            self._hooks[channel] = hooks

    def remove_frame_hooks(self, channel: uuid.UUID) -> None:
        with self._lock:
            self._hooks.pop(channel, None)

    def send_audio(self, line_id: uuid.UUID, frame: VoiceStartFrame, distance: int, stereo: bool) -> None:
        self._emit(
            "send_audio",
            line_id=str(line_id),
            speaker_id=frame.speaker_id,
            sequence_number=frame.sequence_number,
            distance=distance,
            stereo=stereo,
            payload=base64.b64encode(frame.payload).decode("ascii"),
        )

    def send_audio_end(self, line_id: uuid.UUID, frame: VoiceStopFrame, distance: int) -> None:
        self._emit(
            "send_audio_end",
            line_id=str(line_id),
            speaker_id=frame.speaker_id,
            sequence_number=frame.sequence_number,
            distance=distance,
        )

    def visualize_distance(self, listener_id: str, distance: int, color: int) -> None:
        self._emit("visualize_distance", listener_id=listener_id, distance=distance, color=color)


def _frame_channel_id(data: Dict[str, Any]) -> uuid.UUID:
    """Channel id of a frame, given as 'channel_id' or as a 'channel' name"""
    if "channel_id" in data:
        return uuid.UUID(str(data["channel_id"]))
    return channel_id(str(data["channel"]))


class BridgeServer:
    """
    pv-whisper bridge daemon

    Manages:
    - The whisper addon and its host adapter
    - Client connections via Unix socket
    """

    def __init__(self, config_path: Optional[Path] = None, verbose: bool = False):
        """
        Initialize server

        Args:
            config_path: Addon config file, re-read on every config reload
            verbose: Enable verbose logging
        """
        self.verbose = verbose
        self.host = BridgeHost()
        self.addon = WhisperAddon(self.host, config_path)
        self._running = False
        self._server_socket: Optional[socket.socket] = None
        self._socket_path: Optional[Path] = None
        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            "channel_register": self._on_channel_register,
            "channel_unregister": self._on_channel_unregister,
            "voice_start": self._on_voice_start,
            "voice_stop": self._on_voice_stop,
            "distance_changed": self._on_distance_changed,
            "disconnected": self._on_disconnected,
            "config_reload": self._on_config_reload,
        }

    def run(self) -> None:
        """Run the server (blocking)"""
        self.addon.initialize()
        self._running = True

        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        self._socket_path = self.addon.config.get_socket_path()
        self._server_socket = listen_unix(self._socket_path)
        self._server_socket.settimeout(1.0)  # Allow periodic shutdown check

        logger.info(f"Bridge listening on {self._socket_path}")

        self._accept_connections()
        self._cleanup()

    def _signal_handler(self, signum: int, frame) -> None:
        """Handle termination signals"""
        logger.info(f"Received signal {signum}, shutting down...")
        self._running = False

    def _accept_connections(self) -> None:
        """Accept and handle client connections"""
        while self._running:
            try:
                client_sock, _ = self._server_socket.accept()
                threading.Thread(
                    target=self._handle_client,
                    args=(client_sock,),
                    daemon=True,
                ).start()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

    def _handle_client(self, client_sock: socket.socket) -> None:
        """Serve requests from one connection until it closes"""
        try:
            while self._running:
                request = recv_message(client_sock)
                if request is None:
                    return
                send_message(client_sock, self.process_request(request))
        except (OSError, ValueError) as e:
            logger.error(f"Client handler error: {e}")
        finally:
            client_sock.close()

    def process_request(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Process a client request and return response"""
        command = request.get("command")

        if not command:
            return make_error_response("missing 'command' field")

        if command == "status":
            channel = self.addon.channel
            return make_ok_response(
                whisper=channel.state.value if channel else "unregistered",
                epoch=channel.epoch if channel else 0,
                **self.host.status(),
            )

        if command != "event":
            return make_error_response(f"unknown command: {command}")

        event = request.get("event")
        handler = self._handlers.get(event)
        if handler is None:
            return make_error_response(f"unknown event: {event}")
        if self.addon.channel is None:
            return make_error_response("addon not initialized")

        data = request.get("data") or {}
        try:
            with self.host.collect() as actions:
                handler(data)
        except KeyError as e:
            return make_error_response(f"missing field {e} for event '{event}'")
        except (TypeError, ValueError) as e:
            return make_error_response(f"invalid data for event '{event}': {e}")
        except ConfigError as e:
            return make_error_response(f"config reload failed: {e}")

        if self.verbose:
            logger.info(f"Event '{event}': {len(actions)} action(s)")
        return make_ok_response(actions=actions)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_channel_register(self, data: Dict[str, Any]) -> None:
        info = data["channel"]
        channel = ChannelInfo(
            name=str(info["name"]),
            default_distance=int(info.get("default_distance", UNSET_DISTANCE)),
            max_distance=int(info["max_distance"]),
        )
        cancelled = bool(data.get("cancelled", False))
        if not cancelled:
            self.host.announce_channel(channel)
        self.addon.channel.on_channel_registered(ChannelEvent(channel, cancelled))

    def _on_channel_unregister(self, data: Dict[str, Any]) -> None:
        name = str(data["name"])
        cancelled = bool(data.get("cancelled", False))
        channel = self.host.get_channel(name) or ChannelInfo(name, UNSET_DISTANCE, UNSET_DISTANCE)
        if not cancelled:
            self.host.withdraw_channel(name)
        self.addon.channel.on_channel_unregistered(ChannelEvent(channel, cancelled))

    def _on_voice_start(self, data: Dict[str, Any]) -> None:
        listener = ListenerSnapshot.from_dict(data["listener"])
        frame = VoiceStartFrame(
            speaker_id=listener.id,
            channel_id=_frame_channel_id(data),
            sequence_number=int(data["sequence_number"]),
            stereo=bool(data.get("stereo", False)),
            payload=base64.b64decode(data.get("payload", "")),
        )
        hooks = self.host.hooks_for(frame.channel_id)
        if hooks is not None:
            hooks.on_voice_start(frame, listener)

    def _on_voice_stop(self, data: Dict[str, Any]) -> None:
        listener = ListenerSnapshot.from_dict(data["listener"])
        frame = VoiceStopFrame(
            speaker_id=listener.id,
            channel_id=_frame_channel_id(data),
            sequence_number=int(data["sequence_number"]),
        )
        hooks = self.host.hooks_for(frame.channel_id)
        if hooks is not None:
            hooks.on_voice_stop(frame, listener)

    def _on_distance_changed(self, data: Dict[str, Any]) -> None:
        self.addon.channel.on_distance_changed(DistanceChangedEvent(
            listener_id=str(data["listener_id"]),
            channel_name=str(data.get("channel", PROXIMITY_CHANNEL)),
            distance=int(data.get("distance", UNSET_DISTANCE)),
        ))

    def _on_disconnected(self, data: Dict[str, Any]) -> None:
        self.addon.channel.on_disconnected(DisconnectEvent(listener_id=str(data["listener_id"])))

    def _on_config_reload(self, data: Dict[str, Any]) -> None:
        self.addon.on_config_reloaded()

    def _cleanup(self) -> None:
        """Cleanup resources"""
        logger.info("Cleaning up...")

        if self.addon.channel is not None:
            self.addon.channel.unregister()

        if self._server_socket:
            self._server_socket.close()

        if self._socket_path is not None and self._socket_path.exists():
            self._socket_path.unlink()

        logger.info("Bridge stopped")


def run_server(config_path: Optional[Path] = None, verbose: bool = False) -> None:
    """
    Run the pv-whisper bridge

    Args:
        config_path: Addon config file
        verbose: Enable verbose logging
    """
    server = BridgeServer(config_path, verbose=verbose)
    server.run()
