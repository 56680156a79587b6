"""
Whisper channel lifecycle: UNREGISTERED <-> REGISTERED

The whisper channel has no enabled flag of its own. It is registered while
the host's proximity channel is registered and removed when that goes away:
- UNREGISTERED -> REGISTERED: proximity channel registered, or config
  reloaded while the proximity channel is present. Any previous
  registration is removed first, so repeated reloads leave exactly one.
- REGISTERED -> UNREGISTERED: proximity channel unregistered.
- Config reload while UNREGISTERED only stores the new config.

Frames are routed through the current handle. The handle is swapped under
the lifecycle lock and read once per frame, so a frame sees either the old
or the new registration, or none at all while the swap is in progress.
"""

import enum
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional

from pv_whisper.config import WhisperConfig
from pv_whisper.host import (
    PROXIMITY_CHANNEL,
    WHISPER_CHANNEL,
    WHISPER_CHANNEL_ICON,
    WHISPER_PERMISSION,
    WHISPER_SOURCE_LINE_ICON,
    ChannelEvent,
    ChannelRegistration,
    DisconnectEvent,
    DistanceChangedEvent,
    FrameHooks,
    ListenerContext,
    SourceLineRegistration,
    VoiceHost,
    VoiceStartFrame,
    VoiceStopFrame,
    channel_id,
)
from pv_whisper.relay import WhisperRelay
from pv_whisper.visualization import VisualizationTracker

logger = logging.getLogger(__name__)


class State(enum.Enum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"


@dataclass(frozen=True)
class WhisperChannelHandle:
    """Live registration of the whisper channel with the host"""
    channel_id: uuid.UUID
    source_line_id: uuid.UUID
    epoch: int
    relay: WhisperRelay


class WhisperChannel:
    """Owns the whisper channel registration and routes host events to it"""

    def __init__(self, host: VoiceHost, config: WhisperConfig):
        self._host = host
        self._config = config
        self._tracker = VisualizationTracker(host.visualize_distance)
        self._handle: Optional[WhisperChannelHandle] = None
        self._epoch = 0
        self._lock = threading.RLock()

    @property
    def config(self) -> WhisperConfig:
        return self._config

    @property
    def tracker(self) -> VisualizationTracker:
        return self._tracker

    @property
    def handle(self) -> Optional[WhisperChannelHandle]:
        return self._handle

    @property
    def state(self) -> State:
        return State.UNREGISTERED if self._handle is None else State.REGISTERED

    @property
    def epoch(self) -> int:
        return self._epoch

    def apply_config(self, config: WhisperConfig) -> None:
        """
        Swap in a freshly loaded config and re-register if active

        If the host rejects the new registration, the previous config is
        restored and registered again before the error propagates.
        """
        with self._lock:
            previous, was_registered = self._config, self._handle is not None
            self._config = config
            if self._host.get_channel(PROXIMITY_CHANNEL) is None:
                logger.info("Proximity channel not registered, whisper channel stays unregistered")
                return
            try:
                self.register()
            except Exception:
                logger.error("Whisper channel rejected new config, restoring previous one")
                self._config = previous
                if was_registered:
                    self.register()
                raise

    def register(self) -> WhisperChannelHandle:
        """
        Register the whisper channel and its source line with the host

        Replaces the registration of the previous epoch, if any. If the host
        rejects part of the registration, the parts already registered are
        removed again and the error propagates.
        """
        with self._lock:
            if self._handle is not None:
                previous, self._handle = self._handle, None
                self._teardown(previous)

            config = self._config
            whisper_id = channel_id(WHISPER_CHANNEL)
            relay = WhisperRelay(
                self._host,
                config,
                self._tracker,
                channel_id=whisper_id,
                source_line_id=whisper_id,
            )
            registration = ChannelRegistration(
                name=WHISPER_CHANNEL,
                id=whisper_id,
                permission=WHISPER_PERMISSION,
                icon=WHISPER_CHANNEL_ICON,
                weight=config.activation_weight,
                requirement=relay.is_eligible,
                on_start=relay.show_distance,
                proximity=True,
                transitive=False,
                stereo_supported=relay.stereo_supported,
            )
            source_line = SourceLineRegistration(
                name=WHISPER_CHANNEL,
                id=whisper_id,
                permission=WHISPER_PERMISSION,
                icon=WHISPER_SOURCE_LINE_ICON,
                weight=config.sourceline_weight,
            )

            undo: List[Callable[[], None]] = []
            try:
                self._host.register_channel(registration)
                undo.append(lambda: self._host.unregister_channel(WHISPER_CHANNEL))
                self._host.register_source_line(source_line)
                undo.append(lambda: self._host.unregister_source_line(WHISPER_CHANNEL))
                self._host.add_frame_hooks(
                    whisper_id, FrameHooks(self.on_voice_start, self.on_voice_stop)
                )
            except Exception:
                logger.error("Failed to register whisper channel, rolling back")
                for step in reversed(undo):
                    step()
                raise

            self._epoch += 1
            self._handle = WhisperChannelHandle(
                channel_id=whisper_id,
                source_line_id=whisper_id,
                epoch=self._epoch,
                relay=relay,
            )
            logger.info(
                f"Whisper channel registered (epoch {self._epoch}, "
                f"{config.proximity_percent}% of proximity distance)"
            )
            return self._handle

    def unregister(self) -> None:
        """Remove the whisper channel; no-op when not registered"""
        with self._lock:
            handle, self._handle = self._handle, None
            if handle is None:
                return
            self._teardown(handle)
            logger.info(f"Whisper channel unregistered (epoch {handle.epoch})")

    def _teardown(self, handle: WhisperChannelHandle) -> None:
        """Remove host registrations of a handle (called with lock held)"""
        self._host.remove_frame_hooks(handle.channel_id)
        self._host.unregister_channel(WHISPER_CHANNEL)
        self._host.unregister_source_line(WHISPER_CHANNEL)

    # ------------------------------------------------------------------
    # Host events
    # ------------------------------------------------------------------

    def on_channel_registered(self, event: ChannelEvent) -> None:
        if event.cancelled or event.channel.name != PROXIMITY_CHANNEL:
            return
        self.register()

    def on_channel_unregistered(self, event: ChannelEvent) -> None:
        if event.cancelled or event.channel.name != PROXIMITY_CHANNEL:
            return
        self.unregister()

    def on_distance_changed(self, event: DistanceChangedEvent) -> None:
        if event.channel_name != PROXIMITY_CHANNEL:
            return
        self._tracker.invalidate(event.listener_id)

    def on_disconnected(self, event: DisconnectEvent) -> None:
        self._tracker.invalidate(event.listener_id)

    def on_voice_start(self, frame: VoiceStartFrame, listener: ListenerContext) -> None:
        handle = self._handle
        if handle is None:
            return
        handle.relay.on_voice_start(frame, listener)

    def on_voice_stop(self, frame: VoiceStopFrame, listener: ListenerContext) -> None:
        handle = self._handle
        if handle is None:
            return
        handle.relay.on_voice_stop(frame, listener)
