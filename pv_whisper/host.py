"""
Host voice server interfaces

Narrow capability interfaces the whisper channel needs from the voice server
it runs in, plus the value types exchanged with it. Transport, encoding and
the permission backend stay on the host side.
"""

import hashlib
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

PROXIMITY_CHANNEL = "proximity"
WHISPER_CHANNEL = "whisper"
WHISPER_PERMISSION = "pv.activation.whisper"

WHISPER_CHANNEL_ICON = "plasmovoice:textures/icons/microphone_whisper.png"
WHISPER_SOURCE_LINE_ICON = "plasmovoice:textures/icons/speaker_whisper.png"

# Distance override value meaning "use the channel default"
UNSET_DISTANCE = -1


def channel_id(name: str) -> uuid.UUID:
    """Stable id for a channel or source line name (name-based UUID, v3)"""
    return uuid.UUID(bytes=hashlib.md5(name.encode("utf-8")).digest(), version=3)


class ListenerContext(Protocol):
    """A connected player as seen by the whisper channel"""

    @property
    def id(self) -> str: ...

    def get_distance_override(self, channel_name: str) -> int:
        """Distance the player picked for a channel, negative when unset"""
        ...

    def has_permission(self, permission: str) -> bool: ...


class ChannelContext(Protocol):
    """A channel registered with the host"""

    @property
    def name(self) -> str: ...

    @property
    def id(self) -> uuid.UUID: ...

    @property
    def default_distance(self) -> int: ...

    @property
    def max_distance(self) -> int: ...


@dataclass(frozen=True)
class ChannelInfo:
    """Plain ChannelContext value"""
    name: str
    default_distance: int
    max_distance: int

    @property
    def id(self) -> uuid.UUID:
        return channel_id(self.name)


@dataclass(frozen=True)
class VoiceStartFrame:
    """Audio frame sent by a speaking player"""
    speaker_id: str
    channel_id: uuid.UUID
    sequence_number: int
    stereo: bool
    payload: bytes


@dataclass(frozen=True)
class VoiceStopFrame:
    """End-of-speech marker sent by a player"""
    speaker_id: str
    channel_id: uuid.UUID
    sequence_number: int


@dataclass(frozen=True)
class ChannelEvent:
    """Channel registered/unregistered notification"""
    channel: ChannelContext
    cancelled: bool = False


@dataclass(frozen=True)
class DistanceChangedEvent:
    """A player changed their distance override for a channel"""
    listener_id: str
    channel_name: str
    distance: int = UNSET_DISTANCE


@dataclass(frozen=True)
class DisconnectEvent:
    """A player's voice connection went away"""
    listener_id: str


@dataclass(frozen=True)
class ChannelRegistration:
    """Channel registration request handed to the host"""
    name: str
    id: uuid.UUID
    permission: str
    icon: str
    weight: int
    requirement: Callable[[ListenerContext], bool]
    on_start: Callable[[ListenerContext], None]
    proximity: bool = True
    transitive: bool = False
    stereo_supported: bool = False


@dataclass(frozen=True)
class SourceLineRegistration:
    """Output line registration request handed to the host"""
    name: str
    id: uuid.UUID
    permission: str
    icon: str
    weight: int


@dataclass(frozen=True)
class FrameHooks:
    """Frame relay callbacks installed for one channel"""
    on_voice_start: Callable[[VoiceStartFrame, ListenerContext], None]
    on_voice_stop: Callable[[VoiceStopFrame, ListenerContext], None]


class VoiceHost(Protocol):
    """Operations the whisper channel calls on the host voice server"""

    def get_channel(self, name: str) -> Optional[ChannelContext]: ...

    def register_channel(self, registration: ChannelRegistration) -> None: ...

    def unregister_channel(self, name: str) -> None: ...

    def register_source_line(self, registration: SourceLineRegistration) -> None: ...

    def unregister_source_line(self, name: str) -> None: ...

    def add_frame_hooks(self, channel_id: uuid.UUID, hooks: FrameHooks) -> None: ...

    def remove_frame_hooks(self, channel_id: uuid.UUID) -> None: ...

    def send_audio(self, line_id: uuid.UUID, frame: VoiceStartFrame, distance: int, stereo: bool) -> None:
        """Relay a frame to everyone within distance on the output line"""
        ...

    def send_audio_end(self, line_id: uuid.UUID, frame: VoiceStopFrame, distance: int) -> None: ...

    def visualize_distance(self, listener_id: str, distance: int, color: int) -> None:
        """Show a radius ring to the player's client"""
        ...
