import uuid
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

import pytest

from pv_whisper.config import WhisperConfig
from pv_whisper.host import (
    PROXIMITY_CHANNEL,
    UNSET_DISTANCE,
    WHISPER_PERMISSION,
    ChannelInfo,
    ChannelRegistration,
    FrameHooks,
    SourceLineRegistration,
    VoiceStartFrame,
    VoiceStopFrame,
)


@dataclass
class FakeListener:
    id: str
    distances: Dict[str, int] = field(default_factory=dict)
    permissions: FrozenSet[str] = frozenset({WHISPER_PERMISSION})

    def get_distance_override(self, channel_name: str) -> int:
        return self.distances.get(channel_name, UNSET_DISTANCE)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


class FakeHost:
    """In-memory VoiceHost recording every outbound call"""

    def __init__(self):
        self.channels: Dict[str, ChannelInfo] = {}
        self.registrations: Dict[str, ChannelRegistration] = {}
        self.source_lines: Dict[str, SourceLineRegistration] = {}
        self.hooks: Dict[uuid.UUID, FrameHooks] = {}
        self.sent: List[Tuple[uuid.UUID, VoiceStartFrame, int, bool]] = []
        self.ended: List[Tuple[uuid.UUID, VoiceStopFrame, int]] = []
        self.visualized: List[Tuple[str, int, int]] = []
        self.register_calls = 0
        self.reject_source_lines = 0

    def add_proximity(self, default_distance: int = 16, max_distance: int = 64) -> ChannelInfo:
        channel = ChannelInfo(PROXIMITY_CHANNEL, default_distance, max_distance)
        self.channels[PROXIMITY_CHANNEL] = channel
        return channel

    def get_channel(self, name: str) -> Optional[ChannelInfo]:
        return self.channels.get(name)

    def register_channel(self, registration: ChannelRegistration) -> None:
        assert registration.name not in self.registrations, "duplicate channel registration"
        self.register_calls += 1
        self.registrations[registration.name] = registration

    def unregister_channel(self, name: str) -> None:
        self.registrations.pop(name, None)

    def register_source_line(self, registration: SourceLineRegistration) -> None:
        if self.reject_source_lines > 0:
            self.reject_source_lines -= 1
            raise RuntimeError("source line rejected")
        assert registration.name not in self.source_lines, "duplicate source line registration"
        self.source_lines[registration.name] = registration

    def unregister_source_line(self, name: str) -> None:
        self.source_lines.pop(name, None)

    def add_frame_hooks(self, channel_id: uuid.UUID, hooks: FrameHooks) -> None:
        self.hooks[channel_id] = hooks

    def remove_frame_hooks(self, channel_id: uuid.UUID) -> None:
        self.hooks.pop(channel_id, None)

    def send_audio(self, line_id, frame, distance, stereo) -> None:
        self.sent.append((line_id, frame, distance, stereo))

    def send_audio_end(self, line_id, frame, distance) -> None:
        self.ended.append((line_id, frame, distance))

    def visualize_distance(self, listener_id, distance, color) -> None:
        self.visualized.append((listener_id, distance, color))


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def whisper_config() -> WhisperConfig:
    return WhisperConfig(proximity_percent=50)


@pytest.fixture
def listener() -> FakeListener:
    return FakeListener("alice")
