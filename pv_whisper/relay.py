"""
Per-frame relay decisions for the whisper channel
"""

import logging
import uuid
from typing import Optional

from pv_whisper.config import WhisperConfig
from pv_whisper.distance import compute_whisper_distance
from pv_whisper.host import (
    PROXIMITY_CHANNEL,
    WHISPER_PERMISSION,
    ListenerContext,
    VoiceHost,
    VoiceStartFrame,
    VoiceStopFrame,
)
from pv_whisper.visualization import VisualizationTracker

logger = logging.getLogger(__name__)


class WhisperRelay:
    """
    Decides whether and at which radius a voice frame is whispered

    One relay is bound to one channel registration epoch. Eligibility is
    evaluated for every frame since the proximity distance can change
    between the start and the end of speech.
    """

    def __init__(
        self,
        host: VoiceHost,
        config: WhisperConfig,
        tracker: VisualizationTracker,
        channel_id: uuid.UUID,
        source_line_id: uuid.UUID,
        stereo_supported: bool = False,
    ):
        self._host = host
        self._config = config
        self._tracker = tracker
        self.channel_id = channel_id
        self.source_line_id = source_line_id
        self.stereo_supported = stereo_supported

    def distance_for(self, listener: ListenerContext) -> Optional[int]:
        """Current whisper radius for the listener, None if ineligible"""
        return compute_whisper_distance(
            listener,
            self._host.get_channel(PROXIMITY_CHANNEL),
            self._config.proximity_percent,
        )

    def is_eligible(self, listener: ListenerContext) -> bool:
        """Channel requirement: whisper permission and a usable radius"""
        if not listener.has_permission(WHISPER_PERMISSION):
            return False
        return self.distance_for(listener) is not None

    def show_distance(self, listener: ListenerContext) -> None:
        """Speech start callback, shows the radius once per distance change"""
        distance = self.distance_for(listener)
        if distance is not None:
            self._show(listener, distance)

    def on_voice_start(self, frame: VoiceStartFrame, listener: ListenerContext) -> None:
        distance = self._admit(frame.channel_id, listener)
        if distance is None:
            return

        stereo = frame.stereo and self.stereo_supported
        self._host.send_audio(self.source_line_id, frame, distance, stereo)
        self._show(listener, distance)

    def on_voice_stop(self, frame: VoiceStopFrame, listener: ListenerContext) -> None:
        distance = self._admit(frame.channel_id, listener)
        if distance is None:
            return

        self._host.send_audio_end(self.source_line_id, frame, distance)

    def _admit(self, frame_channel_id: uuid.UUID, listener: ListenerContext) -> Optional[int]:
        """Radius to relay at, or None to drop the frame"""
        if frame_channel_id != self.channel_id:
            return None
        if not listener.has_permission(WHISPER_PERMISSION):
            logger.debug(f"Dropped frame from '{listener.id}': no whisper permission")
            return None

        distance = self.distance_for(listener)
        if distance is None:
            logger.debug(f"Dropped frame from '{listener.id}': no proximity distance")
        return distance

    def _show(self, listener: ListenerContext, distance: int) -> None:
        self._tracker.mark_shown(listener.id, distance, self._config.visualize_distance_hex_color)
