"""
Whisper radius derived from the proximity channel radius
"""

from typing import Optional

from pv_whisper.host import PROXIMITY_CHANNEL, ChannelContext, ListenerContext


def compute_whisper_distance(
    listener: ListenerContext,
    proximity: Optional[ChannelContext],
    percent: int,
) -> Optional[int]:
    """
    Compute the whisper radius for a listener

    Args:
        listener: Player whose proximity distance is scaled
        proximity: The host's proximity channel, or None if not registered
        percent: Share of the proximity distance used for whispering [1, 100]

    Returns:
        Radius in [1, proximity.max_distance], or None when the listener
        cannot whisper (no proximity channel, or no usable distance)
    """
    if proximity is None:
        return None

    distance = listener.get_distance_override(PROXIMITY_CHANNEL)
    if distance < 0:
        distance = proximity.default_distance
    if distance < 0:
        return None

    # exact floor of distance / 100 * percent for non-negative distances
    raw = distance * percent // 100
    # lower bound wins when max_distance < 1
    return max(1, min(raw, proximity.max_distance))
