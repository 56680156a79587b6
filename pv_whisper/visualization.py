"""
Tracks which players have already seen their whisper radius
"""

import logging
import threading
from typing import Callable, Set

logger = logging.getLogger(__name__)


class VisualizationTracker:
    """
    Thread-safe set of listener ids whose whisper radius was shown

    An entry lives until the listener disconnects or changes their
    proximity distance, after which the next whisper shows the radius again.
    """

    def __init__(self, visualize: Callable[[str, int, int], None]):
        """
        Args:
            visualize: Host call showing a radius to a listener,
                       called as visualize(listener_id, distance, color)
        """
        self._visualize = visualize
        self._shown: Set[str] = set()
        self._lock = threading.Lock()

    def mark_shown(self, listener_id: str, distance: int, color: int) -> bool:
        """
        Show the radius to a listener unless already shown

        Returns:
            True if the visualization was triggered by this call
        """
        with self._lock:
            if listener_id in self._shown:
                return False
            self._shown.add(listener_id)

        self._visualize(listener_id, distance, color)
        logger.debug(f"Visualized whisper distance {distance} for '{listener_id}'")
        return True

    def invalidate(self, listener_id: str) -> None:
        """Forget a listener; no-op if never shown"""
        with self._lock:
            self._shown.discard(listener_id)

    def clear(self) -> None:
        with self._lock:
            self._shown.clear()

    def __contains__(self, listener_id: object) -> bool:
        with self._lock:
            return listener_id in self._shown

    def __len__(self) -> int:
        with self._lock:
            return len(self._shown)
