"""
Whisper addon entry point

Loads the addon config and keeps the whisper channel in sync with it.
"""

import logging
from pathlib import Path
from typing import Optional

from pv_whisper.channel import WhisperChannel
from pv_whisper.config import Config, ConfigError
from pv_whisper.host import VoiceHost

logger = logging.getLogger(__name__)


class WhisperAddon:
    """
    Addon initializer

    The channel lifecycle is created on first successful load and reused
    on every reload, so host event subscriptions stay valid.
    """

    def __init__(self, host: VoiceHost, config_path: Optional[Path] = None):
        self._host = host
        self._config_path = config_path
        self.config: Optional[Config] = None
        self.channel: Optional[WhisperChannel] = None

    def initialize(self) -> None:
        """Called once when the host loads the addon"""
        self.reload()

    def on_config_reloaded(self) -> None:
        """Host config reload hook"""
        self.reload()

    def reload(self) -> Config:
        """
        Reload config from disk and apply it

        Raises:
            ConfigError: If the config cannot be loaded. The previous config
                        and channel registration stay in place.
        """
        try:
            config = Config.load(self._config_path)
        except ConfigError as e:
            logger.error(f"Failed to reload whisper config: {e}")
            raise

        self.config = config
        if self.channel is None:
            self.channel = WhisperChannel(self._host, config.whisper)
        self.channel.apply_config(config.whisper)
        return config
