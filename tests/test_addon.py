import pytest

from pv_whisper.addon import WhisperAddon
from pv_whisper.channel import State
from pv_whisper.config import ConfigError
from pv_whisper.host import WHISPER_CHANNEL


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("whisper:\n  proximity_percent: 50\n  activation_weight: 4\n")
    return path


def test_initialize_without_proximity(host, config_path):
    addon = WhisperAddon(host, config_path)

    addon.initialize()

    assert addon.channel.state == State.UNREGISTERED
    assert addon.config.whisper.activation_weight == 4


def test_initialize_with_proximity_registers(host, config_path):
    host.add_proximity()
    addon = WhisperAddon(host, config_path)

    addon.initialize()

    assert addon.channel.state == State.REGISTERED
    assert host.registrations[WHISPER_CHANNEL].weight == 4


def test_reload_applies_new_weights(host, config_path):
    host.add_proximity()
    addon = WhisperAddon(host, config_path)
    addon.initialize()
    channel = addon.channel

    config_path.write_text("whisper:\n  proximity_percent: 20\n  activation_weight: 9\n")
    addon.on_config_reloaded()

    assert addon.channel is channel
    assert host.registrations[WHISPER_CHANNEL].weight == 9
    assert channel.config.proximity_percent == 20
    assert channel.handle.epoch == 2


def test_failed_reload_keeps_previous_state(host, config_path):
    host.add_proximity()
    addon = WhisperAddon(host, config_path)
    addon.initialize()
    handle = addon.channel.handle

    config_path.write_text("whisper:\n  proximity_percent: 0\n")
    with pytest.raises(ConfigError):
        addon.reload()

    assert addon.config.whisper.proximity_percent == 50
    assert addon.channel.handle is handle
    assert host.registrations[WHISPER_CHANNEL].weight == 4


def test_failed_initialize_leaves_no_channel(host, tmp_path):
    path = tmp_path / "config.yml"
    path.write_text("whisper: nonsense\n")
    addon = WhisperAddon(host, path)

    with pytest.raises(ConfigError):
        addon.initialize()

    assert addon.channel is None
    assert host.registrations == {}
