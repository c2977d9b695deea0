"""Tests for ConfigManager."""

import pytest
import yaml

from inkmic.audio.models import SourceKind
from inkmic.config import ConfigManager, MicConfig


class TestConfigManager:
    """Test ConfigManager functionality."""

    def test_load_config_creates_default_if_missing(self, path_resolver):
        """Test that default config is created if file doesn't exist."""
        config_path = path_resolver.get_config_path()
        assert not config_path.exists()

        config = ConfigManager(path_resolver).load()

        assert isinstance(config, MicConfig)
        assert config.broadcast_port == 12346
        assert config.service_type == "_androidmic._udp.local."
        assert config_path.exists()

    def test_load_config_with_existing_file(self, path_resolver):
        """Test loading an existing config file."""
        config_path = path_resolver.get_config_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_data = {
            "device_name": "Studio",
            "broadcast_port": 23456,
            "capture_configs": [{"source": "microphone", "sample_rate": 16000}],
            "logging": {"level": "DEBUG"},
        }
        config_path.write_text(yaml.dump(config_data))

        config = ConfigManager(path_resolver).load()

        assert config.device_name == "Studio"
        assert config.broadcast_port == 23456
        assert config.logging.level == "DEBUG"
        fallback = config.fallback_configs()
        assert len(fallback) == 1
        assert fallback[0].source is SourceKind.MICROPHONE
        assert fallback[0].sample_rate == 16000

    def test_unknown_fields_ignored(self, path_resolver):
        """Test that unknown keys are dropped rather than rejected."""
        config_path = path_resolver.get_config_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(yaml.dump({"device_name": "Studio", "site_name": "old"}))

        config = ConfigManager(path_resolver).load()

        assert config.device_name == "Studio"

    def test_empty_file_gives_defaults(self, path_resolver):
        """Test that an empty file loads as defaults."""
        config_path = path_resolver.get_config_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text("")

        config = ConfigManager(path_resolver).load()

        assert config.send_queue_size == 64

    @pytest.mark.parametrize(
        "data",
        [
            {"broadcast_port": 70000},
            {"buffer_multiplier": 1},
            {"max_fft_size": 1000},
            {"capture_configs": []},
            {"capture_configs": [{"sample_rate": 0}]},
        ],
    )
    def test_invalid_values_rejected(self, path_resolver, data):
        """Test that invalid values raise ValueError naming the field."""
        config_path = path_resolver.get_config_path()
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(yaml.dump(data))

        with pytest.raises(ValueError, match="Configuration validation failed"):
            ConfigManager(path_resolver).load()

    def test_save_and_reload(self, path_resolver):
        """Test that a saved config loads back unchanged and leaves a backup."""
        manager = ConfigManager(path_resolver)
        config = manager.load()
        config.device_name = "Renamed"
        config.tick_interval_ms = 250

        manager.save(config)
        reloaded = manager.load()

        assert reloaded.device_name == "Renamed"
        assert reloaded.tick_interval == 0.25
        assert reloaded.capture_configs == config.capture_configs
        assert manager.config_path.with_suffix(".yaml.backup").exists()

    def test_config_path_from_environment(self, path_resolver, monkeypatch, tmp_path):
        """Test that INKMIC_CONFIG overrides the config location."""
        custom = tmp_path / "elsewhere" / "mic.yaml"
        monkeypatch.setenv("INKMIC_CONFIG", str(custom))

        ConfigManager(path_resolver).load()

        assert custom.exists()
