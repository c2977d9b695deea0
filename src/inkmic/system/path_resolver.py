import os
from pathlib import Path


class PathResolver:
    """Central authority for file path resolution in InkMic.

    Uses environment variables for configuration with sensible defaults.
    """

    def __init__(self) -> None:
        """Initialize PathResolver with environment-based configuration."""
        default_data = Path.home() / ".local" / "share" / "inkmic"
        self.data_dir = Path(os.getenv("INKMIC_DATA", str(default_data)))

    def get_config_path(self) -> Path:
        """Get the path to the main configuration file.

        Checks INKMIC_CONFIG environment variable first, then falls back to default.
        """
        config_path = os.getenv("INKMIC_CONFIG")
        if config_path:
            return Path(config_path)
        return self.data_dir / "config" / "inkmic.yaml"

    def get_data_dir(self) -> Path:
        """Get the data directory path."""
        return self.data_dir
