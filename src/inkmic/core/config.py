"""Configuration loading for the application wiring."""

from inkmic.config import ConfigManager, MicConfig
from inkmic.system.path_resolver import PathResolver


def get_config(path_resolver: PathResolver | None = None) -> MicConfig:
    """Load InkMic configuration.

    Args:
        path_resolver: Optional PathResolver instance to use. If not provided,
                      creates a new PathResolver instance.

    Returns:
        MicConfig: The loaded and validated configuration.
    """
    if path_resolver is None:
        path_resolver = PathResolver()
    return ConfigManager(path_resolver).load()
