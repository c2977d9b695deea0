"""InkMic configuration package.

This package provides YAML-backed configuration management with:
- Pydantic validation of every field
- Defaults written out on first load
- Backups on save
"""

from .manager import ConfigManager
from .models import CaptureConfigModel, LoggingConfig, MicConfig

__all__ = [
    "CaptureConfigModel",
    "ConfigManager",
    "LoggingConfig",
    "MicConfig",
]
