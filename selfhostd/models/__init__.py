from .binary import Binary, Binaries
from .config import Config, ConfigModel, General, ModuleConfig, get_initial_config
from .resource import Resource, RenderedResource
from .backup import BackupManifest, BackupHistory


__all__ = ["Binary", "Binaries", "Config", "ConfigModel", "General", "ModuleConfig",
           "get_initial_config", "Resource", "RenderedResource", "BackupManifest", "BackupHistory"]
