from pydantic import BaseModel, ConfigDict
from typing import Any
import logging

from selfhostd.errors import ConfigError

from .binary import Binaries
from .spec import Spec, SpecModel

logger = logging.getLogger(__name__)


class General(BaseModel):
    domain: str = "example.com"
    namespaces: list[str] = []


class ModuleConfig(BaseModel):
    """
    one entry of the modules list. secrets are plain strings,
    vars override template variables of the module
    """
    model_config = ConfigDict(coerce_numbers_to_str=True)

    name: str
    namespace: str = "default"
    secrets: dict[str, str] = {}
    vars: dict[str, Any] = {}


class ConfigModel(BaseModel):
    kind: str = "selfhostd"
    general: General = General()
    backup_root: str = "backups"
    configs_root: str = "configs"
    templates_dir: str | None = None
    binaries: Binaries = Binaries()
    modules: list[ModuleConfig] = []
    spec: SpecModel | None = None


class Config(ConfigModel):
    spec: Spec | None = None

    def get_module(self, name: str) -> ModuleConfig:
        for m in self.modules:
            if m.name == name:
                return m
        raise ConfigError(f"module not found in configuration: {name}")

    def has_module(self, name: str) -> bool:
        return any(m.name == name for m in self.modules)


def get_initial_config(**kwargs) -> Config:
    return Config(
        general=General(
            domain=kwargs.get("domain", "example.com"),
            namespaces=kwargs.get("namespaces", []),
        ),
        backup_root="backups",
        configs_root="configs",
        binaries=Binaries(),
    )
