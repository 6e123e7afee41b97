import logging

from selfhostd.errors import ConfigError

from .base import Module, Backupable, Restorable, AdminCapable, Rollable, ROLLOUT_OPERATIONS
from .backup import BackupEngine, BackupPolicy, find_pod
from .postgres import Postgres
from .redis import Redis
from .pgadmin import Pgadmin

logger = logging.getLogger(__name__)

REGISTRY: dict[str, type[Module]] = {
    cls.name: cls for cls in (Postgres, Redis, Pgadmin)
}


def get_module_class(name: str) -> type[Module]:
    try:
        return REGISTRY[name]
    except KeyError:
        raise ConfigError(f"unknown module '{name}', available: {', '.join(REGISTRY)}")


def create_module(conf, name: str) -> Module:
    """
    module instance bound to its configuration entry
    """
    cls = get_module_class(name)
    return cls(config=conf.get_module(name))


def is_registered(name: str) -> bool:
    return name in REGISTRY


def supports(name: str, capability: type) -> bool:
    return issubclass(get_module_class(name), capability)


__all__ = ["Module", "Backupable", "Restorable", "AdminCapable", "Rollable", "ROLLOUT_OPERATIONS",
           "BackupEngine", "BackupPolicy", "find_pod", "Postgres", "Redis", "Pgadmin",
           "REGISTRY", "get_module_class", "create_module", "is_registered", "supports"]
