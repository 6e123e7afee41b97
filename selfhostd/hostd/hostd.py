import logging, os, shutil, tarfile
import time

from jinja2 import Environment, FileSystemLoader, StrictUndefined
from pydantic import BaseModel, ConfigDict, Field
from typing import Any

from selfhostd import models
from selfhostd.errors import HostdError, ProcessError
from selfhostd.k8s import ClusterGateway, KubectlExecutor
from selfhostd.models.backup import new_timestamp
from selfhostd.models.spec import Spec
from selfhostd import modules

from . import filters

logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")


class HostdCounters(BaseModel):
    created: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: int = 0
    time: float = 0.0

    start_time: float = 0.0

    def reset(self):
        self.created = 0
        self.deleted = 0
        self.skipped = 0
        self.failed = 0
        self.time = 0
        self.start_time = time.time()

    def stop(self):
        self.time = time.time() - self.start_time

    def __str__(self) -> str:
        return f"<HostdCounters {self.stats_message()}>"

    def stats_message(self):
        return f"created: {self.created} deleted: {self.deleted} skipped: {self.skipped} failed: {self.failed} time: {self.time:.4f}s"


class HostdModel(BaseModel):
    conf: models.ConfigModel | None = None
    root: str = os.environ.get("SELFHOSTD_ROOT", ".")
    config_path: str | None = None


class Hostd(HostdModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    conf: models.Config | None = None
    counters: HostdCounters = Field(default_factory=HostdCounters)
    kubectl: list[str] = []
    gateway: Any | None = None
    executor: Any | None = None

    def __init__(self, **data: Any) -> None:
        super().__init__(**data)
        self.root = os.path.abspath(self.root)

    def __str__(self):
        if self.conf is None:
            return f"<{self.__class__.__name__} unconfigured>"
        return f"<{self.__class__.__name__} {self.conf.general.domain}>"

    @property
    def config_file(self):
        if self.config_path:
            return os.path.join(self.root, self.config_path)
        return os.path.join(self.root, "selfhostd.yaml")

    def configure(self):
        """
        load configuration merged over defaults and resolve the kubectl
        command once for the whole run
        """
        self.conf = Spec(path=self.config_file,
                         merge_from=models.get_initial_config().model_dump(exclude={"spec"}),
                         jinja_env=Environment(),
                         ).parse_obj_as(models.Config, env=os.environ)

        self.kubectl = self.conf.binaries.kubectl.resolve()
        self.counters.reset()
        logger.debug(f"{self} configured with {len(self.conf.modules)} modules: "
                     f"{[m.name for m in self.conf.modules]} kubectl: {self.kubectl}")

    def resolve_path(self, path: str) -> str:
        return os.path.join(self.root, path)

    @property
    def backup_root(self) -> str:
        return self.resolve_path(self.conf.backup_root)

    @property
    def configs_root(self) -> str:
        return self.resolve_path(self.conf.configs_root)

    def get_gateway(self) -> ClusterGateway:
        if self.gateway is None:
            self.gateway = ClusterGateway.connect()
        return self.gateway

    def get_executor(self) -> KubectlExecutor:
        if self.executor is None:
            self.executor = KubectlExecutor(self.kubectl or self.conf.binaries.kubectl.resolve())
        return self.executor

    def get_jinja_env(self) -> Environment:
        search = [TEMPLATES_DIR]
        if self.conf and self.conf.templates_dir:
            search.insert(0, self.resolve_path(self.conf.templates_dir))
        jinja_env = Environment(loader=FileSystemLoader(search), undefined=StrictUndefined,
                                keep_trailing_newline=True)
        jinja_env.filters['b64encode'] = filters.b64encode
        jinja_env.filters['to_json'] = filters.to_json
        return jinja_env

    def get_module(self, name: str) -> "modules.Module":
        return modules.create_module(self.conf, name)

    def configured_modules(self, capability: type | None = None) -> list["modules.Module"]:
        """
        registered modules having a configuration entry, in configuration order
        """
        found = []
        for m in self.conf.modules:
            if not modules.is_registered(m.name):
                continue
            if capability and not modules.supports(m.name, capability):
                continue
            found.append(self.get_module(m.name))
        return found

    def global_backup(self, dest: str | None = None) -> str:
        """
        backup every configured backup-capable module into one directory,
        add the config file and pack it as <dir>.tar.gz
        """
        timestamp = new_timestamp()
        root = self.resolve_path(dest) if dest else self.backup_root
        backup_dir = os.path.join(root, f"global_backup_{timestamp}")
        os.makedirs(backup_dir, exist_ok=True)
        logger.info(f"starting global backup into {backup_dir}")

        self.counters.reset()
        for module in self.configured_modules(modules.Backupable):
            logger.info(f"backing up module: {module.name}")
            try:
                module.backup(self, dest_dir=backup_dir, timestamp=timestamp)
            except HostdError as e:
                logger.error(f"failed to backup module '{module.name}': {e}")
                self.counters.failed += 1
            else:
                logger.info(f"module '{module.name}' backed up successfully")
                self.counters.created += 1

        logger.info(f"global backup summary: {self.counters.created} successful, {self.counters.failed} failed")
        if self.counters.created == 0:
            raise ProcessError("no backups were created")

        if os.path.isfile(self.config_file):
            shutil.copy2(self.config_file, os.path.join(backup_dir, os.path.basename(self.config_file)))
            logger.info(f"config file included: {self.config_file}")

        archive = f"{backup_dir}.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            tar.add(backup_dir, arcname=os.path.basename(backup_dir))
        shutil.rmtree(backup_dir)

        self.counters.stop()
        logger.info(f"global backup archive created: {archive} ({os.path.getsize(archive)} bytes) in {self.counters.time:.2f}s")
        return archive
