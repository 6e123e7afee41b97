"""
Module lifecycle

A module owns a fixed list of cluster resources rendered from jinja
templates. Every module can be generated, applied, cleaned and inspected;
capability mixins add backup, restore, database administration and rollout
where the workload supports them.
"""

import logging
import os
from typing import Any, ClassVar

import yaml
from deepmerge import always_merger
from jinja2 import TemplateError
from pydantic import BaseModel

from selfhostd.errors import AlreadyExistsError, ConfigError, NotFoundError, TransportError
from selfhostd.k8s.executor import ExecResult, check
from selfhostd.k8s.status import ModuleStatus, PodStatus, ResourceStatus
from selfhostd.models.backup import BackupManifest
from selfhostd.models.config import ModuleConfig
from selfhostd.models.resource import RenderedResource, Resource

from .backup import BackupEngine, BackupPolicy

logger = logging.getLogger(__name__)

ROLLOUT_OPERATIONS = ("restart", "status", "history", "undo")


class Module(BaseModel):
    name: ClassVar[str] = ""
    title: ClassVar[str] = ""
    required_secrets: ClassVar[tuple[str, ...]] = ()
    # creation order, clean walks it backwards
    resources: ClassVar[tuple[Resource, ...]] = ()
    defaults: ClassVar[dict[str, Any]] = {}

    config: ModuleConfig

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}:{self.name}:{self.namespace}>"

    @property
    def namespace(self) -> str:
        return self.config.namespace

    @property
    def secrets(self) -> dict[str, str]:
        return self.config.secrets

    @property
    def selector(self) -> str:
        return f"app={self.name}"

    def check_secrets(self):
        missing = [k for k in self.required_secrets if not self.secrets.get(k)]
        if missing:
            raise ConfigError(f"module '{self.name}' is missing required secrets: {', '.join(missing)}")

    def build_vars(self, hd) -> dict[str, Any]:
        base = {
            "name": self.name,
            "namespace": self.namespace,
            "secrets": dict(self.secrets),
            "labels": {"app": self.name, "managed-by": "selfhostd"},
            "domain": hd.conf.general.domain,
        }
        merged = always_merger.merge({}, self.defaults)
        merged = always_merger.merge(merged, base)
        return always_merger.merge(merged, dict(self.config.vars))

    def render(self, hd) -> list[RenderedResource]:
        jinja_env = hd.get_jinja_env()
        template_vars = self.build_vars(hd)
        rendered = []
        for resource in self.resources:
            path = f"{self.name}/{resource.template}"
            try:
                source = jinja_env.get_template(path).render(**template_vars)
                body = yaml.safe_load(source)
            except TemplateError as e:
                raise ConfigError(f"{self}: failed to render {path}: {e}") from e
            except yaml.YAMLError as e:
                raise ConfigError(f"{self}: rendered {path} is not valid yaml: {e}") from e
            if not isinstance(body, dict):
                raise ConfigError(f"{self}: rendered {path} is not a mapping")
            rendered.append(RenderedResource(resource=resource, body=body, source=source))
            logger.debug(f"{self} rendered {resource} from {path}")
        return rendered

    def generate(self, hd) -> list[str]:
        """
        writes one yaml document per resource to <configs_root>/<module>/.
        no cluster calls
        """
        self.check_secrets()
        rendered = self.render(hd)

        target = os.path.join(hd.configs_root, self.name)
        os.makedirs(target, exist_ok=True)
        written = []
        for r in rendered:
            path = os.path.join(target, r.resource.filename)
            with open(path, "w") as f:
                f.write(r.source)
            logger.info(f"generated {r.resource}: {path}")
            written.append(path)
        return written

    def apply(self, hd):
        """
        creates all resources in declared order. nothing is created when any
        of them already exists; a failure halfway leaves the created ones in place
        """
        self.check_secrets()
        rendered = self.render(hd)
        gateway = hd.get_gateway()

        for r in rendered:
            if gateway.exists(r.kind, self.namespace, r.name):
                raise AlreadyExistsError(
                    f"{r.resource} already exists in namespace '{self.namespace}', "
                    f"run '{self.name} clean' first")

        hd.counters.reset()
        for r in rendered:
            gateway.create(r.kind, self.namespace, r.body)
            hd.counters.created += 1
            logger.info(f"{r.resource} created in namespace '{self.namespace}'")

        hd.counters.stop()
        logger.info(f"{self.name} applied: {hd.counters.stats_message()}")

    def clean(self, hd):
        gateway = hd.get_gateway()

        hd.counters.reset()
        for resource in reversed(self.resources):
            try:
                gateway.delete(resource.kind, self.namespace, resource.name)
            except NotFoundError:
                logger.warning(f"{resource} not found (already deleted or never existed)")
                hd.counters.skipped += 1
            except TransportError as e:
                logger.error(f"failed to delete {resource}: {e}")
                hd.counters.failed += 1
            else:
                logger.info(f"{resource} deleted")
                hd.counters.deleted += 1

        hd.counters.stop()
        logger.info(f"Completed: {hd.counters.deleted}/{len(self.resources)} resources deleted "
                    f"from namespace '{self.namespace}'")
        logger.info("deletion is asynchronous, pods may take a moment to terminate")
        return hd.counters

    def status(self, hd) -> ModuleStatus:
        gateway = hd.get_gateway()
        result = ModuleStatus(module=self.name, namespace=self.namespace)

        for resource in self.resources:
            try:
                obj = gateway.get(resource.kind, self.namespace, resource.name)
            except NotFoundError:
                result.resources.append(ResourceStatus(kind=resource.kind, name=resource.name, present=False))
            except TransportError as e:
                result.resources.append(ResourceStatus(kind=resource.kind, name=resource.name,
                                                       present=False, error=str(e)))
            else:
                result.resources.append(ResourceStatus.from_object(resource.kind, resource.name, obj))

        try:
            pods = gateway.list("Pod", self.namespace, label_selector=self.selector)
        except TransportError as e:
            result.pods_error = str(e)
        else:
            result.pods = [PodStatus.from_object(p) for p in pods]
        return result


class Backupable:
    backup_policy: ClassVar[BackupPolicy]

    def get_backup_policy(self) -> BackupPolicy:
        return self.backup_policy

    def backup_engine(self, hd) -> BackupEngine:
        return BackupEngine(hd=hd, policy=self.get_backup_policy(), namespace=self.namespace)

    def backup(self, hd, dest_dir: str | None = None, timestamp: str | None = None) -> BackupManifest:
        return self.backup_engine(hd).backup(dest_dir=dest_dir, timestamp=timestamp)


class Restorable:

    def restore(self, hd, ref: str) -> str:
        """
        restore from a timestamp or 'latest', returns the timestamp used
        """
        engine = self.backup_engine(hd)
        timestamp, archive, pod = engine.prepare_restore(ref)
        self.restore_archive(hd, engine, pod, archive)
        logger.info(f"{self.name} restored from backup {timestamp}")
        return timestamp

    def restore_archive(self, hd, engine: BackupEngine, pod: str, archive: str):
        raise NotImplementedError


class AdminCapable:

    def add_db(self, hd, name: str, user: str, password: str):
        raise NotImplementedError

    def remove_db(self, hd, name: str, user: str):
        raise NotImplementedError


class Rollable:

    @property
    def deployment(self) -> str:
        return self.name

    def rollout(self, hd, operation: str) -> ExecResult:
        """
        restart, status, history or undo of the module deployment.
        status and history return the captured kubectl output
        """
        if operation not in ROLLOUT_OPERATIONS:
            raise ConfigError(f"invalid rollout operation '{operation}', "
                              f"expected one of: {', '.join(ROLLOUT_OPERATIONS)}")

        capture = operation in ("status", "history")
        logger.info(f"rollout {operation} of deployment/{self.deployment} in namespace '{self.namespace}'")
        result = hd.get_executor().rollout(operation, self.deployment, self.namespace, capture=capture)
        return check(result, f"rollout {operation} of deployment/{self.deployment}")
