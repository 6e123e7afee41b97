"""
Redis module. The data directory is archived with tar inside the pod;
restore unpacks it over a wiped /data and restarts the deployment.
"""

import logging
from typing import ClassVar

from selfhostd.models.resource import Resource

from .backup import BackupEngine, BackupPolicy
from .base import Backupable, Module, Restorable, Rollable

logger = logging.getLogger(__name__)

WIPE_COMMAND = ["sh", "-c", "rm -rf /data/*"]
UNPACK_COMMAND = ["tar", "xzf", "-", "-C", "/"]
SAVE_COMMAND = ["redis-cli", "SAVE"]
# REDIS_PASSWORD is only set in the container when auth is enabled
AUTH_SAVE_COMMAND = ["sh", "-c", 'REDISCLI_AUTH="$REDIS_PASSWORD" redis-cli SAVE']


class Redis(Module, Backupable, Restorable, Rollable):
    name: ClassVar[str] = "redis"
    title: ClassVar[str] = "Redis cache"
    # redis_password is optional, no auth without it
    required_secrets: ClassVar[tuple[str, ...]] = ()
    resources: ClassVar[tuple[Resource, ...]] = (
        Resource(kind="Secret", name="redis-secrets", template="secret.yaml.j2"),
        Resource(kind="PersistentVolumeClaim", name="redis-data-pvc", template="pvc.yaml.j2"),
        Resource(kind="Service", name="redis", template="service.yaml.j2"),
        Resource(kind="Deployment", name="redis", template="deployment.yaml.j2"),
    )
    defaults: ClassVar[dict] = {
        "image": "redis:7.2-alpine",
        "storage": "5Gi",
        "port": 6379,
    }
    backup_policy: ClassVar[BackupPolicy] = BackupPolicy(
        service="redis",
        selector="app=redis",
        archive_pattern="{service}_data_{timestamp}.tar.gz",
        extract_command=["tar", "czf", "-", "/data"],
        consistency_command=SAVE_COMMAND,
        compress=False,
    )

    def get_backup_policy(self) -> BackupPolicy:
        if self.secrets.get("redis_password"):
            return self.backup_policy.model_copy(update={"consistency_command": AUTH_SAVE_COMMAND})
        return self.backup_policy

    def restore_archive(self, hd, engine: BackupEngine, pod: str, archive: str):
        engine.best_effort(pod, WIPE_COMMAND, "clearing /data")

        logger.info(f"unpacking {archive} into pod {pod}")
        with open(archive, "rb") as source:
            engine.stream_in(pod, UNPACK_COMMAND, source, "redis restore")

        result = hd.get_executor().rollout("restart", self.deployment, self.namespace, capture=True)
        if not result.ok:
            logger.warning(f"restarting deployment/{self.deployment} failed, restart it manually: {result.output.strip()}")
        else:
            logger.info(f"deployment/{self.deployment} restarted to load restored data")
