"""
Backup and restore engine

Streams data out of (and back into) a running pod through the remote
execution channel. Archives live in <backup_root>/<service>_backup_<ts>/
next to a backup_info.txt manifest.
"""

import gzip
import logging
import os
from typing import IO, Any

from pydantic import BaseModel

from selfhostd.errors import ConfigError, NotFoundError, ProcessError
from selfhostd.models.backup import BackupHistory, BackupManifest, new_timestamp

logger = logging.getLogger(__name__)


class BackupPolicy(BaseModel):
    service: str
    selector: str
    # {service} and {timestamp} are substituted
    archive_pattern: str
    extract_command: list[str]
    consistency_command: list[str] | None = None
    # gzip the extracted stream locally
    compress: bool = False

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}:{self.service}>"


def find_pod(hd, namespace: str, selector: str) -> str:
    """
    name of the pod to exec into. Running pods win over others when the
    selector matches more than one
    """
    pods = hd.get_gateway().list("Pod", namespace, label_selector=selector)
    if not pods:
        raise NotFoundError(f"no pods found with selector '{selector}' in namespace '{namespace}'")

    running = [p for p in pods if p.status is not None and p.status.phase == "Running"]
    chosen = (running or pods)[0].metadata.name
    if len(pods) > 1:
        logger.warning(f"found {len(pods)} pods with selector '{selector}' in namespace '{namespace}', using {chosen}")
    return chosen


class BackupEngine(BaseModel):
    hd: Any
    policy: BackupPolicy
    namespace: str

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}:{self.policy.service}:{self.namespace}>"

    @property
    def history(self) -> BackupHistory:
        return BackupHistory(root=self.hd.backup_root, service=self.policy.service,
                             archive_pattern=self.policy.archive_pattern)

    @property
    def executor(self):
        return self.hd.get_executor()

    def find_pod(self) -> str:
        return find_pod(self.hd, self.namespace, self.policy.selector)

    def backup(self, dest_dir: str | None = None, timestamp: str | None = None) -> BackupManifest:
        """
        extract service data into a fresh backup directory and write its manifest.
        with dest_dir the backup goes to <dest_dir>/<service> instead of the backup root
        """
        policy = self.policy
        timestamp = timestamp or new_timestamp()
        history = self.history

        if dest_dir:
            backup_dir = os.path.join(dest_dir, policy.service)
        else:
            backup_dir = history.backup_dir(timestamp)
        os.makedirs(backup_dir, exist_ok=True)

        archive = history.archive_name(timestamp)
        archive_path = os.path.join(backup_dir, archive)

        pod = self.find_pod()
        logger.info(f"backing up {policy.service} from pod {pod} in namespace '{self.namespace}' to {archive_path}")

        if policy.consistency_command:
            self.best_effort(pod, policy.consistency_command, f"{policy.service} consistency trigger")

        with open(archive_path, "wb") as raw:
            if policy.compress:
                with gzip.GzipFile(fileobj=raw, mode="wb") as out:
                    returncode = self.executor.stream(self.namespace, pod, policy.extract_command, stdout=out)
            else:
                returncode = self.executor.stream(self.namespace, pod, policy.extract_command, stdout=raw)

        if returncode != 0:
            raise ProcessError(f"{policy.service} data extraction from pod {pod} failed with exit status "
                               f"{returncode}, partial archive left at {archive_path}", returncode=returncode)

        logger.info(f"{policy.service} archive written: {archive_path} ({os.path.getsize(archive_path)} bytes)")

        restore_command = f"selfhostd {policy.service} restore {timestamp}"
        if dest_dir:
            # restore only looks under the backup root
            restore_command = (f"cp -r {os.path.abspath(backup_dir)} {os.path.abspath(history.backup_dir(timestamp))} "
                               f"&& {restore_command}")

        manifest = BackupManifest(
            service=policy.service,
            timestamp=timestamp,
            backup_dir=os.path.abspath(backup_dir),
            namespace=self.namespace,
            deployment=policy.service,
            pod=pod,
            archive=archive,
            restore_command=restore_command,
        )
        manifest.write(self.hd.get_jinja_env())
        logger.info(f"{policy.service} backup completed: {backup_dir}")
        return manifest

    def prepare_restore(self, ref: str) -> tuple[str, str, str]:
        """
        resolve a timestamp or 'latest' to (timestamp, archive path, pod)
        """
        timestamp, archive = self.history.resolve(ref)
        logger.info(f"restoring {self.policy.service} from {archive}")

        try:
            manifest = self.history.manifest(timestamp)
        except ConfigError as e:
            logger.warning(f"ignoring backup metadata: {e}")
        else:
            if manifest is None:
                logger.warning(f"backup {timestamp} has no metadata file")
            else:
                for key, value in manifest.model_dump().items():
                    logger.info(f"  {key}: {value}")

        return timestamp, archive, self.find_pod()

    def stream_in(self, pod: str, command: list[str], source: IO[bytes], what: str):
        returncode = self.executor.stream(self.namespace, pod, command, stdin=source)
        if returncode != 0:
            raise ProcessError(f"{what} in pod {pod} failed with exit status {returncode}", returncode=returncode)

    def best_effort(self, pod: str, command: list[str], what: str) -> bool:
        result = self.executor.capture(self.namespace, pod, command)
        if not result.ok:
            logger.warning(f"{what} failed with exit status {result.returncode}, continuing: {result.output.strip()}")
        return result.ok
