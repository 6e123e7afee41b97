import os
import logging
from datetime import datetime

from pydantic import BaseModel

from selfhostd.errors import ConfigError, NotFoundError

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
LATEST = "latest"
METADATA_FILE = "backup_info.txt"
METADATA_TEMPLATE = "backup_info.txt.j2"

# "Key: Value" lines of backup_info.txt mapped to manifest fields
MANIFEST_KEYS = {
    "Backup Date": "created",
    "Timestamp": "timestamp",
    "Backup Directory": "backup_dir",
    "Service": "service",
    "Namespace": "namespace",
    "Deployment": "deployment",
    "Pod": "pod",
    "Archive": "archive",
    "Restore Command": "restore_command",
}


def new_timestamp(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT)
    except ValueError as e:
        raise ConfigError(f"invalid backup timestamp '{value}': expected YYYYMMDD_HHMMSS or '{LATEST}'") from e


class BackupManifest(BaseModel):
    service: str
    timestamp: str
    backup_dir: str
    namespace: str
    deployment: str
    pod: str
    archive: str
    restore_command: str
    created: str = ""

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}:{self.service}:{self.timestamp}>"

    @property
    def metadata_path(self) -> str:
        return os.path.join(self.backup_dir, METADATA_FILE)

    @property
    def archive_path(self) -> str:
        return os.path.join(self.backup_dir, self.archive)

    def write(self, jinja_env) -> str:
        if not self.created:
            self.created = datetime.now().astimezone().strftime("%a, %d %b %Y %H:%M:%S %Z")
        tpl = jinja_env.get_template(METADATA_TEMPLATE)
        with open(self.metadata_path, "w") as f:
            f.write(tpl.render(manifest=self, keys=MANIFEST_KEYS))
        logger.debug(f"{self} metadata written to {self.metadata_path}")
        return self.metadata_path

    @classmethod
    def load(cls, path: str) -> "BackupManifest":
        data = {}
        with open(path) as f:
            for line in f:
                key, sep, value = line.partition(": ")
                if sep and key.strip() in MANIFEST_KEYS:
                    data[MANIFEST_KEYS[key.strip()]] = value.strip()
        missing = [k for k in cls.model_fields if k not in data and k != "created"]
        if missing:
            raise ConfigError(f"backup metadata {path} is incomplete, missing: {', '.join(missing)}")
        return cls(**data)


class BackupHistory(BaseModel):
    """
    directories <root>/<service>_backup_<timestamp>, each holding one archive
    whose name is derived from the timestamp
    """
    root: str
    service: str
    archive_pattern: str

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}:{self.service}:{self.root}>"

    @property
    def prefix(self) -> str:
        return f"{self.service}_backup_"

    def dir_name(self, timestamp: str) -> str:
        return f"{self.prefix}{timestamp}"

    def backup_dir(self, timestamp: str) -> str:
        return os.path.join(self.root, self.dir_name(timestamp))

    def archive_name(self, timestamp: str) -> str:
        return self.archive_pattern.format(service=self.service, timestamp=timestamp)

    def archive_path(self, timestamp: str) -> str:
        return os.path.join(self.backup_dir(timestamp), self.archive_name(timestamp))

    def timestamps(self) -> list[str]:
        """
        parsable timestamps found under root, oldest first
        """
        if not os.path.isdir(self.root):
            return []

        found = []
        for entry in os.listdir(self.root):
            if not entry.startswith(self.prefix):
                continue
            if not os.path.isdir(os.path.join(self.root, entry)):
                continue
            ts = entry[len(self.prefix):]
            try:
                found.append((parse_timestamp(ts), ts))
            except ConfigError:
                logger.debug(f"{self} skipping {entry}: unparsable timestamp")
        return [ts for _, ts in sorted(found)]

    def latest(self) -> str:
        timestamps = self.timestamps()
        if not timestamps:
            raise NotFoundError(f"no backups found for {self.service} in {self.root}")
        return timestamps[-1]

    def resolve(self, ref: str) -> tuple[str, str]:
        """
        returns (timestamp, archive path) for a timestamp literal or 'latest'
        """
        if ref == LATEST:
            timestamp = self.latest()
            logger.info(f"using latest {self.service} backup: {timestamp}")
        else:
            parse_timestamp(ref)
            timestamp = ref

        backup_dir = self.backup_dir(timestamp)
        if not os.path.isdir(backup_dir):
            raise NotFoundError(f"backup not found: {backup_dir}")

        archive = self.archive_path(timestamp)
        if not os.path.isfile(archive):
            raise NotFoundError(f"archive file missing: {archive}")

        return timestamp, archive

    def manifest(self, timestamp: str) -> BackupManifest | None:
        path = os.path.join(self.backup_dir(timestamp), METADATA_FILE)
        if not os.path.isfile(path):
            return None
        return BackupManifest.load(path)
