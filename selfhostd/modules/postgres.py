"""
Postgres module: secret, data volume, service and a single-replica
deployment. Supports backup (pg_dumpall, gzipped locally), restore,
database/role administration and rollout.
"""

import gzip
import logging
import shlex
import time
from typing import ClassVar

from selfhostd import sql
from selfhostd.errors import ProcessError
from selfhostd.k8s.executor import ExecResult, check
from selfhostd.models.resource import Resource

from .backup import BackupEngine, BackupPolicy
from .base import AdminCapable, Backupable, Module, Restorable, Rollable

logger = logging.getLogger(__name__)

READY_ATTEMPTS = 30
READY_INTERVAL = 1.0

READY_COMMAND = ["sh", "-c", 'pg_isready -U "$POSTGRES_USER" -h 127.0.0.1 -p 5432']
RESTORE_COMMAND = ["sh", "-c", 'psql -U "$POSTGRES_USER" postgres']


def psql_command(database: str) -> list[str]:
    """
    psql reading statements from stdin, stopping at the first error
    """
    return ["sh", "-c",
            f'PGPASSWORD="$POSTGRES_PASSWORD" psql -U "$POSTGRES_USER" -d {shlex.quote(database)} '
            f'-v ON_ERROR_STOP=1 -Atq']


def grant_statements(name: str, user: str) -> str:
    db, role = sql.quote_ident(name), sql.quote_ident(user)
    return "\n".join([
        f"GRANT CONNECT ON DATABASE {db} TO {role};",
        f"GRANT USAGE ON SCHEMA public TO {role};",
        f"GRANT ALL PRIVILEGES ON ALL TABLES IN SCHEMA public TO {role};",
        f"GRANT ALL PRIVILEGES ON ALL SEQUENCES IN SCHEMA public TO {role};",
        f"ALTER DEFAULT PRIVILEGES IN SCHEMA public GRANT ALL ON TABLES TO {role};",
        f"ALTER DEFAULT PRIVILEGES IN SCHEMA public GRANT ALL ON SEQUENCES TO {role};",
        f"ALTER SCHEMA public OWNER TO {role};",
    ]) + "\n"


class Postgres(Module, Backupable, Restorable, AdminCapable, Rollable):
    name: ClassVar[str] = "postgres"
    title: ClassVar[str] = "PostgreSQL database"
    required_secrets: ClassVar[tuple[str, ...]] = ("admin_postgres_user", "admin_postgres_password")
    resources: ClassVar[tuple[Resource, ...]] = (
        Resource(kind="Secret", name="postgres-secrets", template="secret.yaml.j2"),
        Resource(kind="PersistentVolumeClaim", name="postgres-data-pvc", template="pvc.yaml.j2"),
        Resource(kind="Service", name="postgres", template="service.yaml.j2"),
        Resource(kind="Deployment", name="postgres", template="deployment.yaml.j2"),
    )
    defaults: ClassVar[dict] = {
        "image": "postgres:16",
        "storage": "10Gi",
        "port": 5432,
        "pgdata": "/var/lib/postgresql/data/pgdata",
    }
    backup_policy: ClassVar[BackupPolicy] = BackupPolicy(
        service="postgres",
        selector="app=postgres",
        archive_pattern="{service}_dump_{timestamp}.sql.gz",
        extract_command=["sh", "-c", 'pg_dumpall -U "$POSTGRES_USER" --clean --if-exists'],
        compress=True,
    )

    def restore_archive(self, hd, engine: BackupEngine, pod: str, archive: str):
        logger.info(f"loading {archive} into pod {pod}")
        with gzip.open(archive, "rb") as source:
            engine.stream_in(pod, RESTORE_COMMAND, source, "postgres restore")

    def psql(self, hd, pod: str, statements: str, database: str = "postgres",
             merge_stderr: bool = True) -> ExecResult:
        return hd.get_executor().capture(self.namespace, pod, psql_command(database), input=statements,
                                         merge_stderr=merge_stderr)

    def returns_row(self, hd, pod: str, query: str, what: str) -> bool:
        """
        true when the query prints 1 on stdout, stderr notices are ignored
        """
        result = check(self.psql(hd, pod, query, merge_stderr=False), what)
        return "1" in result.output.split()

    def wait_ready(self, hd, pod: str):
        executor = hd.get_executor()
        for attempt in range(1, READY_ATTEMPTS + 1):
            if executor.capture(self.namespace, pod, READY_COMMAND).ok:
                logger.debug(f"{self} postgres ready after {attempt} attempt(s)")
                return
            logger.debug(f"{self} postgres not ready, attempt {attempt}/{READY_ATTEMPTS}")
            if attempt < READY_ATTEMPTS:
                time.sleep(READY_INTERVAL)
        raise ProcessError(f"postgres in pod {pod} not ready after {READY_ATTEMPTS} attempts")

    def add_db(self, hd, name: str, user: str, password: str):
        """
        create or update the login role, create the database owned by it
        when missing, then grant the role full access to the public schema
        """
        sql.validate_identifier(name, "database name")
        sql.validate_identifier(user, "user name")

        pod = self.backup_engine(hd).find_pod()
        self.wait_ready(hd, pod)

        role, db = sql.quote_ident(user), sql.quote_ident(name)
        secret = sql.quote_literal(password)

        if self.returns_row(hd, pod, f"SELECT 1 FROM pg_roles WHERE rolname = {sql.quote_literal(user)};\n",
                            f"role lookup for '{user}'"):
            logger.info(f"role '{user}' exists, updating password")
            check(self.psql(hd, pod, f"ALTER ROLE {role} WITH LOGIN PASSWORD {secret};\n"),
                  f"alter role '{user}'")
        else:
            logger.info(f"creating role '{user}'")
            check(self.psql(hd, pod, f"CREATE ROLE {role} LOGIN PASSWORD {secret};\n"),
                  f"create role '{user}'")

        if self.returns_row(hd, pod, f"SELECT 1 FROM pg_database WHERE datname = {sql.quote_literal(name)};\n",
                            f"database lookup for '{name}'"):
            logger.info(f"database '{name}' already exists")
        else:
            logger.info(f"creating database '{name}' owned by '{user}'")
            check(self.psql(hd, pod, f"CREATE DATABASE {db} OWNER {role};\n"),
                  f"create database '{name}'")

        result = self.psql(hd, pod, grant_statements(name, user), database=name)
        if not result.ok:
            logger.warning(f"granting privileges on '{name}' to '{user}' failed with exit status "
                           f"{result.returncode}: {result.output.strip()}")

        logger.info(f"database '{name}' ready for user '{user}'")

    def remove_db(self, hd, name: str, user: str):
        sql.validate_identifier(name, "database name")
        sql.validate_identifier(user, "user name")

        pod = self.backup_engine(hd).find_pod()

        terminate = (f"SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                     f"WHERE datname = {sql.quote_literal(name)} AND pid <> pg_backend_pid();\n")
        result = self.psql(hd, pod, terminate)
        if not result.ok:
            logger.debug(f"terminating connections to '{name}' failed, ignored: {result.output.strip()}")

        check(self.psql(hd, pod, f"DROP DATABASE IF EXISTS {sql.quote_ident(name)};\n"),
              f"drop database '{name}'")
        logger.info(f"database '{name}' dropped")

        check(self.psql(hd, pod, f"DROP ROLE IF EXISTS {sql.quote_ident(user)};\n"),
              f"drop role '{user}'")
        logger.info(f"role '{user}' dropped")
