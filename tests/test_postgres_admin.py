import time

import pytest

from selfhostd.errors import ConfigError, ProcessError
from selfhostd.k8s.executor import ExecResult
from selfhostd.modules import postgres

from conftest import make_pod


@pytest.fixture(autouse=True)
def sleeps(monkeypatch):
    calls = []
    monkeypatch.setattr(time, "sleep", calls.append)
    return calls


@pytest.fixture
def pg(hd, gateway):
    gateway.pods = [make_pod("postgres-0")]
    return hd.get_module("postgres")


@pytest.mark.parametrize("name,user", [("my db", "user"), ("db", "us;er"), ("db\"", "user"), ("", "user")])
def test_invalid_identifiers_before_any_remote_call(hd, gateway, executor, name, user):
    module = hd.get_module("postgres")

    with pytest.raises(ConfigError):
        module.add_db(hd, name, user, "pass")
    with pytest.raises(ConfigError):
        module.remove_db(hd, name, user)

    assert gateway.calls == []
    assert executor.calls == []


def test_add_db_creates_role_database_and_grants(hd, executor, pg):
    pg.add_db(hd, "appdb", "app", "pa'ss")

    inputs = executor.inputs()
    assert "SELECT 1 FROM pg_roles WHERE rolname = 'app';\n" in inputs
    assert "CREATE ROLE \"app\" LOGIN PASSWORD 'pa''ss';\n" in inputs
    assert "CREATE DATABASE \"appdb\" OWNER \"app\";\n" in inputs
    grants = inputs[-1]
    assert grants.startswith('GRANT CONNECT ON DATABASE "appdb" TO "app";')
    assert 'ALTER SCHEMA public OWNER TO "app";' in grants

    grant_call = [c for c in executor.calls if c.input == grants][0]
    assert "-d appdb" in grant_call.line


def test_add_db_updates_existing_role_and_keeps_database(hd, executor, pg):
    executor.script("pg_roles", ExecResult(0, "1\n"))
    executor.script("pg_database", ExecResult(0, "1\n"))

    pg.add_db(hd, "appdb", "app", "new")

    inputs = executor.inputs()
    assert "ALTER ROLE \"app\" WITH LOGIN PASSWORD 'new';\n" in inputs
    assert not [i for i in inputs if i.startswith("CREATE")]


def test_add_db_lookups_ignore_stderr_notices(hd, executor, pg):
    executor.script("pg_roles", ExecResult(0, "1\n", "NOTICE: 0 rows vacuumed"))
    executor.script("pg_database", ExecResult(0, "\n", "WARNING: 1 collation mismatch"))

    pg.add_db(hd, "appdb", "app", "new")

    inputs = executor.inputs()
    assert "ALTER ROLE \"app\" WITH LOGIN PASSWORD 'new';\n" in inputs
    assert "CREATE DATABASE \"appdb\" OWNER \"app\";\n" in inputs
    lookups = [c for c in executor.calls if c.input and c.input.startswith("SELECT 1 FROM")]
    assert len(lookups) == 2
    assert not any(c.merge_stderr for c in lookups)


def test_add_db_sql_never_in_argv(hd, executor, pg):
    pg.add_db(hd, "appdb", "app", "secret")

    for call in executor.calls:
        assert "secret" not in call.line
        assert "CREATE" not in call.line


def test_add_db_waits_for_readiness(hd, executor, pg, sleeps):
    executor.script("pg_isready", [ExecResult(2), ExecResult(2), ExecResult(0)])

    pg.add_db(hd, "appdb", "app", "secret")

    assert sleeps == [postgres.READY_INTERVAL, postgres.READY_INTERVAL]


def test_add_db_never_ready(hd, executor, pg, sleeps):
    executor.script("pg_isready", ExecResult(2))

    with pytest.raises(ProcessError, match="not ready"):
        pg.add_db(hd, "appdb", "app", "secret")

    assert len([c for c in executor.calls if "pg_isready" in c.line]) == postgres.READY_ATTEMPTS
    assert executor.inputs() == []


def test_add_db_grant_failure_is_a_warning(hd, executor, pg, caplog):
    executor.script("GRANT CONNECT", ExecResult(1, "permission denied"))

    pg.add_db(hd, "appdb", "app", "secret")

    assert "granting privileges" in caplog.text


def test_add_db_create_role_failure(hd, executor, pg):
    executor.script("CREATE ROLE", ExecResult(3, "ERROR: boom"))

    with pytest.raises(ProcessError, match="create role"):
        pg.add_db(hd, "appdb", "app", "secret")


def test_remove_db_drops_database_before_role(hd, executor, pg):
    pg.remove_db(hd, "appdb", "app")

    inputs = executor.inputs()
    assert "pg_terminate_backend" in inputs[0]
    assert inputs[1:] == ['DROP DATABASE IF EXISTS "appdb";\n', 'DROP ROLE IF EXISTS "app";\n']


def test_remove_db_ignores_terminate_failure(hd, executor, pg):
    executor.script("pg_terminate_backend", ExecResult(1))

    pg.remove_db(hd, "appdb", "app")

    assert executor.inputs()[-1] == 'DROP ROLE IF EXISTS "app";\n'


def test_remove_db_role_failure_is_fatal(hd, executor, pg):
    executor.script("DROP ROLE", ExecResult(1, "role is still referenced"))

    with pytest.raises(ProcessError, match="drop role"):
        pg.remove_db(hd, "appdb", "app")

    assert 'DROP DATABASE IF EXISTS "appdb";\n' in executor.inputs()


def test_remove_db_database_failure_stops(hd, executor, pg):
    executor.script("DROP DATABASE", ExecResult(1))

    with pytest.raises(ProcessError, match="drop database"):
        pg.remove_db(hd, "appdb", "app")

    assert not [i for i in executor.inputs() if "DROP ROLE" in i]
