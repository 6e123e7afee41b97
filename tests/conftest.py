"""
Shared fixtures: an in-memory cluster gateway, a scripted kubectl executor
and a configured Hostd rooted in tmp_path.
"""

from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

import pytest

from selfhostd.errors import AlreadyExistsError, NotFoundError
from selfhostd.hostd import Hostd
from selfhostd.k8s.executor import ExecResult
from selfhostd.models import Config, ModuleConfig

POSTGRES_SECRETS = {"admin_postgres_user": "admin", "admin_postgres_password": "s3cret"}
PGADMIN_SECRETS = {"pgadmin_default_email": "admin@example.com", "pgadmin_admin_password": "pw"}


def make_pod(name: str, phase: str = "Running", app: str = "postgres"):
    return SimpleNamespace(
        metadata=SimpleNamespace(name=name, creation_timestamp=None, labels={"app": app}),
        status=SimpleNamespace(phase=phase, container_statuses=[SimpleNamespace(ready=phase == "Running")]),
        spec=SimpleNamespace(containers=[SimpleNamespace(name=app)]),
    )


def as_object(kind: str, body: dict):
    """
    minimal kubernetes-client-like view of a created manifest
    """
    meta = SimpleNamespace(name=body["metadata"]["name"], creation_timestamp=None)
    spec = body.get("spec", {})
    obj = SimpleNamespace(metadata=meta, body=body)
    if kind == "Secret":
        obj.type, obj.data = body.get("type"), body.get("data")
    elif kind == "Service":
        ports = [SimpleNamespace(port=p["port"], target_port=p.get("targetPort"), protocol=p.get("protocol"))
                 for p in spec.get("ports", [])]
        obj.spec = SimpleNamespace(type=spec.get("type"), cluster_ip=None, ports=ports)
    elif kind == "PersistentVolumeClaim":
        obj.spec = SimpleNamespace(volume_name=None, access_modes=spec.get("accessModes"))
        obj.status = SimpleNamespace(phase="Pending", capacity=None)
    elif kind == "Deployment":
        obj.status = SimpleNamespace(ready_replicas=None, replicas=spec.get("replicas"),
                                     updated_replicas=None, available_replicas=None)
    return obj


class FakeGateway:
    """
    dict backed stand-in for ClusterGateway, records every call
    """

    def __init__(self):
        self.objects: dict[tuple[str, str, str], Any] = {}
        self.pods: list[Any] = []
        self.calls: list[tuple[str, str, str | None]] = []
        self.failures: dict[tuple[str, str], Exception] = {}

    def _maybe_fail(self, verb, name):
        exc = self.failures.get((verb, name))
        if exc:
            raise exc

    def add(self, kind, namespace, name, obj=None):
        self.objects[(kind, namespace, name)] = obj or SimpleNamespace(metadata=SimpleNamespace(name=name))

    def get(self, kind, namespace, name):
        self.calls.append(("get", kind, name))
        self._maybe_fail("get", name)
        try:
            return self.objects[(kind, namespace, name)]
        except KeyError:
            raise NotFoundError(f"{kind} '{name}' not found in namespace '{namespace}'")

    def exists(self, kind, namespace, name):
        try:
            self.get(kind, namespace, name)
        except NotFoundError:
            return False
        return True

    def create(self, kind, namespace, body):
        name = body["metadata"]["name"]
        self.calls.append(("create", kind, name))
        self._maybe_fail("create", name)
        if (kind, namespace, name) in self.objects:
            raise AlreadyExistsError(f"{kind} '{name}' already exists in namespace '{namespace}'")
        obj = as_object(kind, body)
        self.objects[(kind, namespace, name)] = obj
        return obj

    def delete(self, kind, namespace, name):
        self.calls.append(("delete", kind, name))
        self._maybe_fail("delete", name)
        try:
            return self.objects.pop((kind, namespace, name))
        except KeyError:
            raise NotFoundError(f"{kind} '{name}' not found in namespace '{namespace}'")

    def list(self, kind, namespace, label_selector=None):
        self.calls.append(("list", kind, label_selector))
        self._maybe_fail("list", kind)
        if kind != "Pod":
            return [o for (k, ns, _), o in self.objects.items() if k == kind and ns == namespace]
        return list(self.pods)

    def verbs(self, verb):
        return [(kind, name) for v, kind, name in self.calls if v == verb]


@dataclass
class ExecCall:
    kind: str
    command: list[str]
    input: str | None = None
    received: bytes | None = None
    merge_stderr: bool = True

    @property
    def line(self) -> str:
        return " ".join(self.command)


@dataclass
class FakeExecutor:
    """
    scripted stand-in for KubectlExecutor. rules map a substring of the
    joined command to the result it returns; unmatched commands succeed
    """
    payload: bytes = b""
    rules: list[tuple[str, Any]] = field(default_factory=list)
    calls: list[ExecCall] = field(default_factory=list)

    def script(self, match: str, result):
        self.rules.append((match, result))

    def _result(self, line: str) -> ExecResult:
        for match, result in self.rules:
            if match in line:
                if isinstance(result, list):
                    return result.pop(0) if len(result) > 1 else result[0]
                return result
        return ExecResult(0, "")

    def stream(self, namespace, pod, command, stdin=None, stdout=None, timeout=None):
        call = ExecCall("stream", list(command))
        if stdin is not None:
            call.received = stdin.read()
        if stdout is not None:
            stdout.write(self.payload)
        self.calls.append(call)
        return self._result(call.line).returncode

    def capture(self, namespace, pod, command, input=None, timeout=None, merge_stderr=True):
        call = ExecCall("capture", list(command), input=input, merge_stderr=merge_stderr)
        self.calls.append(call)
        return self._result(f"{call.line}\n{input or ''}")

    def rollout(self, operation, deployment, namespace, capture=False):
        call = ExecCall("rollout", ["rollout", operation, f"deployment/{deployment}", "-n", namespace])
        self.calls.append(call)
        return self._result(call.line)

    def inputs(self) -> list[str]:
        return [c.input for c in self.calls if c.input is not None]


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def conf():
    return Config(modules=[
        ModuleConfig(name="postgres", namespace="infra", secrets=dict(POSTGRES_SECRETS)),
        ModuleConfig(name="redis", namespace="infra"),
        ModuleConfig(name="pgadmin", namespace="infra", secrets=dict(PGADMIN_SECRETS)),
    ])


@pytest.fixture
def hd(tmp_path, conf, gateway, executor):
    return Hostd(root=str(tmp_path), conf=conf, gateway=gateway, executor=executor, kubectl=["kubectl"])
