from datetime import datetime, timedelta, timezone
import logging
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)


def format_age(delta: timedelta) -> str:
    seconds = int(delta.total_seconds())
    if seconds >= 86400:
        return f"{seconds // 86400}d"
    if seconds >= 3600:
        return f"{seconds // 3600}h"
    if seconds >= 60:
        return f"{seconds // 60}m"
    return f"{max(seconds, 0)}s"


def age_of(obj: Any, now: datetime | None = None) -> str:
    created = getattr(obj.metadata, "creation_timestamp", None)
    if created is None:
        return "unknown"
    now = now or datetime.now(timezone.utc)
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return format_age(now - created)


def describe_deployment(d) -> dict[str, str]:
    status = d.status
    return {
        "Ready": f"{status.ready_replicas or 0}/{status.replicas or 0}",
        "Up-to-date": str(status.updated_replicas or 0),
        "Available": str(status.available_replicas or 0),
    }


def describe_service(s) -> dict[str, str]:
    ports = ", ".join(f"{p.port}:{p.target_port}/{p.protocol or 'TCP'}" for p in (s.spec.ports or []))
    return {
        "Type": s.spec.type or "ClusterIP",
        "Cluster-IP": s.spec.cluster_ip or "",
        "Ports": ports,
    }


def describe_secret(s) -> dict[str, str]:
    return {
        "Type": s.type or "",
        "Data keys": ", ".join(sorted((s.data or {}).keys())),
    }


def describe_pvc(p) -> dict[str, str]:
    capacity = (p.status.capacity or {}).get("storage", "") if p.status else ""
    return {
        "Status": (p.status.phase if p.status else None) or "Unknown",
        "Volume": p.spec.volume_name or "",
        "Capacity": capacity,
        "Access Modes": ", ".join(p.spec.access_modes or []),
    }


DESCRIBERS = {
    "Deployment": describe_deployment,
    "Service": describe_service,
    "Secret": describe_secret,
    "PersistentVolumeClaim": describe_pvc,
}


class ResourceStatus(BaseModel):
    kind: str
    name: str
    present: bool
    facts: dict[str, str] = {}
    error: str | None = None

    @classmethod
    def from_object(cls, kind: str, name: str, obj: Any) -> "ResourceStatus":
        facts = DESCRIBERS[kind](obj)
        facts["Age"] = age_of(obj)
        return cls(kind=kind, name=name, present=True, facts=facts)

    def render(self) -> list[str]:
        lines = [f"{self.kind.upper()}: {self.name}"]
        if self.error:
            lines.append(f"  Error: {self.error}")
        elif not self.present:
            lines.append("  Status: Not Found")
        else:
            lines.extend(f"  {k}: {v}" for k, v in self.facts.items())
        return lines


class PodStatus(BaseModel):
    name: str
    ready: str
    phase: str
    age: str

    @classmethod
    def from_object(cls, pod: Any) -> "PodStatus":
        statuses = (pod.status.container_statuses or []) if pod.status else []
        ready = sum(1 for cs in statuses if cs.ready)
        total = len(pod.spec.containers or [])
        return cls(name=pod.metadata.name, ready=f"{ready}/{total}",
                   phase=(pod.status.phase if pod.status else None) or "Unknown",
                   age=age_of(pod))

    def render(self) -> str:
        return f"  {self.name:<40} {self.ready:<10} {self.phase:<10} {self.age:<10}"


def render_pods(pods: list[PodStatus]) -> list[str]:
    lines = ["PODS:"]
    if not pods:
        lines.append("  No pods found")
        return lines
    lines.append(f"  {'NAME':<40} {'READY':<10} {'STATUS':<10} {'AGE':<10}")
    lines.extend(p.render() for p in pods)
    return lines


class ModuleStatus(BaseModel):
    module: str
    namespace: str
    resources: list[ResourceStatus] = []
    pods: list[PodStatus] = []
    pods_error: str | None = None

    def resource(self, kind: str) -> ResourceStatus | None:
        for r in self.resources:
            if r.kind == kind:
                return r
        return None

    def render(self) -> list[str]:
        lines = [f"{self.module} resources in namespace '{self.namespace}':", ""]
        for r in self.resources:
            lines.extend(r.render())
            lines.append("")
        if self.pods_error:
            lines.extend(["PODS:", f"  Error listing pods: {self.pods_error}"])
        else:
            lines.extend(render_pods(self.pods))
        return lines
