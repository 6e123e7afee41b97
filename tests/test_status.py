from datetime import timedelta
from types import SimpleNamespace

import pytest

from selfhostd.k8s.status import PodStatus, ResourceStatus, format_age, render_pods

from conftest import make_pod


@pytest.mark.parametrize("delta,expected", [
    (timedelta(seconds=42), "42s"),
    (timedelta(minutes=5, seconds=3), "5m"),
    (timedelta(hours=26), "1d"),
    (timedelta(seconds=-3), "0s"),
])
def test_format_age(delta, expected):
    assert format_age(delta) == expected


def test_service_and_pvc_facts():
    service = SimpleNamespace(
        metadata=SimpleNamespace(creation_timestamp=None),
        spec=SimpleNamespace(type="ClusterIP", cluster_ip="10.0.0.7",
                             ports=[SimpleNamespace(port=5432, target_port=5432, protocol="TCP")]))
    pvc = SimpleNamespace(
        metadata=SimpleNamespace(creation_timestamp=None),
        spec=SimpleNamespace(volume_name="pv-1", access_modes=["ReadWriteOnce"]),
        status=SimpleNamespace(phase="Bound", capacity={"storage": "10Gi"}))

    svc = ResourceStatus.from_object("Service", "postgres", service)
    claim = ResourceStatus.from_object("PersistentVolumeClaim", "postgres-data-pvc", pvc)

    assert svc.facts["Ports"] == "5432:5432/TCP"
    assert svc.facts["Age"] == "unknown"
    assert claim.facts["Capacity"] == "10Gi"
    assert claim.render()[0] == "PERSISTENTVOLUMECLAIM: postgres-data-pvc"


def test_render_pods():
    assert render_pods([]) == ["PODS:", "  No pods found"]

    lines = render_pods([PodStatus.from_object(make_pod("redis-0", phase="Pending", app="redis"))])
    assert "redis-0" in lines[2]
    assert "0/1" in lines[2]
    assert "Pending" in lines[2]
