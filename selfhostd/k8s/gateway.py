"""
Cluster gateway

Typed get/create/delete/list against namespaced resources. Every kubernetes
api failure is translated: 404 to NotFoundError, 409 to AlreadyExistsError,
anything else (including connection failures) to TransportError.
"""

from kubernetes import client, config
from kubernetes.client.rest import ApiException
import urllib3
import logging
from typing import Any

from selfhostd.errors import AlreadyExistsError, NotFoundError, TransportError

logger = logging.getLogger(__name__)

# kind -> (api attribute, method suffix)
KINDS = {
    "Secret": ("core_v1", "secret"),
    "PersistentVolumeClaim": ("core_v1", "persistent_volume_claim"),
    "Service": ("core_v1", "service"),
    "Pod": ("core_v1", "pod"),
    "Deployment": ("apps_v1", "deployment"),
}


class ClusterGateway:

    def __init__(self, core_v1: client.CoreV1Api, apps_v1: client.AppsV1Api, timeout: int = 30):
        self.core_v1 = core_v1
        self.apps_v1 = apps_v1
        self.timeout = timeout

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}>"

    @classmethod
    def connect(cls, timeout: int = 30) -> "ClusterGateway":
        """
        kubeconfig first (~/.kube/config or $KUBECONFIG), in-cluster config as fallback
        """
        try:
            config.load_kube_config()
            logger.debug("loaded kubeconfig")
        except config.ConfigException:
            try:
                config.load_incluster_config()
                logger.debug("loaded in-cluster kubernetes configuration")
            except config.ConfigException as e:
                raise TransportError(f"failed to create Kubernetes client: {e}") from e

        return cls(client.CoreV1Api(), client.AppsV1Api(), timeout=timeout)

    def _method(self, verb: str, kind: str):
        try:
            api_name, suffix = KINDS[kind]
        except KeyError:
            raise ValueError(f"unsupported resource kind: {kind}")
        return getattr(getattr(self, api_name), f"{verb}_namespaced_{suffix}")

    def _call(self, verb: str, kind: str, namespace: str, resource_name: str | None, **kwargs) -> Any:
        method = self._method(verb, kind)
        what = f"{kind} '{resource_name}'" if resource_name else f"{kind} list"
        try:
            return method(namespace=namespace, _request_timeout=self.timeout, **kwargs)
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(f"{what} not found in namespace '{namespace}'") from e
            if e.status == 409:
                raise AlreadyExistsError(f"{what} already exists in namespace '{namespace}'") from e
            raise TransportError(f"failed to {verb} {what} in namespace '{namespace}': {e.status} {e.reason}") from e
        except urllib3.exceptions.HTTPError as e:
            raise TransportError(f"failed to {verb} {what} in namespace '{namespace}': {e}") from e

    def get(self, kind: str, namespace: str, name: str) -> Any:
        return self._call("read", kind, namespace, name, name=name)

    def exists(self, kind: str, namespace: str, name: str) -> bool:
        try:
            self.get(kind, namespace, name)
        except NotFoundError:
            return False
        return True

    def create(self, kind: str, namespace: str, body: dict[str, Any]) -> Any:
        name = body.get("metadata", {}).get("name")
        return self._call("create", kind, namespace, name, body=body)

    def delete(self, kind: str, namespace: str, name: str) -> Any:
        options = client.V1DeleteOptions(propagation_policy="Foreground")
        return self._call("delete", kind, namespace, name, name=name, body=options)

    def list(self, kind: str, namespace: str, label_selector: str | None = None) -> list[Any]:
        kwargs = {"label_selector": label_selector} if label_selector else {}
        return self._call("list", kind, namespace, None, **kwargs).items
