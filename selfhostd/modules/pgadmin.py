from typing import ClassVar

from selfhostd.models.resource import Resource

from .base import Module, Rollable


class Pgadmin(Module, Rollable):
    """
    web admin for the postgres module, stateless
    """
    name: ClassVar[str] = "pgadmin"
    title: ClassVar[str] = "pgAdmin web console"
    required_secrets: ClassVar[tuple[str, ...]] = ("pgadmin_default_email", "pgadmin_admin_password")
    resources: ClassVar[tuple[Resource, ...]] = (
        Resource(kind="Secret", name="pgadmin-secrets", template="secret.yaml.j2"),
        Resource(kind="Service", name="pgadmin", template="service.yaml.j2"),
        Resource(kind="Deployment", name="pgadmin", template="deployment.yaml.j2"),
    )
    defaults: ClassVar[dict] = {
        "image": "dpage/pgadmin4:9.10.0",
        "port": 80,
    }
