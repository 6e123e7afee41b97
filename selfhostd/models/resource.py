from typing import Any

from pydantic import BaseModel


class Resource(BaseModel):
    """
    cluster object owned by a module, rendered from a template
    """
    kind: str
    name: str
    template: str

    def __str__(self) -> str:
        return f"{self.kind} '{self.name}'"

    @property
    def filename(self) -> str:
        return self.template.removesuffix(".j2")


class RenderedResource(BaseModel):
    resource: Resource
    body: dict[str, Any]
    source: str

    @property
    def kind(self) -> str:
        return self.resource.kind

    @property
    def name(self) -> str:
        return self.resource.name
