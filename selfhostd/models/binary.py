import os

from pydantic import BaseModel, field_validator


import logging
logger = logging.getLogger(__name__)


class Binary(BaseModel):
    """
    external command used by the executor (kubectl).
    command wins when configured, otherwise the first existing
    alternative is taken, otherwise the bare binary name from PATH
    """

    binary: str
    command: list[str] | None = None
    alternatives: list[list[str]] = []

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}:{self.binary}>"

    def resolve(self) -> list[str]:
        if self.command:
            return list(self.command)

        for alt in self.alternatives:
            if alt and os.path.isfile(alt[0]) and os.access(alt[0], os.X_OK):
                logger.debug(f"{self} resolved to {alt}")
                return list(alt)

        return [self.binary]


class Binaries(BaseModel):
    kubectl: Binary = Binary(binary="kubectl",
        alternatives=[["/snap/bin/microk8s", "kubectl"]])

    @field_validator("kubectl", mode="before")
    @classmethod
    def command_shorthand(cls, value):
        # `kubectl: microk8s kubectl` or `kubectl: [microk8s, kubectl]`
        if isinstance(value, str):
            value = value.split()
        if isinstance(value, list):
            return {"binary": value[0] if value else "kubectl", "command": value or None}
        return value
