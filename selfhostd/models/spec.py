

import os
from copy import deepcopy
from typing import Any
from jinja2 import Environment, TemplateError
from pydantic import BaseModel, ValidationError
import yaml
from deepmerge import always_merger

from selfhostd.errors import ConfigError

import logging
logger = logging.getLogger(__name__)


class SpecModel(BaseModel):
    path: str
    relpath: str | None = None
    source: str | None = None
    data: dict[str, Any] = {}
    jinja_template: bool = False


class Spec(SpecModel):
    jinja_env: Any | None = None
    merge_from: Any | None = None

    def __init__(self, jinja_env: Environment = None, **data: Any) -> None:
        super().__init__(**data)
        self.jinja_env = jinja_env
        self.jinja_template = jinja_env is not None
        self.relpath = os.path.relpath(self.path)

    def render(self, **kwargs):
        """
        loading jinja-templated yaml file if jinja_env is provided
        or raw data else. merge_from holds the defaults the file is merged over
        """
        logger.debug(f"rendering {self.path}")
        if not os.path.isfile(self.path):
            raise ConfigError(f"config file not found: {self.path}")

        with open(self.path) as f:
            self.source = f.read()

        try:
            if self.jinja_env:
                rendered = self.jinja_env.from_string(self.source).render(**kwargs)
            else:
                rendered = self.source
            loaded = yaml.safe_load(rendered) or {}
        except (TemplateError, yaml.YAMLError) as e:
            raise ConfigError(f"error parsing config {self.relpath}: {e}") from e

        if not isinstance(loaded, dict):
            raise ConfigError(f"config {self.relpath} must be a mapping, got {type(loaded).__name__}")

        self.data = {}
        if self.merge_from:
            self.data = always_merger.merge(self.data, deepcopy(self.merge_from))

        self.data = always_merger.merge(self.data, loaded)

    def parse_obj_as(self, obj_type, **kwargs):
        self.render(**kwargs)
        try:
            obj = obj_type.model_validate(self.data)
        except ValidationError as e:
            raise ConfigError(f"invalid config {self.relpath}: {e}") from e
        obj.spec = self
        return obj
