from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Request bodies accept the dashboard's camelCase keys (snake_case also works)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
