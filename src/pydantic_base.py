from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    model_config = ConfigDict(use_attribute_docstrings=True, populate_by_name=True)


class FrozenSchema(BaseSchema):
    """Immutable value: states, settings and snapshots that are replaced, never mutated"""

    model_config = ConfigDict(use_attribute_docstrings=True, populate_by_name=True, frozen=True)
