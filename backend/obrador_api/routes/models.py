"""
Shared pydantic models.

Wire names are camelCase and document ids are exposed as ``_id``; Python
code keeps snake_case attribute names.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Base model with camelCase aliases that also accepts field names.

    NaN and Infinity are rejected in every float field.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, allow_inf_nan=False)


class Reference(CamelModel):
    """Populated reference to another document."""
    id: int = Field(alias="_id")
    name: str
