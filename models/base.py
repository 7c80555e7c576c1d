"""
Shared pydantic base for AI Portfolio models.
The AI service speaks camelCase JSON; Python code uses snake_case attributes.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model accepting both camelCase aliases and snake_case field names."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )
