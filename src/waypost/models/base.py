"""Base Pydantic model configuration for waypost models.

All waypost models inherit from WaypostBaseModel to ensure consistent behavior:
- Immutability (frozen=True) so results can be shared and persisted safely
- Strict validation (extra="forbid") to catch typos and invalid fields
- Flexible field naming (populate_by_name=True) for alias support
"""

from pydantic import BaseModel, ConfigDict


class WaypostBaseModel(BaseModel):
    """Base model for all waypost entities and results.

    Example:
        >>> from pydantic import Field
        >>> class MyModel(WaypostBaseModel):
        ...     name: str
        ...     count: int = Field(default=0, ge=0)
        >>>
        >>> obj = MyModel(name="test", count=5)
        >>> obj.name
        'test'
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        use_enum_values=False,
        validate_default=True,
        validate_assignment=True,
    )
