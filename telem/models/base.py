from typing import ClassVar, FrozenSet
from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for wire schemas: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class PatchModel(ApiModel):
    """
    Partial-update payload.

    Only the fields a client actually sends are applied. Unknown fields are
    rejected, and an explicit null is only accepted for fields listed in
    nullable_fields (everything else maps to a NOT NULL column).
    """
    model_config = ConfigDict(extra="forbid")

    nullable_fields: ClassVar[FrozenSet[str]] = frozenset()

    @model_validator(mode="after")
    def reject_explicit_nulls(self):
        nulls = sorted(
            name for name in self.model_fields_set
            if getattr(self, name) is None and name not in self.nullable_fields
        )
        if nulls:
            raise ValueError(f"Fields cannot be null: {', '.join(nulls)}")
        return self
