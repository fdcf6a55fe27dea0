"""Shared Pydantic base for exchanged records."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class EngineModel(BaseModel):
    """Frozen record with camelCase JSON keys.

    Accepts both ``default_value`` and ``defaultValue`` on input; dumps with
    ``by_alias=True`` produce the camelCase exchange shape.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict:
        """Dump to the JSON exchange shape (camelCase, unset optionals omitted)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = ["EngineModel"]
