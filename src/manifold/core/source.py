"""
Pipeline sources.

A source is anything a model can read from: a raw collection or another
model. Both carry a ``source_type`` discriminant; dispatch on it is always
exhaustive over ``SOURCE_TYPES``.
"""

from dataclasses import dataclass
from typing import ClassVar

from manifold.exceptions import ConfigurationError

SOURCE_TYPES = ("collection", "model")


class Source:
    """Common base for ``Collection`` and ``Model``."""

    source_type: ClassVar[str]

    def output_collection_name(self) -> str:
        raise NotImplementedError

    def output_database(self) -> str | None:
        raise NotImplementedError


@dataclass(frozen=True)
class Collection(Source):
    """Reference to a raw collection in the backing store."""

    source_type: ClassVar[str] = "collection"

    name: str
    db: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ConfigurationError(f"Collection name must be a non-empty string, got {self.name!r}")

    def output_collection_name(self) -> str:
        return self.name

    def output_database(self) -> str | None:
        return self.db


def coerce_source(value: object, owner: str) -> Source:
    """Accept a ``Source`` or a bare collection name."""
    if isinstance(value, str):
        return Collection(value)
    if isinstance(value, Source):
        if value.source_type not in SOURCE_TYPES:
            raise ConfigurationError(f"Model '{owner}' has a source with unknown type '{value.source_type}'")
        return value
    raise ConfigurationError(
        f"Model '{owner}' source must be a Collection, a Model, or a collection name; got {type(value).__name__}"
    )
