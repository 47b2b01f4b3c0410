"""
Base store interface.

The executor talks to the backing document store only through these
primitives. Implementations must tolerate concurrent calls from the
executor's worker threads against one shared handle.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from manifold.core.model import TimeSeriesOptions


class Store(ABC):
    """
    Base class for backing-store drivers.

    Attributes:
        default_database: Database used when a call passes ``database=None``
    """

    default_database: str | None = None

    def database_name(self, database: str | None = None) -> str | None:
        """The database a call with ``database`` would actually use."""
        return database or self.default_database

    @abstractmethod
    def aggregate(self, database: str | None, collection: str, stages: Sequence[dict[str, Any]]) -> None:
        """
        Execute an aggregation pipeline and drain it to completion.

        Pipelines ending in an output stage yield no rows but still have to be
        driven to completion for the write to happen.

        Args:
            database: Database name, or None for the store default
            collection: Collection the pipeline reads from
            stages: Complete stage list, output stage included
        """

    @abstractmethod
    def drop_view(self, database: str | None, name: str) -> None:
        """Drop a view if it exists; a missing view is not an error."""

    @abstractmethod
    def create_view(
        self, database: str | None, name: str, view_on: str, stages: Sequence[dict[str, Any]]
    ) -> None:
        """Create a view named ``name`` over ``view_on`` defined by ``stages``."""

    @abstractmethod
    def collection_exists(self, database: str | None, name: str) -> bool:
        """Whether a collection (or view) with this name exists."""

    @abstractmethod
    def create_timeseries_collection(self, database: str | None, name: str, options: "TimeSeriesOptions") -> None:
        """Create ``name`` as a time-series collection."""

    def close(self) -> None:
        """Release resources owned by the store (default: nothing)."""
