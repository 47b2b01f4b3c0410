"""
Base strategy interface.

A strategy turns a collection write mode into the output stage appended to
a model's pipeline.
"""

from abc import ABC, abstractmethod
from typing import Any


class Strategy(ABC):
    """Base class for collection write strategies."""

    name: str = ""

    @abstractmethod
    def generate_stage(self, target: str, database: str | None = None, **kwargs: Any) -> dict[str, Any]:
        """
        Generate the output stage for this strategy.

        Args:
            target: Destination collection name
            database: Destination database, or None for the database the pipeline runs in
            **kwargs: Strategy-specific parameters

        Returns:
            A single ``$out`` or ``$merge`` stage document
        """

    @staticmethod
    def destination(target: str, database: str | None) -> str | dict[str, str]:
        """Plain collection name, or ``{"db", "coll"}`` when writing across databases."""
        if database:
            return {"db": database, "coll": target}
        return target
