"""
Merge strategy - ``$merge`` on caller-supplied key fields.
"""

from typing import TYPE_CHECKING, Any

from manifold.strategies.base import Strategy

if TYPE_CHECKING:
    from manifold.core.model import MergeOptions


class MergeStrategy(Strategy):
    """Custom merge; unspecified actions default to replace/insert."""

    name = "merge"

    def generate_stage(
        self,
        target: str,
        database: str | None = None,
        options: "MergeOptions | None" = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Generate a ``$merge`` stage.

        Args:
            target: Destination collection name
            database: Destination database (optional)
            options: Merge keys and matched/not-matched actions

        Raises:
            ValueError: If no merge options are given
        """
        if options is None:
            raise ValueError("merge options with an 'on' key are required for the merge strategy")

        on: str | list[str] = list(options.on) if isinstance(options.on, tuple) else options.on
        return {
            "$merge": {
                "into": self.destination(target, database),
                "on": on,
                "whenMatched": options.when_matched or "replace",
                "whenNotMatched": options.when_not_matched or "insert",
            }
        }
