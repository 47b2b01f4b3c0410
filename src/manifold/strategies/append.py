"""
Append strategy - insert new documents, never overwrite existing ones.
"""

from typing import Any

from manifold.strategies.base import Strategy


class AppendStrategy(Strategy):
    """
    Append via ``$merge`` that fails on ``_id`` collision.

    Re-running the same model over the same input therefore errors instead
    of silently duplicating or clobbering rows in an append-only destination.
    """

    name = "append"

    def generate_stage(self, target: str, database: str | None = None, **kwargs: Any) -> dict[str, Any]:
        return {
            "$merge": {
                "into": self.destination(target, database),
                "whenMatched": "fail",
                "whenNotMatched": "insert",
            }
        }
