"""
Upsert strategy - replace documents matching on ``_id``, insert the rest.
"""

from typing import Any

from manifold.strategies.base import Strategy

IDENTITY_FIELD = "_id"


class UpsertStrategy(Strategy):
    """Upsert keyed on the primary identity field."""

    name = "upsert"

    def generate_stage(self, target: str, database: str | None = None, **kwargs: Any) -> dict[str, Any]:
        return {
            "$merge": {
                "into": self.destination(target, database),
                "on": IDENTITY_FIELD,
                "whenMatched": "replace",
                "whenNotMatched": "insert",
            }
        }
