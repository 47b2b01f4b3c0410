"""
Replace strategy - replace the destination collection's entire contents.
"""

from typing import Any

from manifold.strategies.base import Strategy


class ReplaceStrategy(Strategy):
    """Full overwrite via ``$out``; nothing from a previous run survives."""

    name = "replace"

    def generate_stage(self, target: str, database: str | None = None, **kwargs: Any) -> dict[str, Any]:
        return {"$out": self.destination(target, database)}
